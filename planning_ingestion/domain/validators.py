"""
Row parsing and row-level validators for bulk item import.

Each validator returns RowIssue values and never raises for bad data.
Drug resolution needs the drug master and lives in the reconciler.

Architecture: planning_ingestion/domain. ZERO I/O.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from planning_ingestion.adapters.base import CellValue, SourceRow
from planning_ingestion.domain.columns import NUMERIC_KEYS, REQUIRED_KEYS, HeaderMap
from planning_ingestion.domain.types import IssueSeverity, RowIssue

MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
INVALID_NUMBER = "INVALID_NUMBER"
DUPLICATE_IN_FILE = "DUPLICATE_IN_FILE"
PRICE_DEVIATION = "PRICE_DEVIATION"
NAME_MISMATCH = "NAME_MISMATCH"

# Kernel stores quantities as Numeric(38, 9)
_MAX_DECIMAL_PLACES = 9


@dataclass(frozen=True)
class ParsedRow:
    """Typed values of one source row.  Optional numerics are None when blank."""

    row: int
    drug_code: str
    drug_name: str | None
    historical_usage: dict[str, Decimal]
    estimated_usage: Decimal
    current_stock: Decimal
    unit_price: Decimal
    requested_qty: Decimal
    q1_qty: Decimal
    q2_qty: Decimal
    q3_qty: Decimal
    q4_qty: Decimal
    budget_qty: Decimal | None = None
    fund_qty: Decimal | None = None
    notes: str | None = None
    notes_supplied: bool = False
    history_supplied: bool = False


def _is_blank(value: CellValue) -> bool:
    return value == "" or value is None


def parse_decimal_cell(
    value: CellValue, field: str, row: int
) -> tuple[Decimal | None, RowIssue | None]:
    """
    Parse a numeric cell.  Thousands separators and surrounding spaces are
    tolerated.  Blank gives (None, None).
    """
    if _is_blank(value):
        return None, None
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    else:
        text = str(value).replace(",", "").replace(" ", "")
        try:
            result = Decimal(text)
        except InvalidOperation:
            return None, RowIssue(
                row=row,
                field=field,
                message=f"'{value}' is not a number",
                code=INVALID_NUMBER,
            )
    if not result.is_finite():
        return None, RowIssue(row=row, field=field, message=f"'{value}' is not a number",
                              code=INVALID_NUMBER)
    exponent = result.as_tuple().exponent
    if isinstance(exponent, int) and -exponent > _MAX_DECIMAL_PLACES:
        return None, RowIssue(
            row=row,
            field=field,
            message=f"{field} has more than {_MAX_DECIMAL_PLACES} decimal places",
            code=INVALID_NUMBER,
        )
    return result, None


def validate_required_cells(source: SourceRow, header: HeaderMap) -> list[RowIssue]:
    """Every required contract field must be non-blank."""
    issues: list[RowIssue] = []
    for key in REQUIRED_KEYS:
        if _is_blank(source.cell(header.positions[key])):
            issues.append(RowIssue(
                row=source.row_number,
                field=key,
                message=f"{key} is required",
                code=MISSING_REQUIRED_FIELD,
            ))
    return issues


def parse_row(source: SourceRow, header: HeaderMap) -> tuple[ParsedRow | None, list[RowIssue]]:
    """
    Turn a source row into a ParsedRow.

    Returns (None, issues) when any required field is blank or any numeric
    cell fails to parse; every problem on the row is reported, not only the
    first.
    """
    row = source.row_number
    issues = validate_required_cells(source, header)

    numbers: dict[str, Decimal | None] = {}
    for key in NUMERIC_KEYS:
        if not header.has(key):
            numbers[key] = None
            continue
        value, issue = parse_decimal_cell(source.cell(header.positions[key]), key, row)
        if issue is not None:
            issues.append(issue)
        numbers[key] = value

    history: dict[str, Decimal] = {}
    for label, index in header.history:
        value, issue = parse_decimal_cell(source.cell(index), f"usage_{label}", row)
        if issue is not None:
            issues.append(issue)
        elif value is not None:
            history[label] = value

    if issues:
        return None, issues

    def text(key: str) -> str | None:
        if not header.has(key):
            return None
        value = source.cell(header.positions[key])
        return None if _is_blank(value) else str(value).strip()

    parsed = ParsedRow(
        row=row,
        drug_code=str(source.cell(header.positions["drug_code"])).strip(),
        drug_name=text("drug_name"),
        historical_usage=history,
        estimated_usage=numbers["estimated_usage"],
        current_stock=numbers.get("current_stock") or Decimal("0"),
        unit_price=numbers["unit_price"],
        requested_qty=numbers["requested_qty"],
        q1_qty=numbers["q1_qty"],
        q2_qty=numbers["q2_qty"],
        q3_qty=numbers["q3_qty"],
        q4_qty=numbers["q4_qty"],
        budget_qty=numbers.get("budget_qty"),
        fund_qty=numbers.get("fund_qty"),
        notes=text("notes"),
        notes_supplied=header.has("notes"),
        history_supplied=bool(header.history),
    )
    return parsed, []


# -----------------------------------------------------------------------------
# Cross-row and reference validators
# -----------------------------------------------------------------------------


def validate_unique_code(
    drug_code: str, row: int, staged_codes: Mapping[str, int]
) -> RowIssue | None:
    """
    A drug may be staged once per file.

    ``staged_codes`` maps upper-cased codes to the row that was staged for
    them; the caller adds a code only once its row is accepted, so a
    rejected row never blocks a corrected copy further down.
    """
    key = drug_code.upper()
    if key in staged_codes:
        return RowIssue(
            row=row,
            field="drug_code",
            message=f"Drug {drug_code} already appears on row {staged_codes[key]}",
            code=DUPLICATE_IN_FILE,
        )
    return None


def price_deviation_warning(
    row: int, file_price: Decimal, master_price: Decimal, percent: Decimal
) -> RowIssue | None:
    """Warn when the file price strays more than ``percent`` from the master price."""
    if master_price <= 0:
        return None
    deviation = abs(file_price - master_price) / master_price * 100
    if deviation <= percent:
        return None
    return RowIssue(
        row=row,
        field="unit_price",
        message=(
            f"Unit price {file_price} differs from drug master price {master_price} "
            f"by {deviation.quantize(Decimal('0.1'))}%"
        ),
        code=PRICE_DEVIATION,
        severity=IssueSeverity.WARNING,
    )


def name_mismatch_warning(
    row: int, file_name: str | None, master_name: str
) -> RowIssue | None:
    if not file_name or file_name.strip().casefold() == master_name.strip().casefold():
        return None
    return RowIssue(
        row=row,
        field="drug_name",
        message=f"Drug name '{file_name}' differs from drug master name '{master_name}'",
        code=NAME_MISMATCH,
        severity=IssueSeverity.WARNING,
    )
