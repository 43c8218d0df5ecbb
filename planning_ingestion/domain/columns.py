"""
planning_ingestion.domain.columns -- The import column contract.

Two source layouts are understood:

* FLAT: header on row 1, one item per following row.  Columns, in the order
  templates are written: drug code*, drug name, unit, three historical-year
  quantities, current-year estimate*, current stock, unit price*, requested
  quantity*, Q1-Q4*, notes, then the optional budget / fund quantities.
  Headers are matched by name (aliases and Thai labels accepted), so a user
  who reorders columns still imports correctly.
* SSCJ: a workbook written by the SSCJ export.  Read by fixed cell
  position from row 5, exactly as downstream regulatory tooling reads it.

Legacy column generations (q1_amount..q4_amount, generic_code, ...) are
renamed once here by ``normalize_legacy_row``; nothing past this module
knows they ever existed.

ZERO I/O.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TypeVar

from planning_kernel.domain import sscj_layout
from planning_kernel.domain.sscj_layout import CellKind

V = TypeVar("V")


@dataclass(frozen=True)
class ColumnSpec:
    key: str
    required: bool = False
    numeric: bool = False
    aliases: tuple[str, ...] = ()


def normalize_header(value: object) -> str:
    """Lower-case, trim, and join words with underscores."""
    text = str(value or "").strip().lower()
    return re.sub(r"[\s\-]+", "_", text)


HISTORY_SLOT = "history"

# Fixed order of the flat contract; the history block sits after "unit".
FLAT_CONTRACT: tuple[ColumnSpec, ...] = (
    ColumnSpec("drug_code", required=True,
               aliases=("drug code", "code", "รหัสยา", "รหัส")),
    ColumnSpec("drug_name", aliases=("drug name", "name", "ชื่อยา")),
    ColumnSpec("unit", aliases=("หน่วย", "หน่วยนับ")),
    ColumnSpec(HISTORY_SLOT),
    ColumnSpec("estimated_usage", required=True, numeric=True,
               aliases=("current year estimate", "estimate", "ประมาณการ", "ประมาณการใช้")),
    ColumnSpec("current_stock", numeric=True, aliases=("stock", "คงคลัง")),
    ColumnSpec("unit_price", required=True, numeric=True,
               aliases=("price", "ราคา/หน่วย", "ราคาต่อหน่วย")),
    ColumnSpec("requested_qty", required=True, numeric=True,
               aliases=("requested quantity", "quantity", "จำนวนที่ขอ")),
    ColumnSpec("q1_qty", required=True, numeric=True, aliases=("q1", "quarter 1", "ไตรมาส 1")),
    ColumnSpec("q2_qty", required=True, numeric=True, aliases=("q2", "quarter 2", "ไตรมาส 2")),
    ColumnSpec("q3_qty", required=True, numeric=True, aliases=("q3", "quarter 3", "ไตรมาส 3")),
    ColumnSpec("q4_qty", required=True, numeric=True, aliases=("q4", "quarter 4", "ไตรมาส 4")),
    ColumnSpec("notes", aliases=("note", "remark", "หมายเหตุ")),
    ColumnSpec("budget_qty", numeric=True, aliases=("budget quantity", "เงินงบประมาณ")),
    ColumnSpec("fund_qty", numeric=True, aliases=("fund quantity", "เงินบำรุง")),
)

REQUIRED_KEYS: tuple[str, ...] = tuple(c.key for c in FLAT_CONTRACT if c.required)
NUMERIC_KEYS: frozenset[str] = frozenset(c.key for c in FLAT_CONTRACT if c.numeric)

LEGACY_RENAMES: dict[str, str] = {
    "q1_amount": "q1_qty",
    "q2_amount": "q2_qty",
    "q3_amount": "q3_qty",
    "q4_amount": "q4_qty",
    "generic_code": "drug_code",
    "generic_name": "drug_name",
}



def _build_aliases() -> dict[str, str]:
    aliases: dict[str, str] = {}
    for spec in FLAT_CONTRACT:
        if spec.key == HISTORY_SLOT:
            continue
        aliases[normalize_header(spec.key)] = spec.key
        for alias in spec.aliases:
            aliases[normalize_header(alias)] = spec.key
    for legacy in LEGACY_RENAMES:
        aliases[legacy] = legacy
    return aliases


_ALIASES = _build_aliases()

_YEAR_HEADER = re.compile(r"^(?:usage(?:_year)?|history|ปี|ใช้ปี)?_?(\d{4})$")
_SHORT_YEAR_HEADER = re.compile(r"^ปี_?(\d{2})$")
_SLOT_HEADER = re.compile(r"^(?:usage|history)_([1-9])$")
_ESTIMATE_YEAR_HEADER = re.compile(r"^estimated_usage_\d{4}$")


def normalize_legacy_row(row: Mapping[str, V]) -> dict[str, V]:
    """
    Rename legacy-generation keys to their current names.

    When both generations are present the current one wins and the legacy
    value is dropped.
    """
    normalized: dict[str, V] = {}
    for key, value in row.items():
        target = LEGACY_RENAMES.get(key, key)
        if target != key and target in row:
            continue
        normalized.setdefault(target, value)
    return normalized


def history_headers(fiscal_year: int) -> tuple[str, ...]:
    return tuple(f"usage_{year}" for year in sscj_layout.history_years(fiscal_year))


def flat_headers(fiscal_year: int) -> tuple[str, ...]:
    """Header row of templates and flat exports, in contract order."""
    headers: list[str] = []
    for spec in FLAT_CONTRACT:
        if spec.key == HISTORY_SLOT:
            headers.extend(history_headers(fiscal_year))
        else:
            headers.append(spec.key)
    return tuple(headers)


# ---------------------------------------------------------------------------
# Header resolution
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HeaderMap:
    """Where each contract field sits in the source rows (0-based)."""

    positions: Mapping[str, int]
    history: tuple[tuple[str, int], ...]

    def missing_required(self) -> list[str]:
        return [key for key in REQUIRED_KEYS if key not in self.positions]

    def has(self, key: str) -> bool:
        return key in self.positions


def _history_label(header: str, fiscal_year: int) -> str | None:
    match = _YEAR_HEADER.match(header)
    if match:
        return match.group(1)
    match = _SHORT_YEAR_HEADER.match(header)
    if match:
        # Buddhist-era short form, e.g. "ปี 66" -> 2566
        return f"25{match.group(1)}"
    match = _SLOT_HEADER.match(header)
    if match:
        slot = int(match.group(1))
        return str(fiscal_year - sscj_layout.HISTORY_YEARS + slot - 1)
    return None


def resolve_flat_header(header_values: tuple[object, ...], fiscal_year: int) -> HeaderMap:
    """
    Map a flat header row to contract fields.

    Unknown headers are ignored; the first occurrence of a field wins.
    """
    raw: dict[str, int] = {}
    history: list[tuple[str, int]] = []
    for index, value in enumerate(header_values):
        header = normalize_header(value)
        if not header:
            continue
        if _ESTIMATE_YEAR_HEADER.match(header):
            raw.setdefault("estimated_usage", index)
            continue
        key = _ALIASES.get(header)
        if key is not None:
            raw.setdefault(key, index)
            continue
        label = _history_label(header, fiscal_year)
        if label is not None and label not in (lbl for lbl, _ in history):
            history.append((label, index))
    return HeaderMap(positions=normalize_legacy_row(raw), history=tuple(history))


# ---------------------------------------------------------------------------
# SSCJ positions
# ---------------------------------------------------------------------------

_SSCJ_SKIPPED = frozenset({"seq", "estimated_purchase"})


def sscj_header_map(history_labels: tuple[str, ...]) -> HeaderMap:
    """Fixed positions of an SSCJ workbook; value columns are not read back."""
    positions: dict[str, int] = {}
    history_indices: list[int] = []
    for column in sscj_layout.COLUMNS:
        if column.source in _SSCJ_SKIPPED:
            continue
        if column.group == sscj_layout.HISTORY_GROUP.key:
            history_indices.append(column.index - 1)
            continue
        if column.kind == CellKind.MONEY and column.source != "unit_price":
            continue
        positions.setdefault(column.source, column.index - 1)
    history = tuple(zip(history_labels, history_indices))
    return HeaderMap(positions=positions, history=history)


def is_sscj_header(row_values: tuple[object, ...]) -> bool:
    """True for row 3 of an SSCJ workbook (sequence header in column A)."""
    return bool(row_values) and str(row_values[0]).strip() == sscj_layout.SEQ_HEADER
