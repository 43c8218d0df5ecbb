"""
Bulk reconciler: stream a source file -> validate rows -> build an upsert plan.

The reconciler decides, for every row of a file, whether it is accepted
(staged for upsert keyed by drug) or rejected (reported with row and field).
It performs no writes: the caller applies ``ImportPlan.staged`` inside its
own transaction, so nothing is written unless the whole decision set has
been computed first.

Whole-file problems raise FileFormatError before or instead of producing a
plan: unsupported extension, oversize file, unreadable content, missing
required header, or more data rows than ``ImportLimits.max_rows``.
"""

from __future__ import annotations

import csv
import time
import zipfile
from collections.abc import Callable, Iterator
from decimal import Decimal
from itertools import chain, islice
from pathlib import Path

from openpyxl.utils.exceptions import InvalidFileException

from planning_config.schema import CalculationPolicy, ImportLimits
from planning_engines.item_calculation import DrugFacts, ItemFigures, recompute_derived
from planning_kernel.exceptions import FileFormatError, ReferentialNotFoundError
from planning_kernel.logging_config import get_logger
from planning_ingestion.adapters.base import SourceAdapter, SourceRow
from planning_ingestion.adapters.csv_adapter import CsvSourceAdapter
from planning_ingestion.adapters.xlsx_adapter import XlsxSourceAdapter
from planning_ingestion.domain.columns import (
    HeaderMap,
    is_sscj_header,
    resolve_flat_header,
    sscj_header_map,
)
from planning_ingestion.domain.types import (
    ImportPlan,
    RowIssue,
    SourceLayout,
    StagedRow,
)
from planning_ingestion.domain.validators import (
    ParsedRow,
    name_mismatch_warning,
    parse_row,
    price_deviation_warning,
    validate_unique_code,
)
from planning_kernel.domain import sscj_layout

logger = get_logger("ingestion.reconciler")

DrugResolver = Callable[[str], DrugFacts | None]

_LEAD_ROWS = sscj_layout.SUB_HEADER_ROW


def _default_adapters() -> dict[str, SourceAdapter]:
    return {
        ".csv": CsvSourceAdapter(),
        ".xlsx": XlsxSourceAdapter(),
    }


class BulkReconciler:
    """Turns an import file into an ImportPlan.  Holds no session."""

    def __init__(
        self,
        limits: ImportLimits,
        adapters: dict[str, SourceAdapter] | None = None,
    ):
        self._limits = limits
        self._adapters = adapters if adapters is not None else _default_adapters()

    # =========================================================================
    # File checks
    # =========================================================================

    def check_file(self, source_path: Path, filename: str | None = None) -> str:
        """
        Reject the file as a whole before any row is read.

        Returns the lower-case extension used to pick the adapter.
        """
        name = filename or source_path.name
        extension = Path(name).suffix.lower()
        if extension not in self._limits.allowed_extensions or extension not in self._adapters:
            raise FileFormatError(
                name,
                f"unsupported file type '{extension or '(none)'}'; expected one of "
                f"{', '.join(self._limits.allowed_extensions)}",
            )
        if not source_path.is_file():
            raise FileFormatError(name, "file does not exist")
        size = source_path.stat().st_size
        if size > self._limits.max_file_size_bytes:
            raise FileFormatError(
                name,
                f"file is {size} bytes; the limit is {self._limits.max_file_size_bytes}",
            )
        if size == 0:
            raise FileFormatError(name, "file is empty")
        return extension

    # =========================================================================
    # Planning
    # =========================================================================

    def plan(
        self,
        source_path: Path,
        *,
        fiscal_year: int,
        policy: CalculationPolicy,
        resolve_drug: DrugResolver,
        filename: str | None = None,
    ) -> ImportPlan:
        """
        Stream the file and decide every row.

        Preconditions: the caller has already checked the request is DRAFT.
        Raises:
            FileFormatError: for whole-file problems (see module docstring).
        """
        name = filename or source_path.name
        extension = self.check_file(source_path, name)
        adapter = self._adapters[extension]
        options = {
            "delimiter": self._limits.csv_delimiter,
            "encoding": self._limits.csv_encoding,
        }

        t0 = time.monotonic()
        stream = adapter.read_rows(source_path, options)
        try:
            plan = self._plan_stream(stream, name, fiscal_year, policy, resolve_drug)
        except (zipfile.BadZipFile, InvalidFileException, UnicodeDecodeError, csv.Error) as exc:
            raise FileFormatError(name, f"file cannot be read: {exc}") from exc
        finally:
            stream.close()

        logger.info("import_planned", extra={
            "source_filename": name,
            "layout": plan.layout.value,
            "total_rows": plan.total_rows,
            "staged": len(plan.staged),
            "rejected_rows": plan.rejected_rows,
            "warnings": len(plan.warnings),
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })
        return plan

    def _plan_stream(
        self,
        stream: Iterator[SourceRow],
        name: str,
        fiscal_year: int,
        policy: CalculationPolicy,
        resolve_drug: DrugResolver,
    ) -> ImportPlan:
        lead = list(islice(stream, _LEAD_ROWS))
        if not lead:
            raise FileFormatError(name, "file is empty")
        layout, header, first_data_row = self._detect_layout(lead, name, fiscal_year)

        staged: list[StagedRow] = []
        errors: list[RowIssue] = []
        warnings: list[RowIssue] = []
        staged_codes: dict[str, int] = {}
        total = 0

        for source in chain(lead, stream):
            if source.row_number < first_data_row or source.is_blank:
                continue
            total += 1
            if total > self._limits.max_rows:
                raise FileFormatError(
                    name, f"more than {self._limits.max_rows} data rows"
                )
            row_errors, row_warnings, accepted = self._reconcile_row(
                source, header, policy, resolve_drug, staged_codes,
            )
            errors.extend(row_errors)
            warnings.extend(row_warnings)
            if accepted is not None:
                staged_codes[accepted.drug_code.upper()] = accepted.row
                staged.append(accepted)

        return ImportPlan(
            filename=name,
            layout=layout,
            total_rows=total,
            staged=tuple(staged),
            errors=tuple(errors),
            warnings=tuple(warnings),
            history_labels=tuple(label for label, _ in header.history),
        )

    def _detect_layout(
        self, lead: list[SourceRow], name: str, fiscal_year: int
    ) -> tuple[SourceLayout, HeaderMap, int]:
        group_row = sscj_layout.GROUP_HEADER_ROW - 1
        if len(lead) > group_row and is_sscj_header(lead[group_row].values):
            if len(lead) < sscj_layout.SUB_HEADER_ROW:
                raise FileFormatError(name, "SSCJ header is incomplete (row 4 missing)")
            sub_header = lead[sscj_layout.SUB_HEADER_ROW - 1]
            labels = tuple(
                str(sub_header.cell(sscj_layout.HISTORY_GROUP.first_index - 1 + i)).strip()
                or str(year)
                for i, year in enumerate(sscj_layout.history_years(fiscal_year))
            )
            return SourceLayout.SSCJ, sscj_header_map(labels), sscj_layout.FIRST_DATA_ROW

        header = resolve_flat_header(lead[0].values, fiscal_year)
        missing = header.missing_required()
        if missing:
            raise FileFormatError(
                name, f"missing required column(s): {', '.join(missing)}"
            )
        return SourceLayout.FLAT, header, 2

    def _reconcile_row(
        self,
        source: SourceRow,
        header: HeaderMap,
        policy: CalculationPolicy,
        resolve_drug: DrugResolver,
        staged_codes: dict[str, int],
    ) -> tuple[list[RowIssue], list[RowIssue], StagedRow | None]:
        parsed, issues = parse_row(source, header)
        if parsed is None:
            return issues, [], None

        duplicate = validate_unique_code(parsed.drug_code, parsed.row, staged_codes)
        if duplicate is not None:
            return [duplicate], [], None

        facts = resolve_drug(parsed.drug_code)
        if facts is None:
            missing = ReferentialNotFoundError(parsed.drug_code)
            return [RowIssue(
                row=parsed.row,
                field="drug_code",
                message=str(missing),
                code=missing.code,
            )], [], None

        evaluation = recompute_derived(self._figures(parsed), policy)
        if not evaluation.is_valid:
            return [RowIssue.from_validation(parsed.row, v) for v in evaluation.violations], [], None

        warnings = [
            w for w in (
                price_deviation_warning(
                    parsed.row, parsed.unit_price, facts.unit_price,
                    self._limits.price_warning_percent,
                ),
                name_mismatch_warning(parsed.row, parsed.drug_name, facts.drug_name),
            )
            if w is not None
        ]
        staged = StagedRow(
            row=parsed.row,
            drug_id=facts.drug_id,
            drug_code=facts.drug_code,
            drug_name=facts.drug_name,
            package_size=facts.package_size,
            unit=facts.unit,
            figures=evaluation.figures,
            notes=parsed.notes,
            notes_supplied=parsed.notes_supplied,
            history_supplied=parsed.history_supplied,
        )
        return [], warnings, staged

    @staticmethod
    def _figures(parsed: ParsedRow) -> ItemFigures:
        """Raw figures from a parsed row; derived fields are left to the engine."""
        if parsed.budget_qty is None and parsed.fund_qty is None:
            budget, fund = parsed.requested_qty, Decimal("0")
        else:
            budget = parsed.budget_qty if parsed.budget_qty is not None else Decimal("0")
            fund = parsed.fund_qty if parsed.fund_qty is not None else Decimal("0")
        return ItemFigures(
            historical_usage=dict(parsed.historical_usage),
            estimated_usage=parsed.estimated_usage,
            current_stock=parsed.current_stock,
            unit_price=parsed.unit_price,
            requested_qty=parsed.requested_qty,
            budget_qty=budget,
            fund_qty=fund,
            q1_qty=parsed.q1_qty,
            q2_qty=parsed.q2_qty,
            q3_qty=parsed.q3_qty,
            q4_qty=parsed.q4_qty,
        )
