"""
SSCJ report rendering.

Responsibility
--------------
Render a budget request and its items as the fixed-layout SSCJ workbook
that downstream regulatory tooling reads by cell position, or as a flat CSV
in the import column contract.  Rendering is pure: DTOs in, bytes out.

Architecture position
---------------------
**Modules layer** -- reporting.  Geometry comes from
``planning_kernel.domain.sscj_layout`` so the bulk reconciler reads back
exactly what is written here.

Layout (SSCJ)
-------------
* Row 1: title, merged A:Z, bold and centred.
* Row 2: grand-total line, merged A:Z.
* Rows 3-4: two-level header.  Single columns merge vertically; history
  and every quantity/value pair merge horizontally on row 3.
* Row 5+: one row per item in ``line_number`` order.  Values are
  quantity x unit price, rounded half-up to satang.
"""

from __future__ import annotations

import csv
import io
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import TYPE_CHECKING

from openpyxl import Workbook
from openpyxl.cell import WriteOnlyCell
from openpyxl.styles import Alignment, Border, Font, Side

from planning_config.schema import ExportSettings
from planning_ingestion.domain.columns import flat_headers
from planning_kernel.domain import sscj_layout
from planning_kernel.domain.sscj_layout import CellKind
from planning_kernel.logging_config import get_logger

if TYPE_CHECKING:
    from planning_modules.budget_request.models import BudgetRequest, BudgetRequestItem

logger = get_logger("modules.reporting.sscj_export")

MONEY_QUANTUM = Decimal("0.01")

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
CSV_MEDIA_TYPE = "text/csv"

_THIN = Side(style="thin")
_BORDER = Border(left=_THIN, right=_THIN, top=_THIN, bottom=_THIN)
_BOLD = Font(bold=True)
_TITLE_FONT = Font(bold=True, size=14)
_CENTER = Alignment(horizontal="center", vertical="center", wrap_text=True)

_COLUMN_WIDTHS = {1: 6, 2: 14, 3: 40, 4: 12, 5: 10}
_DEFAULT_WIDTH = 13


class ExportFormat(str, Enum):
    SSCJ_XLSX = "sscj_xlsx"
    FLAT_CSV = "flat_csv"

    @property
    def extension(self) -> str:
        return "xlsx" if self is ExportFormat.SSCJ_XLSX else "csv"

    @property
    def media_type(self) -> str:
        return XLSX_MEDIA_TYPE if self is ExportFormat.SSCJ_XLSX else CSV_MEDIA_TYPE


@dataclass(frozen=True)
class ExportedReport:
    filename: str
    content: bytes
    media_type: str


def export_filename(label: str, fiscal_year: int, request_code: str, extension: str) -> str:
    return f"{label}_{fiscal_year}_{request_code}.{extension}"


def money(quantity: Decimal, unit_price: Decimal) -> Decimal:
    return (quantity * unit_price).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def history_for_years(
    historical_usage: Mapping[str, Decimal], years: Sequence[int],
) -> list[Decimal | None]:
    """
    The usage shown under each report year.

    Looked up by year label when the item carries every one of them;
    otherwise the most recent entries by position, right-aligned so the
    latest year always sits in the last column.
    """
    labels = [str(year) for year in years]
    if all(label in historical_usage for label in labels):
        return [historical_usage[label] for label in labels]
    recent = list(historical_usage.values())[-len(years):]
    return [None] * (len(years) - len(recent)) + recent


def _plain(value: Decimal | None) -> str:
    """Decimal without exponent or trailing zeros, for CSV cells."""
    if value is None:
        return ""
    normalized = value.normalize()
    return format(normalized, "f")


# =============================================================================
# SSCJ workbook
# =============================================================================


class SscjExportFormatter:
    """Streams the SSCJ workbook with openpyxl write-only mode."""

    def __init__(self, settings: ExportSettings | None = None):
        self._settings = settings or ExportSettings()

    def render(self, request: BudgetRequest, items: Sequence[BudgetRequestItem]) -> bytes:
        ordered = sorted(items, key=lambda i: i.line_number)
        years = sscj_layout.history_years(request.fiscal_year)

        wb = Workbook(write_only=True)
        ws = wb.create_sheet(title=self._settings.file_label[:31] or "SSCJ")
        for column in sscj_layout.COLUMNS:
            ws.column_dimensions[column.letter].width = _COLUMN_WIDTHS.get(
                column.index, _DEFAULT_WIDTH,
            )

        grand_total = sum(
            (money(item.requested_qty, item.unit_price) for item in ordered), Decimal("0"),
        )
        ws.append([self._banner(ws, self._title(request), _TITLE_FONT)])
        ws.append([self._banner(ws, self._total_line(grand_total, len(ordered)), _BOLD)])
        ws.append(self._group_header(ws))
        ws.append(self._sub_header(ws, years))
        for seq, item in enumerate(ordered, start=1):
            ws.append(self._data_row(ws, seq, item, years))

        for span in self._merges():
            ws.merged_cells.add(span)

        buffer = io.BytesIO()
        wb.save(buffer)
        return buffer.getvalue()

    # -- header rows -------------------------------------------------------

    def _title(self, request: BudgetRequest) -> str:
        return self._settings.title_template.format(
            fiscal_year=request.fiscal_year, request_code=request.request_code,
        )

    def _total_line(self, total: Decimal, item_count: int) -> str:
        return self._settings.total_template.format(
            total=f"{total:,.2f}", item_count=item_count,
        )

    @staticmethod
    def _banner(ws, text: str, font: Font) -> WriteOnlyCell:
        cell = WriteOnlyCell(ws, value=text)
        cell.font = font
        cell.alignment = _CENTER
        return cell

    @staticmethod
    def _header_cell(ws, value: str | None) -> WriteOnlyCell:
        cell = WriteOnlyCell(ws, value=value or None)
        cell.font = _BOLD
        cell.alignment = _CENTER
        cell.border = _BORDER
        return cell

    def _group_header(self, ws) -> list[WriteOnlyCell]:
        groups = {
            g.first_index: g.header
            for g in (sscj_layout.HISTORY_GROUP,
                      *sscj_layout.value_groups(self._settings.group_labels))
        }
        row = []
        for column in sscj_layout.COLUMNS:
            if column.group is None:
                row.append(self._header_cell(ws, column.header))
            else:
                row.append(self._header_cell(ws, groups.get(column.index)))
        return row

    def _sub_header(self, ws, years: Sequence[int]) -> list[WriteOnlyCell]:
        year_labels = iter(str(year) for year in years)
        row = []
        for column in sscj_layout.COLUMNS:
            if column.group is None:
                row.append(self._header_cell(ws, None))
            elif column.group == sscj_layout.HISTORY_GROUP.key:
                row.append(self._header_cell(ws, next(year_labels)))
            else:
                row.append(self._header_cell(ws, column.header))
        return row

    @staticmethod
    def _merges() -> list[str]:
        spans = [
            sscj_layout.full_width_span(sscj_layout.TITLE_ROW),
            sscj_layout.full_width_span(sscj_layout.TOTAL_ROW),
        ]
        for column in sscj_layout.single_columns():
            spans.append(
                f"{column.letter}{sscj_layout.GROUP_HEADER_ROW}:"
                f"{column.letter}{sscj_layout.SUB_HEADER_ROW}"
            )
        spans.append(sscj_layout.HISTORY_GROUP.span)
        spans.extend(group.span for group in sscj_layout.value_groups())
        return spans

    # -- data rows ---------------------------------------------------------

    def _data_row(
        self, ws, seq: int, item: BudgetRequestItem, years: Sequence[int],
    ) -> list[WriteOnlyCell]:
        history = history_for_years(item.historical_usage, years)
        row = []
        for column in sscj_layout.COLUMNS:
            if column.kind == CellKind.SEQ:
                value = seq
            elif column.group == sscj_layout.HISTORY_GROUP.key:
                value = history[column.index - sscj_layout.HISTORY_GROUP.first_index]
            elif column.kind == CellKind.MONEY and column.source != "unit_price":
                value = money(getattr(item, column.source), item.unit_price)
            else:
                value = getattr(item, column.source)
            cell = WriteOnlyCell(ws, value=value)
            cell.border = _BORDER
            if column.kind == CellKind.QTY:
                cell.number_format = sscj_layout.QTY_FORMAT
            elif column.kind == CellKind.MONEY:
                cell.number_format = sscj_layout.MONEY_FORMAT
            elif column.kind == CellKind.SEQ:
                cell.alignment = Alignment(horizontal="center")
            row.append(cell)
        return row


# =============================================================================
# Flat CSV
# =============================================================================


class FlatCsvExportFormatter:
    """The flat import contract as CSV, including the budget/fund columns."""

    def __init__(self, delimiter: str = ","):
        self._delimiter = delimiter

    def render(self, request: BudgetRequest, items: Sequence[BudgetRequestItem]) -> bytes:
        years = sscj_layout.history_years(request.fiscal_year)
        buffer = io.StringIO()
        writer = csv.writer(buffer, delimiter=self._delimiter)
        writer.writerow(flat_headers(request.fiscal_year))
        for item in sorted(items, key=lambda i: i.line_number):
            history = history_for_years(item.historical_usage, years)
            writer.writerow([
                item.drug_code,
                item.drug_name,
                item.unit or "",
                *(_plain(h) for h in history),
                _plain(item.estimated_usage),
                _plain(item.current_stock),
                _plain(item.unit_price),
                _plain(item.requested_qty),
                _plain(item.q1_qty),
                _plain(item.q2_qty),
                _plain(item.q3_qty),
                _plain(item.q4_qty),
                item.notes or "",
                _plain(item.budget_qty),
                _plain(item.fund_qty),
            ])
        return buffer.getvalue().encode("utf-8-sig")


def render_report(
    request: BudgetRequest,
    items: Sequence[BudgetRequestItem],
    fmt: ExportFormat,
    settings: ExportSettings,
    csv_delimiter: str = ",",
) -> ExportedReport:
    """Render ``request`` in ``fmt`` and name the file."""
    if fmt is ExportFormat.SSCJ_XLSX:
        content = SscjExportFormatter(settings).render(request, items)
    else:
        content = FlatCsvExportFormatter(csv_delimiter).render(request, items)
    filename = export_filename(
        settings.file_label, request.fiscal_year, request.request_code, fmt.extension,
    )
    logger.info("report_rendered", extra={
        "request_id": str(request.id),
        "export_format": fmt.value,
        "export_filename": filename,
        "item_count": len(items),
        "size_bytes": len(content),
    })
    return ExportedReport(filename=filename, content=content, media_type=fmt.media_type)
