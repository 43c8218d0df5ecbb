"""
Blank import templates in the flat column contract.

A template carries the header row for the request's fiscal year and one
example row, so planners start from a file the reconciler accepts.
"""

from __future__ import annotations

import csv
import io
from enum import Enum

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font

from planning_ingestion.domain.columns import REQUIRED_KEYS, flat_headers
from planning_kernel.logging_config import get_logger

logger = get_logger("ingestion.templates")


class TemplateFormat(str, Enum):
    XLSX = "xlsx"
    CSV = "csv"


_EXAMPLE_ROW = (
    "PARA500", "Paracetamol 500 mg tab", "tab",
    "4200", "4400", "4527",
    "4594.45", "851", "0.45", "3743.45",
    "935.86", "935.86", "935.86", "935.87",
    "example row, delete before import",
    "3743.45", "0",
)


class ImportTemplateWriter:
    """Writes the flat import template as xlsx or CSV bytes."""

    def __init__(self, csv_delimiter: str = ","):
        self._delimiter = csv_delimiter

    def render(self, fiscal_year: int, fmt: TemplateFormat = TemplateFormat.XLSX) -> bytes:
        headers = flat_headers(fiscal_year)
        if fmt == TemplateFormat.CSV:
            content = self._render_csv(headers)
        else:
            content = self._render_xlsx(headers)
        logger.info("import_template_rendered", extra={
            "fiscal_year": fiscal_year,
            "format": fmt.value,
            "columns": len(headers),
        })
        return content

    def _render_csv(self, headers: tuple[str, ...]) -> bytes:
        buffer = io.StringIO()
        writer = csv.writer(buffer, delimiter=self._delimiter)
        writer.writerow(headers)
        writer.writerow(_EXAMPLE_ROW)
        # BOM so spreadsheet tools open Thai text as UTF-8
        return buffer.getvalue().encode("utf-8-sig")

    def _render_xlsx(self, headers: tuple[str, ...]) -> bytes:
        wb = Workbook()
        ws = wb.active
        ws.title = "import"
        ws.append(list(headers))
        bold = Font(bold=True)
        required = Font(bold=True, color="C00000")
        for cell in ws[1]:
            cell.font = required if cell.value in REQUIRED_KEYS else bold
            cell.alignment = Alignment(horizontal="center")
        ws.append(list(_EXAMPLE_ROW))
        ws.freeze_panes = "A2"
        for index in range(1, len(headers) + 1):
            ws.column_dimensions[ws.cell(row=1, column=index).column_letter].width = 16
        buffer = io.BytesIO()
        wb.save(buffer)
        return buffer.getvalue()
