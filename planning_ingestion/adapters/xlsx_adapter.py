"""
XLSX source adapter.

Opens the workbook in openpyxl read-only mode and iterates cell values, so
memory stays flat regardless of row count.

source_options:
  sheet: 0-based sheet index (int) or sheet name (str). Default: active sheet.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterator

import openpyxl

from planning_ingestion.adapters.base import SourceRow, normalize_cell


class XlsxSourceAdapter:
    """Read .xlsx files one row at a time."""

    def read_rows(self, source_path: Path, options: dict[str, Any]) -> Iterator[SourceRow]:
        wb = openpyxl.load_workbook(source_path, read_only=True, data_only=True)
        try:
            sheet = self._get_sheet(wb, options)
            for row_number, row in enumerate(sheet.iter_rows(values_only=True), start=1):
                yield SourceRow(row_number, tuple(normalize_cell(v) for v in row))
        finally:
            wb.close()

    def _get_sheet(self, wb: Any, options: dict[str, Any]) -> Any:
        sheet_ref = options.get("sheet")
        if sheet_ref is None:
            return wb.active
        if isinstance(sheet_ref, int):
            return wb.worksheets[sheet_ref]
        return wb[sheet_ref]
