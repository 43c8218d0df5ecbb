"""
Delimited-text source adapter.

Options understood (all optional):

``encoding``   default ``utf-8``; any UTF-8 spelling is read as ``utf-8-sig``
               so a spreadsheet-saved byte-order mark never leaks into the
               first header cell.
``delimiter``  default ``,``.
``quoting``    ``minimal`` (default), ``all``, ``nonnumeric`` or ``none``.
"""

from __future__ import annotations

import csv
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator

from planning_ingestion.adapters.base import SourceRow, normalize_cell

_QUOTING_MODES = {
    "minimal": csv.QUOTE_MINIMAL,
    "all": csv.QUOTE_ALL,
    "nonnumeric": csv.QUOTE_NONNUMERIC,
    "none": csv.QUOTE_NONE,
}


@dataclass(frozen=True)
class _CsvOptions:
    encoding: str
    delimiter: str
    quoting: int

    @classmethod
    def from_options(cls, options: dict[str, Any]) -> _CsvOptions:
        encoding = str(options.get("encoding") or "utf-8")
        if encoding.lower().replace("_", "-") in ("utf-8", "utf8"):
            encoding = "utf-8-sig"
        quoting = options.get("quoting", "minimal")
        if not isinstance(quoting, int):
            quoting = _QUOTING_MODES.get(str(quoting).lower(), csv.QUOTE_MINIMAL)
        return cls(encoding, str(options.get("delimiter") or ","), quoting)


class CsvSourceAdapter:
    """Streams a delimited file row by row; rows are numbered from 1."""

    def read_rows(self, source_path: Path, options: dict[str, Any]) -> Iterator[SourceRow]:
        opts = _CsvOptions.from_options(options)
        with source_path.open("r", encoding=opts.encoding, newline="") as handle:
            reader = csv.reader(handle, delimiter=opts.delimiter, quoting=opts.quoting)
            for number, cells in enumerate(reader, start=1):
                yield SourceRow(number, tuple(normalize_cell(cell) for cell in cells))
