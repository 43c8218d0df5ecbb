"""
Source adapter protocol and row DTO.

Contract:
    SourceAdapter.read_rows() yields one SourceRow per physical row, in file
    order, without loading the whole file.

Architecture: planning_ingestion/adapters. File I/O only, no DB imports.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterator, Protocol, runtime_checkable

CellValue = str | int | Decimal


@dataclass(frozen=True)
class SourceRow:
    """One physical row: 1-based row number and positional cell values.

    Blank cells are "".  Numbers arrive as int or Decimal, never float.
    """

    row_number: int
    values: tuple[CellValue, ...]

    def cell(self, index: int) -> CellValue:
        """0-based cell access; cells past the end of the row are blank."""
        if index < len(self.values):
            return self.values[index]
        return ""

    @property
    def is_blank(self) -> bool:
        return all(v == "" for v in self.values)


@runtime_checkable
class SourceAdapter(Protocol):
    """Protocol for streaming rows out of a tabular source file."""

    def read_rows(self, source_path: Path, options: dict[str, Any]) -> Iterator[SourceRow]:
        """Yield one SourceRow per physical row. Streams."""
        ...


def normalize_cell(value: Any) -> CellValue:
    """Blank -> "", str stripped, integral floats -> int, other floats -> Decimal."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, float):
        if value == int(value):
            return int(value)
        return Decimal(str(value))
    if isinstance(value, (int, Decimal)):
        return value
    return str(value).strip()
