"""Source adapters for bulk item import (file I/O only, no DB)."""

from planning_ingestion.adapters.base import SourceAdapter, SourceRow
from planning_ingestion.adapters.csv_adapter import CsvSourceAdapter
from planning_ingestion.adapters.xlsx_adapter import XlsxSourceAdapter

__all__ = [
    "SourceAdapter",
    "SourceRow",
    "CsvSourceAdapter",
    "XlsxSourceAdapter",
]
