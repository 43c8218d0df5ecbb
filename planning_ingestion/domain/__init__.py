"""Pure import domain: column contract, row parsing, report types."""

from planning_ingestion.domain.columns import (
    HeaderMap,
    flat_headers,
    normalize_legacy_row,
    resolve_flat_header,
)
from planning_ingestion.domain.types import (
    ImportMode,
    ImportPlan,
    ImportReport,
    IssueSeverity,
    RowIssue,
    SourceLayout,
    StagedRow,
)

__all__ = [
    "HeaderMap",
    "flat_headers",
    "normalize_legacy_row",
    "resolve_flat_header",
    "ImportMode",
    "ImportPlan",
    "ImportReport",
    "IssueSeverity",
    "RowIssue",
    "SourceLayout",
    "StagedRow",
]
