"""
planning_ingestion.domain.types -- Pure frozen dataclasses for bulk import.

ZERO I/O.  Imports only from planning_kernel.domain and planning_engines.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import UUID

from planning_engines.item_calculation import ItemFigures
from planning_kernel.domain.dtos import ValidationError


class ImportMode(str, Enum):
    """How accepted rows are applied to the request's existing items."""

    REPLACE_ALL = "replace_all"  # Delete every existing item, then insert
    MERGE = "merge"  # Update matching drugs, insert new ones, leave the rest


class IssueSeverity(str, Enum):
    ERROR = "error"  # Row rejected
    WARNING = "warning"  # Row accepted, but worth a look


class SourceLayout(str, Enum):
    FLAT = "flat"  # Import contract: header on row 1
    SSCJ = "sscj"  # A workbook produced by the SSCJ export


@dataclass(frozen=True)
class RowIssue:
    """One diagnostic for one source row.  ``row`` is the 1-based file row."""

    row: int
    field: str | None
    message: str
    code: str
    severity: IssueSeverity = IssueSeverity.ERROR

    @classmethod
    def from_validation(
        cls,
        row: int,
        error: ValidationError,
        severity: IssueSeverity = IssueSeverity.ERROR,
    ) -> RowIssue:
        return cls(row=row, field=error.field, message=error.message, code=error.code,
                   severity=severity)

    def to_dict(self) -> dict[str, Any]:
        return {"row": self.row, "field": self.field, "message": self.message}


@dataclass(frozen=True)
class StagedRow:
    """A validated source row, ready to be upserted by (request, drug)."""

    row: int
    drug_id: UUID
    drug_code: str
    drug_name: str
    package_size: str | None
    unit: str | None
    figures: ItemFigures
    notes: str | None = None
    # False when the source has no notes column / history block at all;
    # a merge then keeps the existing values.
    notes_supplied: bool = True
    history_supplied: bool = True


@dataclass(frozen=True)
class ImportPlan:
    """
    Accept/reject decision for every row of a file, computed before any write.

    ``staged`` holds accepted rows in file order; rejected rows only appear
    in ``errors``.
    """

    filename: str
    layout: SourceLayout
    total_rows: int
    staged: tuple[StagedRow, ...] = ()
    errors: tuple[RowIssue, ...] = ()
    warnings: tuple[RowIssue, ...] = ()
    history_labels: tuple[str, ...] = ()

    @property
    def rejected_rows(self) -> int:
        return len({issue.row for issue in self.errors})


@dataclass(frozen=True)
class ImportReport:
    """Outcome of an import: counts plus the ordered diagnostics."""

    mode: ImportMode
    imported: int
    updated: int
    skipped: int
    total_rows: int
    errors: tuple[RowIssue, ...] = ()
    warnings: tuple[RowIssue, ...] = ()
    deleted: int = 0
    dry_run: bool = False
    layout: SourceLayout = SourceLayout.FLAT

    @property
    def nothing_imported(self) -> bool:
        return self.imported == 0 and self.updated == 0

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "imported": self.imported,
            "updated": self.updated,
            "skipped": self.skipped,
            "deleted": self.deleted,
            "total_rows": self.total_rows,
            "dry_run": self.dry_run,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
        }
