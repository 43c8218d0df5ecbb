"""
Budget Request Domain Models.

The nouns of drug budget planning: a request for one fiscal year and the
line items it owns.  DTOs are frozen; the ORM layer converts to and from
them so nothing above the service ever holds a live session object.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any
from uuid import UUID

from planning_engines.item_calculation import ZERO, ItemFigures, as_decimal
from planning_kernel.domain.dtos import ValidationError


class RequestStatus(Enum):
    """Budget request lifecycle states."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    DEPT_APPROVED = "dept_approved"
    FINANCE_APPROVED = "finance_approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class BudgetRequest:
    """A drug purchase plan for one fiscal year, optionally per department."""

    id: UUID
    request_code: str
    fiscal_year: int
    status: RequestStatus = RequestStatus.DRAFT
    department_id: UUID | None = None
    justification: str | None = None
    total_requested_amount: Decimal = ZERO
    submitted_at: datetime | None = None
    submitted_by: UUID | None = None
    dept_reviewed_at: datetime | None = None
    dept_reviewed_by: UUID | None = None
    dept_comments: str | None = None
    finance_reviewed_at: datetime | None = None
    finance_reviewed_by: UUID | None = None
    finance_comments: str | None = None
    rejected_at: datetime | None = None
    rejected_by: UUID | None = None
    rejection_reason: str | None = None
    reopened_at: datetime | None = None
    reopened_by: UUID | None = None
    allocations_created_at: datetime | None = None
    created_by_id: UUID | None = None
    updated_by_id: UUID | None = None

    @property
    def is_editable(self) -> bool:
        return self.status == RequestStatus.DRAFT


@dataclass(frozen=True)
class BudgetRequestItem:
    """One drug line of a budget request."""

    id: UUID
    request_id: UUID
    drug_id: UUID
    drug_code: str
    drug_name: str
    line_number: int
    package_size: str | None = None
    unit: str | None = None
    historical_usage: Mapping[str, Decimal] = field(default_factory=dict)
    avg_usage: Decimal = ZERO
    estimated_usage: Decimal = ZERO
    current_stock: Decimal = ZERO
    estimated_purchase: Decimal = ZERO
    unit_price: Decimal = ZERO
    requested_qty: Decimal = ZERO
    requested_amount: Decimal = ZERO
    budget_qty: Decimal = ZERO
    fund_qty: Decimal = ZERO
    q1_qty: Decimal = ZERO
    q2_qty: Decimal = ZERO
    q3_qty: Decimal = ZERO
    q4_qty: Decimal = ZERO
    notes: str | None = None

    def figures(self) -> ItemFigures:
        """The numeric state of this item, as the calculation engine sees it."""
        return ItemFigures(
            historical_usage=dict(self.historical_usage),
            avg_usage=self.avg_usage,
            estimated_usage=self.estimated_usage,
            current_stock=self.current_stock,
            estimated_purchase=self.estimated_purchase,
            unit_price=self.unit_price,
            requested_qty=self.requested_qty,
            requested_amount=self.requested_amount,
            budget_qty=self.budget_qty,
            fund_qty=self.fund_qty,
            q1_qty=self.q1_qty,
            q2_qty=self.q2_qty,
            q3_qty=self.q3_qty,
            q4_qty=self.q4_qty,
        )


# =============================================================================
# Partial updates
# =============================================================================

# Editable numeric fields; everything else on ItemFigures is derived.
PATCHABLE_QUANTITIES: frozenset[str] = frozenset({
    "estimated_usage",
    "current_stock",
    "unit_price",
    "requested_qty",
    "budget_qty",
    "fund_qty",
    "q1_qty",
    "q2_qty",
    "q3_qty",
    "q4_qty",
})
PATCHABLE_FIELDS: frozenset[str] = PATCHABLE_QUANTITIES | {
    "historical_usage",
    "notes",
    "line_number",
}
IMMUTABLE_FIELDS: frozenset[str] = frozenset({
    "id", "request_id", "drug_id", "drug_code", "drug_name", "package_size", "unit",
})
DERIVED_FIELDS: frozenset[str] = frozenset({
    "avg_usage", "estimated_purchase", "requested_amount",
})


@dataclass(frozen=True)
class ItemPatch:
    """
    Explicit partial update of one item.

    A field is either present (its key is in ``changes``) or absent.  A
    present ``notes`` of None clears the notes; absent fields are left
    alone.  Identity and derived fields cannot be patched.

    Usage:
        patch = ItemPatch.of(q1_qty="100", q4_qty="50.5")
        if patch.has("notes"):
            ...
    """

    changes: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        cleaned: dict[str, Any] = {}
        for name, value in self.changes.items():
            if name in IMMUTABLE_FIELDS:
                raise ValueError(f"{name} cannot be changed once the item exists")
            if name in DERIVED_FIELDS:
                raise ValueError(f"{name} is derived and cannot be set directly")
            if name not in PATCHABLE_FIELDS:
                raise ValueError(f"Unknown item field: {name}")
            cleaned[name] = self._coerce(name, value)
        object.__setattr__(self, "changes", MappingProxyType(cleaned))

    @staticmethod
    def _coerce(name: str, value: Any) -> Any:
        if name in PATCHABLE_QUANTITIES:
            if value is None:
                raise ValueError(f"{name} cannot be cleared")
            return as_decimal(value)
        if name == "historical_usage":
            if value is None:
                return {}
            return {str(label): as_decimal(qty) for label, qty in value.items()}
        if name == "line_number":
            if value is None or int(value) < 1:
                raise ValueError("line_number must be a positive integer")
            return int(value)
        return value

    @classmethod
    def of(cls, **changes: Any) -> ItemPatch:
        return cls(changes)

    @property
    def fields(self) -> frozenset[str]:
        return frozenset(self.changes)

    def has(self, name: str) -> bool:
        return name in self.changes

    def get(self, name: str, default: Any = None) -> Any:
        return self.changes.get(name, default)

    def apply(self, figures: ItemFigures) -> ItemFigures:
        """Present numeric fields replace the figures'; derived ones are left stale."""
        updates = {
            name: value for name, value in self.changes.items()
            if name in PATCHABLE_QUANTITIES or name == "historical_usage"
        }
        return replace(figures, **updates) if updates else figures


@dataclass(frozen=True)
class ItemDelta:
    """One entry of a batch update: which item, and what to change."""

    item_id: UUID
    patch: ItemPatch


@dataclass(frozen=True)
class ItemUpdateFailure:
    item_id: UUID
    code: str
    message: str
    field: str | None = None


@dataclass(frozen=True)
class BatchUpdateResult:
    """
    Outcome of a batch update.

    All-or-nothing: either every delta was written (``failed == 0``) or
    none was and ``errors`` says why.
    """

    updated: int
    failed: int
    errors: tuple[ItemUpdateFailure, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.failed == 0


@dataclass(frozen=True)
class SubmissionChecklist:
    """
    Pre-submission checks of a request.

    ``request_errors`` concern the request itself (justification, no
    items); ``item_errors`` maps drug code to that item's violations.
    """

    request_errors: tuple[ValidationError, ...] = ()
    item_errors: Mapping[str, list[ValidationError]] = field(default_factory=dict)

    @property
    def ready(self) -> bool:
        return not self.request_errors and not self.item_errors
