"""
SQLAlchemy ORM persistence models for budget requests.

Responsibility
--------------
Persist ``BudgetRequest`` headers and their ``BudgetRequestItem`` lines.
Items are owned by exactly one request: deleting the request, or removing
an item from ``BudgetRequestModel.items``, deletes the row.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``BudgetRequestService``.
Inherits from ``TrackedBase`` (kernel db layer).

Invariants enforced
-------------------
* All quantity and money fields use ``Decimal`` (Numeric(38,9)) -- NEVER float.
* ``status`` stored as String(50) holding the ``RequestStatus`` value.
* One item per (request_id, drug_id), enforced by a unique constraint.
* ``request_code`` is unique across all requests.
* ``historical_usage`` is stored as an ordered JSON list of
  ``[label, "quantity"]`` pairs so year order and decimal digits survive.
"""

import json
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from planning_kernel.db.base import TrackedBase


def _dump_history(history) -> str:
    return json.dumps([[str(label), str(qty)] for label, qty in history.items()])


def _load_history(raw: str | None) -> dict[str, Decimal]:
    if not raw:
        return {}
    return {label: Decimal(qty) for label, qty in json.loads(raw)}


# ---------------------------------------------------------------------------
# BudgetRequestModel
# ---------------------------------------------------------------------------


class BudgetRequestModel(TrackedBase):
    """
    A drug budget request for one fiscal year.

    Maps to the ``BudgetRequest`` DTO in ``planning_modules.budget_request.models``.

    Guarantees:
        - ``status`` follows the lifecycle in ``workflows.BUDGET_REQUEST_WORKFLOW``.
        - ``allocations_created_at`` is set at most once.
    """

    __tablename__ = "budget_requests"

    __table_args__ = (
        UniqueConstraint("request_code", name="uq_budget_request_code"),
        Index("idx_budget_request_fiscal_year", "fiscal_year"),
        Index("idx_budget_request_status", "status"),
        Index("idx_budget_request_department", "department_id"),
    )

    request_code: Mapped[str] = mapped_column(String(50), nullable=False)
    fiscal_year: Mapped[int]
    department_id: Mapped[UUID | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="draft")
    justification: Mapped[str | None] = mapped_column(Text, nullable=True)
    total_requested_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    submitted_by: Mapped[UUID | None] = mapped_column(nullable=True)
    dept_reviewed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    dept_reviewed_by: Mapped[UUID | None] = mapped_column(nullable=True)
    dept_comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    finance_reviewed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    finance_reviewed_by: Mapped[UUID | None] = mapped_column(nullable=True)
    finance_comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejected_by: Mapped[UUID | None] = mapped_column(nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    reopened_at: Mapped[datetime | None] = mapped_column(nullable=True)
    reopened_by: Mapped[UUID | None] = mapped_column(nullable=True)
    allocations_created_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Relationships
    items: Mapped[list["BudgetRequestItemModel"]] = relationship(
        "BudgetRequestItemModel",
        back_populates="request",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="BudgetRequestItemModel.line_number",
    )

    def to_dto(self):
        from planning_modules.budget_request.models import BudgetRequest, RequestStatus

        return BudgetRequest(
            id=self.id,
            request_code=self.request_code,
            fiscal_year=self.fiscal_year,
            status=RequestStatus(self.status),
            department_id=self.department_id,
            justification=self.justification,
            total_requested_amount=self.total_requested_amount,
            submitted_at=self.submitted_at,
            submitted_by=self.submitted_by,
            dept_reviewed_at=self.dept_reviewed_at,
            dept_reviewed_by=self.dept_reviewed_by,
            dept_comments=self.dept_comments,
            finance_reviewed_at=self.finance_reviewed_at,
            finance_reviewed_by=self.finance_reviewed_by,
            finance_comments=self.finance_comments,
            rejected_at=self.rejected_at,
            rejected_by=self.rejected_by,
            rejection_reason=self.rejection_reason,
            reopened_at=self.reopened_at,
            reopened_by=self.reopened_by,
            allocations_created_at=self.allocations_created_at,
            created_by_id=self.created_by_id,
            updated_by_id=self.updated_by_id,
        )

    def __repr__(self) -> str:
        return f"<BudgetRequestModel {self.request_code} FY{self.fiscal_year} [{self.status}]>"


# ---------------------------------------------------------------------------
# BudgetRequestItemModel
# ---------------------------------------------------------------------------


class BudgetRequestItemModel(TrackedBase):
    """
    One drug line of a budget request.

    Maps to the ``BudgetRequestItem`` DTO.  ``drug_code``, ``drug_name``,
    ``package_size`` and ``unit`` are copies of the drug master taken when
    the line was created, not live references.
    """

    __tablename__ = "budget_request_items"

    __table_args__ = (
        UniqueConstraint("request_id", "drug_id", name="uq_budget_request_item_drug"),
        Index("idx_budget_request_item_request", "request_id"),
        Index("idx_budget_request_item_line", "request_id", "line_number"),
    )

    request_id: Mapped[UUID] = mapped_column(
        ForeignKey("budget_requests.id", ondelete="CASCADE"), nullable=False,
    )
    drug_id: Mapped[UUID] = mapped_column(nullable=False)
    drug_code: Mapped[str] = mapped_column(String(50), nullable=False)
    drug_name: Mapped[str] = mapped_column(String(500), nullable=False)
    package_size: Mapped[str | None] = mapped_column(String(100), nullable=True)
    unit: Mapped[str | None] = mapped_column(String(50), nullable=True)
    line_number: Mapped[int]

    historical_usage_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    avg_usage: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    estimated_usage: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    current_stock: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    estimated_purchase: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    unit_price: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    requested_qty: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    requested_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    budget_qty: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    fund_qty: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    q1_qty: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    q2_qty: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    q3_qty: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    q4_qty: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Parent relationship
    request: Mapped["BudgetRequestModel"] = relationship(
        "BudgetRequestModel",
        back_populates="items",
    )

    @property
    def historical_usage(self) -> dict[str, Decimal]:
        return _load_history(self.historical_usage_json)

    def apply_figures(self, figures) -> None:
        """Copy engine figures onto the row.  Identity fields are never touched."""
        self.historical_usage_json = _dump_history(figures.historical_usage)
        self.avg_usage = figures.avg_usage
        self.estimated_usage = figures.estimated_usage
        self.current_stock = figures.current_stock
        self.estimated_purchase = figures.estimated_purchase
        self.unit_price = figures.unit_price
        self.requested_qty = figures.requested_qty
        self.requested_amount = figures.requested_amount
        self.budget_qty = figures.budget_qty
        self.fund_qty = figures.fund_qty
        self.q1_qty = figures.q1_qty
        self.q2_qty = figures.q2_qty
        self.q3_qty = figures.q3_qty
        self.q4_qty = figures.q4_qty

    def to_dto(self):
        from planning_modules.budget_request.models import BudgetRequestItem

        return BudgetRequestItem(
            id=self.id,
            request_id=self.request_id,
            drug_id=self.drug_id,
            drug_code=self.drug_code,
            drug_name=self.drug_name,
            line_number=self.line_number,
            package_size=self.package_size,
            unit=self.unit,
            historical_usage=self.historical_usage,
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
            notes=self.notes,
        )

    def __repr__(self) -> str:
        return (
            f"<BudgetRequestItemModel #{self.line_number} {self.drug_code} "
            f"qty={self.requested_qty}>"
        )
