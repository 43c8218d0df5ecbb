"""
Budget Request Module (``planning_modules.budget_request``).

Responsibility
--------------
Hospital drug purchase planning for one fiscal year: a request owns one
line per drug with usage history, estimates, stock, the requested quantity
and its quarterly and funding-source splits.  Requests move through
DRAFT -> SUBMITTED -> DEPT_APPROVED -> FINANCE_APPROVED, with REJECTED and
reopen paths back to DRAFT.

Architecture position
---------------------
**Modules layer** -- DTOs, ORM, workflow and ``BudgetRequestService``.
Calculations are delegated to ``planning_engines``; bulk file parsing to
``planning_ingestion``; rendering to ``planning_modules.reporting``.

Invariants enforced
-------------------
* Only DRAFT requests are editable or deletable.
* Submission needs a justification of the configured minimum length.
* Quarterly split and funding split each equal requested_qty within 0.01.
* One item per drug per request.
* Finance approval creates allocations exactly once.

Failure modes
-------------
* Typed ``PlanningError`` subclasses from ``planning_kernel.exceptions``;
  see ``BudgetRequestService`` for which operation raises which.
"""

from planning_modules.budget_request.collaborators import (
    AllocationSink,
    AllowReopenAuthority,
    DenyReopenAuthority,
    DrugMaster,
    LoggingAllocationSink,
    ReopenAuthority,
    StaticDrugMaster,
    allocation_key,
)
from planning_modules.budget_request.models import (
    BatchUpdateResult,
    BudgetRequest,
    BudgetRequestItem,
    ItemDelta,
    ItemPatch,
    ItemUpdateFailure,
    RequestStatus,
    SubmissionChecklist,
)
from planning_modules.budget_request.service import BudgetRequestService
from planning_modules.budget_request.workflows import BUDGET_REQUEST_WORKFLOW, is_editable

__all__ = [
    "AllocationSink",
    "AllowReopenAuthority",
    "BUDGET_REQUEST_WORKFLOW",
    "BatchUpdateResult",
    "BudgetRequest",
    "BudgetRequestItem",
    "BudgetRequestService",
    "DenyReopenAuthority",
    "DrugMaster",
    "ItemDelta",
    "ItemPatch",
    "ItemUpdateFailure",
    "LoggingAllocationSink",
    "ReopenAuthority",
    "RequestStatus",
    "StaticDrugMaster",
    "SubmissionChecklist",
    "allocation_key",
    "is_editable",
]
