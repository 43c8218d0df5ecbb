"""Budget Request Workflows.

State machine for the budget request lifecycle.
"""

from planning_kernel.domain.workflow import Guard, Transition, Workflow
from planning_kernel.logging_config import get_logger
from planning_modules.budget_request.models import RequestStatus

logger = get_logger("modules.budget_request.workflows")


SUBMISSION_CHECKLIST = Guard(
    "submission_checklist",
    "Request must have at least one item and every item must pass validation",
)
DEPARTMENT_ASSIGNED = Guard(
    "department_assigned", "Request must belong to a department before department approval",
)
REASON_GIVEN = Guard("reason_given", "A rejection reason is required")
REOPEN_AUTHORIZED = Guard(
    "reopen_authorized", "Reopening a request under review requires authorization",
)

DRAFT = RequestStatus.DRAFT.value
SUBMITTED = RequestStatus.SUBMITTED.value
DEPT_APPROVED = RequestStatus.DEPT_APPROVED.value
FINANCE_APPROVED = RequestStatus.FINANCE_APPROVED.value
REJECTED = RequestStatus.REJECTED.value


BUDGET_REQUEST_WORKFLOW = Workflow(
    name="budget_request",
    description="Drug budget request lifecycle",
    initial_state=DRAFT,
    states=(DRAFT, SUBMITTED, DEPT_APPROVED, FINANCE_APPROVED, REJECTED),
    transitions=(
        Transition(DRAFT, SUBMITTED, action="submit", guard=SUBMISSION_CHECKLIST),
        Transition(SUBMITTED, DEPT_APPROVED, action="approve_dept", guard=DEPARTMENT_ASSIGNED),
        Transition(DEPT_APPROVED, FINANCE_APPROVED, action="approve_finance", emits_allocation=True),
        Transition(SUBMITTED, REJECTED, action="reject", guard=REASON_GIVEN),
        Transition(DEPT_APPROVED, REJECTED, action="reject", guard=REASON_GIVEN),
        Transition(REJECTED, DRAFT, action="reopen"),
        Transition(SUBMITTED, DRAFT, action="reopen", guard=REOPEN_AUTHORIZED),
        Transition(DEPT_APPROVED, DRAFT, action="reopen", guard=REOPEN_AUTHORIZED),
    ),
    terminal_states=(FINANCE_APPROVED,),
)

# Items and request-level fields may only change here.
EDITABLE_STATES: frozenset[str] = frozenset({DRAFT})


def is_editable(status: RequestStatus | str) -> bool:
    value = status.value if isinstance(status, RequestStatus) else status
    return value in EDITABLE_STATES


logger.info("budget_request_workflow_registered", extra={
    "workflow_name": BUDGET_REQUEST_WORKFLOW.name,
    "state_count": len(BUDGET_REQUEST_WORKFLOW.states),
    "transition_count": len(BUDGET_REQUEST_WORKFLOW.transitions),
})
