"""
Typed Exception Hierarchy for the Planning Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the planning engine (an HTTP layer, a batch job, a test) must be
able to tell a rejected precondition from a bad file from a storage outage
without reading message text.  Every error here therefore has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (request id, status, row, field, ...)

Example:
    try:
        service.add_item(request_id, fields, actor_id=actor)
    except NotEditableError as e:
        api_response(409, code=e.code, status=e.status)
    except InvariantViolationError as e:
        api_response(422, code=e.code, violations=e.violation_dicts())

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PlanningError (base)
    |
    +-- RequestError
    |   +-- BudgetRequestNotFoundError
    |   +-- NotEditableError
    |   +-- AlreadyInitializedError
    |
    +-- TransitionError
    |   +-- InvalidTransitionError
    |   +-- TransitionGuardError
    |
    +-- ItemError
    |   +-- ItemNotFoundError
    |   +-- DuplicateItemError
    |   +-- InvariantViolationError
    |   +-- BatchTooLargeError
    |
    +-- ReferentialNotFoundError
    |
    +-- FileFormatError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category    | Code                      | When Raised
------------|---------------------------|----------------------------------------
Request     | BUDGET_REQUEST_NOT_FOUND  | Request id does not exist
            | NOT_EDITABLE              | Mutation attempted while status != DRAFT
            | ALREADY_INITIALIZED       | initialize on a request that has items
------------|---------------------------|----------------------------------------
Transition  | INVALID_TRANSITION        | No transition for (status, action)
            | TRANSITION_GUARD_FAILED   | Transition exists but its guard failed
------------|---------------------------|----------------------------------------
Item        | ITEM_NOT_FOUND            | Item id not in the request
            | DUPLICATE_ITEM            | Drug already has a line in the request
            | INVARIANT_VIOLATION       | Split, funding or positivity check failed
            | BATCH_TOO_LARGE           | Batch update above the configured limit
------------|---------------------------|----------------------------------------
Reference   | REFERENTIAL_NOT_FOUND     | Drug code unknown to the drug master
------------|---------------------------|----------------------------------------
Import      | FILE_FORMAT_ERROR         | Wrong type, oversize, missing header

Storage failures are NOT wrapped.  SQLAlchemy errors reach the caller
unchanged after the owning transaction is rolled back; retry policy belongs
to whoever owns the database.

===============================================================================
HANDLING PATTERNS
===============================================================================

1. SINGLE-ITEM OPERATIONS FAIL FAST with exactly one of these exceptions.

2. BULK OPERATIONS DO NOT RAISE PER ROW.  Import rows that fail a referential
   or invariant check are recorded as RowIssue entries on the ImportReport;
   only whole-file problems (FileFormatError) and the DRAFT gate
   (NotEditableError) abort an import.

===============================================================================
"""

from typing import Any


class PlanningError(Exception):
    """
    Base exception for all planning engine errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "PLANNING_ERROR"


# Request-related exceptions


class RequestError(PlanningError):
    """Base exception for budget-request level errors."""

    code: str = "REQUEST_ERROR"


class BudgetRequestNotFoundError(RequestError):
    """Budget request with the given id was not found."""

    code: str = "BUDGET_REQUEST_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Budget request not found: {request_id}")


class NotEditableError(RequestError):
    """
    Mutation attempted on a request that is not in DRAFT.

    Never retried automatically; the caller must reopen the request first
    (or create a new one when it is FINANCE_APPROVED).
    """

    code: str = "NOT_EDITABLE"

    def __init__(self, request_id: str, status: str, operation: str):
        self.request_id = request_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Budget request {request_id} is {status}; "
            f"'{operation}' is only allowed in DRAFT"
        )


class AlreadyInitializedError(RequestError):
    """initialize called on a request that already has items."""

    code: str = "ALREADY_INITIALIZED"

    def __init__(self, request_id: str, item_count: int):
        self.request_id = request_id
        self.item_count = item_count
        super().__init__(
            f"Budget request {request_id} already has {item_count} item(s); "
            "use batch update or import instead"
        )


# Transition-related exceptions


class TransitionError(PlanningError):
    """Base exception for lifecycle transition errors."""

    code: str = "TRANSITION_ERROR"


class InvalidTransitionError(TransitionError):
    """No transition is defined for the action from the current status."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, request_id: str, status: str, action: str):
        self.request_id = request_id
        self.status = status
        self.action = action
        super().__init__(
            f"Cannot {action} budget request {request_id} from status {status}"
        )


class TransitionGuardError(TransitionError):
    """The transition exists but its guard condition is not satisfied."""

    code: str = "TRANSITION_GUARD_FAILED"

    def __init__(self, request_id: str, action: str, guard: str, reason: str):
        self.request_id = request_id
        self.action = action
        self.guard = guard
        self.reason = reason
        super().__init__(
            f"Cannot {action} budget request {request_id}: {reason}"
        )


# Item-related exceptions


class ItemError(PlanningError):
    """Base exception for line-item errors."""

    code: str = "ITEM_ERROR"


class ItemNotFoundError(ItemError):
    """Item with the given id does not exist in the request."""

    code: str = "ITEM_NOT_FOUND"

    def __init__(self, request_id: str, item_id: str):
        self.request_id = request_id
        self.item_id = item_id
        super().__init__(f"Item {item_id} not found in budget request {request_id}")


class DuplicateItemError(ItemError):
    """The drug already has a line item in this request."""

    code: str = "DUPLICATE_ITEM"

    def __init__(self, request_id: str, drug_code: str):
        self.request_id = request_id
        self.drug_code = drug_code
        super().__init__(
            f"Drug {drug_code} already has a line item in budget request {request_id}"
        )


class InvariantViolationError(ItemError):
    """
    Quarterly split, funding split or positivity check failed.

    Carries every violation found, not only the first one.
    """

    code: str = "INVARIANT_VIOLATION"

    def __init__(self, drug_code: str, violations: list[Any]):
        self.drug_code = drug_code
        self.violations = list(violations)
        summary = "; ".join(v.message for v in self.violations)
        super().__init__(f"Invalid item {drug_code}: {summary}")

    def violation_dicts(self) -> list[dict[str, Any]]:
        return [
            {"code": v.code, "field": v.field, "message": v.message}
            for v in self.violations
        ]


class BatchTooLargeError(ItemError):
    """Batch update carries more deltas than allowed in one unit of work."""

    code: str = "BATCH_TOO_LARGE"

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"Batch of {size} updates exceeds the limit of {limit}")


# Reference and file exceptions


class ReferentialNotFoundError(PlanningError):
    """Drug code could not be resolved against the drug master."""

    code: str = "REFERENTIAL_NOT_FOUND"

    def __init__(self, drug_code: str):
        self.drug_code = drug_code
        super().__init__(f"Drug code not found in drug master: {drug_code}")


class FileFormatError(PlanningError):
    """
    Import file rejected as a whole before any row is processed.

    Wrong file type, oversize file, missing required header, or more rows
    than the configured maximum.
    """

    code: str = "FILE_FORMAT_ERROR"

    def __init__(self, filename: str, reason: str):
        self.filename = filename
        self.reason = reason
        super().__init__(f"Cannot import {filename}: {reason}")
