"""
Outside-world collaborators of the budget request service.

The service never reaches a drug catalogue, the allocation ledger or the
permission system directly.  It talks to these protocols, which the host
application implements and injects.

* DrugMaster       -- resolves drug codes and proposes planning candidates.
* AllocationSink   -- receives the approved plan, once per request.
* ReopenAuthority  -- decides whether a request under review may be reopened.

``StaticDrugMaster`` and the two reopen authorities are complete in-memory
implementations used for wiring and tests.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Protocol, runtime_checkable
from uuid import UUID

from planning_engines.item_calculation import DrugFacts
from planning_kernel.logging_config import get_logger
from planning_modules.budget_request.models import BudgetRequest, BudgetRequestItem

logger = get_logger("modules.budget_request.collaborators")


def allocation_key(request_id: UUID) -> str:
    """Idempotency key passed to the allocation sink for one request."""
    return f"budget-allocation:{request_id}"


@runtime_checkable
class DrugMaster(Protocol):
    def resolve(self, drug_code: str) -> DrugFacts | None:
        """Facts for a drug code, or None when the code is unknown."""
        ...

    def planning_candidates(
        self, fiscal_year: int, department_id: UUID | None,
    ) -> Iterable[DrugFacts]:
        """Drugs a new request for this year and department starts from."""
        ...


@runtime_checkable
class AllocationSink(Protocol):
    def create_allocations(
        self,
        request: BudgetRequest,
        items: Sequence[BudgetRequestItem],
        idempotency_key: str,
    ) -> None:
        """Record budget allocations for a finance-approved request.

        Raising aborts the approval; the request stays DEPT_APPROVED.  The
        key is the same on every attempt for one request: a sink that has
        already recorded it must do nothing, because a failed commit after
        a successful call leads to the call being repeated.
        """
        ...


@runtime_checkable
class ReopenAuthority(Protocol):
    def may_reopen(self, request: BudgetRequest, actor_id: UUID) -> bool:
        ...


# =============================================================================
# In-memory implementations
# =============================================================================


class StaticDrugMaster:
    """
    A fixed drug catalogue held in memory.

    Codes are matched case-insensitively.  ``planning_candidates`` returns
    every drug in code order, or only the drugs registered for the
    department when ``department_drugs`` is given.
    """

    def __init__(
        self,
        drugs: Iterable[DrugFacts] = (),
        department_drugs: dict[UUID, Iterable[str]] | None = None,
    ):
        self._by_code: dict[str, DrugFacts] = {}
        for facts in drugs:
            self.register(facts)
        self._department_drugs = {
            dept: frozenset(code.upper() for code in codes)
            for dept, codes in (department_drugs or {}).items()
        }

    def register(self, facts: DrugFacts) -> None:
        self._by_code[facts.drug_code.strip().upper()] = facts

    def resolve(self, drug_code: str) -> DrugFacts | None:
        return self._by_code.get(drug_code.strip().upper())

    def planning_candidates(
        self, fiscal_year: int, department_id: UUID | None,
    ) -> list[DrugFacts]:
        codes = sorted(self._by_code)
        if department_id is not None and department_id in self._department_drugs:
            allowed = self._department_drugs[department_id]
            codes = [code for code in codes if code in allowed]
        return [self._by_code[code] for code in codes]

    def __len__(self) -> int:
        return len(self._by_code)


class LoggingAllocationSink:
    """Default sink: logs each approved plan once per idempotency key."""

    def __init__(self) -> None:
        self._seen: set[str] = set()

    def create_allocations(
        self,
        request: BudgetRequest,
        items: Sequence[BudgetRequestItem],
        idempotency_key: str,
    ) -> None:
        if idempotency_key in self._seen:
            logger.info("budget_allocations_duplicate", extra={
                "request_id": str(request.id),
                "idempotency_key": idempotency_key,
            })
            return
        self._seen.add(idempotency_key)
        logger.info("budget_allocations_requested", extra={
            "idempotency_key": idempotency_key,
            "request_id": str(request.id),
            "request_code": request.request_code,
            "fiscal_year": request.fiscal_year,
            "item_count": len(items),
            "total_requested_amount": request.total_requested_amount,
        })


class DenyReopenAuthority:
    """Only rejected requests can be reopened."""

    def may_reopen(self, request: BudgetRequest, actor_id: UUID) -> bool:
        return False


class AllowReopenAuthority:
    def may_reopen(self, request: BudgetRequest, actor_id: UUID) -> bool:
        return True
