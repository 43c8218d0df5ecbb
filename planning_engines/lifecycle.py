"""
planning_engines.lifecycle -- Pure evaluation of workflow transitions.

Responsibility:
    Given a Workflow definition, a current state, an action and the
    already-evaluated guard results, decide whether the transition may fire
    and which state it leads to.

Architecture position:
    Engines -- pure, zero I/O.  Guards that need the outside world (item
    checks, the reopen authority) are evaluated by the caller and passed in
    as booleans, so this module never touches a session or a collaborator.

Failure modes:
    - Never raises for a disallowed transition; returns a TransitionOutcome
      with ``allowed=False`` and the reason.  The service layer turns that
      into InvalidTransitionError or TransitionGuardError.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

from planning_kernel.domain.workflow import Transition, Workflow


class OutcomeKind(str, Enum):
    ALLOWED = "allowed"
    NO_TRANSITION = "no_transition"
    GUARD_FAILED = "guard_failed"


@dataclass(frozen=True)
class TransitionOutcome:
    kind: OutcomeKind
    from_state: str
    action: str
    transition: Transition | None = None
    failed_guard: str | None = None
    reason: str | None = None

    @property
    def allowed(self) -> bool:
        return self.kind == OutcomeKind.ALLOWED

    @property
    def to_state(self) -> str | None:
        return self.transition.to_state if self.transition else None


def evaluate_transition(
    workflow: Workflow,
    state: str,
    action: str,
    guard_results: Mapping[str, bool] | None = None,
) -> TransitionOutcome:
    """
    Pick the transition for ``action`` from ``state``.

    Guards missing from ``guard_results`` count as failed.  When several
    transitions match, the first whose guard passes wins.
    """
    guard_results = guard_results or {}
    candidates = workflow.transitions_for(state, action)
    if not candidates:
        reason = (
            f"{state} is a terminal state"
            if state in workflow.terminal_states
            else f"no '{action}' transition from {state}"
        )
        return TransitionOutcome(OutcomeKind.NO_TRANSITION, state, action, reason=reason)

    for transition in candidates:
        if transition.guard is None or guard_results.get(transition.guard.name, False):
            return TransitionOutcome(OutcomeKind.ALLOWED, state, action, transition=transition)

    # Every candidate is guarded and failed; report the first.
    failed = candidates[0]
    return TransitionOutcome(
        OutcomeKind.GUARD_FAILED,
        state,
        action,
        transition=failed,
        failed_guard=failed.guard.name,
        reason=failed.guard.description,
    )


def reachable_states(workflow: Workflow, state: str) -> frozenset[str]:
    """States one transition away from ``state``, ignoring guards."""
    return frozenset(t.to_state for t in workflow.transitions if t.from_state == state)
