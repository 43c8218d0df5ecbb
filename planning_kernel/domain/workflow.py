"""
Canonical workflow types (``planning_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for lifecycle state machines.  A Workflow declares its
states, transitions and guards; ``planning_engines.lifecycle`` evaluates it.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Guard:
    """A named condition that must hold before a transition fires.

    Descriptive only: the caller supplies the evaluated guard results.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A legal state transition.

    ``emits_allocation=True`` marks the transition whose completion hands the
    approved plan to the budget allocation collaborator.
    """
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    emits_allocation: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state!r} "
                "is not a declared state"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.action} "
                    f"{t.from_state}->{t.to_state} uses an undeclared state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state {t.from_state!r} "
                    f"has outgoing transition {t.action}"
                )

    def transitions_for(self, state: str, action: str) -> tuple[Transition, ...]:
        """All transitions for ``action`` leaving ``state``, in declaration order."""
        return tuple(
            t for t in self.transitions
            if t.from_state == state and t.action == action
        )

    def actions_from(self, state: str) -> tuple[str, ...]:
        seen: list[str] = []
        for t in self.transitions:
            if t.from_state == state and t.action not in seen:
                seen.append(t.action)
        return tuple(seen)
