"""
Pure domain layer.

Immutable value objects with no ORM, database or I/O dependencies.
"""

from planning_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from planning_kernel.domain.dtos import ValidationError, ValidationResult
from planning_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "ValidationError",
    "ValidationResult",
    "Guard",
    "Transition",
    "Workflow",
]
