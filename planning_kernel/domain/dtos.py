"""
Validation value objects shared by engines, ingestion and services.

ValidationError is the non-raising representation of a broken business rule:
the Item Calculation Engine returns them, the reconciler turns them into row
issues, and the service wraps them in InvariantViolationError.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ValidationError:
    """
    A single validation error.

    Guarantees:
        - Immutable (frozen dataclass)
        - code is always present and machine-readable

    Non-goals:
        - Does NOT raise -- it IS the error representation.
    """

    code: str
    message: str
    field: str | None = None
    details: dict[str, Any] | None = None


@dataclass(frozen=True)
class ValidationResult:
    """Aggregate of zero or more ValidationErrors; truthy when valid."""

    is_valid: bool
    errors: tuple[ValidationError, ...] = field(default_factory=tuple)

    @classmethod
    def success(cls) -> ValidationResult:
        return cls(is_valid=True, errors=())

    @classmethod
    def from_errors(cls, errors: list[ValidationError]) -> ValidationResult:
        return cls(is_valid=not errors, errors=tuple(errors))

    def __bool__(self) -> bool:
        return self.is_valid
