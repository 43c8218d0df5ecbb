"""
planning_engines.item_calculation -- Per-item quantity and value calculations.

Responsibility:
    Build a new line item from drug-master facts, recompute the derived
    fields after an edit, and check the per-item invariants (quarterly split,
    funding split, positivity).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Imports only planning_kernel.domain and planning_config.schema.
    Consumed by the budget request service and the bulk reconciler.

Invariants enforced:
    - q1 + q2 + q3 + q4 == requested_qty within policy.split_tolerance.
    - budget_qty + fund_qty == requested_qty within the same tolerance.
    - unit_price > 0 and requested_qty > 0.
    - Derived values are Decimal, rounded ROUND_HALF_UP to
      policy.quantity_places.  Floats are never produced.

Failure modes:
    - Business rule failures are returned as ValidationError values, never
      raised.  Only programming errors (float input, NaN) raise.
    - An empty usage history gives avg_usage 0, not an error.
    - A negative estimated purchase is clamped to 0.

Usage:
    from planning_engines.item_calculation import DrugFacts, initialize_item

    figures = initialize_item(facts, config.policy_for(2569))
    evaluation = recompute_derived(replace(figures, q1_qty=Decimal("10")), policy)
    if not evaluation.is_valid:
        ...
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from uuid import UUID

from planning_config.schema import CalculationPolicy
from planning_kernel.domain.dtos import ValidationError
from planning_kernel.logging_config import get_logger

logger = get_logger("engines.item_calculation")

ZERO = Decimal("0")

QUARTER_FIELDS = ("q1_qty", "q2_qty", "q3_qty", "q4_qty")

INVALID_QUARTERLY_SPLIT = "INVALID_QUARTERLY_SPLIT"
INVALID_FUNDING_SPLIT = "INVALID_FUNDING_SPLIT"
NON_POSITIVE_UNIT_PRICE = "NON_POSITIVE_UNIT_PRICE"
NON_POSITIVE_REQUESTED_QTY = "NON_POSITIVE_REQUESTED_QTY"
NEGATIVE_QUANTITY = "NEGATIVE_QUANTITY"


def as_decimal(value: Decimal | int | str | None, default: Decimal = ZERO) -> Decimal:
    """Coerce an int/str/Decimal to Decimal.  Floats are refused."""
    if value is None:
        return default
    if isinstance(value, float):
        raise TypeError(f"float {value!r} is not accepted; pass Decimal or str")
    result = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    if not result.is_finite():
        raise ValueError(f"non-finite quantity {value!r}")
    return result


def quantize(value: Decimal, policy: CalculationPolicy) -> Decimal:
    return value.quantize(policy.quantum, rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DrugFacts:
    """
    Drug-master facts a new line item is built from.

    historical_usage maps a fiscal-year label to the quantity used that
    year, in chronological order; any number of years is accepted.
    estimated_usage, when given, replaces the growth-based estimate.
    """

    drug_id: UUID
    drug_code: str
    drug_name: str
    unit_price: Decimal
    package_size: str | None = None
    unit: str | None = None
    current_stock: Decimal = ZERO
    historical_usage: Mapping[str, Decimal] = field(default_factory=dict)
    estimated_usage: Decimal | None = None


@dataclass(frozen=True)
class ItemFigures:
    """The numeric state of one line item."""

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

    @property
    def quarters(self) -> tuple[Decimal, Decimal, Decimal, Decimal]:
        return (self.q1_qty, self.q2_qty, self.q3_qty, self.q4_qty)


@dataclass(frozen=True)
class ItemEvaluation:
    """Recomputed figures plus every invariant violation found."""

    figures: ItemFigures
    violations: tuple[ValidationError, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.violations


# ---------------------------------------------------------------------------
# Calculations
# ---------------------------------------------------------------------------


def mean_usage(historical_usage: Mapping[str, Decimal]) -> Decimal:
    """Arithmetic mean over however many years are present; 0 when empty."""
    if not historical_usage:
        return ZERO
    values = [as_decimal(v) for v in historical_usage.values()]
    return sum(values, ZERO) / Decimal(len(values))


def estimate_usage(avg_usage: Decimal, policy: CalculationPolicy) -> Decimal:
    return quantize(avg_usage * policy.growth_multiplier, policy)


def estimate_purchase(
    estimated_usage: Decimal, current_stock: Decimal, policy: CalculationPolicy
) -> Decimal:
    """Quantity to buy: estimated usage less stock on hand, never negative."""
    return quantize(max(ZERO, estimated_usage - current_stock), policy)


def split_quarterly(
    total: Decimal, policy: CalculationPolicy
) -> tuple[Decimal, Decimal, Decimal, Decimal]:
    """Even four-way split; the rounding remainder goes to Q4."""
    share = (total / 4).quantize(policy.quantum, rounding=ROUND_DOWN)
    return (share, share, share, total - share * 3)


def initialize_item(facts: DrugFacts, policy: CalculationPolicy) -> ItemFigures:
    """
    Build the figures of a new line item from drug-master facts.

    Postconditions:
        - avg_usage = mean(historical_usage)
        - estimated_usage = avg_usage x growth multiplier, unless supplied
        - estimated_purchase = max(0, estimated_usage - current_stock)
        - requested_qty = estimated_purchase, all of it on budget_qty,
          spread evenly across quarters, so both splits hold from the start.
    """
    history = {str(k): as_decimal(v) for k, v in facts.historical_usage.items()}
    avg = quantize(mean_usage(history), policy)
    if facts.estimated_usage is not None:
        estimated = quantize(as_decimal(facts.estimated_usage), policy)
    else:
        estimated = estimate_usage(avg, policy)
    stock = as_decimal(facts.current_stock)
    purchase = estimate_purchase(estimated, stock, policy)
    price = as_decimal(facts.unit_price)
    q1, q2, q3, q4 = split_quarterly(purchase, policy)

    figures = ItemFigures(
        historical_usage=history,
        avg_usage=avg,
        estimated_usage=estimated,
        current_stock=stock,
        estimated_purchase=purchase,
        unit_price=price,
        requested_qty=purchase,
        requested_amount=quantize(purchase * price, policy),
        budget_qty=purchase,
        fund_qty=ZERO,
        q1_qty=q1,
        q2_qty=q2,
        q3_qty=q3,
        q4_qty=q4,
    )
    logger.debug("item_initialized", extra={
        "drug_code": facts.drug_code,
        "history_years": len(history),
        "avg_usage": avg,
        "estimated_usage": estimated,
        "estimated_purchase": purchase,
    })
    return figures


def recompute_derived(figures: ItemFigures, policy: CalculationPolicy) -> ItemEvaluation:
    """
    Recompute derived fields after an edit and re-validate the item.

    avg_usage, estimated_purchase and requested_amount are derived;
    everything else is taken as given.
    """
    recomputed = replace(
        figures,
        avg_usage=quantize(mean_usage(figures.historical_usage), policy),
        estimated_purchase=estimate_purchase(
            figures.estimated_usage, figures.current_stock, policy
        ),
        requested_amount=quantize(figures.requested_qty * figures.unit_price, policy),
    )
    return ItemEvaluation(recomputed, tuple(validate_item(recomputed, policy)))


# ---------------------------------------------------------------------------
# Validators
# ---------------------------------------------------------------------------


def _split_violation(
    code: str,
    field_name: str,
    label: str,
    parts_total: Decimal,
    requested: Decimal,
    policy: CalculationPolicy,
) -> ValidationError | None:
    difference = parts_total - requested
    if abs(difference) <= policy.split_tolerance:
        return None
    return ValidationError(
        code=code,
        message=(
            f"{label} total {parts_total} does not match requested quantity "
            f"{requested} (difference {difference})"
        ),
        field=field_name,
        details={
            "total": str(parts_total),
            "requested_qty": str(requested),
            "difference": str(difference),
            "tolerance": str(policy.split_tolerance),
        },
    )


def validate_quarterly_split(
    figures: ItemFigures, policy: CalculationPolicy
) -> ValidationError | None:
    """q1+q2+q3+q4 must equal requested_qty within the tolerance."""
    return _split_violation(
        INVALID_QUARTERLY_SPLIT,
        "quarterly_split",
        "Quarterly",
        sum(figures.quarters, ZERO),
        figures.requested_qty,
        policy,
    )


def validate_funding_split(
    figures: ItemFigures, policy: CalculationPolicy
) -> ValidationError | None:
    """budget_qty + fund_qty must equal requested_qty within the tolerance."""
    return _split_violation(
        INVALID_FUNDING_SPLIT,
        "funding_split",
        "Funding",
        figures.budget_qty + figures.fund_qty,
        figures.requested_qty,
        policy,
    )


def validate_positivity(figures: ItemFigures) -> list[ValidationError]:
    errors: list[ValidationError] = []
    if figures.unit_price <= 0:
        errors.append(ValidationError(
            code=NON_POSITIVE_UNIT_PRICE,
            message=f"Unit price must be greater than 0, got {figures.unit_price}",
            field="unit_price",
        ))
    if figures.requested_qty <= 0:
        errors.append(ValidationError(
            code=NON_POSITIVE_REQUESTED_QTY,
            message=f"Requested quantity must be greater than 0, got {figures.requested_qty}",
            field="requested_qty",
        ))
    for name in ("budget_qty", "fund_qty", *QUARTER_FIELDS, "current_stock"):
        value = getattr(figures, name)
        if value < 0:
            errors.append(ValidationError(
                code=NEGATIVE_QUANTITY,
                message=f"{name} cannot be negative, got {value}",
                field=name,
            ))
    return errors


def validate_item(figures: ItemFigures, policy: CalculationPolicy) -> list[ValidationError]:
    """Every per-item invariant violation, in a stable order."""
    errors = validate_positivity(figures)
    for check in (validate_quarterly_split, validate_funding_split):
        violation = check(figures, policy)
        if violation is not None:
            errors.append(violation)
    return errors
