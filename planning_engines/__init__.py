"""
Planning engines -- pure calculation and evaluation functions.

No I/O, no sessions, no clock.  Every input arrives as an argument.
"""

from planning_engines.item_calculation import (
    DrugFacts,
    ItemEvaluation,
    ItemFigures,
    initialize_item,
    mean_usage,
    recompute_derived,
    split_quarterly,
    validate_funding_split,
    validate_item,
    validate_positivity,
    validate_quarterly_split,
)
from planning_engines.lifecycle import (
    OutcomeKind,
    TransitionOutcome,
    evaluate_transition,
)

__all__ = [
    "DrugFacts",
    "ItemFigures",
    "ItemEvaluation",
    "initialize_item",
    "mean_usage",
    "recompute_derived",
    "split_quarterly",
    "validate_quarterly_split",
    "validate_funding_split",
    "validate_positivity",
    "validate_item",
    "OutcomeKind",
    "TransitionOutcome",
    "evaluate_transition",
]
