"""
Planning configuration schema.

Frozen dataclasses the YAML loader produces.  Every numeric knob the engine
uses (growth multiplier, split tolerance, import bounds, batch size) lives
here under a name, never as a literal at the call site.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any

# ---------------------------------------------------------------------------
# Calculation policy
# ---------------------------------------------------------------------------

GROWTH_MULTIPLIER = Decimal("1.05")
SPLIT_TOLERANCE = Decimal("0.01")


@dataclass(frozen=True)
class CalculationPolicy:
    """Knobs of the item calculation engine.

    growth_multiplier: applied to the historical mean to estimate next-year usage.
    split_tolerance: max |sum - requested| accepted for quarterly/funding splits.
    quantity_places: decimal places quantities and amounts are rounded to.
    """

    growth_multiplier: Decimal = GROWTH_MULTIPLIER
    split_tolerance: Decimal = SPLIT_TOLERANCE
    quantity_places: int = 2

    def __post_init__(self) -> None:
        if self.growth_multiplier <= 0:
            raise ValueError("growth_multiplier must be positive")
        if self.split_tolerance < 0:
            raise ValueError("split_tolerance cannot be negative")
        if self.quantity_places < 0:
            raise ValueError("quantity_places cannot be negative")

    @property
    def quantum(self) -> Decimal:
        return Decimal(1).scaleb(-self.quantity_places)

    def merged(self, overrides: dict[str, Any]) -> CalculationPolicy:
        """A copy with the given YAML override values applied."""
        changes: dict[str, Any] = {}
        if "growth_multiplier" in overrides:
            changes["growth_multiplier"] = Decimal(str(overrides["growth_multiplier"]))
        if "split_tolerance" in overrides:
            changes["split_tolerance"] = Decimal(str(overrides["split_tolerance"]))
        if "quantity_places" in overrides:
            changes["quantity_places"] = int(overrides["quantity_places"])
        unknown = set(overrides) - {"growth_multiplier", "split_tolerance", "quantity_places"}
        if unknown:
            raise ValueError(f"Unknown calculation settings: {sorted(unknown)}")
        return replace(self, **changes)


# ---------------------------------------------------------------------------
# Import / export
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ImportLimits:
    """Bounds and parsing settings for bulk import files."""

    max_rows: int = 5000
    max_file_size_bytes: int = 10 * 1024 * 1024
    allowed_extensions: tuple[str, ...] = (".csv", ".xlsx")
    csv_delimiter: str = ","
    csv_encoding: str = "utf-8-sig"
    # Warn when a file price strays this far (percent) from the drug master price.
    price_warning_percent: Decimal = Decimal("20")

    def __post_init__(self) -> None:
        if self.max_rows <= 0:
            raise ValueError("max_rows must be positive")
        if self.max_file_size_bytes <= 0:
            raise ValueError("max_file_size_bytes must be positive")
        if not self.allowed_extensions:
            raise ValueError("allowed_extensions cannot be empty")


@dataclass(frozen=True)
class ExportSettings:
    """Labels of the SSCJ report.  Geometry is fixed and not configurable."""

    file_label: str = "SSCJ"
    title_template: str = "แผนการจัดซื้อยา ปีงบประมาณ {fiscal_year} ({request_code})"
    total_template: str = "รวมมูลค่าทั้งสิ้น {total} บาท ({item_count} รายการ)"
    group_labels: dict[str, str] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PlanningConfig:
    """Root configuration object returned by ``get_planning_config()``."""

    calculation: CalculationPolicy = field(default_factory=CalculationPolicy)
    imports: ImportLimits = field(default_factory=ImportLimits)
    export: ExportSettings = field(default_factory=ExportSettings)
    max_batch_update: int = 100
    # Minimum characters of justification the submission checklist accepts.
    justification_min_length: int = 20
    fiscal_year_overrides: dict[int, CalculationPolicy] = field(default_factory=dict)
    version: int = 1
    checksum: str = ""
    source_path: str | None = None

    def __post_init__(self) -> None:
        if self.max_batch_update <= 0:
            raise ValueError("max_batch_update must be positive")
        if self.justification_min_length < 0:
            raise ValueError("justification_min_length cannot be negative")

    def policy_for(self, fiscal_year: int) -> CalculationPolicy:
        """Calculation policy in force for a fiscal year.

        The single override point for the growth multiplier and tolerance.
        """
        return self.fiscal_year_overrides.get(fiscal_year, self.calculation)
