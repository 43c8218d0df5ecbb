"""
planning_config -- single public entrypoint for planning configuration.

Responsibility:
    ``get_planning_config()`` is the only way runtime code obtains the
    calculation policy, import limits, batch limits and export labels.

Failure modes:
    - ``FileNotFoundError`` -- configured YAML path does not exist.
    - ``ValueError`` -- invalid values in the YAML document.

Audit relevance:
    Every load emits a ``planning_config_loaded`` log entry with the source
    path and checksum, tying each plan calculation to the settings in force.
"""

from __future__ import annotations

import os
from pathlib import Path

from planning_config.loader import load_yaml_file, parse_config
from planning_config.schema import (
    GROWTH_MULTIPLIER,
    SPLIT_TOLERANCE,
    CalculationPolicy,
    ExportSettings,
    ImportLimits,
    PlanningConfig,
)
from planning_kernel.logging_config import get_logger

logger = get_logger("config")

CONFIG_PATH_ENV = "PLANNING_CONFIG_PATH"
DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults" / "planning.yaml"


def get_planning_config(path: Path | str | None = None) -> PlanningConfig:
    """Load the planning configuration.

    Resolution order: explicit ``path``, then ``$PLANNING_CONFIG_PATH``,
    then the packaged defaults.
    """
    resolved = Path(path or os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)
    config = parse_config(load_yaml_file(resolved), source_path=str(resolved))
    logger.info(
        "planning_config_loaded",
        extra={
            "source_path": str(resolved),
            "checksum": config.checksum,
            "version": config.version,
            "fiscal_year_overrides": sorted(config.fiscal_year_overrides),
        },
    )
    return config


__all__ = [
    "get_planning_config",
    "PlanningConfig",
    "CalculationPolicy",
    "ImportLimits",
    "ExportSettings",
    "GROWTH_MULTIPLIER",
    "SPLIT_TOLERANCE",
]
