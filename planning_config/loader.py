"""
Configuration Loader (``planning_config.loader``).

Responsibility
--------------
Loads the planning YAML file and parses it into the frozen dataclasses of
``planning_config.schema``.  Callers use ``planning_config.get_planning_config()``
rather than this module directly.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive messages.
* Decimal settings are read through ``str`` so YAML floats never leak
  binary rounding into quantities.
* ``compute_checksum`` gives a deterministic SHA-256 of the parsed document.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from planning_config.schema import (
    CalculationPolicy,
    ExportSettings,
    ImportLimits,
    PlanningConfig,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file and return its contents as a dict."""
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, name: str) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{name}: cannot parse {value!r} as a decimal") from exc


def parse_calculation(data: dict[str, Any]) -> CalculationPolicy:
    return CalculationPolicy().merged(data)


def parse_imports(data: dict[str, Any]) -> ImportLimits:
    defaults = ImportLimits()
    extensions = tuple(
        ext.lower() if ext.startswith(".") else f".{ext.lower()}"
        for ext in data.get("allowed_extensions", defaults.allowed_extensions)
    )
    return ImportLimits(
        max_rows=int(data.get("max_rows", defaults.max_rows)),
        max_file_size_bytes=int(
            data.get("max_file_size_bytes", defaults.max_file_size_bytes)
        ),
        allowed_extensions=extensions,
        csv_delimiter=data.get("csv_delimiter", defaults.csv_delimiter),
        csv_encoding=data.get("csv_encoding", defaults.csv_encoding),
        price_warning_percent=parse_decimal(
            data.get("price_warning_percent", defaults.price_warning_percent),
            "price_warning_percent",
        ),
    )


def parse_export(data: dict[str, Any]) -> ExportSettings:
    defaults = ExportSettings()
    return ExportSettings(
        file_label=data.get("file_label", defaults.file_label),
        title_template=data.get("title_template", defaults.title_template),
        total_template=data.get("total_template", defaults.total_template),
        group_labels={str(k): str(v) for k, v in (data.get("group_labels") or {}).items()},
    )


def parse_overrides(
    base: CalculationPolicy, data: dict[Any, Any]
) -> dict[int, CalculationPolicy]:
    """Per-fiscal-year calculation overrides, each layered on the base policy."""
    overrides: dict[int, CalculationPolicy] = {}
    for year, values in data.items():
        try:
            fiscal_year = int(year)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"fiscal_year_overrides: bad fiscal year {year!r}") from exc
        overrides[fiscal_year] = base.merged(values or {})
    return overrides


def parse_config(data: dict[str, Any], source_path: str | None = None) -> PlanningConfig:
    """
    Parse a full planning configuration document.

    Raises:
        ValueError: on invalid values or unknown calculation settings.
    """
    calculation = parse_calculation(data.get("calculation") or {})
    batch = data.get("batch") or {}
    submission = data.get("submission") or {}
    return PlanningConfig(
        calculation=calculation,
        imports=parse_imports(data.get("imports") or {}),
        export=parse_export(data.get("export") or {}),
        max_batch_update=int(batch.get("max_batch_update", 100)),
        justification_min_length=int(submission.get("justification_min_length", 20)),
        fiscal_year_overrides=parse_overrides(
            calculation, data.get("fiscal_year_overrides") or {}
        ),
        version=int(data.get("version", 1)),
        checksum=compute_checksum(data),
        source_path=source_path,
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
