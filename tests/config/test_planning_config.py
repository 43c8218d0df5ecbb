"""
Tests for planning configuration loading.

Validates:
- Packaged defaults match the calculation constants
- Resolution order: explicit path, then environment, then defaults
- Fiscal-year overrides layer on the base policy
- Invalid documents are refused with a clear error
"""

from decimal import Decimal

import pytest
import yaml

from planning_config import (
    CONFIG_PATH_ENV,
    GROWTH_MULTIPLIER,
    SPLIT_TOLERANCE,
    get_planning_config,
)
from planning_config.loader import compute_checksum, parse_config


def _write_yaml(tmp_path, data, name="planning.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data, allow_unicode=True), encoding="utf-8")
    return path


class TestPackagedDefaults:

    def test_calculation_defaults(self):
        config = get_planning_config()
        assert config.calculation.growth_multiplier == GROWTH_MULTIPLIER == Decimal("1.05")
        assert config.calculation.split_tolerance == SPLIT_TOLERANCE == Decimal("0.01")
        assert config.max_batch_update == 100
        assert config.justification_min_length == 20

    def test_import_defaults(self):
        imports = get_planning_config().imports
        assert imports.allowed_extensions == (".csv", ".xlsx")
        assert imports.max_file_size_bytes == 10 * 1024 * 1024
        assert imports.csv_encoding == "utf-8-sig"

    def test_export_labels(self):
        export = get_planning_config().export
        assert export.file_label == "SSCJ"
        assert export.group_labels["funding_b"] == "เงินบำรุง"

    def test_load_is_logged(self, captured_logs):
        config = get_planning_config()
        record = next(r for r in captured_logs() if r["message"] == "planning_config_loaded")
        assert record["checksum"] == config.checksum


class TestResolution:

    def test_explicit_path(self, tmp_path):
        path = _write_yaml(tmp_path, {"calculation": {"growth_multiplier": "1.10"}})
        config = get_planning_config(path)
        assert config.calculation.growth_multiplier == Decimal("1.10")
        assert config.source_path == str(path)

    def test_environment_variable(self, tmp_path, monkeypatch):
        path = _write_yaml(tmp_path, {"batch": {"max_batch_update": 7}})
        monkeypatch.setenv(CONFIG_PATH_ENV, str(path))
        assert get_planning_config().max_batch_update == 7

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_planning_config(tmp_path / "absent.yaml")

    def test_empty_document_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        config = get_planning_config(path)
        assert config.calculation.growth_multiplier == Decimal("1.05")


class TestParseConfig:

    def test_fiscal_year_override(self):
        config = parse_config({
            "calculation": {"split_tolerance": "0.02"},
            "fiscal_year_overrides": {2570: {"growth_multiplier": "1.08"}},
        })
        override = config.policy_for(2570)
        assert override.growth_multiplier == Decimal("1.08")
        # inherits the base tolerance
        assert override.split_tolerance == Decimal("0.02")
        assert config.policy_for(2569) is config.calculation

    def test_yaml_float_read_through_str(self):
        config = parse_config({"calculation": {"growth_multiplier": 1.1}})
        assert config.calculation.growth_multiplier == Decimal("1.1")

    def test_justification_minimum(self):
        config = parse_config({"submission": {"justification_min_length": 40}})
        assert config.justification_min_length == 40
        assert parse_config({}).justification_min_length == 20

    def test_extensions_normalised(self):
        config = parse_config({"imports": {"allowed_extensions": ["CSV", ".xlsx"]}})
        assert config.imports.allowed_extensions == (".csv", ".xlsx")

    @pytest.mark.parametrize("data,match", [
        ({"calculation": {"growth": "1.1"}}, "Unknown calculation settings"),
        ({"calculation": {"growth_multiplier": "0"}}, "positive"),
        ({"calculation": {"split_tolerance": "-0.01"}}, "negative"),
        ({"batch": {"max_batch_update": 0}}, "max_batch_update"),
        ({"submission": {"justification_min_length": -1}}, "justification_min_length"),
        ({"imports": {"max_rows": 0}}, "max_rows"),
        ({"imports": {"price_warning_percent": "lots"}}, "price_warning_percent"),
        ({"fiscal_year_overrides": {"next": {}}}, "bad fiscal year"),
    ])
    def test_invalid_documents(self, data, match):
        with pytest.raises(ValueError, match=match):
            parse_config(data)

    def test_checksum_is_deterministic(self):
        a = {"version": 1, "batch": {"max_batch_update": 5}}
        b = {"batch": {"max_batch_update": 5}, "version": 1}
        assert compute_checksum(a) == compute_checksum(b)
        assert compute_checksum(a) != compute_checksum({"version": 2})
        assert parse_config(a).checksum == compute_checksum(a)
