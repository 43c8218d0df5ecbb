"""
Shared fixtures for ingestion tests: file writers and a valid example row.

Every fixture is opt-in.
"""

import csv
from pathlib import Path

import pytest
from openpyxl import Workbook

from planning_config.schema import CalculationPolicy, ImportLimits
from planning_ingestion.domain.columns import flat_headers
from planning_ingestion.services.reconciler import BulkReconciler
from planning_modules.budget_request.collaborators import StaticDrugMaster
from tests.conftest import FISCAL_YEAR, make_drug_facts

HEADER = list(flat_headers(FISCAL_YEAR))

# The worked example, exactly as planners would type it.
PARA500_ROW = [
    "PARA500", "Paracetamol 500 mg tab", "tab",
    "4200", "4400", "4527",
    "4594.45", "851", "0.45", "3743.45",
    "935.86", "935.86", "935.86", "935.87",
    "", "3743.45", "0",
]
AMOX500_ROW = [
    "AMOX500", "Amoxicillin 500 mg cap", "cap",
    "1000", "1200", "1400",
    "1260", "200", "1.20", "1060",
    "265", "265", "265", "265",
    "urgent", "800", "260",
]


def row_with(base: list[str], **changes: str) -> list[str]:
    """Copy of ``base`` with named columns replaced."""
    row = list(base)
    for key, value in changes.items():
        row[HEADER.index(key)] = value
    return row


@pytest.fixture
def write_csv(tmp_path):
    """Factory: write rows (header first) to a CSV file and return its path."""

    def _write(rows, name: str = "items.csv", encoding: str = "utf-8-sig") -> Path:
        path = tmp_path / name
        with path.open("w", encoding=encoding, newline="") as f:
            writer = csv.writer(f)
            for row in rows:
                writer.writerow(row)
        return path

    return _write


@pytest.fixture
def write_xlsx(tmp_path):
    """Factory: write rows to the first sheet of an xlsx workbook."""

    def _write(rows, name: str = "items.xlsx") -> Path:
        wb = Workbook()
        ws = wb.active
        for row in rows:
            ws.append(list(row))
        path = tmp_path / name
        wb.save(path)
        return path

    return _write


@pytest.fixture
def resolve_drug():
    return StaticDrugMaster(make_drug_facts()).resolve


@pytest.fixture
def reconciler():
    return BulkReconciler(ImportLimits())


@pytest.fixture
def plan_file(reconciler, resolve_drug):
    """Plan a file for FY 2569 with default policy."""

    def _plan(path: Path, **kwargs):
        return reconciler.plan(
            path,
            fiscal_year=FISCAL_YEAR,
            policy=CalculationPolicy(),
            resolve_drug=resolve_drug,
            **kwargs,
        )

    return _plan
