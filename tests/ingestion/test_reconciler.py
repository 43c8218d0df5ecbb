"""
Tests for BulkReconciler.plan.

Validates:
- Accepted rows are staged with engine-derived figures
- Row-level rejections: tolerance, unknown drug, duplicates, bad cells
- Whole-file rejections raise FileFormatError before any row is decided
- Legacy and aliased headers, optional columns, blank rows
- Warnings never reject a row
"""

from decimal import Decimal

import pytest

from planning_config.schema import CalculationPolicy, ImportLimits
from planning_engines.item_calculation import INVALID_FUNDING_SPLIT, INVALID_QUARTERLY_SPLIT
from planning_ingestion.domain.types import IssueSeverity, SourceLayout
from planning_ingestion.domain.validators import (
    DUPLICATE_IN_FILE,
    INVALID_NUMBER,
    MISSING_REQUIRED_FIELD,
    NAME_MISMATCH,
    PRICE_DEVIATION,
)
from planning_ingestion.services.reconciler import BulkReconciler
from planning_kernel.exceptions import FileFormatError
from tests.conftest import PARA500_ID, UNKNOWN_CODE
from tests.ingestion.conftest import AMOX500_ROW, HEADER, PARA500_ROW, row_with


def _numeric(row: list[str]) -> list:
    """Cells as spreadsheet numbers where they parse, the way Excel stores them."""
    out = []
    for value in row:
        try:
            out.append(Decimal(value))
        except ArithmeticError:
            out.append(value or None)
    return out


class TestAcceptedRows:

    def test_worked_example_is_staged(self, write_csv, plan_file):
        plan = plan_file(write_csv([HEADER, PARA500_ROW]))

        assert plan.layout == SourceLayout.FLAT
        assert plan.total_rows == 1
        assert plan.errors == ()
        assert len(plan.staged) == 1
        staged = plan.staged[0]
        assert staged.row == 2
        assert staged.drug_id == PARA500_ID
        assert staged.figures.avg_usage == Decimal("4375.67")
        assert staged.figures.estimated_purchase == Decimal("3743.45")
        assert staged.figures.requested_amount == Decimal("1684.55")

    def test_master_identity_wins_over_file(self, write_csv, plan_file):
        plan = plan_file(write_csv([HEADER, row_with(PARA500_ROW, drug_code="para500")]))
        assert plan.staged[0].drug_code == "PARA500"
        assert plan.staged[0].package_size == "1000's"

    def test_staged_rows_keep_file_order(self, write_csv, plan_file):
        plan = plan_file(write_csv([HEADER, AMOX500_ROW, PARA500_ROW]))
        assert [s.drug_code for s in plan.staged] == ["AMOX500", "PARA500"]
        assert plan.staged[0].notes == "urgent"
        assert plan.staged[0].figures.fund_qty == Decimal("260")

    def test_difference_below_tolerance_accepted(self, write_csv, plan_file):
        row = row_with(PARA500_ROW, q4_qty="935.879")
        plan = plan_file(write_csv([HEADER, row]))
        assert plan.errors == ()
        assert len(plan.staged) == 1

    def test_history_labels_from_header(self, write_csv, plan_file):
        plan = plan_file(write_csv([HEADER, PARA500_ROW]))
        assert plan.history_labels == ("2566", "2567", "2568")
        assert plan.staged[0].figures.historical_usage == {
            "2566": Decimal("4200"), "2567": Decimal("4400"), "2568": Decimal("4527"),
        }


class TestRejectedRows:

    def test_difference_above_tolerance_rejected(self, write_csv, plan_file):
        row = row_with(PARA500_ROW, q4_qty="935.881")
        plan = plan_file(write_csv([HEADER, row]))

        assert plan.staged == ()
        assert [e.code for e in plan.errors] == [INVALID_QUARTERLY_SPLIT]
        assert plan.errors[0].row == 2
        assert plan.errors[0].field == "quarterly_split"

    def test_funding_mismatch_rejected(self, write_csv, plan_file):
        row = row_with(PARA500_ROW, budget_qty="3000", fund_qty="700")
        plan = plan_file(write_csv([HEADER, row]))
        assert [e.code for e in plan.errors] == [INVALID_FUNDING_SPLIT]

    def test_unknown_drug(self, write_csv, plan_file):
        plan = plan_file(write_csv([HEADER, row_with(PARA500_ROW, drug_code=UNKNOWN_CODE)]))
        assert plan.staged == ()
        error = plan.errors[0]
        assert error.code == "REFERENTIAL_NOT_FOUND"
        assert error.field == "drug_code"
        assert UNKNOWN_CODE in error.message

    def test_duplicate_drug_in_file(self, write_csv, plan_file):
        plan = plan_file(write_csv([HEADER, PARA500_ROW, AMOX500_ROW, PARA500_ROW]))
        assert [s.drug_code for s in plan.staged] == ["PARA500", "AMOX500"]
        assert [(e.row, e.code) for e in plan.errors] == [(4, DUPLICATE_IN_FILE)]
        assert "row 2" in plan.errors[0].message

    def test_rejected_row_does_not_block_corrected_copy(self, write_csv, plan_file):
        bad = row_with(PARA500_ROW, q4_qty="935.881")
        plan = plan_file(write_csv([HEADER, bad, PARA500_ROW, PARA500_ROW]))

        assert [(s.row, s.drug_code) for s in plan.staged] == [(3, "PARA500")]
        assert [(e.row, e.code) for e in plan.errors] == [
            (2, INVALID_QUARTERLY_SPLIT),
            (4, DUPLICATE_IN_FILE),
        ]
        assert "row 3" in plan.errors[1].message

    def test_every_problem_on_a_row_is_reported(self, write_csv, plan_file):
        row = row_with(PARA500_ROW, requested_qty="", unit_price="abc")
        plan = plan_file(write_csv([HEADER, row, AMOX500_ROW]))

        assert {(e.field, e.code) for e in plan.errors} == {
            ("requested_qty", MISSING_REQUIRED_FIELD),
            ("unit_price", INVALID_NUMBER),
        }
        assert plan.rejected_rows == 1
        assert len(plan.staged) == 1

    def test_bad_history_cell(self, write_csv, plan_file):
        plan = plan_file(write_csv([HEADER, row_with(PARA500_ROW, usage_2567="n/a")]))
        assert plan.errors[0].field == "usage_2567"
        assert plan.errors[0].code == INVALID_NUMBER

    def test_zero_price_rejected(self, write_csv, plan_file):
        plan = plan_file(write_csv([HEADER, row_with(PARA500_ROW, unit_price="0")]))
        assert plan.staged == ()
        assert plan.errors[0].field == "unit_price"


class TestWarnings:

    def test_price_deviation_warns_but_accepts(self, write_csv, plan_file):
        plan = plan_file(write_csv([HEADER, row_with(PARA500_ROW, unit_price="0.60")]))

        assert len(plan.staged) == 1
        assert plan.errors == ()
        assert [w.code for w in plan.warnings] == [PRICE_DEVIATION]
        assert plan.warnings[0].severity == IssueSeverity.WARNING
        assert plan.staged[0].figures.unit_price == Decimal("0.60")

    def test_name_mismatch_warns(self, write_csv, plan_file):
        plan = plan_file(write_csv([HEADER, row_with(PARA500_ROW, drug_name="Tylenol")]))
        assert [w.code for w in plan.warnings] == [NAME_MISMATCH]


class TestOptionalColumns:

    def test_budget_and_fund_absent_default_to_budget(self, write_csv, plan_file):
        header = HEADER[:-2]
        plan = plan_file(write_csv([header, PARA500_ROW[:-2]]))

        figures = plan.staged[0].figures
        assert figures.budget_qty == figures.requested_qty
        assert figures.fund_qty == Decimal("0")

    def test_blank_fund_counts_as_zero(self, write_csv, plan_file):
        plan = plan_file(write_csv([HEADER, row_with(PARA500_ROW, fund_qty="")]))
        assert plan.staged[0].figures.fund_qty == Decimal("0")

    def test_no_notes_column_marks_notes_unsupplied(self, write_csv, plan_file):
        drop = HEADER.index("notes")
        header = HEADER[:drop] + HEADER[drop + 1:]
        row = PARA500_ROW[:drop] + PARA500_ROW[drop + 1:]
        plan = plan_file(write_csv([header, row]))
        assert plan.staged[0].notes_supplied is False
        assert plan.staged[0].history_supplied is True

    def test_no_history_columns(self, write_csv, plan_file):
        header = HEADER[:3] + HEADER[6:]
        row = PARA500_ROW[:3] + PARA500_ROW[6:]
        plan = plan_file(write_csv([header, row]))

        staged = plan.staged[0]
        assert staged.history_supplied is False
        assert staged.figures.historical_usage == {}
        assert staged.figures.avg_usage == Decimal("0")

    def test_legacy_quarter_amount_columns(self, write_csv, plan_file):
        header = [h.replace("_qty", "_amount") if h.startswith("q") else h for h in HEADER]
        plan = plan_file(write_csv([header, PARA500_ROW]))
        assert plan.errors == ()
        assert plan.staged[0].figures.q4_qty == Decimal("935.87")

    def test_thai_headers(self, write_csv, plan_file):
        header = list(HEADER)
        header[0] = "รหัสยา"
        header[HEADER.index("unit_price")] = "ราคา/หน่วย"
        header[HEADER.index("notes")] = "หมายเหตุ"
        plan = plan_file(write_csv([header, PARA500_ROW]))
        assert len(plan.staged) == 1

    def test_reordered_columns(self, write_csv, plan_file):
        order = list(reversed(range(len(HEADER))))
        header = [HEADER[i] for i in order]
        row = [PARA500_ROW[i] for i in order]
        plan = plan_file(write_csv([header, row]))
        assert plan.staged[0].figures.requested_qty == Decimal("3743.45")

    def test_blank_rows_are_skipped(self, write_csv, plan_file):
        blank = [""] * len(HEADER)
        plan = plan_file(write_csv([HEADER, blank, PARA500_ROW, blank, AMOX500_ROW]))
        assert plan.total_rows == 2
        assert [s.row for s in plan.staged] == [3, 5]

    def test_header_only(self, write_csv, plan_file):
        plan = plan_file(write_csv([HEADER]))
        assert plan.total_rows == 0
        assert plan.staged == ()


class TestXlsxSource:

    def test_flat_workbook(self, write_xlsx, plan_file):
        plan = plan_file(write_xlsx([HEADER, _numeric(PARA500_ROW), _numeric(AMOX500_ROW)]))

        assert plan.errors == ()
        assert [s.drug_code for s in plan.staged] == ["PARA500", "AMOX500"]
        figures = plan.staged[0].figures
        assert figures.unit_price == Decimal("0.45")
        assert figures.q4_qty == Decimal("935.87")

    def test_corrupt_workbook(self, tmp_path, plan_file):
        path = tmp_path / "broken.xlsx"
        path.write_bytes(b"this is not a zip archive")
        with pytest.raises(FileFormatError, match="cannot be read"):
            plan_file(path)


class TestFileRejection:

    def test_missing_required_header(self, write_csv, plan_file):
        drop = HEADER.index("unit_price")
        header = HEADER[:drop] + HEADER[drop + 1:]
        with pytest.raises(FileFormatError, match="unit_price") as exc_info:
            plan_file(write_csv([header, PARA500_ROW]))
        assert exc_info.value.code == "FILE_FORMAT_ERROR"

    def test_unsupported_extension(self, write_csv, plan_file):
        with pytest.raises(FileFormatError, match="unsupported file type"):
            plan_file(write_csv([HEADER, PARA500_ROW], name="items.txt"))

    def test_extension_taken_from_original_filename(self, write_csv, plan_file):
        path = write_csv([HEADER, PARA500_ROW], name="upload.tmp")
        plan = plan_file(path, filename="items.CSV")
        assert plan.filename == "items.CSV"
        assert len(plan.staged) == 1

    def test_oversize_file(self, write_csv, resolve_drug):
        reconciler = BulkReconciler(ImportLimits(max_file_size_bytes=64))
        with pytest.raises(FileFormatError, match="limit"):
            reconciler.plan(
                write_csv([HEADER, PARA500_ROW]),
                fiscal_year=2569,
                policy=CalculationPolicy(),
                resolve_drug=resolve_drug,
            )

    def test_too_many_rows(self, write_csv, resolve_drug):
        reconciler = BulkReconciler(ImportLimits(max_rows=1))
        with pytest.raises(FileFormatError, match="more than 1 data rows"):
            reconciler.plan(
                write_csv([HEADER, PARA500_ROW, AMOX500_ROW]),
                fiscal_year=2569,
                policy=CalculationPolicy(),
                resolve_drug=resolve_drug,
            )

    def test_empty_file(self, tmp_path, plan_file):
        path = tmp_path / "empty.csv"
        path.write_bytes(b"")
        with pytest.raises(FileFormatError, match="empty"):
            plan_file(path)

    def test_missing_file(self, tmp_path, plan_file):
        with pytest.raises(FileFormatError, match="does not exist"):
            plan_file(tmp_path / "nowhere.csv")
