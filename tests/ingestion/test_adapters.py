"""
Tests for the CSV and XLSX source adapters.
"""

from decimal import Decimal

from planning_ingestion.adapters.base import SourceAdapter, SourceRow, normalize_cell
from planning_ingestion.adapters.csv_adapter import CsvSourceAdapter
from planning_ingestion.adapters.xlsx_adapter import XlsxSourceAdapter


class TestNormalizeCell:

    def test_none_is_blank(self):
        assert normalize_cell(None) == ""

    def test_integral_float_becomes_int(self):
        assert normalize_cell(4200.0) == 4200

    def test_fractional_float_becomes_decimal(self):
        assert normalize_cell(935.86) == Decimal("935.86")

    def test_text_is_stripped(self):
        assert normalize_cell("  PARA500 ") == "PARA500"


class TestSourceRow:

    def test_cells_past_end_are_blank(self):
        row = SourceRow(2, ("a",))
        assert row.cell(0) == "a"
        assert row.cell(5) == ""

    def test_blank_row(self):
        assert SourceRow(3, ("", "", "")).is_blank
        assert not SourceRow(3, ("", 0, "")).is_blank


class TestCsvSourceAdapter:

    def test_satisfies_protocol(self):
        assert isinstance(CsvSourceAdapter(), SourceAdapter)

    def test_rows_are_numbered_from_one(self, write_csv):
        path = write_csv([["drug_code", "unit_price"], ["PARA500", "0.45"]])
        rows = list(CsvSourceAdapter().read_rows(path, {}))
        assert [r.row_number for r in rows] == [1, 2]
        assert rows[1].values == ("PARA500", "0.45")

    def test_bom_is_stripped(self, write_csv):
        path = write_csv([["drug_code"], ["PARA500"]], encoding="utf-8-sig")
        rows = list(CsvSourceAdapter().read_rows(path, {"encoding": "utf-8"}))
        assert rows[0].values == ("drug_code",)

    def test_delimiter_option(self, tmp_path):
        path = tmp_path / "items.csv"
        path.write_text("drug_code;unit_price\nPARA500;0.45\n", encoding="utf-8")
        rows = list(CsvSourceAdapter().read_rows(path, {"delimiter": ";"}))
        assert rows[1].values == ("PARA500", "0.45")

    def test_thai_text(self, write_csv):
        path = write_csv([["รหัสยา", "หมายเหตุ"], ["PARA500", "ใช้มาก"]])
        rows = list(CsvSourceAdapter().read_rows(path, {}))
        assert rows[0].values == ("รหัสยา", "หมายเหตุ")
        assert rows[1].values[1] == "ใช้มาก"


class TestXlsxSourceAdapter:

    def test_satisfies_protocol(self):
        assert isinstance(XlsxSourceAdapter(), SourceAdapter)

    def test_numbers_never_arrive_as_float(self, write_xlsx):
        path = write_xlsx([["drug_code", "q4_qty", "stock"], ["PARA500", 935.87, 851]])
        rows = list(XlsxSourceAdapter().read_rows(path, {}))
        assert rows[1].values == ("PARA500", Decimal("935.87"), 851)

    def test_empty_cells_are_blank(self, write_xlsx):
        path = write_xlsx([["a", "b", "c"], ["x", None, "z"]])
        rows = list(XlsxSourceAdapter().read_rows(path, {}))
        assert rows[1].values == ("x", "", "z")

    def test_sheet_by_name(self, tmp_path):
        from openpyxl import Workbook

        wb = Workbook()
        wb.active.append(["ignored"])
        wb.create_sheet("items").append(["drug_code"])
        path = tmp_path / "two_sheets.xlsx"
        wb.save(path)

        rows = list(XlsxSourceAdapter().read_rows(path, {"sheet": "items"}))
        assert rows[0].values == ("drug_code",)
        rows = list(XlsxSourceAdapter().read_rows(path, {"sheet": 1}))
        assert rows[0].values == ("drug_code",)
