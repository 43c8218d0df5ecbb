"""
Tests for the blank import templates.

A template must be accepted by the reconciler as-is.
"""

from io import BytesIO

from openpyxl import load_workbook

from planning_ingestion.domain.columns import flat_headers
from planning_ingestion.templates import ImportTemplateWriter, TemplateFormat
from tests.conftest import FISCAL_YEAR


class TestImportTemplates:

    def test_xlsx_header_row(self):
        content = ImportTemplateWriter().render(FISCAL_YEAR, TemplateFormat.XLSX)
        ws = load_workbook(BytesIO(content)).active

        assert ws.title == "import"
        assert tuple(c.value for c in ws[1]) == flat_headers(FISCAL_YEAR)
        assert ws["A1"].font.bold
        assert ws.freeze_panes == "A2"

    def test_csv_starts_with_bom(self):
        content = ImportTemplateWriter().render(FISCAL_YEAR, TemplateFormat.CSV)
        assert content.startswith(b"\xef\xbb\xbf")
        first_line = content.decode("utf-8-sig").splitlines()[0]
        assert first_line.split(",") == list(flat_headers(FISCAL_YEAR))

    def test_csv_template_reconciles(self, tmp_path, plan_file):
        path = tmp_path / "template.csv"
        path.write_bytes(ImportTemplateWriter().render(FISCAL_YEAR, TemplateFormat.CSV))

        plan = plan_file(path)
        assert plan.errors == ()
        assert [s.drug_code for s in plan.staged] == ["PARA500"]

    def test_xlsx_template_reconciles(self, tmp_path, plan_file):
        path = tmp_path / "template.xlsx"
        path.write_bytes(ImportTemplateWriter().render(FISCAL_YEAR))

        plan = plan_file(path)
        assert plan.errors == ()
        assert len(plan.staged) == 1

    def test_render_is_logged(self, captured_logs):
        ImportTemplateWriter().render(FISCAL_YEAR, TemplateFormat.CSV)
        records = [r for r in captured_logs() if r["message"] == "import_template_rendered"]
        assert records[0]["columns"] == 17
