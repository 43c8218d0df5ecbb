"""Report rendering for budget requests."""

from planning_modules.reporting.sscj_export import (
    ExportedReport,
    ExportFormat,
    FlatCsvExportFormatter,
    SscjExportFormatter,
    export_filename,
    history_for_years,
    money,
    render_report,
)

__all__ = [
    "ExportedReport",
    "ExportFormat",
    "FlatCsvExportFormatter",
    "SscjExportFormatter",
    "export_filename",
    "history_for_years",
    "money",
    "render_report",
]
