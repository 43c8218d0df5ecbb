"""
planning_ingestion -- Bulk import of budget request items.

Streams a delimited or spreadsheet file, validates each row against the
item calculation engine and the drug master, and produces an upsert plan
plus a row-addressed error/warning report.

Architecture:
    Sits above planning_kernel / planning_engines / planning_config and
    below planning_modules.  Holds no database session: the budget request
    service applies the plan inside its own transaction.
"""
