"""
Module ORM Registry (``planning_modules._orm_registry``).

Ensures every module-level SQLAlchemy model is imported so that
``Base.metadata`` holds its table before ``create_tables()`` runs.

Architecture position
---------------------
**Modules layer** -- utility.  Called lazily by
``planning_kernel.db.engine.create_tables``; the kernel never imports
module code at import time.
"""


def import_all_orm_models() -> None:
    """Import every ``planning_modules.*.orm`` module.  Idempotent."""
    import planning_modules.budget_request.orm  # noqa: F401
