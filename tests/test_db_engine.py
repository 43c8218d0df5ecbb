"""Tests for the database layer (planning_kernel/db)."""

from uuid import UUID, uuid4

import pytest
from sqlalchemy import func, select

from planning_kernel.db.base import UUIDString
from planning_kernel.db.engine import get_engine, get_session, session_scope
from planning_modules.budget_request.orm import BudgetRequestModel
from tests.conftest import FISCAL_YEAR, TEST_ACTOR_ID


def _request_row(code: str) -> BudgetRequestModel:
    return BudgetRequestModel(
        id=uuid4(),
        request_code=code,
        fiscal_year=FISCAL_YEAR,
        status="draft",
        created_by_id=TEST_ACTOR_ID,
    )


def _count(code: str) -> int:
    with get_session() as sess:
        return sess.scalar(
            select(func.count()).select_from(BudgetRequestModel)
            .where(BudgetRequestModel.request_code == code)
        )


class TestSessionScope:

    def test_commits_on_clean_exit(self, session):
        with session_scope() as scoped:
            scoped.add(_request_row("BR-SCOPE-OK"))
        assert _count("BR-SCOPE-OK") == 1

    def test_rolls_back_and_reraises(self, session):
        with pytest.raises(RuntimeError, match="boom"):
            with session_scope() as scoped:
                scoped.add(_request_row("BR-SCOPE-FAIL"))
                scoped.flush()
                raise RuntimeError("boom")
        assert _count("BR-SCOPE-FAIL") == 0


class TestUUIDString:

    def test_bind_accepts_uuid_and_text(self):
        value = uuid4()
        col = UUIDString()
        assert col.process_bind_param(value, None) == str(value)
        assert col.process_bind_param(str(value).upper(), None) == str(value)
        assert col.process_bind_param(None, None) is None

    def test_bind_rejects_malformed_text(self):
        with pytest.raises(ValueError):
            UUIDString().process_bind_param("not-a-uuid", None)

    def test_result_is_uuid(self):
        value = uuid4()
        assert UUIDString().process_result_value(str(value), None) == value
        assert isinstance(UUIDString().process_result_value(str(value), None), UUID)


def test_engine_available(db_engine):
    assert get_engine() is db_engine
