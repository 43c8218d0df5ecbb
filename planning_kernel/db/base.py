"""
Declarative base for the planning ORM models.

Column conventions shared by every table:

* primary keys are ``uuid4`` values kept in a portable ``CHAR(36)``-style
  string column, so the same models run on PostgreSQL and SQLite;
* ``Decimal`` attributes become ``Numeric(38, 9)``; quantities and prices
  never pass through ``float``;
* :class:`TrackedBase` adds who/when audit columns.  The "who" always comes
  from the actor argument of the service call that made the change.

Nothing here may import from ``planning_modules``.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator[PyUUID]):
    """A UUID round-tripped through its 36-character text form."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value: PyUUID | str | None, dialect: Dialect) -> str | None:
        # strings are parsed first so malformed ids fail before reaching the DB
        return None if value is None else str(PyUUID(str(value)))

    def process_result_value(self, value: Any, dialect: Dialect) -> PyUUID | None:
        return None if value is None else PyUUID(str(value))


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        PyUUID: UUIDString(),
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(primary_key=True, default=uuid4)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id}>"


class TrackedBase(Base):
    """
    Abstract base adding audit columns.

    ``created_at``/``updated_at`` are filled by the database clock;
    ``created_by_id`` is mandatory and ``updated_by_id`` is stamped by every
    later write.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(),
    )
    created_by_id: Mapped[PyUUID] = mapped_column(nullable=False)
    updated_by_id: Mapped[PyUUID | None] = mapped_column(nullable=True)


UUID = PyUUID
