"""
Module: fleet_kernel.db.base
Responsibility: Declarative roots for the fleet ORM models.  Every waybill,
    blank, stock movement, audit row and setting shares the same primary key
    convention and column typing defined here.
Architecture position: Kernel > DB.  Imported by every module under
    ``fleet_kernel.models``; imports nothing else from the kernel.

Invariants enforced:
    - Primary keys are uuid4 values persisted as 36-character strings, so the
      same schema runs on PostgreSQL and on the SQLite test database.
    - Odometer readings and fuel litres are Numeric(18, 3) columns and load
      back as Decimal.
    - Rows created by a person (waybills, vehicles, blanks, settings) record
      who created them; ``created_by_id`` is NOT NULL.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, Date, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """Stores ``uuid.UUID`` as text and hands back ``uuid.UUID`` on load."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


class Base(DeclarativeBase):
    """Root of the model hierarchy. Supplies ``id`` and the type map."""

    type_annotation_map: ClassVar[dict] = {
        PyUUID: UUIDString(),
        Decimal: Numeric(18, 3),
        date: Date(),
        datetime: DateTime(timezone=True),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Base for rows maintained by users.

    ``created_at``/``updated_at`` are filled by the database; the services set
    ``created_by_id`` on insert and ``updated_by_id`` on every edit.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
    created_by_id: Mapped[PyUUID] = mapped_column(nullable=False)
    updated_by_id: Mapped[PyUUID | None] = mapped_column(nullable=True)


UUID = PyUUID
