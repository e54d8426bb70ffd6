"""
Module: fleet_kernel.models.blank
Responsibility: ORM persistence for serial paper forms ("blanks") that back
    waybill numbers.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain value enums only.

Invariants enforced:
    - (series, number) is unique.
    - Status moves AVAILABLE/ISSUED -> RESERVED -> USED, or to SPOILED.  USED
      and SPOILED are final.  BlankService enforces the moves.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import BigInteger, DateTime, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fleet_kernel.db.base import TrackedBase, UUIDString
from fleet_kernel.domain.dtos import BlankStatus, format_blank_number


class Blank(TrackedBase):
    """A single numbered form."""

    __tablename__ = "blanks"

    __table_args__ = (
        UniqueConstraint("series", "number", name="uq_blank_series_number"),
        Index("idx_blank_status", "status"),
        Index("idx_blank_driver_status", "issued_to_driver_id", "status"),
    )

    organization_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    department_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    series: Mapped[str] = mapped_column(String(20), nullable=False)
    number: Mapped[int] = mapped_column(BigInteger, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=BlankStatus.AVAILABLE.value,
        nullable=False,
    )

    issued_to_driver_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    reserved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    spoiled_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def __repr__(self) -> str:
        return f"<Blank {self.formatted_number} [{self.status}]>"

    @property
    def formatted_number(self) -> str:
        return format_blank_number(self.series, self.number)
