"""
Module: fleet_kernel.models.waybill
Responsibility: ORM persistence for the waybill aggregate: the trip document,
    its ordered route legs and its fuel-tank lines.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain value enums only.

Invariants enforced:
    - A waybill owns its legs and fuel lines (cascade delete-orphan).  Legs
      and lines are replaced as whole sets, never merged.
    - ``version`` is the optimistic lock column; SQLAlchemy checks it on every
      UPDATE and raises StaleDataError on a lost race.
    - ``blank_id`` is unique: one blank backs at most one waybill.

Failure modes:
    - StaleDataError on concurrent modification (mapped to OptimisticLockError
      by WaybillService).
    - IntegrityError if two waybills claim the same blank.
"""

from datetime import date as date_type, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fleet_kernel.db.base import Base, TrackedBase, UUIDString
from fleet_kernel.domain.dtos import WaybillStatus
from fleet_kernel.domain.fuel import FuelCalculationMethod


class Waybill(TrackedBase):
    """
    A vehicle trip document.

    Guarantees:
        - status is one of WaybillStatus; POSTED and CANCELLED are terminal.
        - routes are loaded ordered by leg_order.
    """

    __tablename__ = "waybills"

    __table_args__ = (
        UniqueConstraint("blank_id", name="uq_waybill_blank"),
        Index("idx_waybill_status", "status"),
        Index("idx_waybill_vehicle_date", "vehicle_id", "date"),
        Index("idx_waybill_driver", "driver_id"),
    )

    # Printed number, "<series> <number:06d>"
    number: Mapped[str | None] = mapped_column(String(40), nullable=True)

    organization_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    department_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    vehicle_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("vehicles.id"),
        nullable=False,
    )

    driver_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("drivers.id"),
        nullable=False,
    )

    blank_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("blanks.id"),
        nullable=True,
    )

    date: Mapped[date_type] = mapped_column(Date, nullable=False)

    odometer_start: Mapped[Decimal | None] = mapped_column(nullable=True)
    odometer_end: Mapped[Decimal | None] = mapped_column(nullable=True)

    is_city_driving: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_warming: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    fuel_calculation_method: Mapped[str] = mapped_column(
        String(20),
        default=FuelCalculationMethod.BOILER.value,
        nullable=False,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=WaybillStatus.DRAFT.value,
        nullable=False,
    )

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Status metadata
    submitted_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    posted_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    status_changed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    routes: Mapped[list["WaybillRoute"]] = relationship(
        back_populates="waybill",
        cascade="all, delete-orphan",
        order_by="WaybillRoute.leg_order",
        lazy="selectin",
    )

    fuel_lines: Mapped[list["WaybillFuelLine"]] = relationship(
        back_populates="waybill",
        cascade="all, delete-orphan",
        order_by="WaybillFuelLine.line_order",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Waybill {self.number} [{self.status}]>"

    @property
    def is_terminal(self) -> bool:
        return self.status in (WaybillStatus.POSTED.value, WaybillStatus.CANCELLED.value)

    @property
    def is_posted(self) -> bool:
        return self.status == WaybillStatus.POSTED.value


class WaybillRoute(Base):
    """One leg of a waybill's route."""

    __tablename__ = "waybill_routes"

    __table_args__ = (
        Index("idx_waybill_route_waybill", "waybill_id", "leg_order"),
    )

    waybill_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("waybills.id", ondelete="CASCADE"),
        nullable=False,
    )

    leg_order: Mapped[int] = mapped_column(Integer, nullable=False)

    distance_km: Mapped[Decimal | None] = mapped_column(nullable=True)
    is_city_driving: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_warming: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_mountain_driving: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False,
    )

    from_point: Mapped[str | None] = mapped_column(String(200), nullable=True)
    to_point: Mapped[str | None] = mapped_column(String(200), nullable=True)
    comment: Mapped[str | None] = mapped_column(String(500), nullable=True)

    waybill: Mapped["Waybill"] = relationship(back_populates="routes")


class WaybillFuelLine(Base):
    """One fuel-tank ledger line of a waybill."""

    __tablename__ = "waybill_fuel_lines"

    __table_args__ = (
        Index("idx_waybill_fuel_waybill", "waybill_id"),
    )

    waybill_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("waybills.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Position within the waybill; the first line carries the planned figure
    line_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    stock_item_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    fuel_start: Mapped[Decimal | None] = mapped_column(nullable=True)
    fuel_received: Mapped[Decimal | None] = mapped_column(nullable=True)
    fuel_consumed: Mapped[Decimal | None] = mapped_column(nullable=True)
    fuel_end: Mapped[Decimal | None] = mapped_column(nullable=True)
    fuel_planned: Mapped[Decimal | None] = mapped_column(nullable=True)

    waybill: Mapped["Waybill"] = relationship(back_populates="fuel_lines")
