"""
Module: fleet_kernel.models.vehicle
Responsibility: ORM persistence for the vehicles and drivers that waybills
    reference.  Vehicle owns the fuel rate profile; the waybill lifecycle
    only reads it.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain value objects only.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fleet_kernel.db.base import TrackedBase, UUIDString
from fleet_kernel.domain.fuel import FuelRateProfile


class Vehicle(TrackedBase):
    """A fleet vehicle and its consumption norms."""

    __tablename__ = "vehicles"

    __table_args__ = (
        UniqueConstraint("registration_number", name="uq_vehicle_registration"),
    )

    organization_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    department_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    registration_number: Mapped[str] = mapped_column(String(20), nullable=False)
    model_name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Litres per 100 km
    summer_rate: Mapped[Decimal | None] = mapped_column(nullable=True)
    winter_rate: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Percentage increases (10 means +10%)
    city_increase_percent: Mapped[Decimal | None] = mapped_column(nullable=True)
    warming_increase_percent: Mapped[Decimal | None] = mapped_column(nullable=True)
    mountain_increase_percent: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Default tank stock item for fuel lines
    fuel_stock_item_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return f"<Vehicle {self.registration_number}>"

    @property
    def has_rates(self) -> bool:
        return self.summer_rate is not None or self.winter_rate is not None

    def rate_profile(self) -> FuelRateProfile:
        return FuelRateProfile(
            summer_rate=self.summer_rate,
            winter_rate=self.winter_rate,
            city_increase_percent=self.city_increase_percent,
            warming_increase_percent=self.warming_increase_percent,
            mountain_increase_percent=self.mountain_increase_percent,
        )


class Driver(TrackedBase):
    """A driver, linked to the employee record that holds personal data."""

    __tablename__ = "drivers"

    __table_args__ = (
        UniqueConstraint("employee_id", name="uq_driver_employee"),
        Index("idx_driver_active", "is_active"),
    )

    organization_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    employee_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Driver {self.full_name}>"
