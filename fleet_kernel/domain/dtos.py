"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable data structures that cross the service boundary:
    the acting user (ActorContext), waybill create/update requests, the
    read-side WaybillInfo snapshot, bulk status results, and the values
    exchanged with collaborators (DocumentReservation, AuditEntry).

Architecture position:
    Kernel > Domain -- zero I/O.  from_model() class methods are boundary
    converters invoked only from the service layer.

Invariants enforced:
    - Services accept and return these DTOs, never ORM entities.
    - Route legs and fuel lines travel as tuples so a request cannot be
      mutated after validation.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

from fleet_kernel.domain.fuel import FuelCalculationMethod, RouteSegment

if TYPE_CHECKING:
    from fleet_kernel.models.blank import Blank as BlankModel
    from fleet_kernel.models.waybill import Waybill as WaybillModel


class WaybillStatus(str, Enum):
    """
    Status of a waybill.

    Contract:
        Lifecycle: DRAFT -> SUBMITTED -> POSTED, with CANCELLED reachable
        from DRAFT and SUBMITTED.  POSTED and CANCELLED are terminal.
    """

    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    POSTED = "POSTED"
    CANCELLED = "CANCELLED"


class BlankStatus(str, Enum):
    """Status of a serial paper form (blank)."""

    AVAILABLE = "AVAILABLE"
    ISSUED = "ISSUED"
    RESERVED = "RESERVED"
    USED = "USED"
    SPOILED = "SPOILED"


class MovementType(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


def format_blank_number(series: str, number: int) -> str:
    """Printed waybill number, e.g. ``"AB 000042"``."""
    return f"{series} {number:06d}"


@dataclass(frozen=True)
class WaybillRules:
    """
    Tunable lifecycle rules, supplied by ``fleet_config.bridges``.

    Guarantees:
        - Defaults match the shipped ``defaults.yaml``.
    """

    norm_excess_threshold: Decimal = Decimal("0.10")
    fuel_balance_tolerance: Decimal = Decimal("0.05")
    default_calculation_method: FuelCalculationMethod = FuelCalculationMethod.BOILER
    stock_source_type: str = "WAYBILL"


@dataclass(frozen=True)
class ActorContext:
    """
    Who is acting, and what they may do.

    ``organization_id`` is passed through to collaborators; queries are not
    scoped by it.
    """

    actor_id: UUID
    organization_id: UUID | None = None
    department_id: UUID | None = None
    can_override_norm: bool = False


@dataclass(frozen=True)
class RouteLegData:
    """One route leg as supplied by a caller."""

    distance_km: Decimal | None
    is_city_driving: bool = False
    is_warming: bool = False
    is_mountain_driving: bool = False
    from_point: str | None = None
    to_point: str | None = None
    comment: str | None = None

    def to_segment(self) -> RouteSegment:
        return RouteSegment(
            distance_km=self.distance_km,
            is_city_driving=self.is_city_driving,
            is_warming=self.is_warming,
            is_mountain_driving=self.is_mountain_driving,
        )


@dataclass(frozen=True)
class FuelLineData:
    """One fuel-tank ledger line as supplied by a caller.

    Planned litres are not accepted here: the service derives them and stores
    them on the first line only.
    """

    stock_item_id: UUID
    fuel_start: Decimal | None = None
    fuel_received: Decimal | None = None
    fuel_consumed: Decimal | None = None
    fuel_end: Decimal | None = None


@dataclass(frozen=True)
class CreateWaybillRequest:
    """
    Input for WaybillService.create_waybill.

    ``fuel_calculation_method=None`` means the configured default.
    ``blank_id=None`` means "reserve the next available blank".
    """

    vehicle_id: UUID
    driver_id: UUID
    date: date
    odometer_start: Decimal | None = None
    odometer_end: Decimal | None = None
    is_city_driving: bool = False
    is_warming: bool = False
    fuel_calculation_method: FuelCalculationMethod | None = None
    routes: tuple[RouteLegData, ...] = ()
    fuel_lines: tuple[FuelLineData, ...] = ()
    blank_id: UUID | None = None
    department_id: UUID | None = None
    notes: str | None = None


@dataclass(frozen=True)
class UpdateWaybillRequest:
    """
    Input for WaybillService.update_waybill.

    A field left as None keeps the stored value.  ``routes`` and
    ``fuel_lines`` use replace semantics: a supplied tuple (even empty)
    becomes the complete new set.
    """

    date: date | None = None
    odometer_start: Decimal | None = None
    odometer_end: Decimal | None = None
    is_city_driving: bool | None = None
    is_warming: bool | None = None
    fuel_calculation_method: FuelCalculationMethod | None = None
    routes: tuple[RouteLegData, ...] | None = None
    fuel_lines: tuple[FuelLineData, ...] | None = None
    notes: str | None = None


@dataclass(frozen=True)
class RouteLegInfo:
    id: UUID
    leg_order: int
    distance_km: Decimal | None
    is_city_driving: bool
    is_warming: bool
    is_mountain_driving: bool
    from_point: str | None = None
    to_point: str | None = None
    comment: str | None = None


@dataclass(frozen=True)
class FuelLineInfo:
    id: UUID
    stock_item_id: UUID
    fuel_start: Decimal | None
    fuel_received: Decimal | None
    fuel_consumed: Decimal | None
    fuel_end: Decimal | None
    fuel_planned: Decimal | None


@dataclass(frozen=True)
class WaybillInfo:
    """
    Pure domain representation of a waybill with its legs and fuel lines.

    Guarantees:
        - Immutable (frozen dataclass).
        - ``routes`` are ordered by ``leg_order``.
    """

    id: UUID
    number: str | None
    status: WaybillStatus
    organization_id: UUID | None
    department_id: UUID | None
    vehicle_id: UUID
    driver_id: UUID
    blank_id: UUID | None
    date: date
    odometer_start: Decimal | None
    odometer_end: Decimal | None
    is_city_driving: bool
    is_warming: bool
    fuel_calculation_method: FuelCalculationMethod
    notes: str | None
    routes: tuple[RouteLegInfo, ...]
    fuel_lines: tuple[FuelLineInfo, ...]
    submitted_by_id: UUID | None = None
    posted_by_id: UUID | None = None
    status_changed_at: datetime | None = None
    version: int = 1

    @property
    def is_terminal(self) -> bool:
        return self.status in (WaybillStatus.POSTED, WaybillStatus.CANCELLED)

    @classmethod
    def from_model(cls, model: WaybillModel) -> WaybillInfo:
        routes = sorted(model.routes, key=lambda r: r.leg_order)
        return cls(
            id=model.id,
            number=model.number,
            status=WaybillStatus(model.status),
            organization_id=model.organization_id,
            department_id=model.department_id,
            vehicle_id=model.vehicle_id,
            driver_id=model.driver_id,
            blank_id=model.blank_id,
            date=model.date,
            odometer_start=model.odometer_start,
            odometer_end=model.odometer_end,
            is_city_driving=model.is_city_driving,
            is_warming=model.is_warming,
            fuel_calculation_method=FuelCalculationMethod(model.fuel_calculation_method),
            notes=model.notes,
            routes=tuple(
                RouteLegInfo(
                    id=r.id,
                    leg_order=r.leg_order,
                    distance_km=r.distance_km,
                    is_city_driving=r.is_city_driving,
                    is_warming=r.is_warming,
                    is_mountain_driving=r.is_mountain_driving,
                    from_point=r.from_point,
                    to_point=r.to_point,
                    comment=r.comment,
                )
                for r in routes
            ),
            fuel_lines=tuple(
                FuelLineInfo(
                    id=fl.id,
                    stock_item_id=fl.stock_item_id,
                    fuel_start=fl.fuel_start,
                    fuel_received=fl.fuel_received,
                    fuel_consumed=fl.fuel_consumed,
                    fuel_end=fl.fuel_end,
                    fuel_planned=fl.fuel_planned,
                )
                for fl in model.fuel_lines
            ),
            submitted_by_id=model.submitted_by_id,
            posted_by_id=model.posted_by_id,
            status_changed_at=model.status_changed_at,
            version=model.version,
        )


@dataclass(frozen=True)
class BulkFailure:
    waybill_id: UUID
    code: str
    message: str


@dataclass(frozen=True)
class BulkStatusResult:
    """Outcome of WaybillService.bulk_change_status."""

    succeeded: tuple[UUID, ...] = ()
    failed: tuple[BulkFailure, ...] = ()
    skipped: tuple[UUID, ...] = ()

    @property
    def all_succeeded(self) -> bool:
        return not self.failed and not self.skipped


@dataclass(frozen=True)
class DocumentReservation:
    """A blank held for one waybill."""

    blank_id: UUID
    series: str
    number: int

    @property
    def formatted_number(self) -> str:
        return format_blank_number(self.series, self.number)

    @classmethod
    def from_model(cls, model: BlankModel) -> DocumentReservation:
        return cls(blank_id=model.id, series=model.series, number=model.number)


@dataclass(frozen=True)
class AuditEntry:
    """One append-only audit record, as handed to the audit log."""

    actor_id: UUID | None
    action_type: str
    entity_type: str
    entity_id: UUID
    description: str
    organization_id: UUID | None = None
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None
