"""
Pure domain layer.

This module contains data transfer objects and domain logic with NO
dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

Fuel arithmetic is Decimal throughout; the season classifier and the
calculation strategies never raise on odd input.
"""

from fleet_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from fleet_kernel.domain.dtos import (
    ActorContext,
    AuditEntry,
    BlankStatus,
    BulkFailure,
    BulkStatusResult,
    CreateWaybillRequest,
    DocumentReservation,
    FuelLineData,
    FuelLineInfo,
    MovementType,
    RouteLegData,
    RouteLegInfo,
    UpdateWaybillRequest,
    WaybillInfo,
    WaybillRules,
    WaybillStatus,
    format_blank_number,
)
from fleet_kernel.domain.fuel import (
    FuelBalanceValidation,
    FuelCalculationMethod,
    FuelCoefficients,
    FuelRateProfile,
    NormExcess,
    RouteSegment,
    fuel_end,
    norm_consumption,
    norm_excess,
    planned_fuel,
    planned_fuel_by_method,
    resolve_base_rate,
    validate_fuel_balance,
    validate_odometer,
)
from fleet_kernel.domain.season import (
    ManualSeasonPolicy,
    RecurringSeasonPolicy,
    SeasonPolicy,
    is_winter,
    parse_season_policy,
)
from fleet_kernel.domain.workflow import WAYBILL_WORKFLOW, Transition, Workflow

__all__ = [
    # Clock
    "Clock",
    "DeterministicClock",
    "SystemClock",
    # DTOs
    "ActorContext",
    "AuditEntry",
    "BlankStatus",
    "BulkFailure",
    "BulkStatusResult",
    "CreateWaybillRequest",
    "DocumentReservation",
    "FuelLineData",
    "FuelLineInfo",
    "MovementType",
    "RouteLegData",
    "RouteLegInfo",
    "UpdateWaybillRequest",
    "WaybillInfo",
    "WaybillRules",
    "WaybillStatus",
    "format_blank_number",
    # Fuel
    "FuelBalanceValidation",
    "FuelCalculationMethod",
    "FuelCoefficients",
    "FuelRateProfile",
    "NormExcess",
    "RouteSegment",
    "fuel_end",
    "norm_consumption",
    "norm_excess",
    "planned_fuel",
    "planned_fuel_by_method",
    "resolve_base_rate",
    "validate_fuel_balance",
    "validate_odometer",
    # Season
    "ManualSeasonPolicy",
    "RecurringSeasonPolicy",
    "SeasonPolicy",
    "is_winter",
    "parse_season_policy",
    # Workflow
    "WAYBILL_WORKFLOW",
    "Transition",
    "Workflow",
]
