"""
WaybillService -- waybill lifecycle orchestration.

Responsibility:
    Creates, updates, transitions and deletes waybills.  Derives planned
    fuel through the season classifier and the calculation-method
    dispatcher, validates fuel figures before a waybill is finalized, gates
    posting on the consumption norm, and applies the posting effects (stock
    depletion, blank consumption, status metadata, audit) as one unit of
    work.

Architecture position:
    Kernel > Services -- the orchestrating service.  Collaborators
    (DocumentRegistry, StockLedger, AuditLog, SeasonSettingsProvider) are
    injected and only flush; this service owns ``commit()`` and
    ``rollback()``.

Invariants enforced:
    - Status changes follow WAYBILL_WORKFLOW only.
    - POSTED and CANCELLED waybills are never edited; POSTED ones are never
      deleted.
    - Before SUBMITTED or POSTED, the odometer is ordered and every fuel
      line balances within the configured tolerance.
    - A vehicle's waybills post in date order, and a posted odometer start
      never falls below the previous posted end.
    - Each stock item appears on at most one fuel line.
    - Posting effects are all-or-nothing.  A collaborator failure rolls the
      whole transaction back and surfaces as DependencyFailure.
    - Route legs and fuel lines are replaced as whole sets.

Failure modes:
    - ValidationError subclasses for bad odometer, fuel balance, an
      unknown method, repeated stock items, missing method prerequisites
      or posting out of chain order.
    - StateTransitionError for a transition outside the table.
    - AuthorizationError when consumption exceeds the norm and the actor
      cannot override.
    - OptimisticLockError when the row changed underneath the caller.
    - EntityNotFoundError for unknown waybill, vehicle or driver.

Audit relevance:
    CREATE, UPDATE, STATUS_CHANGE, NORM_OVERRIDE and DELETE entries are
    written in the same transaction as the change they describe.  A blank
    that could not be returned to the pool on delete is recorded as
    BLANK_RELEASE_FAILED so it can be reconciled.

Usage::

    service = WaybillService(session, clock=clock)
    info = service.create_waybill(actor, CreateWaybillRequest(...))
    service.change_status(actor, info.id, WaybillStatus.SUBMITTED)
    service.change_status(actor, info.id, WaybillStatus.POSTED)
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from datetime import date
from decimal import Decimal
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from fleet_kernel.domain.clock import Clock, SystemClock
from fleet_kernel.domain.dtos import (
    ActorContext,
    AuditEntry,
    BulkFailure,
    BulkStatusResult,
    CreateWaybillRequest,
    DocumentReservation,
    FuelLineData,
    RouteLegData,
    UpdateWaybillRequest,
    WaybillInfo,
    WaybillRules,
    WaybillStatus,
)
from fleet_kernel.domain.fuel import (
    FuelCalculationMethod,
    RouteSegment,
    distance_km,
    norm_excess,
    planned_fuel_by_method,
    resolve_base_rate,
    to_decimal,
    validate_fuel_balance,
    validate_odometer,
)
from fleet_kernel.domain.season import is_winter
from fleet_kernel.domain.workflow import (
    CHAIN_ORDERED,
    FUEL_BALANCED,
    WAYBILL_WORKFLOW,
    WITHIN_NORM,
    Transition,
)
from fleet_kernel.exceptions import (
    AuthorizationError,
    ChainIntegrityError,
    DependencyFailure,
    DuplicateFuelLineError,
    EntityNotFoundError,
    FleetKernelError,
    FuelBalanceMismatchError,
    InvalidOdometerError,
    InvalidRouteDistanceError,
    OdometerConflictError,
    OdometerRequiredForMethodError,
    OptimisticLockError,
    RoutesRequiredForMethodError,
    UnknownCalculationMethodError,
    WaybillImmutableError,
)
from fleet_kernel.logging_config import LogContext, get_logger
from fleet_kernel.models.audit_event import AuditAction
from fleet_kernel.models.vehicle import Driver, Vehicle
from fleet_kernel.models.waybill import Waybill, WaybillFuelLine, WaybillRoute
from fleet_kernel.services.audit_service import AuditService
from fleet_kernel.services.blank_service import BlankService
from fleet_kernel.services.interfaces import (
    AuditLog,
    DocumentRegistry,
    SeasonSettingsProvider,
    StockLedger,
)
from fleet_kernel.services.settings_service import SeasonSettingsService
from fleet_kernel.services.stock_service import StockService

logger = get_logger("services.waybill")

T = TypeVar("T")

_ROUTE_METHODS = (FuelCalculationMethod.SEGMENTS, FuelCalculationMethod.MIXED)
_ODOMETER_METHODS = (FuelCalculationMethod.BOILER, FuelCalculationMethod.MIXED)

BLANK_ACTIONS = ("release", "spoil")


class WaybillService:
    """
    Orchestrates the waybill lifecycle.

    Contract:
        Every public mutating method is one transaction: commit on success,
        rollback on any failure before re-raising.

    Non-goals:
        - Reversal of POSTED waybills.
        - Organization scoping of queries (``organization_id`` is passed
          through to collaborators only).
    """

    ENTITY_TYPE = "WAYBILL"

    def __init__(
        self,
        session: Session,
        documents: DocumentRegistry | None = None,
        stock: StockLedger | None = None,
        audit: AuditLog | None = None,
        season_settings: SeasonSettingsProvider | None = None,
        rules: WaybillRules | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._documents = documents or BlankService(session, self._clock)
        self._stock = stock or StockService(session, self._clock)
        self._audit = audit or AuditService(session, self._clock)
        self._season = season_settings or SeasonSettingsService(session)
        self._rules = rules or WaybillRules()

    # =========================================================================
    # Transaction plumbing
    # =========================================================================

    def _call(
        self, dependency: str, operation: str, fn: Callable[..., T], *args: Any, **kwargs: Any,
    ) -> T:
        """Invoke a collaborator, wrapping foreign failures in DependencyFailure."""
        try:
            return fn(*args, **kwargs)
        except (FleetKernelError, StaleDataError):
            raise
        except Exception as exc:
            logger.error(
                "dependency_failed",
                extra={"dependency": dependency, "operation": operation},
                exc_info=True,
            )
            raise DependencyFailure(dependency, operation, str(exc)) from exc

    def _commit(self) -> None:
        self._session.commit()

    def _rollback(self) -> None:
        self._session.rollback()
        logger.debug("waybill_transaction_rolled_back")

    def _load_for_update(self, waybill_id: UUID) -> Waybill:
        waybill = self._session.execute(
            select(Waybill)
            .where(Waybill.id == waybill_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if waybill is None:
            raise EntityNotFoundError("Waybill", str(waybill_id))
        return waybill

    @staticmethod
    def _check_version(waybill: Waybill, expected_version: int | None) -> None:
        if expected_version is not None and waybill.version != expected_version:
            logger.warning(
                "waybill_version_conflict",
                extra={
                    "waybill_id": str(waybill.id),
                    "expected_version": expected_version,
                    "actual_version": waybill.version,
                },
            )
            raise OptimisticLockError("Waybill", str(waybill.id))

    def _record(
        self,
        actor: ActorContext,
        action: AuditAction,
        entity_id: UUID,
        description: str,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
        entity_type: str | None = None,
    ) -> None:
        self._call(
            "audit",
            "append",
            self._audit.append,
            AuditEntry(
                organization_id=actor.organization_id,
                actor_id=actor.actor_id,
                action_type=action.value,
                entity_type=entity_type or self.ENTITY_TYPE,
                entity_id=entity_id,
                description=description,
                before=before,
                after=after,
            ),
        )

    # =========================================================================
    # Validation and calculation
    # =========================================================================

    @staticmethod
    def _check_odometer(start: Decimal | None, end: Decimal | None) -> None:
        result = validate_odometer(start, end)
        if not result.is_valid:
            raise InvalidOdometerError(str(start), str(end))

    @staticmethod
    def _check_method_prerequisites(
        method: FuelCalculationMethod,
        routes: Sequence[RouteLegData] | Sequence[WaybillRoute],
        odometer_start: Decimal | None,
        odometer_end: Decimal | None,
    ) -> None:
        if method in _ROUTE_METHODS:
            if not routes:
                raise RoutesRequiredForMethodError(method.value)
            if all((to_decimal(r.distance_km) or 0) <= 0 for r in routes):
                raise InvalidRouteDistanceError(method.value)
        if method in _ODOMETER_METHODS:
            if odometer_start is None or odometer_end is None:
                raise OdometerRequiredForMethodError(method.value)

    @staticmethod
    def _resolve_method(value: FuelCalculationMethod | str) -> FuelCalculationMethod:
        try:
            return FuelCalculationMethod(value)
        except ValueError:
            raise UnknownCalculationMethodError(str(value)) from None

    @staticmethod
    def _check_fuel_lines(lines: Iterable[FuelLineData]) -> None:
        # Depletions are keyed by stock item, so one line per item
        seen: set[UUID] = set()
        for line in lines:
            if line.stock_item_id in seen:
                raise DuplicateFuelLineError(str(line.stock_item_id))
            seen.add(line.stock_item_id)

    def _planned_fuel(
        self,
        method: FuelCalculationMethod,
        trip_date: date,
        vehicle: Vehicle,
        odometer_start: Decimal | None,
        odometer_end: Decimal | None,
        segments: Sequence[RouteSegment],
    ) -> Decimal:
        policy = self._call("season_settings", "get_season_policy", self._season.get_season_policy)
        winter = is_winter(trip_date, policy)
        profile = vehicle.rate_profile()
        planned = planned_fuel_by_method(
            method,
            resolve_base_rate(profile, winter),
            distance_km(odometer_start, odometer_end),
            segments,
            profile,
        )
        logger.debug(
            "waybill_planned_fuel_computed",
            extra={
                "method": method.value,
                "is_winter": winter,
                "segment_count": len(segments),
                "planned": str(planned),
            },
        )
        return planned

    def _validate_fuel(self, waybill: Waybill) -> None:
        self._check_odometer(waybill.odometer_start, waybill.odometer_end)
        for line in waybill.fuel_lines:
            result = validate_fuel_balance(
                line.fuel_start,
                line.fuel_received,
                line.fuel_consumed,
                line.fuel_end,
                tolerance=self._rules.fuel_balance_tolerance,
            )
            if not result.is_valid:
                raise FuelBalanceMismatchError(
                    str(line.stock_item_id),
                    str(result.expected_end),
                    str(result.actual_end),
                    str(result.difference),
                )

    def _norm_excesses(self, actor: ActorContext, waybill: Waybill) -> list[dict[str, str]]:
        threshold = self._rules.norm_excess_threshold
        lines = []
        for line in waybill.fuel_lines:
            excess = norm_excess(line.fuel_consumed, line.fuel_planned, threshold)
            if excess is not None:
                lines.append({
                    "stock_item_id": str(line.stock_item_id),
                    "consumed": str(excess.consumed),
                    "planned": str(excess.planned),
                    "excess_percent": str(excess.excess_percent),
                })
        if lines and not actor.can_override_norm:
            logger.warning(
                "norm_override_required",
                extra={"waybill_id": str(waybill.id), "line_count": len(lines)},
            )
            raise AuthorizationError(str(waybill.id), str(threshold), lines)
        return lines

    def _check_chain(self, waybill: Waybill) -> None:
        """The vehicle's odometer and fuel chain must stay in posting order."""
        last_posted = self._session.execute(
            select(Waybill.number, Waybill.odometer_end)
            .where(
                Waybill.vehicle_id == waybill.vehicle_id,
                Waybill.status == WaybillStatus.POSTED.value,
                Waybill.id != waybill.id,
            )
            .order_by(Waybill.date.desc(), Waybill.odometer_end.desc().nulls_last())
            .limit(1)
        ).first()
        if (
            last_posted is not None
            and last_posted.odometer_end is not None
            and waybill.odometer_start is not None
            and waybill.odometer_start < last_posted.odometer_end
        ):
            raise OdometerConflictError(
                str(waybill.odometer_start),
                str(last_posted.odometer_end),
                last_posted.number,
            )

        earlier = self._session.execute(
            select(Waybill.number)
            .where(
                Waybill.vehicle_id == waybill.vehicle_id,
                Waybill.status.in_((WaybillStatus.DRAFT.value, WaybillStatus.SUBMITTED.value)),
                Waybill.id != waybill.id,
                Waybill.date < waybill.date,
            )
            .order_by(Waybill.date, Waybill.number)
        ).scalars().all()
        if earlier:
            raise ChainIntegrityError(str(waybill.id), [n or "" for n in earlier])

    def _run_guards(
        self, actor: ActorContext, waybill: Waybill, transition: Transition,
    ) -> list[dict[str, str]]:
        """Evaluate the transition's guards in order; return norm excesses."""
        excesses: list[dict[str, str]] = []
        for guard in transition.guards:
            if guard.name == FUEL_BALANCED.name:
                self._validate_fuel(waybill)
            elif guard.name == CHAIN_ORDERED.name:
                self._check_chain(waybill)
            elif guard.name == WITHIN_NORM.name:
                excesses = self._norm_excesses(actor, waybill)
            else:
                raise ValueError(f"No check registered for transition guard {guard.name!r}")
        return excesses

    # =========================================================================
    # Row builders
    # =========================================================================

    @staticmethod
    def _route_rows(legs: Iterable[RouteLegData]) -> list[WaybillRoute]:
        return [
            WaybillRoute(
                leg_order=index,
                distance_km=leg.distance_km,
                is_city_driving=leg.is_city_driving,
                is_warming=leg.is_warming,
                is_mountain_driving=leg.is_mountain_driving,
                from_point=leg.from_point,
                to_point=leg.to_point,
                comment=leg.comment,
            )
            for index, leg in enumerate(legs)
        ]

    @staticmethod
    def _fuel_rows(lines: Iterable[FuelLineData], planned: Decimal) -> list[WaybillFuelLine]:
        # The first line carries the planned figure
        return [
            WaybillFuelLine(
                line_order=index,
                stock_item_id=line.stock_item_id,
                fuel_start=line.fuel_start,
                fuel_received=line.fuel_received,
                fuel_consumed=line.fuel_consumed,
                fuel_end=line.fuel_end,
                fuel_planned=planned if index == 0 else None,
            )
            for index, line in enumerate(lines)
        ]

    @staticmethod
    def _snapshot(waybill: Waybill) -> dict[str, Any]:
        return {
            "number": waybill.number,
            "status": waybill.status,
            "date": waybill.date,
            "odometer_start": waybill.odometer_start,
            "odometer_end": waybill.odometer_end,
            "fuel_calculation_method": waybill.fuel_calculation_method,
            "route_count": len(waybill.routes),
            "fuel_lines": [
                {
                    "stock_item_id": fl.stock_item_id,
                    "fuel_planned": fl.fuel_planned,
                    "fuel_consumed": fl.fuel_consumed,
                    "fuel_end": fl.fuel_end,
                }
                for fl in waybill.fuel_lines
            ],
        }

    # =========================================================================
    # Create
    # =========================================================================

    def _reserve(
        self,
        actor: ActorContext,
        blank_id: UUID | None,
        driver_id: UUID,
        department_id: UUID | None,
    ) -> DocumentReservation:
        if blank_id is not None:
            return self._call(
                "documents",
                "reserve_specific",
                self._documents.reserve_specific,
                actor.organization_id,
                blank_id,
                driver_id,
                department_id,
            )
        return self._call(
            "documents",
            "reserve_next",
            self._documents.reserve_next,
            actor.organization_id,
            driver_id,
            department_id,
        )

    def create_waybill(self, actor: ActorContext, request: CreateWaybillRequest) -> WaybillInfo:
        """
        Create a DRAFT waybill with a reserved blank and planned fuel.

        Postconditions:
            - The blank is RESERVED and the waybill number is its printed
              form.
            - The first fuel line carries the planned figure.
            - A CREATE audit entry exists.
            - On any failure nothing is persisted.
        """
        method = self._resolve_method(
            request.fuel_calculation_method or self._rules.default_calculation_method
        )
        self._check_fuel_lines(request.fuel_lines)

        with LogContext.bind(actor_id=str(actor.actor_id)):
            try:
                self._check_odometer(request.odometer_start, request.odometer_end)
                self._check_method_prerequisites(
                    method, request.routes, request.odometer_start, request.odometer_end,
                )

                vehicle = self._session.get(Vehicle, request.vehicle_id)
                if vehicle is None:
                    raise EntityNotFoundError("Vehicle", str(request.vehicle_id))
                driver = self._session.get(Driver, request.driver_id)
                if driver is None:
                    raise EntityNotFoundError("Driver", str(request.driver_id))

                department_id = (
                    request.department_id or actor.department_id or vehicle.department_id
                )
                reservation = self._reserve(actor, request.blank_id, driver.id, department_id)

                planned = self._planned_fuel(
                    method,
                    request.date,
                    vehicle,
                    request.odometer_start,
                    request.odometer_end,
                    [leg.to_segment() for leg in request.routes],
                )

                waybill = Waybill(
                    number=reservation.formatted_number,
                    organization_id=actor.organization_id,
                    department_id=department_id,
                    vehicle_id=vehicle.id,
                    driver_id=driver.id,
                    blank_id=reservation.blank_id,
                    date=request.date,
                    odometer_start=request.odometer_start,
                    odometer_end=request.odometer_end,
                    is_city_driving=request.is_city_driving,
                    is_warming=request.is_warming,
                    fuel_calculation_method=method.value,
                    status=WaybillStatus.DRAFT.value,
                    notes=request.notes,
                    created_by_id=actor.actor_id,
                )
                waybill.routes = self._route_rows(request.routes)
                waybill.fuel_lines = self._fuel_rows(request.fuel_lines, planned)
                self._session.add(waybill)
                self._session.flush()

                self._record(
                    actor,
                    AuditAction.CREATE,
                    waybill.id,
                    f"Waybill {waybill.number} created",
                    after=self._snapshot(waybill),
                )

                info = WaybillInfo.from_model(waybill)
                self._commit()
            except Exception:
                self._rollback()
                raise

        logger.info(
            "waybill_created",
            extra={
                "waybill_id": str(info.id),
                "number": info.number,
                "method": method.value,
                "fuel_planned": str(planned),
            },
        )
        return info

    # =========================================================================
    # Update
    # =========================================================================

    def update_waybill(
        self,
        actor: ActorContext,
        waybill_id: UUID,
        request: UpdateWaybillRequest,
        expected_version: int | None = None,
    ) -> WaybillInfo:
        """
        Edit a DRAFT or SUBMITTED waybill.

        Supplied ``routes`` / ``fuel_lines`` replace the stored sets.  When
        fuel lines are not supplied the first stored line's planned figure
        is refreshed.
        """
        requested_method = None
        if request.fuel_calculation_method is not None:
            requested_method = self._resolve_method(request.fuel_calculation_method)
        if request.fuel_lines is not None:
            self._check_fuel_lines(request.fuel_lines)

        with LogContext.bind(actor_id=str(actor.actor_id), waybill_id=str(waybill_id)):
            try:
                waybill = self._load_for_update(waybill_id)
                self._check_version(waybill, expected_version)
                if waybill.is_terminal:
                    raise WaybillImmutableError(str(waybill_id), waybill.status, "update")

                before = self._snapshot(waybill)

                odometer_start = (
                    request.odometer_start
                    if request.odometer_start is not None
                    else waybill.odometer_start
                )
                odometer_end = (
                    request.odometer_end
                    if request.odometer_end is not None
                    else waybill.odometer_end
                )
                self._check_odometer(odometer_start, odometer_end)

                method = requested_method or self._resolve_method(
                    waybill.fuel_calculation_method
                )
                routes_for_check = (
                    request.routes if request.routes is not None else list(waybill.routes)
                )
                self._check_method_prerequisites(
                    method, routes_for_check, odometer_start, odometer_end,
                )

                if request.date is not None:
                    waybill.date = request.date
                if request.is_city_driving is not None:
                    waybill.is_city_driving = request.is_city_driving
                if request.is_warming is not None:
                    waybill.is_warming = request.is_warming
                if request.notes is not None:
                    waybill.notes = request.notes
                waybill.odometer_start = odometer_start
                waybill.odometer_end = odometer_end
                waybill.fuel_calculation_method = method.value
                waybill.updated_by_id = actor.actor_id

                if request.routes is not None:
                    waybill.routes = self._route_rows(request.routes)
                    segments = [leg.to_segment() for leg in request.routes]
                else:
                    segments = [
                        RouteSegment(
                            distance_km=r.distance_km,
                            is_city_driving=r.is_city_driving,
                            is_warming=r.is_warming,
                            is_mountain_driving=r.is_mountain_driving,
                        )
                        for r in waybill.routes
                    ]

                vehicle = self._session.get(Vehicle, waybill.vehicle_id)
                if vehicle is None:
                    raise EntityNotFoundError("Vehicle", str(waybill.vehicle_id))
                planned = self._planned_fuel(
                    method, waybill.date, vehicle, odometer_start, odometer_end, segments,
                )

                if request.fuel_lines is not None:
                    waybill.fuel_lines = self._fuel_rows(request.fuel_lines, planned)
                elif waybill.fuel_lines:
                    waybill.fuel_lines[0].fuel_planned = planned

                self._session.flush()

                self._record(
                    actor,
                    AuditAction.UPDATE,
                    waybill.id,
                    f"Waybill {waybill.number} updated",
                    before=before,
                    after=self._snapshot(waybill),
                )

                info = WaybillInfo.from_model(waybill)
                self._commit()
            except StaleDataError as exc:
                self._rollback()
                raise OptimisticLockError("Waybill", str(waybill_id)) from exc
            except Exception:
                self._rollback()
                raise

        logger.info(
            "waybill_updated",
            extra={
                "waybill_id": str(waybill_id),
                "routes_replaced": request.routes is not None,
                "fuel_lines_replaced": request.fuel_lines is not None,
                "fuel_planned": str(planned),
            },
        )
        return info

    # =========================================================================
    # Status transitions
    # =========================================================================

    def change_status(
        self,
        actor: ActorContext,
        waybill_id: UUID,
        target: WaybillStatus | str,
        reason: str | None = None,
        expected_version: int | None = None,
    ) -> WaybillInfo:
        """
        Move a waybill to ``target``.

        Preconditions:
            - ``current -> target`` is in WAYBILL_WORKFLOW.
            - The transition's guards pass, in order.  SUBMITTED and
              POSTED need an ordered odometer and balanced fuel lines.
              POSTED also needs the vehicle chain in order (start not below
              the last posted end, no earlier unposted waybill) and
              consumption within norm or ``actor.can_override_norm``.

        Postconditions (POSTED):
            - One stock depletion per fuel line with positive consumption.
            - The reserved blank is USED.
            - ``posted_by_id`` and ``status_changed_at`` set.
            - STATUS_CHANGE (and NORM_OVERRIDE when overridden) audited.
        """
        target = WaybillStatus(target)

        with LogContext.bind(actor_id=str(actor.actor_id), waybill_id=str(waybill_id)):
            try:
                waybill = self._load_for_update(waybill_id)
                self._check_version(waybill, expected_version)
                current = waybill.status

                transition = WAYBILL_WORKFLOW.require_transition(
                    str(waybill_id), current, target.value,
                )

                excesses = self._run_guards(actor, waybill, transition)

                if transition.posts_stock:
                    self._apply_posting_effects(actor, waybill)
                elif target == WaybillStatus.CANCELLED:
                    self._return_blank_on_cancel(actor, waybill)

                self._set_status(actor, waybill, target)

                if excesses:
                    self._record(
                        actor,
                        AuditAction.NORM_OVERRIDE,
                        waybill.id,
                        f"Fuel norm exceeded on waybill {waybill.number}; posted by override",
                        before={
                            "fuel_lines": [
                                {"stock_item_id": e["stock_item_id"], "planned": e["planned"]}
                                for e in excesses
                            ],
                        },
                        after={
                            "threshold": str(self._rules.norm_excess_threshold),
                            "fuel_lines": excesses,
                            "reason": reason,
                        },
                    )

                self._record(
                    actor,
                    AuditAction.STATUS_CHANGE,
                    waybill.id,
                    f"Waybill {waybill.number}: {current} -> {target.value}",
                    before={"status": current},
                    after={"status": target.value, "reason": reason},
                )

                info = WaybillInfo.from_model(waybill)
                self._commit()
            except StaleDataError as exc:
                self._rollback()
                raise OptimisticLockError("Waybill", str(waybill_id)) from exc
            except Exception:
                self._rollback()
                raise

        if excesses:
            logger.info(
                "norm_override_recorded",
                extra={"waybill_id": str(waybill_id), "line_count": len(excesses)},
            )
        logger.info(
            "waybill_status_changed",
            extra={
                "waybill_id": str(waybill_id),
                "from_status": current,
                "to_status": target.value,
            },
        )
        return info

    def _apply_posting_effects(self, actor: ActorContext, waybill: Waybill) -> None:
        """Stock depletion and blank consumption for a POSTED transition."""
        for line in waybill.fuel_lines:
            consumed = to_decimal(line.fuel_consumed)
            if consumed is None or consumed <= 0:
                continue
            self._call(
                "stock",
                "append_depletion",
                self._stock.append_depletion,
                actor.organization_id,
                line.stock_item_id,
                consumed,
                self._rules.stock_source_type,
                waybill.id,
                actor.actor_id,
                f"Waybill {waybill.number}",
            )

        if waybill.blank_id is not None:
            self._call(
                "documents", "mark_used", self._documents.mark_used, waybill.blank_id,
            )

    def _return_blank_on_cancel(self, actor: ActorContext, waybill: Waybill) -> None:
        if waybill.blank_id is None:
            return
        self._call(
            "documents",
            "release",
            self._documents.release,
            actor.organization_id,
            waybill.blank_id,
        )
        # The number stays on the cancelled waybill; the blank may back another
        waybill.blank_id = None

    def _set_status(self, actor: ActorContext, waybill: Waybill, target: WaybillStatus) -> None:
        waybill.status = target.value
        waybill.status_changed_at = self._clock.now()
        waybill.updated_by_id = actor.actor_id
        if target == WaybillStatus.SUBMITTED:
            waybill.submitted_by_id = actor.actor_id
        elif target == WaybillStatus.POSTED:
            waybill.posted_by_id = actor.actor_id
        self._session.flush()

    def bulk_change_status(
        self,
        actor: ActorContext,
        waybill_ids: Iterable[UUID],
        target: WaybillStatus | str,
        stop_on_first_error: bool = True,
    ) -> BulkStatusResult:
        """
        Transition many waybills, oldest trip date first.

        Each waybill is its own transaction.  Domain errors are collected;
        with ``stop_on_first_error`` the remaining ids are reported skipped.
        """
        ids = list(dict.fromkeys(waybill_ids))
        rows = self._session.execute(
            select(Waybill.id, Waybill.date, Waybill.number).where(Waybill.id.in_(ids))
        ).all()
        self._session.rollback()

        known = {row.id: (row.date, row.number or "", str(row.id)) for row in rows}
        ordered = sorted(known, key=lambda i: known[i]) + [i for i in ids if i not in known]

        succeeded: list[UUID] = []
        failed: list[BulkFailure] = []
        skipped: list[UUID] = []

        for index, waybill_id in enumerate(ordered):
            try:
                self.change_status(actor, waybill_id, target)
            except FleetKernelError as exc:
                failed.append(BulkFailure(waybill_id, exc.code, str(exc)))
                if stop_on_first_error:
                    skipped.extend(ordered[index + 1:])
                    break
            else:
                succeeded.append(waybill_id)

        logger.info(
            "waybill_bulk_status_changed",
            extra={
                "target": WaybillStatus(target).value,
                "succeeded": len(succeeded),
                "failed": len(failed),
                "skipped": len(skipped),
            },
        )
        return BulkStatusResult(
            succeeded=tuple(succeeded),
            failed=tuple(failed),
            skipped=tuple(skipped),
        )

    # =========================================================================
    # Delete
    # =========================================================================

    def delete_waybill(
        self,
        actor: ActorContext,
        waybill_id: UUID,
        blank_action: str = "release",
    ) -> None:
        """
        Delete a non-POSTED waybill and return its blank.

        ``blank_action="spoil"`` spoils the blank instead of releasing it.
        A blank failure does not block deletion: it is logged and recorded
        as BLANK_RELEASE_FAILED.
        """
        if blank_action not in BLANK_ACTIONS:
            raise ValueError(f"blank_action must be one of {BLANK_ACTIONS}, got {blank_action!r}")

        with LogContext.bind(actor_id=str(actor.actor_id), waybill_id=str(waybill_id)):
            try:
                waybill = self._load_for_update(waybill_id)
                if waybill.is_posted:
                    raise WaybillImmutableError(str(waybill_id), waybill.status, "delete")

                before = self._snapshot(waybill)
                blank_id = waybill.blank_id
                number = waybill.number

                if blank_id is not None:
                    self._dispose_blank(actor, waybill_id, blank_id, number, blank_action)

                self._session.delete(waybill)
                self._session.flush()

                self._record(
                    actor,
                    AuditAction.DELETE,
                    waybill_id,
                    f"Waybill {number} deleted",
                    before=before,
                    after={"blank_id": blank_id, "blank_action": blank_action},
                )
                self._commit()
            except Exception:
                self._rollback()
                raise

        logger.info(
            "waybill_deleted",
            extra={"waybill_id": str(waybill_id), "blank_action": blank_action},
        )

    def _dispose_blank(
        self,
        actor: ActorContext,
        waybill_id: UUID,
        blank_id: UUID,
        number: str | None,
        blank_action: str,
    ) -> None:
        savepoint = self._session.begin_nested()
        try:
            if blank_action == "spoil":
                self._documents.spoil(
                    actor.organization_id, blank_id, f"Waybill {number} deleted",
                )
            else:
                self._documents.release(actor.organization_id, blank_id)
            savepoint.commit()
        except Exception as exc:
            savepoint.rollback()
            logger.warning(
                "blank_release_failed",
                extra={
                    "waybill_id": str(waybill_id),
                    "blank_id": str(blank_id),
                    "blank_action": blank_action,
                },
                exc_info=True,
            )
            self._record(
                actor,
                AuditAction.BLANK_RELEASE_FAILED,
                blank_id,
                f"Blank of deleted waybill {number} could not be {blank_action}d",
                after={
                    "waybill_id": waybill_id,
                    "blank_action": blank_action,
                    "error": str(exc),
                },
                entity_type="BLANK",
            )

    # =========================================================================
    # Read
    # =========================================================================

    def get_waybill(self, waybill_id: UUID) -> WaybillInfo:
        waybill = self._session.get(Waybill, waybill_id)
        if waybill is None:
            raise EntityNotFoundError("Waybill", str(waybill_id))
        return WaybillInfo.from_model(waybill)
