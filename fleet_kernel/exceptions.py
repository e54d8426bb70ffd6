"""
Typed Exception Hierarchy for the Fleet Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (an HTTP layer, a batch job) must render precise messages and map
errors to status codes without parsing message strings.  Every error here:
  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE attribute (machine-readable, API-safe)
  3. Carries structured DATA (current status, offending fuel-line figures)

Example - WRONG way to handle errors:
    try:
        service.change_status(actor, waybill_id, WaybillStatus.POSTED)
    except Exception as e:
        if "norm" in str(e):  # FRAGILE
            ask_for_override()

Example - RIGHT way:
    try:
        service.change_status(actor, waybill_id, WaybillStatus.POSTED)
    except AuthorizationError as e:
        render_overage(e.lines)          # Structured data
        api_response(code=e.code)        # Machine-readable

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    FleetKernelError (base)
    |
    +-- ValidationError
    |   +-- InvalidOdometerError
    |   +-- FuelBalanceMismatchError
    |   +-- RoutesRequiredForMethodError
    |   +-- OdometerRequiredForMethodError
    |   +-- InvalidRouteDistanceError
    |   +-- UnknownCalculationMethodError
    |   +-- DuplicateFuelLineError
    |   +-- OdometerConflictError
    |   +-- ChainIntegrityError
    |
    +-- StateTransitionError
    +-- WaybillImmutableError
    +-- AuthorizationError
    |
    +-- DocumentError
    |   +-- ResourceExhaustionError
    |   +-- DocumentUnavailableError
    |
    +-- DependencyFailure
    +-- EntityNotFoundError
    +-- ConcurrencyError
        +-- OptimisticLockError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|------------------------------------
Validation      | INVALID_ODOMETER              | odometer end < start
                | FUEL_BALANCE_MISMATCH         | start + received - consumed != end
                | ROUTES_REQUIRED_FOR_METHOD    | SEGMENTS/MIXED without segments
                | ODOMETER_REQUIRED_FOR_METHOD  | BOILER/MIXED without readings
                | INVALID_ROUTE_DISTANCE        | no segment has positive distance
                | UNKNOWN_CALCULATION_METHOD    | method not BOILER/SEGMENTS/MIXED
                | DUPLICATE_FUEL_LINE           | stock item on two fuel lines
                | ODOMETER_CONFLICT             | start below last posted end
                | CHAIN_INTEGRITY_ERROR         | earlier waybill still unposted
----------------|-------------------------------|------------------------------------
Lifecycle       | INVALID_STATUS_TRANSITION     | transition not in the table
                | WAYBILL_IMMUTABLE             | edit of POSTED/CANCELLED waybill
                | DELETE_POSTED_FORBIDDEN       | delete of POSTED waybill
                | NORM_OVERRIDE_REQUIRED        | overage without override right
----------------|-------------------------------|------------------------------------
Documents       | NO_DOCUMENTS_AVAILABLE        | no blank left to reserve
                | DOCUMENT_UNAVAILABLE          | requested blank not reservable
----------------|-------------------------------|------------------------------------
Infrastructure  | DEPENDENCY_FAILURE            | collaborator failed mid-transaction
                | ENTITY_NOT_FOUND              | waybill/vehicle/driver missing
                | OPTIMISTIC_LOCK_CONFLICT      | concurrent modification detected

===============================================================================
HANDLING PATTERNS
===============================================================================

1. ValidationError is always recoverable by correcting input.  Never retry
   automatically.

2. DependencyFailure means the unit of work was rolled back in full.  The
   original exception is chained as ``__cause__``.

3. OptimisticLockError is safe to retry after reloading the waybill.
"""


class FleetKernelError(Exception):
    """
    Base exception for all fleet kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "FLEET_KERNEL_ERROR"


# Validation exceptions


class ValidationError(FleetKernelError):
    """Base exception for input validation failures."""

    code: str = "VALIDATION_ERROR"


class InvalidOdometerError(ValidationError):
    """Odometer end reading is below the start reading."""

    code: str = "INVALID_ODOMETER"

    def __init__(self, odometer_start: str, odometer_end: str):
        self.odometer_start = odometer_start
        self.odometer_end = odometer_end
        super().__init__(
            f"Odometer end ({odometer_end}) cannot be less than start ({odometer_start})"
        )


class FuelBalanceMismatchError(ValidationError):
    """Fuel line does not satisfy start + received - consumed = end."""

    code: str = "FUEL_BALANCE_MISMATCH"

    def __init__(
        self,
        stock_item_id: str,
        expected_end: str,
        actual_end: str,
        difference: str,
    ):
        self.stock_item_id = stock_item_id
        self.expected_end = expected_end
        self.actual_end = actual_end
        self.difference = difference
        super().__init__(
            f"Fuel balance mismatch for stock item {stock_item_id}: "
            f"expected {expected_end}, got {actual_end} (difference {difference})"
        )


class RoutesRequiredForMethodError(ValidationError):
    """The calculation method needs route segments and none are present."""

    code: str = "ROUTES_REQUIRED_FOR_METHOD"

    def __init__(self, method: str):
        self.method = method
        super().__init__(f"Route segments are required for calculation method {method}")


class OdometerRequiredForMethodError(ValidationError):
    """The calculation method needs both odometer readings."""

    code: str = "ODOMETER_REQUIRED_FOR_METHOD"

    def __init__(self, method: str):
        self.method = method
        super().__init__(f"Odometer readings are required for calculation method {method}")


class InvalidRouteDistanceError(ValidationError):
    """No route segment has a positive distance."""

    code: str = "INVALID_ROUTE_DISTANCE"

    def __init__(self, method: str):
        self.method = method
        super().__init__(
            f"At least one route segment must have a positive distance for method {method}"
        )


class UnknownCalculationMethodError(ValidationError):
    """The fuel calculation method is not one of BOILER, SEGMENTS, MIXED."""

    code: str = "UNKNOWN_CALCULATION_METHOD"

    def __init__(self, method: str):
        self.method = method
        super().__init__(f"Unknown fuel calculation method {method!r}")


class DuplicateFuelLineError(ValidationError):
    """Two fuel lines of one waybill name the same stock item."""

    code: str = "DUPLICATE_FUEL_LINE"

    def __init__(self, stock_item_id: str):
        self.stock_item_id = stock_item_id
        super().__init__(
            f"Stock item {stock_item_id} appears on more than one fuel line"
        )


class OdometerConflictError(ValidationError):
    """Odometer start is below the end of the vehicle's last posted waybill."""

    code: str = "ODOMETER_CONFLICT"

    def __init__(
        self,
        odometer_start: str,
        last_posted_end: str,
        last_posted_number: str | None,
    ):
        self.odometer_start = odometer_start
        self.last_posted_end = last_posted_end
        self.last_posted_number = last_posted_number
        super().__init__(
            f"Odometer start ({odometer_start}) is below the end ({last_posted_end}) "
            f"of posted waybill {last_posted_number}"
        )


class ChainIntegrityError(ValidationError):
    """Earlier-dated waybills of the same vehicle are still unposted."""

    code: str = "CHAIN_INTEGRITY_ERROR"

    def __init__(self, waybill_id: str, earlier_numbers: list[str]):
        self.waybill_id = waybill_id
        self.earlier_numbers = earlier_numbers
        super().__init__(
            f"Waybill {waybill_id} cannot be posted before earlier waybills "
            f"{', '.join(earlier_numbers)} are posted or deleted"
        )


# Lifecycle exceptions


class StateTransitionError(FleetKernelError):
    """Status change is not in the allowed-transition table."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, entity_id: str, current_status: str, target_status: str):
        self.entity_id = entity_id
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            f"Transition from {current_status} to {target_status} is not allowed "
            f"for waybill {entity_id}"
        )


class WaybillImmutableError(FleetKernelError):
    """Waybill is in a state that forbids the requested mutation."""

    code: str = "WAYBILL_IMMUTABLE"

    def __init__(self, waybill_id: str, status: str, operation: str):
        self.waybill_id = waybill_id
        self.status = status
        self.operation = operation
        if operation == "delete":
            self.code = "DELETE_POSTED_FORBIDDEN"
        super().__init__(
            f"Cannot {operation} waybill {waybill_id} in status {status}"
        )


class AuthorizationError(FleetKernelError):
    """
    Fuel consumption exceeds the norm and the actor cannot override it.

    ``lines`` holds one dict per offending fuel line with stock_item_id,
    consumed, planned and excess_percent (all as strings).
    """

    code: str = "NORM_OVERRIDE_REQUIRED"

    def __init__(self, waybill_id: str, threshold: str, lines: list[dict]):
        self.waybill_id = waybill_id
        self.threshold = threshold
        self.lines = lines
        super().__init__(
            f"Fuel consumption exceeds planned by more than {threshold} on "
            f"{len(lines)} line(s) of waybill {waybill_id}; override permission required"
        )


# Document (blank) exceptions


class DocumentError(FleetKernelError):
    """Base exception for serial document registry errors."""

    code: str = "DOCUMENT_ERROR"


class ResourceExhaustionError(DocumentError):
    """No serial document is available to reserve."""

    code: str = "NO_DOCUMENTS_AVAILABLE"

    def __init__(self, organization_id: str, department_id: str | None = None):
        self.organization_id = organization_id
        self.department_id = department_id
        scope = f" in department {department_id}" if department_id else ""
        super().__init__(f"No documents available to reserve{scope}")


class DocumentUnavailableError(DocumentError):
    """A specific document cannot be reserved, released or used."""

    code: str = "DOCUMENT_UNAVAILABLE"

    def __init__(self, document_id: str, reason: str):
        self.document_id = document_id
        self.reason = reason
        super().__init__(f"Document {document_id} unavailable: {reason}")


# Infrastructure exceptions


class DependencyFailure(FleetKernelError):
    """
    A collaborator call failed inside a unit of work.

    The enclosing transaction has been rolled back.  The original exception
    is available as ``__cause__``.
    """

    code: str = "DEPENDENCY_FAILURE"

    def __init__(self, dependency: str, operation: str, detail: str):
        self.dependency = dependency
        self.operation = operation
        self.detail = detail
        super().__init__(f"{dependency}.{operation} failed: {detail}")


class EntityNotFoundError(FleetKernelError):
    """Referenced entity does not exist."""

    code: str = "ENTITY_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class ConcurrencyError(FleetKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )
