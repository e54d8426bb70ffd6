"""
Fuel calculations (``fleet_kernel.domain.fuel``).

Responsibility
--------------
Pure calculation functions for waybill fuel accounting: trip distance,
normative consumption under additive coefficients, season-aware rate
selection, the three planned-fuel strategies, trip-end fuel level, and
the balance / odometer / norm-excess checks the lifecycle runs before a
status change.

Architecture position
---------------------
**Kernel domain layer** -- pure functions.  No I/O, no session, no clock.
Called by ``WaybillService`` and from tests.

Invariants enforced
-------------------
* All figures are ``Decimal``; inputs may be Decimal, int, float or numeric
  strings and are converted before any arithmetic.
* Results are rounded ``ROUND_HALF_UP`` to 0.01.
* Coefficients add (winter 0.10 + city 0.05 gives x1.15), never compound.
* Nothing here raises on bad input: invalid figures produce ``None`` or ``0``.

Failure modes
-------------
* Negative distance (end < start) -> ``distance_km`` returns ``None``.
* Unknown calculation method or non-positive base rate -> planned fuel ``0``.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")

DEFAULT_BALANCE_TOLERANCE = Decimal("0.05")

Number = Decimal | int | float | str


class FuelCalculationMethod(str, Enum):
    """How planned fuel is derived for a waybill."""

    BOILER = "BOILER"      # odometer distance at the base rate only
    SEGMENTS = "SEGMENTS"  # per-segment, each with its own coefficients
    MIXED = "MIXED"        # blended segment rate applied to odometer distance


@dataclass(frozen=True)
class FuelRateProfile:
    """Per-vehicle consumption rates (l/100 km) and percentage increases."""

    summer_rate: Decimal | None = None
    winter_rate: Decimal | None = None
    city_increase_percent: Decimal | None = None
    warming_increase_percent: Decimal | None = None
    mountain_increase_percent: Decimal | None = None


@dataclass(frozen=True)
class DrivingFlags:
    is_city_driving: bool = False
    is_warming: bool = False
    is_mountain_driving: bool = False


@dataclass(frozen=True)
class RouteSegment:
    """One leg of a trip as seen by the calculator."""

    distance_km: Decimal | None
    is_city_driving: bool = False
    is_warming: bool = False
    is_mountain_driving: bool = False


@dataclass(frozen=True)
class FuelCoefficients:
    """Additive fractional increases (0.10 means +10%)."""

    winter: Decimal = ZERO
    city: Decimal = ZERO
    warming: Decimal = ZERO
    mountain: Decimal = ZERO
    other: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return sum(
            (to_decimal(v) or ZERO for v in (
                self.winter, self.city, self.warming, self.mountain, self.other,
            )),
            ZERO,
        )


@dataclass(frozen=True)
class FuelBalanceValidation:
    is_valid: bool
    expected_end: Decimal
    actual_end: Decimal
    difference: Decimal
    error: str | None = None


@dataclass(frozen=True)
class OdometerValidation:
    is_valid: bool
    error: str | None = None


@dataclass(frozen=True)
class NormExcess:
    """A fuel line whose consumption exceeds its planned norm."""

    consumed: Decimal
    planned: Decimal
    excess_percent: Decimal


# -----------------------------------------------------------------------------
# Conversion helpers
# -----------------------------------------------------------------------------


def to_decimal(value: Any) -> Decimal | None:
    """Convert a numeric-looking value to a finite Decimal, else None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(repr(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            return None
    else:
        return None
    if not result.is_finite():
        return None
    return result


def quantize(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _percent(value: Any) -> Decimal:
    pct = to_decimal(value)
    if pct is None or pct <= 0:
        return ZERO
    return pct / HUNDRED


# -----------------------------------------------------------------------------
# Distance and consumption
# -----------------------------------------------------------------------------


def distance_km(start: Number | None, end: Number | None) -> Decimal | None:
    """Odometer delta, or None when either reading is missing or end < start."""
    s, e = to_decimal(start), to_decimal(end)
    if s is None or e is None:
        return None
    if e < s:
        return None
    return e - s


def _norm_exact(distance: Decimal, base_rate: Decimal, coefficients: FuelCoefficients) -> Decimal:
    return (distance / HUNDRED) * base_rate * (1 + coefficients.total)


def norm_consumption(
    distance: Number | None,
    base_rate: Number | None,
    coefficients: FuelCoefficients | None = None,
) -> Decimal:
    """
    ``(distance / 100) * base_rate * (1 + sum(coefficients))`` rounded to 0.01.

    Returns 0 when distance or rate is missing or non-positive.
    """
    d, r = to_decimal(distance), to_decimal(base_rate)
    if d is None or r is None or d <= 0 or r <= 0:
        return ZERO
    return quantize(_norm_exact(d, r, coefficients or FuelCoefficients()))


def resolve_base_rate(profile: FuelRateProfile | None, winter: bool) -> Decimal:
    """Season rate, falling back to the other season's rate, else 0."""
    if profile is None:
        return ZERO
    preferred, fallback = (
        (profile.winter_rate, profile.summer_rate)
        if winter
        else (profile.summer_rate, profile.winter_rate)
    )
    rate = to_decimal(preferred)
    if rate is None:
        rate = to_decimal(fallback)
    return rate if rate is not None else ZERO


def _flag_coefficients(
    flags: DrivingFlags | RouteSegment, profile: FuelRateProfile | None,
) -> FuelCoefficients:
    if profile is None:
        return FuelCoefficients()
    return FuelCoefficients(
        city=_percent(profile.city_increase_percent) if flags.is_city_driving else ZERO,
        warming=_percent(profile.warming_increase_percent) if flags.is_warming else ZERO,
        mountain=(
            _percent(profile.mountain_increase_percent)
            if flags.is_mountain_driving
            else ZERO
        ),
    )


def planned_fuel(
    distance: Number | None,
    profile: FuelRateProfile | None,
    flags: DrivingFlags,
    winter: bool,
) -> Decimal:
    """Planned litres for one stretch, with flag coefficients from ``profile``."""
    if profile is None:
        return ZERO
    base_rate = resolve_base_rate(profile, winter)
    if base_rate <= 0:
        return ZERO
    return norm_consumption(distance, base_rate, _flag_coefficients(flags, profile))


# -----------------------------------------------------------------------------
# Planned fuel strategies
# -----------------------------------------------------------------------------


def _usable_segments(segments: Sequence[RouteSegment] | None) -> list[tuple[Decimal, RouteSegment]]:
    usable = []
    for segment in segments or ():
        km = to_decimal(segment.distance_km)
        if km is not None and km > 0:
            usable.append((km, segment))
    return usable


def _boiler(
    base_rate: Decimal,
    odometer_distance: Decimal | None,
    segments: Sequence[RouteSegment] | None,
    rates: FuelRateProfile | None,
) -> Decimal:
    if odometer_distance is None or odometer_distance <= 0:
        return ZERO
    return norm_consumption(odometer_distance, base_rate, FuelCoefficients())


def _segments(
    base_rate: Decimal,
    odometer_distance: Decimal | None,
    segments: Sequence[RouteSegment] | None,
    rates: FuelRateProfile | None,
) -> Decimal:
    total = sum(
        (
            norm_consumption(km, base_rate, _flag_coefficients(segment, rates))
            for km, segment in _usable_segments(segments)
        ),
        ZERO,
    )
    return quantize(total)


def _mixed(
    base_rate: Decimal,
    odometer_distance: Decimal | None,
    segments: Sequence[RouteSegment] | None,
    rates: FuelRateProfile | None,
) -> Decimal:
    if odometer_distance is None or odometer_distance <= 0:
        return ZERO
    usable = _usable_segments(segments)
    segment_km = sum((km for km, _ in usable), ZERO)
    if segment_km <= 0:
        return ZERO
    exact = sum(
        (_norm_exact(km, base_rate, _flag_coefficients(s, rates)) for km, s in usable),
        ZERO,
    )
    average_rate = exact / (segment_km / HUNDRED)
    return quantize((odometer_distance / HUNDRED) * average_rate)


_Strategy = Callable[
    [Decimal, Decimal | None, Sequence[RouteSegment] | None, FuelRateProfile | None],
    Decimal,
]

_METHOD_TABLE: dict[FuelCalculationMethod, _Strategy] = {
    FuelCalculationMethod.BOILER: _boiler,
    FuelCalculationMethod.SEGMENTS: _segments,
    FuelCalculationMethod.MIXED: _mixed,
}

assert set(_METHOD_TABLE) == set(FuelCalculationMethod), (
    "every FuelCalculationMethod needs a strategy"
)


def planned_fuel_by_method(
    method: FuelCalculationMethod | str | None,
    base_rate: Number | None,
    odometer_distance_km: Number | None,
    segments: Sequence[RouteSegment] | None,
    rates: FuelRateProfile | None,
) -> Decimal:
    """
    Planned litres for a whole trip under ``method``.

    BOILER ignores ``segments``.  SEGMENTS ignores the odometer.  MIXED
    applies the segments' blended rate to the odometer distance.  Unknown
    methods and a non-positive base rate give 0.
    """
    try:
        resolved = FuelCalculationMethod(method)
    except ValueError:
        return ZERO
    rate = to_decimal(base_rate)
    if rate is None or rate <= 0:
        return ZERO
    return _METHOD_TABLE[resolved](rate, to_decimal(odometer_distance_km), segments, rates)


# -----------------------------------------------------------------------------
# Balance and validation
# -----------------------------------------------------------------------------


def fuel_end(
    start: Number | None,
    received: Number | None,
    consumed: Number | None,
) -> Decimal:
    """``start + received - consumed`` with missing values as 0.  Not clamped."""
    s = to_decimal(start) or ZERO
    r = to_decimal(received) or ZERO
    c = to_decimal(consumed) or ZERO
    return quantize(s + r - c)


def validate_fuel_balance(
    start: Number | None,
    received: Number | None,
    consumed: Number | None,
    end: Number | None,
    tolerance: Number = DEFAULT_BALANCE_TOLERANCE,
) -> FuelBalanceValidation:
    """Check ``start + received - consumed`` against ``end`` within tolerance."""
    if start is None and received is None and consumed is None and end is None:
        return FuelBalanceValidation(
            is_valid=True, expected_end=ZERO, actual_end=ZERO, difference=ZERO,
        )

    expected = fuel_end(start, received, consumed)
    actual = to_decimal(end) or ZERO
    difference = abs(expected - actual)
    limit = to_decimal(tolerance)
    if limit is None:
        limit = DEFAULT_BALANCE_TOLERANCE

    if difference > limit:
        return FuelBalanceValidation(
            is_valid=False,
            expected_end=expected,
            actual_end=actual,
            difference=difference,
            error=(
                f"Fuel balance mismatch: expected {expected:.2f}, "
                f"got {actual:.2f} (difference {difference:.2f})"
            ),
        )
    return FuelBalanceValidation(
        is_valid=True, expected_end=expected, actual_end=actual, difference=difference,
    )


def validate_odometer(start: Number | None, end: Number | None) -> OdometerValidation:
    """Valid unless both readings are present and end < start."""
    s, e = to_decimal(start), to_decimal(end)
    if s is None or e is None:
        return OdometerValidation(is_valid=True)
    if e < s:
        return OdometerValidation(
            is_valid=False,
            error=f"Odometer end ({e}) cannot be less than start ({s})",
        )
    return OdometerValidation(is_valid=True)


def norm_excess(
    consumed: Number | None,
    planned: Number | None,
    threshold: Number,
) -> NormExcess | None:
    """
    Return the overage when ``consumed > planned * (1 + threshold)``.

    Lines with no consumption or no planned figure are never flagged.
    """
    c, p, t = to_decimal(consumed), to_decimal(planned), to_decimal(threshold)
    if c is None or p is None or c <= 0 or p <= 0:
        return None
    if t is None:
        t = ZERO
    if c <= p * (1 + t):
        return None
    return NormExcess(
        consumed=c,
        planned=p,
        excess_percent=quantize((c - p) / p * HUNDRED),
    )
