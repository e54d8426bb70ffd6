"""
Season classification (``fleet_kernel.domain.season``).

Responsibility
--------------
Decide whether a trip date falls in the winter fuel-norm season under a
configurable policy.  Two policy shapes exist: a month/day pair that recurs
every year, and an absolute manual date range.

Architecture position
---------------------
**Kernel domain layer** -- pure functions and frozen value objects.  ZERO
I/O.  Policies are loaded by ``SeasonSettingsService`` and passed in.

Invariants enforced
-------------------
* ``is_winter`` never raises.  An unparseable date, a missing policy or a
  month/day pair that does not exist in the date's year all yield ``False``.
* Recurring boundaries are half-open: the winter start day is winter, the
  summer start day is summer.

Failure modes
-------------
* Malformed stored settings -> ``parse_season_policy`` returns ``None`` and
  the caller classifies every date as summer.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any

from fleet_kernel.logging_config import get_logger

logger = get_logger("domain.season")


@dataclass(frozen=True)
class RecurringSeasonPolicy:
    """Winter and summer start as month/day pairs that repeat each year."""

    summer_month: int
    summer_day: int
    winter_month: int
    winter_day: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "recurring",
            "summer_month": self.summer_month,
            "summer_day": self.summer_day,
            "winter_month": self.winter_month,
            "winter_day": self.winter_day,
        }


@dataclass(frozen=True)
class ManualSeasonPolicy:
    """Winter as an absolute, inclusive calendar range."""

    winter_start: date
    winter_end: date

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "manual",
            "winter_start": self.winter_start.isoformat(),
            "winter_end": self.winter_end.isoformat(),
        }


SeasonPolicy = RecurringSeasonPolicy | ManualSeasonPolicy


def coerce_date(value: date | datetime | str | None) -> date | None:
    """Normalize a date-like value, returning None when it cannot be read."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return date.fromisoformat(text)
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            return None
    return None


def is_winter(value: date | datetime | str | None, policy: SeasonPolicy | None) -> bool:
    """
    True when ``value`` falls in the winter season defined by ``policy``.

    Recurring policy: when summer starts before winter in the calendar year
    (April before November), winter wraps the year end and is
    ``d < summer_start or d >= winter_start``.  Otherwise winter is the
    contiguous ``[winter_start, summer_start)``.  A boundary day past the end of
    its month (Feb 29 outside leap years) rolls into the next month.

    Manual policy: ``start <= d <= end``.  A reversed range is read as
    wrapping (``d >= start or d <= end``).
    """
    d = coerce_date(value)
    if d is None or policy is None:
        return False

    if isinstance(policy, ManualSeasonPolicy):
        start, end = policy.winter_start, policy.winter_end
        if start <= end:
            return start <= d <= end
        return d >= start or d <= end

    if isinstance(policy, RecurringSeasonPolicy):
        summer_start = _boundary(d.year, policy.summer_month, policy.summer_day)
        winter_start = _boundary(d.year, policy.winter_month, policy.winter_day)
        if summer_start is None or winter_start is None:
            return False
        if summer_start < winter_start:
            return d < summer_start or d >= winter_start
        return winter_start <= d < summer_start

    return False


def _boundary(year: int, month: Any, day: Any) -> date | None:
    """Anchor month/day in ``year``. A day past the month end rolls forward (Feb 29 -> Mar 1)."""
    if not isinstance(month, int) or not isinstance(day, int):
        return None
    if not 1 <= month <= 12 or not 1 <= day <= 31:
        return None
    return date(year, month, 1) + timedelta(days=day - 1)


def _month_day(mapping: Mapping[str, Any], month_key: str, day_key: str) -> tuple[int, int] | None:
    month, day = mapping.get(month_key), mapping.get(day_key)
    if isinstance(month, bool) or isinstance(day, bool):
        return None
    if not isinstance(month, int) or not isinstance(day, int):
        return None
    if not 1 <= month <= 12 or not 1 <= day <= 31:
        return None
    # Feb 29 is a real calendar date in leap years
    try:
        date(2024, month, day)
    except ValueError:
        return None
    return month, day


def parse_season_policy(data: Mapping[str, Any] | None) -> SeasonPolicy | None:
    """
    Build a policy from its stored mapping form.

    Recurring: ``{"type": "recurring", "summer_month", "summer_day",
    "winter_month", "winter_day"}``.  Manual: ``{"type": "manual",
    "winter_start", "winter_end"}`` with ISO dates.  Returns None for
    anything else.
    """
    if not isinstance(data, Mapping):
        return None

    kind = data.get("type")
    if kind == "recurring":
        summer = _month_day(data, "summer_month", "summer_day")
        winter = _month_day(data, "winter_month", "winter_day")
        if summer is None or winter is None:
            logger.warning("season_policy_malformed", extra={"policy_type": kind})
            return None
        return RecurringSeasonPolicy(
            summer_month=summer[0],
            summer_day=summer[1],
            winter_month=winter[0],
            winter_day=winter[1],
        )

    if kind == "manual":
        raw_start, raw_end = data.get("winter_start"), data.get("winter_end")
        start = coerce_date(raw_start) if isinstance(raw_start, (str, date)) else None
        end = coerce_date(raw_end) if isinstance(raw_end, (str, date)) else None
        if start is None or end is None:
            logger.warning("season_policy_malformed", extra={"policy_type": kind})
            return None
        return ManualSeasonPolicy(winter_start=start, winter_end=end)

    logger.warning("season_policy_unknown_type", extra={"policy_type": str(kind)})
    return None
