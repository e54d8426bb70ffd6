"""
FleetSettings schema.

The typed form of a fleet settings YAML file.  The loader parses YAML into
these frozen dataclasses; ``fleet_config.bridges`` converts them into the
kernel's own value objects.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from fleet_kernel.domain.fuel import FuelCalculationMethod
from fleet_kernel.domain.season import SeasonPolicy


@dataclass(frozen=True)
class FleetSettings:
    """Runtime settings for the waybill lifecycle."""

    norm_excess_threshold: Decimal
    fuel_balance_tolerance: Decimal
    default_calculation_method: FuelCalculationMethod
    default_season_policy: SeasonPolicy | None
    stock_source_type: str
    source_path: str | None = None
    checksum: str = ""
