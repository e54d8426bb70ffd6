"""
Config -> Kernel Bridges.

Convert ``FleetSettings`` into kernel value objects.  These live in
fleet_config because the kernel never imports fleet_config.

Usage:
    settings = get_active_settings()
    service = WaybillService(
        session,
        rules=build_waybill_rules(settings),
        season_settings=SeasonSettingsService(
            session, default_policy=settings.default_season_policy,
        ),
    )
"""

from __future__ import annotations

from fleet_config.schema import FleetSettings
from fleet_kernel.domain.dtos import WaybillRules


def build_waybill_rules(settings: FleetSettings) -> WaybillRules:
    return WaybillRules(
        norm_excess_threshold=settings.norm_excess_threshold,
        fuel_balance_tolerance=settings.fuel_balance_tolerance,
        default_calculation_method=settings.default_calculation_method,
        stock_source_type=settings.stock_source_type,
    )
