"""Domain models for the fleet kernel."""

from fleet_kernel.models.audit_event import AuditAction, AuditLogEntry
from fleet_kernel.models.blank import Blank
from fleet_kernel.models.settings import SEASON_SETTINGS_KEY, AppSetting
from fleet_kernel.models.stock import StockMovement
from fleet_kernel.models.vehicle import Driver, Vehicle
from fleet_kernel.models.waybill import Waybill, WaybillFuelLine, WaybillRoute

__all__ = [
    "AppSetting",
    "AuditAction",
    "AuditLogEntry",
    "Blank",
    "Driver",
    "SEASON_SETTINGS_KEY",
    "StockMovement",
    "Vehicle",
    "Waybill",
    "WaybillFuelLine",
    "WaybillRoute",
]
