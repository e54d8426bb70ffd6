"""Services for the fleet kernel (write side)."""

from fleet_kernel.services.audit_service import AuditService
from fleet_kernel.services.blank_service import BlankService
from fleet_kernel.services.interfaces import (
    AuditLog,
    DocumentRegistry,
    SeasonSettingsProvider,
    StockLedger,
)
from fleet_kernel.services.settings_service import SeasonSettingsService, StaticSeasonSettings
from fleet_kernel.services.stock_service import StockService
from fleet_kernel.services.waybill_service import WaybillService

__all__ = [
    "AuditLog",
    "AuditService",
    "BlankService",
    "DocumentRegistry",
    "SeasonSettingsProvider",
    "SeasonSettingsService",
    "StaticSeasonSettings",
    "StockLedger",
    "StockService",
    "WaybillService",
]
