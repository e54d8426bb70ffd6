"""
Collaborator contracts for the waybill lifecycle.

WaybillService depends on these protocols, not on the SQL classes that
implement them, so tests can inject fakes (including ones that fail
mid-posting).  Every implementation shares the caller's session and only
flushes.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Protocol, runtime_checkable
from uuid import UUID

from fleet_kernel.domain.dtos import AuditEntry, DocumentReservation
from fleet_kernel.domain.season import SeasonPolicy


@runtime_checkable
class DocumentRegistry(Protocol):
    """Serial document (blank) reservation.

    Raises ResourceExhaustionError when nothing is left to reserve and
    DocumentUnavailableError when a specific document cannot be moved.
    """

    def reserve_next(
        self,
        organization_id: UUID | None,
        driver_id: UUID,
        department_id: UUID | None = None,
    ) -> DocumentReservation: ...

    def reserve_specific(
        self,
        organization_id: UUID | None,
        document_id: UUID,
        driver_id: UUID,
        department_id: UUID | None = None,
    ) -> DocumentReservation: ...

    def release(self, organization_id: UUID | None, document_id: UUID) -> None: ...

    def spoil(
        self, organization_id: UUID | None, document_id: UUID, reason: str,
    ) -> None: ...

    def mark_used(self, document_id: UUID) -> None: ...


@runtime_checkable
class StockLedger(Protocol):
    """Fuel stock ledger.  Depletion is idempotent per source and stock item."""

    def append_depletion(
        self,
        organization_id: UUID | None,
        stock_item_id: UUID,
        quantity: Decimal,
        source_type: str,
        source_id: UUID,
        actor_id: UUID | None,
        note: str | None = None,
    ) -> None: ...


@runtime_checkable
class AuditLog(Protocol):
    def append(self, entry: AuditEntry) -> None: ...


@runtime_checkable
class SeasonSettingsProvider(Protocol):
    def get_season_policy(self) -> SeasonPolicy | None: ...
