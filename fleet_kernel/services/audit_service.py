"""
AuditService -- append-only audit log.

Responsibility:
    Persists AuditEntry records and reads them back per entity.  Implements
    the ``AuditLog`` contract used by WaybillService.

Architecture position:
    Kernel > Services -- imperative shell.  Flushes only.

Invariants enforced:
    - Entries are never updated or deleted.
    - ``before`` / ``after`` snapshots are stored as plain JSON: Decimal,
      UUID, date and enum values are rendered as strings first.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import select

from fleet_kernel.domain.dtos import AuditEntry
from fleet_kernel.logging_config import get_logger
from fleet_kernel.models.audit_event import AuditLogEntry
from fleet_kernel.services.base import BaseService

logger = get_logger("services.audit")


def to_json_safe(value: Any) -> Any:
    """Recursively convert a snapshot into JSON-storable primitives."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): to_json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_safe(v) for v in value]
    return value


class AuditService(BaseService[AuditLogEntry]):
    """SQL implementation of the audit log."""

    def append(self, entry: AuditEntry) -> AuditLogEntry:
        row = AuditLogEntry(
            organization_id=entry.organization_id,
            actor_id=entry.actor_id,
            action_type=entry.action_type,
            entity_type=entry.entity_type,
            entity_id=entry.entity_id,
            description=entry.description,
            before=to_json_safe(entry.before) if entry.before is not None else None,
            after=to_json_safe(entry.after) if entry.after is not None else None,
            occurred_at=self.clock.now(),
        )
        self.session.add(row)
        self.session.flush()

        logger.info(
            "audit_entry_recorded",
            extra={
                "action_type": entry.action_type,
                "entity_type": entry.entity_type,
                "entity_id": str(entry.entity_id),
            },
        )
        return row

    def list_for_entity(
        self,
        entity_type: str,
        entity_id: UUID,
        action_type: str | None = None,
    ) -> Sequence[AuditLogEntry]:
        stmt = select(AuditLogEntry).where(
            AuditLogEntry.entity_type == entity_type,
            AuditLogEntry.entity_id == entity_id,
        )
        if action_type is not None:
            stmt = stmt.where(AuditLogEntry.action_type == action_type)
        return self.session.execute(
            stmt.order_by(AuditLogEntry.occurred_at)
        ).scalars().all()
