"""
Module: fleet_kernel.models.audit_event
Responsibility: ORM persistence for the append-only audit log.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Audit rows are append-only; AuditService exposes no update or delete.

Audit relevance:
    AuditLogEntry IS the audit trail.  Waybill creation, update, status
    change, norm override, deletion and blank reconciliation failures each
    produce one row.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from fleet_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    """Types of auditable actions."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    STATUS_CHANGE = "STATUS_CHANGE"
    NORM_OVERRIDE = "NORM_OVERRIDE"
    DELETE = "DELETE"
    BLANK_RELEASE_FAILED = "BLANK_RELEASE_FAILED"


class AuditLogEntry(Base):
    """One audit record."""

    __tablename__ = "audit_log"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_action", "action_type"),
        Index("idx_audit_occurred", "occurred_at"),
    )

    organization_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    actor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    action_type: Mapped[str] = mapped_column(String(50), nullable=False)

    # e.g. "WAYBILL", "BLANK"
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    description: Mapped[str] = mapped_column(Text, nullable=False)

    before: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    after: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditLogEntry {self.action_type} on {self.entity_type}:{self.entity_id}>"
