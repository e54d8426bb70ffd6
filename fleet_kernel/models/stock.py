"""
Module: fleet_kernel.models.stock
Responsibility: ORM persistence for the fuel stock ledger.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain value enums only.

Invariants enforced:
    - Movements are append-only; balances are derived by summing them.
    - At most one EXPENSE per (source_type, source_id, stock_item_id), so a
      waybill cannot deplete the same tank twice.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import DateTime, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fleet_kernel.db.base import Base, UUIDString


class StockMovement(Base):
    """One INCOME or EXPENSE entry against a stock item."""

    __tablename__ = "stock_movements"

    __table_args__ = (
        UniqueConstraint(
            "source_type",
            "source_id",
            "stock_item_id",
            "movement_type",
            name="uq_stock_movement_source",
        ),
        Index("idx_stock_movement_item", "stock_item_id"),
        Index("idx_stock_movement_source", "source_type", "source_id"),
    )

    organization_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    stock_item_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # INCOME or EXPENSE
    movement_type: Mapped[str] = mapped_column(String(10), nullable=False)

    # Always positive; direction comes from movement_type
    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    source_type: Mapped[str] = mapped_column(String(30), nullable=False)
    source_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    actor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    note: Mapped[str | None] = mapped_column(String(500), nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<StockMovement {self.movement_type} {self.quantity} of {self.stock_item_id}>"
