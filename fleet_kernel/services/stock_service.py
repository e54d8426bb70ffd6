"""
StockService -- append-only fuel stock ledger.

Responsibility:
    Records fuel receipts and depletions and derives balances from them.
    Implements the ``StockLedger`` contract used when a waybill is posted.

Architecture position:
    Kernel > Services -- imperative shell.  Flushes only.

Invariants enforced:
    - Movements are never updated or deleted.
    - Depletion is idempotent per (source_type, source_id, stock_item_id):
      a second call for the same source is logged and skipped.  The unique
      constraint on StockMovement backs this up at the database level.

Failure modes:
    - ValueError for a non-positive quantity.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
from uuid import UUID

from sqlalchemy import case, func, select

from fleet_kernel.domain.dtos import MovementType
from fleet_kernel.logging_config import get_logger
from fleet_kernel.models.stock import StockMovement
from fleet_kernel.services.base import BaseService

logger = get_logger("services.stock")

_QTY = Decimal("0.001")


class StockService(BaseService[StockMovement]):
    """SQL implementation of the stock ledger."""

    def _existing(
        self,
        source_type: str,
        source_id: UUID,
        stock_item_id: UUID,
        movement_type: MovementType,
    ) -> StockMovement | None:
        return self.session.execute(
            select(StockMovement).where(
                StockMovement.source_type == source_type,
                StockMovement.source_id == source_id,
                StockMovement.stock_item_id == stock_item_id,
                StockMovement.movement_type == movement_type.value,
            )
        ).scalar_one_or_none()

    def _append(
        self,
        movement_type: MovementType,
        organization_id: UUID | None,
        stock_item_id: UUID,
        quantity: Decimal,
        source_type: str,
        source_id: UUID,
        actor_id: UUID | None,
        note: str | None,
    ) -> StockMovement:
        if quantity is None or Decimal(quantity) <= 0:
            raise ValueError(f"Stock movement quantity must be positive, got {quantity}")

        existing = self._existing(source_type, source_id, stock_item_id, movement_type)
        if existing is not None:
            logger.info(
                "stock_movement_duplicate_skipped",
                extra={
                    "movement_type": movement_type.value,
                    "stock_item_id": str(stock_item_id),
                    "source_type": source_type,
                    "source_id": str(source_id),
                },
            )
            return existing

        movement = StockMovement(
            organization_id=organization_id,
            stock_item_id=stock_item_id,
            movement_type=movement_type.value,
            quantity=Decimal(quantity),
            source_type=source_type,
            source_id=source_id,
            actor_id=actor_id,
            note=note,
            occurred_at=self.clock.now(),
        )
        self.session.add(movement)
        self.session.flush()

        logger.info(
            "stock_movement_recorded",
            extra={
                "movement_type": movement_type.value,
                "stock_item_id": str(stock_item_id),
                "quantity": str(quantity),
                "source_type": source_type,
                "source_id": str(source_id),
            },
        )
        return movement

    def append_depletion(
        self,
        organization_id: UUID | None,
        stock_item_id: UUID,
        quantity: Decimal,
        source_type: str,
        source_id: UUID,
        actor_id: UUID | None,
        note: str | None = None,
    ) -> None:
        self._append(
            MovementType.EXPENSE,
            organization_id,
            stock_item_id,
            quantity,
            source_type,
            source_id,
            actor_id,
            note,
        )

    def append_receipt(
        self,
        organization_id: UUID | None,
        stock_item_id: UUID,
        quantity: Decimal,
        source_type: str,
        source_id: UUID,
        actor_id: UUID | None,
        note: str | None = None,
    ) -> StockMovement:
        return self._append(
            MovementType.INCOME,
            organization_id,
            stock_item_id,
            quantity,
            source_type,
            source_id,
            actor_id,
            note,
        )

    def get_balance(self, stock_item_id: UUID) -> Decimal:
        """INCOME minus EXPENSE for one stock item."""
        signed = case(
            (StockMovement.movement_type == MovementType.INCOME.value, StockMovement.quantity),
            else_=-StockMovement.quantity,
        )
        total = self.session.execute(
            select(func.coalesce(func.sum(signed), 0)).where(
                StockMovement.stock_item_id == stock_item_id
            )
        ).scalar_one()
        return Decimal(str(total)).quantize(_QTY)

    def list_movements_for_source(
        self, source_type: str, source_id: UUID,
    ) -> Sequence[StockMovement]:
        return self.session.execute(
            select(StockMovement)
            .where(
                StockMovement.source_type == source_type,
                StockMovement.source_id == source_id,
            )
            .order_by(StockMovement.occurred_at, StockMovement.stock_item_id)
        ).scalars().all()
