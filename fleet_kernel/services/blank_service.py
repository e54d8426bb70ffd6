"""
BlankService -- serial paper form registry.

Responsibility:
    Issues, reserves, consumes and spoils the numbered blanks that back
    waybill numbers.  Implements the ``DocumentRegistry`` contract used by
    WaybillService.

Architecture position:
    Kernel > Services -- imperative shell.  Flushes only; the caller owns
    the transaction.

Invariants enforced:
    - A blank is reserved by at most one caller: ``reserve_next`` selects
      with ``FOR UPDATE SKIP LOCKED`` so concurrent reservations never pick
      the same row (PostgreSQL; SQLite serializes writers anyway).
    - Allowed moves:
        AVAILABLE/ISSUED -> RESERVED      (reserve)
        RESERVED -> AVAILABLE/ISSUED      (release)
        ISSUED/RESERVED -> USED           (mark_used)
        AVAILABLE/ISSUED/RESERVED -> SPOILED
      USED and SPOILED are final.

Failure modes:
    - ResourceExhaustionError when no blank can be reserved.
    - DocumentUnavailableError when a specific blank is missing or in the
      wrong status for the requested move.
"""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import exists, or_, select

from fleet_kernel.domain.dtos import BlankStatus, DocumentReservation
from fleet_kernel.exceptions import DocumentUnavailableError, ResourceExhaustionError
from fleet_kernel.logging_config import get_logger
from fleet_kernel.models.blank import Blank
from fleet_kernel.models.waybill import Waybill
from fleet_kernel.services.base import BaseService

logger = get_logger("services.blank")

_RESERVABLE = (BlankStatus.AVAILABLE.value, BlankStatus.ISSUED.value)
_SPOILABLE = (
    BlankStatus.AVAILABLE.value,
    BlankStatus.ISSUED.value,
    BlankStatus.RESERVED.value,
)
_USABLE = (BlankStatus.ISSUED.value, BlankStatus.RESERVED.value)


class BlankService(BaseService[Blank]):
    """SQL implementation of the document registry."""

    def create_batch(
        self,
        series: str,
        number_from: int,
        number_to: int,
        actor_id: UUID,
        organization_id: UUID | None = None,
        department_id: UUID | None = None,
        issued_to_driver_id: UUID | None = None,
    ) -> list[Blank]:
        """
        Register blanks ``number_from..number_to`` (inclusive) in ``series``.

        Blanks issued to a driver start as ISSUED, otherwise AVAILABLE.

        Raises:
            ValueError: empty series or an empty / non-positive range.
        """
        if not series or not series.strip():
            raise ValueError("Blank series must be non-empty")
        if number_from <= 0 or number_to < number_from:
            raise ValueError(
                f"Invalid blank range {number_from}..{number_to}"
            )

        status = (
            BlankStatus.ISSUED.value
            if issued_to_driver_id is not None
            else BlankStatus.AVAILABLE.value
        )
        blanks = [
            Blank(
                organization_id=organization_id,
                department_id=department_id,
                series=series.strip(),
                number=n,
                status=status,
                issued_to_driver_id=issued_to_driver_id,
                created_by_id=actor_id,
            )
            for n in range(number_from, number_to + 1)
        ]
        self.session.add_all(blanks)
        self.session.flush()

        logger.info(
            "blank_batch_created",
            extra={
                "series": series,
                "number_from": number_from,
                "number_to": number_to,
                "count": len(blanks),
                "status": status,
            },
        )
        return blanks

    def get(self, document_id: UUID) -> Blank | None:
        return self.session.get(Blank, document_id)

    def _lock(self, document_id: UUID) -> Blank | None:
        return self.session.execute(
            select(Blank)
            .where(Blank.id == document_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def reserve_next(
        self,
        organization_id: UUID | None,
        driver_id: UUID,
        department_id: UUID | None = None,
    ) -> DocumentReservation:
        """
        Reserve the lowest-numbered blank usable by ``driver_id``.

        Blanks already issued to the driver are preferred; otherwise the
        first AVAILABLE blank (in ``department_id`` or unassigned) is taken.
        """
        candidates = [
            select(Blank).where(
                Blank.status == BlankStatus.ISSUED.value,
                Blank.issued_to_driver_id == driver_id,
            ),
        ]
        available = select(Blank).where(Blank.status == BlankStatus.AVAILABLE.value)
        if department_id is not None:
            available = available.where(
                or_(Blank.department_id == department_id, Blank.department_id.is_(None))
            )
        candidates.append(available)

        for stmt in candidates:
            blank = self.session.execute(
                stmt.order_by(Blank.series, Blank.number)
                .limit(1)
                .with_for_update(skip_locked=True)
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if blank is not None:
                return self._reserve(blank, driver_id)

        logger.warning(
            "blank_reservation_exhausted",
            extra={
                "driver_id": str(driver_id),
                "department_id": str(department_id) if department_id else None,
            },
        )
        raise ResourceExhaustionError(
            str(organization_id) if organization_id else "",
            str(department_id) if department_id else None,
        )

    def reserve_specific(
        self,
        organization_id: UUID | None,
        document_id: UUID,
        driver_id: UUID,
        department_id: UUID | None = None,
    ) -> DocumentReservation:
        """Reserve one named blank for ``driver_id``."""
        blank = self._lock(document_id)
        if blank is None:
            raise DocumentUnavailableError(str(document_id), "not found")
        if blank.status not in _RESERVABLE:
            raise DocumentUnavailableError(
                str(document_id), f"status is {blank.status}"
            )
        if (
            blank.status == BlankStatus.ISSUED.value
            and blank.issued_to_driver_id not in (None, driver_id)
        ):
            raise DocumentUnavailableError(
                str(document_id), "issued to another driver"
            )
        return self._reserve(blank, driver_id)

    def _reserve(self, blank: Blank, driver_id: UUID) -> DocumentReservation:
        blank.status = BlankStatus.RESERVED.value
        blank.reserved_at = self.clock.now()
        self.session.flush()
        logger.info(
            "blank_reserved",
            extra={
                "blank_id": str(blank.id),
                "number": blank.formatted_number,
                "driver_id": str(driver_id),
            },
        )
        return DocumentReservation.from_model(blank)

    def release(self, organization_id: UUID | None, document_id: UUID) -> None:
        """Return a RESERVED blank to the pool it was taken from."""
        blank = self._lock(document_id)
        if blank is None:
            raise DocumentUnavailableError(str(document_id), "not found")
        if blank.status != BlankStatus.RESERVED.value:
            raise DocumentUnavailableError(
                str(document_id), f"cannot release from status {blank.status}"
            )
        blank.status = (
            BlankStatus.ISSUED.value
            if blank.issued_to_driver_id is not None
            else BlankStatus.AVAILABLE.value
        )
        blank.reserved_at = None
        self.session.flush()
        logger.info(
            "blank_released",
            extra={"blank_id": str(blank.id), "status": blank.status},
        )

    def mark_used(self, document_id: UUID) -> None:
        blank = self._lock(document_id)
        if blank is None:
            raise DocumentUnavailableError(str(document_id), "not found")
        if blank.status not in _USABLE:
            raise DocumentUnavailableError(
                str(document_id), f"cannot use from status {blank.status}"
            )
        blank.status = BlankStatus.USED.value
        blank.used_at = self.clock.now()
        self.session.flush()
        logger.info("blank_used", extra={"blank_id": str(blank.id)})

    def spoil(
        self, organization_id: UUID | None, document_id: UUID, reason: str,
    ) -> None:
        blank = self._lock(document_id)
        if blank is None:
            raise DocumentUnavailableError(str(document_id), "not found")
        if blank.status not in _SPOILABLE:
            raise DocumentUnavailableError(
                str(document_id), f"cannot spoil from status {blank.status}"
            )
        blank.status = BlankStatus.SPOILED.value
        blank.spoiled_reason = reason
        blank.reserved_at = None
        self.session.flush()
        logger.info(
            "blank_spoiled",
            extra={"blank_id": str(blank.id), "reason": reason},
        )

    def find_orphaned_reservations(self) -> Sequence[Blank]:
        """RESERVED blanks that no waybill references."""
        referenced = exists().where(Waybill.blank_id == Blank.id)
        return self.session.execute(
            select(Blank)
            .where(Blank.status == BlankStatus.RESERVED.value, ~referenced)
            .order_by(Blank.series, Blank.number)
        ).scalars().all()
