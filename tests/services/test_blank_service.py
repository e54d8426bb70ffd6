"""
Tests for BlankService.

Covers:
- Batch registration
- Reservation preference (issued-to-driver first, then the pool)
- Department scoping of the pool
- Release back to the originating pool
- Use and spoil status moves
- Orphaned reservation detection
"""

from uuid import uuid4

import pytest

from fleet_kernel.domain.dtos import BlankStatus
from fleet_kernel.exceptions import DocumentUnavailableError, ResourceExhaustionError


class TestCreateBatch:

    def test_available_batch(self, blank_service, test_actor_id):
        created = blank_service.create_batch("AB", 1, 5, actor_id=test_actor_id)
        assert [b.number for b in created] == [1, 2, 3, 4, 5]
        assert {b.status for b in created} == {BlankStatus.AVAILABLE.value}
        assert created[0].formatted_number == "AB 000001"

    def test_issued_batch(self, blank_service, test_actor_id):
        driver_id = uuid4()
        created = blank_service.create_batch(
            "CD", 100, 101, actor_id=test_actor_id, issued_to_driver_id=driver_id,
        )
        assert {b.status for b in created} == {BlankStatus.ISSUED.value}
        assert created[1].formatted_number == "CD 000101"

    @pytest.mark.parametrize(
        "series, number_from, number_to",
        [("", 1, 5), ("  ", 1, 5), ("AB", 0, 5), ("AB", 5, 4)],
    )
    def test_invalid_batch(self, blank_service, test_actor_id, series, number_from, number_to):
        with pytest.raises(ValueError):
            blank_service.create_batch(series, number_from, number_to, actor_id=test_actor_id)


class TestReserve:

    def test_prefers_blanks_issued_to_driver(self, blank_service, test_actor_id):
        driver_id = uuid4()
        blank_service.create_batch("AA", 1, 3, actor_id=test_actor_id)
        blank_service.create_batch("ZZ", 7, 8, actor_id=test_actor_id, issued_to_driver_id=driver_id)

        reservation = blank_service.reserve_next(None, driver_id)
        assert reservation.formatted_number == "ZZ 000007"

        other = blank_service.reserve_next(None, uuid4())
        assert other.formatted_number == "AA 000001"

    def test_lowest_number_first(self, blank_service, test_actor_id):
        blank_service.create_batch("AA", 1, 3, actor_id=test_actor_id)
        driver_id = uuid4()
        numbers = [blank_service.reserve_next(None, driver_id).number for _ in range(3)]
        assert numbers == [1, 2, 3]

    def test_department_pool(self, blank_service, test_actor_id):
        north, south = uuid4(), uuid4()
        blank_service.create_batch("AA", 1, 1, actor_id=test_actor_id, department_id=north)
        blank_service.create_batch("BB", 1, 1, actor_id=test_actor_id)

        reservation = blank_service.reserve_next(None, uuid4(), department_id=south)
        assert reservation.series == "BB"

        with pytest.raises(ResourceExhaustionError) as exc_info:
            blank_service.reserve_next(None, uuid4(), department_id=south)
        assert exc_info.value.code == "NO_DOCUMENTS_AVAILABLE"
        assert exc_info.value.department_id == str(south)

    def test_reserve_sets_timestamp(self, blank_service, test_actor_id, deterministic_clock):
        (blank,) = blank_service.create_batch("AA", 1, 1, actor_id=test_actor_id)
        blank_service.reserve_next(None, uuid4())
        assert blank.status == BlankStatus.RESERVED.value
        assert blank.reserved_at == deterministic_clock.now()

    def test_reserve_specific(self, blank_service, test_actor_id):
        blanks = blank_service.create_batch("AA", 1, 3, actor_id=test_actor_id)
        reservation = blank_service.reserve_specific(None, blanks[2].id, uuid4())
        assert reservation.blank_id == blanks[2].id
        assert blanks[2].status == BlankStatus.RESERVED.value

    def test_reserve_specific_twice(self, blank_service, test_actor_id):
        (blank,) = blank_service.create_batch("AA", 1, 1, actor_id=test_actor_id)
        blank_service.reserve_specific(None, blank.id, uuid4())
        with pytest.raises(DocumentUnavailableError):
            blank_service.reserve_specific(None, blank.id, uuid4())

    def test_reserve_specific_issued_to_other_driver(self, blank_service, test_actor_id):
        (blank,) = blank_service.create_batch(
            "AA", 1, 1, actor_id=test_actor_id, issued_to_driver_id=uuid4(),
        )
        with pytest.raises(DocumentUnavailableError) as exc_info:
            blank_service.reserve_specific(None, blank.id, uuid4())
        assert exc_info.value.reason == "issued to another driver"

    def test_reserve_specific_missing(self, blank_service):
        with pytest.raises(DocumentUnavailableError):
            blank_service.reserve_specific(None, uuid4(), uuid4())


class TestReleaseUseSpoil:

    def test_release_returns_to_pool(self, blank_service, test_actor_id):
        (blank,) = blank_service.create_batch("AA", 1, 1, actor_id=test_actor_id)
        blank_service.reserve_next(None, uuid4())
        blank_service.release(None, blank.id)
        assert blank.status == BlankStatus.AVAILABLE.value
        assert blank.reserved_at is None

    def test_release_returns_to_driver(self, blank_service, test_actor_id):
        driver_id = uuid4()
        (blank,) = blank_service.create_batch(
            "AA", 1, 1, actor_id=test_actor_id, issued_to_driver_id=driver_id,
        )
        blank_service.reserve_next(None, driver_id)
        blank_service.release(None, blank.id)
        assert blank.status == BlankStatus.ISSUED.value

    def test_release_requires_reservation(self, blank_service, test_actor_id):
        (blank,) = blank_service.create_batch("AA", 1, 1, actor_id=test_actor_id)
        with pytest.raises(DocumentUnavailableError):
            blank_service.release(None, blank.id)

    def test_mark_used(self, blank_service, test_actor_id, deterministic_clock):
        (blank,) = blank_service.create_batch("AA", 1, 1, actor_id=test_actor_id)
        blank_service.reserve_next(None, uuid4())
        blank_service.mark_used(blank.id)
        assert blank.status == BlankStatus.USED.value
        assert blank.used_at == deterministic_clock.now()

    def test_mark_used_requires_reservation_or_issue(self, blank_service, test_actor_id):
        (blank,) = blank_service.create_batch("AA", 1, 1, actor_id=test_actor_id)
        with pytest.raises(DocumentUnavailableError):
            blank_service.mark_used(blank.id)

    def test_spoil(self, blank_service, test_actor_id):
        (blank,) = blank_service.create_batch("AA", 1, 1, actor_id=test_actor_id)
        blank_service.spoil(None, blank.id, "torn")
        assert blank.status == BlankStatus.SPOILED.value
        assert blank.spoiled_reason == "torn"

    def test_used_blank_cannot_be_spoiled(self, blank_service, test_actor_id):
        (blank,) = blank_service.create_batch("AA", 1, 1, actor_id=test_actor_id)
        blank_service.reserve_next(None, uuid4())
        blank_service.mark_used(blank.id)
        with pytest.raises(DocumentUnavailableError):
            blank_service.spoil(None, blank.id, "late")

    def test_spoiled_blank_never_reserved(self, blank_service, test_actor_id):
        (blank,) = blank_service.create_batch("AA", 1, 1, actor_id=test_actor_id)
        blank_service.spoil(None, blank.id, "coffee")
        with pytest.raises(ResourceExhaustionError):
            blank_service.reserve_next(None, uuid4())


class TestOrphanedReservations:

    def test_reserved_without_waybill(self, blank_service, test_actor_id):
        blanks = blank_service.create_batch("AA", 1, 3, actor_id=test_actor_id)
        blank_service.reserve_next(None, uuid4())
        orphans = blank_service.find_orphaned_reservations()
        assert [b.id for b in orphans] == [blanks[0].id]
