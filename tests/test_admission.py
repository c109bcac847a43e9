"""
Tests for reservation admission and the in-memory store transactions.
"""

import threading
from dataclasses import replace
from decimal import Decimal

import pendulum
import pytest

from courtbook.adapters.memory_store import InMemoryReservationStore
from courtbook.domain.exceptions import ConflictError, NotFoundError, ValidationError
from courtbook.domain.models import BookingRun, Reservation, ReservationStatus, TimeOfDay
from courtbook.services.admission import ReservationAdmission

from conftest import MONDAY, NOW, TZ, build_facility


def _run(start: str, end: str, price: str = "10.00", day=MONDAY) -> BookingRun:
    return BookingRun(
        date=day,
        start=TimeOfDay.parse(start),
        end=TimeOfDay.parse(end),
        price=Decimal(price),
    )


def _admission(store) -> ReservationAdmission:
    return ReservationAdmission(store, clock=lambda: NOW)


class TestReservationAdmission:
    """Tests for ReservationAdmission.admit."""

    def test_admits_each_run_as_pending_reservation(self, facility, store):
        created = _admission(store).admit(
            facility, "alice", [_run("09:00", "11:00", "20.00"), _run("13:00", "14:00", "15.00")]
        )

        assert [r.status for r in created] == [ReservationStatus.PENDING] * 2
        assert [r.total_price for r in created] == [Decimal("20.00"), Decimal("15.00")]
        assert created[0].start_time == pendulum.datetime(2024, 11, 25, 9, 0, tz=TZ)
        assert created[0].end_time == pendulum.datetime(2024, 11, 25, 11, 0, tz=TZ)
        assert created[0].created_at == NOW
        assert len({r.id for r in created}) == 2
        assert store.list_for_facility(facility.id) == created

    def test_conflict_rolls_back_whole_submission(self, facility, store):
        admission = _admission(store)
        existing = admission.admit(facility, "bob", [_run("13:00", "14:00")])

        with pytest.raises(ConflictError) as exc_info:
            admission.admit(facility, "alice", [_run("09:00", "10:00"), _run("12:00", "14:00")])

        assert exc_info.value.run.key == "12:00-14:00"
        assert store.list_for_facility(facility.id) == existing
        assert store.list_for_user("alice") == []

    def test_touching_runs_do_not_conflict(self, facility, store):
        admission = _admission(store)
        admission.admit(facility, "bob", [_run("10:00", "11:00")])

        created = admission.admit(facility, "alice", [_run("09:00", "10:00"), _run("11:00", "12:00")])

        assert len(created) == 2

    def test_cancelled_reservations_do_not_conflict(self, facility, store):
        admission = _admission(store)
        first = admission.admit(facility, "bob", [_run("10:00", "11:00")])[0]
        admission.cancel(first.id, "bob")

        created = admission.admit(facility, "alice", [_run("10:00", "11:00")])

        assert created[0].user_id == "alice"

    def test_other_facilities_do_not_conflict(self, facility, store):
        other = build_facility("court-2")
        admission = _admission(store)
        admission.admit(facility, "bob", [_run("10:00", "11:00")])

        created = admission.admit(other, "alice", [_run("10:00", "11:00")])

        assert created[0].facility_id == "court-2"

    def test_past_runs_are_rejected(self, facility, store):
        past_day = NOW.date().subtract(days=1)

        with pytest.raises(ValidationError, match="past"):
            _admission(store).admit(facility, "alice", [_run("10:00", "11:00", day=past_day)])

    def test_no_runs_is_rejected(self, facility, store):
        with pytest.raises(ValidationError):
            _admission(store).admit(facility, "alice", [])

    def test_concurrent_overlapping_submissions_admit_exactly_one(self, facility, store):
        """Test that racing submissions for the same window admit exactly one."""
        admission = _admission(store)
        barrier = threading.Barrier(8)
        results = []
        lock = threading.Lock()

        def submit(user_id):
            barrier.wait()
            try:
                admission.admit(facility, user_id, [_run("18:00", "20:00")])
                outcome = "ok"
            except ConflictError:
                outcome = "conflict"
            with lock:
                results.append(outcome)

        threads = [threading.Thread(target=submit, args=(f"user-{i}",)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(results) == ["conflict"] * 7 + ["ok"]
        assert len(store.list_for_facility(facility.id)) == 1


class TestTransitions:
    """Tests for pay and cancel."""

    def test_pay_then_cancel(self, facility, store):
        admission = _admission(store)
        reservation = admission.admit(facility, "alice", [_run("10:00", "11:00")])[0]

        paid = admission.pay(reservation.id, "alice")
        cancelled = admission.cancel(reservation.id, "alice")

        assert paid.status == ReservationStatus.CONFIRMED
        assert cancelled.status == ReservationStatus.CANCELLED
        assert store.get(reservation.id).status == ReservationStatus.CANCELLED

    def test_other_users_cannot_touch_reservation(self, facility, store):
        admission = _admission(store)
        reservation = admission.admit(facility, "alice", [_run("10:00", "11:00")])[0]

        with pytest.raises(NotFoundError):
            admission.pay(reservation.id, "mallory")
        with pytest.raises(NotFoundError):
            admission.cancel(reservation.id, "mallory")
        assert store.get(reservation.id).status == ReservationStatus.PENDING

    def test_unknown_reservation(self, store):
        with pytest.raises(NotFoundError):
            _admission(store).pay(404, "alice")

    def test_cannot_cancel_started_reservation(self, facility, store):
        reservation = _admission(store).admit(facility, "alice", [_run("10:00", "11:00")])[0]
        later = ReservationAdmission(store, clock=lambda: pendulum.datetime(2024, 11, 25, 10, 30, tz=TZ))

        with pytest.raises(ValidationError):
            later.cancel(reservation.id, "alice")


class TestInMemoryReservationStore:
    """Tests for transaction visibility."""

    def test_staged_rows_are_invisible_until_commit(self, facility, store):
        reservation = Reservation(
            facility_id=facility.id,
            user_id="alice",
            start_time=pendulum.datetime(2024, 11, 25, 9, 0, tz=TZ),
            end_time=pendulum.datetime(2024, 11, 25, 10, 0, tz=TZ),
            total_price=Decimal("10"),
        )

        with store.transaction(facility.id) as tx:
            staged = tx.add(reservation)
            assert store.list_for_facility(facility.id) == []
            assert tx.find_overlapping(reservation.time_range) == [staged]

        assert store.list_for_facility(facility.id) == [staged]

    def test_exception_discards_staged_rows(self, facility, store):
        reservation = Reservation(
            facility_id=facility.id,
            user_id="alice",
            start_time=pendulum.datetime(2024, 11, 25, 9, 0, tz=TZ),
            end_time=pendulum.datetime(2024, 11, 25, 10, 0, tz=TZ),
            total_price=Decimal("10"),
        )

        with pytest.raises(RuntimeError):
            with store.transaction(facility.id) as tx:
                tx.add(reservation)
                raise RuntimeError("storage went away")

        assert store.list_for_facility(facility.id) == []

    def test_writes_for_other_facility_are_rejected(self, store):
        reservation = Reservation(
            facility_id="court-2",
            user_id="alice",
            start_time=pendulum.datetime(2024, 11, 25, 9, 0, tz=TZ),
            end_time=pendulum.datetime(2024, 11, 25, 10, 0, tz=TZ),
            total_price=Decimal("10"),
        )

        with pytest.raises(ValidationError):
            with store.transaction("court-1") as tx:
                tx.add(reservation)

    def test_preloaded_rows_keep_ids(self):
        existing = Reservation(
            id=41,
            facility_id="court-1",
            user_id="alice",
            start_time=pendulum.datetime(2024, 11, 25, 9, 0, tz=TZ),
            end_time=pendulum.datetime(2024, 11, 25, 10, 0, tz=TZ),
            total_price=Decimal("10"),
        )
        store = InMemoryReservationStore([existing])

        with store.transaction("court-1") as tx:
            added = tx.add(replace(existing, id=None))

        assert store.get(41) == existing
        assert added.id == 42
