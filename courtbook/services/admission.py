"""
Reservation admission: the only writer of the reservation store.

Each submission re-checks overlaps and inserts its runs inside one store
transaction. The store serialises transactions per facility and publishes the
staged rows only when the whole submission succeeded.
"""

from __future__ import annotations

import logging
from typing import Callable, ContextManager, List, Optional, Protocol, Sequence

import pendulum
from pendulum import DateTime

from ..domain.exceptions import ConflictError, NotFoundError, ValidationError
from ..domain.facility import Facility
from ..domain.models import BookingRun, Reservation, TimeRange

logger = logging.getLogger(__name__)


class ReservationTransactionProtocol(Protocol):
    """Unit of work scoped to one facility."""

    facility_id: str

    def get(self, reservation_id: int) -> Optional[Reservation]:
        """Return a reservation including rows staged in this transaction."""

    def find_overlapping(self, time_range: TimeRange) -> List[Reservation]:
        """Return pending or confirmed reservations overlapping ``time_range``."""

    def add(self, reservation: Reservation) -> Reservation:
        """Stage a new reservation and return it with its assigned id."""

    def update(self, reservation: Reservation) -> Reservation:
        """Stage a changed reservation."""


class ReservationStoreProtocol(Protocol):
    """Protocol describing the reservation storage needed by the engine."""

    def transaction(self, facility_id: str) -> ContextManager[ReservationTransactionProtocol]:
        """Exclusive per-facility transaction; commits on clean exit only."""

    def get(self, reservation_id: int) -> Optional[Reservation]:
        """Return a committed reservation."""

    def list_for_facility(
        self,
        facility_id: str,
        time_range: Optional[TimeRange] = None,
    ) -> List[Reservation]:
        """Return committed reservations of a facility, optionally overlapping a range."""

    def list_for_user(self, user_id: str) -> List[Reservation]:
        """Return committed reservations of a user."""


class ReservationAdmission:
    """
    Admits booking runs as pending reservations, all or nothing.

    The overlap check runs again inside the transaction because the
    availability the user selected from may already be stale.
    """

    def __init__(
        self,
        store: ReservationStoreProtocol,
        clock: Callable[[], DateTime] = pendulum.now,
    ) -> None:
        self._store = store
        self._clock = clock

    def admit(
        self,
        facility: Facility,
        user_id: str,
        runs: Sequence[BookingRun],
    ) -> List[Reservation]:
        """
        Insert one pending reservation per run.

        Raises:
            ValidationError: if there are no runs or a run starts in the past
            ConflictError: if a run overlaps an existing reservation; nothing
                from this submission is stored
        """
        if not runs:
            raise ValidationError("Nothing to book")

        now = self._clock()
        planned = []
        for run in runs:
            time_range = run.time_range(facility.timezone)
            if time_range.start <= now:
                raise ValidationError(f"Cannot book {run}: it starts in the past")
            planned.append((run, time_range))

        with self._store.transaction(facility.id) as tx:
            created: List[Reservation] = []
            for run, time_range in planned:
                conflicts = tx.find_overlapping(time_range)
                if conflicts:
                    logger.warning(
                        "Booking conflict on facility %s: run %s overlaps reservation %s",
                        facility.id,
                        run,
                        conflicts[0].id,
                    )
                    raise ConflictError(
                        f"Run {run} is no longer available; refresh availability and try again",
                        run=run,
                    )

                created.append(
                    tx.add(
                        Reservation(
                            facility_id=facility.id,
                            user_id=user_id,
                            start_time=time_range.start,
                            end_time=time_range.end,
                            total_price=run.price,
                            created_at=now,
                        )
                    )
                )

        logger.info(
            "Admitted %d reservation(s) for user %s on facility %s",
            len(created),
            user_id,
            facility.id,
        )
        return created

    def pay(self, reservation_id: int, user_id: str) -> Reservation:
        """Record an external payment: pending -> confirmed."""
        return self._transition(reservation_id, user_id, lambda r: r.confirm())

    def cancel(self, reservation_id: int, user_id: str) -> Reservation:
        """Cancel a reservation whose start time is still in the future."""
        now = self._clock()
        return self._transition(reservation_id, user_id, lambda r: r.cancel(now))

    def _transition(
        self,
        reservation_id: int,
        user_id: str,
        change: Callable[[Reservation], Reservation],
    ) -> Reservation:
        committed = self._store.get(reservation_id)
        if committed is None or committed.user_id != user_id:
            raise NotFoundError(f"Reservation {reservation_id} not found")

        with self._store.transaction(committed.facility_id) as tx:
            # Re-read under the facility lock so concurrent transitions serialise.
            current = tx.get(reservation_id)
            updated = tx.update(change(current))

        logger.info(
            "Reservation %s of user %s is now %s",
            reservation_id,
            user_id,
            updated.status.value,
        )
        return updated
