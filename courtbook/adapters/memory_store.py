"""
In-memory facility catalog and reservation store.
"""

import itertools
import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Callable, Dict, Iterable, Iterator, List, Optional

from ..domain.exceptions import NotFoundError, ValidationError
from ..domain.facility import Facility
from ..domain.models import Reservation, TimeRange

logger = logging.getLogger(__name__)


class InMemoryFacilityCatalog:
    """
    Facility lookup backed by a dict.

    An optional ``on_save`` callback lets callers persist edited facilities,
    e.g. by writing them back to the YAML configuration.
    """

    def __init__(
        self,
        facilities: Iterable[Facility] = (),
        on_save: Optional[Callable[[Facility], None]] = None,
    ):
        self._facilities: Dict[str, Facility] = {}
        self._on_save = on_save
        for facility in facilities:
            self.add(facility)

    def add(self, facility: Facility) -> None:
        if facility.id in self._facilities:
            raise ValidationError(f"Duplicate facility id: {facility.id}")
        self._facilities[facility.id] = facility

    def get(self, facility_id: str) -> Optional[Facility]:
        return self._facilities.get(facility_id)

    def all(self) -> List[Facility]:
        return list(self._facilities.values())

    def save(self, facility: Facility) -> None:
        self._facilities[facility.id] = facility
        if self._on_save:
            self._on_save(facility)


class _MemoryTransaction:
    """Staging area for one facility transaction."""

    def __init__(self, store: "InMemoryReservationStore", facility_id: str):
        self._store = store
        self.facility_id = facility_id
        self.staged: Dict[int, Reservation] = {}

    def get(self, reservation_id: int) -> Optional[Reservation]:
        if reservation_id in self.staged:
            return self.staged[reservation_id]
        return self._store.get(reservation_id)

    def find_overlapping(self, time_range: TimeRange) -> List[Reservation]:
        current = {r.id: r for r in self._store.list_for_facility(self.facility_id)}
        current.update(self.staged)
        return [
            reservation
            for reservation in current.values()
            if reservation.blocks_slots and reservation.time_range.overlaps(time_range)
        ]

    def add(self, reservation: Reservation) -> Reservation:
        self._check_facility(reservation)
        stored = replace(reservation, id=self._store._next_id())
        self.staged[stored.id] = stored
        return stored

    def update(self, reservation: Reservation) -> Reservation:
        self._check_facility(reservation)
        if self.get(reservation.id) is None:
            raise NotFoundError(f"Reservation {reservation.id} not found")
        self.staged[reservation.id] = reservation
        return reservation

    def _check_facility(self, reservation: Reservation) -> None:
        if reservation.facility_id != self.facility_id:
            raise ValidationError(
                f"Reservation for facility {reservation.facility_id} written in a "
                f"transaction of facility {self.facility_id}"
            )


class InMemoryReservationStore:
    """
    Reservation store with per-facility transactions.

    A transaction holds the facility's lock for its whole duration, so the
    overlap check and the insert of one submission cannot interleave with
    another submission for the same facility. Staged rows become visible to
    readers in a single step when the transaction body finishes without an
    exception; otherwise they are discarded.
    """

    def __init__(self, reservations: Iterable[Reservation] = ()):
        self._guard = threading.Lock()
        self._facility_locks: Dict[str, threading.Lock] = {}
        self._replace_rows(reservations)

    @contextmanager
    def transaction(self, facility_id: str) -> Iterator[_MemoryTransaction]:
        with self._lock_for(facility_id):
            tx = _MemoryTransaction(self, facility_id)
            yield tx
            if tx.staged:
                self._publish(tx.staged)

    def get(self, reservation_id: int) -> Optional[Reservation]:
        with self._guard:
            return self._reservations.get(reservation_id)

    def list_for_facility(
        self,
        facility_id: str,
        time_range: Optional[TimeRange] = None,
    ) -> List[Reservation]:
        with self._guard:
            reservations = list(self._reservations.values())
        return [
            r for r in reservations
            if r.facility_id == facility_id
            and (time_range is None or r.time_range.overlaps(time_range))
        ]

    def list_for_user(self, user_id: str) -> List[Reservation]:
        with self._guard:
            reservations = list(self._reservations.values())
        return [r for r in reservations if r.user_id == user_id]

    def _lock_for(self, facility_id: str) -> threading.Lock:
        with self._guard:
            return self._facility_locks.setdefault(facility_id, threading.Lock())

    def _next_id(self) -> int:
        with self._guard:
            return next(self._ids)

    def _publish(self, staged: Dict[int, Reservation]) -> None:
        with self._guard:
            snapshot = dict(self._reservations)
            snapshot.update(staged)
            self._persist(snapshot)
            self._reservations = snapshot
        logger.debug("Committed %d reservation change(s)", len(staged))

    def _persist(self, snapshot: Dict[int, Reservation]) -> None:
        """Hook for durable subclasses; called before a commit becomes visible."""

    def _replace_rows(self, reservations: Iterable[Reservation]) -> None:
        """Swap in a new set of committed rows; rows without an id get fresh ones."""
        rows: Dict[int, Reservation] = {}
        unnumbered = []
        for reservation in reservations:
            if reservation.id is None:
                unnumbered.append(reservation)
            else:
                rows[reservation.id] = reservation

        ids = itertools.count(max(rows, default=0) + 1)
        for reservation in unnumbered:
            reservation = replace(reservation, id=next(ids))
            rows[reservation.id] = reservation

        with self._guard:
            self._reservations = rows
            self._ids = ids
