"""
Reservation store persisted to a JSON file.
"""

import fcntl
import json
import logging
import os
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Iterator, List

import pendulum

from ..domain.exceptions import StorageError
from ..domain.models import Reservation, ReservationStatus
from .memory_store import InMemoryReservationStore, _MemoryTransaction

logger = logging.getLogger(__name__)


def reservation_to_dict(reservation: Reservation) -> Dict[str, Any]:
    return {
        "id": reservation.id,
        "facility_id": reservation.facility_id,
        "user_id": reservation.user_id,
        "start_time": reservation.start_time.isoformat(),
        "end_time": reservation.end_time.isoformat(),
        "status": reservation.status.value,
        "total_price": str(reservation.total_price),
        "created_at": reservation.created_at.isoformat() if reservation.created_at else None,
    }


def reservation_from_dict(data: Dict[str, Any]) -> Reservation:
    created_at = data.get("created_at")
    return Reservation(
        id=int(data["id"]),
        facility_id=str(data["facility_id"]),
        user_id=str(data["user_id"]),
        start_time=pendulum.parse(data["start_time"]),
        end_time=pendulum.parse(data["end_time"]),
        status=ReservationStatus(data["status"]),
        total_price=Decimal(data["total_price"]),
        created_at=pendulum.parse(created_at) if created_at else None,
    )


class JsonReservationStore(InMemoryReservationStore):
    """
    In-memory store that writes every commit to a JSON file.

    Several processes may share one file. A transaction holds an exclusive
    lock on ``<file>.lock`` and re-reads the file before its overlap checks,
    so commits from other processes are never checked against stale rows or
    overwritten. The file is written before the commit becomes visible, so a
    failed write leaves both the file and the in-memory state unchanged.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + ".lock")
        super().__init__(self._load())

    @contextmanager
    def transaction(self, facility_id: str) -> Iterator[_MemoryTransaction]:
        with self._file_lock():
            self._replace_rows(self._load())
            with super().transaction(facility_id) as tx:
                yield tx

    @contextmanager
    def _file_lock(self) -> Iterator[None]:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            lock_file = open(self.lock_path, "a", encoding="utf-8")
        except OSError as exc:
            raise StorageError(f"Failed to open lock file {self.lock_path}: {exc}") from exc

        with lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def _load(self) -> List[Reservation]:
        if not self.path.exists():
            logger.debug("No reservation file at %s. Starting fresh.", self.path)
            return []

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            reservations = [reservation_from_dict(item) for item in data.get("reservations", [])]
        except (OSError, json.JSONDecodeError) as exc:
            raise StorageError(f"Failed to read reservations from {self.path}: {exc}") from exc
        except (KeyError, ValueError, TypeError, InvalidOperation) as exc:
            raise StorageError(f"Malformed reservation data in {self.path}: {exc}") from exc

        logger.debug("Loaded %d reservation(s) from %s", len(reservations), self.path)
        return reservations

    def _persist(self, snapshot: Dict[int, Reservation]) -> None:
        data = {
            "last_updated": datetime.now(timezone.utc).isoformat(),
            "reservations": [reservation_to_dict(r) for _, r in sorted(snapshot.items())],
        }
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as exc:
            raise StorageError(f"Failed to save reservations to {self.path}: {exc}") from exc
        logger.debug("Saved %d reservation(s) to %s", len(snapshot), self.path)
