"""
Status records and their append-only audit history.

A `StatusRecord` is immutable; its current status is the ``to_status``
of the last history entry.  The only ways to grow a history are
`StatusRecord.submit` (first entry, from ``None``) and
`apply_transition`, which validates the change against
`status.machine` and returns a new record.  `StatusLedger` keeps the
latest record per id and serialises transitions on the same record.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from ..normalize.dates import parse_timestamp
from .machine import INITIAL_STATUS, is_valid_status, validate_transition

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class StatusHistoryEntry:
    from_status: Optional[str]
    to_status: str
    changed_at: datetime
    changed_by: Optional[str] = None
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "from": self.from_status,
            "to": self.to_status,
            "changed_at": self.changed_at.isoformat(),
        }
        if self.changed_by:
            d["changed_by"] = self.changed_by
        if self.notes:
            d["notes"] = self.notes
        return d

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StatusHistoryEntry":
        to_status = data.get("to", data.get("to_status"))
        if not isinstance(to_status, str) or not to_status:
            raise ValueError(f"history entry without a target status: {dict(data)}")
        changed_at = parse_timestamp(data.get("changed_at"))
        if changed_at is None:
            raise ValueError(f"history entry without changed_at: {dict(data)}")
        return cls(
            from_status=data.get("from", data.get("from_status")),
            to_status=to_status,
            changed_at=changed_at,
            changed_by=data.get("changed_by"),
            notes=data.get("notes", data.get("reason")),
        )


@dataclass(frozen=True)
class StatusRecord:
    record_id: str
    lifecycle: str
    history: Tuple[StatusHistoryEntry, ...] = field(default_factory=tuple)

    @property
    def status(self) -> Optional[str]:
        return self.history[-1].to_status if self.history else None

    @classmethod
    def submit(
        cls,
        record_id: str,
        lifecycle: str,
        actor: Optional[str] = None,
        at: Optional[datetime] = None,
        initial_status: Optional[str] = None,
    ) -> "StatusRecord":
        """Create a record with its first history entry (``from`` is None)."""
        status = initial_status or INITIAL_STATUS.get(lifecycle)
        if not is_valid_status(lifecycle, status):
            raise ValueError(f"Invalid initial status {status!r} for lifecycle {lifecycle}")
        entry = StatusHistoryEntry(None, status, at or _utcnow(), actor)
        return cls(str(record_id), lifecycle, (entry,))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], lifecycle: Optional[str] = None) -> "StatusRecord":
        """Load a stored record.

        Rows that predate history tracking (a ``status`` but no
        ``status_history``) get a synthetic first entry dated
        ``created_at``.
        """
        record_id = data.get("record_id", data.get("id"))
        lc = lifecycle or data.get("lifecycle")
        if record_id is None or not lc:
            raise ValueError("status record needs an id and a lifecycle")
        raw_history = data.get("status_history", data.get("history")) or []
        history = tuple(StatusHistoryEntry.from_dict(e) for e in raw_history)
        if not history and data.get("status"):
            created = parse_timestamp(data.get("created_at")) or _utcnow()
            history = (StatusHistoryEntry(None, data["status"], created, data.get("created_by")),)
        return cls(str(record_id), lc, history)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "lifecycle": self.lifecycle,
            "status": self.status,
            "status_history": [e.to_dict() for e in self.history],
        }


def validate_history(lifecycle: str, history: Iterable[StatusHistoryEntry]) -> List[str]:
    """Return a list of problems with ``history`` (empty when consistent).

    Checks that the first entry starts from ``None``, each entry starts
    where the previous one ended, timestamps never go backwards, and
    every step is allowed by the lifecycle rules.
    """
    problems: List[str] = []
    previous: Optional[StatusHistoryEntry] = None
    for i, entry in enumerate(history):
        if previous is None:
            if entry.from_status is not None:
                problems.append(f"entry 0 starts from {entry.from_status!r} instead of None")
            if not is_valid_status(lifecycle, entry.to_status):
                problems.append(f"entry 0 has unknown status {entry.to_status!r}")
        else:
            if entry.from_status != previous.to_status:
                problems.append(
                    f"entry {i} starts from {entry.from_status!r} but previous entry ended at {previous.to_status!r}"
                )
            elif not validate_transition(lifecycle, previous.to_status, entry.to_status).is_valid:
                problems.append(f"entry {i} transition {previous.to_status} -> {entry.to_status} is not allowed")
            if entry.changed_at < previous.changed_at:
                problems.append(f"entry {i} is dated before entry {i - 1}")
        previous = entry
    return problems


@dataclass(frozen=True)
class TransitionRequest:
    requested_status: str
    actor: Optional[str] = None
    notes: Optional[str] = None
    at: Optional[datetime] = None


@dataclass(frozen=True)
class TransitionOutcome:
    accepted: bool
    record: StatusRecord
    error: Optional[str] = None
    allowed: Tuple[str, ...] = field(default_factory=tuple)
    history_entry: Optional[StatusHistoryEntry] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accepted": self.accepted,
            "error": self.error,
            "allowed": list(self.allowed),
            "history_entry": self.history_entry.to_dict() if self.history_entry else None,
            "record": self.record.to_dict(),
        }


def apply_transition(record: StatusRecord, request: TransitionRequest) -> TransitionOutcome:
    """Validate and apply one status change.

    The input record is never modified.  On success the outcome carries
    a new record with one extra history entry; a request for the
    current status is accepted without adding an entry.
    """
    current = record.status
    if current is None:
        return TransitionOutcome(False, record, f"Record {record.record_id} has no status history")
    result = validate_transition(record.lifecycle, current, request.requested_status)
    if not result.is_valid:
        logger.info(
            "Rejected %s %s: %s -> %s",
            record.lifecycle,
            record.record_id,
            current,
            request.requested_status,
        )
        return TransitionOutcome(False, record, result.error, result.allowed)
    if request.requested_status == current:
        return TransitionOutcome(True, record, None, result.allowed)
    changed_at = request.at or _utcnow()
    if changed_at < record.history[-1].changed_at:
        # keep history monotonic
        changed_at = record.history[-1].changed_at
    entry = StatusHistoryEntry(current, request.requested_status, changed_at, request.actor, request.notes)
    updated = replace(record, history=record.history + (entry,))
    logger.debug("%s %s: %s -> %s", record.lifecycle, record.record_id, current, request.requested_status)
    return TransitionOutcome(True, updated, None, result.allowed, entry)


class StatusLedger:
    """In-memory store of the latest `StatusRecord` per id.

    Transitions on one record run one at a time, so two concurrent
    requests never both build on the same previous history.
    """

    def __init__(self, records: Optional[Iterable[StatusRecord]] = None) -> None:
        self._records: Dict[str, StatusRecord] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()
        for record in records or []:
            self.add(record)

    def _lock_for(self, record_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(record_id)
            if lock is None:
                lock = self._locks[record_id] = threading.Lock()
            return lock

    def add(self, record: StatusRecord) -> None:
        with self._lock_for(record.record_id):
            if record.record_id in self._records:
                raise ValueError(f"Record {record.record_id} already exists")
            self._records[record.record_id] = record

    def get(self, record_id: str) -> Optional[StatusRecord]:
        return self._records.get(record_id)

    def transition(self, record_id: str, request: TransitionRequest) -> TransitionOutcome:
        """Apply ``request`` to the stored record and keep the result.

        Raises:
            KeyError: if ``record_id`` is not in the ledger.
        """
        with self._lock_for(record_id):
            record = self._records.get(record_id)
            if record is None:
                raise KeyError(record_id)
            outcome = apply_transition(record, request)
            if outcome.accepted:
                self._records[record_id] = outcome.record
            return outcome

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records
