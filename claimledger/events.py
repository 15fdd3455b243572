"""
Ledger notifications.

Events are appended in commit order. Subscribers are called synchronously
after the emitting call has committed its state. A failing subscriber is
logged and cannot undo that call.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Type, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClaimSubmitted:
    claim_id: int
    submitter: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc), compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "ClaimSubmitted",
            "claim_id": self.claim_id,
            "submitter": self.submitter,
            "timestamp": self.timestamp.isoformat().replace("+00:00", "Z"),
        }


@dataclass(frozen=True)
class ClaimEvaluated:
    claim_id: int
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc), compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "ClaimEvaluated",
            "claim_id": self.claim_id,
            "timestamp": self.timestamp.isoformat().replace("+00:00", "Z"),
        }


LedgerEvent = Union[ClaimSubmitted, ClaimEvaluated]
Listener = Callable[[LedgerEvent], None]


class EventLog:
    """In-memory, append-only event log with synchronous subscribers."""

    def __init__(self):
        self._events: List[LedgerEvent] = []
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def emit(self, event: LedgerEvent) -> None:
        with self._lock:
            self._events.append(event)
            listeners = self._listeners[:]
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("event listener %r failed on %s", listener, type(event).__name__)

    def query(
        self,
        event_type: Optional[Type] = None,
        claim_id: Optional[int] = None,
    ) -> List[LedgerEvent]:
        with self._lock:
            events = self._events[:]
        if event_type:
            events = [e for e in events if isinstance(e, event_type)]
        if claim_id is not None:
            events = [e for e in events if e.claim_id == claim_id]
        return events

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
