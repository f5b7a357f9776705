"""Progress events.

Transfer tasks push events into a sink without ever waiting on it. In the service the
sink is a bounded queue drained by ``process_events`` into the in-memory ``EventLog``
that backs the /logs endpoints; tests usually hand the ``EventLog`` to the scheduler
directly.
"""
import asyncio
import logging
import threading
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Protocol

from selfsend.constants import Severity
from selfsend.formatters import format_timestamp

log = logging.getLogger("selfsend.events")

_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.SUCCESS: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


@dataclass(frozen=True, slots=True)
class Event:
    severity: Severity
    message: str
    account_ref: str = ""  # redacted, never the full address or key
    batch_id: str = ""
    timestamp: float = field(default_factory=time.time)
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "time": format_timestamp(self.timestamp),
            "severity": self.severity.value,
            "account": self.account_ref,
            "batch_id": self.batch_id,
            "message": self.message,
        }

    def format(self) -> str:
        who = f"[{self.account_ref}] " if self.account_ref else ""
        return f"[{format_timestamp(self.timestamp)}] [{self.severity.value.upper()}] {who}{self.message}"


class EventSink(Protocol):
    def emit(self, event: Event) -> None: ...


class EventLog:
    """Bounded, append-only event history with filtering and export."""

    def __init__(self, maxlen: int = 5000) -> None:
        self._events: deque[Event] = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._events)

    def emit(self, event: Event) -> None:
        with self._lock:
            self._events.append(event)
        log.log(_LEVELS[event.severity], "%s%s", f"[{event.account_ref}] " if event.account_ref else "", event.message)

    def events(self) -> list[Event]:
        with self._lock:
            return list(self._events)

    def filter(
        self,
        severity: Severity | None = None,
        text: str | None = None,
        batch_id: str | None = None,
        *,
        newest_first: bool = True,
    ) -> list[Event]:
        needle = text.lower() if text else None
        out = [
            e for e in self.events()
            if (severity is None or e.severity == severity)
            and (batch_id is None or e.batch_id == batch_id)
            and (needle is None or needle in e.message.lower() or needle in e.account_ref.lower())
        ]
        out.sort(key=lambda e: e.timestamp, reverse=newest_first)
        return out

    def counts(self) -> dict[str, int]:
        counts = {s.value: 0 for s in Severity}
        for e in self.events():
            counts[e.severity.value] += 1
        counts["total"] = sum(counts.values())
        return counts

    def export_text(self, events: list[Event] | None = None) -> str:
        events = self.filter(newest_first=False) if events is None else events
        return "\n".join(e.format() for e in events) + ("\n" if events else "")

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


class QueueSink:
    """Fire-and-forget sink over a bounded asyncio.Queue; drops when full."""

    def __init__(self, queue: asyncio.Queue) -> None:
        self.queue = queue
        self.dropped = 0

    def emit(self, event: Event) -> None:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            if self.dropped == 1 or self.dropped % 100 == 0:
                log.warning("Event queue full, %d events dropped so far", self.dropped)


async def process_events(queue: asyncio.Queue, event_log: EventLog, stop: asyncio.Event) -> None:
    """Move events from the queue into the event log until ``stop`` is set."""
    log.info("Event processor starting")
    processed = 0
    try:
        while not stop.is_set():
            try:
                event = await asyncio.wait_for(queue.get(), timeout=0.5)
            except TimeoutError:
                continue
            event_log.emit(event)
            processed += 1
    finally:
        while not queue.empty():
            event_log.emit(queue.get_nowait())
            processed += 1
        log.info("Event processor stopped after %d events", processed)
