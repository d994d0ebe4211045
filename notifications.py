"""
Domain events emitted by the engine, and the sink that turns them into
user-facing notifications.
"""
import logging
import threading
from collections import deque
from datetime import date, datetime, timezone
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field

from schemas import PassStatus

logger = logging.getLogger("gatepass.notifications")


class PassAdmitted(BaseModel):
    kind: Literal["pass_admitted"] = "pass_admitted"
    pass_id: str


class PassWaitlisted(BaseModel):
    kind: Literal["pass_waitlisted"] = "pass_waitlisted"
    pass_id: str


class PassStatusChanged(BaseModel):
    kind: Literal["pass_status_changed"] = "pass_status_changed"
    pass_id: str
    previous: PassStatus
    status: PassStatus


class PassPromoted(BaseModel):
    kind: Literal["pass_promoted"] = "pass_promoted"
    pass_id: str
    student_name: str
    out_date: date
    cause: Literal["cancellation", "capacity"]


class PassScannedOut(BaseModel):
    kind: Literal["pass_scanned_out"] = "pass_scanned_out"
    pass_id: str


class PassScannedIn(BaseModel):
    kind: Literal["pass_scanned_in"] = "pass_scanned_in"
    pass_id: str


class OutingWindowOpened(BaseModel):
    kind: Literal["window_opened"] = "window_opened"


class OutingWindowClosed(BaseModel):
    kind: Literal["window_closed"] = "window_closed"


class CapacityChanged(BaseModel):
    kind: Literal["capacity_changed"] = "capacity_changed"
    previous: int
    capacity: int


DomainEvent = Union[
    PassAdmitted,
    PassWaitlisted,
    PassStatusChanged,
    PassPromoted,
    PassScannedOut,
    PassScannedIn,
    OutingWindowOpened,
    OutingWindowClosed,
    CapacityChanged,
]


class Notification(BaseModel):
    level: Literal["success", "info", "warning"]
    message: str
    pass_id: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def render(event: DomainEvent) -> Notification:
    if isinstance(event, PassAdmitted):
        return Notification(level="success", message="Outing application submitted and approved!",
                            pass_id=event.pass_id)
    if isinstance(event, PassWaitlisted):
        return Notification(level="warning",
                            message="Capacity reached. You have been placed on the WAITLIST.",
                            pass_id=event.pass_id)
    if isinstance(event, PassStatusChanged):
        return Notification(level="info",
                            message=f"Pass {event.pass_id} status updated to {event.status.value}",
                            pass_id=event.pass_id)
    if isinstance(event, PassPromoted):
        if event.cause == "capacity":
            message = (f"Waitlisted student {event.student_name} for {event.out_date.isoformat()} "
                       "has been approved due to capacity increase!")
        else:
            message = f"Waitlisted student {event.student_name} has been approved!"
        return Notification(level="info", message=message, pass_id=event.pass_id)
    if isinstance(event, PassScannedOut):
        return Notification(level="success", message=f"Exit marked successfully for pass {event.pass_id}",
                            pass_id=event.pass_id)
    if isinstance(event, PassScannedIn):
        return Notification(level="success", message=f"Entry marked successfully for pass {event.pass_id}",
                            pass_id=event.pass_id)
    if isinstance(event, OutingWindowOpened):
        return Notification(level="info", message="Outing window is now OPEN")
    if isinstance(event, OutingWindowClosed):
        return Notification(level="info", message="Outing window is now CLOSED")
    if isinstance(event, CapacityChanged):
        return Notification(level="info", message=f"Capacity changed from {event.previous} to {event.capacity}")
    raise TypeError(f"Unhandled event type: {type(event).__name__}")


class NotificationSink:
    """Keeps the most recent notifications for display and logs each one."""

    def __init__(self, maxlen: int = 50):
        self._feed = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    def publish(self, events: List[DomainEvent]) -> List[Notification]:
        notes = [render(e) for e in events]
        with self._lock:
            self._feed.extend(notes)
        for note in notes:
            logger.info("[%s] %s", note.level, note.message)
        return notes

    def recent(self, limit: Optional[int] = None) -> List[Notification]:
        with self._lock:
            items = list(reversed(self._feed))
        return items[:limit] if limit else items
