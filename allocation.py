"""
Capacity and waitlist allocation.

Every function here is pure: it takes the current pass collection and system
state, and returns the new values plus the domain events describing what
happened. Persisting the result is the caller's job.

Capacity is one global number but admission is counted per outing date:
a date's admitted count is the number of its passes that are APPROVED or OUT.
Waitlisted passes are always served first-come-first-served by `created_at`,
with the pass id breaking ties.
"""
import logging
from datetime import date, datetime, timezone
from typing import Callable, Iterable, List, NamedTuple, Optional

from credentials import generate_pass_id, issue_qr_token
from errors import InvalidCapacity, NotFound, WindowClosed
from notifications import (
    CapacityChanged,
    DomainEvent,
    OutingWindowClosed,
    OutingWindowOpened,
    PassAdmitted,
    PassPromoted,
    PassStatusChanged,
    PassWaitlisted,
)
from schemas import (
    ADMITTED_STATUSES,
    RELEASE_STATUSES,
    SLOT_RELEASING_STATUSES,
    Admission,
    OutingApplication,
    OutingPass,
    PassStatus,
    SystemState,
)

logger = logging.getLogger("gatepass.allocation")


class Application(NamedTuple):
    outing_pass: OutingPass
    outcome: Admission
    passes: List[OutingPass]
    events: List[DomainEvent]


class StatusChange(NamedTuple):
    outing_pass: OutingPass
    passes: List[OutingPass]
    events: List[DomainEvent]


class CapacityChange(NamedTuple):
    state: SystemState
    passes: List[OutingPass]
    events: List[DomainEvent]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def fcfs_key(outing_pass: OutingPass):
    return (outing_pass.created_at, outing_pass.id)


def admitted_count(passes: Iterable[OutingPass], out_date: date) -> int:
    return sum(1 for p in passes if p.out_date == out_date and p.status in ADMITTED_STATUSES)


def waitlist(passes: Iterable[OutingPass], out_date: date) -> List[OutingPass]:
    """Waitlisted passes for a date, earliest application first."""
    queued = [p for p in passes if p.out_date == out_date and p.status == PassStatus.WAITLISTED]
    return sorted(queued, key=fcfs_key)


def refresh_current_count(state: SystemState, passes: Iterable[OutingPass], today: date) -> SystemState:
    """`current_count` only ever reflects today's date."""
    count = admitted_count(passes, today)
    if count == state.current_count:
        return state
    return state.model_copy(update={"current_count": count})


def find_pass(passes: Iterable[OutingPass], pass_id: str) -> OutingPass:
    for p in passes:
        if p.id == pass_id:
            return p
    raise NotFound(pass_id)


def replace_pass(passes: List[OutingPass], updated: OutingPass) -> List[OutingPass]:
    return [updated if p.id == updated.id else p for p in passes]


def apply_for_outing(
    application: OutingApplication,
    passes: List[OutingPass],
    state: SystemState,
    now: Optional[datetime] = None,
    new_id: Callable[[Iterable[str]], str] = generate_pass_id,
) -> Application:
    if not state.is_window_open:
        logger.warning("Rejected application from %s: window closed", application.student_id)
        raise WindowClosed()

    now = now or utcnow()
    taken = admitted_count(passes, application.out_date)
    if taken < state.capacity:
        status, outcome = PassStatus.APPROVED, Admission.ADMITTED
    else:
        status, outcome = PassStatus.WAITLISTED, Admission.WAITLISTED

    pass_id = new_id(p.id for p in passes)
    outing_pass = OutingPass(
        id=pass_id,
        status=status,
        created_at=now,
        qr_data=issue_qr_token(application.student_id, pass_id, now),
        **application.model_dump(),
    )
    logger.info("Pass %s for %s on %s: %s (%d/%d admitted)",
                pass_id, application.student_id, application.out_date, status.value, taken, state.capacity)

    event = PassAdmitted(pass_id=pass_id) if outcome == Admission.ADMITTED else PassWaitlisted(pass_id=pass_id)
    # Most recent first; FCFS never depends on list position
    return Application(outing_pass, outcome, [outing_pass] + list(passes), [event])


def set_pass_status(pass_id: str, status: PassStatus, passes: List[OutingPass]) -> StatusChange:
    """
    Assign a status. Cancelling or rejecting a pass that held (or was about to
    hold) a slot hands that one slot to the earliest waitlisted pass of the
    same date.
    """
    current = find_pass(passes, pass_id)
    previous = current.status
    updated = current.model_copy(update={"status": status})
    passes = replace_pass(passes, updated)
    events: List[DomainEvent] = [PassStatusChanged(pass_id=pass_id, previous=previous, status=status)]
    logger.info("Pass %s: %s -> %s", pass_id, previous.value, status.value)

    if previous in SLOT_RELEASING_STATUSES and status in RELEASE_STATUSES:
        queued = waitlist(passes, updated.out_date)
        if queued:
            promoted = queued[0].model_copy(update={"status": PassStatus.APPROVED})
            passes = replace_pass(passes, promoted)
            events.append(PassPromoted(pass_id=promoted.id, student_name=promoted.student_name,
                                       out_date=promoted.out_date, cause="cancellation"))
            logger.info("Promoted %s from waitlist for %s after %s was %s",
                        promoted.id, promoted.out_date, pass_id, status.value)

    return StatusChange(find_pass(passes, pass_id), passes, events)


def set_capacity(capacity: int, passes: List[OutingPass], state: SystemState) -> CapacityChange:
    """
    Store the new capacity, then fill every date's free slots from its
    waitlist. Lowering capacity never demotes admitted passes.
    """
    if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 0:
        raise InvalidCapacity(capacity)

    previous = state.capacity
    state = state.model_copy(update={"capacity": capacity})
    events: List[DomainEvent] = [CapacityChanged(previous=previous, capacity=capacity)]

    waiting_dates = sorted({p.out_date for p in passes if p.status == PassStatus.WAITLISTED})
    for out_date in waiting_dates:
        taken = admitted_count(passes, out_date)
        for queued in waitlist(passes, out_date):
            if taken >= capacity:
                break
            promoted = queued.model_copy(update={"status": PassStatus.APPROVED})
            passes = replace_pass(passes, promoted)
            taken += 1
            events.append(PassPromoted(pass_id=promoted.id, student_name=promoted.student_name,
                                       out_date=out_date, cause="capacity"))
            logger.info("Promoted %s from waitlist for %s after capacity change to %d",
                        promoted.id, out_date, capacity)

    return CapacityChange(state, list(passes), events)


def toggle_window(state: SystemState):
    state = state.model_copy(update={"is_window_open": not state.is_window_open})
    event = OutingWindowOpened() if state.is_window_open else OutingWindowClosed()
    logger.info("Outing window is now %s", "OPEN" if state.is_window_open else "CLOSED")
    return state, [event]
