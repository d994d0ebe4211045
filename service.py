"""
Outing-pass operations as the API sees them.

Each method runs one engine decision inside a store transaction, commits the
result with a freshly derived `current_count`, and forwards the emitted
events to the notification sink.
"""
from datetime import date, datetime
from typing import Callable, List, Optional, Tuple

import allocation
import scanning
from credentials import read_qr_token
from errors import InvalidTransition
from notifications import DomainEvent, NotificationSink
from schemas import Admission, OutingApplication, OutingPass, PassStatus, SystemState
from store import PassStore


class GatePassService:
    def __init__(self, store: PassStore, sink: NotificationSink,
                 clock: Callable[[], datetime] = allocation.utcnow):
        self.store = store
        self.sink = sink
        self.clock = clock

    def today(self) -> date:
        return self.clock().date()

    # ---- reads ----
    def list_passes(self, student_id: Optional[str] = None) -> List[OutingPass]:
        passes = self.store.passes
        if student_id is not None:
            passes = [p for p in passes if p.student_id == student_id]
        return passes

    def get_pass(self, pass_id: str) -> OutingPass:
        return allocation.find_pass(self.store.passes, scanning.normalize_pass_id(pass_id))

    def system_state(self) -> SystemState:
        with self.store.transaction():
            state = allocation.refresh_current_count(self.store.state, self.store.passes, self.today())
            if state != self.store.state:
                self.store.commit(self.store.passes, state)
            return state

    # ---- mutations ----
    def apply_for_outing(self, application: OutingApplication) -> Tuple[OutingPass, Admission]:
        with self.store.transaction() as store:
            result = allocation.apply_for_outing(application, store.passes, store.state, now=self.clock())
            self._commit(result.passes, store.state, result.events)
            return result.outing_pass, result.outcome

    def set_pass_status(self, pass_id: str, status: PassStatus) -> OutingPass:
        with self.store.transaction() as store:
            result = allocation.set_pass_status(scanning.normalize_pass_id(pass_id), status, store.passes)
            self._commit(result.passes, store.state, result.events)
            return result.outing_pass

    def cancel_pass(self, pass_id: str) -> OutingPass:
        """Student-side cancellation; only a pass that has not left the gate yet."""
        pass_id = scanning.normalize_pass_id(pass_id)
        with self.store.transaction() as store:
            current = allocation.find_pass(store.passes, pass_id)
            if current.status != PassStatus.APPROVED:
                raise InvalidTransition(f"Only approved passes can be cancelled. Pass status is {current.status.value}")
            result = allocation.set_pass_status(pass_id, PassStatus.CANCELLED, store.passes)
            self._commit(result.passes, store.state, result.events)
            return result.outing_pass

    def scan_exit(self, pass_id: str) -> OutingPass:
        with self.store.transaction() as store:
            result = scanning.scan_exit(scanning.normalize_pass_id(pass_id), store.passes, now=self.clock())
            self._commit(result.passes, store.state, result.events)
            return result.outing_pass

    def scan_entry(self, pass_id: str) -> OutingPass:
        with self.store.transaction() as store:
            result = scanning.scan_entry(scanning.normalize_pass_id(pass_id), store.passes, now=self.clock())
            self._commit(result.passes, store.state, result.events)
            return result.outing_pass

    def pass_id_from_qr(self, qr_data: str) -> str:
        return read_qr_token(qr_data, now=self.clock())

    def toggle_window(self) -> SystemState:
        with self.store.transaction() as store:
            state, events = allocation.toggle_window(store.state)
            return self._commit(store.passes, state, events)

    def set_capacity(self, capacity: int) -> SystemState:
        with self.store.transaction() as store:
            result = allocation.set_capacity(capacity, store.passes, store.state)
            return self._commit(result.passes, result.state, result.events)

    def _commit(self, passes: List[OutingPass], state: SystemState, events: List[DomainEvent]) -> SystemState:
        state = allocation.refresh_current_count(state, passes, self.today())
        self.store.commit(passes, state)
        self.sink.publish(events)
        return state
