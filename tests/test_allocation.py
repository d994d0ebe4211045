from datetime import date, timedelta

import pytest

import allocation
from credentials import read_qr_token
from errors import InvalidCapacity, NotFound, WindowClosed
from notifications import CapacityChanged, OutingWindowClosed, OutingWindowOpened, PassPromoted, PassWaitlisted
from schemas import Admission, PassStatus, SystemState
from tests.factories import START, TODAY, at, make_application, make_pass

TOMORROW = TODAY + timedelta(days=1)


def statuses(passes):
    return {p.id: p.status for p in passes}


class TestApplyForOuting:

    def test_window_closed_creates_nothing(self):
        passes = [make_pass("A1")]
        state = SystemState(is_window_open=False, capacity=5)

        with pytest.raises(WindowClosed):
            allocation.apply_for_outing(make_application(), passes, state)

        assert [p.id for p in passes] == ["A1"]

    def test_admitted_while_under_capacity(self):
        state = SystemState(capacity=2)
        result = allocation.apply_for_outing(make_application(), [make_pass("A1")], state, now=START)

        assert result.outcome == Admission.ADMITTED
        assert result.outing_pass.status == PassStatus.APPROVED
        assert result.outing_pass.out_scanned is False
        assert result.outing_pass.in_scanned is False

    def test_waitlisted_once_date_is_full(self):
        passes = [make_pass("A1"), make_pass("A2", status=PassStatus.OUT)]
        state = SystemState(capacity=2)

        result = allocation.apply_for_outing(make_application(out_date=date(2024, 1, 1)), passes, state, now=START)

        assert result.outcome == Admission.WAITLISTED
        assert result.outing_pass.status == PassStatus.WAITLISTED
        assert isinstance(result.events[0], PassWaitlisted)

    def test_capacity_is_counted_per_date(self):
        passes = [make_pass("A1"), make_pass("A2"), make_pass("R1", status=PassStatus.RETURNED, out_date=TOMORROW)]
        state = SystemState(capacity=2)

        result = allocation.apply_for_outing(make_application(out_date=TOMORROW), passes, state, now=START)

        assert result.outing_pass.status == PassStatus.APPROVED

    def test_returned_and_cancelled_passes_free_their_slot(self):
        passes = [make_pass("R1", status=PassStatus.RETURNED), make_pass("C1", status=PassStatus.CANCELLED)]
        result = allocation.apply_for_outing(make_application(), passes, SystemState(capacity=1), now=START)

        assert result.outing_pass.status == PassStatus.APPROVED

    def test_zero_capacity_waitlists_everyone(self):
        result = allocation.apply_for_outing(make_application(), [], SystemState(capacity=0), now=START)

        assert result.outcome == Admission.WAITLISTED

    def test_new_pass_goes_first_and_copies_student_details(self):
        passes = [make_pass("A1")]
        result = allocation.apply_for_outing(make_application(student_id="s9"), passes, SystemState(), now=START)

        assert result.passes[0] is result.outing_pass
        assert [p.id for p in result.passes[1:]] == ["A1"]
        assert result.outing_pass.student_id == "s9"
        assert result.outing_pass.room_no == "B-204"
        assert result.outing_pass.created_at == START

    def test_new_id_avoids_existing_ids(self):
        seen = []

        def new_id(existing):
            seen.extend(existing)
            return "NEWPASS01"

        result = allocation.apply_for_outing(make_application(), [make_pass("A1"), make_pass("A2")],
                                             SystemState(), now=START, new_id=new_id)

        assert sorted(seen) == ["A1", "A2"]
        assert result.outing_pass.id == "NEWPASS01"

    def test_qr_token_carries_pass_id(self):
        result = allocation.apply_for_outing(make_application(), [], SystemState(), now=START)

        assert read_qr_token(result.outing_pass.qr_data, now=START) == result.outing_pass.id


class TestSetPassStatus:

    def test_unknown_pass(self):
        with pytest.raises(NotFound):
            allocation.set_pass_status("NOPE", PassStatus.CANCELLED, [make_pass("A1")])

    def test_cancel_promotes_only_earliest_waitlisted(self):
        passes = [
            make_pass("W2", status=PassStatus.WAITLISTED, created_at=at(10, 5)),
            make_pass("W1", status=PassStatus.WAITLISTED, created_at=at(10, 0)),
            make_pass("A1", created_at=at(9, 0)),
        ]

        result = allocation.set_pass_status("A1", PassStatus.CANCELLED, passes)

        assert statuses(result.passes) == {
            "A1": PassStatus.CANCELLED,
            "W1": PassStatus.APPROVED,
            "W2": PassStatus.WAITLISTED,
        }
        promoted = [e for e in result.events if isinstance(e, PassPromoted)]
        assert [(e.pass_id, e.cause) for e in promoted] == [("W1", "cancellation")]
        assert result.outing_pass.status == PassStatus.CANCELLED

    def test_reject_pending_promotes(self):
        passes = [make_pass("P1", status=PassStatus.PENDING), make_pass("W1", status=PassStatus.WAITLISTED)]

        result = allocation.set_pass_status("P1", PassStatus.REJECTED, passes)

        assert statuses(result.passes)["W1"] == PassStatus.APPROVED

    def test_promotion_stays_on_same_date(self):
        passes = [make_pass("A1"), make_pass("W1", status=PassStatus.WAITLISTED, out_date=TOMORROW)]

        result = allocation.set_pass_status("A1", PassStatus.CANCELLED, passes)

        assert statuses(result.passes)["W1"] == PassStatus.WAITLISTED

    def test_tie_on_creation_time_broken_by_id(self):
        passes = [
            make_pass("WB", status=PassStatus.WAITLISTED, created_at=at(10)),
            make_pass("WA", status=PassStatus.WAITLISTED, created_at=at(10)),
            make_pass("A1"),
        ]

        result = allocation.set_pass_status("A1", PassStatus.REJECTED, passes)

        assert statuses(result.passes)["WA"] == PassStatus.APPROVED
        assert statuses(result.passes)["WB"] == PassStatus.WAITLISTED

    @pytest.mark.parametrize("previous", [PassStatus.WAITLISTED, PassStatus.OUT, PassStatus.RETURNED])
    def test_no_promotion_when_no_slot_was_held(self, previous):
        passes = [make_pass("X1", status=previous), make_pass("W1", status=PassStatus.WAITLISTED)]

        result = allocation.set_pass_status("X1", PassStatus.CANCELLED, passes)

        assert statuses(result.passes)["W1"] == PassStatus.WAITLISTED
        assert not any(isinstance(e, PassPromoted) for e in result.events)

    def test_repeating_a_cancellation_promotes_nothing_more(self):
        passes = [
            make_pass("A1"),
            make_pass("W1", status=PassStatus.WAITLISTED, created_at=at(10, 0)),
            make_pass("W2", status=PassStatus.WAITLISTED, created_at=at(10, 5)),
        ]
        first = allocation.set_pass_status("A1", PassStatus.CANCELLED, passes)

        second = allocation.set_pass_status("A1", PassStatus.CANCELLED, first.passes)

        assert statuses(second.passes)["W2"] == PassStatus.WAITLISTED

    def test_approving_is_a_plain_assignment(self):
        passes = [make_pass("A1"), make_pass("A2"), make_pass("W1", status=PassStatus.WAITLISTED)]

        result = allocation.set_pass_status("W1", PassStatus.APPROVED, passes)

        assert statuses(result.passes)["W1"] == PassStatus.APPROVED
        assert len(result.events) == 1


class TestSetCapacity:

    def test_negative_capacity_rejected(self):
        with pytest.raises(InvalidCapacity):
            allocation.set_capacity(-1, [], SystemState())

    def test_increase_promotes_each_date_in_fcfs_order(self):
        passes = [
            make_pass("A1"),
            make_pass("W1", status=PassStatus.WAITLISTED, created_at=at(10, 0)),
            make_pass("W3", status=PassStatus.WAITLISTED, created_at=at(10, 10)),
            make_pass("W2", status=PassStatus.WAITLISTED, created_at=at(10, 5)),
            make_pass("T1", status=PassStatus.WAITLISTED, out_date=TOMORROW, created_at=at(11)),
        ]

        result = allocation.set_capacity(3, passes, SystemState(capacity=1))

        assert result.state.capacity == 3
        assert statuses(result.passes) == {
            "A1": PassStatus.APPROVED,
            "W1": PassStatus.APPROVED,
            "W2": PassStatus.APPROVED,
            "W3": PassStatus.WAITLISTED,
            "T1": PassStatus.APPROVED,
        }
        assert isinstance(result.events[0], CapacityChanged)
        assert [e.pass_id for e in result.events[1:]] == ["W1", "W2", "T1"]

    def test_out_passes_count_against_new_capacity(self):
        passes = [make_pass("O1", status=PassStatus.OUT), make_pass("W1", status=PassStatus.WAITLISTED)]

        result = allocation.set_capacity(1, passes, SystemState(capacity=0))

        assert statuses(result.passes)["W1"] == PassStatus.WAITLISTED

    def test_decrease_never_demotes(self):
        passes = [make_pass("A1"), make_pass("A2"), make_pass("O1", status=PassStatus.OUT)]

        result = allocation.set_capacity(1, passes, SystemState(capacity=3))

        assert result.state.capacity == 1
        assert statuses(result.passes) == statuses(passes)
        assert len(result.events) == 1


class TestSystemState:

    def test_toggle_window_reports_new_state(self):
        closed, events = allocation.toggle_window(SystemState(is_window_open=True))
        assert closed.is_window_open is False
        assert isinstance(events[0], OutingWindowClosed)

        opened, events = allocation.toggle_window(closed)
        assert opened.is_window_open is True
        assert isinstance(events[0], OutingWindowOpened)

    def test_current_count_only_covers_today(self):
        passes = [
            make_pass("A1"),
            make_pass("O1", status=PassStatus.OUT),
            make_pass("W1", status=PassStatus.WAITLISTED),
            make_pass("T1", out_date=TOMORROW),
        ]

        state = allocation.refresh_current_count(SystemState(), passes, TODAY)

        assert state.current_count == 2
