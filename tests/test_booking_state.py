"""
Tests for the booking workflow transition table and calling-hours window.
"""
from datetime import datetime

import pytest
import pytz

from helpers.booking_state import BookingEvent, event_for_leg, exhausted_reason, transition
from helpers.calling_hours import local_now, within_calling_hours
from helpers.errors import ValidationError, WorkflowConflictError
from models.booking_workflow import BookingStatus
from models.voice_task import VoiceTaskType

S = BookingStatus
E = BookingEvent
SYDNEY = pytz.timezone("Australia/Sydney")


class TestTransition:
    @pytest.mark.parametrize("status,event,to,leg", [
        (S.PENDING, E.BOOKING_CREATED, S.CALLING_MEDICAL_CENTER, VoiceTaskType.BOOKING_GET_TIMES),
        (S.CALLING_MEDICAL_CENTER, E.TIMES_COLLECTED, S.AWAITING_PATIENT_RETRY, None),
        (S.CALLING_MEDICAL_CENTER, E.TIMES_NOT_COLLECTED, S.FAILED, None),
        (S.AWAITING_PATIENT_RETRY, E.RETRY_DUE, S.CALLING_PATIENT, VoiceTaskType.BOOKING_PATIENT_CONFIRM),
        (S.CALLING_PATIENT, E.PATIENT_CONFIRMED, S.CONFIRMING_BOOKING, VoiceTaskType.BOOKING_FINAL_CONFIRM),
        (S.CALLING_PATIENT, E.PATIENT_UNREACHABLE, S.AWAITING_PATIENT_RETRY, None),
        (S.CALLING_PATIENT, E.PATIENT_NEEDS_RESCHEDULE, S.CALLING_MEDICAL_CENTER, VoiceTaskType.BOOKING_GET_TIMES),
        (S.CONFIRMING_BOOKING, E.BOOKING_CONFIRMED, S.COMPLETED, None),
        (S.CONFIRMING_BOOKING, E.BOOKING_REJECTED, S.FAILED, None),
    ])
    def test_happy_paths(self, status, event, to, leg):
        t = transition(status, event, attempts=1)
        assert t.to == to
        assert t.leg == leg

    def test_accepts_raw_strings(self):
        t = transition("awaiting_patient_retry", "retry_due", attempts=0)
        assert t.to == S.CALLING_PATIENT

    @pytest.mark.parametrize("status", [S.PENDING, S.CALLING_MEDICAL_CENTER, S.CALLING_PATIENT, S.CONFIRMING_BOOKING])
    def test_failure_from_any_live_status(self, status):
        assert transition(status, E.FAILURE).to == S.FAILED

    @pytest.mark.parametrize("status", [S.COMPLETED, S.FAILED])
    def test_terminal_states_reject_everything(self, status):
        with pytest.raises(WorkflowConflictError):
            transition(status, E.FAILURE)
        with pytest.raises(WorkflowConflictError):
            transition(status, E.RETRY_DUE)

    def test_retry_due_after_attempts_exhausted_fails(self):
        t = transition(S.AWAITING_PATIENT_RETRY, E.RETRY_DUE, attempts=3, max_attempts=3)
        assert t.to == S.FAILED
        assert t.leg is None
        assert t.reason == "patient unreachable after 3 attempts"

    def test_last_unanswered_attempt_fails_immediately(self):
        t = transition(S.CALLING_PATIENT, E.PATIENT_UNREACHABLE, attempts=3, max_attempts=3)
        assert t.to == S.FAILED
        assert t.reason == exhausted_reason(3)

    def test_unanswered_with_attempts_left_waits(self):
        assert transition(S.CALLING_PATIENT, E.PATIENT_UNREACHABLE, attempts=2).to == S.AWAITING_PATIENT_RETRY

    @pytest.mark.parametrize("status,event", [
        (S.PENDING, E.RETRY_DUE),
        (S.AWAITING_PATIENT_RETRY, E.PATIENT_CONFIRMED),
        (S.CALLING_MEDICAL_CENTER, E.BOOKING_CONFIRMED),
        (S.CONFIRMING_BOOKING, E.TIMES_COLLECTED),
    ])
    def test_invalid_event_conflicts(self, status, event):
        with pytest.raises(WorkflowConflictError):
            transition(status, event)


class TestEventForLeg:
    def test_get_times_starts_or_reschedules(self):
        assert event_for_leg(S.PENDING, VoiceTaskType.BOOKING_GET_TIMES) == E.BOOKING_CREATED
        assert event_for_leg(S.CALLING_PATIENT, VoiceTaskType.BOOKING_GET_TIMES) == E.PATIENT_NEEDS_RESCHEDULE

    def test_patient_and_final_legs(self):
        assert event_for_leg(S.AWAITING_PATIENT_RETRY, VoiceTaskType.BOOKING_PATIENT_CONFIRM) == E.RETRY_DUE
        assert event_for_leg(S.CALLING_PATIENT, VoiceTaskType.BOOKING_FINAL_CONFIRM) == E.PATIENT_CONFIRMED

    def test_non_booking_type(self):
        with pytest.raises(ValidationError):
            event_for_leg(S.PENDING, VoiceTaskType.CHECK_IN)


class TestCallingHours:
    def test_late_evening_is_closed(self):
        assert within_calling_hours(SYDNEY.localize(datetime(2026, 10, 19, 22, 0))) is False

    def test_morning_is_open(self):
        assert within_calling_hours(SYDNEY.localize(datetime(2026, 10, 19, 10, 0))) is True

    def test_window_is_inclusive(self):
        assert within_calling_hours(SYDNEY.localize(datetime(2026, 10, 19, 7, 0))) is True
        assert within_calling_hours(SYDNEY.localize(datetime(2026, 10, 19, 21, 30))) is True
        assert within_calling_hours(SYDNEY.localize(datetime(2026, 10, 19, 6, 59))) is False

    def test_naive_now_is_utc(self):
        # 2026-10-19 is AEDT (UTC+11): 23:00 UTC is 10:00 next morning in Sydney
        naive = datetime(2026, 10, 19, 23, 0)
        assert local_now(naive).hour == 10
        assert within_calling_hours(naive) is True

    def test_custom_window_and_zone(self):
        now = pytz.utc.localize(datetime(2026, 10, 19, 12, 0))
        assert within_calling_hours(now, tz_name="Europe/London", start="09:00", end="17:00") is True
        assert within_calling_hours(now, tz_name="Europe/London", start="14:00", end="17:00") is False
