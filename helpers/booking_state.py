"""
Booking workflow transitions.

Every path that moves a workflow (the continue endpoint, provider webhooks and
the patient retry pass) asks `transition()` what the next status is and which
call leg, if any, to place. Nothing else decides statuses.
"""
from enum import Enum
from typing import NamedTuple, Optional

from helpers.config import MAX_PATIENT_ATTEMPTS
from helpers.errors import ValidationError, WorkflowConflictError
from models.booking_workflow import BookingStatus, TERMINAL_STATUSES
from models.voice_task import VoiceTaskType


class BookingEvent(str, Enum):
    BOOKING_CREATED = "booking_created"
    TIMES_COLLECTED = "times_collected"
    TIMES_NOT_COLLECTED = "times_not_collected"
    RETRY_DUE = "retry_due"
    PATIENT_CONFIRMED = "patient_confirmed"
    PATIENT_UNREACHABLE = "patient_unreachable"
    PATIENT_NEEDS_RESCHEDULE = "patient_needs_reschedule"
    BOOKING_CONFIRMED = "booking_confirmed"
    BOOKING_REJECTED = "booking_rejected"
    FAILURE = "failure"


class Transition(NamedTuple):
    to: BookingStatus
    leg: Optional[VoiceTaskType] = None
    reason: Optional[str] = None


S = BookingStatus
E = BookingEvent

_TABLE = {
    (S.PENDING, E.BOOKING_CREATED): Transition(S.CALLING_MEDICAL_CENTER, VoiceTaskType.BOOKING_GET_TIMES),
    (S.CALLING_MEDICAL_CENTER, E.TIMES_COLLECTED): Transition(S.AWAITING_PATIENT_RETRY),
    (S.CALLING_MEDICAL_CENTER, E.TIMES_NOT_COLLECTED): Transition(
        S.FAILED, reason="Medical center did not provide available times"
    ),
    (S.AWAITING_PATIENT_RETRY, E.RETRY_DUE): Transition(S.CALLING_PATIENT, VoiceTaskType.BOOKING_PATIENT_CONFIRM),
    (S.CALLING_PATIENT, E.PATIENT_CONFIRMED): Transition(S.CONFIRMING_BOOKING, VoiceTaskType.BOOKING_FINAL_CONFIRM),
    (S.CALLING_PATIENT, E.PATIENT_UNREACHABLE): Transition(S.AWAITING_PATIENT_RETRY),
    (S.CALLING_PATIENT, E.PATIENT_NEEDS_RESCHEDULE): Transition(
        S.CALLING_MEDICAL_CENTER, VoiceTaskType.BOOKING_GET_TIMES
    ),
    (S.CONFIRMING_BOOKING, E.BOOKING_CONFIRMED): Transition(S.COMPLETED),
    (S.CONFIRMING_BOOKING, E.BOOKING_REJECTED): Transition(
        S.FAILED, reason="Medical center could not confirm the booking"
    ),
}


def exhausted_reason(attempts: int) -> str:
    return f"patient unreachable after {attempts} attempts"


def transition(
    status: BookingStatus,
    event: BookingEvent,
    attempts: int = 0,
    max_attempts: int = MAX_PATIENT_ATTEMPTS,
) -> Transition:
    """Raises WorkflowConflictError when `event` is not valid from `status`."""
    status = BookingStatus(status)
    event = BookingEvent(event)

    if status in TERMINAL_STATUSES:
        raise WorkflowConflictError(f"Workflow is already {status.value}")

    if event == E.FAILURE:
        return Transition(S.FAILED)

    # the attempt cap is checked on both sides of the patient leg
    if (status, event) in ((S.AWAITING_PATIENT_RETRY, E.RETRY_DUE), (S.CALLING_PATIENT, E.PATIENT_UNREACHABLE)):
        if attempts >= max_attempts:
            return Transition(S.FAILED, reason=exhausted_reason(attempts))

    t = _TABLE.get((status, event))
    if t is None:
        raise WorkflowConflictError(f"Cannot apply {event.value} to a workflow in {status.value}")
    return t


def event_for_leg(status: BookingStatus, task_type: VoiceTaskType) -> BookingEvent:
    """Which event a request to start `task_type` stands for, given where the workflow is."""
    status = BookingStatus(status)
    if task_type == VoiceTaskType.BOOKING_GET_TIMES:
        return E.PATIENT_NEEDS_RESCHEDULE if status == S.CALLING_PATIENT else E.BOOKING_CREATED
    if task_type == VoiceTaskType.BOOKING_PATIENT_CONFIRM:
        return E.RETRY_DUE
    if task_type == VoiceTaskType.BOOKING_FINAL_CONFIRM:
        return E.PATIENT_CONFIRMED
    raise ValidationError(f"{task_type.value} is not a booking leg")
