"""
In-call booking tools.

The booking agent reports what it learned while still on the line (times the
clinic offered, the slot the patient picked, the clinic's final yes or no).
Each report is turned into the same LegOutcome the post-call webhook would
have produced and applied through `apply_leg_outcome`, so the transition table
stays the only thing that decides statuses. Replies always carry a sentence
the agent can say next.
"""
import logging
from typing import Any, Dict, Optional, Tuple

from helpers.booking_state import BookingEvent
from helpers.booking_workflow import LegOutcome, apply_leg_outcome, extract_available_times
from helpers.call_dispatcher import CLAIM_PREFIX, normalize_time_slots
from helpers.errors import NotFoundError, ValidationError
from helpers.request_body import first_value, tool_arguments
from models.booking_workflow import BookingStatus, BookingWorkflow
from models.call_log import CallOutcome
from models.voice_task import VoiceTask, VoiceTaskType

logger = logging.getLogger("booking_tools")

_TRUTHY = {"true", "yes", "1", "y"}


def _flag(value: Any, default: bool) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUTHY


class ToolCall:
    """One tool invocation: its arguments and the booking leg it was made from."""

    def __init__(self, body: Dict[str, Any]):
        self.body = body
        self.call = body.get("call") if isinstance(body.get("call"), dict) else {}
        self.args = tool_arguments(body)
        self.sources = (self.args, body)

    def get(self, key: str) -> Optional[Any]:
        return first_value(self.sources, key)

    @property
    def call_id(self) -> Optional[str]:
        return self.call.get("call_id") or self.get("call_id")

    @property
    def workflow_id(self) -> Optional[Any]:
        return self.get("workflow_id") or (self.call.get("metadata") or {}).get("workflow_id")

    def as_call(self, call_id: str) -> Dict[str, Any]:
        # shaped like a provider payload so the leg is closed the same way the webhook closes it
        return {"call_id": call_id, "call_analysis": {"custom_analysis_data": self.args or None}}


async def locate_leg(tool: ToolCall) -> Tuple[BookingWorkflow, VoiceTask]:
    """Find the live booking leg a tool call belongs to, by call id or by workflow id."""
    task = None
    if tool.call_id:
        task = await VoiceTask.get_or_none(retell_call_id=tool.call_id)
    elif tool.workflow_id is not None:
        try:
            wf = await BookingWorkflow.get_or_none(id=int(tool.workflow_id))
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid workflow_id: {tool.workflow_id}")
        current = wf.current_call_id if wf else None
        if current and not current.startswith(CLAIM_PREFIX):
            task = await VoiceTask.get_or_none(retell_call_id=current)
    else:
        raise ValidationError("call_id or workflow_id is required")

    if not task or not task.booking_workflow_id:
        raise NotFoundError(f"No booking call found for {tool.call_id or 'workflow ' + str(tool.workflow_id)}")
    wf = await BookingWorkflow.get(id=task.booking_workflow_id)
    return wf, task


async def _apply(tool: ToolCall, leg: VoiceTaskType, outcome: LegOutcome, name: str) -> Optional[Dict[str, Any]]:
    """
    Apply `outcome` if the tool was called from the workflow's live `leg`.
    Returns the workflow result, or None when the call is no longer current.
    """
    wf, task = await locate_leg(tool)
    if task.task_type != leg:
        raise ValidationError(f"{name} cannot be used on a {task.task_type.value} call")
    if wf.current_call_id != task.retell_call_id:
        logger.info("%s for call %s ignored; workflow %s has moved on", name, task.retell_call_id, wf.id)
        return None
    return await apply_leg_outcome(wf, task, tool.as_call(task.retell_call_id), outcome, source=name)


def _moved_on(message: str) -> Dict[str, Any]:
    return {"success": False, "message": message, "next_step": "end_call"}


# ───────────────────────── tools ─────────────────────────

async def submit_times(body: Dict[str, Any]) -> Dict[str, Any]:
    tool = ToolCall(body)
    raw = tool.get("available_times")
    times = normalize_time_slots(raw if isinstance(raw, list) else None) or extract_available_times(tool.args)
    if not times:
        return {
            "success": False,
            "message": "I wasn't able to get any available times. Could you check some other dates?",
            "next_step": "retry_or_fail",
        }

    outcome = LegOutcome(event=BookingEvent.TIMES_COLLECTED, reason=tool.get("clinic_notes"),
                         data={"available_times": times})
    result = await _apply(tool, VoiceTaskType.BOOKING_GET_TIMES, outcome, "booking submit times")
    if result is None:
        return _moved_on("Thank you, I've already noted those times.")
    if result["status"] == BookingStatus.FAILED.value:
        return _moved_on("Thank you, I've noted those times. Our team will follow up with the patient.")
    return {
        "success": True,
        "message": f"Got it, I have {len(times)} available time{'s' if len(times) != 1 else ''}. "
                   "I'll check with the patient now.",
        "times_count": len(times),
        "workflow_status": result["status"],
        "next_step": "call_patient",
    }


async def patient_confirm(body: Dict[str, Any]) -> Dict[str, Any]:
    tool = ToolCall(body)
    chosen = tool.get("patient_confirmed_time")
    if not chosen:
        return {
            "success": False,
            "message": "I didn't catch which time you preferred. Which appointment time works for you?",
            "next_step": "ask_again",
        }

    outcome = LegOutcome(
        event=BookingEvent.PATIENT_CONFIRMED,
        reason=tool.get("patient_notes"),
        data={"patient_confirmed_time": str(chosen), "patient_preferred_doctor": tool.get("patient_preferred_doctor")},
    )
    result = await _apply(tool, VoiceTaskType.BOOKING_PATIENT_CONFIRM, outcome, "booking patient confirm")
    if result is None:
        return _moved_on("Thanks, I've already noted your choice.")
    if result["status"] == BookingStatus.FAILED.value:
        return _moved_on("Thanks for confirming. Our team will call the clinic and be in touch with the details.")
    return {
        "success": True,
        "message": f"I've confirmed {chosen}. I'll call the clinic now to lock in that appointment.",
        "confirmed_time": str(chosen),
        "workflow_status": result["status"],
        "next_step": "confirm_with_clinic",
    }


async def patient_reschedule(body: Dict[str, Any]) -> Dict[str, Any]:
    tool = ToolCall(body)
    notes = tool.get("patient_availability_notes")
    outcome = LegOutcome(
        event=BookingEvent.PATIENT_NEEDS_RESCHEDULE,
        reason=tool.get("reason") or "Times not suitable",
        data={"patient_availability_notes": notes},
    )
    result = await _apply(tool, VoiceTaskType.BOOKING_PATIENT_CONFIRM, outcome, "booking patient reschedule")
    if result is None:
        return _moved_on("No problem. We'll be in touch with some other times.")
    return {
        "success": result["status"] != BookingStatus.FAILED.value,
        "message": "No problem at all. I'll contact the clinic to find some times that suit you better. "
                   "We'll be in touch soon.",
        "workflow_status": result["status"],
        "next_step": "get_new_times",
    }


async def confirm_final(body: Dict[str, Any]) -> Dict[str, Any]:
    tool = ToolCall(body)
    confirmed = _flag(tool.get("booking_confirmed"), default=True)
    when = tool.get("confirmed_datetime")
    doctor = tool.get("confirmed_doctor_name")

    if confirmed:
        outcome = LegOutcome(
            event=BookingEvent.BOOKING_CONFIRMED,
            data={"confirmed_datetime": when, "confirmed_doctor_name": doctor,
                  "booking_notes": tool.get("booking_notes")},
        )
    else:
        outcome = LegOutcome(
            event=BookingEvent.BOOKING_REJECTED,
            call_outcome=CallOutcome.FAILED,
            reason=tool.get("failure_reason") or tool.get("booking_notes") or "Medical center could not confirm the booking",
        )
    result = await _apply(tool, VoiceTaskType.BOOKING_FINAL_CONFIRM, outcome, "booking confirm final")
    if result is None:
        return _moved_on("Thank you, that's already been recorded.")
    if not confirmed:
        return {
            "success": False,
            "message": "I understand, the booking wasn't confirmed. I'll note this and we'll follow up.",
            "appointment_confirmed": False,
            "next_step": "booking_failed",
        }

    wf = await BookingWorkflow.get(id=result["workflow_id"])
    when = when or wf.patient_confirmed_time
    return {
        "success": True,
        "message": f"Wonderful, that's all confirmed for {when}{f' with {doctor}' if doctor else ''}. "
                   "Thank you for your help!",
        "appointment_confirmed": True,
        "appointment_id": result.get("appointment_id"),
        "appointment_datetime": when,
        "doctor_name": doctor,
        "next_step": "booking_complete",
    }


async def booking_failed(body: Dict[str, Any]) -> Dict[str, Any]:
    tool = ToolCall(body)
    reason = tool.get("failure_reason") or "Booking could not be completed"
    notes = tool.get("notes")
    should_retry = _flag(tool.get("should_retry"), default=False)

    wf, task = await locate_leg(tool)
    if should_retry and task.task_type == VoiceTaskType.BOOKING_PATIENT_CONFIRM:
        # counts as a missed attempt; the retry pass calls again until the cap
        event = BookingEvent.PATIENT_UNREACHABLE
    else:
        should_retry = False
        event = BookingEvent.FAILURE
    outcome = LegOutcome(event=event, call_outcome=CallOutcome.FAILED,
                         reason=f"{reason}. Notes: {notes}" if notes else reason)

    if wf.current_call_id != task.retell_call_id:
        result = None
    else:
        result = await apply_leg_outcome(wf, task, tool.as_call(task.retell_call_id), outcome,
                                         source="booking failed")
    message = ("I understand. I'll try again later. Thank you for your time." if should_retry
               else "I understand. Thank you for your time. Our team will follow up through other means.")
    return {
        "success": result is not None,
        "message": message,
        "should_retry": should_retry,
        "workflow_status": result["status"] if result else None,
        "next_step": "end_call",
    }
