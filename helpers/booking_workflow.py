"""
Booking workflow orchestration.

A workflow books one appointment for one incident through up to three kinds
of call legs: ask the medical center for times, ask the injured worker to pick
one, then lock it in with the medical center. Legs are started from three
places (the continue endpoint, provider webhooks, the patient retry pass) and
all of them go through `advance()`, which claims the workflow with a
compare-and-swap on `current_call_id` before placing any call.
"""
import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel
from tortoise.expressions import F

from helpers import config
from helpers.booking_state import BookingEvent, Transition, event_for_leg, transition
from helpers.call_dispatcher import (
    CLAIM_PREFIX,
    DispatchResult,
    DispatchTarget,
    build_variables,
    dispatch,
    fail_workflow,
    log_activity,
    normalize_time_slots,
    now_utc,
)
from helpers.calling_hours import within_calling_hours
from helpers.errors import (
    NotFoundError,
    OrchestratorError,
    UpstreamProviderError,
    ValidationError,
    WorkflowConflictError,
)
from helpers.Normalizers import normalize_phone
from models.appointment import Appointment, AppointmentStatus
from models.booking_workflow import BookingStatus, BookingWorkflow, CallTarget, IN_CALL_STATUSES, Urgency
from models.call_log import CallHistoryRecord, CallOutcome
from models.incident import Incident
from models.reference import MedicalCenter, Worker
from models.voice_task import VoiceTask, VoiceTaskStatus, VoiceTaskType

logger = logging.getLogger("booking_workflow")

# dispositions that mean nobody picked up; no analysis will follow worth waiting for
NO_ANSWER_REASONS = {
    "dial_no_answer",
    "dial_busy",
    "dial_failed",
    "voicemail_reached",
    "no_answer",
    "machine_detected",
}


class BookingContext:
    def __init__(self, incident: Incident, medical_center: MedicalCenter, worker: Optional[Worker] = None):
        self.incident = incident
        self.medical_center = medical_center
        self.worker = worker

    @property
    def worker_name(self) -> str:
        return self.worker.full_name if self.worker else ""


class LegOutcome(BaseModel):
    event: Optional[BookingEvent] = None
    call_outcome: CallOutcome = CallOutcome.COMPLETED
    reason: Optional[str] = None
    data: Dict[str, Any] = {}


# ───────────────────────── loading ─────────────────────────

async def get_workflow(workflow_id: int) -> BookingWorkflow:
    wf = await BookingWorkflow.get_or_none(id=workflow_id)
    if not wf:
        raise NotFoundError(f"Workflow {workflow_id} not found")
    return wf


async def load_context(wf: BookingWorkflow) -> BookingContext:
    incident = await Incident.get_or_none(id=wf.incident_id)
    if not incident:
        raise NotFoundError(f"Incident {wf.incident_id} not found")
    medical_center = await MedicalCenter.get_or_none(id=wf.medical_center_id)
    if not medical_center:
        raise NotFoundError(f"Medical center {wf.medical_center_id} not found")
    worker_id = wf.worker_id or incident.worker_id
    worker = await Worker.get_or_none(id=worker_id) if worker_id else None
    return BookingContext(incident=incident, worker=worker, medical_center=medical_center)


def target_for(leg: VoiceTaskType, ctx: BookingContext) -> DispatchTarget:
    if leg == VoiceTaskType.BOOKING_PATIENT_CONFIRM:
        return DispatchTarget(
            kind=CallTarget.PATIENT.value,
            phone=ctx.worker.best_phone if ctx.worker else None,
            name=ctx.worker_name or None,
            worker_id=ctx.worker.id if ctx.worker else None,
        )
    mc = ctx.medical_center
    return DispatchTarget(
        kind=CallTarget.MEDICAL_CENTER.value,
        phone=mc.phone_number,
        name=mc.name,
        medical_center_id=mc.id,
    )


def leg_variables(
    leg: VoiceTaskType,
    wf: BookingWorkflow,
    ctx: BookingContext,
    attempt: Optional[int] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    incident = ctx.incident
    mc = ctx.medical_center
    bag: Dict[str, Any] = {
        "incident_number": incident.incident_number,
        "injury_type": incident.injury_type,
        "injury_description": incident.injury_description,
        "body_part": incident.body_part,
        "medical_center_name": mc.name,
        "medical_center_address": mc.full_address or None,
        "doctor_preference": wf.doctor_preference,
        "preferred_doctor_name": wf.preferred_doctor_name,
        "urgency": getattr(wf.urgency, "value", wf.urgency),
    }
    if leg == VoiceTaskType.BOOKING_PATIENT_CONFIRM and attempt:
        bag["attempt_number"] = attempt
        if attempt > 1:
            bag["additional_notes"] = f"Retry attempt {attempt} of {config.MAX_PATIENT_ATTEMPTS}"
    if leg == VoiceTaskType.BOOKING_FINAL_CONFIRM:
        bag["patient_confirmed_time"] = wf.patient_confirmed_time
        bag["patient_preferred_doctor"] = wf.patient_preferred_doctor
        if ctx.worker and ctx.worker.date_of_birth:
            bag["worker_date_of_birth"] = ctx.worker.date_of_birth.isoformat()
        if ctx.worker:
            bag["worker_phone"] = ctx.worker.best_phone
    bag.update(extra or {})
    times = wf.available_times if leg != VoiceTaskType.BOOKING_GET_TIMES else None
    return build_variables(leg, ctx.worker_name, workflow_id=wf.id, available_times=times, extra=bag)


# ───────────────────────── claim + advance ─────────────────────────

async def claim(
    wf: BookingWorkflow,
    event: BookingEvent,
    expected_call_id: Optional[str],
    updates: Optional[Dict[str, Any]] = None,
) -> Tuple[Transition, Optional[str]]:
    """
    Compare-and-swap the workflow from its current (status, current_call_id)
    into the transition's target. Returns the transition and, for calling
    states, the placeholder token now held in current_call_id.
    """
    t = transition(wf.status, event, attempts=wf.patient_call_attempts)
    token = f"{CLAIM_PREFIX}{uuid.uuid4().hex}" if t.to in IN_CALL_STATUSES else None

    values: Dict[str, Any] = dict(updates or {})
    values.update(status=t.to, current_call_id=token)
    if t.leg == VoiceTaskType.BOOKING_PATIENT_CONFIRM:
        values["patient_call_attempts"] = F("patient_call_attempts") + 1
    if t.to == BookingStatus.FAILED:
        values.setdefault("failure_reason", t.reason or "Booking failed")
    if token is None and expected_call_id:
        values["current_call_ended_at"] = now_utc()

    qs = BookingWorkflow.filter(id=wf.id, status=wf.status)
    if expected_call_id is None:
        qs = qs.filter(current_call_id__isnull=True)
    else:
        qs = qs.filter(current_call_id=expected_call_id)
    n = await qs.update(**values)
    if not n:
        raise WorkflowConflictError(f"Workflow {wf.id} changed before it could be moved to {t.to.value}")

    logger.info("workflow %s: %s --%s--> %s", wf.id, getattr(wf.status, "value", wf.status), event.value, t.to.value)
    return t, token


async def advance(
    wf: BookingWorkflow,
    event: BookingEvent,
    expected_call_id: Optional[str],
    updates: Optional[Dict[str, Any]] = None,
    extra_variables: Optional[Dict[str, Any]] = None,
    created_by: str = "ai_booking_agent",
    ctx: Optional[BookingContext] = None,
) -> Optional[DispatchResult]:
    """
    Apply `event` and place the follow-up leg the transition asks for.
    Returns None when the transition places no call (waiting or terminal).
    """
    ctx = ctx or await load_context(wf)
    planned = transition(wf.status, event, attempts=wf.patient_call_attempts)

    target = None
    if planned.leg:
        target = target_for(planned.leg, ctx)
        if not normalize_phone(target.phone):
            who = "patient" if target.kind == CallTarget.PATIENT.value else "medical center"
            reason = f"No {who} phone number available"
            await fail_workflow(wf.id, reason)
            await log_activity(wf.incident_id, "Booking workflow failed", details=reason,
                               metadata={"workflow_id": wf.id})
            raise ValidationError(reason)

    t, token = await claim(wf, event, expected_call_id, updates)
    if t.to == BookingStatus.FAILED:
        await log_activity(wf.incident_id, "Booking workflow failed", details=t.reason,
                           metadata={"workflow_id": wf.id, "event": event.value})
        return None
    if not t.leg:
        return None

    attempt = wf.patient_call_attempts + 1 if t.leg == VoiceTaskType.BOOKING_PATIENT_CONFIRM else None
    # the claim wrote these; the variable bag should see them too
    for k, v in (updates or {}).items():
        setattr(wf, k, v)
    variables = leg_variables(t.leg, wf, ctx, attempt=attempt, extra=extra_variables)

    extra_metadata: Dict[str, Any] = {}
    summary = None
    if attempt:
        extra_metadata = {"is_retry": attempt > 1, "retry_attempt": attempt}
        if attempt > 1:
            summary = (f"Retry call to {target.name or target.phone} "
                       f"(attempt {attempt} of {config.MAX_PATIENT_ATTEMPTS})")

    try:
        return await dispatch(
            t.leg,
            wf.incident_id,
            target,
            variables,
            workflow=wf,
            claim_token=token,
            created_by=created_by,
            extra_metadata=extra_metadata,
            context_data={"workflow_id": wf.id, "retry_attempt": attempt} if attempt else {"workflow_id": wf.id},
            activity_summary=summary,
        )
    except Exception as e:
        # only matches while our claim token is still in current_call_id
        reason = getattr(e, "message", None) or str(e) or type(e).__name__
        if await fail_workflow(wf.id, f"Failed to place {t.leg.call_type} call: {reason}", token):
            await log_activity(wf.incident_id, "Booking workflow failed", details=reason,
                               metadata={"workflow_id": wf.id, "event": event.value})
        raise


# ───────────────────────── entry points ─────────────────────────

async def create_workflow(
    incident_id: int,
    medical_center_id: int,
    doctor_preference: str = "any",
    preferred_doctor_name: Optional[str] = None,
    urgency: str = Urgency.NORMAL.value,
    requested_by: Optional[str] = None,
) -> Tuple[BookingWorkflow, DispatchResult]:
    incident = await Incident.get_or_none(id=incident_id)
    if not incident:
        raise NotFoundError(f"Incident {incident_id} not found")
    mc = await MedicalCenter.get_or_none(id=medical_center_id)
    if not mc:
        raise NotFoundError(f"Medical center {medical_center_id} not found")
    try:
        urgency_value = Urgency(urgency)
    except ValueError:
        raise ValidationError(f"Invalid urgency: {urgency}")

    wf = await BookingWorkflow.create(
        incident_id=incident.id,
        medical_center_id=mc.id,
        worker_id=incident.worker_id,
        doctor_preference=doctor_preference or "any",
        preferred_doctor_name=preferred_doctor_name,
        urgency=urgency_value,
        requested_by=requested_by,
    )
    await log_activity(incident.id, f"Booking workflow started with {mc.name}",
                       metadata={"workflow_id": wf.id, "urgency": urgency_value.value})
    result = await advance(wf, BookingEvent.BOOKING_CREATED, expected_call_id=None)
    return await get_workflow(wf.id), result


async def continue_workflow(workflow_id: int, task_type: str) -> DispatchResult:
    """Start the next leg by name. Used by the continue endpoint."""
    wf = await get_workflow(workflow_id)
    try:
        leg = VoiceTaskType(task_type)
    except ValueError:
        raise ValidationError(f"Unknown task_type: {task_type}")

    event = event_for_leg(wf.status, leg)
    planned = transition(wf.status, event, attempts=wf.patient_call_attempts)
    if planned.leg not in (None, leg):
        raise WorkflowConflictError(f"Workflow {workflow_id} is {wf.status.value}; cannot start {leg.value}")
    if leg == VoiceTaskType.BOOKING_FINAL_CONFIRM and not wf.patient_confirmed_time:
        raise ValidationError("Patient has not confirmed a time yet")

    result = await advance(wf, event, expected_call_id=wf.current_call_id)
    if result is None:
        wf = await get_workflow(workflow_id)
        raise WorkflowConflictError(f"Workflow {workflow_id} is {wf.status.value}: {wf.failure_reason}")
    return result


async def workflow_snapshot(workflow_id: int) -> Dict[str, Any]:
    wf = await get_workflow(workflow_id)
    history = await CallHistoryRecord.filter(workflow_id=wf.id).order_by("call_sequence")
    return {
        "id": wf.id,
        "incident_id": wf.incident_id,
        "medical_center_id": wf.medical_center_id,
        "worker_id": wf.worker_id,
        "status": wf.status.value,
        "urgency": wf.urgency.value,
        "doctor_preference": wf.doctor_preference,
        "available_times": wf.available_times or [],
        "patient_call_attempts": wf.patient_call_attempts,
        "patient_confirmed_time": wf.patient_confirmed_time,
        "current_call_id": wf.current_call_id,
        "last_call_type": wf.last_call_type.value if wf.last_call_type else None,
        "confirmed_datetime": wf.confirmed_datetime,
        "confirmed_doctor_name": wf.confirmed_doctor_name,
        "appointment_id": wf.appointment_id,
        "failure_reason": wf.failure_reason,
        "created_at": wf.created_at.isoformat() if wf.created_at else None,
        "updated_at": wf.updated_at.isoformat() if wf.updated_at else None,
        "call_history": [
            {
                "call_sequence": h.call_sequence,
                "call_target": h.call_target.value,
                "task_type": h.task_type,
                "target_name": h.target_name,
                "target_phone": h.target_phone,
                "provider_call_id": h.provider_call_id,
                "outcome": h.outcome.value,
                "started_at": h.started_at.isoformat() if h.started_at else None,
                "ended_at": h.ended_at.isoformat() if h.ended_at else None,
                "failure_reason": h.failure_reason,
            }
            for h in history
        ],
    }


# ───────────────────────── webhook outcomes ─────────────────────────

def extract_available_times(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    raw: List[Any] = []
    for prefix in ("time_slot_", "available_time_"):
        raw = [data.get(f"{prefix}{i}") for i in (1, 2, 3) if data.get(f"{prefix}{i}")]
        if raw:
            break
    if not raw and isinstance(data.get("available_times"), list):
        raw = data["available_times"]
    return normalize_time_slots(raw)


def interpret_leg(leg: VoiceTaskType, call: Dict[str, Any], analyzed: bool) -> LegOutcome:
    """Turn a provider call payload into the workflow event it stands for (None: wait for analysis)."""
    analysis = call.get("call_analysis") or {}
    data = analysis.get("custom_analysis_data") or {}
    successful = bool(analysis.get("call_successful"))
    disconnect = (call.get("disconnection_reason") or "").lower()
    no_answer = disconnect in NO_ANSWER_REASONS

    if not analyzed and not analysis and not no_answer:
        return LegOutcome()

    reason = data.get("failure_reason") or (disconnect or None)

    if leg == VoiceTaskType.BOOKING_GET_TIMES:
        times = extract_available_times(data)
        if (successful or data.get("times_collected") is True) and times:
            return LegOutcome(event=BookingEvent.TIMES_COLLECTED, data={"available_times": times})
        return LegOutcome(
            event=BookingEvent.TIMES_NOT_COLLECTED,
            call_outcome=CallOutcome.NO_ANSWER if no_answer else CallOutcome.FAILED,
            reason=reason or "Medical center did not provide available times",
        )

    if leg == VoiceTaskType.BOOKING_PATIENT_CONFIRM:
        if no_answer:
            return LegOutcome(event=BookingEvent.PATIENT_UNREACHABLE, call_outcome=CallOutcome.NO_ANSWER, reason=reason)
        if data.get("patient_needs_reschedule"):
            return LegOutcome(
                event=BookingEvent.PATIENT_NEEDS_RESCHEDULE,
                data={"patient_availability_notes": data.get("patient_availability_notes")},
            )
        if successful and data.get("patient_confirmed_time"):
            return LegOutcome(
                event=BookingEvent.PATIENT_CONFIRMED,
                data={
                    "patient_confirmed_time": str(data["patient_confirmed_time"]),
                    "patient_preferred_doctor": data.get("patient_preferred_doctor"),
                },
            )
        return LegOutcome(
            event=BookingEvent.PATIENT_UNREACHABLE,
            call_outcome=CallOutcome.FAILED,
            reason=reason or "Unable to confirm with patient",
        )

    if successful and data.get("booking_confirmed"):
        return LegOutcome(
            event=BookingEvent.BOOKING_CONFIRMED,
            data={
                "confirmed_datetime": data.get("confirmed_datetime") or data.get("patient_confirmed_time"),
                "confirmed_doctor_name": data.get("confirmed_doctor_name"),
                "booking_notes": data.get("booking_notes"),
            },
        )
    return LegOutcome(
        event=BookingEvent.BOOKING_REJECTED,
        call_outcome=CallOutcome.NO_ANSWER if no_answer else CallOutcome.FAILED,
        reason=reason or "Unable to confirm final booking",
    )


async def _close_leg(task: VoiceTask, call: Dict[str, Any], outcome: LegOutcome) -> None:
    ended = now_utc()
    analysis = call.get("call_analysis") or {}
    await CallHistoryRecord.filter(provider_call_id=task.retell_call_id).update(
        ended_at=ended,
        outcome=outcome.call_outcome,
        failure_reason=outcome.reason if outcome.call_outcome != CallOutcome.COMPLETED else None,
        extracted_data=analysis.get("custom_analysis_data") or None,
    )
    task.status = VoiceTaskStatus.COMPLETED if outcome.call_outcome == CallOutcome.COMPLETED else VoiceTaskStatus.FAILED
    task.failure_reason = outcome.reason if task.status == VoiceTaskStatus.FAILED else None
    await task.save()


async def _create_appointment(wf: BookingWorkflow, ctx: BookingContext, call_id: str,
                              data: Dict[str, Any]) -> Appointment:
    appt, _ = await Appointment.get_or_create(
        source_call_id=call_id,
        defaults=dict(
            incident_id=wf.incident_id,
            worker_id=ctx.worker.id if ctx.worker else None,
            medical_center_id=ctx.medical_center.id,
            scheduled_for=data.get("confirmed_datetime") or wf.patient_confirmed_time or "TBD",
            doctor_name=data.get("confirmed_doctor_name"),
            location=ctx.medical_center.full_address or ctx.medical_center.name,
            notes=data.get("booking_notes")
                  or f"Booked by AI agent. Doctor: {data.get('confirmed_doctor_name') or 'Any available'}",
            status=AppointmentStatus.CONFIRMED,
        ),
    )
    await BookingWorkflow.filter(id=wf.id).update(appointment_id=appt.id)
    return appt


async def handle_booking_call_event(event: str, call: Dict[str, Any]) -> Dict[str, Any]:
    """
    Provider webhook for a booking leg. Events for a call that is not the
    workflow's current call are logged and dropped without touching anything.
    """
    call_id = call.get("call_id")
    task = await VoiceTask.get_or_none(retell_call_id=call_id) if call_id else None
    if not task or not task.booking_workflow_id:
        return {"status": "ignored", "reason": "not a booking call"}

    wf = await BookingWorkflow.get_or_none(id=task.booking_workflow_id)
    if not wf or wf.current_call_id != call_id:
        logger.info("stale webhook %s for call %s (workflow %s current=%s)", event, call_id,
                    task.booking_workflow_id, wf.current_call_id if wf else None)
        return {"status": "stale", "workflow_id": task.booking_workflow_id}

    if event == "call_started":
        return {"status": "ok", "workflow_id": wf.id}

    outcome = interpret_leg(task.task_type, call, analyzed=(event == "call_analyzed"))
    if outcome.event is None:
        await BookingWorkflow.filter(id=wf.id, current_call_id=call_id).update(current_call_ended_at=now_utc())
        return {"status": "awaiting_analysis", "workflow_id": wf.id}

    return await apply_leg_outcome(wf, task, call, outcome, source=event)


async def apply_leg_outcome(
    wf: BookingWorkflow,
    task: VoiceTask,
    call: Dict[str, Any],
    outcome: LegOutcome,
    source: str = "call_analyzed",
) -> Dict[str, Any]:
    """
    Move the workflow on from the leg `task` placed and start whatever leg
    comes next. Shared by the post-call webhook and the in-call booking tools;
    whichever reports first wins the claim and the other finds the call stale.
    """
    call_id = task.retell_call_id
    ctx = await load_context(wf)
    updates: Dict[str, Any] = {}
    extra_vars: Dict[str, Any] = {}
    if outcome.event == BookingEvent.TIMES_COLLECTED:
        updates["available_times"] = outcome.data["available_times"]
    elif outcome.event == BookingEvent.PATIENT_CONFIRMED:
        updates["patient_confirmed_time"] = outcome.data["patient_confirmed_time"]
        updates["patient_preferred_doctor"] = outcome.data.get("patient_preferred_doctor")
    elif outcome.event == BookingEvent.PATIENT_NEEDS_RESCHEDULE:
        extra_vars["patient_availability_notes"] = outcome.data.get("patient_availability_notes")
    elif outcome.event == BookingEvent.BOOKING_CONFIRMED:
        updates["confirmed_datetime"] = outcome.data.get("confirmed_datetime")
        updates["confirmed_doctor_name"] = outcome.data.get("confirmed_doctor_name")
    if outcome.reason and outcome.event in (BookingEvent.TIMES_NOT_COLLECTED, BookingEvent.BOOKING_REJECTED,
                                            BookingEvent.FAILURE):
        updates["failure_reason"] = outcome.reason

    # the leg is only closed once this caller has won the claim, so a racing duplicate writes nothing
    result: Optional[DispatchResult] = None
    try:
        result = await advance(wf, outcome.event, expected_call_id=call_id, updates=updates,
                               extra_variables=extra_vars, ctx=ctx)
    except WorkflowConflictError:
        logger.info("%s for call %s lost the race on workflow %s", source, call_id, wf.id)
        return {"status": "stale", "workflow_id": wf.id}
    except (UpstreamProviderError, ValidationError) as e:
        # the next leg could not be placed; the workflow has already been failed
        await _close_leg(task, call, outcome)
        return {"status": BookingStatus.FAILED.value, "workflow_id": wf.id, "error": e.message}
    await _close_leg(task, call, outcome)

    summary = {
        BookingEvent.TIMES_COLLECTED: f"{ctx.medical_center.name} offered {len(updates.get('available_times') or [])} time(s)",
        BookingEvent.TIMES_NOT_COLLECTED: f"Could not get times from {ctx.medical_center.name}",
        BookingEvent.PATIENT_CONFIRMED: f"{ctx.worker_name or 'Patient'} confirmed {updates.get('patient_confirmed_time')}",
        BookingEvent.PATIENT_UNREACHABLE: f"Could not reach {ctx.worker_name or 'patient'}",
        BookingEvent.PATIENT_NEEDS_RESCHEDULE: f"{ctx.worker_name or 'Patient'} asked for different times",
        BookingEvent.BOOKING_CONFIRMED: f"Appointment confirmed at {ctx.medical_center.name}",
        BookingEvent.BOOKING_REJECTED: f"{ctx.medical_center.name} could not confirm the booking",
        BookingEvent.FAILURE: "Medical booking failed",
    }[outcome.event]
    await log_activity(wf.incident_id, summary, details=outcome.reason,
                       metadata={"workflow_id": wf.id, "call_id": call_id, "event": outcome.event.value,
                                 "source": source})

    if outcome.event == BookingEvent.BOOKING_CONFIRMED:
        appt = await _create_appointment(wf, ctx, call_id, outcome.data)
        return {"status": "completed", "workflow_id": wf.id, "appointment_id": appt.id}

    if outcome.event == BookingEvent.TIMES_COLLECTED and within_calling_hours():
        # straight on to the patient while it's a reasonable hour; otherwise the retry pass picks it up
        fresh = await get_workflow(wf.id)
        try:
            result = await advance(fresh, BookingEvent.RETRY_DUE, expected_call_id=None, ctx=ctx)
        except OrchestratorError as e:
            logger.warning("workflow %s: patient call not started: %s", wf.id, e.message)

    fresh = await get_workflow(wf.id)
    out: Dict[str, Any] = {"status": fresh.status.value, "workflow_id": wf.id}
    if result:
        out["next_call_id"] = result.call_id
    return out
