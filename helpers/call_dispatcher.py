import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import pytz
from pydantic import BaseModel

from helpers import config, retell_helper
from helpers.Normalizers import normalize_phone
from helpers.errors import UpstreamProviderError, ValidationError
from models.booking_workflow import BookingStatus, BookingWorkflow, CallTarget
from models.call_log import CallHistoryRecord, CallOutcome
from models.incident import IncidentActivity
from models.voice_task import VoiceTask, VoiceTaskStatus, VoiceTaskType

logger = logging.getLogger("call_dispatcher")

CLAIM_PREFIX = "pending:"


def now_utc() -> datetime:
    # naive UTC; Tortoise runs with use_tz=False
    return datetime.now(pytz.utc).replace(tzinfo=None)


class DispatchTarget(BaseModel):
    kind: str  # CallTarget value, or "worker" for standalone tasks
    phone: Optional[str] = None
    name: Optional[str] = None
    worker_id: Optional[int] = None
    medical_center_id: Optional[int] = None


class DispatchResult(BaseModel):
    task_id: int
    call_id: str
    call_status: Optional[str] = None
    call_sequence: Optional[int] = None
    target: str
    target_name: Optional[str] = None
    target_phone: str


# ───────────────────────── variable bag ─────────────────────────

def normalize_time_slots(raw: Optional[List[Any]]) -> List[Dict[str, Any]]:
    slots = []
    for item in raw or []:
        if isinstance(item, dict):
            if item.get("datetime") or item.get("time"):
                slots.append(dict(item))
        elif item not in (None, ""):
            slots.append({"datetime": str(item)})
    return slots


def format_time_slots(slots: List[Dict[str, Any]]) -> str:
    lines = []
    for i, slot in enumerate(slots, 1):
        when = slot.get("datetime") or slot.get("time")
        doctor = slot.get("doctor_name")
        lines.append(f"{i}. {when} with {doctor}" if doctor else f"{i}. {when}")
    return "\n".join(lines)


def build_variables(
    task_type: VoiceTaskType,
    worker_name: Optional[str],
    workflow_id: Optional[int] = None,
    available_times: Optional[List[Any]] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Always: workflow id, call type, worker name. Offered slots both as a numbered list and raw JSON."""
    name = (worker_name or "").strip()
    variables: Dict[str, Any] = {
        "workflow_id": workflow_id if workflow_id is not None else "",
        "call_type": task_type.call_type,
        "worker_name": name,
        "worker_first_name": name.split(" ")[0] if name else "",
    }
    slots = normalize_time_slots(available_times)
    if slots:
        variables["available_times_summary"] = format_time_slots(slots)
        variables["available_times_json"] = json.dumps(slots)
    for k, v in (extra or {}).items():
        if v is not None:
            variables[k] = v
    return variables


# ───────────────────────── bookkeeping ─────────────────────────

async def next_call_sequence(workflow_id: int) -> int:
    # derived from persisted tasks so restarts and parallel workers agree
    return await VoiceTask.filter(booking_workflow_id=workflow_id).count() + 1


async def log_activity(
    incident_id: int,
    summary: str,
    details: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    action_type: str = "voice_agent",
) -> None:
    await IncidentActivity.create(
        incident_id=incident_id,
        action_type=action_type,
        summary=summary[:500],
        details=details,
        actor_name=config.AGENT_ACTOR_NAME,
        metadata=metadata,
    )


async def fail_workflow(workflow_id: int, reason: str, claim_token: Optional[str] = None) -> bool:
    """Terminal failure. With a claim token only the claim holder may fail it."""
    qs = BookingWorkflow.filter(id=workflow_id).exclude(
        status__in=[BookingStatus.COMPLETED, BookingStatus.FAILED]
    )
    if claim_token is not None:
        qs = qs.filter(current_call_id=claim_token)
    n = await qs.update(
        status=BookingStatus.FAILED,
        failure_reason=reason,
        current_call_id=None,
        current_call_ended_at=now_utc(),
    )
    if n:
        logger.warning("workflow %s failed: %s", workflow_id, reason)
    return bool(n)


# ───────────────────────── dispatch ─────────────────────────

async def dispatch(
    task_type: VoiceTaskType,
    incident_id: int,
    target: DispatchTarget,
    variables: Dict[str, Any],
    workflow: Optional[BookingWorkflow] = None,
    claim_token: Optional[str] = None,
    priority: Optional[int] = None,
    created_by: str = "ai_booking_agent",
    scheduled_at: Optional[datetime] = None,
    extra_metadata: Optional[Dict[str, Any]] = None,
    context_data: Optional[Dict[str, Any]] = None,
    activity_summary: Optional[str] = None,
) -> DispatchResult:
    """
    Place one call leg.

    For booking legs the caller must already hold the workflow claim
    (`claim_token` sits in current_call_id); on success it is swapped for the
    provider call id, on failure the workflow is failed. UpstreamProviderError
    is re-raised after the failure has been persisted.
    """
    phone = normalize_phone(target.phone)
    if not phone:
        raise ValidationError(f"No phone number available for {target.kind}")

    if priority is None:
        urgent = workflow is not None and getattr(workflow.urgency, "value", workflow.urgency) == "urgent"
        priority = config.URGENT_TASK_PRIORITY if urgent else config.NORMAL_TASK_PRIORITY

    sequence = await next_call_sequence(workflow.id) if workflow else None

    task = await VoiceTask.create(
        incident_id=incident_id,
        booking_workflow_id=workflow.id if workflow else None,
        worker_id=target.worker_id,
        medical_center_id=target.medical_center_id,
        task_type=task_type,
        priority=priority,
        status=VoiceTaskStatus.PENDING,
        target_phone=phone,
        target_name=target.name,
        context_data={**(context_data or {}), "variables": variables, "call_sequence": sequence},
        scheduled_at=scheduled_at or now_utc(),
        created_by=created_by,
    )

    metadata = {
        "task_id": task.id,
        "incident_id": incident_id,
        "task_type": task_type.value,
    }
    if workflow:
        metadata.update({"workflow_id": workflow.id, "call_sequence": sequence})
    metadata.update(extra_metadata or {})

    try:
        agent_id = retell_helper.agent_for(task_type)
        resp = await retell_helper.create_phone_call(phone, agent_id, variables, metadata)
    except UpstreamProviderError as e:
        task.status = VoiceTaskStatus.FAILED
        task.failure_reason = e.message
        await task.save()
        if workflow:
            await fail_workflow(workflow.id, f"Failed to place {task_type.call_type} call: {e.message}", claim_token)
        logger.error("dispatch %s task=%s to %s failed: %s", task_type.value, task.id, phone, e.message)
        raise

    call_id = resp["call_id"]
    started = now_utc()
    task.status = VoiceTaskStatus.IN_PROGRESS
    task.retell_call_id = call_id
    await task.save()

    if workflow:
        await CallHistoryRecord.create(
            workflow_id=workflow.id,
            voice_task_id=task.id,
            call_sequence=sequence,
            call_target=CallTarget(target.kind),
            task_type=task_type.value,
            target_phone=phone,
            target_name=target.name,
            provider_call_id=call_id,
            started_at=started,
            outcome=CallOutcome.IN_PROGRESS,
        )
        swapped = await BookingWorkflow.filter(id=workflow.id, current_call_id=claim_token).update(
            current_call_id=call_id,
            current_call_started_at=started,
            current_call_ended_at=None,
            last_call_type=CallTarget(target.kind),
        )
        if not swapped:
            # workflow was failed/cancelled while we were on the phone with the provider
            logger.warning("workflow %s lost its claim before call %s was recorded", workflow.id, call_id)

    await log_activity(
        incident_id,
        activity_summary or f"AI agent calling {target.name or phone} ({task_type.call_type.replace('_', ' ')})",
        details=f"Call {call_id} placed to {phone}",
        metadata={k: v for k, v in {**metadata, "call_id": call_id}.items() if v is not None},
    )
    logger.info("dispatched %s task=%s call=%s seq=%s to %s", task_type.value, task.id, call_id, sequence, phone)

    return DispatchResult(
        task_id=task.id,
        call_id=call_id,
        call_status=resp.get("call_status"),
        call_sequence=sequence,
        target=target.kind,
        target_name=target.name,
        target_phone=phone,
    )
