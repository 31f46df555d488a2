import logging
from datetime import datetime
from typing import Any, Dict, Optional

import pytz
from fastapi import APIRouter
from pydantic import BaseModel

from helpers.call_dispatcher import DispatchTarget, build_variables, dispatch
from helpers.errors import NotFoundError, ValidationError
from models.booking_workflow import CallTarget
from models.incident import Incident
from models.reference import MedicalCenter, Worker
from models.voice_task import VoiceTaskType

router = APIRouter()
logger = logging.getLogger("voice_tasks")


class CreateVoiceTaskRequest(BaseModel):
    incident_id: Optional[int] = None
    task_type: Optional[str] = None
    priority: Optional[int] = None
    worker_id: Optional[int] = None
    medical_center_id: Optional[int] = None
    appointment_id: Optional[int] = None
    target_phone: Optional[str] = None
    target_name: Optional[str] = None
    context_data: Optional[Dict[str, Any]] = None
    scheduled_at: Optional[datetime] = None
    created_by: Optional[str] = None


async def _resolve_target(task_type: VoiceTaskType, incident: Incident, payload: CreateVoiceTaskRequest):
    worker_id = payload.worker_id or incident.worker_id
    worker = await Worker.get_or_none(id=worker_id) if worker_id else None

    if task_type.is_booking and task_type != VoiceTaskType.BOOKING_PATIENT_CONFIRM:
        if not payload.medical_center_id:
            raise ValidationError("medical_center_id is required for booking tasks")
        mc = await MedicalCenter.get_or_none(id=payload.medical_center_id)
        if not mc:
            raise NotFoundError(f"Medical center {payload.medical_center_id} not found")
        target = DispatchTarget(
            kind=CallTarget.MEDICAL_CENTER.value,
            phone=payload.target_phone or mc.phone_number,
            name=payload.target_name or mc.name,
            medical_center_id=mc.id,
            worker_id=worker.id if worker else None,
        )
        return target, worker, mc

    if not worker and not payload.target_phone:
        raise NotFoundError(f"No worker linked to incident {incident.id}")
    target = DispatchTarget(
        kind="worker",
        phone=payload.target_phone or (worker.best_phone if worker else None),
        name=payload.target_name or (worker.full_name if worker else None),
        worker_id=worker.id if worker else None,
    )
    return target, worker, None


@router.post("/voice-tasks")
async def create_voice_task(payload: CreateVoiceTaskRequest):
    """Standalone (non-workflow) call: check-ins, reminders, surveys, one-off bookings."""
    if not payload.incident_id or not payload.task_type:
        raise ValidationError("incident_id and task_type are required")
    try:
        task_type = VoiceTaskType(payload.task_type)
    except ValueError:
        raise ValidationError(f"Unknown task_type: {payload.task_type}")

    incident = await Incident.get_or_none(id=payload.incident_id)
    if not incident:
        raise NotFoundError(f"Incident {payload.incident_id} not found")

    target, worker, mc = await _resolve_target(task_type, incident, payload)

    context = dict(payload.context_data or {})
    extra = {
        "incident_number": incident.incident_number,
        "injury_type": incident.injury_type,
        "injury_description": incident.injury_description,
        "medical_center_name": mc.name if mc else None,
        "medical_center_address": mc.full_address if mc else None,
    }
    extra.update({k: v for k, v in context.items() if isinstance(v, (str, int, float, bool))})
    variables = build_variables(
        task_type,
        worker.full_name if worker else target.name,
        available_times=context.get("available_times"),
        extra=extra,
    )
    if payload.appointment_id:
        context["appointment_id"] = payload.appointment_id
    scheduled_at = payload.scheduled_at
    if scheduled_at and scheduled_at.tzinfo:
        scheduled_at = scheduled_at.astimezone(pytz.utc).replace(tzinfo=None)

    result = await dispatch(
        task_type,
        incident.id,
        target,
        variables,
        priority=payload.priority,
        created_by=payload.created_by or "dashboard",
        scheduled_at=scheduled_at,
        context_data=context,
    )
    logger.info("voice task %s (%s) dispatched for incident %s", result.task_id, task_type.value, incident.id)
    return {
        "success": True,
        "task_id": result.task_id,
        "call_id": result.call_id,
        "call_status": result.call_status,
    }
