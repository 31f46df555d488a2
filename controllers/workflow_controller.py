import logging
from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from helpers.booking_workflow import continue_workflow, create_workflow, workflow_snapshot
from helpers.errors import ValidationError

router = APIRouter()
logger = logging.getLogger("workflows")


class CreateWorkflowRequest(BaseModel):
    incident_id: int
    medical_center_id: int
    doctor_preference: str = "any"
    preferred_doctor_name: Optional[str] = None
    urgency: str = Field("normal", description="normal | urgent")
    requested_by: Optional[str] = None


class ContinueWorkflowRequest(BaseModel):
    task_type: Optional[str] = None


@router.post("/workflows")
async def start_booking_workflow(payload: CreateWorkflowRequest):
    wf, result = await create_workflow(
        incident_id=payload.incident_id,
        medical_center_id=payload.medical_center_id,
        doctor_preference=payload.doctor_preference,
        preferred_doctor_name=payload.preferred_doctor_name,
        urgency=payload.urgency,
        requested_by=payload.requested_by,
    )
    return {
        "success": True,
        "workflow_id": wf.id,
        "status": wf.status.value,
        "call_id": result.call_id if result else None,
        "target": result.target if result else None,
        "target_phone": result.target_phone if result else None,
    }


@router.post("/workflows/{workflow_id}/continue")
async def continue_booking_workflow(workflow_id: int, payload: Optional[ContinueWorkflowRequest] = None):
    task_type = (payload.task_type if payload else None) or ""
    if not task_type.strip():
        raise ValidationError("task_type is required")
    result = await continue_workflow(workflow_id, task_type.strip())
    logger.info("workflow %s continued with %s -> call %s", workflow_id, task_type, result.call_id)
    return {
        "success": True,
        "call_id": result.call_id,
        "target": result.target,
        "target_phone": result.target_phone,
    }


@router.get("/workflows/{workflow_id}")
async def get_booking_workflow(workflow_id: int):
    return await workflow_snapshot(workflow_id)
