import logging

from fastapi import APIRouter, Request

from helpers.errors import call_continuity_policy
from helpers.incident_intake import (
    confirmation_message,
    extract_staging_fields,
    finalize_inbound_incident,
    stage_incident,
)
from helpers.request_body import parse_incoming_body

router = APIRouter()
logger = logging.getLogger("incidents")


@router.post("/incidents/staging")
async def submit_incident_fields(req: Request):
    """
    In-call submit tool. Answers 200 with a sentence the agent can read back
    even when the staging write fails; see call_continuity_policy.
    """
    body = await parse_incoming_body(req)
    staged = extract_staging_fields(body)

    async with call_continuity_policy("incident staging", call_id=staged.call_id):
        await stage_incident(staged)

    return {
        "success": True,
        "call_id": staged.call_id,
        "message": confirmation_message(staged),
    }


@router.post("/incidents/inbound")
async def finalize_incident(req: Request):
    body = await parse_incoming_body(req)
    result = await finalize_inbound_incident(
        body.get("call_id"),
        extracted_data=body.get("extracted_data"),
        transcript=body.get("transcript"),
        caller_phone=body.get("from_number"),
    )
    return {
        "success": True,
        "incident_id": result.incident_id,
        "incident_number": result.incident_number,
        "worker_id": result.worker_id,
        "created": result.created,
        "needs_review": result.needs_review,
    }
