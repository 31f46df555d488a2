import logging

from fastapi import APIRouter, Request

from helpers.booking_workflow import handle_booking_call_event
from helpers.incident_intake import handle_incident_call, is_incident_report_call
from helpers.request_body import parse_incoming_body

router = APIRouter()
log = logging.getLogger("retell_webhook")

HANDLED_EVENTS = {"call_started", "call_ended", "call_analyzed"}


@router.post("/webhooks/retell")
async def retell_webhook(req: Request):
    body = await parse_incoming_body(req)

    event = (body or {}).get("event")
    call = (body or {}).get("call") or {}
    if event not in HANDLED_EVENTS or not call.get("call_id"):
        # health checks / events we don't act on
        return {"status": "ignored"}

    log.info("retell %s for call %s (agent=%s direction=%s)", event, call.get("call_id"),
             call.get("agent_id"), call.get("direction"))

    if is_incident_report_call(call):
        # don't wait for call_analyzed; finalizing is idempotent per call id
        if event != "call_ended":
            return {"status": "ignored"}
        result = await handle_incident_call(call)
        return {"status": "processed", **result.model_dump()}

    return await handle_booking_call_event(event, call)
