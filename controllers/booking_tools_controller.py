from fastapi import APIRouter, Request

from helpers import booking_tools
from helpers.request_body import parse_incoming_body

router = APIRouter()


@router.post("/booking/submit-times")
async def submit_times(req: Request):
    """Clinic offered appointment times during a get-times call."""
    return await booking_tools.submit_times(await parse_incoming_body(req))


@router.post("/booking/patient-confirm")
async def patient_confirm(req: Request):
    return await booking_tools.patient_confirm(await parse_incoming_body(req))


@router.post("/booking/patient-reschedule")
async def patient_reschedule(req: Request):
    """None of the offered times suit the patient; go back to the clinic."""
    return await booking_tools.patient_reschedule(await parse_incoming_body(req))


@router.post("/booking/confirm-final")
async def confirm_final(req: Request):
    return await booking_tools.confirm_final(await parse_incoming_body(req))


@router.post("/booking/failed")
async def booking_failed(req: Request):
    return await booking_tools.booking_failed(await parse_incoming_body(req))
