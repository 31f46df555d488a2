from fastapi import APIRouter

from helpers.patient_retries import run_patient_retries

router = APIRouter()


@router.post("/retries/patient")
async def process_patient_retries():
    """Hit by an external cron every 5-10 minutes."""
    return await run_patient_retries()
