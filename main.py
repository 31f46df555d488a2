# main.py
from dotenv import load_dotenv
load_dotenv()

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from helpers import config
from helpers.errors import register_exception_handlers
from helpers.tortoise_config import lifespan as db_lifespan
from scheduler.retry_scheduler import schedule_patient_retry_job, shutdown_scheduler

# ----- Routers / controllers -----
from controllers import (
    booking_tools_controller,
    incident_controller,
    reference_lookup_controller,
    retell_webhook,
    retry_controller,
    voice_task_controller,
    worker_lookup_controller,
    workflow_controller,
)

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with asynccontextmanager(db_lifespan)(app):
        if config.PATIENT_RETRY_SCHED_ENABLED:
            schedule_patient_retry_job()
        else:
            logger.info("[patient retries] in-process job disabled; expecting POST /retries/patient")
        yield
        shutdown_scheduler(wait=False)


app = FastAPI(title="Voice Booking Orchestrator", lifespan=lifespan)

# ----- Middlewares -----
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_exception_handlers(app)

# ----- Routers -----
app.include_router(workflow_controller.router, tags=["Booking Workflows"])
app.include_router(voice_task_controller.router, tags=["Voice Tasks"])
app.include_router(worker_lookup_controller.router, tags=["Worker Lookup"])
app.include_router(reference_lookup_controller.router, tags=["Employer & Site Lookup"])
app.include_router(booking_tools_controller.router, tags=["Booking Tools"])
app.include_router(incident_controller.router, tags=["Incident Intake"])
app.include_router(retry_controller.router, tags=["Patient Retries"])
app.include_router(retell_webhook.router, tags=["Retell Webhook"])


# ----- Root -----
@app.get("/")
def greetings():
    return {"Message": "Voice booking orchestrator is up"}
