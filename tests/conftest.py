"""
Shared fixtures: a fresh in-memory database per test and a fake Retell client
that records outbound calls instead of placing them.
"""
from types import SimpleNamespace

import pytest
from tortoise import Tortoise

from helpers import config, retell_helper
from helpers.errors import UpstreamProviderError
from helpers.tortoise_config import MODEL_MODULES
from models.booking_workflow import BookingStatus, BookingWorkflow, CallTarget
from models.call_log import CallHistoryRecord, CallOutcome
from models.incident import Incident
from models.reference import Employer, MedicalCenter, Worker
from models.voice_task import VoiceTask, VoiceTaskStatus, VoiceTaskType


@pytest.fixture
async def db():
    await Tortoise.init(db_url="sqlite://:memory:", modules={"models": MODEL_MODULES}, use_tz=False)
    await Tortoise.generate_schemas()
    yield
    await Tortoise.close_connections()


class FakeRetell:
    def __init__(self):
        self.calls = []
        self.fail_with = None
        self._n = 0

    async def create_phone_call(self, to_number, agent_id, variables, metadata):
        self.calls.append({
            "to_number": to_number,
            "agent_id": agent_id,
            "variables": variables,
            "metadata": metadata,
        })
        if self.fail_with:
            raise self.fail_with
        self._n += 1
        return {"call_id": f"call_{self._n}", "call_status": "registered"}

    def fail(self, message="Retell API error: 500 boom"):
        self.fail_with = UpstreamProviderError(message, status=500)


@pytest.fixture
def retell(monkeypatch):
    fake = FakeRetell()
    monkeypatch.setattr(retell_helper, "create_phone_call", fake.create_phone_call)
    for name in (
        "RETELL_BOOKING_AGENT_ID",
        "RETELL_CHECKIN_AGENT_ID",
        "RETELL_REMINDER_AGENT_ID",
        "RETELL_SURVEY_AGENT_ID",
    ):
        monkeypatch.setattr(config, name, f"agent_{name.split('_')[1].lower()}")
    return fake


@pytest.fixture
async def booking_setup(db):
    employer = await Employer.create(id=1, employer_name="Acme Logistics")
    worker = await Worker.create(
        given_name="Sam",
        family_name="Lee",
        mobile_number="0412 345 678",
        employer=employer,
    )
    clinic = await MedicalCenter.create(
        name="Harbour Medical",
        phone_number="(02) 9876 5432",
        address="1 George St",
        suburb="Sydney",
        postcode="2000",
    )
    incident = await Incident.create(
        incident_number="INC-20261019-0001",
        worker=worker,
        employer=employer,
        injury_type="Sprain/Strain",
        body_part="Wrist",
    )
    return SimpleNamespace(employer=employer, worker=worker, clinic=clinic, incident=incident)


async def seed_waiting_workflow(setup, attempts=0, prior_legs=1, urgency="normal"):
    """A workflow that has collected times and is waiting for the patient leg."""
    wf = await BookingWorkflow.create(
        incident=setup.incident,
        medical_center=setup.clinic,
        worker=setup.worker,
        urgency=urgency,
        status=BookingStatus.AWAITING_PATIENT_RETRY,
        available_times=[
            {"datetime": "Tue 10:00am", "doctor_name": "Dr Patel"},
            {"datetime": "Tue 2:30pm", "doctor_name": "Dr Wong"},
        ],
        patient_call_attempts=attempts,
    )
    for seq in range(1, prior_legs + 1):
        target = CallTarget.MEDICAL_CENTER if seq == 1 else CallTarget.PATIENT
        task_type = VoiceTaskType.BOOKING_GET_TIMES if seq == 1 else VoiceTaskType.BOOKING_PATIENT_CONFIRM
        task = await VoiceTask.create(
            incident=setup.incident,
            booking_workflow=wf,
            task_type=task_type,
            status=VoiceTaskStatus.COMPLETED,
            target_phone="+61298765432",
            retell_call_id=f"old_{wf.id}_{seq}",
        )
        await CallHistoryRecord.create(
            workflow=wf,
            voice_task=task,
            call_sequence=seq,
            call_target=target,
            task_type=task_type.value,
            target_phone="+61298765432",
            provider_call_id=f"old_{wf.id}_{seq}",
            outcome=CallOutcome.COMPLETED if seq == 1 else CallOutcome.NO_ANSWER,
        )
    return wf
