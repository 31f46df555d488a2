"""
In-call booking tools: the agent reports mid-call and the workflow moves on
without waiting for the post-call webhook.
"""
import pytest

from helpers import booking_tools, booking_workflow
from helpers.booking_workflow import create_workflow, handle_booking_call_event
from helpers.errors import NotFoundError, ValidationError
from models.appointment import Appointment
from models.booking_workflow import BookingStatus, BookingWorkflow
from models.call_log import CallHistoryRecord, CallOutcome
from models.incident import IncidentActivity
from models.voice_task import VoiceTask, VoiceTaskStatus
from tests.conftest import seed_waiting_workflow


def tool_call(call_id, **args):
    return {"call": {"call_id": call_id}, "args": args}


@pytest.fixture
def after_hours(monkeypatch):
    monkeypatch.setattr(booking_workflow, "within_calling_hours", lambda *a, **k: False)


@pytest.fixture
def office_hours(monkeypatch):
    monkeypatch.setattr(booking_workflow, "within_calling_hours", lambda *a, **k: True)


class TestSubmitTimes:
    async def test_times_recorded_mid_call(self, booking_setup, retell, after_hours):
        wf, _ = await create_workflow(booking_setup.incident.id, booking_setup.clinic.id)

        reply = await booking_tools.submit_times(tool_call(
            "call_1",
            available_times=[{"datetime": "Tue 10:00am", "doctor_name": "Dr Patel"}, "Wed 3pm"],
            clinic_notes="Bring Medicare card",
        ))

        assert reply["success"] is True
        assert reply["times_count"] == 2
        assert reply["next_step"] == "call_patient"
        assert reply["message"].startswith("Got it, I have 2 available times.")
        wf = await BookingWorkflow.get(id=wf.id)
        assert wf.status == BookingStatus.AWAITING_PATIENT_RETRY
        assert wf.current_call_id is None
        assert wf.available_times == [{"datetime": "Tue 10:00am", "doctor_name": "Dr Patel"}, {"datetime": "Wed 3pm"}]
        history = await CallHistoryRecord.get(provider_call_id="call_1")
        assert history.outcome == CallOutcome.COMPLETED
        assert history.extracted_data["clinic_notes"] == "Bring Medicare card"
        assert (await VoiceTask.get(retell_call_id="call_1")).status == VoiceTaskStatus.COMPLETED
        activity = await IncidentActivity.get(summary="Harbour Medical offered 2 time(s)")
        assert activity.details == "Bring Medicare card"
        assert activity.metadata["source"] == "booking submit times"

    async def test_later_webhook_for_the_same_call_is_stale(self, booking_setup, retell, after_hours):
        wf, _ = await create_workflow(booking_setup.incident.id, booking_setup.clinic.id)
        await booking_tools.submit_times(tool_call("call_1", time_slot_1="Tue 10am"))

        out = await handle_booking_call_event("call_analyzed", {
            "call_id": "call_1",
            "call_analysis": {"call_successful": True, "custom_analysis_data": {"time_slot_1": "Thu 9am"}},
        })

        assert out["status"] == "stale"
        wf = await BookingWorkflow.get(id=wf.id)
        assert wf.available_times == [{"datetime": "Tue 10am"}]

    async def test_in_hours_goes_straight_to_the_patient(self, booking_setup, retell, office_hours):
        wf, _ = await create_workflow(booking_setup.incident.id, booking_setup.clinic.id)

        reply = await booking_tools.submit_times(tool_call("call_1", available_times=["Tue 10am"]))

        assert reply["workflow_status"] == "calling_patient"
        assert reply["message"].startswith("Got it, I have 1 available time.")
        wf = await BookingWorkflow.get(id=wf.id)
        assert wf.current_call_id == "call_2"
        assert retell.calls[1]["to_number"] == "+61412345678"

    async def test_no_times_asks_again(self, booking_setup, retell, after_hours):
        wf, _ = await create_workflow(booking_setup.incident.id, booking_setup.clinic.id)

        reply = await booking_tools.submit_times(tool_call("call_1", available_times=[]))

        assert reply["success"] is False
        assert reply["next_step"] == "retry_or_fail"
        assert (await BookingWorkflow.get(id=wf.id)).status == BookingStatus.CALLING_MEDICAL_CENTER

    async def test_found_by_workflow_id(self, booking_setup, retell, after_hours):
        wf, _ = await create_workflow(booking_setup.incident.id, booking_setup.clinic.id)

        reply = await booking_tools.submit_times({
            "call": {"metadata": {"workflow_id": str(wf.id)}},
            "available_times": ["Fri 4pm"],
        })

        assert reply["success"] is True
        assert (await BookingWorkflow.get(id=wf.id)).available_times == [{"datetime": "Fri 4pm"}]

    async def test_wrong_leg_is_rejected(self, booking_setup, retell, office_hours):
        await create_workflow(booking_setup.incident.id, booking_setup.clinic.id)
        await booking_tools.submit_times(tool_call("call_1", available_times=["Tue 10am"]))

        with pytest.raises(ValidationError):
            await booking_tools.submit_times(tool_call("call_2", available_times=["Thu 9am"]))

    async def test_unknown_call(self, db):
        with pytest.raises(NotFoundError):
            await booking_tools.submit_times(tool_call("nope", available_times=["Tue 10am"]))

    async def test_no_call_reference(self, db):
        with pytest.raises(ValidationError):
            await booking_tools.submit_times({"available_times": ["Tue 10am"]})


class TestPatientTools:
    async def test_confirm_places_final_call(self, booking_setup, retell):
        wf = await seed_waiting_workflow(booking_setup)
        await booking_workflow.continue_workflow(wf.id, "booking_patient_confirm")

        reply = await booking_tools.patient_confirm(tool_call(
            "call_1", patient_confirmed_time="Tue 10:00am", patient_preferred_doctor="Dr Patel"))

        assert reply["success"] is True
        assert reply["next_step"] == "confirm_with_clinic"
        wf = await BookingWorkflow.get(id=wf.id)
        assert wf.status == BookingStatus.CONFIRMING_BOOKING
        assert wf.patient_confirmed_time == "Tue 10:00am"
        assert wf.current_call_id == "call_2"
        assert retell.calls[1]["variables"]["call_type"] == "final_confirm"
        assert retell.calls[1]["variables"]["patient_preferred_doctor"] == "Dr Patel"

    async def test_confirm_without_a_time_asks_again(self, booking_setup, retell):
        wf = await seed_waiting_workflow(booking_setup)
        await booking_workflow.continue_workflow(wf.id, "booking_patient_confirm")

        reply = await booking_tools.patient_confirm(tool_call("call_1"))

        assert reply == {
            "success": False,
            "message": "I didn't catch which time you preferred. Which appointment time works for you?",
            "next_step": "ask_again",
        }
        assert (await BookingWorkflow.get(id=wf.id)).status == BookingStatus.CALLING_PATIENT

    async def test_reschedule_goes_back_to_the_clinic(self, booking_setup, retell):
        wf = await seed_waiting_workflow(booking_setup)
        await booking_workflow.continue_workflow(wf.id, "booking_patient_confirm")

        reply = await booking_tools.patient_reschedule(tool_call("call_1", patient_availability_notes="mornings only"))

        assert reply["success"] is True
        assert reply["next_step"] == "get_new_times"
        wf = await BookingWorkflow.get(id=wf.id)
        assert wf.status == BookingStatus.CALLING_MEDICAL_CENTER
        assert retell.calls[1]["variables"]["call_type"] == "get_times"
        assert retell.calls[1]["variables"]["patient_availability_notes"] == "mornings only"

    async def test_failed_with_retry_counts_as_missed_attempt(self, booking_setup, retell):
        wf = await seed_waiting_workflow(booking_setup)
        await booking_workflow.continue_workflow(wf.id, "booking_patient_confirm")

        reply = await booking_tools.booking_failed(tool_call("call_1", failure_reason="Patient driving", should_retry="yes"))

        assert reply["should_retry"] is True
        assert reply["workflow_status"] == "awaiting_patient_retry"
        wf = await BookingWorkflow.get(id=wf.id)
        assert wf.status == BookingStatus.AWAITING_PATIENT_RETRY
        assert wf.current_call_id is None
        assert wf.patient_call_attempts == 1


class TestClinicTools:
    async def _confirming(self, setup):
        wf = await seed_waiting_workflow(setup)
        await booking_workflow.continue_workflow(wf.id, "booking_patient_confirm")
        await booking_tools.patient_confirm(tool_call("call_1", patient_confirmed_time="Tue 10:00am"))
        return wf

    async def test_confirm_final_books_the_appointment(self, booking_setup, retell):
        wf = await self._confirming(booking_setup)

        reply = await booking_tools.confirm_final(tool_call("call_2", confirmed_doctor_name="Dr Patel"))

        assert reply["success"] is True
        assert reply["next_step"] == "booking_complete"
        assert reply["appointment_datetime"] == "Tue 10:00am"
        assert reply["message"] == (
            "Wonderful, that's all confirmed for Tue 10:00am with Dr Patel. Thank you for your help!")
        wf = await BookingWorkflow.get(id=wf.id)
        assert wf.status == BookingStatus.COMPLETED
        appt = await Appointment.get(id=reply["appointment_id"])
        assert appt.scheduled_for == "Tue 10:00am"
        assert appt.source_call_id == "call_2"

    async def test_clinic_says_no(self, booking_setup, retell):
        wf = await self._confirming(booking_setup)

        reply = await booking_tools.confirm_final(tool_call("call_2", booking_confirmed=False,
                                                            booking_notes="Doctor on leave"))

        assert reply["appointment_confirmed"] is False
        wf = await BookingWorkflow.get(id=wf.id)
        assert wf.status == BookingStatus.FAILED
        assert wf.failure_reason == "Doctor on leave"
        assert await Appointment.all().count() == 0

    async def test_failed_ends_the_workflow(self, booking_setup, retell):
        wf = await self._confirming(booking_setup)

        reply = await booking_tools.booking_failed(tool_call("call_2", failure_reason="Clinic closed",
                                                             notes="Reopens Monday", should_retry=True))

        assert reply["should_retry"] is False
        assert reply["workflow_status"] == "failed"
        wf = await BookingWorkflow.get(id=wf.id)
        assert wf.status == BookingStatus.FAILED
        assert wf.failure_reason == "Clinic closed. Notes: Reopens Monday"
        assert (await CallHistoryRecord.get(provider_call_id="call_2")).outcome == CallOutcome.FAILED

    async def test_report_after_workflow_moved_on(self, booking_setup, retell):
        wf = await self._confirming(booking_setup)
        await booking_tools.confirm_final(tool_call("call_2"))

        reply = await booking_tools.confirm_final(tool_call("call_2"))

        assert reply == {"success": False, "message": "Thank you, that's already been recorded.", "next_step": "end_call"}
        assert await Appointment.filter(incident_id=wf.incident_id).count() == 1
