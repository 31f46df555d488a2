from enum import Enum
from tortoise import fields, models
from tortoise.indexes import Index


class BookingStatus(str, Enum):
    PENDING = "pending"
    CALLING_MEDICAL_CENTER = "calling_medical_center"
    AWAITING_PATIENT_RETRY = "awaiting_patient_retry"
    CALLING_PATIENT = "calling_patient"
    CONFIRMING_BOOKING = "confirming_booking"
    COMPLETED = "completed"
    FAILED = "failed"


# statuses that always carry a current_call_id
IN_CALL_STATUSES = frozenset({
    BookingStatus.CALLING_MEDICAL_CENTER,
    BookingStatus.CALLING_PATIENT,
    BookingStatus.CONFIRMING_BOOKING,
})
TERMINAL_STATUSES = frozenset({BookingStatus.COMPLETED, BookingStatus.FAILED})


class Urgency(str, Enum):
    NORMAL = "normal"
    URGENT = "urgent"


class CallTarget(str, Enum):
    MEDICAL_CENTER = "medical_center"
    PATIENT = "patient"


class BookingWorkflow(models.Model):
    id = fields.IntField(primary_key=True)

    incident = fields.ForeignKeyField("models.Incident", related_name="booking_workflows", on_delete=fields.CASCADE)
    medical_center = fields.ForeignKeyField(
        "models.MedicalCenter", related_name="booking_workflows", on_delete=fields.RESTRICT
    )
    worker = fields.ForeignKeyField("models.Worker", related_name="booking_workflows", null=True, on_delete=fields.SET_NULL)

    doctor_preference = fields.CharField(max_length=64, default="any")
    preferred_doctor_name = fields.CharField(max_length=255, null=True)
    urgency = fields.CharEnumField(Urgency, default=Urgency.NORMAL)
    status = fields.CharEnumField(BookingStatus, default=BookingStatus.PENDING)

    # ordered slots offered by the medical center: [{"datetime", "doctor_name"}...]
    available_times = fields.JSONField(null=True)
    patient_preferred_doctor = fields.CharField(max_length=255, null=True)
    patient_confirmed_time = fields.CharField(max_length=128, null=True)
    patient_call_attempts = fields.IntField(default=0)

    # CAS guard; holds a "pending:<token>" placeholder between claim and provider response
    current_call_id = fields.CharField(max_length=191, null=True)
    current_call_started_at = fields.DatetimeField(null=True)
    current_call_ended_at = fields.DatetimeField(null=True)
    last_call_type = fields.CharEnumField(CallTarget, null=True)

    confirmed_datetime = fields.CharField(max_length=128, null=True)
    confirmed_doctor_name = fields.CharField(max_length=255, null=True)
    appointment = fields.ForeignKeyField("models.Appointment", related_name="booking_workflows", null=True, on_delete=fields.SET_NULL)

    failure_reason = fields.TextField(null=True)
    requested_by = fields.CharField(max_length=120, null=True)

    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "booking_workflows"
        indexes = [
            Index(fields=["status", "updated_at"]),
            Index(fields=["current_call_id"]),
        ]
