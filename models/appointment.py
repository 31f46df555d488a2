from enum import Enum
from tortoise import fields, models
from tortoise.indexes import Index


class AppointmentStatus(str, Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class Appointment(models.Model):
    id = fields.IntField(primary_key=True)

    incident = fields.ForeignKeyField("models.Incident", related_name="appointments", on_delete=fields.CASCADE)
    worker = fields.ForeignKeyField("models.Worker", related_name="appointments", null=True, on_delete=fields.SET_NULL)
    medical_center = fields.ForeignKeyField(
        "models.MedicalCenter", related_name="appointments", null=True, on_delete=fields.SET_NULL
    )

    # final_confirm call that locked it in
    source_call_id = fields.CharField(max_length=191, null=True, unique=True)

    appointment_type = fields.CharField(max_length=64, default="initial_consultation")
    scheduled_for = fields.CharField(max_length=64)
    doctor_name = fields.CharField(max_length=255, null=True)
    location = fields.CharField(max_length=255, null=True)
    notes = fields.TextField(null=True)

    status = fields.CharEnumField(AppointmentStatus, default=AppointmentStatus.CONFIRMED)

    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "appointments"
        indexes = [
            Index(fields=["incident_id", "status"]),
        ]
