from enum import Enum
from tortoise import fields, models
from tortoise.indexes import Index


class VoiceTaskType(str, Enum):
    BOOKING_GET_TIMES = "booking_get_times"
    BOOKING_PATIENT_CONFIRM = "booking_patient_confirm"
    BOOKING_FINAL_CONFIRM = "booking_final_confirm"
    CHECK_IN = "check_in"
    REMINDER = "reminder"
    FOLLOW_UP = "follow_up"
    SURVEY = "survey"

    @property
    def is_booking(self) -> bool:
        return self.value.startswith("booking_")

    @property
    def call_type(self) -> str:
        # 'booking_get_times' -> 'get_times'; agents branch on this tag
        return self.value[len("booking_"):] if self.is_booking else self.value


class VoiceTaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class VoiceTask(models.Model):
    id = fields.IntField(primary_key=True)
    incident = fields.ForeignKeyField("models.Incident", related_name="voice_tasks", on_delete=fields.CASCADE)
    booking_workflow = fields.ForeignKeyField(
        "models.BookingWorkflow", related_name="voice_tasks", null=True, on_delete=fields.CASCADE
    )
    worker = fields.ForeignKeyField("models.Worker", related_name="voice_tasks", null=True, on_delete=fields.SET_NULL)
    medical_center = fields.ForeignKeyField(
        "models.MedicalCenter", related_name="voice_tasks", null=True, on_delete=fields.SET_NULL
    )
    appointment_id = fields.IntField(null=True)

    task_type = fields.CharEnumField(VoiceTaskType)
    priority = fields.IntField(default=5)
    status = fields.CharEnumField(VoiceTaskStatus, default=VoiceTaskStatus.PENDING)

    target_phone = fields.CharField(max_length=32)
    target_name = fields.CharField(max_length=255, null=True)
    context_data = fields.JSONField(null=True)

    retell_call_id = fields.CharField(max_length=191, null=True, unique=True)
    failure_reason = fields.TextField(null=True)

    scheduled_at = fields.DatetimeField(null=True)
    created_by = fields.CharField(max_length=64, default="ai_booking_agent")
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "voice_tasks"
        indexes = [
            Index(fields=["booking_workflow_id", "created_at"]),
            Index(fields=["status", "scheduled_at"]),
        ]
