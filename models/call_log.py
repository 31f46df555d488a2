# models/call_log.py
from enum import Enum
from tortoise.models import Model
from tortoise import fields

from models.booking_workflow import CallTarget


class CallOutcome(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    NO_ANSWER = "no_answer"
    FAILED = "failed"


def normalize_outcome(value: str | None) -> CallOutcome:
    """Map provider dispositions onto the four outcomes we keep."""
    if isinstance(value, CallOutcome):
        return value
    v = (value or "").strip().lower().replace("-", "_").replace(" ", "_")
    norm_map = {
        "in_progress": CallOutcome.IN_PROGRESS,
        "ongoing": CallOutcome.IN_PROGRESS,
        "registered": CallOutcome.IN_PROGRESS,
        "completed": CallOutcome.COMPLETED,
        "ended": CallOutcome.COMPLETED,
        "success": CallOutcome.COMPLETED,
        "no_answer": CallOutcome.NO_ANSWER,
        "voicemail": CallOutcome.NO_ANSWER,
        "voice_mail": CallOutcome.NO_ANSWER,
        "dial_no_answer": CallOutcome.NO_ANSWER,
        "dial_busy": CallOutcome.NO_ANSWER,
        "busy": CallOutcome.NO_ANSWER,
        "voicemail_reached": CallOutcome.NO_ANSWER,
    }
    return norm_map.get(v, CallOutcome.FAILED)


class CallHistoryRecord(Model):
    id = fields.IntField(primary_key=True)
    workflow = fields.ForeignKeyField("models.BookingWorkflow", related_name="call_history", on_delete=fields.CASCADE)
    voice_task = fields.OneToOneField("models.VoiceTask", related_name="call_history", null=True, on_delete=fields.SET_NULL)

    call_sequence = fields.IntField()
    call_target = fields.CharEnumField(CallTarget)
    task_type = fields.CharField(max_length=64)

    target_phone = fields.CharField(max_length=32)
    target_name = fields.CharField(max_length=255, null=True)

    provider_call_id = fields.CharField(max_length=191, unique=True)

    # timings
    started_at = fields.DatetimeField(null=True)
    ended_at = fields.DatetimeField(null=True)

    outcome = fields.CharEnumField(CallOutcome, default=CallOutcome.IN_PROGRESS)
    failure_reason = fields.TextField(null=True)
    extracted_data = fields.JSONField(null=True)

    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "booking_call_history"
        unique_together = (("workflow", "call_sequence"),)
        ordering = ["workflow_id", "call_sequence"]

    async def save(self, *args, **kwargs):
        self.outcome = normalize_outcome(self.outcome)
        await super().save(*args, **kwargs)
