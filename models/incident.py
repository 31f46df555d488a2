from tortoise import fields, models
from tortoise.indexes import Index


class Incident(models.Model):
    id = fields.IntField(primary_key=True)
    incident_number = fields.CharField(max_length=32, unique=True)

    worker = fields.ForeignKeyField("models.Worker", related_name="incidents", null=True, on_delete=fields.SET_NULL)
    employer = fields.ForeignKeyField("models.Employer", related_name="incidents", on_delete=fields.RESTRICT)
    site = fields.ForeignKeyField("models.Site", related_name="incidents", null=True, on_delete=fields.SET_NULL)

    date_of_injury = fields.DateField(null=True)
    time_of_injury = fields.CharField(max_length=16, null=True)
    injury_type = fields.CharField(max_length=120, null=True)
    injury_description = fields.TextField(null=True)
    body_part = fields.CharField(max_length=120, null=True)
    body_side = fields.CharField(max_length=32, null=True)
    classification = fields.CharField(max_length=32, null=True)
    treatment_provided = fields.TextField(null=True)
    incident_status = fields.CharField(max_length=64, default="Voice Agent")
    case_notes = fields.TextField(null=True)

    notifying_person_name = fields.CharField(max_length=255, null=True)
    notifying_person_telephone = fields.CharField(max_length=32, null=True)
    notifying_person_position = fields.CharField(max_length=120, null=True)

    # one incident per inbound call
    source_call_id = fields.CharField(max_length=191, null=True, unique=True)

    # set when employer fell back to the configured default
    needs_review = fields.BooleanField(default=False)
    review_reason = fields.CharField(max_length=255, null=True)

    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "incidents"
        indexes = [
            Index(fields=["employer_id", "created_at"]),
            Index(fields=["needs_review"]),
        ]


class IncidentActivity(models.Model):
    id = fields.IntField(primary_key=True)
    incident = fields.ForeignKeyField("models.Incident", related_name="activity", on_delete=fields.CASCADE)
    action_type = fields.CharField(max_length=64)
    summary = fields.CharField(max_length=500)
    details = fields.TextField(null=True)
    actor_name = fields.CharField(max_length=120, null=True)
    metadata = fields.JSONField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "incident_activity_log"
        indexes = [Index(fields=["incident_id", "created_at"])]
