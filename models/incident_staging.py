from tortoise import fields, models


# columns an in-call submit may fill; call_id is the key
STAGED_FIELDS = (
    "employer_id",
    "employer_name",
    "site_id",
    "site_name",
    "worker_id",
    "worker_name",
    "caller_name",
    "caller_role",
    "caller_position",
    "caller_phone",
    "injury_type",
    "injury_description",
    "body_part_injured",
    "body_side",
    "severity",
    "date_of_injury",
    "time_of_injury",
    "treatment_received",
    "witness_name",
    "caller_was_witness",
)


class IncidentStaging(models.Model):
    id = fields.IntField(primary_key=True)
    call_id = fields.CharField(max_length=191, unique=True)

    employer_id = fields.IntField(null=True)
    employer_name = fields.CharField(max_length=255, null=True)
    site_id = fields.IntField(null=True)
    site_name = fields.CharField(max_length=255, null=True)
    worker_id = fields.IntField(null=True)
    worker_name = fields.CharField(max_length=255, null=True)

    caller_name = fields.CharField(max_length=255, null=True)
    caller_role = fields.CharField(max_length=120, null=True)
    caller_position = fields.CharField(max_length=120, null=True)
    caller_phone = fields.CharField(max_length=32, null=True)

    injury_type = fields.CharField(max_length=120, null=True)
    injury_description = fields.TextField(null=True)
    body_part_injured = fields.CharField(max_length=120, null=True)
    body_side = fields.CharField(max_length=32, null=True)
    severity = fields.CharField(max_length=32, null=True)
    date_of_injury = fields.CharField(max_length=64, null=True)
    time_of_injury = fields.CharField(max_length=32, null=True)
    treatment_received = fields.TextField(null=True)
    witness_name = fields.CharField(max_length=255, null=True)
    caller_was_witness = fields.BooleanField(null=True)

    processed_at = fields.DatetimeField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "incident_staging"

    def as_fields(self) -> dict:
        return {k: getattr(self, k) for k in STAGED_FIELDS if getattr(self, k) is not None}
