from tortoise import fields, models
from tortoise.indexes import Index


class Employer(models.Model):
    id = fields.IntField(primary_key=True)
    employer_name = fields.CharField(max_length=255)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "employers"


class Site(models.Model):
    id = fields.IntField(primary_key=True)
    site_name = fields.CharField(max_length=255)
    employer = fields.ForeignKeyField("models.Employer", related_name="sites", on_delete=fields.CASCADE)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "sites"


class Worker(models.Model):
    id = fields.IntField(primary_key=True)
    given_name = fields.CharField(max_length=120, null=True)
    family_name = fields.CharField(max_length=120, null=True)
    mobile_number = fields.CharField(max_length=32, null=True)
    phone_number = fields.CharField(max_length=32, null=True)
    email = fields.CharField(max_length=255, null=True)
    occupation = fields.CharField(max_length=120, null=True)
    date_of_birth = fields.DateField(null=True)
    employer = fields.ForeignKeyField("models.Employer", related_name="workers", null=True, on_delete=fields.SET_NULL)
    is_active = fields.BooleanField(default=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "workers"
        indexes = [
            Index(fields=["employer_id", "is_active"]),
            Index(fields=["mobile_number"]),
        ]

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.given_name, self.family_name) if p).strip()

    @property
    def best_phone(self):
        return self.mobile_number or self.phone_number


class MedicalCenter(models.Model):
    id = fields.IntField(primary_key=True)
    name = fields.CharField(max_length=255)
    phone_number = fields.CharField(max_length=32, null=True)
    address = fields.CharField(max_length=255, null=True)
    suburb = fields.CharField(max_length=120, null=True)
    postcode = fields.CharField(max_length=16, null=True)
    preferred_provider = fields.BooleanField(default=False)
    active = fields.BooleanField(default=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "medical_centers"

    @property
    def full_address(self) -> str:
        return ", ".join(p for p in (self.address, self.suburb, self.postcode) if p)
