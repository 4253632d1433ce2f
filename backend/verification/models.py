from __future__ import annotations

import time
import uuid

from django.conf import settings
from django.db import models


class CustomField(models.Model):
    """Admin-managed definition of an extra label/value pair shown on verification records.

    Definitions are edited through the Django admin; the verification API only reads them.
    """

    class FieldType(models.TextChoices):
        TEXT = "text", "Text"
        NUMBER = "number", "Number"
        DATE = "date", "Date"
        EMAIL = "email", "Email"
        PHONE = "phone", "Phone"
        SELECT = "select", "Select"
        TEXTAREA = "textarea", "Text area"

    class AppliesTo(models.TextChoices):
        VERIFICATION = "verification", "Verification records"
        USER = "user", "User profiles"
        BOTH = "both", "Both"

    field_name = models.CharField(max_length=100, unique=True)
    field_label = models.CharField(max_length=150, blank=True, default="")
    field_type = models.CharField(max_length=20, choices=FieldType.choices, default=FieldType.TEXT)
    placeholder = models.CharField(max_length=255, blank=True, default="")
    required = models.BooleanField(default=False)
    default_value = models.CharField(max_length=255, blank=True, default="")
    display_order = models.PositiveIntegerField(default=0)
    applies_to = models.CharField(
        max_length=20, choices=AppliesTo.choices, default=AppliesTo.VERIFICATION, db_index=True
    )
    is_active = models.BooleanField(default=True, db_index=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["display_order", "created_at"]

    def __str__(self) -> str:
        return self.label

    @property
    def label(self) -> str:
        return self.field_label or self.field_name

    @classmethod
    def active_for_verification(cls):
        return cls.objects.filter(
            applies_to__in=[cls.AppliesTo.VERIFICATION, cls.AppliesTo.BOTH],
            is_active=True,
        ).order_by("display_order", "created_at", "id")


class VerificationRecord(models.Model):
    """One Aadhaar identity check.

    Columns listed in `ENCRYPTED_FIELDS` and `verification_payload` hold Fernet
    ciphertext; read them through `verification.repository.RecordRepository`.
    """

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        VERIFIED = "verified", "Verified"
        REJECTED = "rejected", "Rejected"
        INVALID = "invalid", "Invalid"

    ENCRYPTED_FIELDS = (
        "aadhaar_number",
        "name",
        "date_of_birth",
        "gender",
        "address",
        "district",
        "state",
        "pin_code",
        "care_of",
        "photo",
    )

    QR_BATCH_PREFIX = "qr-"
    OTP_BATCH_PREFIX = "OTP_VERIFICATION_"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="verification_records",
    )
    batch_id = models.CharField(max_length=64, db_index=True)

    aadhaar_number = models.TextField(blank=True, default="")
    aadhaar_last4 = models.CharField(max_length=4, blank=True, default="")
    name = models.TextField(blank=True, default="")
    date_of_birth = models.TextField(blank=True, default="")
    gender = models.TextField(blank=True, default="")
    address = models.TextField(blank=True, default="")
    district = models.TextField(blank=True, default="")
    state = models.TextField(blank=True, default="")
    pin_code = models.TextField(blank=True, default="")
    care_of = models.TextField(blank=True, default="")
    photo = models.TextField(blank=True, default="")

    status = models.CharField(max_length=10, choices=Status.choices, default=Status.PENDING, db_index=True)
    dynamic_fields = models.JSONField(default=list, blank=True)

    # Embedded selfie. `selfie_path` only exists on records uploaded to disk before blobs were used.
    selfie_data = models.BinaryField(null=True, blank=True)
    selfie_filename = models.CharField(max_length=255, blank=True, default="")
    selfie_original_name = models.CharField(max_length=255, blank=True, default="")
    selfie_mimetype = models.CharField(max_length=100, blank=True, default="")
    selfie_size = models.PositiveIntegerField(null=True, blank=True)
    selfie_uploaded_at = models.DateTimeField(null=True, blank=True)
    selfie_path = models.CharField(max_length=500, blank=True, default="")

    transaction_id = models.CharField(max_length=128, blank=True, default="", db_index=True)
    verification_source = models.CharField(max_length=40, blank=True, default="")
    verification_remarks = models.CharField(max_length=255, blank=True, default="")
    verification_date = models.DateTimeField(null=True, blank=True)
    otp_verified = models.BooleanField(default=False)
    confidence = models.PositiveSmallIntegerField(default=0)
    data_match = models.BooleanField(default=False)
    # Raw provider response plus extended address details, as encrypted JSON.
    verification_payload = models.TextField(blank=True, default="")

    processing_time = models.PositiveIntegerField(default=0)
    is_processed = models.BooleanField(default=False)
    processed_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["user", "created_at"], name="verif_user_created_idx"),
            models.Index(fields=["user", "status"], name="verif_user_status_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.batch_id} ****{self.aadhaar_last4} ({self.status})"

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._loaded_user_id = instance.__dict__.get("user_id")
        return instance

    def save(self, *args, **kwargs):
        loaded_user_id = getattr(self, "_loaded_user_id", None)
        if loaded_user_id is not None and loaded_user_id != self.user_id:
            raise ValueError("The owner of a verification record cannot change")
        super().save(*args, **kwargs)
        self._loaded_user_id = self.user_id

    @staticmethod
    def new_batch_id(prefix: str) -> str:
        return f"{prefix}{int(time.time() * 1000)}"

    @property
    def is_qr_originated(self) -> bool:
        return bool(self.batch_id) and self.batch_id.startswith(self.QR_BATCH_PREFIX)

    @property
    def has_selfie(self) -> bool:
        return self.selfie_uploaded_at is not None or bool(self.selfie_path)
