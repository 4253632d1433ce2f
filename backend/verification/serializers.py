from __future__ import annotations

import re

from django.conf import settings
from rest_framework import serializers

from .dynamic_fields import custom_fields_as_entries, normalize_dynamic_fields, resolve_dynamic_fields
from .models import CustomField


AADHAAR_RE = re.compile(r"[0-9]{12}")
OTP_RE = re.compile(r"[0-9]{6}")
WHITESPACE_RE = re.compile(r"\s+")

VERIFY_REQUIRED_MESSAGE = "Aadhaar Number, OTP, and Transaction ID are required"


class AadhaarNumberField(serializers.CharField):
    default_error_messages = {
        "required": "Aadhaar Number is required",
        "blank": "Aadhaar Number is required",
        "null": "Aadhaar Number is required",
        "invalid_format": "Invalid Aadhaar number format",
    }

    def to_internal_value(self, data):
        value = WHITESPACE_RE.sub("", super().to_internal_value(data))
        if not value:
            self.fail("blank")
        if not AADHAAR_RE.fullmatch(value):
            self.fail("invalid_format")
        return value


class DynamicFieldsField(serializers.JSONField):
    """Accepts any JSON and keeps only well-formed, de-duplicated label/value pairs."""

    def to_internal_value(self, data):
        return normalize_dynamic_fields(super().to_internal_value(data))


class SendOtpSerializer(serializers.Serializer):
    aadhaarNumber = AadhaarNumberField(source="aadhaar_number")
    location = serializers.CharField(required=False, allow_blank=True, allow_null=True, default="")
    dynamicFields = DynamicFieldsField(source="dynamic_fields", required=False, default=list)
    consentAccepted = serializers.BooleanField(source="consent_accepted", required=False, default=False)

    def validate_location(self, value):
        return (value or "").strip()

    def validate(self, attrs):
        if not attrs.get("consent_accepted"):
            raise serializers.ValidationError({"consentAccepted": "Consent is required to proceed"})
        return attrs


class VerifyOtpSerializer(serializers.Serializer):
    aadhaarNumber = AadhaarNumberField(source="aadhaar_number")
    otp = serializers.CharField(trim_whitespace=True)
    transactionId = serializers.CharField(source="transaction_id", max_length=128, trim_whitespace=True)
    dynamicFields = DynamicFieldsField(source="dynamic_fields", required=False, default=list)

    def to_internal_value(self, data):
        # Missing identifiers are reported together, before any format check.
        if hasattr(data, "get"):
            for name in ("aadhaarNumber", "otp", "transactionId"):
                value = data.get(name)
                if value is None or not str(value).strip():
                    raise serializers.ValidationError({"non_field_errors": [VERIFY_REQUIRED_MESSAGE]})
        return super().to_internal_value(data)

    def validate_otp(self, value):
        if not OTP_RE.fullmatch(value):
            raise serializers.ValidationError("Invalid OTP format. Must be 6 digits.")
        return value


class QrVerifyOtpSerializer(VerifyOtpSerializer):
    customFields = serializers.DictField(source="custom_fields", required=False, default=dict)

    def validate(self, attrs):
        extra = normalize_dynamic_fields(custom_fields_as_entries(attrs.pop("custom_fields", {})))
        if extra:
            attrs["dynamic_fields"] = normalize_dynamic_fields(attrs.get("dynamic_fields", []) + extra)
        return attrs


class DynamicFieldsUpdateSerializer(serializers.Serializer):
    dynamicFields = DynamicFieldsField(
        source="dynamic_fields",
        error_messages={"required": "dynamicFields must be an array"},
    )

    def validate_dynamicFields(self, value):
        if not isinstance(self.initial_data.get("dynamicFields"), list):
            raise serializers.ValidationError("dynamicFields must be an array")
        return value


class SelfieUploadSerializer(serializers.Serializer):
    selfie = serializers.FileField(
        error_messages={
            "required": "No selfie file provided",
            "null": "No selfie file provided",
            "empty": "Uploaded selfie is empty",
            "invalid": "No selfie file provided",
        }
    )

    def validate_selfie(self, upload):
        content_type = str(getattr(upload, "content_type", "") or "").lower()
        if not content_type.startswith("image/"):
            raise serializers.ValidationError("Only image files are allowed")
        limit = settings.SELFIE_MAX_UPLOAD_BYTES
        if upload.size > limit:
            raise serializers.ValidationError(f"Selfie must not exceed {limit // (1024 * 1024)}MB")
        return upload


class CustomFieldKeySerializer(serializers.ModelSerializer):
    fieldName = serializers.CharField(source="field_name")
    fieldLabel = serializers.CharField(source="label")
    fieldType = serializers.CharField(source="field_type")
    defaultValue = serializers.CharField(source="default_value")
    displayOrder = serializers.IntegerField(source="display_order")
    appliesTo = serializers.CharField(source="applies_to")

    class Meta:
        model = CustomField
        fields = [
            "id",
            "fieldName",
            "fieldLabel",
            "fieldType",
            "placeholder",
            "required",
            "defaultValue",
            "displayOrder",
            "appliesTo",
        ]


# Output serializers below read the plaintext dicts built by RecordRepository.decrypt.


class SelfieMetadataSerializer(serializers.Serializer):
    filename = serializers.CharField()
    originalName = serializers.CharField(source="original_name")
    mimetype = serializers.CharField()
    size = serializers.IntegerField(allow_null=True)
    uploadedAt = serializers.DateTimeField(source="uploaded_at", allow_null=True)


class VerificationDetailsSerializer(serializers.Serializer):
    transactionId = serializers.CharField(source="transaction_id")
    source = serializers.CharField()
    remarks = serializers.CharField()
    verificationDate = serializers.DateTimeField(source="verification_date", allow_null=True)
    otpVerified = serializers.BooleanField(source="otp_verified")
    confidence = serializers.IntegerField()
    dataMatch = serializers.BooleanField(source="data_match")
    apiResponse = serializers.SerializerMethodField()
    addressDetails = serializers.SerializerMethodField()
    emailHash = serializers.SerializerMethodField()
    mobileHash = serializers.SerializerMethodField()
    yearOfBirth = serializers.SerializerMethodField()
    shareCode = serializers.SerializerMethodField()

    def _payload(self, obj) -> dict:
        return obj.get("payload") or {}

    def get_apiResponse(self, obj):
        return self._payload(obj).get("api_response")

    def get_addressDetails(self, obj):
        return self._payload(obj).get("address_details")

    def get_emailHash(self, obj):
        return self._payload(obj).get("email_hash")

    def get_mobileHash(self, obj):
        return self._payload(obj).get("mobile_hash")

    def get_yearOfBirth(self, obj):
        return self._payload(obj).get("year_of_birth")

    def get_shareCode(self, obj):
        return self._payload(obj).get("share_code")


class VerificationRecordSerializer(serializers.Serializer):
    id = serializers.UUIDField()
    userId = serializers.IntegerField(source="user_id")
    batchId = serializers.CharField(source="batch_id")
    aadhaarNumber = serializers.CharField(source="aadhaar_number", allow_null=True)
    aadhaarLast4 = serializers.CharField(source="aadhaar_last4")
    name = serializers.CharField(allow_null=True)
    dateOfBirth = serializers.CharField(source="date_of_birth", allow_null=True)
    gender = serializers.CharField(allow_null=True)
    address = serializers.CharField(allow_null=True)
    district = serializers.CharField(allow_null=True)
    state = serializers.CharField(allow_null=True)
    pinCode = serializers.CharField(source="pin_code", allow_null=True)
    careOf = serializers.CharField(source="care_of", allow_null=True)
    photo = serializers.CharField(allow_null=True)
    status = serializers.CharField()
    dynamicFields = serializers.SerializerMethodField()
    selfie = SelfieMetadataSerializer(allow_null=True)
    verificationDetails = VerificationDetailsSerializer(source="verification_details")
    processingTime = serializers.IntegerField(source="processing_time")
    isProcessed = serializers.BooleanField(source="is_processed")
    processedAt = serializers.DateTimeField(source="processed_at", allow_null=True)
    createdAt = serializers.DateTimeField(source="created_at")
    updatedAt = serializers.DateTimeField(source="updated_at")
    decryptionError = serializers.BooleanField(source="decryption_error")

    def get_dynamicFields(self, obj):
        definitions = self.context.get("field_definitions")
        if definitions is None:
            return obj.get("dynamic_fields") or []
        return resolve_dynamic_fields(definitions, obj.get("dynamic_fields"))
