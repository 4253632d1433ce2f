from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

from django.conf import settings
from django.db import transaction
from rest_framework.exceptions import NotFound, PermissionDenied

from audit.models import AuditLog
from audit.services import log_event
from users.models import User

from .models import VerificationRecord
from .payload_policy import mask_aadhaar_number, sanitize_audit_metadata
from .providers import OtpOutcome, get_provider
from .repository import RecordRepository


logger = logging.getLogger(__name__)


VALID_CONFIDENCE = 95

VERIFIED_MESSAGE = "OTP verification completed successfully"
REJECTED_MESSAGE = "Invalid OTP. Verification rejected."


@dataclass(frozen=True)
class AuthorizationContext:
    """Who a verification belongs to and how it reached us.

    The authenticated and QR flows share one implementation; they differ only
    in how the owner is resolved, the batch prefix and the status recorded
    for a failed OTP.
    """

    owner: User
    channel: str
    batch_prefix: str
    failure_status: str

    SESSION = "session"
    QR_CODE = "qr_code"

    @classmethod
    def for_session(cls, user: User) -> "AuthorizationContext":
        return cls(
            owner=user,
            channel=cls.SESSION,
            batch_prefix=VerificationRecord.OTP_BATCH_PREFIX,
            failure_status=VerificationRecord.Status.REJECTED,
        )

    @classmethod
    def for_qr_code(cls, qr_code: str) -> "AuthorizationContext":
        owner = User.find_by_active_qr_code(str(qr_code or "").strip())
        if owner is None:
            raise NotFound("Invalid or inactive QR code")
        if not owner.has_module(User.MODULE_QR_CODE):
            raise PermissionDenied("QR code module is not enabled for this user")
        return cls(
            owner=owner,
            channel=cls.QR_CODE,
            batch_prefix=VerificationRecord.QR_BATCH_PREFIX,
            failure_status=VerificationRecord.Status.INVALID,
        )

    @property
    def is_qr(self) -> bool:
        return self.channel == self.QR_CODE


def send_otp(context: AuthorizationContext, *, aadhaar_number: str, location: str, dynamic_fields: list) -> dict[str, Any]:
    """Asks the provider to send an OTP. Nothing is persisted."""

    provider = get_provider()
    otp_request = provider.send_otp(aadhaar_number, reason=settings.AADHAAR_OTP_REASON)

    logger.info(
        "verification.otp_requested",
        extra={
            "aadhaar": mask_aadhaar_number(aadhaar_number),
            "owner_id": context.owner.pk,
            "channel": context.channel,
        },
    )

    return {
        "aadhaarNumber": aadhaar_number,
        "location": location,
        "dynamicFields": dynamic_fields,
        "otpSent": True,
        "transactionId": otp_request.transaction_id,
        "apiResponse": otp_request.api_response,
        "source": otp_request.source,
    }


def _identity_from_outcome(outcome: OtpOutcome) -> dict[str, Any]:
    data = outcome.data
    address = outcome.address
    return {
        "name": data.get("name") or "",
        "date_of_birth": data.get("date_of_birth") or data.get("dob") or "",
        "gender": data.get("gender") or "",
        "address": data.get("full_address") or "",
        "district": address.get("district") or "",
        "state": address.get("state") or "",
        "pin_code": address.get("pincode") or "",
        "care_of": data.get("care_of") or "",
        "photo": data.get("photo") or "",
    }


def _provider_payload(outcome: OtpOutcome) -> dict[str, Any]:
    data = outcome.data
    address = outcome.address
    return {
        "api_response": outcome.raw,
        "address_details": {
            "house": address.get("house") or "",
            "street": address.get("street") or "",
            "landmark": address.get("landmark") or "",
            "vtc": address.get("vtc") or "",
            "subdist": address.get("subdist") or "",
            "country": address.get("country") or "India",
        },
        "email_hash": data.get("email_hash") or "",
        "mobile_hash": data.get("mobile_hash") or "",
        "year_of_birth": data.get("year_of_birth"),
        "share_code": data.get("share_code") or "",
    }


def verify_otp(
    context: AuthorizationContext,
    *,
    request,
    aadhaar_number: str,
    otp: str,
    transaction_id: str,
    dynamic_fields: list,
    repository: RecordRepository | None = None,
) -> tuple[VerificationRecord, bool]:
    """Completes the OTP flow and stores the record in its terminal status.

    Returns the record and whether it was verified. Provider failures raise
    before anything is written.
    """

    repository = repository or RecordRepository()
    provider = get_provider()

    started = time.monotonic()
    outcome = provider.verify_otp(transaction_id, otp)
    processing_time = int((time.monotonic() - started) * 1000)

    verified = outcome.is_valid
    status = VerificationRecord.Status.VERIFIED if verified else context.failure_status

    with transaction.atomic():
        record = repository.create(
            owner=context.owner,
            batch_id=VerificationRecord.new_batch_id(context.batch_prefix),
            aadhaar_number=aadhaar_number,
            identity=_identity_from_outcome(outcome),
            status=status,
            dynamic_fields=dynamic_fields,
            details={
                "transaction_id": transaction_id,
                "source": outcome.source,
                "remarks": outcome.message,
                "otp_verified": verified,
                "confidence": VALID_CONFIDENCE if verified else 0,
                "data_match": verified,
            },
            provider_payload=_provider_payload(outcome),
            processing_time=processing_time,
        )
        log_event(
            request,
            event_type=AuditLog.EVENT_OTP_VERIFICATION_COMPLETED,
            actor=context.owner,
            object_type="VerificationRecord",
            object_id=str(record.pk),
            metadata=sanitize_audit_metadata(
                AuditLog.EVENT_OTP_VERIFICATION_COMPLETED,
                {
                    "recordId": record.pk,
                    "batchId": record.batch_id,
                    "aadhaarNumber": aadhaar_number,
                    "status": status,
                    "processingTime": processing_time,
                    "source": outcome.source,
                },
            ),
        )

    logger.info(
        "verification.otp_verified",
        extra={
            "record_id": str(record.pk),
            "aadhaar": mask_aadhaar_number(aadhaar_number),
            "status": status,
            "channel": context.channel,
        },
    )
    return record, verified


def attach_selfie(record: VerificationRecord, upload, *, request, actor, repository: RecordRepository | None = None) -> dict[str, Any]:
    repository = repository or RecordRepository()
    with transaction.atomic():
        metadata = repository.attach_selfie(record, upload)
        log_event(
            request,
            event_type=AuditLog.EVENT_SELFIE_UPLOADED,
            actor=actor,
            object_type="VerificationRecord",
            object_id=str(record.pk),
            metadata=sanitize_audit_metadata(
                AuditLog.EVENT_SELFIE_UPLOADED,
                {
                    "recordId": record.pk,
                    "batchId": record.batch_id,
                    "fileName": metadata["filename"],
                },
            ),
        )
    logger.info("verification.selfie_uploaded", extra={"record_id": str(record.pk), "size": metadata["size"]})
    return metadata
