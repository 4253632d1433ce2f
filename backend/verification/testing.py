"""Factories shared by the verification test modules."""

from __future__ import annotations

from typing import Any

from .models import VerificationRecord
from .repository import RecordRepository


HOLDER = {
    "name": "Asha Verma",
    "date_of_birth": "15-08-1990",
    "gender": "F",
    "address": "221 Residency Road, Bengaluru",
    "district": "Bengaluru Urban",
    "state": "Karnataka",
    "pin_code": "560025",
    "care_of": "D/O: Ravi Verma",
    "photo": "",
}


def create_record(
    owner,
    *,
    aadhaar_number: str = "123456789012",
    status: str = VerificationRecord.Status.VERIFIED,
    batch_prefix: str = VerificationRecord.OTP_BATCH_PREFIX,
    identity: dict[str, Any] | None = None,
    dynamic_fields: list | None = None,
    provider_payload: dict[str, Any] | None = None,
) -> VerificationRecord:
    verified = status == VerificationRecord.Status.VERIFIED
    return RecordRepository().create(
        owner=owner,
        batch_id=VerificationRecord.new_batch_id(batch_prefix),
        aadhaar_number=aadhaar_number,
        identity={**HOLDER, **(identity or {})},
        status=status,
        dynamic_fields=dynamic_fields or [],
        details={
            "transaction_id": "REF-1",
            "source": "simulation",
            "otp_verified": verified,
            "confidence": 95 if verified else 0,
            "data_match": verified,
        },
        provider_payload=provider_payload or {"api_response": {"code": 200, "data": {}}},
        processing_time=12,
    )
