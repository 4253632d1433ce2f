from __future__ import annotations

from typing import Any

from audit.models import AuditLog


def mask_aadhaar_number(value: Any) -> str:
    """Returns a privacy-preserving representation for Aadhaar numbers.

    Keeps only the last 4 digits.
    """

    raw = str(value or "").strip()
    if not raw:
        return ""

    digits = "".join(ch for ch in raw if ch.isdigit())
    tail = digits[-4:] if digits else raw[-4:]
    if not tail:
        return ""

    return f"****{tail}"


_ALLOWED_AUDIT_METADATA_KEYS: dict[str, set[str]] = {
    AuditLog.EVENT_OTP_VERIFICATION_COMPLETED: {
        "recordId",
        "batchId",
        "aadhaarNumber",
        "status",
        "processingTime",
        "source",
    },
    AuditLog.EVENT_SELFIE_UPLOADED: {
        "recordId",
        "batchId",
        "fileName",
        "source",
    },
}


def sanitize_audit_metadata(event_type: str, metadata: dict[str, Any] | None) -> dict[str, Any]:
    """Whitelists audit metadata and masks identity numbers.

    Audit rows are stored in the clear, so nothing sensitive may pass through here.
    """

    if not isinstance(metadata, dict):
        return {}

    allowed = _ALLOWED_AUDIT_METADATA_KEYS.get(str(event_type) or "", set())

    sanitized: dict[str, Any] = {}
    for key in allowed:
        if key not in metadata:
            continue

        value = metadata.get(key)
        if key == "aadhaarNumber":
            masked = mask_aadhaar_number(value)
            if masked:
                sanitized[key] = masked
            continue

        if isinstance(value, (int, float, bool)) or value is None:
            sanitized[key] = value
            continue

        # UUIDs, datetimes and other scalars are stored as text.
        text = str(value).strip()
        if text:
            sanitized[key] = text

    return sanitized
