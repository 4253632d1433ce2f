"""Persistence boundary for verification records.

Sensitive columns are encrypted on write and decrypted on read here, and
nowhere else. Handlers work with the plaintext dicts returned by
`RecordRepository.decrypt`.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Mapping

from django.core.files.uploadedfile import UploadedFile
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime
from rest_framework.exceptions import ValidationError

from .crypto import FieldCipher, InvalidToken, get_cipher
from .models import VerificationRecord


logger = logging.getLogger(__name__)


DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

# API sort keys that map straight onto plaintext columns.
DB_SORT_COLUMNS = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "processedAt": "processed_at",
    "status": "status",
    "batchId": "batch_id",
    "processingTime": "processing_time",
}

# API sort keys that only exist once a record is decrypted.
DECRYPTED_SORT_KEYS = {
    "aadhaarNumber": "aadhaar_number",
    "name": "name",
    "dateOfBirth": "date_of_birth",
    "gender": "gender",
    "district": "district",
    "state": "state",
    "pinCode": "pin_code",
}

SEARCHABLE_FIELDS = ("aadhaar_number", "name", "address", "district", "state", "pin_code", "care_of")

DOB_FORMATS = ("%d-%m-%Y", "%Y-%m-%d", "%d/%m/%Y", "%Y/%m/%d")

# Columns the listing never needs; the selfie blob is served by its own endpoint.
LISTING_DEFERRED = ("selfie_data",)


def _positive_int(value: Any, default: int) -> int:
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def _parse_date_param(value: Any, param: str) -> date | None:
    raw = str(value or "").strip()
    if not raw:
        return None
    try:
        parsed = parse_date(raw)
        if parsed is None:
            dt = parse_datetime(raw)
            parsed = dt.date() if dt else None
    except ValueError:
        parsed = None
    if parsed is None:
        raise ValidationError({param: "Invalid date filter"})
    return parsed


def parse_date_of_birth(value: Any) -> date | None:
    raw = str(value or "").strip()
    if not raw:
        return None
    for fmt in DOB_FORMATS:
        try:
            return datetime.strptime(raw, fmt).date()
        except ValueError:
            continue
    return None


@dataclass
class ListingQuery:
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE
    search: str = ""
    date_from: date | None = None
    date_to: date | None = None
    sort_by: str = "createdAt"
    sort_order: str = "desc"

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "ListingQuery":
        sort_by = str(params.get("sortBy") or "createdAt").strip()
        if sort_by not in DB_SORT_COLUMNS and sort_by not in DECRYPTED_SORT_KEYS:
            sort_by = "createdAt"
        return cls(
            page=_positive_int(params.get("page"), 1),
            limit=min(_positive_int(params.get("limit"), DEFAULT_PAGE_SIZE), MAX_PAGE_SIZE),
            search=str(params.get("search") or "").strip(),
            date_from=_parse_date_param(params.get("dateFrom"), "dateFrom"),
            date_to=_parse_date_param(params.get("dateTo"), "dateTo"),
            sort_by=sort_by,
            sort_order="asc" if str(params.get("sortOrder") or "").strip().lower() == "asc" else "desc",
        )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def descending(self) -> bool:
        return self.sort_order != "asc"

    @property
    def needs_decrypted_projection(self) -> bool:
        return bool(self.search or self.date_from or self.date_to or self.sort_by in DECRYPTED_SORT_KEYS)


@dataclass
class ListingPage:
    items: list[dict[str, Any]]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    def pagination(self) -> dict[str, Any]:
        return {
            "currentPage": self.page,
            "totalPages": self.total_pages,
            "totalRecords": self.total,
            "hasNext": self.has_next,
            "hasPrev": self.has_prev,
            "limit": self.limit,
        }


class RecordRepository:
    def __init__(self, cipher: FieldCipher | None = None):
        self.cipher = cipher or get_cipher()

    # -- writes ---------------------------------------------------------

    def create(
        self,
        *,
        owner,
        batch_id: str,
        aadhaar_number: str,
        identity: Mapping[str, Any],
        status: str,
        dynamic_fields: list[dict[str, str]],
        details: Mapping[str, Any],
        provider_payload: Mapping[str, Any],
        processing_time: int,
    ) -> VerificationRecord:
        now = timezone.now()
        record = VerificationRecord(
            user=owner,
            batch_id=batch_id,
            aadhaar_number=self.cipher.encrypt(aadhaar_number),
            aadhaar_last4=aadhaar_number[-4:],
            status=status,
            dynamic_fields=dynamic_fields,
            transaction_id=str(details.get("transaction_id") or ""),
            verification_source=str(details.get("source") or ""),
            verification_remarks=str(details.get("remarks") or "")[:255],
            verification_date=now,
            otp_verified=bool(details.get("otp_verified")),
            confidence=int(details.get("confidence") or 0),
            data_match=bool(details.get("data_match")),
            verification_payload=self.cipher.encrypt_json(dict(provider_payload)),
            processing_time=max(int(processing_time), 0),
            is_processed=True,
            processed_at=now,
        )
        for field_name in VerificationRecord.ENCRYPTED_FIELDS:
            if field_name == "aadhaar_number":
                continue
            setattr(record, field_name, self.cipher.encrypt(identity.get(field_name, "")))
        record.save()
        return record

    def replace_dynamic_fields(self, record: VerificationRecord, fields: list[dict[str, str]]) -> VerificationRecord:
        record.dynamic_fields = fields
        record.save(update_fields=["dynamic_fields", "updated_at"])
        return record

    def attach_selfie(self, record: VerificationRecord, upload: UploadedFile) -> dict[str, Any]:
        now = timezone.now()
        original_name = upload.name or ""
        filename = original_name or f"selfie-{int(now.timestamp() * 1000)}"

        upload.seek(0)
        record.selfie_data = upload.read()
        record.selfie_filename = filename[:255]
        record.selfie_original_name = (original_name or filename)[:255]
        record.selfie_mimetype = upload.content_type or ""
        record.selfie_size = upload.size
        record.selfie_uploaded_at = now
        record.selfie_path = ""
        record.save(
            update_fields=[
                "selfie_data",
                "selfie_filename",
                "selfie_original_name",
                "selfie_mimetype",
                "selfie_size",
                "selfie_uploaded_at",
                "selfie_path",
                "updated_at",
            ]
        )
        return selfie_metadata(record)

    # -- reads ----------------------------------------------------------

    def decrypt(self, record: VerificationRecord) -> dict[str, Any]:
        """Plaintext view of a record.

        A field that cannot be decrypted comes back as None and the view is
        flagged with `decryption_error`; ciphertext is never returned.
        """

        failed: list[str] = []
        plain: dict[str, Any] = {}
        for field_name in VerificationRecord.ENCRYPTED_FIELDS:
            try:
                plain[field_name] = self.cipher.decrypt(getattr(record, field_name))
            except (InvalidToken, ValueError):
                plain[field_name] = None
                failed.append(field_name)

        try:
            payload = self.cipher.decrypt_json(record.verification_payload) or {}
        except (InvalidToken, ValueError):
            payload = None
            failed.append("verification_payload")

        if failed:
            logger.warning(
                "verification.record.decrypt_failed",
                extra={"record_id": str(record.pk), "fields": failed},
            )

        api_response = (payload or {}).get("api_response")
        if not plain.get("care_of") and plain.get("care_of") is not None:
            fallback = _provider_data(api_response).get("care_of")
            if fallback:
                plain["care_of"] = str(fallback)

        return {
            **plain,
            "id": record.pk,
            "user_id": record.user_id,
            "batch_id": record.batch_id,
            "aadhaar_last4": record.aadhaar_last4,
            "status": record.status,
            "dynamic_fields": record.dynamic_fields if isinstance(record.dynamic_fields, list) else [],
            "selfie": selfie_metadata(record),
            "verification_details": {
                "transaction_id": record.transaction_id,
                "source": record.verification_source,
                "remarks": record.verification_remarks,
                "verification_date": record.verification_date,
                "otp_verified": record.otp_verified,
                "confidence": record.confidence,
                "data_match": record.data_match,
                "payload": payload,
            },
            "processing_time": record.processing_time,
            "is_processed": record.is_processed,
            "processed_at": record.processed_at,
            "created_at": record.created_at,
            "updated_at": record.updated_at,
            "decryption_error": bool(failed),
        }

    def list_page(self, queryset, query: ListingQuery) -> ListingPage:
        queryset = queryset.defer(*LISTING_DEFERRED)
        if not query.needs_decrypted_projection:
            return self._db_page(queryset, query)
        return self._projected_page(queryset, query)

    def _db_page(self, queryset, query: ListingQuery) -> ListingPage:
        column = DB_SORT_COLUMNS[query.sort_by]
        prefix = "-" if query.descending else ""
        ordering = [f"{prefix}{column}"]
        if column != "created_at":
            ordering.append("-created_at")

        total = queryset.count()
        rows = queryset.order_by(*ordering)[query.offset:query.offset + query.limit]
        return ListingPage(
            items=[self.decrypt(record) for record in rows],
            total=total,
            page=query.page,
            limit=query.limit,
        )

    def _projected_page(self, queryset, query: ListingQuery) -> ListingPage:
        decrypted = [self.decrypt(record) for record in queryset.order_by("-created_at")]

        if query.search:
            needle = query.search.casefold()
            decrypted = [item for item in decrypted if _matches_search(item, needle)]

        if query.date_from or query.date_to:
            decrypted = [item for item in decrypted if _within_range(item, query.date_from, query.date_to)]

        decrypted = _sort_projection(decrypted, query)
        return ListingPage(
            items=decrypted[query.offset:query.offset + query.limit],
            total=len(decrypted),
            page=query.page,
            limit=query.limit,
        )


def selfie_metadata(record: VerificationRecord) -> dict[str, Any] | None:
    if not record.has_selfie:
        return None
    return {
        "filename": record.selfie_filename,
        "original_name": record.selfie_original_name,
        "mimetype": record.selfie_mimetype,
        "size": record.selfie_size,
        "uploaded_at": record.selfie_uploaded_at,
    }


def _provider_data(api_response: Any) -> dict[str, Any]:
    if not isinstance(api_response, dict):
        return {}
    data = api_response.get("data")
    if isinstance(data, dict) and isinstance(data.get("data"), dict):
        data = data["data"]
    return data if isinstance(data, dict) else {}


def _search_haystack(item: dict[str, Any]) -> list[str]:
    values = [item.get(name) for name in SEARCHABLE_FIELDS]
    payload = item["verification_details"].get("payload") or {}
    data = _provider_data(payload.get("api_response"))
    address = data.get("address") if isinstance(data.get("address"), dict) else {}
    values.extend(
        [
            data.get("name"),
            data.get("full_address"),
            data.get("care_of"),
            address.get("district"),
            address.get("state"),
            address.get("pincode"),
        ]
    )
    return [str(value) for value in values if value not in (None, "")]


def _matches_search(item: dict[str, Any], needle: str) -> bool:
    return any(needle in value.casefold() for value in _search_haystack(item))


def _within_range(item: dict[str, Any], date_from: date | None, date_to: date | None) -> bool:
    dob = parse_date_of_birth(item.get("date_of_birth"))
    if dob is None:
        return False
    if date_from and dob < date_from:
        return False
    if date_to and dob > date_to:
        return False
    return True


def _sort_projection(items: list[dict[str, Any]], query: ListingQuery) -> list[dict[str, Any]]:
    if query.sort_by in DB_SORT_COLUMNS:
        key_name = DB_SORT_COLUMNS[query.sort_by]
    else:
        key_name = DECRYPTED_SORT_KEYS[query.sort_by]

    def sort_value(item: dict[str, Any]):
        value = item.get(key_name)
        if key_name == "date_of_birth":
            return parse_date_of_birth(value)
        if isinstance(value, str):
            return value.casefold()
        return value

    present = [item for item in items if sort_value(item) not in (None, "")]
    missing = [item for item in items if sort_value(item) in (None, "")]
    present.sort(key=sort_value, reverse=query.descending)
    # Records without a value always go last.
    return present + missing
