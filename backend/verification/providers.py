"""Clients for the third-party Aadhaar OTP (offline e-KYC) API.

Every provider exposes `send_otp(aadhaar_number, reason=...)` and
`verify_otp(transaction_id, otp)`. Nothing here retries; failures surface
as `ProviderError` so the caller can report them immediately.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass, field
from typing import Any

import requests
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from .payload_policy import mask_aadhaar_number


logger = logging.getLogger(__name__)


VALID_STATUS = "VALID"


class ProviderError(Exception):
    def __init__(self, message: str, *, status_code: int | None = None, payload: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload


@dataclass
class OtpRequest:
    transaction_id: str
    api_response: dict[str, Any]
    source: str


@dataclass
class OtpOutcome:
    status: str
    data: dict[str, Any]
    raw: dict[str, Any]
    source: str
    message: str = ""

    @property
    def is_valid(self) -> bool:
        return self.status == VALID_STATUS

    @property
    def address(self) -> dict[str, Any]:
        address = self.data.get("address")
        return address if isinstance(address, dict) else {}


def _upstream_message(payload: Any) -> str:
    if not isinstance(payload, dict):
        return ""
    data = payload.get("data")
    for candidate in (
        payload.get("message"),
        data.get("message") if isinstance(data, dict) else None,
        payload.get("error"),
    ):
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
        if isinstance(candidate, dict) and candidate.get("message"):
            return str(candidate["message"]).strip()
    return ""


class SandboxAadhaarProvider:
    """Sandbox (api.sandbox.co.in) Aadhaar OKYC client."""

    source = "sandbox_api"

    SEND_OTP_ENTITY = "in.co.sandbox.kyc.aadhaar.okyc.otp.request"
    VERIFY_OTP_ENTITY = "in.co.sandbox.kyc.aadhaar.okyc.request"

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        api_secret: str,
        api_version: str = "2.0",
        timeout: int = 30,
        reason: str = "KYC verification",
        session: requests.Session | None = None,
    ):
        if not api_key or not api_secret:
            raise ImproperlyConfigured("AADHAAR_SANDBOX_API_KEY and AADHAAR_SANDBOX_API_SECRET are required")
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.api_secret = api_secret
        self.api_version = api_version
        self.timeout = timeout
        self.reason = reason
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls) -> "SandboxAadhaarProvider":
        return cls(
            base_url=settings.AADHAAR_SANDBOX_BASE_URL,
            api_key=settings.AADHAAR_SANDBOX_API_KEY,
            api_secret=settings.AADHAAR_SANDBOX_API_SECRET,
            api_version=settings.AADHAAR_SANDBOX_API_VERSION,
            timeout=settings.AADHAAR_PROVIDER_TIMEOUT,
            reason=settings.AADHAAR_OTP_REASON,
        )

    def _request(self, path: str, *, headers: dict[str, str], body: dict[str, Any] | None = None) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.post(url, json=body, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            raise ProviderError(f"Aadhaar provider is unreachable: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {"data": payload}

        if response.status_code >= 400:
            message = _upstream_message(payload) or f"Aadhaar provider returned HTTP {response.status_code}"
            raise ProviderError(message, status_code=response.status_code, payload=payload)
        return payload

    def _authenticate(self) -> str:
        payload = self._request(
            "/authenticate",
            headers={
                "x-api-key": self.api_key,
                "x-api-secret": self.api_secret,
                "x-api-version": self.api_version,
            },
        )
        data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
        token = payload.get("access_token") or data.get("access_token")
        if not token:
            raise ProviderError("Aadhaar provider did not return an access token", payload=payload)
        return str(token)

    def _call(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        token = self._authenticate()
        return self._request(
            path,
            headers={
                "authorization": token,
                "x-api-key": self.api_key,
                "x-api-version": self.api_version,
            },
            body=body,
        )

    def send_otp(self, aadhaar_number: str, *, reason: str = "") -> OtpRequest:
        payload = self._call(
            "/kyc/aadhaar/okyc/otp",
            {
                "@entity": self.SEND_OTP_ENTITY,
                "aadhaar_number": aadhaar_number,
                "consent": "y",
                "reason": reason or self.reason,
            },
        )
        data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
        reference_id = data.get("reference_id")
        if reference_id in (None, ""):
            raise ProviderError(_upstream_message(payload) or "Failed to send OTP", payload=payload)

        logger.info(
            "aadhaar.provider.otp_sent",
            extra={"aadhaar": mask_aadhaar_number(aadhaar_number), "reference_id": str(reference_id)},
        )
        return OtpRequest(transaction_id=str(reference_id), api_response=payload, source=self.source)

    def verify_otp(self, transaction_id: str, otp: str) -> OtpOutcome:
        payload = self._call(
            "/kyc/aadhaar/okyc/otp/verify",
            {
                "@entity": self.VERIFY_OTP_ENTITY,
                "reference_id": str(transaction_id),
                "otp": str(otp),
            },
        )
        data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
        if isinstance(data.get("data"), dict):
            data = data["data"]

        return OtpOutcome(
            status=str(data.get("status") or "").upper(),
            data=data,
            raw=payload,
            source=self.source,
            message=_upstream_message(payload),
        )


@dataclass
class SimulatedAadhaarProvider:
    """Offline stand-in for development and tests.

    Any well-formed OTP verifies, except `INVALID_OTP`.
    """

    INVALID_OTP = "000000"

    source: str = "simulation"
    holder: dict[str, Any] = field(
        default_factory=lambda: {
            "name": "Simulated Holder",
            "gender": "M",
            "date_of_birth": "01-01-1990",
            "year_of_birth": 1990,
            "care_of": "S/O: Simulated Parent",
            "full_address": "12, MG Road, Bengaluru, Karnataka 560001",
            "address": {
                "house": "12",
                "street": "MG Road",
                "landmark": "",
                "vtc": "Bengaluru",
                "subdist": "Bangalore North",
                "district": "Bengaluru Urban",
                "state": "Karnataka",
                "pincode": 560001,
                "country": "India",
            },
            "photo": "",
            "share_code": "1234",
            "email_hash": "",
            "mobile_hash": "",
        }
    )

    def send_otp(self, aadhaar_number: str, *, reason: str = "") -> OtpRequest:
        reference_id = str(secrets.randbelow(9 * 10**8) + 10**8)
        payload = {
            "code": 200,
            "transaction_id": str(uuid.uuid4()),
            "data": {
                "@entity": SandboxAadhaarProvider.SEND_OTP_ENTITY.replace(".request", ".response"),
                "reference_id": reference_id,
                "message": "OTP sent successfully",
            },
        }
        return OtpRequest(transaction_id=reference_id, api_response=payload, source=self.source)

    def verify_otp(self, transaction_id: str, otp: str) -> OtpOutcome:
        if str(otp) == self.INVALID_OTP:
            data: dict[str, Any] = {"status": "INVALID", "message": "Invalid OTP"}
        else:
            data = {"status": VALID_STATUS, "message": "Aadhaar Card Exists", **self.holder}
        payload = {"code": 200, "transaction_id": str(uuid.uuid4()), "data": data}
        return OtpOutcome(
            status=data["status"],
            data=data,
            raw=payload,
            source=self.source,
            message=data["message"],
        )


def get_provider():
    name = str(getattr(settings, "AADHAAR_PROVIDER", "") or "").strip().lower()
    if name == "sandbox":
        return SandboxAadhaarProvider.from_settings()
    if name == "simulated":
        return SimulatedAadhaarProvider()
    raise ImproperlyConfigured(f"Unknown AADHAAR_PROVIDER: {name!r}")
