from django.core.cache import cache
from unittest.mock import patch

from django.core.files.uploadedfile import SimpleUploadedFile
from django.db import DatabaseError
from django.test import TestCase, override_settings
from rest_framework import status
from rest_framework.test import APIClient

from audit.models import AuditLog
from users.models import User

from .models import VerificationRecord
from .testing import create_record


BASE = "/api/aadhaar-verification"


def qr_owner(username="kiosk", code="QR-KIOSK-1", modules=(User.MODULE_QR_CODE,), active=True):
    return User.objects.create_user(
        username=username,
        password="password",
        qr_code=code,
        qr_code_active=active,
        module_access=list(modules),
    )


@override_settings(AADHAAR_PROVIDER="simulated")
class VerifyQrTests(TestCase):
    def setUp(self):
        cache.clear()
        self.owner = qr_owner(modules=(User.MODULE_QR_CODE, User.MODULE_SELFIE_UPLOAD))
        self.client = APIClient()

    def post(self, code, body):
        return self.client.post(f"{BASE}/verify-qr/{code}/", body, format="json")

    def test_sends_otp_for_active_code(self):
        res = self.post(
            "QR-KIOSK-1",
            {
                "aadhaarNumber": "123456789012",
                "consentAccepted": True,
                "customFields": {"Visitor type": "Guest"},
            },
        )

        self.assertEqual(res.status_code, status.HTTP_200_OK, res.data)
        data = res.data["data"]
        self.assertTrue(data["otpSent"])
        self.assertTrue(data["transactionId"])
        self.assertEqual(data["userId"], self.owner.pk)
        self.assertTrue(data["hasSelfieAccess"])
        self.assertEqual(data["customFields"], {"Visitor type": "Guest"})
        self.assertEqual(VerificationRecord.objects.count(), 0)

    def test_malformed_aadhaar_is_rejected(self):
        for value in ("1234", "1234567890123", "abcdefghijkl"):
            with self.subTest(value=value):
                res = self.post("QR-KIOSK-1", {"aadhaarNumber": value, "consentAccepted": True})
                self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
                self.assertEqual(res.data["message"], "Invalid Aadhaar number format")

    def test_unknown_or_inactive_code(self):
        qr_owner(username="paused", code="QR-PAUSED", active=False)
        body = {"aadhaarNumber": "123456789012", "consentAccepted": True}

        for code in ("QR-NOPE", "QR-PAUSED"):
            with self.subTest(code=code):
                res = self.post(code, body)
                self.assertEqual(res.status_code, status.HTTP_404_NOT_FOUND)
                self.assertEqual(res.data["message"], "Invalid or inactive QR code")

    def test_qr_module_is_required(self):
        qr_owner(username="nomodule", code="QR-NOMODULE", modules=())

        res = self.post("QR-NOMODULE", {"aadhaarNumber": "123456789012", "consentAccepted": True})

        self.assertEqual(res.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(res.data["message"], "QR code module is not enabled for this user")

    def test_lookup_failure_returns_json_500(self):
        body = {"aadhaarNumber": "123456789012", "consentAccepted": True}
        with patch.object(User, "find_by_active_qr_code", side_effect=DatabaseError("db down")):
            with self.assertLogs("aadhaar_backend.exceptions", level="ERROR"):
                res = self.post("QR-KIOSK-1", body)

        self.assertEqual(res.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        body = res.json()
        self.assertFalse(body["success"])
        self.assertEqual(body["error"], "db down")

    def test_path_without_trailing_slash(self):
        res = self.client.post(
            f"{BASE}/verify-qr/QR-KIOSK-1", {"aadhaarNumber": "123456789012", "consentAccepted": True}, format="json"
        )
        self.assertEqual(res.status_code, status.HTTP_200_OK)

    @override_settings(PUBLIC_QR_THROTTLE_RATE="2/min")
    def test_public_endpoints_are_throttled(self):
        cache.clear()
        body = {"aadhaarNumber": "123456789012", "consentAccepted": True}

        self.assertEqual(self.post("QR-KIOSK-1", body).status_code, status.HTTP_200_OK)
        self.assertEqual(self.post("QR-KIOSK-1", body).status_code, status.HTTP_200_OK)
        res = self.post("QR-KIOSK-1", body)

        self.assertEqual(res.status_code, status.HTTP_429_TOO_MANY_REQUESTS)
        self.assertFalse(res.data["success"])


@override_settings(AADHAAR_PROVIDER="simulated")
class VerifyOtpQrTests(TestCase):
    def setUp(self):
        cache.clear()
        self.owner = qr_owner()
        self.client = APIClient()

    def post(self, **overrides):
        body = {
            "aadhaarNumber": "123456789012",
            "otp": "123456",
            "transactionId": "REF-9",
            "dynamicFields": [{"label": "Gate", "value": "North"}],
            "customFields": {"Visitor type": "Guest", "Gate": "South"},
        }
        body.update(overrides)
        return self.client.post(f"{BASE}/verify-otp-qr/QR-KIOSK-1/", body, format="json")

    def test_creates_record_owned_by_qr_user(self):
        res = self.post()

        self.assertEqual(res.status_code, status.HTTP_200_OK, res.data)
        self.assertTrue(res.data["success"])
        data = res.data["data"]
        self.assertTrue(data["batchId"].startswith("qr-"))
        self.assertEqual(data["status"], VerificationRecord.Status.VERIFIED)
        self.assertEqual(
            data["dynamicFields"],
            [{"label": "Gate", "value": "South"}, {"label": "Visitor type", "value": "Guest"}],
        )

        record = VerificationRecord.objects.get()
        self.assertEqual(record.user, self.owner)
        self.assertTrue(record.is_qr_originated)

        entry = AuditLog.objects.get(event_type=AuditLog.EVENT_OTP_VERIFICATION_COMPLETED)
        self.assertEqual(entry.actor, self.owner)
        self.assertFalse(data["hasSelfieAccess"])

    def test_reports_selfie_access_of_owner(self):
        self.owner.module_access = [User.MODULE_QR_CODE, User.MODULE_SELFIE_UPLOAD]
        self.owner.save(update_fields=["module_access"])

        res = self.post()

        self.assertEqual(res.status_code, status.HTTP_200_OK, res.data)
        self.assertTrue(res.data["data"]["hasSelfieAccess"])

    def test_failed_otp_is_marked_invalid(self):
        res = self.post(otp="000000")

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertFalse(res.data["success"])
        self.assertEqual(res.data["data"]["status"], VerificationRecord.Status.INVALID)

    def test_otp_format(self):
        res = self.post(otp="12345")
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(VerificationRecord.objects.count(), 0)

    def test_unknown_code_creates_nothing(self):
        res = self.client.post(
            f"{BASE}/verify-otp-qr/QR-NOPE/",
            {"aadhaarNumber": "123456789012", "otp": "123456", "transactionId": "REF-9"},
            format="json",
        )
        self.assertEqual(res.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(VerificationRecord.objects.count(), 0)


class PublicSelfieUploadTests(TestCase):
    def setUp(self):
        cache.clear()
        self.owner = qr_owner(modules=(User.MODULE_QR_CODE, User.MODULE_SELFIE_UPLOAD))
        self.client = APIClient()

    def upload(self, record):
        image = SimpleUploadedFile("face.png", b"\x89PNG\r\n\x1a\n" + b"\x00" * 32, content_type="image/png")
        return self.client.post(
            f"{BASE}/records/{record.pk}/selfie-public/", {"selfie": image}, format="multipart"
        )

    def test_qr_record_accepts_selfie(self):
        record = create_record(self.owner, batch_prefix=VerificationRecord.QR_BATCH_PREFIX)

        res = self.upload(record)

        self.assertEqual(res.status_code, status.HTTP_200_OK, res.data)
        record.refresh_from_db()
        self.assertEqual(record.selfie_mimetype, "image/png")
        entry = AuditLog.objects.get(event_type=AuditLog.EVENT_SELFIE_UPLOADED)
        self.assertEqual(entry.actor, self.owner)

    def test_non_qr_record_is_forbidden(self):
        record = create_record(self.owner)

        res = self.upload(record)

        self.assertEqual(res.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(res.data["message"], "Public selfie upload only allowed for QR code verifications")

    def test_owner_needs_selfie_module(self):
        owner = qr_owner(username="plain", code="QR-PLAIN")
        record = create_record(owner, batch_prefix=VerificationRecord.QR_BATCH_PREFIX)

        res = self.upload(record)

        self.assertEqual(res.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(res.data["message"], "Selfie upload module is not enabled for this user")

    def test_invalid_record_id(self):
        res = self.client.post(f"{BASE}/records/12345/selfie-public/", {}, format="multipart")
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(res.data["message"], "Invalid record ID")
