import uuid
from unittest.mock import patch

from django.db import DatabaseError
from django.test import TestCase, override_settings
from rest_framework import status
from rest_framework.test import APIClient

from audit.models import AuditLog
from users.models import User

from .models import CustomField, VerificationRecord
from .providers import ProviderError
from .services import REJECTED_MESSAGE, VERIFIED_MESSAGE
from .testing import HOLDER, create_record


BASE = "/api/aadhaar-verification"


@override_settings(AADHAAR_PROVIDER="simulated")
class VerifySingleTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="operator", password="password")
        self.client = APIClient()
        self.client.force_authenticate(user=self.user)

    def post(self, body):
        return self.client.post(f"{BASE}/verify-single/", body, format="json")

    def test_sends_otp_without_creating_a_record(self):
        res = self.post(
            {
                "aadhaarNumber": "1234 5678 9012",
                "location": "  Pune ",
                "consentAccepted": True,
                "dynamicFields": [{"label": "Ref", "value": 7}],
            }
        )

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertTrue(res.data["success"])
        data = res.data["data"]
        self.assertEqual(data["aadhaarNumber"], "123456789012")
        self.assertEqual(data["location"], "Pune")
        self.assertEqual(data["dynamicFields"], [{"label": "Ref", "value": "7"}])
        self.assertTrue(data["otpSent"])
        self.assertTrue(data["transactionId"])
        self.assertEqual(data["source"], "simulation")
        self.assertEqual(VerificationRecord.objects.count(), 0)

    @patch("verification.services.get_provider")
    def test_rejects_malformed_aadhaar_without_calling_provider(self, get_provider):
        cases = {
            "": "Aadhaar Number is required",
            "12345678901": "Invalid Aadhaar number format",
            "1234567890123": "Invalid Aadhaar number format",
            "12345678901a": "Invalid Aadhaar number format",
            "१२३४५६७८९०१२": "Invalid Aadhaar number format",
        }
        for value, message in cases.items():
            with self.subTest(value=value):
                res = self.post({"aadhaarNumber": value, "consentAccepted": True})
                self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
                self.assertFalse(res.data["success"])
                self.assertEqual(res.data["message"], message)

        get_provider.assert_not_called()

    def test_consent_is_required(self):
        res = self.post({"aadhaarNumber": "123456789012"})
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(res.data["message"], "Consent is required to proceed")

        res = self.post({"aadhaarNumber": "123456789012", "consentAccepted": False})
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)

    @patch("verification.services.get_provider")
    def test_provider_failure_returns_upstream_message(self, get_provider):
        get_provider.return_value.send_otp.side_effect = ProviderError("Invalid Aadhaar Card", status_code=422)

        res = self.post({"aadhaarNumber": "123456789012", "consentAccepted": True})

        self.assertEqual(res.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertFalse(res.data["success"])
        self.assertEqual(res.data["message"], "Invalid Aadhaar Card")

    def test_requires_authentication(self):
        res = APIClient().post(
            f"{BASE}/verify-single/", {"aadhaarNumber": "123456789012", "consentAccepted": True}, format="json"
        )
        self.assertEqual(res.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(res.data["success"])


@override_settings(AADHAAR_PROVIDER="simulated")
class VerifyOtpTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="operator", password="password")
        self.client = APIClient()
        self.client.force_authenticate(user=self.user)

    def post(self, **overrides):
        body = {
            "aadhaarNumber": "123456789012",
            "otp": "123456",
            "transactionId": "REF-42",
            "dynamicFields": [{"label": "Branch", "value": "MG Road"}],
        }
        body.update(overrides)
        return self.client.post(f"{BASE}/verify-otp/", body, format="json")

    def test_valid_otp_creates_verified_record(self):
        res = self.post()

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertTrue(res.data["success"])
        self.assertEqual(res.data["message"], VERIFIED_MESSAGE)

        data = res.data["data"]
        self.assertEqual(data["aadhaarNumber"], "123456789012")
        self.assertEqual(data["name"], "Simulated Holder")
        self.assertEqual(data["district"], "Bengaluru Urban")
        self.assertEqual(data["pinCode"], "560001")
        self.assertEqual(data["status"], VerificationRecord.Status.VERIFIED)
        self.assertTrue(data["batchId"].startswith("OTP_VERIFICATION_"))
        self.assertEqual(data["dynamicFields"], [{"label": "Branch", "value": "MG Road"}])
        self.assertEqual(data["verificationDetails"]["transactionId"], "REF-42")
        self.assertEqual(data["verificationDetails"]["confidence"], 95)
        self.assertTrue(data["verificationDetails"]["otpVerified"])
        self.assertEqual(data["verificationDetails"]["addressDetails"]["country"], "India")
        self.assertFalse(data["decryptionError"])

        self.assertEqual(VerificationRecord.objects.count(), 1)
        record = VerificationRecord.objects.get()
        self.assertEqual(record.user, self.user)
        self.assertEqual(record.aadhaar_last4, "9012")
        self.assertNotIn("123456789012", record.aadhaar_number)
        self.assertNotIn("Simulated Holder", record.name)

    def test_completion_is_audited_with_masked_number(self):
        self.post()

        entry = AuditLog.objects.get(event_type=AuditLog.EVENT_OTP_VERIFICATION_COMPLETED)
        record = VerificationRecord.objects.get()
        self.assertEqual(entry.actor, self.user)
        self.assertEqual(entry.object_id, str(record.pk))
        self.assertEqual(entry.metadata["aadhaarNumber"], "****9012")
        self.assertEqual(entry.metadata["status"], "verified")
        self.assertNotIn("123456789012", str(entry.metadata))

    def test_invalid_otp_creates_rejected_record(self):
        res = self.post(otp="000000")

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertFalse(res.data["success"])
        self.assertEqual(res.data["message"], REJECTED_MESSAGE)
        self.assertEqual(res.data["data"]["status"], VerificationRecord.Status.REJECTED)
        self.assertEqual(res.data["data"]["verificationDetails"]["confidence"], 0)
        self.assertEqual(VerificationRecord.objects.count(), 1)

    def test_missing_fields_are_reported_together(self):
        for missing in ("aadhaarNumber", "otp", "transactionId"):
            with self.subTest(missing=missing):
                res = self.post(**{missing: ""})
                self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
                self.assertEqual(res.data["message"], "Aadhaar Number, OTP, and Transaction ID are required")

    @patch("verification.services.get_provider")
    def test_otp_must_be_six_digits(self, get_provider):
        for otp in ("12345", "1234567", "12a456", "12 345"):
            with self.subTest(otp=otp):
                res = self.post(otp=otp)
                self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
                self.assertEqual(res.data["message"], "Invalid OTP format. Must be 6 digits.")

        get_provider.assert_not_called()
        self.assertEqual(VerificationRecord.objects.count(), 0)

    def test_invalid_aadhaar_is_rejected(self):
        res = self.post(aadhaarNumber="12345")
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(res.data["message"], "Invalid Aadhaar number format")

    @patch("verification.services.get_provider")
    def test_provider_failure_leaves_no_record(self, get_provider):
        get_provider.return_value.verify_otp.side_effect = ProviderError("OTP expired", status_code=400)

        res = self.post()

        self.assertEqual(res.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(res.data["message"], "OTP expired")
        self.assertEqual(VerificationRecord.objects.count(), 0)
        self.assertEqual(AuditLog.objects.count(), 0)


class DynamicFieldKeysTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="operator", password="password")
        self.client = APIClient()
        self.client.force_authenticate(user=self.user)

    def test_lists_active_verification_definitions_in_order(self):
        CustomField.objects.create(field_name="branch", field_label="Branch", display_order=2)
        CustomField.objects.create(field_name="agent", display_order=1, default_value="self")
        CustomField.objects.create(field_name="retired", is_active=False)
        CustomField.objects.create(field_name="profile_only", applies_to=CustomField.AppliesTo.USER)

        res = self.client.get(f"{BASE}/dynamic-field-keys/")

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertTrue(res.data["success"])
        self.assertEqual([item["fieldName"] for item in res.data["data"]], ["agent", "branch"])
        self.assertEqual(res.data["data"][0]["fieldLabel"], "agent")
        self.assertEqual(res.data["data"][0]["defaultValue"], "self")


class DynamicFieldsPatchTests(TestCase):
    def setUp(self):
        self.owner = User.objects.create_user(username="owner", password="password")
        self.other = User.objects.create_user(username="other", password="password")
        self.record = create_record(self.owner, dynamic_fields=[{"label": "Old", "value": "1"}])
        self.url = f"{BASE}/records/{self.record.pk}/"
        self.client = APIClient()

    def test_paths_without_trailing_slash(self):
        bare = f"{BASE}/records/{self.record.pk}"
        self.assertEqual(self.client.get(bare).status_code, status.HTTP_405_METHOD_NOT_ALLOWED)

        self.client.force_authenticate(user=self.owner)
        res = self.client.patch(bare, {"dynamicFields": [{"label": "New", "value": "2"}]}, format="json")

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.record.refresh_from_db()
        self.assertEqual(self.record.dynamic_fields, [{"label": "New", "value": "2"}])

    def test_get_is_always_method_not_allowed(self):
        anonymous = self.client.get(self.url)
        self.assertEqual(anonymous.status_code, status.HTTP_405_METHOD_NOT_ALLOWED)
        self.assertEqual(anonymous["Allow"], "PATCH")

        self.client.force_authenticate(user=self.owner)
        res = self.client.get(self.url)
        self.assertEqual(res.status_code, status.HTTP_405_METHOD_NOT_ALLOWED)
        self.assertEqual(res["Allow"], "PATCH")
        self.assertFalse(res.data["success"])
        self.assertEqual(res.data["message"], "Use PATCH to update dynamic fields for this record")

    def test_owner_replaces_normalized_list(self):
        self.client.force_authenticate(user=self.owner)
        res = self.client.patch(
            self.url,
            {
                "dynamicFields": [
                    {"label": " Ref ", "value": " 1 "},
                    {"label": "", "value": "dropped"},
                    {"value": "no label"},
                    "not an object",
                    {"label": "Ref", "value": 2},
                    {"label": "Note", "value": None},
                ]
            },
            format="json",
        )

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["message"], "Dynamic fields updated")
        expected = [{"label": "Ref", "value": "2"}, {"label": "Note", "value": ""}]
        self.assertEqual(res.data["data"]["dynamicFields"], expected)
        self.assertEqual(res.data["data"]["id"], str(self.record.pk))
        self.assertEqual(res.data["data"]["name"], HOLDER["name"])
        self.assertEqual(res.data["data"]["aadhaarNumber"], "123456789012")
        self.record.refresh_from_db()
        self.assertEqual(self.record.dynamic_fields, expected)

    def test_patch_is_idempotent(self):
        self.client.force_authenticate(user=self.owner)
        body = {"dynamicFields": [{"label": "A", "value": "x"}, {"label": "B", "value": "y"}]}

        self.client.patch(self.url, body, format="json")
        self.record.refresh_from_db()
        first = list(self.record.dynamic_fields)
        self.client.patch(self.url, body, format="json")
        self.record.refresh_from_db()

        self.assertEqual(self.record.dynamic_fields, first)

    def test_non_owner_is_forbidden(self):
        self.client.force_authenticate(user=self.other)
        res = self.client.patch(self.url, {"dynamicFields": []}, format="json")

        self.assertEqual(res.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(res.data["message"], "Not authorized to access this record")
        self.record.refresh_from_db()
        self.assertEqual(self.record.dynamic_fields, [{"label": "Old", "value": "1"}])

    def test_admin_cannot_edit_other_users_fields(self):
        admin = User.objects.create_user(username="admin", password="password", role=User.ROLE_ADMIN)
        self.client.force_authenticate(user=admin)
        res = self.client.patch(self.url, {"dynamicFields": []}, format="json")
        self.assertEqual(res.status_code, status.HTTP_403_FORBIDDEN)

    def test_dynamic_fields_must_be_a_list(self):
        self.client.force_authenticate(user=self.owner)
        for body in ({"dynamicFields": "Ref=1"}, {}):
            with self.subTest(body=body):
                res = self.client.patch(self.url, body, format="json")
                self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
                self.assertEqual(res.data["message"], "dynamicFields must be an array")

    def test_invalid_and_unknown_ids(self):
        self.client.force_authenticate(user=self.owner)

        res = self.client.patch(f"{BASE}/records/not-a-uuid/", {"dynamicFields": []}, format="json")
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(res.data["message"], "Invalid record ID")

        res = self.client.patch(f"{BASE}/records/{uuid.uuid4()}/", {"dynamicFields": []}, format="json")
        self.assertEqual(res.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(res.data["message"], "Verification record not found")


class RecordOwnershipTests(TestCase):
    def test_owner_cannot_be_reassigned(self):
        owner = User.objects.create_user(username="owner", password="password")
        other = User.objects.create_user(username="other", password="password")
        record = VerificationRecord.objects.get(pk=create_record(owner).pk)

        record.user = other
        with self.assertRaises(ValueError):
            record.save()


class UnhandledErrorTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="operator", password="password")
        self.client = APIClient()
        self.client.force_authenticate(user=self.user)

    def test_database_failure_returns_json_500(self):
        with patch.object(CustomField, "active_for_verification", side_effect=DatabaseError("db down")):
            with self.assertLogs("aadhaar_backend.exceptions", level="ERROR"):
                res = self.client.get(f"{BASE}/dynamic-field-keys/")

        self.assertEqual(res.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(res["Content-Type"], "application/json")
        body = res.json()
        self.assertFalse(body["success"])
        self.assertEqual(body["message"], "Internal server error")
        self.assertEqual(body["error"], "db down")

    def test_record_lookup_failure_returns_json_500(self):
        record = create_record(self.user)
        with patch.object(VerificationRecord.objects, "select_related", side_effect=DatabaseError("db down")):
            with self.assertLogs("aadhaar_backend.exceptions", level="ERROR"):
                res = self.client.get(f"{BASE}/records/{record.pk}/selfie/")

        self.assertEqual(res.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(res.json()["error"], "db down")
