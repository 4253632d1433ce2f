from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient

from .models import User


class TokenAuthTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user = User.objects.create_user(username="operator", password="password", email="op@example.com")

    def get_token(self, username, password="password"):
        return self.client.post("/api/token/", {"username": username, "password": password})

    def test_obtain_token_with_valid_credentials(self):
        response = self.get_token("operator")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn("access", response.data)
        self.assertIn("refresh", response.data)

    def test_wrong_password_is_rejected(self):
        response = self.get_token("operator", password="nope")
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(response.data["success"])

    def test_bearer_token_authenticates_api_calls(self):
        token = self.get_token("operator").data["access"]
        self.client.credentials(HTTP_AUTHORIZATION="Bearer " + token)
        response = self.client.get("/api/aadhaar-verification/dynamic-field-keys/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_missing_token_is_unauthorized(self):
        response = self.client.get("/api/aadhaar-verification/records/")
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(response.data["success"])


class ModuleAccessTests(TestCase):
    def test_has_module(self):
        user = User.objects.create_user(username="u1", password="password", module_access=["qr-code"])
        self.assertTrue(user.has_module(User.MODULE_QR_CODE))
        self.assertFalse(user.has_module(User.MODULE_SELFIE_UPLOAD))

    def test_has_module_tolerates_malformed_access_list(self):
        user = User.objects.create_user(username="u2", password="password", module_access={"qr-code": True})
        self.assertFalse(user.has_module(User.MODULE_QR_CODE))

    def test_admin_can_always_upload_selfies(self):
        admin = User.objects.create_user(username="admin", password="password", role=User.ROLE_ADMIN)
        self.assertTrue(admin.can_upload_selfies())

    def test_user_needs_selfie_module(self):
        plain = User.objects.create_user(username="plain", password="password")
        enabled = User.objects.create_user(username="enabled", password="password", module_access=["selfie-upload"])
        self.assertFalse(plain.can_upload_selfies())
        self.assertTrue(enabled.can_upload_selfies())


class QrCodeLookupTests(TestCase):
    def setUp(self):
        self.owner = User.objects.create_user(
            username="kiosk",
            password="password",
            qr_code="QR-KIOSK-1",
            qr_code_active=True,
        )

    def test_finds_active_code(self):
        self.assertEqual(User.find_by_active_qr_code("QR-KIOSK-1"), self.owner)

    def test_strips_whitespace(self):
        self.assertEqual(User.find_by_active_qr_code("  QR-KIOSK-1\n"), self.owner)

    def test_inactive_code_is_not_found(self):
        self.owner.qr_code_active = False
        self.owner.save(update_fields=["qr_code_active"])
        self.assertIsNone(User.find_by_active_qr_code("QR-KIOSK-1"))

    def test_deactivated_user_is_not_found(self):
        self.owner.is_active = False
        self.owner.save(update_fields=["is_active"])
        self.assertIsNone(User.find_by_active_qr_code("QR-KIOSK-1"))

    def test_blank_code_is_not_found(self):
        self.assertIsNone(User.find_by_active_qr_code(""))
        self.assertIsNone(User.find_by_active_qr_code(None))
