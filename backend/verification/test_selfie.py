import tempfile
from pathlib import Path

from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase, override_settings
from rest_framework import status
from rest_framework.test import APIClient

from audit.models import AuditLog
from users.models import User

from .models import VerificationRecord
from .testing import create_record


JPEG_BYTES = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00" + b"\x00" * 64


def selfie(name="selfie.jpg", content=JPEG_BYTES, content_type="image/jpeg"):
    return SimpleUploadedFile(name, content, content_type=content_type)


class SelfieUploadTests(TestCase):
    def setUp(self):
        self.owner = User.objects.create_user(
            username="owner", password="password", module_access=[User.MODULE_SELFIE_UPLOAD]
        )
        self.record = create_record(self.owner)
        self.url = f"/api/aadhaar-verification/records/{self.record.pk}/selfie/"
        self.client = APIClient()
        self.client.force_authenticate(user=self.owner)

    def test_owner_with_module_uploads(self):
        res = self.client.post(self.url, {"selfie": selfie()}, format="multipart")

        self.assertEqual(res.status_code, status.HTTP_200_OK, res.data)
        self.assertTrue(res.data["success"])
        self.assertEqual(res.data["data"]["selfie"]["filename"], "selfie.jpg")
        self.assertEqual(res.data["data"]["selfie"]["mimetype"], "image/jpeg")
        self.assertEqual(res.data["data"]["selfie"]["size"], len(JPEG_BYTES))

        self.record.refresh_from_db()
        self.assertEqual(bytes(self.record.selfie_data), JPEG_BYTES)
        self.assertIsNotNone(self.record.selfie_uploaded_at)

        entry = AuditLog.objects.get(event_type=AuditLog.EVENT_SELFIE_UPLOADED)
        self.assertEqual(entry.actor, self.owner)
        self.assertEqual(entry.metadata["fileName"], "selfie.jpg")

    def test_missing_file(self):
        res = self.client.post(self.url, {}, format="multipart")
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(res.data["message"], "No selfie file provided")

    def test_non_image_is_rejected_before_storage(self):
        res = self.client.post(
            self.url,
            {"selfie": selfie(name="notes.pdf", content=b"%PDF-1.4", content_type="application/pdf")},
            format="multipart",
        )

        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(res.data["message"], "Only image files are allowed")
        self.record.refresh_from_db()
        self.assertIsNone(self.record.selfie_uploaded_at)

    @override_settings(SELFIE_MAX_UPLOAD_BYTES=32)
    def test_oversized_image_is_rejected_before_storage(self):
        res = self.client.post(self.url, {"selfie": selfie()}, format="multipart")

        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.record.refresh_from_db()
        self.assertIsNone(self.record.selfie_uploaded_at)
        self.assertEqual(AuditLog.objects.count(), 0)

    def test_module_is_required(self):
        self.owner.module_access = []
        self.owner.save(update_fields=["module_access"])

        res = self.client.post(self.url, {"selfie": selfie()}, format="multipart")

        self.assertEqual(res.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(res.data["message"], "Selfie upload module is not enabled for your account")

    def test_admin_owner_bypasses_module_check(self):
        admin = User.objects.create_user(username="admin", password="password", role=User.ROLE_ADMIN)
        record = create_record(admin)
        self.client.force_authenticate(user=admin)

        res = self.client.post(
            f"/api/aadhaar-verification/records/{record.pk}/selfie/", {"selfie": selfie()}, format="multipart"
        )

        self.assertEqual(res.status_code, status.HTTP_200_OK)

    def test_non_owner_is_forbidden(self):
        other = User.objects.create_user(
            username="other", password="password", module_access=[User.MODULE_SELFIE_UPLOAD]
        )
        self.client.force_authenticate(user=other)

        res = self.client.post(self.url, {"selfie": selfie()}, format="multipart")

        self.assertEqual(res.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(res.data["message"], "Not authorized to access this record")


class SelfieRetrievalTests(TestCase):
    def setUp(self):
        self.owner = User.objects.create_user(
            username="owner", password="password", module_access=[User.MODULE_SELFIE_UPLOAD]
        )
        self.record = create_record(self.owner)
        self.url = f"/api/aadhaar-verification/records/{self.record.pk}/selfie/"
        self.client = APIClient()
        self.client.force_authenticate(user=self.owner)

    def upload(self):
        res = self.client.post(self.url, {"selfie": selfie()}, format="multipart")
        self.assertEqual(res.status_code, status.HTTP_200_OK)

    def test_serves_blob_inline_with_embedding_headers(self):
        self.upload()

        res = self.client.get(self.url)

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.content, JPEG_BYTES)
        self.assertEqual(res["Content-Type"], "image/jpeg")
        self.assertTrue(res["Content-Disposition"].startswith("inline"))
        self.assertEqual(res["Cross-Origin-Resource-Policy"], "cross-origin")
        self.assertEqual(res["Cross-Origin-Embedder-Policy"], "unsafe-none")

    @override_settings(CORS_ALLOWED_ORIGINS=["https://app.example.com"], CORS_ALLOW_ALL_ORIGINS=False)
    def test_allowed_origin_is_echoed(self):
        self.upload()

        res = self.client.get(self.url, HTTP_ORIGIN="https://app.example.com")

        self.assertEqual(res["Access-Control-Allow-Origin"], "https://app.example.com")
        self.assertEqual(res["Access-Control-Allow-Credentials"], "true")

    def test_missing_selfie(self):
        res = self.client.get(self.url)
        self.assertEqual(res.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(res.data["message"], "Selfie not found for this record")

    def test_admin_can_read_any_selfie(self):
        self.upload()
        admin = User.objects.create_user(username="admin", password="password", role=User.ROLE_ADMIN)
        self.client.force_authenticate(user=admin)

        self.assertEqual(self.client.get(self.url).status_code, status.HTTP_200_OK)

    def test_other_user_is_forbidden(self):
        self.upload()
        other = User.objects.create_user(username="other", password="password")
        self.client.force_authenticate(user=other)

        self.assertEqual(self.client.get(self.url).status_code, status.HTTP_403_FORBIDDEN)

    def test_anonymous_is_unauthorized(self):
        self.client.force_authenticate(user=None)
        self.assertEqual(self.client.get(self.url).status_code, status.HTTP_401_UNAUTHORIZED)

    def test_legacy_file_on_disk(self):
        with tempfile.TemporaryDirectory() as root:
            legacy = Path(root) / "selfies" / "old.png"
            legacy.parent.mkdir()
            legacy.write_bytes(b"\x89PNG legacy")
            VerificationRecord.objects.filter(pk=self.record.pk).update(selfie_path="selfies/old.png")

            with override_settings(SELFIE_LEGACY_ROOT=Path(root)):
                res = self.client.get(self.url)
                body = b"".join(res.streaming_content)
                res.close()

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(body, b"\x89PNG legacy")
        self.assertEqual(res["Content-Type"], "image/png")
        self.assertEqual(res["Cross-Origin-Resource-Policy"], "cross-origin")

    def test_legacy_path_cannot_escape_root(self):
        with tempfile.TemporaryDirectory() as root:
            secret = Path(root) / "secret.png"
            secret.write_bytes(b"nope")
            media = Path(root) / "media"
            media.mkdir()
            VerificationRecord.objects.filter(pk=self.record.pk).update(selfie_path="../secret.png")

            with override_settings(SELFIE_LEGACY_ROOT=media):
                res = self.client.get(self.url)

        self.assertEqual(res.status_code, status.HTTP_404_NOT_FOUND)
