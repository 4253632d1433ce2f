from django.test import RequestFactory, TestCase

from users.models import User

from .models import AuditLog
from .services import get_client_ip, log_event


class LogEventTests(TestCase):
	def setUp(self):
		self.factory = RequestFactory()
		self.user = User.objects.create_user(username="auditor", password="password")

	def test_records_request_context(self):
		request = self.factory.post(
			"/api/aadhaar-verification/verify-otp/",
			HTTP_USER_AGENT="pytest-agent",
			REMOTE_ADDR="10.0.0.7",
		)
		request.user = self.user

		entry = log_event(
			request,
			event_type=AuditLog.EVENT_OTP_VERIFICATION_COMPLETED,
			object_type="VerificationRecord",
			object_id="abc",
			metadata={"status": "verified"},
		)

		self.assertIsNotNone(entry)
		entry.refresh_from_db()
		self.assertEqual(entry.actor, self.user)
		self.assertEqual(entry.path, "/api/aadhaar-verification/verify-otp/")
		self.assertEqual(entry.method, "POST")
		self.assertEqual(entry.ip_address, "10.0.0.7")
		self.assertEqual(entry.user_agent, "pytest-agent")
		self.assertEqual(entry.metadata, {"status": "verified"})

	def test_explicit_actor_wins_for_public_requests(self):
		request = self.factory.post("/api/aadhaar-verification/verify-otp-qr/QR1/")

		entry = log_event(request, event_type=AuditLog.EVENT_SELFIE_UPLOADED, actor=self.user)

		self.assertEqual(entry.actor, self.user)

	def test_without_actor_nothing_is_written(self):
		request = self.factory.post("/api/aadhaar-verification/verify-otp-qr/QR1/")

		with self.assertLogs("audit.services", level="WARNING"):
			entry = log_event(request, event_type=AuditLog.EVENT_SELFIE_UPLOADED)

		self.assertIsNone(entry)
		self.assertEqual(AuditLog.objects.count(), 0)

	def test_client_ip_prefers_forwarded_for(self):
		request = self.factory.get("/", HTTP_X_FORWARDED_FOR="203.0.113.5, 10.0.0.1", REMOTE_ADDR="10.0.0.1")
		self.assertEqual(get_client_ip(request), "203.0.113.5")
