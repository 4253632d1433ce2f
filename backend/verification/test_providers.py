from unittest.mock import Mock

import requests
from django.core.exceptions import ImproperlyConfigured
from django.test import SimpleTestCase, override_settings

from .providers import ProviderError, SandboxAadhaarProvider, SimulatedAadhaarProvider, get_provider


def fake_response(status_code=200, payload=None):
    response = Mock(status_code=status_code)
    response.json.return_value = payload if payload is not None else {}
    return response


class SandboxProviderTests(SimpleTestCase):
    def setUp(self):
        self.session = Mock()
        self.provider = SandboxAadhaarProvider(
            base_url="https://sandbox.test/",
            api_key="key_live",
            api_secret="secret_live",
            timeout=5,
            reason="KYC",
            session=self.session,
        )

    def test_send_otp_authenticates_then_requests_otp(self):
        self.session.post.side_effect = [
            fake_response(payload={"access_token": "jwt-token"}),
            fake_response(payload={"code": 200, "data": {"reference_id": 3472631, "message": "OTP sent"}}),
        ]

        result = self.provider.send_otp("123456789012")

        self.assertEqual(result.transaction_id, "3472631")
        self.assertEqual(result.source, "sandbox_api")
        self.assertEqual(result.api_response["code"], 200)

        auth_call, otp_call = self.session.post.call_args_list
        self.assertEqual(auth_call.args[0], "https://sandbox.test/authenticate")
        self.assertEqual(auth_call.kwargs["headers"]["x-api-secret"], "secret_live")
        self.assertEqual(otp_call.args[0], "https://sandbox.test/kyc/aadhaar/okyc/otp")
        self.assertEqual(otp_call.kwargs["headers"]["authorization"], "jwt-token")
        self.assertEqual(otp_call.kwargs["json"]["aadhaar_number"], "123456789012")
        self.assertEqual(otp_call.kwargs["json"]["consent"], "y")
        self.assertEqual(otp_call.kwargs["json"]["reason"], "KYC")
        self.assertEqual(otp_call.kwargs["timeout"], 5)

    def test_send_otp_logs_masked_number_only(self):
        self.session.post.side_effect = [
            fake_response(payload={"data": {"access_token": "jwt-token"}}),
            fake_response(payload={"data": {"reference_id": "abc"}}),
        ]

        with self.assertLogs("verification.providers", level="INFO") as logs:
            self.provider.send_otp("123456789012")

        self.assertEqual(logs.records[0].aadhaar, "****9012")
        self.assertNotIn("123456789012", "\n".join(logs.output))

    def test_verify_otp_unwraps_nested_payload(self):
        self.session.post.side_effect = [
            fake_response(payload={"access_token": "jwt-token"}),
            fake_response(
                payload={
                    "code": 200,
                    "data": {
                        "data": {
                            "status": "valid",
                            "name": "Asha Verma",
                            "address": {"district": "Pune", "pincode": 411001},
                        }
                    },
                }
            ),
        ]

        outcome = self.provider.verify_otp("3472631", "123456")

        self.assertTrue(outcome.is_valid)
        self.assertEqual(outcome.data["name"], "Asha Verma")
        self.assertEqual(outcome.address["district"], "Pune")
        verify_call = self.session.post.call_args_list[1]
        self.assertEqual(verify_call.args[0], "https://sandbox.test/kyc/aadhaar/okyc/otp/verify")
        self.assertEqual(verify_call.kwargs["json"]["reference_id"], "3472631")

    def test_verify_otp_invalid_status(self):
        self.session.post.side_effect = [
            fake_response(payload={"access_token": "jwt-token"}),
            fake_response(payload={"data": {"status": "INVALID", "message": "Invalid OTP"}}),
        ]

        outcome = self.provider.verify_otp("1", "111111")

        self.assertFalse(outcome.is_valid)
        self.assertEqual(outcome.message, "Invalid OTP")

    def test_http_error_carries_upstream_message(self):
        self.session.post.side_effect = [
            fake_response(payload={"access_token": "jwt-token"}),
            fake_response(status_code=422, payload={"code": 422, "message": "Invalid Aadhaar Card"}),
        ]

        with self.assertRaises(ProviderError) as ctx:
            self.provider.send_otp("123456789012")

        self.assertEqual(ctx.exception.message, "Invalid Aadhaar Card")
        self.assertEqual(ctx.exception.status_code, 422)

    def test_http_error_without_body(self):
        response = fake_response(status_code=502)
        response.json.side_effect = ValueError("no json")
        self.session.post.return_value = response

        with self.assertRaises(ProviderError) as ctx:
            self.provider.send_otp("123456789012")

        self.assertIn("502", ctx.exception.message)

    def test_transport_error(self):
        self.session.post.side_effect = requests.ConnectionError("connection refused")

        with self.assertRaises(ProviderError):
            self.provider.verify_otp("1", "123456")

    def test_missing_access_token(self):
        self.session.post.return_value = fake_response(payload={"code": 200})

        with self.assertRaises(ProviderError):
            self.provider.send_otp("123456789012")

    def test_missing_reference_id(self):
        self.session.post.side_effect = [
            fake_response(payload={"access_token": "jwt-token"}),
            fake_response(payload={"data": {"message": "Aadhaar number does not have mobile number"}}),
        ]

        with self.assertRaises(ProviderError) as ctx:
            self.provider.send_otp("123456789012")

        self.assertEqual(ctx.exception.message, "Aadhaar number does not have mobile number")

    def test_credentials_are_required(self):
        with self.assertRaises(ImproperlyConfigured):
            SandboxAadhaarProvider(base_url="https://sandbox.test", api_key="", api_secret="")


class SimulatedProviderTests(SimpleTestCase):
    def test_send_otp_returns_reference(self):
        result = SimulatedAadhaarProvider().send_otp("123456789012")
        self.assertTrue(result.transaction_id.isdigit())
        self.assertEqual(result.source, "simulation")

    def test_any_otp_but_the_sentinel_verifies(self):
        provider = SimulatedAadhaarProvider()
        self.assertTrue(provider.verify_otp("1", "123456").is_valid)
        self.assertFalse(provider.verify_otp("1", SimulatedAadhaarProvider.INVALID_OTP).is_valid)


class GetProviderTests(SimpleTestCase):
    @override_settings(AADHAAR_PROVIDER="simulated")
    def test_simulated(self):
        self.assertIsInstance(get_provider(), SimulatedAadhaarProvider)

    @override_settings(
        AADHAAR_PROVIDER="sandbox",
        AADHAAR_SANDBOX_API_KEY="key",
        AADHAAR_SANDBOX_API_SECRET="secret",
    )
    def test_sandbox(self):
        provider = get_provider()
        self.assertIsInstance(provider, SandboxAadhaarProvider)
        self.assertEqual(provider.base_url, "https://api.sandbox.co.in")

    @override_settings(AADHAAR_PROVIDER="carrier-pigeon")
    def test_unknown_provider(self):
        with self.assertRaises(ImproperlyConfigured):
            get_provider()
