from types import SimpleNamespace

from django.test import SimpleTestCase

from audit.models import AuditLog

from .dynamic_fields import custom_fields_as_entries, normalize_dynamic_fields, resolve_dynamic_fields
from .payload_policy import mask_aadhaar_number, sanitize_audit_metadata


def definition(field_name, field_label="", default_value=""):
    return SimpleNamespace(
        field_name=field_name,
        field_label=field_label,
        default_value=default_value,
        label=field_label or field_name,
    )


class NormalizeDynamicFieldsTests(SimpleTestCase):
    def test_non_list_input(self):
        self.assertEqual(normalize_dynamic_fields(None), [])
        self.assertEqual(normalize_dynamic_fields({"label": "x"}), [])

    def test_drops_malformed_entries_and_stringifies(self):
        result = normalize_dynamic_fields(
            [
                {"label": "  Amount ", "value": 1500},
                {"label": "Paid", "value": True},
                {"label": "   ", "value": "blank label"},
                {"value": "orphan"},
                ["label", "value"],
                {"label": "Note"},
            ]
        )

        self.assertEqual(
            result,
            [
                {"label": "Amount", "value": "1500"},
                {"label": "Paid", "value": "true"},
                {"label": "Note", "value": ""},
            ],
        )

    def test_duplicate_labels_keep_first_position_and_last_value(self):
        result = normalize_dynamic_fields(
            [
                {"label": "A", "value": "1"},
                {"label": "B", "value": "2"},
                {"label": "A", "value": "3"},
            ]
        )

        self.assertEqual(result, [{"label": "A", "value": "3"}, {"label": "B", "value": "2"}])

    def test_normalizing_twice_changes_nothing(self):
        once = normalize_dynamic_fields([{"label": " x ", "value": 1}, {"label": "x", "value": 2}])
        self.assertEqual(normalize_dynamic_fields(once), once)

    def test_custom_fields_object(self):
        self.assertEqual(
            custom_fields_as_entries({"Gate": "North", "Visitors": 2}),
            [{"label": "Gate", "value": "North"}, {"label": "Visitors", "value": 2}],
        )
        self.assertEqual(custom_fields_as_entries(["Gate"]), [])


class ResolveDynamicFieldsTests(SimpleTestCase):
    def test_no_definitions(self):
        self.assertEqual(resolve_dynamic_fields([], [{"label": "A", "value": "1"}]), [])

    def test_value_precedence(self):
        definitions = [
            definition("branch", "Branch"),
            definition("agent_code", "Agent code"),
            definition("channel", "Channel", default_value="walk-in"),
            definition("remarks"),
        ]
        stored = [
            {"label": "Branch", "value": "MG Road"},
            {"label": "agent_code", "value": "A-17"},
            {"label": "Unrelated", "value": "ignored"},
        ]

        self.assertEqual(
            resolve_dynamic_fields(definitions, stored),
            [
                {"label": "Branch", "value": "MG Road"},
                {"label": "Agent code", "value": "A-17"},
                {"label": "Channel", "value": "walk-in"},
                {"label": "remarks", "value": ""},
            ],
        )

    def test_stored_blank_falls_back_to_default(self):
        definitions = [definition("channel", "Channel", default_value="walk-in")]
        self.assertEqual(
            resolve_dynamic_fields(definitions, [{"label": "Channel", "value": ""}]),
            [{"label": "Channel", "value": "walk-in"}],
        )

    def test_malformed_stored_list(self):
        definitions = [definition("channel")]
        self.assertEqual(resolve_dynamic_fields(definitions, "garbage"), [{"label": "channel", "value": ""}])


class PayloadPolicyTests(SimpleTestCase):
    def test_mask_aadhaar_number(self):
        self.assertEqual(mask_aadhaar_number("123456789012"), "****9012")
        self.assertEqual(mask_aadhaar_number("1234 5678 9012"), "****9012")
        self.assertEqual(mask_aadhaar_number(""), "")
        self.assertEqual(mask_aadhaar_number(None), "")

    def test_audit_metadata_is_whitelisted_and_masked(self):
        metadata = sanitize_audit_metadata(
            AuditLog.EVENT_OTP_VERIFICATION_COMPLETED,
            {
                "recordId": "abc",
                "aadhaarNumber": "123456789012",
                "status": "verified",
                "processingTime": 18,
                "otp": "123456",
                "name": "Asha Verma",
            },
        )

        self.assertEqual(
            metadata,
            {"recordId": "abc", "aadhaarNumber": "****9012", "status": "verified", "processingTime": 18},
        )

    def test_unknown_event_keeps_nothing(self):
        self.assertEqual(sanitize_audit_metadata("something_else", {"recordId": "abc"}), {})
