from datetime import timedelta

from django.test import TestCase
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from users.models import User

from .models import CustomField, VerificationRecord
from .testing import create_record


URL = "/api/aadhaar-verification/records/"


class RecordListingTests(TestCase):
    def setUp(self):
        self.owner = User.objects.create_user(username="owner", password="password")
        self.other = User.objects.create_user(username="other", password="password")
        self.client = APIClient()
        self.client.force_authenticate(user=self.owner)

    def list(self, **params):
        res = self.client.get(URL, params)
        self.assertEqual(res.status_code, status.HTTP_200_OK, res.data)
        return res.data

    def test_lists_only_own_records_decrypted(self):
        mine = create_record(self.owner)
        create_record(self.other, identity={"name": "Someone Else"})

        body = self.list()

        self.assertTrue(body["success"])
        self.assertEqual([item["id"] for item in body["data"]], [str(mine.pk)])
        item = body["data"][0]
        self.assertEqual(item["aadhaarNumber"], "123456789012")
        self.assertEqual(item["name"], "Asha Verma")
        self.assertEqual(item["careOf"], "D/O: Ravi Verma")
        self.assertNotIn("selfieData", item)
        self.assertIsNone(item["selfie"])
        self.assertEqual(
            body["pagination"],
            {
                "currentPage": 1,
                "totalPages": 1,
                "totalRecords": 1,
                "hasNext": False,
                "hasPrev": False,
                "limit": 10,
            },
        )

    def test_newest_first_by_default_and_paged(self):
        records = [create_record(self.owner) for _ in range(3)]
        now = timezone.now()
        for offset, record in enumerate(records):
            VerificationRecord.objects.filter(pk=record.pk).update(created_at=now - timedelta(days=offset))

        body = self.list(page=2, limit=1)

        self.assertEqual([item["id"] for item in body["data"]], [str(records[1].pk)])
        self.assertEqual(body["pagination"]["totalPages"], 3)
        self.assertTrue(body["pagination"]["hasNext"])
        self.assertTrue(body["pagination"]["hasPrev"])

    def test_limit_is_capped(self):
        create_record(self.owner)
        self.assertEqual(self.list(limit=500)["pagination"]["limit"], 100)
        self.assertEqual(self.list(limit="abc")["pagination"]["limit"], 10)

    def test_status_filter(self):
        create_record(self.owner)
        rejected = create_record(self.owner, status=VerificationRecord.Status.REJECTED)

        body = self.list(status="rejected")

        self.assertEqual([item["id"] for item in body["data"]], [str(rejected.pk)])
        self.assertEqual(len(self.list(status="all")["data"]), 2)

    def test_search_matches_decrypted_fields_case_insensitively(self):
        create_record(self.owner)
        other = create_record(self.owner, aadhaar_number="999988887777", identity={"name": "Kiran Rao"})

        body = self.list(search="kiran")
        self.assertEqual([item["id"] for item in body["data"]], [str(other.pk)])
        self.assertEqual(body["pagination"]["totalRecords"], 1)

        self.assertEqual(len(self.list(search="8887")["data"]), 1)
        self.assertEqual(len(self.list(search="karnataka")["data"]), 2)

    def test_search_is_literal_not_a_pattern(self):
        create_record(self.owner, identity={"name": "Axb Kumar"})

        self.assertEqual(self.list(search="a.b")["data"], [])
        self.assertEqual(len(self.list(search="axb")["data"]), 1)

    def test_search_reaches_provider_payload(self):
        create_record(
            self.owner,
            identity={"district": ""},
            provider_payload={
                "api_response": {"data": {"data": {"address": {"district": "Mysuru"}, "name": "Asha Verma"}}}
            },
        )

        self.assertEqual(len(self.list(search="mysuru")["data"]), 1)

    def test_date_of_birth_range(self):
        early = create_record(self.owner, identity={"date_of_birth": "01-01-1980"})
        create_record(self.owner, identity={"date_of_birth": "1995-06-30"})
        create_record(self.owner, identity={"date_of_birth": "unknown"})

        body = self.list(dateFrom="1975-01-01", dateTo="1985-12-31")

        self.assertEqual([item["id"] for item in body["data"]], [str(early.pk)])
        self.assertEqual(len(self.list(dateFrom="1975-01-01")["data"]), 2)

    def test_invalid_date_filter_is_rejected(self):
        res = self.client.get(URL, {"dateFrom": "yesterday"})
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(res.data["message"], "Invalid date filter")

    def test_sort_by_decrypted_name(self):
        for name in ("Meera", "arjun", "Zoya"):
            create_record(self.owner, identity={"name": name})

        ascending = self.list(sortBy="name", sortOrder="asc")
        self.assertEqual([item["name"] for item in ascending["data"]], ["arjun", "Meera", "Zoya"])

        descending = self.list(sortBy="name")
        self.assertEqual([item["name"] for item in descending["data"]], ["Zoya", "Meera", "arjun"])

    def test_unknown_sort_falls_back_to_created_at(self):
        create_record(self.owner)
        body = self.list(sortBy="selfieData")
        self.assertEqual(len(body["data"]), 1)

    def test_care_of_falls_back_to_provider_payload(self):
        create_record(
            self.owner,
            identity={"care_of": ""},
            provider_payload={"api_response": {"data": {"care_of": "S/O: Mohan"}}},
        )

        self.assertEqual(self.list()["data"][0]["careOf"], "S/O: Mohan")

    def test_undecryptable_record_is_flagged_not_leaked(self):
        good = create_record(self.owner)
        bad = create_record(self.owner)
        VerificationRecord.objects.filter(pk=bad.pk).update(name="gAAAAAbroken-token")

        with self.assertLogs("verification.repository", level="WARNING"):
            body = self.list()

        items = {item["id"]: item for item in body["data"]}
        self.assertFalse(items[str(good.pk)]["decryptionError"])
        self.assertTrue(items[str(bad.pk)]["decryptionError"])
        self.assertIsNone(items[str(bad.pk)]["name"])
        self.assertEqual(items[str(bad.pk)]["aadhaarNumber"], "123456789012")
        self.assertNotIn("gAAAAAbroken-token", str(body))


class DynamicFieldListingTests(TestCase):
    def setUp(self):
        self.owner = User.objects.create_user(username="owner", password="password")
        self.client = APIClient()
        self.client.force_authenticate(user=self.owner)
        self.record = create_record(self.owner, dynamic_fields=[{"label": "branch", "value": "Indiranagar"}])

    def fields(self):
        return self.client.get(URL).data["data"][0]["dynamicFields"]

    def test_no_definitions_means_no_dynamic_fields(self):
        self.assertEqual(self.fields(), [])

    def test_new_definition_appears_on_existing_records(self):
        CustomField.objects.create(field_name="branch", field_label="Branch", display_order=1)
        CustomField.objects.create(field_name="agent", field_label="Agent", display_order=2, default_value="self")
        CustomField.objects.create(field_name="remarks", display_order=3)

        self.assertEqual(
            self.fields(),
            [
                {"label": "Branch", "value": "Indiranagar"},
                {"label": "Agent", "value": "self"},
                {"label": "remarks", "value": ""},
            ],
        )
        self.record.refresh_from_db()
        self.assertEqual(self.record.dynamic_fields, [{"label": "branch", "value": "Indiranagar"}])
