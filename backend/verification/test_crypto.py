from io import StringIO

from cryptography.fernet import Fernet
from django.core.management import call_command
from django.test import SimpleTestCase, TestCase, override_settings

from users.models import User

from .crypto import FieldCipher, InvalidToken, get_cipher
from .models import VerificationRecord
from .repository import RecordRepository
from .testing import create_record


OLD_KEY = Fernet.generate_key().decode()
NEW_KEY = Fernet.generate_key().decode()


class FieldCipherTests(SimpleTestCase):
    def test_blank_values_are_not_encrypted(self):
        cipher = FieldCipher([OLD_KEY])
        self.assertEqual(cipher.encrypt(""), "")
        self.assertEqual(cipher.encrypt(None), "")
        self.assertEqual(cipher.decrypt(""), "")
        self.assertIsNone(cipher.decrypt_json(""))

    def test_ciphertext_hides_value(self):
        token = FieldCipher([OLD_KEY]).encrypt("123456789012")
        self.assertNotIn("123456789012", token)
        self.assertEqual(FieldCipher([OLD_KEY]).decrypt(token), "123456789012")

    def test_json_payload(self):
        cipher = FieldCipher([OLD_KEY])
        payload = {"api_response": {"data": {"status": "VALID"}}, "year_of_birth": 1990}
        self.assertEqual(cipher.decrypt_json(cipher.encrypt_json(payload)), payload)

    def test_old_key_still_decrypts_after_prepending_new_key(self):
        token = FieldCipher([OLD_KEY]).encrypt("Asha")
        self.assertEqual(FieldCipher([NEW_KEY, OLD_KEY]).decrypt(token), "Asha")

    def test_rotate_moves_token_to_primary_key(self):
        token = FieldCipher([OLD_KEY]).encrypt("Asha")
        rotated = FieldCipher([NEW_KEY, OLD_KEY]).rotate(token)

        self.assertEqual(FieldCipher([NEW_KEY]).decrypt(rotated), "Asha")
        with self.assertRaises(InvalidToken):
            FieldCipher([OLD_KEY]).decrypt(rotated)

    def test_wrong_key_raises(self):
        token = FieldCipher([OLD_KEY]).encrypt("Asha")
        with self.assertRaises(InvalidToken):
            FieldCipher([NEW_KEY]).decrypt(token)

    def test_requires_a_key(self):
        with self.assertRaises(ValueError):
            FieldCipher([])

    @override_settings(FIELD_ENCRYPTION_KEYS=[OLD_KEY])
    def test_get_cipher_reads_settings(self):
        token = get_cipher().encrypt("x")
        self.assertEqual(FieldCipher([OLD_KEY]).decrypt(token), "x")


class RepositoryDecryptTests(TestCase):
    def setUp(self):
        self.owner = User.objects.create_user(username="owner", password="password")

    def test_encrypts_every_sensitive_column(self):
        record = create_record(self.owner)

        for field_name in VerificationRecord.ENCRYPTED_FIELDS:
            value = getattr(record, field_name)
            if value:
                self.assertTrue(value.startswith("gAAAAA"), field_name)
        self.assertTrue(record.verification_payload.startswith("gAAAAA"))
        self.assertEqual(record.aadhaar_last4, "9012")

    def test_decrypt_returns_plaintext_view(self):
        record = create_record(self.owner, dynamic_fields=[{"label": "Ref", "value": "1"}])

        plain = RecordRepository().decrypt(VerificationRecord.objects.get(pk=record.pk))

        self.assertEqual(plain["aadhaar_number"], "123456789012")
        self.assertEqual(plain["name"], "Asha Verma")
        self.assertEqual(plain["dynamic_fields"], [{"label": "Ref", "value": "1"}])
        self.assertEqual(plain["verification_details"]["payload"]["api_response"]["code"], 200)
        self.assertFalse(plain["decryption_error"])

    def test_decrypt_with_wrong_key_flags_every_field(self):
        with override_settings(FIELD_ENCRYPTION_KEYS=[OLD_KEY]):
            record = create_record(self.owner)

        with override_settings(FIELD_ENCRYPTION_KEYS=[NEW_KEY]):
            with self.assertLogs("verification.repository", level="WARNING"):
                plain = RecordRepository().decrypt(record)

        self.assertTrue(plain["decryption_error"])
        self.assertIsNone(plain["aadhaar_number"])
        self.assertIsNone(plain["name"])
        self.assertIsNone(plain["verification_details"]["payload"])
        self.assertEqual(plain["aadhaar_last4"], "9012")


class RotateFieldKeysCommandTests(TestCase):
    def setUp(self):
        owner = User.objects.create_user(username="owner", password="password")
        with override_settings(FIELD_ENCRYPTION_KEYS=[OLD_KEY]):
            self.record = create_record(owner)

    def run_command(self, *args):
        out = StringIO()
        call_command("rotate_field_keys", *args, stdout=out)
        return out.getvalue()

    @override_settings(FIELD_ENCRYPTION_KEYS=[NEW_KEY, OLD_KEY])
    def test_dry_run_writes_nothing(self):
        before = self.record.name

        output = self.run_command()

        self.record.refresh_from_db()
        self.assertEqual(self.record.name, before)
        self.assertIn("Dry-run", output)

    def test_apply_re_encrypts_with_new_key(self):
        with override_settings(FIELD_ENCRYPTION_KEYS=[NEW_KEY, OLD_KEY]):
            output = self.run_command("--apply")
        self.assertIn("Rotated 1 record(s).", output)

        with override_settings(FIELD_ENCRYPTION_KEYS=[NEW_KEY]):
            plain = RecordRepository().decrypt(VerificationRecord.objects.get(pk=self.record.pk))
        self.assertFalse(plain["decryption_error"])
        self.assertEqual(plain["name"], "Asha Verma")
        self.assertEqual(plain["verification_details"]["payload"]["api_response"]["code"], 200)

    @override_settings(FIELD_ENCRYPTION_KEYS=[NEW_KEY])
    def test_undecryptable_records_are_reported(self):
        output = self.run_command("--apply")

        self.assertIn("could not be decrypted", output)
        self.assertIn(str(self.record.pk), output)
