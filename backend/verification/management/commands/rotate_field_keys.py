from __future__ import annotations

from django.core.management.base import BaseCommand
from django.db import transaction

from verification.crypto import InvalidToken, get_cipher
from verification.models import VerificationRecord


ROTATED_COLUMNS = VerificationRecord.ENCRYPTED_FIELDS + ("verification_payload",)


class Command(BaseCommand):
    help = (
        "Re-encrypt verification record fields with the first FIELD_ENCRYPTION_KEYS entry. "
        "By default it runs in dry-run mode. Use --apply to write changes."
    )

    def add_arguments(self, parser):
        parser.add_argument(
            "--apply",
            action="store_true",
            help="Actually re-encrypt rows (default: dry-run).",
        )
        parser.add_argument(
            "--limit",
            type=int,
            default=0,
            help="Process at most N records (0 = no limit).",
        )

    def handle(self, *args, **options):
        apply = bool(options.get("apply"))
        limit = int(options.get("limit") or 0)
        cipher = get_cipher()

        qs = VerificationRecord.objects.defer("selfie_data").order_by("created_at")
        if limit > 0:
            qs = qs[:limit]

        to_process = list(qs)
        self.stdout.write(f"Found {len(to_process)} verification record(s).")
        if not to_process:
            return

        rotated = 0
        failed = []
        for record in to_process:
            try:
                values = {column: cipher.rotate(getattr(record, column)) for column in ROTATED_COLUMNS}
            except (InvalidToken, ValueError):
                failed.append(record.pk)
                continue

            if not apply:
                rotated += 1
                continue

            with transaction.atomic():
                for column, value in values.items():
                    setattr(record, column, value)
                record.save(update_fields=[*ROTATED_COLUMNS, "updated_at"])
            rotated += 1

        if failed:
            self.stdout.write(self.style.WARNING(f"{len(failed)} record(s) could not be decrypted with any key:"))
            for pk in failed[:10]:
                self.stdout.write(f"- {pk}")

        if not apply:
            self.stdout.write(f"Dry-run: {rotated} record(s) can be rotated. Use --apply to write changes.")
            return

        self.stdout.write(self.style.SUCCESS(f"Rotated {rotated} record(s)."))
