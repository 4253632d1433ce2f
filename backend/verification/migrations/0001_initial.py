import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="CustomField",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("field_name", models.CharField(max_length=100, unique=True)),
                ("field_label", models.CharField(blank=True, default="", max_length=150)),
                (
                    "field_type",
                    models.CharField(
                        choices=[
                            ("text", "Text"),
                            ("number", "Number"),
                            ("date", "Date"),
                            ("email", "Email"),
                            ("phone", "Phone"),
                            ("select", "Select"),
                            ("textarea", "Text area"),
                        ],
                        default="text",
                        max_length=20,
                    ),
                ),
                ("placeholder", models.CharField(blank=True, default="", max_length=255)),
                ("required", models.BooleanField(default=False)),
                ("default_value", models.CharField(blank=True, default="", max_length=255)),
                ("display_order", models.PositiveIntegerField(default=0)),
                (
                    "applies_to",
                    models.CharField(
                        choices=[
                            ("verification", "Verification records"),
                            ("user", "User profiles"),
                            ("both", "Both"),
                        ],
                        db_index=True,
                        default="verification",
                        max_length=20,
                    ),
                ),
                ("is_active", models.BooleanField(db_index=True, default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={"ordering": ["display_order", "created_at"]},
        ),
        migrations.CreateModel(
            name="VerificationRecord",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("batch_id", models.CharField(db_index=True, max_length=64)),
                ("aadhaar_number", models.TextField(blank=True, default="")),
                ("aadhaar_last4", models.CharField(blank=True, default="", max_length=4)),
                ("name", models.TextField(blank=True, default="")),
                ("date_of_birth", models.TextField(blank=True, default="")),
                ("gender", models.TextField(blank=True, default="")),
                ("address", models.TextField(blank=True, default="")),
                ("district", models.TextField(blank=True, default="")),
                ("state", models.TextField(blank=True, default="")),
                ("pin_code", models.TextField(blank=True, default="")),
                ("care_of", models.TextField(blank=True, default="")),
                ("photo", models.TextField(blank=True, default="")),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("verified", "Verified"),
                            ("rejected", "Rejected"),
                            ("invalid", "Invalid"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=10,
                    ),
                ),
                ("dynamic_fields", models.JSONField(blank=True, default=list)),
                ("selfie_data", models.BinaryField(blank=True, null=True)),
                ("selfie_filename", models.CharField(blank=True, default="", max_length=255)),
                ("selfie_original_name", models.CharField(blank=True, default="", max_length=255)),
                ("selfie_mimetype", models.CharField(blank=True, default="", max_length=100)),
                ("selfie_size", models.PositiveIntegerField(blank=True, null=True)),
                ("selfie_uploaded_at", models.DateTimeField(blank=True, null=True)),
                ("selfie_path", models.CharField(blank=True, default="", max_length=500)),
                ("transaction_id", models.CharField(blank=True, db_index=True, default="", max_length=128)),
                ("verification_source", models.CharField(blank=True, default="", max_length=40)),
                ("verification_remarks", models.CharField(blank=True, default="", max_length=255)),
                ("verification_date", models.DateTimeField(blank=True, null=True)),
                ("otp_verified", models.BooleanField(default=False)),
                ("confidence", models.PositiveSmallIntegerField(default=0)),
                ("data_match", models.BooleanField(default=False)),
                ("verification_payload", models.TextField(blank=True, default="")),
                ("processing_time", models.PositiveIntegerField(default=0)),
                ("is_processed", models.BooleanField(default=False)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="verification_records",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["user", "created_at"], name="verif_user_created_idx"),
                    models.Index(fields=["user", "status"], name="verif_user_status_idx"),
                ],
            },
        ),
    ]
