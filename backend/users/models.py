from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    ROLE_ADMIN = "ADMIN"
    ROLE_USER = "USER"

    ROLES = (
        (ROLE_ADMIN, "Administrator"),
        (ROLE_USER, "User"),
    )

    MODULE_SELFIE_UPLOAD = "selfie-upload"
    MODULE_QR_CODE = "qr-code"

    MODULES = (
        (MODULE_SELFIE_UPLOAD, "Selfie upload"),
        (MODULE_QR_CODE, "QR code verification"),
    )

    role = models.CharField(max_length=20, choices=ROLES, default=ROLE_USER)
    email = models.EmailField(unique=True, blank=True, null=True, verbose_name="Email address")

    # Feature gates, e.g. ["selfie-upload", "qr-code"]
    module_access = models.JSONField(default=list, blank=True)

    # Identity used by the unauthenticated QR verification flow.
    qr_code = models.CharField(max_length=64, unique=True, blank=True, null=True)
    qr_code_active = models.BooleanField(default=False)

    REQUIRED_FIELDS = ["email", "role"]

    def __str__(self) -> str:
        return f"{self.username} ({self.get_role_display()})"

    def save(self, *args, **kwargs):
        # Blank emails are stored as NULL; the unique constraint only covers real addresses.
        if not self.email:
            self.email = None
        super().save(*args, **kwargs)

    @property
    def is_admin_role(self) -> bool:
        return self.role == self.ROLE_ADMIN

    def has_module(self, module: str) -> bool:
        return isinstance(self.module_access, list) and module in self.module_access

    def can_upload_selfies(self) -> bool:
        return self.is_admin_role or self.has_module(self.MODULE_SELFIE_UPLOAD)

    @classmethod
    def find_by_active_qr_code(cls, code: str) -> "User | None":
        code = str(code or "").strip()
        if not code:
            return None
        return cls.objects.filter(qr_code=code, qr_code_active=True, is_active=True).first()
