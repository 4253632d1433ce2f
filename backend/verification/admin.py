from django.contrib import admin

from .models import CustomField, VerificationRecord


@admin.register(CustomField)
class CustomFieldAdmin(admin.ModelAdmin):
    list_display = ("field_name", "field_label", "field_type", "applies_to", "required", "display_order", "is_active")
    list_editable = ("display_order", "is_active")
    list_filter = ("field_type", "applies_to", "is_active")
    search_fields = ("field_name", "field_label")
    ordering = ("display_order", "created_at")


@admin.register(VerificationRecord)
class VerificationRecordAdmin(admin.ModelAdmin):
    """Read-only. Encrypted columns are never shown; the Aadhaar number appears masked."""

    list_display = ("batch_id", "masked_aadhaar", "user", "status", "otp_verified", "has_selfie", "created_at")
    list_filter = ("status", "verification_source", "otp_verified")
    search_fields = ("batch_id", "aadhaar_last4", "transaction_id", "user__username")
    ordering = ("-created_at",)
    fields = (
        "id",
        "user",
        "batch_id",
        "masked_aadhaar",
        "status",
        "dynamic_fields",
        "transaction_id",
        "verification_source",
        "verification_remarks",
        "confidence",
        "selfie_filename",
        "selfie_mimetype",
        "selfie_size",
        "selfie_uploaded_at",
        "processing_time",
        "processed_at",
        "created_at",
        "updated_at",
    )
    readonly_fields = fields

    @admin.display(description="Aadhaar")
    def masked_aadhaar(self, obj):
        return f"****{obj.aadhaar_last4}" if obj.aadhaar_last4 else ""

    @admin.display(boolean=True, description="Selfie")
    def has_selfie(self, obj):
        return obj.has_selfie

    def get_queryset(self, request):
        return super().get_queryset(request).select_related("user").defer("selfie_data")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
