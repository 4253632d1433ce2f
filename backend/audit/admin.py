from django.contrib import admin

from .models import AuditLog


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
	list_display = ("created_at", "event_type", "actor", "object_id", "method", "ip_address")
	list_filter = ("event_type",)
	search_fields = ("actor__username", "object_id", "ip_address")
	date_hierarchy = "created_at"
	list_select_related = ("actor",)
	readonly_fields = [field.name for field in AuditLog._meta.fields]

	def has_add_permission(self, request):
		return False

	def has_change_permission(self, request, obj=None):
		return False

	def has_delete_permission(self, request, obj=None):
		return False
