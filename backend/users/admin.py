from django.contrib import admin
from django.contrib.auth.admin import UserAdmin
from .models import User


@admin.register(User)
class CustomUserAdmin(UserAdmin):
    list_display = ('username', 'email', 'first_name', 'last_name', 'role', 'qr_code_active', 'is_staff')
    list_filter = ('role', 'qr_code_active', 'is_staff', 'is_superuser', 'is_active')
    search_fields = ('username', 'email', 'first_name', 'last_name', 'qr_code')
    fieldsets = UserAdmin.fieldsets + (
        ('Access', {'fields': ('role', 'module_access', 'qr_code', 'qr_code_active')}),
    )
    add_fieldsets = UserAdmin.add_fieldsets + (
        ('Access', {'fields': ('role', 'module_access')}),
    )
