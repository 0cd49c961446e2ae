from django.contrib import admin
from django.contrib.auth.admin import UserAdmin
from .models import User, LoginAttempt


@admin.register(User)
class PortalUserAdmin(UserAdmin):
    list_display = ['email', 'name', 'role', 'organization', 'is_active', 'last_login']
    list_filter = ['role', 'is_active']
    search_fields = ['email', 'name']
    ordering = ['email']
    fieldsets = UserAdmin.fieldsets + (
        ('Portal', {'fields': ('name', 'role', 'phone', 'organization')}),
    )


@admin.register(LoginAttempt)
class LoginAttemptAdmin(admin.ModelAdmin):
    list_display = ['email', 'is_successful', 'ip_address', 'attempted_at']
    list_filter = ['is_successful']
    search_fields = ['email']
