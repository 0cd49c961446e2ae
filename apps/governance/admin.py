from django.contrib import admin
from .models import AuditLog, RoleAccessAudit


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ['action', 'target_type', 'target_label', 'performed_by', 'performed_at']
    list_filter = ['action', 'target_type']
    search_fields = ['target_label']


@admin.register(RoleAccessAudit)
class RoleAccessAuditAdmin(admin.ModelAdmin):
    list_display = ['user', 'user_role', 'http_method', 'resource', 'access_granted', 'timestamp']
    list_filter = ['access_granted', 'user_role']
    search_fields = ['resource']
