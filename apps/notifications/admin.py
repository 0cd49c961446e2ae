from django.contrib import admin
from .models import NotificationPreference, EmailNotification


@admin.register(NotificationPreference)
class NotificationPreferenceAdmin(admin.ModelAdmin):
    list_display = ['user', 'email_enabled', 'frequency', 'is_active', 'updated_at']
    list_filter = ['email_enabled', 'frequency']
    search_fields = ['user__email']
    exclude = ['unsubscribe_token']


@admin.register(EmailNotification)
class EmailNotificationAdmin(admin.ModelAdmin):
    list_display = ['template_name', 'recipient', 'status', 'delivery_attempts', 'created_at']
    list_filter = ['status', 'template_name']
    search_fields = ['recipient', 'subject']
