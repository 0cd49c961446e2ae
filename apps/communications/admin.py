from django.contrib import admin
from .models import CommunicationLog, NotificationDeliveryLog


class NotificationDeliveryLogInline(admin.TabularInline):
    model = NotificationDeliveryLog
    extra = 0
    readonly_fields = ['delivery_provider', 'external_id', 'status', 'status_details', 'updated_at']


@admin.register(CommunicationLog)
class CommunicationLogAdmin(admin.ModelAdmin):
    list_display = ['communication_type', 'recipient_email', 'subject', 'delivery_status', 'sent_at']
    list_filter = ['communication_type', 'delivery_status']
    search_fields = ['recipient', 'recipient_email', 'subject', 'external_message_id']
    inlines = [NotificationDeliveryLogInline]
