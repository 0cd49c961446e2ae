import uuid
from django.db import models


class CommunicationType(models.TextChoices):
    EMAIL = 'Email', 'Email'
    SMS = 'SMS', 'SMS'
    MESSAGE = 'Message', 'Message'
    SYSTEM_NOTIFICATION = 'SystemNotification', 'System Notification'


class DeliveryStatus(models.TextChoices):
    QUEUED = 'Queued', 'Queued'
    SENT = 'Sent', 'Sent'
    DELIVERED = 'Delivered', 'Delivered'
    READ = 'Read', 'Read'
    OPENED = 'Opened', 'Opened'
    CLICKED = 'Clicked', 'Clicked'
    FAILED = 'Failed', 'Failed'
    BOUNCED = 'Bounced', 'Bounced'
    DEFERRED = 'Deferred', 'Deferred'
    SPAM_REPORT = 'SpamReport', 'Spam Report'
    UNSUBSCRIBED = 'Unsubscribed', 'Unsubscribed'
    GROUP_UNSUBSCRIBED = 'GroupUnsubscribed', 'Group Unsubscribed'


class CommunicationLog(models.Model):
    """
    One outbound communication (email, SMS, portal message) and how far
    its delivery got.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(
        'orders.Order',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='communication_logs'
    )
    communication_type = models.CharField(max_length=30, choices=CommunicationType.choices, db_index=True)
    sender = models.ForeignKey(
        'identity.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='sent_communications'
    )
    recipient = models.CharField(max_length=255, blank=True)
    recipient_email = models.EmailField(blank=True)
    recipient_phone = models.CharField(max_length=30, blank=True)
    subject = models.CharField(max_length=255, blank=True)
    content = models.TextField(blank=True)
    template_used = models.CharField(max_length=100, blank=True)
    delivery_status = models.CharField(max_length=30, default=DeliveryStatus.QUEUED, db_index=True)
    external_message_id = models.CharField(max_length=255, blank=True, db_index=True)
    sent_at = models.DateTimeField(db_index=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    read_at = models.DateTimeField(null=True, blank=True)
    failure_reason = models.CharField(max_length=1000, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-sent_at']

    def __str__(self):
        return f"{self.communication_type} to {self.recipient_email or self.recipient} ({self.delivery_status})"


class NotificationDeliveryLog(models.Model):
    """
    Provider-side status for a communication, updated from webhooks.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    communication_log = models.ForeignKey(CommunicationLog, on_delete=models.CASCADE, related_name='delivery_logs')
    delivery_provider = models.CharField(max_length=50)
    external_id = models.CharField(max_length=255, db_index=True)
    status = models.CharField(max_length=30)
    status_details = models.CharField(max_length=1000, blank=True)
    webhook_data = models.JSONField(default=dict, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.delivery_provider} {self.external_id}: {self.status}"
