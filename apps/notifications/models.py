import base64
import secrets
import uuid
from django.db import models


def default_milestones():
    return [
        {"type": "MeasurementsDue", "enabled": True, "notifyBefore": 24},
        {"type": "ProofApproval", "enabled": True, "notifyBefore": 0},
        {"type": "ProductionStart", "enabled": True, "notifyBefore": 0},
        {"type": "Shipping", "enabled": True, "notifyBefore": 0},
        {"type": "Delivery", "enabled": True, "notifyBefore": 0},
    ]


def generate_unsubscribe_token() -> str:
    """32 random bytes, URL-safe base64 without padding."""
    return base64.urlsafe_b64encode(secrets.token_bytes(32)).rstrip(b"=").decode()


class NotificationFrequency(models.TextChoices):
    IMMEDIATE = 'Immediate', 'Immediate'
    DAILY = 'Daily', 'Daily'
    WEEKLY = 'Weekly', 'Weekly'


class NotificationPreference(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.OneToOneField('identity.User', on_delete=models.CASCADE, related_name='notification_preference')
    email_enabled = models.BooleanField(default=True)
    # SMS delivery is not offered; kept for clients that read the field
    sms_enabled = models.BooleanField(default=False)
    milestones = models.JSONField(default=default_milestones)
    frequency = models.CharField(
        max_length=20,
        choices=NotificationFrequency.choices,
        default=NotificationFrequency.IMMEDIATE
    )
    is_active = models.BooleanField(default=True)
    unsubscribe_token = models.CharField(max_length=100, unique=True, default=generate_unsubscribe_token)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Notification preferences for {self.user}"


class EmailStatus(models.TextChoices):
    PENDING = 'Pending', 'Pending'
    SENT = 'Sent', 'Sent'
    DELIVERED = 'Delivered', 'Delivered'
    FAILED = 'Failed', 'Failed'


class EmailNotification(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(
        'identity.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='email_notifications'
    )
    order = models.ForeignKey(
        'orders.Order',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='email_notifications'
    )
    template_name = models.CharField(max_length=100)
    subject = models.CharField(max_length=255)
    recipient = models.EmailField()
    status = models.CharField(max_length=20, choices=EmailStatus.choices, default=EmailStatus.PENDING)
    delivery_attempts = models.PositiveIntegerField(default=0)
    last_attempt_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    error_message = models.CharField(max_length=1000, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.template_name} to {self.recipient} ({self.status})"
