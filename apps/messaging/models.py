import uuid
from django.db import models


class MessageType(models.TextChoices):
    GENERAL = 'General', 'General'
    QUESTION = 'Question', 'Question'
    UPDATE = 'Update', 'Update'
    URGENT = 'Urgent', 'Urgent'


class RecipientRole(models.TextChoices):
    CLIENT = 'Client', 'Client'
    STAFF = 'ColorGarbStaff', 'ColorGarb Staff'
    ALL = 'All', 'All'


class Message(models.Model):
    """
    A message in an order's conversation thread.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey('orders.Order', on_delete=models.CASCADE, related_name='messages')
    sender = models.ForeignKey(
        'identity.User',
        on_delete=models.SET_NULL,
        null=True,
        related_name='sent_messages'
    )
    # Snapshotted so the thread reads the same after role or name changes
    sender_role = models.CharField(max_length=50)
    sender_name = models.CharField(max_length=100)
    recipient_role = models.CharField(max_length=50, choices=RecipientRole.choices, default=RecipientRole.ALL)
    content = models.TextField(max_length=5000)
    message_type = models.CharField(max_length=20, choices=MessageType.choices, default=MessageType.GENERAL)
    is_read = models.BooleanField(default=False, db_index=True)
    read_at = models.DateTimeField(null=True, blank=True)
    reply_to = models.ForeignKey('self', on_delete=models.SET_NULL, null=True, blank=True, related_name='replies')
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['order', 'created_at']),
        ]

    def __str__(self):
        return f"{self.sender_name} on {self.order_id}: {self.content[:40]}"


class MessageAttachment(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    message = models.ForeignKey(Message, on_delete=models.CASCADE, related_name='attachments')
    file_name = models.CharField(max_length=255)
    original_file_name = models.CharField(max_length=255)
    file_size = models.PositiveIntegerField()
    content_type = models.CharField(max_length=100)
    storage_path = models.CharField(max_length=500)
    file_url = models.CharField(max_length=1000)
    uploaded_by = models.ForeignKey(
        'identity.User',
        on_delete=models.SET_NULL,
        null=True,
        related_name='message_attachments'
    )
    uploaded_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.original_file_name


class MessageAuditTrail(models.Model):
    """
    Where a message was sent from. Edits hang off this record.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    message = models.OneToOneField(Message, on_delete=models.CASCADE, related_name='audit_trail')
    ip_address = models.CharField(max_length=45, blank=True)
    user_agent = models.CharField(max_length=500, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)


class MessageEdit(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    audit_trail = models.ForeignKey(MessageAuditTrail, on_delete=models.CASCADE, related_name='edits')
    edited_at = models.DateTimeField(auto_now_add=True)
    edited_by = models.ForeignKey('identity.User', on_delete=models.SET_NULL, null=True, related_name='message_edits')
    previous_content = models.TextField()
    change_reason = models.CharField(max_length=500, blank=True)

    class Meta:
        ordering = ['-edited_at']
