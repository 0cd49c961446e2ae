import uuid
from django.db import models


class AuditLog(models.Model):
    """
    Simple audit trail for critical actions like stage changes and role changes.
    Keeps a record of who did what and when.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    # Null for platform-level actions by staff that no tenant owns
    org_id = models.UUIDField(null=True, blank=True, db_index=True)

    action = models.CharField(max_length=50, help_text="Action performed (e.g., UPDATE_ORDER_STAGE)")
    target_type = models.CharField(max_length=50, help_text="Type of object acted on (e.g., Order)")
    target_id = models.UUIDField(help_text="ID of the object acted on")
    target_label = models.CharField(max_length=255, blank=True, help_text="Human-readable label of the object")

    # Metadata
    performed_by = models.ForeignKey(
        'identity.User',
        on_delete=models.SET_NULL,
        null=True,
        related_name='audit_logs'
    )
    performed_at = models.DateTimeField(auto_now_add=True)
    context = models.JSONField(default=dict, blank=True, help_text="Additional context/metadata")

    class Meta:
        ordering = ['-performed_at']
        verbose_name = "Audit Log"
        verbose_name_plural = "Audit Logs"

    def __str__(self):
        return f"{self.action} on {self.target_type} by {self.performed_by}"


class RoleAccessAudit(models.Model):
    """
    Authorization decisions on protected resources, granted or denied.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(
        'identity.User',
        on_delete=models.SET_NULL,
        null=True,
        related_name='role_access_audits'
    )
    user_role = models.CharField(max_length=20)
    resource = models.CharField(max_length=200)
    http_method = models.CharField(max_length=10)
    access_granted = models.BooleanField()
    organization_id = models.UUIDField(null=True, blank=True, db_index=True)
    ip_address = models.CharField(max_length=45, blank=True)
    user_agent = models.CharField(max_length=500, blank=True)
    details = models.CharField(max_length=1000, blank=True)
    session_id = models.CharField(max_length=100, blank=True)
    timestamp = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ['-timestamp']
        verbose_name = "Role Access Audit"
        verbose_name_plural = "Role Access Audits"

    def __str__(self):
        outcome = "granted" if self.access_granted else "denied"
        return f"{self.http_method} {self.resource} {outcome} for {self.user_role}"
