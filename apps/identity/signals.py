from django.contrib.auth.signals import user_logged_in
from django.dispatch import receiver

from apps.governance.audit_service import log_action, AuditAction
from .security import get_client_ip, get_user_agent


@receiver(user_logged_in)
def log_user_login(sender, user, request, **kwargs):
    """
    Log user login events to the global Audit Log.
    """
    if not user:
        return

    log_action(
        org_id=getattr(user, 'organization_id', None),
        action=AuditAction.USER_LOGIN,
        target_type="User",
        target_id=user.id,
        target_label=str(user),
        performed_by=user,
        context={
            "ip": get_client_ip(request) or "Unknown",
            "user_agent": get_user_agent(request),
            "method": "Signal",
        },
    )
