"""
Centralized audit logging service.

Use log_action() to record any critical mutation and record_role_access()
to record an authorization decision. Both are fire-and-forget: they never
raise, so a logging failure will never break the calling request.

Usage:
    from apps.governance.audit_service import log_action, AuditAction

    log_action(
        org_id=order.organization_id,
        action=AuditAction.UPDATE_ORDER_STAGE,
        target_type="Order",
        target_id=order.id,
        target_label=order.order_number,
        performed_by=request.user,
        context={"previous_stage": "Cutting", "new_stage": "Sewing"},
    )
"""
import logging
from uuid import UUID
from typing import Optional

from django.db import transaction

from .models import AuditLog, RoleAccessAudit

logger = logging.getLogger(__name__)


class AuditAction:
    """
    Canonical string constants for audit log actions.
    Prevents scattered string literals and typos across apps.
    """
    # ── Identity ──────────────────────────────────────────────────────
    USER_LOGIN = "USER_LOGIN"
    CHANGE_USER_ROLE = "CHANGE_USER_ROLE"
    ACTIVATE_USER = "ACTIVATE_USER"
    DEACTIVATE_USER = "DEACTIVATE_USER"

    # ── Organizations ─────────────────────────────────────────────────
    CREATE_ORGANIZATION = "CREATE_ORGANIZATION"
    UPDATE_ORGANIZATION = "UPDATE_ORGANIZATION"
    DEACTIVATE_ORGANIZATION = "DEACTIVATE_ORGANIZATION"
    IMPORT_ORGANIZATIONS = "IMPORT_ORGANIZATIONS"

    # ── Orders ────────────────────────────────────────────────────────
    CREATE_ORDER = "CREATE_ORDER"
    UPDATE_ORDER_STAGE = "UPDATE_ORDER_STAGE"
    UPDATE_SHIP_DATE = "UPDATE_SHIP_DATE"
    BULK_UPDATE_ORDERS = "BULK_UPDATE_ORDERS"
    SUBMIT_ORDER_REQUEST = "SUBMIT_ORDER_REQUEST"
    APPROVE_ORDER_REQUEST = "APPROVE_ORDER_REQUEST"
    REJECT_ORDER_REQUEST = "REJECT_ORDER_REQUEST"

    # ── Messaging / Communications ────────────────────────────────────
    EDIT_MESSAGE = "EDIT_MESSAGE"
    EXPORT_COMMUNICATIONS = "EXPORT_COMMUNICATIONS"


def log_action(
    *,
    action: str,
    target_type: str,
    target_id: UUID,
    performed_by,
    org_id: Optional[UUID] = None,
    target_label: str = "",
    context: Optional[dict] = None,
) -> Optional[AuditLog]:
    """
    Create an AuditLog entry for a critical action.

    Never raises. Failures are logged and swallowed so audit logging
    never degrades the user-facing request.

    Args:
        action:        Action constant from AuditAction (e.g. "CREATE_ORDER").
        target_type:   Human-readable type of the object acted on (e.g. "Order").
        target_id:     Primary key of the object acted on.
        performed_by:  Django User instance or None.
        org_id:        Organisation UUID for multi-tenant isolation.
        target_label:  Optional human-readable description of the object.
        context:       Optional dict of additional metadata to store as JSON.

    Returns:
        The created AuditLog instance, or None if creation failed.
    """
    try:
        with transaction.atomic():
            return AuditLog.objects.create(
                org_id=org_id,
                action=action,
                target_type=target_type,
                target_id=target_id,
                target_label=target_label[:255],
                performed_by=performed_by,
                context=context or {},
            )
    except Exception:
        logger.exception(f"Failed to write audit log {action} for {target_type} {target_id}")
        return None


def record_role_access(
    request,
    *,
    resource: str,
    access_granted: bool,
    details: str = "",
    organization_id: Optional[UUID] = None,
) -> Optional[RoleAccessAudit]:
    """
    Record an authorization decision for the requesting user.

    Never raises; returns None when nothing could be recorded.
    """
    from apps.identity.security import get_client_ip, get_user_agent

    user = getattr(request, 'user', None)
    if user is None or not user.is_authenticated:
        return None

    session = getattr(request, 'session', None)
    try:
        with transaction.atomic():
            return RoleAccessAudit.objects.create(
                user=user,
                user_role=user.role,
                resource=resource[:200],
                http_method=request.method,
                access_granted=access_granted,
                organization_id=organization_id or user.organization_id,
                ip_address=get_client_ip(request),
                user_agent=get_user_agent(request),
                details=details[:1000],
                session_id=(session.session_key or "") if session is not None else "",
            )
    except Exception:
        logger.exception(f"Failed to record role access for {resource}")
        return None
