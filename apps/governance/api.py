from typing import List, Optional
from uuid import UUID
from datetime import date
from django.shortcuts import get_object_or_404
from ninja import Router

from apps.identity.decorators import has_permission
from apps.identity.permissions import Permissions
from .models import AuditLog, RoleAccessAudit
from .dtos import AuditLogOut, RoleAccessAuditOut

router = Router(tags=["Governance"])

MAX_AUDIT_ROWS = 500


# =============================================================================
# Audit Log Endpoints
# =============================================================================

def _serialize_log(log: AuditLog) -> AuditLogOut:
    """Convert an AuditLog model instance to its output schema."""
    performed_by_name = None
    if log.performed_by is not None:
        performed_by_name = log.performed_by.display_name

    return AuditLogOut(
        id=log.id,
        org_id=log.org_id,
        action=log.action,
        target_type=log.target_type,
        target_id=log.target_id,
        target_label=log.target_label,
        performed_by_name=performed_by_name,
        performed_at=log.performed_at,
        context=log.context,
    )


@router.get("/audit-logs", response=List[AuditLogOut], auth=None)
@has_permission(Permissions.GOVERNANCE_VIEW_AUDIT)
def list_audit_logs(
    request,
    action: Optional[str] = None,
    target_type: Optional[str] = None,
    organization_id: Optional[UUID] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: int = 100,
):
    """
    List audit log entries across organizations. Staff only.
    Supports filtering by action name, target type, organization and date range.
    """
    qs = AuditLog.objects.select_related("performed_by")

    if action:
        qs = qs.filter(action=action)
    if target_type:
        qs = qs.filter(target_type=target_type)
    if organization_id:
        qs = qs.filter(org_id=organization_id)
    if start_date:
        qs = qs.filter(performed_at__date__gte=start_date)
    if end_date:
        qs = qs.filter(performed_at__date__lte=end_date)

    qs = qs[:max(1, min(limit, MAX_AUDIT_ROWS))]

    return [_serialize_log(log) for log in qs]


@router.get("/audit-logs/{log_id}", response=AuditLogOut, auth=None)
@has_permission(Permissions.GOVERNANCE_VIEW_AUDIT)
def get_audit_log(request, log_id: UUID):
    """
    Retrieve a single audit log entry by ID.
    """
    log = get_object_or_404(AuditLog.objects.select_related("performed_by"), id=log_id)
    return _serialize_log(log)


@router.get("/role-access", response=List[RoleAccessAuditOut], auth=None)
@has_permission(Permissions.GOVERNANCE_VIEW_AUDIT)
def list_role_access(
    request,
    user_id: Optional[UUID] = None,
    access_granted: Optional[bool] = None,
    limit: int = 100,
):
    """Authorization decisions, newest first. Staff only."""
    qs = RoleAccessAudit.objects.all()
    if user_id:
        qs = qs.filter(user_id=user_id)
    if access_granted is not None:
        qs = qs.filter(access_granted=access_granted)

    return list(qs[:max(1, min(limit, MAX_AUDIT_ROWS))])
