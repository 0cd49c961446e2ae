from ninja import Schema
from uuid import UUID
from datetime import datetime
from typing import Optional, Any


class AuditLogOut(Schema):
    id: UUID
    org_id: Optional[UUID] = None
    action: str
    target_type: str
    target_id: UUID
    target_label: str
    performed_by_name: Optional[str] = None
    performed_at: datetime
    context: Any


class RoleAccessAuditOut(Schema):
    id: UUID
    user_id: Optional[UUID] = None
    user_role: str
    resource: str
    http_method: str
    access_granted: bool
    organization_id: Optional[UUID] = None
    ip_address: str
    details: str
    timestamp: datetime
