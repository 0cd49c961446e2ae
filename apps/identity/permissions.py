from typing import List, Dict
from .models import UserRole, User

# Define all available permissions here for reference
class Permissions:
    # Orders
    ORDERS_VIEW = "orders.view"
    ORDERS_CREATE = "orders.create"
    ORDERS_MANAGE = "orders.manage"
    ORDER_REQUESTS_SUBMIT = "orders.submit_request"
    ORDER_REQUESTS_PROCESS = "orders.process_request"

    # Messaging
    MESSAGES_VIEW = "messaging.view"
    MESSAGES_SEND = "messaging.send"
    MESSAGES_ADMIN_INBOX = "messaging.admin_inbox"

    # Identity
    IDENTITY_VIEW_ORG_USERS = "identity.view_org_users"
    IDENTITY_MANAGE_USER = "identity.manage_user"

    # Organizations
    ORGANIZATION_MANAGE = "organization.manage"

    # Notifications
    NOTIFICATIONS_MANAGE_OWN = "notifications.manage_own"
    NOTIFICATIONS_MANAGE_ALL = "notifications.manage_all"

    # Communications / Governance
    COMMUNICATIONS_AUDIT = "communications.audit"
    COMMUNICATIONS_EXPORT = "communications.export"
    GOVERNANCE_VIEW_AUDIT = "governance.view_audit"


_CLIENT_PERMISSIONS = [
    Permissions.ORDERS_VIEW,
    Permissions.ORDERS_CREATE,
    Permissions.ORDER_REQUESTS_SUBMIT,
    Permissions.MESSAGES_VIEW,
    Permissions.MESSAGES_SEND,
    Permissions.IDENTITY_VIEW_ORG_USERS,
    Permissions.NOTIFICATIONS_MANAGE_OWN,
    # Scoped to their own organization at the service level
    Permissions.COMMUNICATIONS_AUDIT,
]


# Static Role -> Permission Mapping
ROLE_PERMISSIONS: Dict[str, List[str]] = {
    UserRole.DIRECTOR: list(_CLIENT_PERMISSIONS),
    UserRole.FINANCE: list(_CLIENT_PERMISSIONS),
    UserRole.STAFF: [
        # Orders - Full cross-organization access
        Permissions.ORDERS_VIEW,
        Permissions.ORDERS_MANAGE,
        Permissions.ORDER_REQUESTS_PROCESS,
        # Messaging
        Permissions.MESSAGES_VIEW,
        Permissions.MESSAGES_SEND,
        Permissions.MESSAGES_ADMIN_INBOX,
        # Identity
        Permissions.IDENTITY_VIEW_ORG_USERS,
        Permissions.IDENTITY_MANAGE_USER,
        # Organizations
        Permissions.ORGANIZATION_MANAGE,
        # Notifications
        Permissions.NOTIFICATIONS_MANAGE_OWN,
        Permissions.NOTIFICATIONS_MANAGE_ALL,
        # Communications / Governance
        Permissions.COMMUNICATIONS_AUDIT,
        Permissions.COMMUNICATIONS_EXPORT,
        Permissions.GOVERNANCE_VIEW_AUDIT,
    ],
}

def get_user_permissions(user: User) -> List[str]:
    """
    Returns a list of permission strings for the given user based on their role.
    """
    if not user or not user.is_active:
        return []

    return ROLE_PERMISSIONS.get(user.role, [])
