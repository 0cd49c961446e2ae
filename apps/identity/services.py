"""Services for Identity app."""
import logging
import math
import re
from datetime import datetime, timedelta
from typing import List, Optional

from django.db import transaction
from django.utils import timezone

from .models import User, UserRole, CLIENT_ROLES, LoginAttempt, PasswordResetToken
from .dtos import UserDTO, RegisterSchema
from .permissions import get_user_permissions
from .security import generate_secure_token, hash_token

logger = logging.getLogger(__name__)

MAX_FAILED_ATTEMPTS = 5
LOCKOUT_DURATION_MINUTES = 15
LOGIN_ATTEMPT_RETENTION_HOURS = 24
PASSWORD_RESET_EXPIRY_HOURS = 1
MIN_PASSWORD_LENGTH = 8

EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')

# Organization type -> role granted at self-registration
DEFAULT_ROLE_BY_ORG_TYPE = {
    'school': UserRole.DIRECTOR,
    'theater': UserRole.DIRECTOR,
    'dance_company': UserRole.DIRECTOR,
    'other': UserRole.FINANCE,
}


class RegistrationError(ValueError):
    """Raised when a registration request fails validation."""

    def __init__(self, errors: List[str]):
        super().__init__("Validation failed")
        self.errors = errors


def get_user_dto(user_id) -> UserDTO | None:
    try:
        user = User.objects.select_related('organization').get(id=user_id)
    except User.DoesNotExist:
        return None
    return UserDTO(
        id=user.id,
        email=user.email,
        name=user.name,
        role=user.role,
        organization_id=user.organization_id,
        organization_name=user.organization.name if user.organization else None,
        phone=user.phone,
        is_active=user.is_active,
        last_login=user.last_login,
        permissions=get_user_permissions(user),
    )


def find_user_by_email(email: str) -> Optional[User]:
    return (
        User.objects.select_related('organization')
        .filter(email__iexact=email.strip())
        .first()
    )


def list_users(organization_id=None) -> list[UserDTO]:
    users = User.objects.all()
    if organization_id:
        users = users.filter(organization_id=organization_id)
    return [get_user_dto(u.id) for u in users]


# =============================================================================
# Login attempts & lockout
# =============================================================================

def _recent_failures(email: str):
    cutoff = timezone.now() - timedelta(minutes=LOCKOUT_DURATION_MINUTES)
    return LoginAttempt.objects.filter(
        email__iexact=email,
        is_successful=False,
        attempted_at__gt=cutoff,
    )


def is_account_locked(email: str) -> bool:
    return _recent_failures(email).count() >= MAX_FAILED_ATTEMPTS


def get_lockout_until(email: str) -> Optional[datetime]:
    """When the newest recent failure stops counting, or None without failures."""
    latest = _recent_failures(email).order_by('-attempted_at').first()
    if latest is None:
        return None
    return latest.attempted_at + timedelta(minutes=LOCKOUT_DURATION_MINUTES)


def get_lockout_remaining_minutes(email: str) -> int:
    unlock_at = get_lockout_until(email)
    if unlock_at is None:
        return 0
    remaining = (unlock_at - timezone.now()).total_seconds() / 60
    return max(0, math.ceil(remaining))


def record_login_attempt(email: str, is_successful: bool, details: str = "",
                         ip_address: str = "", user_agent: str = "") -> LoginAttempt:
    return LoginAttempt.objects.create(
        email=email,
        is_successful=is_successful,
        details=details,
        ip_address=ip_address,
        user_agent=user_agent,
    )


def register_failed_password(user: User, ip_address: str = "", user_agent: str = "") -> None:
    """
    Record a wrong password and notify the user when this attempt locks the account.
    """
    record_login_attempt(user.email, False, "Invalid password", ip_address, user_agent)
    if _recent_failures(user.email).count() == MAX_FAILED_ATTEMPTS:
        from apps.notifications.email_service import send_account_lockout_email
        unlock_at = timezone.now() + timedelta(minutes=LOCKOUT_DURATION_MINUTES)
        logger.warning(f"Account {user.id} locked after {MAX_FAILED_ATTEMPTS} failed attempts")
        send_account_lockout_email(user, unlock_at)


def cleanup_login_attempts() -> int:
    """Purge stale login attempts and dead reset tokens. Returns rows deleted."""
    now = timezone.now()
    attempts, _ = LoginAttempt.objects.filter(
        attempted_at__lt=now - timedelta(hours=LOGIN_ATTEMPT_RETENTION_HOURS)
    ).delete()
    tokens, _ = PasswordResetToken.objects.filter(expires_at__lt=now).delete()
    used, _ = PasswordResetToken.objects.filter(used_at__isnull=False).delete()
    logger.info(f"Cleaned up {attempts} login attempts and {tokens + used} reset tokens")
    return attempts + tokens + used


# =============================================================================
# Registration
# =============================================================================

def validate_registration(payload: RegisterSchema) -> List[str]:
    from apps.organizations.models import OrganizationType

    errors = []
    if not payload.name.strip():
        errors.append("Name is required")

    if not payload.email.strip():
        errors.append("Email is required")
    elif not EMAIL_PATTERN.match(payload.email.strip()):
        errors.append("Email format is invalid")

    if not payload.password.strip():
        errors.append("Password is required")
    elif len(payload.password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")

    if not payload.organization_name.strip():
        errors.append("Organization name is required")

    if not payload.organization_type.strip():
        errors.append("Organization type is required")
    elif payload.organization_type.strip().lower() not in OrganizationType.values:
        errors.append("Invalid organization type. Allowed values: school, theater, dance_company, other")

    return errors


def determine_default_role(organization_type: str, requested_role: Optional[str] = None) -> str:
    """
    Role for a self-registered user. Clients may ask for Director or Finance;
    staff roles are only ever granted by existing staff.
    """
    if requested_role:
        for role in CLIENT_ROLES:
            if role.value.lower() == requested_role.strip().lower():
                return role
    return DEFAULT_ROLE_BY_ORG_TYPE.get(organization_type.lower(), UserRole.FINANCE)


def register_user(payload: RegisterSchema) -> User:
    """
    Create a client user, joining an existing organization with the same
    name and type or creating a new one.

    Raises:
        RegistrationError: validation failed
        ValueError: email already registered
    """
    from apps.organizations.services import find_or_create_organization

    errors = validate_registration(payload)
    if errors:
        raise RegistrationError(errors)

    email = payload.email.strip()
    if find_user_by_email(email):
        raise ValueError("Email address is already registered")

    with transaction.atomic():
        organization = find_or_create_organization(
            name=payload.organization_name,
            org_type=payload.organization_type,
            contact_email=email,
            contact_phone=payload.organization_phone,
            address=payload.organization_address,
        )
        user = User.objects.create_user(
            email=email,
            password=payload.password,
            name=payload.name.strip(),
            role=determine_default_role(organization.org_type, payload.requested_role),
            organization=organization,
            is_active=True,
        )

    logger.info(f"New user registered: {user.id} with role {user.role} for organization {organization.id}")
    return user


# =============================================================================
# Password reset
# =============================================================================

def request_password_reset(email: str, request_ip: str = "") -> bool:
    """
    Issue a reset token and email it. Returns False when no active user matches,
    which callers must not reveal.
    """
    user = find_user_by_email(email)
    if not user or not user.is_active:
        return False

    raw_token = generate_secure_token()
    PasswordResetToken.objects.create(
        user=user,
        token_hash=hash_token(raw_token),
        expires_at=timezone.now() + timedelta(hours=PASSWORD_RESET_EXPIRY_HOURS),
        request_ip=request_ip,
    )

    from apps.notifications.email_service import send_password_reset_email
    send_password_reset_email(user, raw_token)
    logger.info(f"Password reset requested for user: {user.id}")
    return True


def reset_password(raw_token: str, new_password: str) -> User:
    """
    Raises:
        ValueError: password too short
        LookupError: token unknown, used or expired
    """
    if len(new_password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")

    reset_token = (
        PasswordResetToken.objects.select_related('user')
        .filter(
            token_hash=hash_token(raw_token),
            used_at__isnull=True,
            expires_at__gt=timezone.now(),
        )
        .first()
    )
    if reset_token is None:
        raise LookupError("Invalid or expired reset token")

    with transaction.atomic():
        user = reset_token.user
        user.set_password(new_password)
        user.save(update_fields=['password', 'updated_at'])
        reset_token.used_at = timezone.now()
        reset_token.save(update_fields=['used_at'])

    logger.info(f"Password successfully reset for user: {user.id}")
    return user


# =============================================================================
# User management
# =============================================================================

def change_user_role(target: User, new_role: str, acting_user: User) -> User:
    """
    Raises:
        ValueError: unknown role or self-modification
    """
    matched = next((r for r in UserRole if r.value.lower() == (new_role or '').strip().lower()), None)
    if matched is None:
        raise ValueError("Invalid role specified")
    if target.id == acting_user.id:
        raise ValueError("Cannot modify your own role")

    previous_role = target.role
    target.role = matched
    if matched == UserRole.STAFF:
        target.organization = None
    target.save()
    logger.info(f"User {target.id} role changed from {previous_role} to {matched} by {acting_user.id}")
    return target


def set_user_status(target: User, is_active: bool, acting_user: User) -> User:
    if target.id == acting_user.id:
        raise ValueError("Cannot modify your own account status")
    target.is_active = is_active
    target.save()
    logger.info(f"User {target.id} {'activated' if is_active else 'deactivated'} by {acting_user.id}")
    return target


def update_profile(user: User, data: dict) -> User:
    """
    Raises:
        ValueError: email invalid or already used by another account
    """
    email = data.get('email')
    if email is not None:
        email = email.strip()
        if not EMAIL_PATTERN.match(email):
            raise ValueError("Email format is invalid")
        if User.objects.filter(email__iexact=email).exclude(id=user.id).exists():
            raise ValueError("Email address is already in use")
        user.email = email
        user.username = email

    if data.get('name') is not None:
        user.name = data['name'].strip()
    if data.get('phone') is not None:
        user.phone = data['phone'].strip()

    user.save()
    return user
