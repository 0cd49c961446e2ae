"""
Identity API endpoints with JWT authentication.

Provides login, registration, password reset, token refresh, and
user management endpoints. Tokens are returned in the body for API
clients and set as httpOnly cookies for the browser portal.
"""
import os
from typing import List
from uuid import UUID

from django.conf import settings
from django.contrib.auth.signals import user_logged_in
from django.http import HttpRequest, HttpResponse
from django.shortcuts import get_object_or_404
from ninja import Router
from ninja.errors import HttpError

from apps.governance.audit_service import log_action, AuditAction
from .models import User
from .dtos import (
    UserDTO, LoginSchema, RegisterSchema, ForgotPasswordSchema, ResetPasswordSchema,
    AuthTokenResponse, UserInfo, MessageResponse, UserRoleUpdate, UserStatusUpdate,
    ProfileUpdate, ValidationErrorResponse, LockedAccountResponse,
)
from .decorators import has_permission
from .permissions import Permissions
from .security import get_client_ip, get_user_agent
from . import services
from .jwt_auth import (
    ACCESS_TOKEN_COOKIE,
    REFRESH_TOKEN_COOKIE,
    ACCESS_TOKEN_EXPIRE_MINUTES,
    create_access_token,
    create_token_pair,
    get_user_id_from_token,
    get_access_token_cookie_settings,
    get_refresh_token_cookie_settings,
)

router = Router(tags=["Auth"])
users_router = Router(tags=["Users"])


# =============================================================================
# Helper Functions
# =============================================================================

def require_auth(request: HttpRequest) -> User:
    """
    Require authentication. Raises 401 if not authenticated.
    """
    if not request.user.is_authenticated:
        raise HttpError(401, "Authentication required")
    return request.user


def is_production() -> bool:
    """Check if running in production (Lambda or DEBUG=False)."""
    return bool(os.getenv('AWS_LAMBDA_FUNCTION_NAME')) or not settings.DEBUG


def _token_response(user: User, status: int = 200) -> HttpResponse:
    """Body carries the bearer token; cookies carry the same pair for the portal."""
    access_token, refresh_token = create_token_pair(user)
    body = AuthTokenResponse(
        access_token=access_token,
        token_type="Bearer",
        expires_in=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user=UserInfo(
            id=user.id,
            email=user.email,
            name=user.name,
            role=user.role,
            organization_id=user.organization_id,
        ),
    )
    response = HttpResponse(body.model_dump_json(), content_type='application/json', status=status)

    prod = is_production()
    response.set_cookie(ACCESS_TOKEN_COOKIE, access_token, **get_access_token_cookie_settings(prod))
    response.set_cookie(REFRESH_TOKEN_COOKIE, refresh_token, **get_refresh_token_cookie_settings(prod))
    return response


# =============================================================================
# Auth Endpoints
# =============================================================================

@router.post("/login", response={200: AuthTokenResponse, 403: LockedAccountResponse}, auth=None)
def login_user(request: HttpRequest, payload: LoginSchema):
    """
    Authenticate by email and password.

    Five failed attempts within 15 minutes lock the account for 15 minutes.
    """
    if not payload.email.strip() or not payload.password.strip():
        raise HttpError(400, "Email and password are required")

    email = payload.email.strip()
    ip_address = get_client_ip(request)
    user_agent = get_user_agent(request)

    user = services.find_user_by_email(email)
    if user is None:
        services.record_login_attempt(email, False, "Unknown email", ip_address, user_agent)
        raise HttpError(401, "Invalid email or password")

    if services.is_account_locked(email):
        remaining = services.get_lockout_remaining_minutes(email)
        locked_until = services.get_lockout_until(email)
        services.record_login_attempt(email, False, "Account locked", ip_address, user_agent)
        return 403, {
            "message": (
                "Account is temporarily locked due to multiple failed login attempts. "
                f"Please try again in {remaining} minutes."
            ),
            "lockout_remaining_minutes": remaining,
            "locked_until": locked_until,
        }

    if not user.check_password(payload.password):
        services.register_failed_password(user, ip_address, user_agent)
        raise HttpError(401, "Invalid email or password")

    if not user.is_active:
        raise HttpError(403, "Account is disabled. Please contact support.")

    services.record_login_attempt(email, True, "Login successful", ip_address, user_agent)
    # Updates last_login and writes the login audit entry
    user_logged_in.send(sender=user.__class__, request=request, user=user)

    return _token_response(user)


@router.post("/register", response={201: AuthTokenResponse, 400: ValidationErrorResponse}, auth=None)
def register(request: HttpRequest, payload: RegisterSchema):
    """
    Self-service registration for client staff.

    Joins an existing organization with the same name and type or creates one.
    """
    try:
        user = services.register_user(payload)
    except services.RegistrationError as e:
        return 400, {"message": "Validation failed", "errors": e.errors}
    except ValueError as e:
        raise HttpError(409, str(e))

    return _token_response(user, status=201)


@router.post("/forgot-password", response=MessageResponse, auth=None)
def forgot_password(request: HttpRequest, payload: ForgotPasswordSchema):
    """Always answers the same way so accounts cannot be enumerated."""
    if not payload.email.strip():
        raise HttpError(400, "Email is required")

    services.request_password_reset(payload.email, request_ip=get_client_ip(request))
    return MessageResponse(message="If the email exists, a password reset link has been sent")


@router.post("/reset-password", response=MessageResponse, auth=None)
def reset_password(request: HttpRequest, payload: ResetPasswordSchema):
    if not payload.token.strip() or not payload.new_password.strip():
        raise HttpError(400, "Token and new password are required")

    try:
        services.reset_password(payload.token.strip(), payload.new_password)
    except LookupError as e:
        raise HttpError(401, str(e))
    except ValueError as e:
        raise HttpError(400, str(e))

    return MessageResponse(message="Password has been reset successfully")


@router.post("/logout", response=MessageResponse, auth=None)
def logout_user(request: HttpRequest):
    """
    Clear authentication cookies.
    """
    response = HttpResponse(
        MessageResponse(message="Logged out").model_dump_json(),
        content_type='application/json'
    )
    response.delete_cookie(ACCESS_TOKEN_COOKIE, path='/')
    response.delete_cookie(REFRESH_TOKEN_COOKIE, path='/')
    return response


@router.post("/refresh", response=AuthTokenResponse, auth=None)
def refresh_token(request: HttpRequest):
    """
    Issue a new access token from the refresh token cookie.
    """
    refresh_token_value = request.COOKIES.get(REFRESH_TOKEN_COOKIE)
    if not refresh_token_value:
        raise HttpError(401, "No refresh token")

    user_id = get_user_id_from_token(refresh_token_value, token_type='refresh')
    if not user_id:
        raise HttpError(401, "Invalid refresh token")

    user = User.objects.filter(id=user_id, is_active=True).first()
    if user is None:
        raise HttpError(401, "User not found or inactive")

    access_token = create_access_token(user)
    response = HttpResponse(
        AuthTokenResponse(
            access_token=access_token,
            expires_in=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            user=UserInfo(
                id=user.id, email=user.email, name=user.name,
                role=user.role, organization_id=user.organization_id,
            ),
        ).model_dump_json(),
        content_type='application/json'
    )
    response.set_cookie(ACCESS_TOKEN_COOKIE, access_token, **get_access_token_cookie_settings(is_production()))
    return response


@router.get("/me", response=UserDTO, auth=None)
def get_me(request: HttpRequest):
    """
    Get current authenticated user's profile.
    """
    user = require_auth(request)
    user_dto = services.get_user_dto(user.id)
    if not user_dto:
        raise HttpError(404, "User not found")
    return user_dto


# =============================================================================
# User Management Endpoints
# =============================================================================

@users_router.get("", response=List[UserDTO], auth=None)
@has_permission(Permissions.IDENTITY_MANAGE_USER)
def list_all_users(request: HttpRequest):
    """All users across organizations. Staff only."""
    return services.list_users()


@users_router.patch("/{user_id}/role", response=UserDTO, auth=None)
@has_permission(Permissions.IDENTITY_MANAGE_USER)
def update_user_role(request: HttpRequest, user_id: UUID, payload: UserRoleUpdate):
    if not payload.role.strip():
        raise HttpError(400, "Role is required")

    target = get_object_or_404(User, id=user_id)
    previous_role = target.role
    try:
        services.change_user_role(target, payload.role, request.user)
    except ValueError as e:
        raise HttpError(400, str(e))

    log_action(
        org_id=target.organization_id,
        action=AuditAction.CHANGE_USER_ROLE,
        target_type="User",
        target_id=target.id,
        target_label=target.email,
        performed_by=request.user,
        context={"previous_role": previous_role, "new_role": target.role, "reason": payload.reason or ""},
    )
    return services.get_user_dto(target.id)


@users_router.patch("/{user_id}/status", response=UserDTO, auth=None)
@has_permission(Permissions.IDENTITY_MANAGE_USER)
def update_user_status(request: HttpRequest, user_id: UUID, payload: UserStatusUpdate):
    target = get_object_or_404(User, id=user_id)
    try:
        services.set_user_status(target, payload.is_active, request.user)
    except ValueError as e:
        raise HttpError(400, str(e))

    log_action(
        org_id=target.organization_id,
        action=AuditAction.ACTIVATE_USER if payload.is_active else AuditAction.DEACTIVATE_USER,
        target_type="User",
        target_id=target.id,
        target_label=target.email,
        performed_by=request.user,
        context={"reason": payload.reason or ""},
    )
    return services.get_user_dto(target.id)


@users_router.get("/organization/{organization_id}", response=List[UserDTO], auth=None)
@has_permission(Permissions.IDENTITY_VIEW_ORG_USERS)
def list_organization_users(request: HttpRequest, organization_id: UUID):
    """Client users may only list their own organization's users."""
    from apps.organizations.models import Organization

    get_object_or_404(Organization, id=organization_id)
    user = request.user
    if not user.is_colorgarb_staff and user.organization_id != organization_id:
        raise HttpError(403, "Permission denied")

    return services.list_users(organization_id=organization_id)


@users_router.put("/profile", response=AuthTokenResponse, auth=None)
def update_my_profile(request: HttpRequest, payload: ProfileUpdate):
    """Update name, email and phone; returns a fresh token reflecting the new claims."""
    user = require_auth(request)
    try:
        services.update_profile(user, payload.dict(exclude_unset=True))
    except ValueError as e:
        raise HttpError(400, str(e))
    return _token_response(user)
