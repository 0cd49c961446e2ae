from uuid import UUID
from ninja import Router
from ninja.errors import HttpError
from django.http import HttpRequest
from django.shortcuts import get_object_or_404

from apps.identity.decorators import has_permission
from apps.identity.models import User
from apps.identity.permissions import Permissions, get_user_permissions
from .dtos import PreferenceOut, PreferenceIn, EmailHistoryPage, UnsubscribeOut
from .models import EmailNotification
from . import preference_service

router = Router(tags=["Notifications"])

MAX_PAGE_SIZE = 100


def _target_user(request, user_id: UUID) -> User:
    """Users manage their own preferences; staff may manage anyone's."""
    if user_id == request.user.id:
        return request.user
    if Permissions.NOTIFICATIONS_MANAGE_ALL not in get_user_permissions(request.user):
        raise HttpError(403, "Access denied")
    return get_object_or_404(User, id=user_id)


def _preference_data(payload: PreferenceIn) -> dict:
    data = payload.dict(exclude_unset=True)
    if payload.milestones is not None:
        data['milestones'] = [m.dict() for m in payload.milestones]
    return data


@router.get("/preferences/{user_id}", response=PreferenceOut, auth=None)
@has_permission(Permissions.NOTIFICATIONS_MANAGE_OWN)
def get_preferences(request: HttpRequest, user_id: UUID):
    """Defaults are created on first read."""
    return preference_service.get_or_create_preferences(_target_user(request, user_id))


@router.post("/preferences/{user_id}", response={201: PreferenceOut}, auth=None)
@has_permission(Permissions.NOTIFICATIONS_MANAGE_OWN)
def create_preferences(request: HttpRequest, user_id: UUID, payload: PreferenceIn):
    user = _target_user(request, user_id)
    try:
        preference = preference_service.create_preferences(user, _preference_data(payload))
    except ValueError as e:
        raise HttpError(400, str(e))
    return 201, preference


@router.put("/preferences/{user_id}", response=PreferenceOut, auth=None)
@has_permission(Permissions.NOTIFICATIONS_MANAGE_OWN)
def update_preferences(request: HttpRequest, user_id: UUID, payload: PreferenceIn):
    user = _target_user(request, user_id)
    try:
        return preference_service.update_preferences(user, _preference_data(payload))
    except ValueError as e:
        raise HttpError(400, str(e))


@router.get("/email-history/{user_id}", response=EmailHistoryPage, auth=None)
@has_permission(Permissions.NOTIFICATIONS_MANAGE_OWN)
def email_history(request: HttpRequest, user_id: UUID, page: int = 1, page_size: int = 20):
    user = _target_user(request, user_id)
    if page < 1:
        raise HttpError(400, "page must be at least 1")
    if not 1 <= page_size <= MAX_PAGE_SIZE:
        raise HttpError(400, f"page_size must be between 1 and {MAX_PAGE_SIZE}")

    qs = EmailNotification.objects.filter(user=user)
    offset = (page - 1) * page_size
    return {
        "items": list(qs[offset:offset + page_size]),
        "total_count": qs.count(),
        "page": page,
        "page_size": page_size,
    }


@router.get("/unsubscribe/{token}", response=UnsubscribeOut, auth=None)
def unsubscribe(request: HttpRequest, token: str):
    """Public one-click unsubscribe link from emails."""
    if preference_service.unsubscribe(token) is None:
        raise HttpError(404, "Unsubscribe link is invalid or has expired")
    return {"message": "You have been unsubscribed from email notifications"}
