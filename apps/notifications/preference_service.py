"""
Per-user notification preferences.
"""
import logging
from typing import Optional

from django.db import transaction

from apps.orders.stages import MANUFACTURING_STAGES
from .models import NotificationPreference, NotificationFrequency

logger = logging.getLogger(__name__)

SHIP_DATE_CHANGE_MILESTONE = "Ship Date Change"
AVAILABLE_MILESTONES = MANUFACTURING_STAGES + [SHIP_DATE_CHANGE_MILESTONE]

UPDATABLE_FIELDS = ('email_enabled', 'milestones', 'frequency', 'is_active')

# Stages that correspond to a configurable milestone
STAGE_MILESTONES = {
    "Measurements": "MeasurementsDue",
    "Proof Approval": "ProofApproval",
    "Production Planning": "ProductionStart",
    "Ship Order": "Shipping",
    "Delivery": "Delivery",
}


def stage_milestone(stage: str) -> Optional[str]:
    return STAGE_MILESTONES.get(stage)


def get_preferences(user) -> Optional[NotificationPreference]:
    return NotificationPreference.objects.filter(user=user).first()


def get_or_create_preferences(user) -> NotificationPreference:
    preference, created = NotificationPreference.objects.get_or_create(user=user)
    if created:
        logger.info(f"Created default notification preferences for user {user.id}")
    return preference


def create_preferences(user, data: dict) -> NotificationPreference:
    """
    Raises:
        ValueError: preferences already exist, or invalid values
    """
    if NotificationPreference.objects.filter(user=user).exists():
        raise ValueError("Notification preferences already exist for this user")
    _validate(data)
    with transaction.atomic():
        preference = NotificationPreference(user=user)
        _apply(preference, data)
        preference.save()
    return preference


def update_preferences(user, data: dict) -> NotificationPreference:
    """
    Raises:
        ValueError: invalid values
    """
    _validate(data)
    preference = get_or_create_preferences(user)
    changed = _apply(preference, data)
    if changed:
        preference.save()
        logger.info(f"Notification preferences for user {user.id} updated: {', '.join(changed)}")
    return preference


def unsubscribe(token: str) -> Optional[NotificationPreference]:
    """Turn email off for whoever owns the token. None when the token is unknown."""
    preference = NotificationPreference.objects.filter(unsubscribe_token=token).select_related('user').first()
    if preference is None:
        return None
    preference.email_enabled = False
    preference.save(update_fields=['email_enabled', 'updated_at'])
    logger.info(f"User {preference.user_id} unsubscribed from email notifications")
    return preference


def wants_email(user, milestone: Optional[str] = None) -> bool:
    """Users without saved preferences get the defaults, which opt in."""
    preference = get_preferences(user)
    if preference is None:
        return True
    if not (preference.is_active and preference.email_enabled):
        return False
    if milestone is None:
        return True
    for entry in preference.milestones or []:
        if entry.get("type") == milestone:
            return bool(entry.get("enabled", True))
    return True


def _validate(data: dict):
    frequency = data.get('frequency')
    if frequency is not None and frequency not in NotificationFrequency.values:
        raise ValueError(f"Invalid frequency: {frequency}")
    milestones = data.get('milestones')
    if milestones is not None:
        if not isinstance(milestones, list) or not all(isinstance(m, dict) and m.get('type') for m in milestones):
            raise ValueError("Milestones must be a list of objects with a type")


def _apply(preference: NotificationPreference, data: dict) -> list:
    changed = []
    for field in UPDATABLE_FIELDS:
        if field in data and data[field] is not None and getattr(preference, field) != data[field]:
            setattr(preference, field, data[field])
            changed.append(field)
    return changed
