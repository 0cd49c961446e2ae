"""Schemas for the Notifications app."""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from ninja import Schema


class Milestone(Schema):
    type: str
    enabled: bool = True
    notifyBefore: int = 0


class PreferenceOut(Schema):
    id: UUID
    user_id: UUID
    email_enabled: bool
    sms_enabled: bool
    milestones: List[Milestone]
    frequency: str
    is_active: bool
    available_milestones: List[str]
    updated_at: datetime

    @staticmethod
    def resolve_available_milestones(obj):
        from .preference_service import AVAILABLE_MILESTONES
        return AVAILABLE_MILESTONES


class PreferenceIn(Schema):
    email_enabled: Optional[bool] = None
    milestones: Optional[List[Milestone]] = None
    frequency: Optional[str] = None
    is_active: Optional[bool] = None


class EmailNotificationOut(Schema):
    id: UUID
    order_id: Optional[UUID] = None
    template_name: str
    subject: str
    recipient: str
    status: str
    delivery_attempts: int
    last_attempt_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    error_message: str
    created_at: datetime


class EmailHistoryPage(Schema):
    items: List[EmailNotificationOut]
    total_count: int
    page: int
    page_size: int


class UnsubscribeOut(Schema):
    message: str
