"""Schemas for the Communications app."""
from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from ninja import Schema


class CommunicationSearchIn(Schema):
    organization_id: Optional[UUID] = None
    order_id: Optional[UUID] = None
    communication_types: List[str] = []
    delivery_statuses: List[str] = []
    sender_id: Optional[UUID] = None
    recipient: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    search_term: Optional[str] = None
    page: int = 1
    page_size: int = 20
    sort_by: str = "sentAt"
    sort_direction: str = "desc"


class CommunicationLogOut(Schema):
    id: UUID
    order_id: Optional[UUID] = None
    order_number: Optional[str] = None
    communication_type: str
    sender_id: Optional[UUID] = None
    recipient: str
    recipient_email: str
    recipient_phone: str
    subject: str
    content: str
    template_used: str
    delivery_status: str
    external_message_id: str
    sent_at: datetime
    delivered_at: Optional[datetime] = None
    read_at: Optional[datetime] = None
    failure_reason: str
    metadata: dict

    @staticmethod
    def resolve_order_number(obj):
        return obj.order.order_number if obj.order_id else None


class CommunicationSearchOut(Schema):
    logs: List[CommunicationLogOut]
    total_count: int
    page: int
    page_size: int
    has_next_page: bool
    status_summary: Dict[str, int]


class DeliverySummaryOut(Schema):
    organization_id: UUID
    date_from: datetime
    date_to: datetime
    total: int
    status_counts: Dict[str, int]
    type_counts: Dict[str, int]


class DeliveryLogOut(Schema):
    id: UUID
    delivery_provider: str
    external_id: str
    status: str
    status_details: str
    updated_at: datetime
