"""Schemas for the Messaging app."""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from ninja import Schema


class AttachmentOut(Schema):
    id: UUID
    original_file_name: str
    file_size: int
    content_type: str
    uploaded_at: datetime


class MessageOut(Schema):
    id: UUID
    order_id: UUID
    sender_id: Optional[UUID] = None
    sender_name: str
    sender_role: str
    recipient_role: str
    content: str
    message_type: str
    is_read: bool
    read_at: Optional[datetime] = None
    reply_to_id: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime
    attachments: List[AttachmentOut]

    @staticmethod
    def resolve_attachments(obj):
        return list(obj.attachments.all())


class MessagePage(Schema):
    messages: List[MessageOut]
    total_count: int
    page: int
    page_size: int
    has_next_page: bool
    unread_count: int


class AdminMessageOut(MessageOut):
    order_number: str
    order_description: str
    organization_name: str
    content_preview: str
    attachment_count: int
    is_urgent: bool

    @staticmethod
    def resolve_order_number(obj):
        return obj.order.order_number

    @staticmethod
    def resolve_order_description(obj):
        return obj.order.description

    @staticmethod
    def resolve_organization_name(obj):
        return obj.order.organization.name

    @staticmethod
    def resolve_content_preview(obj):
        return obj.content if len(obj.content) <= 100 else obj.content[:100] + "..."

    @staticmethod
    def resolve_attachment_count(obj):
        return len(obj.attachments.all())

    @staticmethod
    def resolve_is_urgent(obj):
        return obj.message_type == "Urgent"


class AdminMessagePage(Schema):
    messages: List[AdminMessageOut]
    total_count: int
    page: int
    page_size: int
    has_next_page: bool
    unread_count: int


class BulkReadIn(Schema):
    message_ids: List[UUID]


class BulkReadOut(Schema):
    marked_as_read_count: int
    total_requested: int


class UnreadCountOut(Schema):
    unread_count: int


class MessageEditIn(Schema):
    content: str
    change_reason: Optional[str] = None


class MessageEditOut(Schema):
    id: UUID
    edited_at: datetime
    edited_by_id: Optional[UUID] = None
    previous_content: str
    change_reason: str
