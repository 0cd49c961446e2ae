from datetime import date
from typing import List, Optional
from uuid import UUID
from ninja import Router, File, Form
from ninja.errors import HttpError
from ninja.files import UploadedFile
from django.http import HttpRequest, FileResponse

from apps.identity.decorators import has_permission
from apps.identity.permissions import Permissions
from apps.identity.security import get_client_ip, get_user_agent
from apps.governance.audit_service import log_action, AuditAction
from apps.orders.services import get_order_for_user
from .models import Message, MessageAttachment, MessageEdit
from .dtos import (
    MessageOut, MessagePage, AdminMessagePage, BulkReadIn, BulkReadOut, UnreadCountOut,
    MessageEditIn, MessageEditOut,
)
from .attachment_service import open_attachment
from . import services

router = Router(tags=["Messages"])
admin_router = Router(tags=["Admin Messages"])


def _order_or_404(request, order_id):
    order = get_order_for_user(request.user, order_id)
    if order is None:
        raise HttpError(404, "Order not found")
    return order


def _message_or_404(order, message_id) -> Message:
    message = Message.objects.filter(id=message_id, order=order).prefetch_related('attachments').first()
    if message is None:
        raise HttpError(404, "Message not found")
    return message


@router.get("/{order_id}/messages", response=MessagePage, auth=None)
@has_permission(Permissions.MESSAGES_VIEW)
def list_messages(
    request: HttpRequest,
    order_id: UUID,
    search_term: Optional[str] = None,
    sender_id: Optional[UUID] = None,
    message_type: Optional[str] = None,
    sender_role: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    include_attachments: Optional[bool] = None,
    page: int = 1,
    page_size: int = services.DEFAULT_PAGE_SIZE,
):
    """Newest first, with the caller's unread count for this order."""
    order = _order_or_404(request, order_id)
    return services.search_order_messages(
        order,
        request.user,
        page=page,
        page_size=page_size,
        search_term=search_term,
        sender_id=sender_id,
        message_type=message_type,
        sender_role=sender_role,
        date_from=date_from,
        date_to=date_to,
        include_attachments=include_attachments,
    )


@router.post("/{order_id}/messages", response={201: MessageOut, 400: dict}, auth=None)
@has_permission(Permissions.MESSAGES_SEND)
def send_message(
    request: HttpRequest,
    order_id: UUID,
    content: str = Form(...),
    message_type: Optional[str] = Form(None),
    recipient_role: Optional[str] = Form(None),
    reply_to_id: Optional[UUID] = Form(None),
    files: Optional[List[UploadedFile]] = File(None),
):
    order = _order_or_404(request, order_id)
    try:
        message = services.send_message(
            order,
            request.user,
            content,
            message_type=message_type,
            recipient_role=recipient_role,
            reply_to_id=reply_to_id,
            files=files or [],
            ip_address=get_client_ip(request),
            user_agent=get_user_agent(request),
        )
    except services.MessageValidationError as e:
        return 400, {"message": str(e), "errors": e.errors}
    return 201, message


@router.put("/{order_id}/messages/mark-read", response=BulkReadOut, auth=None)
@has_permission(Permissions.MESSAGES_VIEW)
def mark_messages_read(request: HttpRequest, order_id: UUID, payload: BulkReadIn):
    order = _order_or_404(request, order_id)
    if not payload.message_ids:
        raise HttpError(400, "At least one message ID is required")
    marked = services.mark_many_read(Message.objects.filter(order=order), payload.message_ids, request.user)
    return {"marked_as_read_count": marked, "total_requested": len(payload.message_ids)}


@router.get("/{order_id}/messages/{message_id}", response=MessageOut, auth=None)
@has_permission(Permissions.MESSAGES_VIEW)
def get_message(request: HttpRequest, order_id: UUID, message_id: UUID):
    order = _order_or_404(request, order_id)
    return _message_or_404(order, message_id)


@router.put("/{order_id}/messages/{message_id}/read", response={204: None}, auth=None)
@has_permission(Permissions.MESSAGES_VIEW)
def mark_message_read(request: HttpRequest, order_id: UUID, message_id: UUID):
    order = _order_or_404(request, order_id)
    services.mark_read(_message_or_404(order, message_id), request.user)
    return 204, None


@router.put("/{order_id}/messages/{message_id}", response={200: MessageOut, 400: dict}, auth=None)
@has_permission(Permissions.MESSAGES_SEND)
def edit_message(request: HttpRequest, order_id: UUID, message_id: UUID, payload: MessageEditIn):
    """Senders may correct their own messages; the previous text is kept."""
    order = _order_or_404(request, order_id)
    message = _message_or_404(order, message_id)
    try:
        services.edit_message(message, request.user, payload.content, payload.change_reason or "")
    except PermissionError as e:
        raise HttpError(403, str(e))
    except services.MessageValidationError as e:
        return 400, {"message": str(e), "errors": e.errors}

    log_action(
        org_id=order.organization_id,
        action=AuditAction.EDIT_MESSAGE,
        target_type="Message",
        target_id=message.id,
        target_label=order.order_number,
        performed_by=request.user,
        context={"reason": payload.change_reason or ""},
    )
    return 200, message


@router.get("/{order_id}/messages/{message_id}/edits", response=List[MessageEditOut], auth=None)
@has_permission(Permissions.MESSAGES_VIEW)
def list_message_edits(request: HttpRequest, order_id: UUID, message_id: UUID):
    order = _order_or_404(request, order_id)
    message = _message_or_404(order, message_id)
    return list(MessageEdit.objects.filter(audit_trail__message=message))


@router.get("/{order_id}/messages/{message_id}/attachments/{attachment_id}/download", auth=None)
@has_permission(Permissions.MESSAGES_VIEW)
def download_attachment(request: HttpRequest, order_id: UUID, message_id: UUID, attachment_id: UUID):
    order = _order_or_404(request, order_id)
    attachment = MessageAttachment.objects.filter(
        id=attachment_id, message_id=message_id, message__order=order
    ).first()
    if attachment is None:
        raise HttpError(404, "Attachment not found")
    return FileResponse(
        open_attachment(attachment),
        as_attachment=True,
        filename=attachment.original_file_name,
        content_type=attachment.content_type,
    )


# =============================================================================
# Staff inbox
# =============================================================================

@admin_router.get("", response=AdminMessagePage, auth=None)
@has_permission(Permissions.MESSAGES_ADMIN_INBOX)
def admin_list_messages(
    request: HttpRequest,
    search_term: Optional[str] = None,
    client_name: Optional[str] = None,
    organization_id: Optional[UUID] = None,
    order_number: Optional[str] = None,
    sender_id: Optional[UUID] = None,
    message_type: Optional[str] = None,
    sender_role: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    include_attachments: Optional[bool] = None,
    unread_only: bool = False,
    page: int = 1,
    page_size: int = services.DEFAULT_PAGE_SIZE,
):
    return services.admin_search(
        client_name=client_name,
        organization_id=organization_id,
        order_number=order_number,
        unread_only=unread_only,
        page=page,
        page_size=page_size,
        search_term=search_term,
        sender_id=sender_id,
        message_type=message_type,
        sender_role=sender_role,
        date_from=date_from,
        date_to=date_to,
        include_attachments=include_attachments,
    )


@admin_router.get("/unread-count", response=UnreadCountOut, auth=None)
@has_permission(Permissions.MESSAGES_ADMIN_INBOX)
def admin_unread_count(request: HttpRequest):
    return {"unread_count": services.admin_unread_count()}


@admin_router.put("/mark-read", response=BulkReadOut, auth=None)
@has_permission(Permissions.MESSAGES_ADMIN_INBOX)
def admin_mark_read(request: HttpRequest, payload: BulkReadIn):
    if not payload.message_ids:
        raise HttpError(400, "At least one message ID is required")
    marked = services.mark_many_read(Message.objects.all(), payload.message_ids, request.user)
    return {"marked_as_read_count": marked, "total_requested": len(payload.message_ids)}
