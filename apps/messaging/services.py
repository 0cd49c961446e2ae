"""
Order message threads: search, send, read receipts and edits, plus the
staff inbox that spans every order.
"""
import logging
from datetime import date, datetime, time, timedelta, timezone as dt_timezone
from typing import Dict, Iterable, List, Optional

from django.db import transaction
from django.db.models import Q, QuerySet
from django.utils import timezone

from apps.identity.models import CLIENT_ROLES
from apps.orders.models import Order
from .attachment_service import validate_attachments, store_attachment, discard_files
from .models import Message, MessageAuditTrail, MessageEdit, MessageType, RecipientRole

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 5000
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100


class MessageValidationError(ValueError):
    """Content or attachment problems, keyed by field or file name."""

    def __init__(self, errors: Dict[str, List[str]]):
        self.errors = errors
        super().__init__("Message validation failed")


def can_access_order(user, order: Order) -> bool:
    if user.is_colorgarb_staff:
        return True
    return bool(user.organization_id) and user.organization_id == order.organization_id


def _recipient_roles_for(user) -> List[str]:
    """Recipient values addressed to this user: their role, their audience, or All."""
    roles = [user.role, RecipientRole.ALL]
    if user.role in CLIENT_ROLES:
        roles.append(RecipientRole.CLIENT)
    return roles


def _unread_for(user) -> Q:
    return Q(is_read=False, recipient_role__in=_recipient_roles_for(user)) & ~Q(sender_id=user.id)


def _end_of_day_exclusive(value: date) -> datetime:
    return datetime.combine(value + timedelta(days=1), time.min, tzinfo=dt_timezone.utc)


def _start_of(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=dt_timezone.utc)


def _clamp_page(page: int, page_size: int):
    page = max(1, page)
    if page_size < 1 or page_size > MAX_PAGE_SIZE:
        page_size = DEFAULT_PAGE_SIZE
    return page, page_size


def _paginate(qs: QuerySet, page: int, page_size: int) -> dict:
    total = qs.count()
    offset = (page - 1) * page_size
    return {
        'messages': list(qs[offset:offset + page_size]),
        'total_count': total,
        'page': page,
        'page_size': page_size,
        'has_next_page': page * page_size < total,
    }


def apply_message_filters(
    qs: QuerySet,
    *,
    search_term: Optional[str] = None,
    sender_id=None,
    message_type: Optional[str] = None,
    sender_role: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    include_attachments: Optional[bool] = None,
) -> QuerySet:
    if search_term and search_term.strip():
        term = search_term.strip()
        qs = qs.filter(Q(content__icontains=term) | Q(attachments__original_file_name__icontains=term)).distinct()
    if sender_id:
        qs = qs.filter(sender_id=sender_id)
    if message_type:
        qs = qs.filter(message_type=message_type)
    if sender_role:
        qs = qs.filter(sender_role=sender_role)
    if date_from:
        qs = qs.filter(created_at__gte=_start_of(date_from))
    if date_to:
        qs = qs.filter(created_at__lt=_end_of_day_exclusive(date_to))
    if include_attachments is True:
        qs = qs.filter(attachments__isnull=False).distinct()
    elif include_attachments is False:
        qs = qs.filter(attachments__isnull=True)
    return qs


# =============================================================================
# Per-order thread
# =============================================================================

def unread_count(order: Order, user) -> int:
    return Message.objects.filter(order=order).filter(_unread_for(user)).count()


def search_order_messages(order: Order, user, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE, **filters) -> dict:
    page, page_size = _clamp_page(page, page_size)
    qs = Message.objects.filter(order=order).prefetch_related('attachments')
    qs = apply_message_filters(qs, **filters).order_by('-created_at')
    result = _paginate(qs, page, page_size)
    result['unread_count'] = unread_count(order, user)
    return result


def validate_content(content: Optional[str]) -> Dict[str, List[str]]:
    if not content or not content.strip():
        return {"content": ["Message content is required"]}
    if len(content) > MAX_CONTENT_LENGTH:
        return {"content": [f"Message content cannot exceed {MAX_CONTENT_LENGTH} characters"]}
    return {}


def send_message(
    order: Order,
    user,
    content: str,
    message_type: Optional[str] = None,
    recipient_role: Optional[str] = None,
    reply_to_id=None,
    files: Iterable = (),
    ip_address: str = "",
    user_agent: str = "",
) -> Message:
    """
    Post a message (with attachments) to an order thread.

    Raises:
        MessageValidationError: bad content, type, recipient or attachments
    """
    files = list(files or [])
    errors = validate_content(content)
    errors.update(validate_attachments(files))

    message_type = message_type or MessageType.GENERAL
    if message_type not in MessageType.values:
        errors["message_type"] = [f"Invalid message type: {message_type}"]
    recipient_role = recipient_role or RecipientRole.ALL
    if recipient_role not in RecipientRole.values:
        errors["recipient_role"] = [f"Invalid recipient role: {recipient_role}"]

    reply_to = None
    if reply_to_id:
        reply_to = Message.objects.filter(id=reply_to_id, order=order).first()
        if reply_to is None:
            errors["reply_to_id"] = ["Replied-to message not found on this order"]

    if errors:
        raise MessageValidationError(errors)

    stored_paths = []
    try:
        with transaction.atomic():
            message = Message.objects.create(
                order=order,
                sender=user,
                sender_role=user.role,
                sender_name=user.display_name[:100],
                recipient_role=recipient_role,
                content=content.strip(),
                message_type=message_type,
                reply_to=reply_to,
            )
            for file in files:
                store_attachment(message, file, user, stored_paths)
            MessageAuditTrail.objects.create(
                message=message,
                ip_address=ip_address[:45],
                user_agent=user_agent[:500],
            )
    except Exception:
        discard_files(stored_paths)
        raise

    from apps.communications.services import log_communication
    from apps.communications.models import CommunicationType
    log_communication(
        communication_type=CommunicationType.MESSAGE,
        order=order,
        sender=user,
        recipient=recipient_role,
        subject=f"Message on order {order.order_number}",
        content=message.content,
        delivery_status="Sent",
        external_message_id=f"internal-{message.id}",
        metadata={"message_id": str(message.id), "attachments": len(files)},
    )

    logger.info(f"Message {message.id} sent on order {order.order_number} by {user.id}")
    return message


def mark_read(message: Message, user) -> bool:
    """Mark one message read. Senders never mark their own messages."""
    if message.is_read or message.sender_id == user.id:
        return False
    message.is_read = True
    message.read_at = timezone.now()
    message.save(update_fields=['is_read', 'read_at', 'updated_at'])
    return True


def mark_many_read(qs: QuerySet, message_ids: List, user) -> int:
    return (
        qs.filter(id__in=message_ids, is_read=False)
        .exclude(sender_id=user.id)
        .update(is_read=True, read_at=timezone.now())
    )


def edit_message(message: Message, user, content: str, change_reason: str = "") -> Message:
    """
    Raises:
        PermissionError: the user did not send the message
        MessageValidationError: the new content is invalid
    """
    if message.sender_id != user.id:
        raise PermissionError("Only the sender can edit a message")
    errors = validate_content(content)
    if errors:
        raise MessageValidationError(errors)

    with transaction.atomic():
        trail, _ = MessageAuditTrail.objects.get_or_create(message=message)
        MessageEdit.objects.create(
            audit_trail=trail,
            edited_by=user,
            previous_content=message.content,
            change_reason=(change_reason or "")[:500],
        )
        message.content = content.strip()
        message.save(update_fields=['content', 'updated_at'])
    return message


# =============================================================================
# Staff inbox
# =============================================================================

def admin_search(
    *,
    client_name: Optional[str] = None,
    organization_id=None,
    order_number: Optional[str] = None,
    unread_only: bool = False,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
    **filters,
) -> dict:
    page, page_size = _clamp_page(page, page_size)
    qs = Message.objects.select_related('order__organization').prefetch_related('attachments')
    if client_name and client_name.strip():
        qs = qs.filter(order__organization__name__icontains=client_name.strip())
    if organization_id:
        qs = qs.filter(order__organization_id=organization_id)
    if order_number and order_number.strip():
        qs = qs.filter(order__order_number__icontains=order_number.strip())
    if unread_only:
        qs = qs.filter(is_read=False)
    qs = apply_message_filters(qs, **filters).order_by('-created_at')

    result = _paginate(qs, page, page_size)
    result['unread_count'] = admin_unread_count()
    return result


def admin_unread_count() -> int:
    """Unread messages written by client users."""
    return Message.objects.filter(is_read=False, sender_role__in=CLIENT_ROLES).count()
