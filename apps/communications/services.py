"""
Communication audit trail: recording outbound communications, applying
provider delivery updates, and searching/exporting the history.
"""
import csv
import io
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from django.db import transaction
from django.db.models import Count, Q, QuerySet
from django.utils import timezone

from .dtos import CommunicationSearchIn
from .models import CommunicationLog, CommunicationType, DeliveryStatus, NotificationDeliveryLog

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
MAX_RANGE_DAYS = 365

SORT_FIELDS = {
    "sentAt": "sent_at",
    "deliveredAt": "delivered_at",
    "readAt": "read_at",
    "createdAt": "created_at",
}

EXPORT_COLUMNS = [
    'id', 'order_number', 'communication_type', 'sender', 'recipient', 'recipient_email',
    'recipient_phone', 'subject', 'template_used', 'delivery_status', 'external_message_id',
    'sent_at', 'delivered_at', 'read_at', 'failure_reason',
]


def log_communication(
    *,
    communication_type: str,
    order=None,
    sender=None,
    recipient: str = "",
    recipient_email: str = "",
    recipient_phone: str = "",
    subject: str = "",
    content: str = "",
    template_used: str = "",
    delivery_status: str = DeliveryStatus.SENT,
    external_message_id: str = "",
    failure_reason: str = "",
    metadata: Optional[dict] = None,
) -> Optional[CommunicationLog]:
    """
    Record an outbound communication. Never raises; the send it describes
    has already happened.
    """
    try:
        with transaction.atomic():
            return CommunicationLog.objects.create(
                order=order,
                communication_type=communication_type,
                sender=sender,
                recipient=recipient[:255],
                recipient_email=recipient_email,
                recipient_phone=recipient_phone[:30],
                subject=subject[:255],
                content=content,
                template_used=template_used[:100],
                delivery_status=delivery_status,
                external_message_id=external_message_id[:255],
                sent_at=timezone.now(),
                failure_reason=failure_reason[:1000],
                metadata=metadata or {},
            )
    except Exception:
        logger.exception(f"Failed to log {communication_type} communication to {recipient_email or recipient}")
        return None


def infer_provider(external_id: str) -> str:
    if external_id.startswith(("sendgrid-", "sg-")):
        return "SendGrid"
    if external_id.startswith(("twilio-", "SM")):
        return "Twilio"
    if external_id.startswith("internal-"):
        return "Internal"
    return "Unknown"


def update_delivery_status(external_id: str, status: str, status_details: str = "",
                           webhook_data: Optional[dict] = None) -> bool:
    """
    Apply a provider status to the matching communication.
    Returns False when no communication carries that external id.
    """
    log = CommunicationLog.objects.filter(external_message_id=external_id).first()
    if log is None:
        logger.warning(f"Delivery update for unknown message {external_id} ({status})")
        return False

    now = timezone.now()
    normalized = status.lower()
    with transaction.atomic():
        log.delivery_status = status
        if normalized == "delivered":
            log.delivered_at = now
        elif normalized in ("read", "opened"):
            log.read_at = now
            if log.delivered_at is None:
                log.delivered_at = now
        elif normalized in ("failed", "bounced"):
            log.failure_reason = (status_details or status)[:1000]
        log.save()

        NotificationDeliveryLog.objects.update_or_create(
            communication_log=log,
            external_id=external_id,
            defaults={
                'delivery_provider': infer_provider(external_id),
                'status': status,
                'status_details': (status_details or "")[:1000],
                'webhook_data': webhook_data or {},
            },
        )

    logger.info(f"Delivery status for {external_id} is now {status}")
    return True


# =============================================================================
# Search
# =============================================================================

def validate_search(params: CommunicationSearchIn) -> List[str]:
    errors = []
    if params.date_from and params.date_to:
        if params.date_from > params.date_to:
            errors.append("date_from must be before date_to")
        elif params.date_to - params.date_from > timedelta(days=MAX_RANGE_DAYS):
            errors.append(f"Date range cannot exceed {MAX_RANGE_DAYS} days")
    if params.sort_by not in SORT_FIELDS:
        errors.append(f"sort_by must be one of: {', '.join(SORT_FIELDS)}")
    if params.sort_direction.lower() not in ("asc", "desc"):
        errors.append("sort_direction must be 'asc' or 'desc'")
    unknown_types = [t for t in params.communication_types if t not in CommunicationType.values]
    if unknown_types:
        errors.append(f"Unknown communication types: {', '.join(unknown_types)}")
    unknown_statuses = [s for s in params.delivery_statuses if s not in DeliveryStatus.values]
    if unknown_statuses:
        errors.append(f"Unknown delivery statuses: {', '.join(unknown_statuses)}")
    if params.page < 1:
        errors.append("page must be at least 1")
    if not 1 <= params.page_size <= MAX_PAGE_SIZE:
        errors.append(f"page_size must be between 1 and {MAX_PAGE_SIZE}")
    return errors


def enforce_access(user, params: CommunicationSearchIn) -> CommunicationSearchIn:
    """Client searches are pinned to the client's own organization."""
    if user.is_colorgarb_staff:
        return params
    return params.model_copy(update={'organization_id': user.organization_id})


def can_access_organization(user, organization_id) -> bool:
    if user.is_colorgarb_staff:
        return True
    return bool(user.organization_id) and user.organization_id == organization_id


def filtered_logs(params: CommunicationSearchIn) -> QuerySet:
    qs = CommunicationLog.objects.select_related('order')
    if params.organization_id:
        qs = qs.filter(order__organization_id=params.organization_id)
    if params.order_id:
        qs = qs.filter(order_id=params.order_id)
    if params.communication_types:
        qs = qs.filter(communication_type__in=params.communication_types)
    if params.delivery_statuses:
        qs = qs.filter(delivery_status__in=params.delivery_statuses)
    if params.sender_id:
        qs = qs.filter(sender_id=params.sender_id)
    if params.recipient:
        term = params.recipient.strip()
        qs = qs.filter(
            Q(recipient__icontains=term) | Q(recipient_email__icontains=term) | Q(recipient_phone__icontains=term)
        )
    if params.date_from:
        qs = qs.filter(sent_at__gte=params.date_from)
    if params.date_to:
        qs = qs.filter(sent_at__lte=params.date_to)
    if params.search_term:
        term = params.search_term.strip()
        qs = qs.filter(Q(subject__icontains=term) | Q(content__icontains=term))

    field = SORT_FIELDS.get(params.sort_by, "sent_at")
    prefix = "" if params.sort_direction.lower() == "asc" else "-"
    return qs.order_by(f"{prefix}{field}", "-created_at")


def status_counts(qs: QuerySet) -> dict:
    rows = qs.order_by().values('delivery_status').annotate(n=Count('id'))
    return {row['delivery_status']: row['n'] for row in rows}


def search_communications(params: CommunicationSearchIn) -> dict:
    """Callers run validate_search first."""
    qs = filtered_logs(params)
    total = qs.count()
    offset = (params.page - 1) * params.page_size
    return {
        'logs': list(qs[offset:offset + params.page_size]),
        'total_count': total,
        'page': params.page,
        'page_size': params.page_size,
        'has_next_page': params.page * params.page_size < total,
        'status_summary': status_counts(qs),
    }


def order_history(order_id) -> List[CommunicationLog]:
    return list(CommunicationLog.objects.select_related('order').filter(order_id=order_id).order_by('-sent_at'))


def delivery_summary(organization_id, date_from: datetime, date_to: datetime) -> dict:
    qs = CommunicationLog.objects.filter(
        order__organization_id=organization_id,
        sent_at__gte=date_from,
        sent_at__lte=date_to,
    )
    type_rows = qs.order_by().values('communication_type').annotate(n=Count('id'))
    return {
        'organization_id': organization_id,
        'date_from': date_from,
        'date_to': date_to,
        'total': qs.count(),
        'status_counts': status_counts(qs),
        'type_counts': {row['communication_type']: row['n'] for row in type_rows},
    }


def export_communications_csv(params: CommunicationSearchIn) -> str:
    """Same filters as search, every matching row, no paging."""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(EXPORT_COLUMNS)
    for log in filtered_logs(params).select_related('sender').iterator():
        writer.writerow([
            log.id,
            log.order.order_number if log.order_id else "",
            log.communication_type,
            log.sender.email if log.sender_id else "",
            log.recipient,
            log.recipient_email,
            log.recipient_phone,
            log.subject,
            log.template_used,
            log.delivery_status,
            log.external_message_id,
            log.sent_at.isoformat(),
            log.delivered_at.isoformat() if log.delivered_at else "",
            log.read_at.isoformat() if log.read_at else "",
            log.failure_reason,
        ])
    return buffer.getvalue()
