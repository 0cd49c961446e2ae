import json
import logging
from datetime import datetime
from typing import List
from uuid import UUID
from ninja import Router, Query
from ninja.errors import HttpError
from django.conf import settings
from django.http import HttpRequest, HttpResponse
from django.utils import timezone

from apps.identity.decorators import has_permission
from apps.identity.permissions import Permissions
from apps.governance.audit_service import log_action, AuditAction
from apps.messaging.dtos import MessageEditOut
from apps.messaging.models import Message, MessageEdit
from apps.orders.services import get_order_for_user
from .dtos import CommunicationSearchIn, CommunicationSearchOut, CommunicationLogOut, DeliverySummaryOut, DeliveryLogOut
from .models import CommunicationLog
from . import services, webhooks

logger = logging.getLogger(__name__)

router = Router(tags=["Communication Audit"])
export_router = Router(tags=["Communication Export"])
webhooks_router = Router(tags=["Webhooks"])


def _scoped_search(request, params: CommunicationSearchIn) -> CommunicationSearchIn:
    if not request.user.is_colorgarb_staff and not request.user.organization_id:
        raise HttpError(403, "Access denied")
    params = services.enforce_access(request.user, params)
    errors = services.validate_search(params)
    if errors:
        raise HttpError(400, "; ".join(errors))
    return params


@router.get("/logs", response=CommunicationSearchOut, auth=None)
@has_permission(Permissions.COMMUNICATIONS_AUDIT)
def search_logs(request: HttpRequest, filters: CommunicationSearchIn = Query(...)):
    """Paged communication history. Clients only ever see their organization."""
    return services.search_communications(_scoped_search(request, filters))


@router.get("/logs/{log_id}/delivery", response=List[DeliveryLogOut], auth=None)
@has_permission(Permissions.COMMUNICATIONS_AUDIT)
def delivery_logs(request: HttpRequest, log_id: UUID):
    log = CommunicationLog.objects.select_related('order').filter(id=log_id).first()
    if log is None or (log.order_id and not services.can_access_organization(request.user, log.order.organization_id)):
        raise HttpError(404, "Communication not found")
    if not log.order_id and not request.user.is_colorgarb_staff:
        raise HttpError(404, "Communication not found")
    return list(log.delivery_logs.all())


@router.get("/orders/{order_id}/history", response=List[CommunicationLogOut], auth=None)
@has_permission(Permissions.COMMUNICATIONS_AUDIT)
def order_history(request: HttpRequest, order_id: UUID):
    if get_order_for_user(request.user, order_id) is None:
        raise HttpError(404, "Order not found")
    return services.order_history(order_id)


@router.get("/organizations/{organization_id}/summary", response=DeliverySummaryOut, auth=None)
@has_permission(Permissions.COMMUNICATIONS_AUDIT)
def delivery_summary(request: HttpRequest, organization_id: UUID, date_from: datetime, date_to: datetime):
    if not services.can_access_organization(request.user, organization_id):
        raise HttpError(403, "Access denied to this organization")
    if date_from > date_to:
        raise HttpError(400, "date_from must be before date_to")
    return services.delivery_summary(organization_id, date_from, date_to)


@router.get("/messages/{message_id}/edits", response=List[MessageEditOut], auth=None)
@has_permission(Permissions.COMMUNICATIONS_AUDIT)
def message_edit_history(request: HttpRequest, message_id: UUID):
    message = Message.objects.select_related('order').filter(id=message_id).first()
    if message is None or not services.can_access_organization(request.user, message.order.organization_id):
        raise HttpError(404, "Message not found")
    return list(MessageEdit.objects.filter(audit_trail__message=message))


@export_router.get("/csv", auth=None)
@has_permission(Permissions.COMMUNICATIONS_EXPORT)
def export_csv(request: HttpRequest, filters: CommunicationSearchIn = Query(...)):
    """Every communication matching the search filters, as CSV."""
    params = _scoped_search(request, filters)
    content = services.export_communications_csv(params)

    log_action(
        org_id=params.organization_id,
        action=AuditAction.EXPORT_COMMUNICATIONS,
        target_type="CommunicationLog",
        target_id=request.user.id,
        target_label="CSV export",
        performed_by=request.user,
        context=json.loads(params.model_dump_json()),
    )

    filename = f"communications_{timezone.now():%Y%m%d_%H%M%S}.csv"
    response = HttpResponse(content, content_type='text/csv')
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    return response


# =============================================================================
# Provider webhooks (unauthenticated, signature-checked)
# =============================================================================

@webhooks_router.post("/sendgrid", auth=None)
def sendgrid_webhook(request: HttpRequest):
    verified = webhooks.verify_sendgrid_signature(
        getattr(settings, 'SENDGRID_WEBHOOK_PUBLIC_KEY', ''),
        request.headers.get(webhooks.SENDGRID_SIGNATURE_HEADER),
        request.headers.get(webhooks.SENDGRID_TIMESTAMP_HEADER),
        request.body,
    )
    if not verified:
        logger.warning("SendGrid webhook signature verification failed")
        raise HttpError(401, "Invalid signature")

    try:
        events = json.loads(request.body)
    except ValueError:
        raise HttpError(400, "Body must be a JSON array")
    if not isinstance(events, list):
        raise HttpError(400, "Body must be a JSON array")

    processed = 0
    for event in events:
        event_type = event.get("event") if isinstance(event, dict) else None
        message_id = event.get("sg_message_id") if isinstance(event, dict) else None
        if not event_type or not message_id:
            logger.warning(f"Skipping SendGrid event without event/sg_message_id: {event}")
            continue
        services.update_delivery_status(
            message_id,
            webhooks.map_sendgrid_event(event_type),
            event.get("reason") or event.get("response") or "",
            event,
        )
        processed += 1

    logger.info(f"Processed {processed} SendGrid webhook events")
    return {"processed": processed}


@webhooks_router.post("/twilio", auth=None)
def twilio_webhook(request: HttpRequest):
    params = {key: request.POST.get(key) for key in request.POST.keys()}
    verified = webhooks.verify_twilio_signature(
        getattr(settings, 'TWILIO_AUTH_TOKEN', ''),
        request.headers.get(webhooks.TWILIO_SIGNATURE_HEADER),
        request.build_absolute_uri(),
        params,
    )
    if not verified:
        logger.warning("Twilio webhook signature verification failed")
        raise HttpError(401, "Invalid signature")

    message_sid = params.get("MessageSid")
    status = params.get("MessageStatus") or params.get("SmsStatus")
    if message_sid and status:
        services.update_delivery_status(
            message_sid,
            webhooks.map_twilio_status(status),
            params.get("ErrorMessage") or params.get("ErrorCode") or "",
            params,
        )
    logger.info(f"Processed Twilio webhook for {message_sid or 'unknown'}")
    return HttpResponse(webhooks.EMPTY_TWIML, content_type='application/xml')


@webhooks_router.get("/health", auth=None)
def webhooks_health(request: HttpRequest):
    return {"status": "healthy", "timestamp": timezone.now().isoformat()}
