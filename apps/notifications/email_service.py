"""
Transactional email.

Every send is recorded twice: an EmailNotification row (delivery attempts
for retries and the user's email history) and a CommunicationLog row (the
cross-channel audit trail). Send failures are logged and reported as
False; they never propagate to the caller.
"""
import logging
import uuid
from datetime import datetime
from typing import Iterable, Optional

from django.conf import settings
from django.core.mail import send_mail
from django.template.loader import render_to_string
from django.utils import timezone

from apps.communications.models import CommunicationType, DeliveryStatus
from apps.communications.services import log_communication
from apps.identity.models import User
from apps.orders.dtos import OrderChange
from apps.orders.models import Order
from .models import EmailNotification, EmailStatus
from .preference_service import wants_email, stage_milestone, SHIP_DATE_CHANGE_MILESTONE

logger = logging.getLogger(__name__)

PASSWORD_RESET_TEMPLATE = "password_reset"
ACCOUNT_LOCKOUT_TEMPLATE = "account_lockout"
STAGE_UPDATE_TEMPLATE = "order_stage_update"
SHIP_DATE_CHANGE_TEMPLATE = "order_ship_date_change"


def _frontend_url(path: str) -> str:
    return f"{settings.FRONTEND_BASE_URL.rstrip('/')}{path}"


def send_templated_email(
    *,
    template_name: str,
    subject: str,
    recipient: str,
    context: dict,
    user: Optional[User] = None,
    order: Optional[Order] = None,
    sender: Optional[User] = None,
) -> bool:
    """Render notifications/<template_name>.txt and send it to one address."""
    body = render_to_string(f"notifications/{template_name}.txt", context)
    notification = EmailNotification.objects.create(
        user=user,
        order=order,
        template_name=template_name,
        subject=subject,
        recipient=recipient,
    )
    external_id = f"internal-{uuid.uuid4()}"

    notification.delivery_attempts += 1
    notification.last_attempt_at = timezone.now()
    try:
        send_mail(subject, body, settings.DEFAULT_FROM_EMAIL, [recipient], fail_silently=False)
    except Exception as e:
        logger.exception(f"Failed to send {template_name} email to {recipient}")
        notification.status = EmailStatus.FAILED
        notification.error_message = str(e)[:1000]
        notification.save()
        log_communication(
            communication_type=CommunicationType.EMAIL,
            order=order,
            sender=sender,
            recipient=user.display_name if user else recipient,
            recipient_email=recipient,
            subject=subject,
            content=body,
            template_used=template_name,
            delivery_status=DeliveryStatus.FAILED,
            external_message_id=external_id,
            failure_reason=str(e),
        )
        return False

    notification.status = EmailStatus.SENT
    notification.save()
    log_communication(
        communication_type=CommunicationType.EMAIL,
        order=order,
        sender=sender,
        recipient=user.display_name if user else recipient,
        recipient_email=recipient,
        subject=subject,
        content=body,
        template_used=template_name,
        delivery_status=DeliveryStatus.SENT,
        external_message_id=external_id,
        metadata={"email_notification_id": str(notification.id)},
    )
    logger.info(f"Sent {template_name} email to {recipient}")
    return True


# =============================================================================
# Account emails
# =============================================================================

def send_password_reset_email(user: User, raw_token: str) -> bool:
    return send_templated_email(
        template_name=PASSWORD_RESET_TEMPLATE,
        subject="Reset your ColorGarb password",
        recipient=user.email,
        user=user,
        context={
            "name": user.display_name,
            "reset_url": _frontend_url(f"/reset-password?token={raw_token}"),
            "expires_in": "1 hour",
        },
    )


def send_account_lockout_email(user: User, unlock_at: datetime) -> bool:
    return send_templated_email(
        template_name=ACCOUNT_LOCKOUT_TEMPLATE,
        subject="Your ColorGarb account has been temporarily locked",
        recipient=user.email,
        user=user,
        context={
            "name": user.display_name,
            "unlock_at": unlock_at,
            "reset_url": _frontend_url("/forgot-password"),
        },
    )


# =============================================================================
# Order emails
# =============================================================================

def order_recipients(order: Order, milestone: Optional[str]) -> list:
    """
    (email, user) pairs: the organization's contact address plus active
    organization users who opted in. Each address appears once.
    """
    recipients = []
    seen = set()
    contact = (order.organization.contact_email or "").strip()
    if contact:
        recipients.append((contact, None))
        seen.add(contact.lower())

    users = User.objects.filter(organization_id=order.organization_id, is_active=True)
    for user in users:
        if user.email.lower() in seen or not wants_email(user, milestone):
            continue
        recipients.append((user.email, user))
        seen.add(user.email.lower())
    return recipients


def _send_to_all(recipients: Iterable, **kwargs) -> int:
    sent = 0
    for email, user in recipients:
        if send_templated_email(recipient=email, user=user, **kwargs):
            sent += 1
    return sent


def send_stage_update_email(order: Order, change: OrderChange, sender: Optional[User] = None) -> int:
    context = {
        "order_number": order.order_number,
        "description": order.description,
        "organization_name": order.organization.name,
        "previous_stage": change.previous_stage,
        "new_stage": change.new_stage,
        "ship_date": order.current_ship_date,
        "reason": change.reason,
        "order_url": _frontend_url(f"/orders/{order.id}"),
    }
    return _send_to_all(
        order_recipients(order, stage_milestone(change.new_stage)),
        template_name=STAGE_UPDATE_TEMPLATE,
        subject=f"Order {order.order_number}: now in {change.new_stage}",
        context=context,
        order=order,
        sender=sender,
    )


def describe_ship_date_shift(previous: datetime, new: datetime) -> str:
    days = (new.date() - previous.date()).days
    unit = "day" if abs(days) == 1 else "days"
    if days > 0:
        return f"delayed by {days} {unit}"
    if days < 0:
        return f"moved earlier by {abs(days)} {unit}"
    return "rescheduled on the same day"


def send_ship_date_change_email(order: Order, change: OrderChange, sender: Optional[User] = None) -> int:
    context = {
        "order_number": order.order_number,
        "description": order.description,
        "organization_name": order.organization.name,
        "previous_ship_date": change.previous_ship_date,
        "new_ship_date": change.new_ship_date,
        "shift": describe_ship_date_shift(change.previous_ship_date, change.new_ship_date),
        "reason": change.reason,
        "order_url": _frontend_url(f"/orders/{order.id}"),
    }
    return _send_to_all(
        order_recipients(order, SHIP_DATE_CHANGE_MILESTONE),
        template_name=SHIP_DATE_CHANGE_TEMPLATE,
        subject=f"Order {order.order_number}: ship date changed",
        context=context,
        order=order,
        sender=sender,
    )


def send_order_change_notifications(change: OrderChange) -> int:
    """Email whatever part of the change clients care about. Returns emails sent."""
    order = Order.objects.select_related('organization').filter(id=change.order_id).first()
    if order is None:
        logger.error(f"Order {change.order_id} not found for notifications")
        return 0

    sender = User.objects.filter(id=change.updated_by_id).first() if change.updated_by_id else None
    sent = 0
    if change.stage_changed:
        sent += send_stage_update_email(order, change, sender)
    if change.ship_date_changed:
        sent += send_ship_date_change_email(order, change, sender)
    return sent
