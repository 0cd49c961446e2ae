from celery import shared_task
import logging

from apps.orders.dtos import OrderChange
from .email_service import send_order_change_notifications

logger = logging.getLogger(__name__)


@shared_task
def send_order_notifications_task(change):
    """
    Email the client organization about a stage or ship-date change.
    """
    sent = send_order_change_notifications(OrderChange.from_payload(change))
    logger.info(f"Sent {sent} notification emails for order {change['order_id']}")
    return sent
