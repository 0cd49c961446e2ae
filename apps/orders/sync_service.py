"""
Pushes committed order changes to the production tracking system.
"""
import logging

from apps.identity.models import User
from .dtos import OrderChange, ProductionSyncResult
from .models import Order
from .production_tracking import ProductionTrackingService

logger = logging.getLogger(__name__)


def sync_order_change(change: OrderChange, client: ProductionTrackingService = None) -> ProductionSyncResult:
    """
    Send the stage and/or ship-date part of a change upstream.

    The first failing call wins; its should_retry flag tells the worker
    whether to try again.
    """
    order = Order.objects.filter(id=change.order_id).first()
    if order is None:
        logger.error(f"Order {change.order_id} not found for production sync")
        return ProductionSyncResult(success=False, error="Order not found")

    client = client or ProductionTrackingService()
    updated_by = "system"
    if change.updated_by_id:
        user = User.objects.filter(id=change.updated_by_id).first()
        if user:
            updated_by = user.email

    result = ProductionSyncResult(success=True)
    if change.stage_changed:
        result = client.sync_stage_update(
            order.id, order.order_number, change.previous_stage, change.new_stage,
            updated_by, change.reason,
        )
        if not result.success:
            return result

    if change.ship_date_changed:
        result = client.sync_ship_date_update(
            order.id, order.order_number, change.previous_ship_date, change.new_ship_date,
            change.reason, updated_by,
        )
    return result
