from celery import shared_task
import logging

from .dtos import OrderChange
from .sync_service import sync_order_change

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def sync_production_update_task(self, change):
    """
    Push an order change to production tracking, retrying transient failures.
    """
    result = sync_order_change(OrderChange.from_payload(change))
    if result.success:
        return result.external_order_id

    if result.should_retry:
        logger.warning(f"Retrying production sync for order {change['order_id']}: {result.error}")
        raise self.retry(exc=RuntimeError(result.error))

    logger.error(f"Production sync failed for order {change['order_id']}: {result.error}")
