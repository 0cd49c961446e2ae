"""
Local Task Backend - Synchronous execution for development.

This backend executes tasks immediately in the same process.
No Redis, SQS, or external dependencies required.

Usage:
    Set TASK_BACKEND=local in your .env file.
"""

import uuid
import logging
from typing import Any, Dict
from apps.core.task_service import TaskServiceInterface

logger = logging.getLogger(__name__)


# Task handler registry - maps task names to handler functions.
# Also used by the SQS Lambda consumer.
TASK_HANDLERS = {}


def register_handler(task_name: str):
    """Decorator to register a task handler."""
    def decorator(func):
        TASK_HANDLERS[task_name] = func
        return func
    return decorator


class LocalTaskService(TaskServiceInterface):
    """
    Execute tasks synchronously in the same process.

    Tasks run in the request cycle and block the response, so this is
    meant for development and tests only.
    """

    def send_task(
        self,
        task_name: str,
        payload: Dict[str, Any],
        delay_seconds: int = 0,
    ) -> str:
        """Execute task synchronously."""
        task_id = str(uuid.uuid4())

        logger.info(f"[LOCAL] Executing task {task_name} (id={task_id})")

        if delay_seconds > 0:
            logger.warning(f"[LOCAL] delay_seconds={delay_seconds} ignored in local backend")

        handler = TASK_HANDLERS.get(task_name)
        if handler is None:
            logger.warning(f"[LOCAL] No handler registered for task: {task_name}")
            return task_id

        try:
            result = handler(**payload)
        except Exception as e:
            logger.exception(f"[LOCAL] Task {task_name} failed: {e}")
            raise
        logger.info(f"[LOCAL] Task {task_name} completed: {result}")
        return task_id


# =============================================================================
# Task Handlers
# =============================================================================

@register_handler("sync_production_update")
def handle_sync_production_update(change: dict):
    from apps.orders.dtos import OrderChange
    from apps.orders.sync_service import sync_order_change

    result = sync_order_change(OrderChange.from_payload(change))
    return f"Production sync success={result.success}"


@register_handler("send_order_notifications")
def handle_send_order_notifications(change: dict):
    from apps.orders.dtos import OrderChange
    from apps.notifications.email_service import send_order_change_notifications

    sent = send_order_change_notifications(OrderChange.from_payload(change))
    return f"Sent {sent} order notification emails"


@register_handler("cleanup_login_attempts")
def handle_cleanup_login_attempts():
    from apps.identity import services
    count = services.cleanup_login_attempts()
    return f"Removed {count} login attempts"
