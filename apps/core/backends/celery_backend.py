"""
Celery Task Backend - Async execution via Celery + Redis.

Usage:
    Set TASK_BACKEND=celery in your .env file.
    Requires Redis and Celery worker running.
"""

import uuid
import logging
from typing import Any, Dict
from apps.core.task_service import TaskServiceInterface

logger = logging.getLogger(__name__)


# Map task names to Celery task functions
TASK_MAP = {
    "sync_production_update": "apps.orders.tasks.sync_production_update_task",
    "send_order_notifications": "apps.notifications.tasks.send_order_notifications_task",
    "cleanup_login_attempts": "apps.identity.tasks.cleanup_login_attempts_task",
}


def _get_celery_task(task_name: str):
    """Get the Celery task function for a task name."""
    task_path = TASK_MAP.get(task_name)
    if not task_path:
        raise ValueError(f"No Celery task mapped for: {task_name}")

    from celery import current_app
    return current_app.tasks.get(task_path)


class CeleryTaskService(TaskServiceInterface):
    """
    Execute tasks via Celery + Redis.

    Payload keys are passed to the Celery task as keyword arguments.
    """

    def send_task(
        self,
        task_name: str,
        payload: Dict[str, Any],
        delay_seconds: int = 0,
    ) -> str:
        """Queue task via Celery."""
        task_id = str(uuid.uuid4())

        logger.info(f"[CELERY] Queueing task {task_name} (id={task_id})")

        task = _get_celery_task(task_name)

        if task is None:
            logger.error(f"[CELERY] Task not found: {task_name}")
            raise ValueError(f"Celery task not found: {task_name}")

        if delay_seconds > 0:
            task.apply_async(kwargs=payload, countdown=delay_seconds, task_id=task_id)
        else:
            task.apply_async(kwargs=payload, task_id=task_id)

        return task_id
