"""
TaskService - Abstraction layer for async task execution.

This module provides a platform-agnostic interface for executing background tasks.
The actual backend is determined by the TASK_BACKEND environment variable.

Usage:
    from apps.core.task_service import TaskService

    # Push an order change to the production tracking system
    TaskService.sync_production_update(change.to_payload())

    # Email the client about the same change
    TaskService.send_order_notifications(change.to_payload())

Environment Configuration:
    TASK_BACKEND=local   # Sync execution (development, tests)
    TASK_BACKEND=lambda  # AWS Lambda + SQS (production)
    TASK_BACKEND=celery  # Celery + Redis
"""

import os
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict

logger = logging.getLogger(__name__)


class TaskServiceInterface(ABC):
    """
    Abstract interface for async task execution.

    Implementations:
    - LocalTaskService: Sync execution for development/testing
    - LambdaTaskService: AWS Lambda + SQS for production
    - CeleryTaskService: Celery + Redis
    """

    @abstractmethod
    def send_task(
        self,
        task_name: str,
        payload: Dict[str, Any],
        delay_seconds: int = 0,
    ) -> str:
        """
        Queue a task for async execution.

        Args:
            task_name: Identifier for the task handler
            payload: JSON-serializable keyword arguments for the handler
            delay_seconds: Delay before execution (0 = immediate)

        Returns:
            Task ID for tracking
        """
        pass


def _get_backend() -> TaskServiceInterface:
    """Get the configured task backend based on TASK_BACKEND env var."""
    backend = os.getenv('TASK_BACKEND', 'local')

    if backend == 'local':
        from apps.core.backends.local_backend import LocalTaskService
        return LocalTaskService()
    elif backend == 'lambda':
        from apps.core.backends.lambda_backend import LambdaTaskService
        return LambdaTaskService()
    elif backend == 'celery':
        from apps.core.backends.celery_backend import CeleryTaskService
        return CeleryTaskService()
    else:
        raise ValueError(f"Unknown TASK_BACKEND: {backend}")


class TaskService:
    """
    Facade for sending async tasks.

    One static method per task type, delegating to the configured backend.
    """

    @staticmethod
    def sync_production_update(change: Dict[str, Any]) -> str:
        """
        Queue a stage/ship-date push to production tracking.

        Used by: Orders app after an admin or bulk update commits.
        """
        logger.info(f"Queueing sync_production_update for order {change.get('order_id')}")
        return _get_backend().send_task(
            task_name="sync_production_update",
            payload={"change": change}
        )

    @staticmethod
    def send_order_notifications(change: Dict[str, Any]) -> str:
        """
        Queue client emails for an order change.

        Used by: Orders app after an admin or bulk update commits.
        """
        logger.info(f"Queueing send_order_notifications for order {change.get('order_id')}")
        return _get_backend().send_task(
            task_name="send_order_notifications",
            payload={"change": change}
        )

    @staticmethod
    def cleanup_login_attempts() -> str:
        """
        Queue removal of expired login-attempt rows.

        Used by: Scheduled job (hourly).
        """
        logger.info("Queueing cleanup_login_attempts task")
        return _get_backend().send_task(
            task_name="cleanup_login_attempts",
            payload={}
        )
