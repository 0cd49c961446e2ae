from celery import shared_task
import logging

from apps.identity import services

logger = logging.getLogger(__name__)


@shared_task
def cleanup_login_attempts_task():
    """
    Periodic purge of old login attempts and spent reset tokens.
    """
    count = services.cleanup_login_attempts()
    logger.info(f"Login attempt cleanup removed {count} rows")
    return count
