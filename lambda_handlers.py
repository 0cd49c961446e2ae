"""
Lambda entry points for the ColorGarb portal.

- sqs_task_handler: consumes the task queue filled by LambdaTaskService
- scheduled_cleanup_login_attempts: EventBridge hourly trigger
- api_handler: HTTP through API Gateway, wrapped with Mangum
"""

import os
import sys
import json
import logging

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

import django
django.setup()

from mangum import Mangum

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def sqs_task_handler(event, context):
    """
    Dispatch each SQS record to its registered task handler.

    Record body: {"task_id": "...", "task_name": "...", "payload": {...}}
    Failures are re-raised so SQS redelivers and eventually dead-letters.
    """
    from apps.core.backends.local_backend import TASK_HANDLERS

    processed = 0
    skipped = 0

    for record in event.get('Records', []):
        message = json.loads(record['body'])
        task_id = message.get('task_id', 'unknown')
        task_name = message['task_name']
        payload = message.get('payload', {})

        handler = TASK_HANDLERS.get(task_name)
        if handler is None:
            logger.error(f"No handler for task: {task_name} (id={task_id})")
            skipped += 1
            continue

        logger.info(f"Processing task {task_name} (id={task_id})")
        try:
            result = handler(**payload)
        except Exception:
            logger.exception(f"Task {task_name} (id={task_id}) failed")
            raise
        logger.info(f"Task {task_name} completed: {result}")
        processed += 1

    return {
        'statusCode': 200,
        'body': json.dumps({'processed': processed, 'skipped': skipped}),
    }


def scheduled_cleanup_login_attempts(event, context):
    """
    EventBridge scheduled handler: queue the stale login attempt purge.

    Schedule: hourly

    The purge itself runs in sqs_task_handler via the task registry.
    """
    from apps.core.task_service import TaskService

    logger.info("Running scheduled cleanup_login_attempts")
    task_id = TaskService.cleanup_login_attempts()

    return {
        'statusCode': 200,
        'body': json.dumps({'task_id': task_id}),
    }


_asgi_handler = None


def api_handler(event, context):
    """
    AWS Lambda handler for HTTP requests via API Gateway.
    """
    global _asgi_handler

    if _asgi_handler is None:
        from config.asgi import application
        _asgi_handler = Mangum(application, lifespan="off")

    return _asgi_handler(event, context)
