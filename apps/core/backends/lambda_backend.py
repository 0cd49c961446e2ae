"""
Lambda Task Backend - Async execution via AWS SQS + Lambda.

Messages go to the SQS task queue; lambda_handlers.sqs_task_handler
consumes them and dispatches to the handlers registered in local_backend.

Environment Variables:
    TASK_QUEUE_URL: SQS queue URL for task messages
    AWS_REGION: AWS region (default: us-east-1)
"""

import os
import json
import uuid
import logging
from typing import Any, Dict
from apps.core.task_service import TaskServiceInterface

logger = logging.getLogger(__name__)

# SQS caps DelaySeconds at 15 minutes
MAX_DELAY_SECONDS = 900


class LambdaTaskService(TaskServiceInterface):
    """Send task envelopes ({task_id, task_name, payload}) to SQS."""

    def __init__(self, sqs_client=None, queue_url=None):
        self._sqs_client = sqs_client
        self._queue_url = queue_url or os.getenv('TASK_QUEUE_URL')

        if not self._queue_url:
            logger.warning("[LAMBDA] TASK_QUEUE_URL not set; send_task will fail")

    @property
    def sqs_client(self):
        if self._sqs_client is None:
            import boto3
            self._sqs_client = boto3.client(
                'sqs',
                region_name=os.getenv('AWS_REGION', 'us-east-1')
            )
        return self._sqs_client

    def send_task(
        self,
        task_name: str,
        payload: Dict[str, Any],
        delay_seconds: int = 0,
    ) -> str:
        if not self._queue_url:
            raise RuntimeError("TASK_QUEUE_URL is not configured for the lambda task backend")

        task_id = str(uuid.uuid4())
        envelope = {"task_id": task_id, "task_name": task_name, "payload": payload}

        try:
            response = self.sqs_client.send_message(
                QueueUrl=self._queue_url,
                MessageBody=json.dumps(envelope, default=str),
                DelaySeconds=min(max(delay_seconds, 0), MAX_DELAY_SECONDS),
                MessageAttributes={
                    'TaskName': {'DataType': 'String', 'StringValue': task_name},
                },
            )
        except Exception:
            logger.exception(f"[LAMBDA] Failed to queue {task_name} (id={task_id})")
            raise

        logger.info(f"[LAMBDA] Queued {task_name} (id={task_id}, message={response['MessageId']})")
        return task_id
