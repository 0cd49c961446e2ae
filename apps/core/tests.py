import json
import os
from unittest.mock import Mock, patch

from django.test import TestCase

from apps.core.task_service import TaskService
from apps.core.backends import local_backend
from apps.core.backends.lambda_backend import LambdaTaskService, MAX_DELAY_SECONDS
from apps.core.backends.celery_backend import CeleryTaskService


class LocalBackendTest(TestCase):

    @patch.dict(os.environ, {"TASK_BACKEND": "local"})
    def test_dispatches_to_registered_handler(self):
        handler = Mock(return_value="done")
        with patch.dict(local_backend.TASK_HANDLERS, {"send_order_notifications": handler}):
            TaskService.send_order_notifications({"order_id": "abc"})
        handler.assert_called_once_with(change={"order_id": "abc"})

    @patch.dict(os.environ, {"TASK_BACKEND": "local"})
    def test_handler_errors_propagate(self):
        handler = Mock(side_effect=RuntimeError("boom"))
        with patch.dict(local_backend.TASK_HANDLERS, {"cleanup_login_attempts": handler}):
            with self.assertRaises(RuntimeError):
                TaskService.cleanup_login_attempts()

    def test_every_task_has_a_handler(self):
        for name in ("sync_production_update", "send_order_notifications", "cleanup_login_attempts"):
            self.assertIn(name, local_backend.TASK_HANDLERS)

    @patch.dict(os.environ, {"TASK_BACKEND": "carrier-pigeon"})
    def test_unknown_backend(self):
        with self.assertRaises(ValueError):
            TaskService.cleanup_login_attempts()


class LambdaBackendTest(TestCase):

    def test_sends_envelope_to_queue(self):
        sqs = Mock()
        sqs.send_message.return_value = {"MessageId": "m-1"}
        backend = LambdaTaskService(sqs_client=sqs, queue_url="https://sqs.example/tasks")

        task_id = backend.send_task("sync_production_update", {"change": {"order_id": "abc"}}, delay_seconds=5000)

        kwargs = sqs.send_message.call_args.kwargs
        body = json.loads(kwargs["MessageBody"])
        self.assertEqual(body["task_id"], task_id)
        self.assertEqual(body["task_name"], "sync_production_update")
        self.assertEqual(body["payload"]["change"]["order_id"], "abc")
        self.assertEqual(kwargs["DelaySeconds"], MAX_DELAY_SECONDS)

    @patch.dict(os.environ, {}, clear=True)
    def test_missing_queue_url(self):
        backend = LambdaTaskService(sqs_client=Mock())
        with self.assertRaises(RuntimeError):
            backend.send_task("cleanup_login_attempts", {})


class CeleryBackendTest(TestCase):

    @patch("apps.core.backends.celery_backend._get_celery_task")
    def test_payload_becomes_kwargs(self, get_task):
        task = Mock()
        get_task.return_value = task

        task_id = CeleryTaskService().send_task("send_order_notifications", {"change": {"order_id": "abc"}})

        task.apply_async.assert_called_once_with(kwargs={"change": {"order_id": "abc"}}, task_id=task_id)

    def test_unmapped_task(self):
        with self.assertRaises(ValueError):
            CeleryTaskService().send_task("generate_invoices", {})


class ScheduledCleanupTest(TestCase):

    @patch.dict(os.environ, {"TASK_BACKEND": "local"})
    def test_scheduled_handler_goes_through_task_service(self):
        import lambda_handlers

        handler = Mock(return_value="Removed 0 rows")
        with patch.dict(local_backend.TASK_HANDLERS, {"cleanup_login_attempts": handler}):
            result = lambda_handlers.scheduled_cleanup_login_attempts({}, None)

        handler.assert_called_once_with()
        self.assertEqual(result["statusCode"], 200)
        self.assertIn("task_id", json.loads(result["body"]))

    @patch.dict(os.environ, {"TASK_BACKEND": "lambda", "TASK_QUEUE_URL": "https://sqs.example/tasks"})
    @patch("boto3.client")
    def test_scheduled_handler_queues_on_lambda_backend(self, sqs_client):
        import lambda_handlers

        sqs = sqs_client.return_value
        sqs.send_message.return_value = {"MessageId": "m-1"}
        lambda_handlers.scheduled_cleanup_login_attempts({}, None)

        body = json.loads(sqs.send_message.call_args.kwargs["MessageBody"])
        self.assertEqual(body["task_name"], "cleanup_login_attempts")

    def test_queue_consumer_runs_cleanup(self):
        import lambda_handlers

        handler = Mock(return_value="Removed 3 rows")
        record = {"body": json.dumps({"task_id": "t-1", "task_name": "cleanup_login_attempts", "payload": {}})}
        with patch.dict(local_backend.TASK_HANDLERS, {"cleanup_login_attempts": handler}):
            result = lambda_handlers.sqs_task_handler({"Records": [record]}, None)

        handler.assert_called_once_with()
        self.assertEqual(json.loads(result["body"]), {"processed": 1, "skipped": 0})
