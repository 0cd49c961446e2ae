"""
Core app - shared infrastructure for the portal apps.

TaskService queues the background work that follows an order change
(production tracking sync, client notification emails) and the periodic
login-attempt cleanup. The backend is chosen by TASK_BACKEND:
- local: runs handlers inline (development, tests)
- lambda: SQS messages consumed by lambda_handlers.sqs_task_handler
- celery: Celery + Redis workers
"""
