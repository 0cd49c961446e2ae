"""
Celery configuration for the ColorGarb portal.
"""
import os
from celery import Celery
from celery.schedules import crontab

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

app = Celery('config')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()

# Celery Beat Schedule
# Same task the celery TaskService backend maps cleanup_login_attempts to
app.conf.beat_schedule = {
    'cleanup-login-attempts': {
        'task': 'apps.identity.tasks.cleanup_login_attempts_task',
        'schedule': crontab(minute='0'),  # Hourly
    },
}
