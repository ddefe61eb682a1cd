import os

from celery import Celery
from celery.schedules import crontab
from celery.signals import task_postrun
from django.conf import settings

# set the default Django settings module for the 'celery' program.
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'dance_hub.settings')

app = Celery('dance_hub')

# Using a string here means the worker doesn't have to serialize
# the configuration object to child processes.
app.config_from_object('django.conf:settings', namespace='CELERY')

# Load task modules from all registered Django app configs.
app.autodiscover_tasks(lambda: settings.INSTALLED_APPS)

# The reconciliation job is idempotent, so the beat schedule and the
# bearer-token cron endpoint may both fire without coordination.
app.conf.beat_schedule = {
    'process-community-openings': {
        'task': 'communities.tasks.process_community_openings_task',
        'schedule': crontab(minute=5),  # Hourly at :05
    },
}


@task_postrun.connect
def close_database_connections(**kwargs):
    """
    Close all database connections after each task to prevent stale connections.
    Managed PostgreSQL closes idle connections after a few minutes.
    """
    from django.db import connections
    for conn in connections.all():
        conn.close()
