# This will make sure the app is always imported when
# Django starts so that shared_task will use this app.
from .celery import app as celery_app

# Make celery app available as both 'celery_app' and 'celery'
# so that both -A dance_hub and -A dance_hub.celery_app work
celery = celery_app

__all__ = ('celery_app', 'celery')
