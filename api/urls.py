"""
API URL configuration.

Includes endpoints for:
- JWT access/refresh tokens for the frontend
- cron triggers that queue Celery tasks
"""
from django.urls import path
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from . import cron_triggers

urlpatterns = [
    path('token/', TokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
    path('cron/trigger/<str:task_name>/', cron_triggers.trigger_task, name='cron_trigger_task'),
    path('cron/tasks/', cron_triggers.list_tasks, name='cron_list_tasks'),
]
