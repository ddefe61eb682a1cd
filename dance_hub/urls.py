"""
URL configuration for dance_hub project.

The `urlpatterns` list routes URLs to views. For more information please see:
    https://docs.djangoproject.com/en/5.0/topics/http/urls/
"""
from django.contrib import admin
from django.http import HttpResponse
from django.urls import path, include, re_path

from api import cron_triggers
from communities import views as community_views


urlpatterns = [
    # Simple health check endpoint for load balancers and CI smoke tests
    path('healthz/', lambda request: HttpResponse('ok'), name='healthz'),
    path('admin/', admin.site.urls),
    # API endpoints including cron triggers
    path('api/', include('api.urls')),
    path('community/', include('communities.urls')),
    re_path(
        r'^cron/process-community-openings/?$',
        cron_triggers.process_community_openings,
        name='process_community_openings',
    ),
    path('webhooks/stripe/', community_views.stripe_webhook, name='stripe_webhook'),
]
