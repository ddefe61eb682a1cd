"""
Scheduler-facing cron endpoints.

An external scheduler (Vercel cron, or plain curl from a
crontab) calls these with ``Authorization: Bearer <CRON_SECRET>``. Celery
Beat runs the same job on its own schedule; both paths are safe to overlap.
"""
import hmac
import logging

from django.conf import settings
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from communities.services.openings import process_community_openings as run_community_openings
from utils.error_reporting import report_error

logger = logging.getLogger(__name__)


def verify_cron_secret(request):
    """
    Check the bearer token against CRON_SECRET.

    An unset secret rejects everything rather than leaving the job open.
    """
    secret = getattr(settings, 'CRON_SECRET', '')
    if not secret:
        logger.error("CRON_SECRET not configured, rejecting cron request")
        return False

    auth_header = request.headers.get('Authorization', '')
    scheme, _, token = auth_header.partition(' ')
    if scheme.lower() != 'bearer' or not token:
        return False

    return hmac.compare_digest(token.strip().encode(), secret.encode())


# Map of URL-safe task names to Celery task paths
TASK_MAP = {
    "process_community_openings": "communities.tasks.process_community_openings_task",
}


@csrf_exempt
@require_GET
def process_community_openings(request):
    """
    Open every community whose opening date has passed.

    Runs synchronously so the scheduler sees the per-community report.

    URL: /cron/process-community-openings/
    """
    if not verify_cron_secret(request):
        logger.warning("Unauthorized community openings cron attempt")
        return JsonResponse({"error": "Unauthorized"}, status=401)

    try:
        report = run_community_openings()
    except Exception as e:
        report_error(e, 'cron.process_community_openings')
        return JsonResponse({"error": "Failed to process community openings"}, status=500)

    return JsonResponse(report.as_dict())


@csrf_exempt
@require_POST
def trigger_task(request, task_name):
    """
    Queue a registered Celery task for the worker.

    URL: /api/cron/trigger/<task_name>/
    """
    if not verify_cron_secret(request):
        logger.warning(f"Unauthorized cron trigger attempt for task: {task_name}")
        return JsonResponse({"error": "Unauthorized"}, status=401)

    if task_name not in TASK_MAP:
        logger.warning(f"Unknown task requested: {task_name}")
        return JsonResponse({"error": "Unknown task"}, status=404)

    task_path = TASK_MAP[task_name]

    try:
        from celery import current_app
        result = current_app.send_task(task_path)
    except Exception as e:
        report_error(e, 'cron.trigger_task', {'task_name': task_name})
        return JsonResponse({"error": "Failed to queue task"}, status=500)

    logger.info(f"Cron triggered task {task_name} -> {task_path}, task_id={result.id}")
    return JsonResponse({
        "status": "queued",
        "task_name": task_name,
        "task_path": task_path,
        "task_id": str(result.id),
    })


@require_GET
def list_tasks(request):
    """
    List the tasks that can be triggered.

    URL: /api/cron/tasks/
    """
    if not verify_cron_secret(request):
        return JsonResponse({"error": "Unauthorized"}, status=401)

    return JsonResponse({
        "tasks": list(TASK_MAP.keys()),
        "count": len(TASK_MAP),
    })
