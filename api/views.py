import logging

from django.conf import settings
from rest_framework import status
from rest_framework.exceptions import Throttled, ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler

from communities.exceptions import CommunityError, PaymentProcessorError
from utils.error_reporting import report_error

logger = logging.getLogger(__name__)


def _detail_message(detail):
    if isinstance(detail, (list, tuple)) and detail:
        return _detail_message(detail[0])
    if isinstance(detail, dict) and detail:
        return _detail_message(next(iter(detail.values())))
    return str(detail)


def custom_exception_handler(exc, context):
    """
    Exception handler for every API view.

    Every error leaves as ``{"error": message}``:
    - domain errors use their own status and user-safe message;
    - DRF errors (auth, validation, throttling) keep DRF's status;
    - anything else is reported and becomes a generic 500.
    """
    view = context.get('view')
    source = getattr(view, '__name__', None) or type(view).__name__

    if isinstance(exc, CommunityError):
        data = {'error': exc.message}
        if isinstance(exc, PaymentProcessorError) and settings.DEBUG and exc.detail:
            data['detail'] = exc.detail
        if exc.status_code >= 500:
            logger.error(f"[{source}] {exc.message} ({getattr(exc, 'detail', None)})")
        else:
            logger.info(f"[{source}] {type(exc).__name__}: {exc.message}")
        return Response(data, status=exc.status_code)

    # Call REST framework's default exception handler first
    response = exception_handler(exc, context)

    if response is not None:
        if isinstance(exc, Throttled):
            data = {'error': 'rate_limit_exceeded', 'message': 'Too many requests.'}
            if exc.wait:
                data['wait'] = exc.wait
        elif isinstance(exc, ValidationError):
            data = {'error': _detail_message(exc.detail), 'details': response.data}
        else:
            data = {'error': _detail_message(getattr(exc, 'detail', response.data))}
        response.data = data
        return response

    report_error(exc, source or 'api')
    return Response(
        {'error': 'Internal server error'},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
