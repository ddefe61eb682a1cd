"""
Centralized error reporting utility.

Currently uses Python logging. This is the single hook point for an
external error tracker: every unexpected failure in request handlers,
webhooks and the reconciliation job goes through ``report_error``.
"""
import logging
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)


def report_error(
    error: Exception,
    source: str,
    extra_context: Optional[Dict[str, Any]] = None,
    include_traceback: bool = True
) -> None:
    """
    Report an error to the error tracking system.

    Args:
        error: The exception that occurred
        source: Identifier for where the error originated (e.g., 'confirm_pre_registration')
        extra_context: Additional context (community slug, user id, Stripe ids, ...)
        include_traceback: Whether to include full traceback in logs

    Example:
        try:
            do_something()
        except Exception as e:
            report_error(e, 'my_function', {'user_id': user.id, 'action': 'create'})
    """
    context_str = f" | Context: {extra_context}" if extra_context else ""

    if include_traceback:
        logger.error(f"[{source}] {error}{context_str}", exc_info=error)
    else:
        logger.error(f"[{source}] {error}{context_str}")


def report_warning(
    message: str,
    source: str,
    extra_context: Optional[Dict[str, Any]] = None
) -> None:
    """
    Report a warning (non-exception) to the tracking system.

    Args:
        message: Warning message
        source: Identifier for where the warning originated
        extra_context: Additional context
    """
    context_str = f" | Context: {extra_context}" if extra_context else ""
    logger.warning(f"[{source}] {message}{context_str}")
