"""
Helpers shared by every Stripe call made on behalf of a community.

All community billing objects live on the community's connected account,
so every call passes ``stripe_account``.
"""
import logging

import stripe

from .exceptions import PaymentProcessorError

logger = logging.getLogger(__name__)

MISSING_RESOURCE_CODES = {'resource_missing', 'invoice_not_found'}

# Subscription states in which Stripe owns the rest of the billing lifecycle
HEALTHY_SUBSCRIPTION_STATUSES = {'active', 'trialing', 'incomplete'}


def stripe_options(community):
    """Per-request options routing a call to the community's connected account."""
    if community.stripe_account_id:
        return {'stripe_account': community.stripe_account_id}
    return {}


def stripe_field(obj, name, default=None):
    """Read a field from a Stripe object, a plain dict or a simple namespace."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def stripe_id(value):
    """An expandable field is either an id string or an object with ``id``."""
    if value is None or isinstance(value, str):
        return value
    return stripe_field(value, 'id')


def is_missing_resource(error):
    return isinstance(error, stripe.InvalidRequestError) and getattr(error, 'code', None) in MISSING_RESOURCE_CODES


def is_transient_stripe_error(error):
    """Errors worth retrying: network trouble, rate limits and Stripe 5xx."""
    if isinstance(error, (stripe.APIConnectionError, stripe.RateLimitError)):
        return True
    if isinstance(error, stripe.APIError):
        return (getattr(error, 'http_status', None) or 0) >= 500
    return False


def error_detail(error):
    """The processor's own message, for logs."""
    return getattr(error, 'user_message', None) or str(error)


def processor_error(error, action):
    """Wrap a StripeError for the API boundary, logging the processor detail."""
    detail = error_detail(error)
    logger.error(f"Stripe error while trying to {action}: {detail}")
    return PaymentProcessorError(detail=detail)
