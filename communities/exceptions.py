"""
Errors raised by the community pre-registration flows.

Each error carries the HTTP status the API boundary maps it to and a message
that is safe to show an end user.
"""

from rest_framework import status

from utils.saga import CompensationFailure  # noqa: F401  (re-exported)


class CommunityError(Exception):
    """Base error for community and membership operations."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'Request could not be completed'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(CommunityError):
    """Community or membership does not exist."""
    status_code = status.HTTP_404_NOT_FOUND
    default_message = 'Not found'


class InvalidState(CommunityError):
    """The community or membership is not in the lifecycle state the operation needs."""
    default_message = 'Operation not allowed in the current state'


class PaymentSetupIncomplete(CommunityError):
    """The SetupIntent did not reach ``succeeded``."""
    default_message = 'Payment method setup incomplete'

    def __init__(self, message=None, setup_intent_status=None):
        super().__init__(message)
        self.setup_intent_status = setup_intent_status


class MissingCustomer(CommunityError):
    """The SetupIntent carries no customer or payment method to bill."""
    default_message = 'No billing customer found for this payment setup'


class AlreadyRegistered(CommunityError):
    """A membership already exists for this (community, user) pair."""
    default_message = 'User is already a member or pre-registered'


class PaymentProcessorError(CommunityError):
    """
    Stripe rejected or failed a request.

    ``detail`` holds the processor's message for logs and operators; only
    ``message`` is shown to end users.
    """
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = 'Payment processor error. Please try again.'

    def __init__(self, message=None, detail=None):
        super().__init__(message)
        self.detail = detail
