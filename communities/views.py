"""
API views for community pre-registration.

These endpoints let a user pre-register for a community that has not
opened yet, confirm the saved payment method, cancel before the opening
date, and check their membership. Domain errors raised by the services are
turned into ``{"error": ...}`` responses by api.views.custom_exception_handler.
"""

import logging

import stripe
from django.conf import settings
from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from utils.error_reporting import report_error
from .serializers import (
    CancelPreRegistrationSerializer,
    CommunityMemberSerializer,
    ConfirmPreRegistrationSerializer,
    JoinPreRegistrationSerializer,
)
from .services import pre_registration
from .stripe_utils import stripe_field
from .webhooks import dispatch_event

logger = logging.getLogger(__name__)


def _check_user_id(request, user_id):
    """A userId in the body must name the authenticated user."""
    if user_id and str(user_id) != str(request.user.pk):
        logger.warning(f"User {request.user.pk} sent a request on behalf of user {user_id}")
        raise PermissionDenied("You can only manage your own pre-registration")


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def join_pre_registration(request, slug):
    """
    Start a pre-registration: create the SetupIntent that saves a card.

    POST /community/<slug>/join-pre-registration/

    Body:
        email: optional billing email (defaults to the account email)

    Returns:
        clientSecret, stripeAccountId, setupIntentId, openingDate,
        customerId, platformFeePercentage
    """
    serializer = JoinPreRegistrationSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    result = pre_registration.start_pre_registration(
        slug,
        request.user,
        email=serializer.validated_data.get('email') or None,
    )
    return Response(result)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def confirm_pre_registration(request, slug):
    """
    Confirm a pre-registration after the card was saved.

    POST /community/<slug>/confirm-pre-registration/

    Body:
        userId: must match the authenticated user when given
        setupIntentId: the succeeded SetupIntent
        contactInfo: optional contact details

    Returns:
        success: bool
        openingDate: when the first charge happens
    """
    serializer = ConfirmPreRegistrationSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    _check_user_id(request, data.get('userId'))

    member = pre_registration.confirm_pre_registration(
        slug,
        request.user,
        data['setupIntentId'],
        contact_info=data.get('contactInfo'),
    )
    return Response({
        'success': True,
        'openingDate': member.community.opening_date,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def cancel_pre_registration(request, slug):
    """
    Cancel a pre-registration before the community opens.

    POST /community/<slug>/cancel-pre-registration/

    Body:
        userId: must match the authenticated user when given

    Returns:
        success: bool
        message: str
    """
    serializer = CancelPreRegistrationSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    _check_user_id(request, serializer.validated_data.get('userId'))

    pre_registration.cancel_pre_registration(slug, request.user)
    return Response({
        'success': True,
        'message': 'Pre-registration cancelled successfully',
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def membership_status(request, slug):
    """
    Get the authenticated user's membership in a community.

    GET /community/<slug>/membership/
    """
    community = pre_registration.get_community(slug)
    member = pre_registration.get_membership(community, request.user)
    return Response(CommunityMemberSerializer(member).data)


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])  # Stripe authenticates with the signature
def stripe_webhook(request):
    """
    Handle Stripe webhook events from the communities' connected accounts.

    POST /webhooks/stripe/
    """
    payload = request.body
    sig_header = request.META.get('HTTP_STRIPE_SIGNATURE')
    try:
        event = stripe.Webhook.construct_event(
            payload, sig_header, settings.STRIPE_WEBHOOK_SECRET
        )
    except ValueError as e:
        logger.error(f"Invalid payload in Stripe webhook: {str(e)}")
        return Response({'error': 'Invalid payload'}, status=status.HTTP_400_BAD_REQUEST)
    except stripe.SignatureVerificationError as e:
        logger.error(f"Invalid signature in Stripe webhook: {str(e)}")
        return Response({'error': 'Invalid signature'}, status=status.HTTP_400_BAD_REQUEST)

    try:
        handled = dispatch_event(event)
    except Exception as e:
        # A 5xx makes Stripe redeliver; handlers are idempotent.
        report_error(e, 'stripe_webhook', {'event_type': stripe_field(event, 'type')})
        return Response({'error': 'Webhook handler failed'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    return Response({'received': True, 'handled': handled})
