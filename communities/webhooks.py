"""
Stripe webhook handlers for community memberships.

Events arrive from the communities' connected accounts. Handlers are
idempotent: Stripe retries deliveries, and a replayed event finds the
membership already in its target state.
"""

import logging

from django.db import transaction
from django.db.models import F

from .emails import send_pre_registration_payment_failed_email
from .models import Community, CommunityMember
from .stripe_utils import stripe_field, stripe_id

logger = logging.getLogger(__name__)


def get_invoice_subscription_id(invoice):
    """
    Subscription id of an invoice.

    Newer API versions moved it under ``parent.subscription_details``.
    """
    subscription = stripe_field(invoice, 'subscription')
    if subscription:
        return stripe_id(subscription)
    parent = stripe_field(invoice, 'parent')
    details = stripe_field(parent, 'subscription_details')
    return stripe_id(stripe_field(details, 'subscription'))


def get_member_for_subscription(subscription_id):
    if not subscription_id:
        return None
    return (
        CommunityMember.objects
        .select_related('community', 'user')
        .filter(stripe_subscription_id=subscription_id)
        .first()
    )


def handle_invoice_paid(invoice):
    """
    Handle invoice.paid.

    The first paid invoice of a pre-registered member makes the membership
    active and counts the member towards the community's size.
    """
    subscription_id = get_invoice_subscription_id(invoice)
    member = get_member_for_subscription(subscription_id)
    if member is None:
        logger.debug(f"invoice.paid for unknown subscription {subscription_id}, ignoring")
        return

    if member.status != CommunityMember.Status.PRE_REGISTERED:
        logger.debug(f"invoice.paid for member {member.pk} in status {member.status}, nothing to do")
        return

    with transaction.atomic():
        if member.transition_to(
            CommunityMember.Status.ACTIVE,
            stripe_invoice_id=stripe_field(invoice, 'id'),
        ):
            Community.objects.filter(pk=member.community_id).update(
                active_member_count=F('active_member_count') + 1
            )
            logger.info(
                f"Activated member {member.pk} of community {member.community.slug} "
                f"after invoice {stripe_field(invoice, 'id')}"
            )


def handle_invoice_payment_failed(invoice):
    """
    Handle invoice.payment_failed.

    Records the failing invoice and asks the member to update their card.
    Status is left alone; Stripe's retry schedule decides what happens next.
    """
    subscription_id = get_invoice_subscription_id(invoice)
    member = get_member_for_subscription(subscription_id)
    if member is None:
        return

    if member.status not in (CommunityMember.Status.PRE_REGISTERED, CommunityMember.Status.ACTIVE):
        return

    invoice_id = stripe_field(invoice, 'id')
    if invoice_id and member.stripe_invoice_id != invoice_id:
        CommunityMember.objects.filter(pk=member.pk).update(stripe_invoice_id=invoice_id)
        member.stripe_invoice_id = invoice_id

    logger.warning(f"Payment failed for member {member.pk} (invoice {invoice_id})")

    last_error = stripe_field(stripe_field(invoice, 'last_finalization_error'), 'message')
    try:
        send_pre_registration_payment_failed_email(member, failure_reason=last_error)
    except Exception as e:
        logger.warning(f"Payment failed email for member {member.pk} could not be sent: {e}")


def handle_subscription_deleted(subscription):
    """Handle customer.subscription.deleted: the membership ends."""
    member = get_member_for_subscription(stripe_field(subscription, 'id'))
    if member is None:
        logger.debug("Deletion for unknown subscription, ignoring")
        return

    if member.status == CommunityMember.Status.INACTIVE:
        return

    was_active = member.status == CommunityMember.Status.ACTIVE
    with transaction.atomic():
        if member.deactivate() and was_active:
            Community.objects.filter(pk=member.community_id, active_member_count__gt=0).update(
                active_member_count=F('active_member_count') - 1
            )
    logger.info(f"Deactivated member {member.pk} after subscription {member.stripe_subscription_id} ended")


EVENT_HANDLERS = {
    'invoice.paid': handle_invoice_paid,
    'invoice.payment_failed': handle_invoice_payment_failed,
    'customer.subscription.deleted': handle_subscription_deleted,
}


def dispatch_event(event):
    """Route a verified Stripe event to its handler. Returns True if handled."""
    event_type = stripe_field(event, 'type')
    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        logger.debug(f"Ignoring Stripe event {event_type}")
        return False
    data = stripe_field(event, 'data')
    handler(stripe_field(data, 'object'))
    return True
