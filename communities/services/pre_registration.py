"""
Pre-registration for communities that have not opened yet.

A member saves a card through a SetupIntent (no charge), then gets a
subscription whose billing cycle is anchored to the community's opening
date. The membership row only exists once that subscription does: the
subscription and the row are created as a saga, and a failed insert cancels
the subscription again.

Cancellation reverses everything before the opening date. Its Stripe
cleanup is best effort; the row is deleted last so a crash midway leaves a
row that still points at whatever remains on Stripe.
"""

import logging

import stripe
from django.db import IntegrityError, transaction
from django.utils import timezone

from shared.utils import encode_contact_info
from utils.retry import poll_until
from utils.saga import Saga
from ..emails import send_pre_registration_confirmation_email
from ..exceptions import (
    AlreadyRegistered,
    InvalidState,
    MissingCustomer,
    NotFound,
    PaymentSetupIncomplete,
)
from ..fees import parse_fee_percentage, platform_fee_percentage
from ..models import Community, CommunityMember
from ..stripe_utils import (
    is_missing_resource,
    processor_error,
    stripe_field,
    stripe_id,
    stripe_options,
)

logger = logging.getLogger(__name__)

# A SetupIntent can sit in ``processing`` for a moment after the client
# confirms it (e.g. bank debits); wait a little before giving up.
SETUP_INTENT_POLL_ATTEMPTS = 4
SETUP_INTENT_POLL_DELAY = 0.5


def get_community(slug):
    try:
        return Community.objects.get(slug=slug)
    except Community.DoesNotExist:
        raise NotFound("Community not found")


def get_membership(community, user):
    try:
        return CommunityMember.objects.select_related('community', 'user').get(
            community=community, user=user
        )
    except CommunityMember.DoesNotExist:
        raise NotFound("Pre-registration not found")


def start_pre_registration(slug, user, email=None):
    """
    Create the Stripe customer and SetupIntent used to save a card.

    No membership row is created here; that happens in
    confirm_pre_registration once the card is saved.

    Returns:
        dict with the client secret and ids the frontend needs to collect
        the payment method on the community's connected account.
    """
    community = get_community(slug)

    reason = community.pre_registration_block_reason()
    if reason:
        raise InvalidState(reason)

    if CommunityMember.objects.filter(community=community, user=user).exists():
        raise AlreadyRegistered()

    fee = platform_fee_percentage(community)
    options = stripe_options(community)
    opening_date = community.opening_date.isoformat()

    def create_customer(ctx):
        return stripe.Customer.create(
            email=email or user.email,
            name=user.get_full_name() or user.username,
            metadata={
                'user_id': str(user.pk),
                'community_id': str(community.pk),
                'is_pre_registration': 'true',
            },
            **options,
        )

    def delete_customer(ctx, customer):
        stripe.Customer.delete(customer.id, **options)

    def create_setup_intent(ctx):
        customer = ctx['customer']
        return stripe.SetupIntent.create(
            customer=customer.id,
            payment_method_types=['card'],
            usage='off_session',
            metadata={
                'user_id': str(user.pk),
                'community_id': str(community.pk),
                'platform_fee_percentage': str(fee),
                'opening_date': opening_date,
                'stripe_customer_id': customer.id,
            },
            **options,
        )

    saga = Saga('start_pre_registration', {'community_id': community.pk, 'user_id': user.pk})
    saga.step('customer', create_customer, compensation=delete_customer)
    saga.step('setup_intent', create_setup_intent)

    try:
        ctx = saga.run()
    except stripe.StripeError as e:
        raise processor_error(e, 'start pre-registration') from e

    customer = ctx['customer']
    setup_intent = ctx['setup_intent']
    logger.info(
        f"Started pre-registration for user {user.pk} in community {community.slug} "
        f"(setup intent {setup_intent.id})"
    )

    return {
        'clientSecret': setup_intent.client_secret,
        'stripeAccountId': community.stripe_account_id,
        'setupIntentId': setup_intent.id,
        'openingDate': opening_date,
        'customerId': customer.id,
        'platformFeePercentage': float(fee),
    }


def _retrieve_setup_intent(setup_intent_id, options):
    """Retrieve the SetupIntent, waiting briefly while Stripe is still processing it."""
    return poll_until(
        lambda: stripe.SetupIntent.retrieve(setup_intent_id, **options),
        lambda intent: stripe_field(intent, 'status') != 'processing',
        max_attempts=SETUP_INTENT_POLL_ATTEMPTS,
        delay=SETUP_INTENT_POLL_DELAY,
        desc=f"setup intent {setup_intent_id}",
    )


def confirm_pre_registration(slug, user, setup_intent_id, contact_info=None):
    """
    Turn a succeeded SetupIntent into a pre-registered membership.

    Steps:
        1. community by slug (NotFound), still before its opening date (InvalidState)
        2. SetupIntent must have succeeded (PaymentSetupIncomplete)
        3. payment method + customer from the intent (MissingCustomer)
        4. no existing membership (AlreadyRegistered)
        5. subscription anchored to the opening date, nothing charged now
        6. membership row; on failure the subscription is cancelled
        7. confirmation email, best effort

    Returns:
        The created CommunityMember.
    """
    community = get_community(slug)

    if not setup_intent_id:
        raise PaymentSetupIncomplete("Missing setup intent")

    if not community.is_pre_registration or not community.opening_date:
        raise InvalidState("Community is not accepting pre-registrations")
    # billing_cycle_anchor must lie in the future
    if community.opening_date <= timezone.now():
        raise InvalidState("Community opening date has passed")

    options = stripe_options(community)

    try:
        setup_intent = _retrieve_setup_intent(setup_intent_id, options)
    except stripe.StripeError as e:
        raise processor_error(e, 'retrieve setup intent') from e

    intent_status = stripe_field(setup_intent, 'status')
    if intent_status != 'succeeded':
        logger.info(
            f"Setup intent {setup_intent_id} for user {user.pk} is '{intent_status}', "
            "not confirming pre-registration"
        )
        raise PaymentSetupIncomplete(setup_intent_status=intent_status)

    metadata = stripe_field(setup_intent, 'metadata') or {}
    intent_user = metadata.get('user_id')
    intent_community = metadata.get('community_id')
    if (intent_user and intent_user != str(user.pk)) or (
        intent_community and intent_community != str(community.pk)
    ):
        logger.warning(
            f"Setup intent {setup_intent_id} belongs to user {intent_user} / community "
            f"{intent_community}, not user {user.pk} / community {community.pk}"
        )
        raise InvalidState("Setup intent does not belong to this pre-registration")

    payment_method_id = stripe_id(stripe_field(setup_intent, 'payment_method'))
    customer_id = metadata.get('stripe_customer_id') or stripe_id(stripe_field(setup_intent, 'customer'))
    if not customer_id or not payment_method_id:
        raise MissingCustomer()

    if CommunityMember.objects.filter(community=community, user=user).exists():
        raise AlreadyRegistered()

    fee = parse_fee_percentage(metadata.get('platform_fee_percentage'))
    if fee is None:
        fee = platform_fee_percentage(community)
    anchor = community.opening_timestamp()

    def create_subscription(ctx):
        params = {
            'customer': customer_id,
            'items': [{'price': community.stripe_price_id}],
            'default_payment_method': payment_method_id,
            'billing_cycle_anchor': anchor,
            'proration_behavior': 'none',
            'payment_behavior': 'default_incomplete',
            'metadata': {
                'user_id': str(user.pk),
                'community_id': str(community.pk),
                'platform_fee_percentage': str(fee),
                'is_pre_registration': 'true',
            },
        }
        if fee > 0:
            params['application_fee_percent'] = float(fee)
        return stripe.Subscription.create(**params, **options)

    def cancel_subscription(ctx, subscription):
        logger.warning(
            f"Cancelling subscription {subscription.id} for user {user.pk}: "
            "membership could not be recorded"
        )
        stripe.Subscription.cancel(subscription.id, **options)

    def insert_member(ctx):
        subscription = ctx['subscription']
        try:
            with transaction.atomic():
                return CommunityMember.objects.create(
                    community=community,
                    user=user,
                    status=CommunityMember.Status.PRE_REGISTERED,
                    stripe_customer_id=customer_id,
                    stripe_subscription_id=subscription.id,
                    stripe_invoice_id=stripe_id(stripe_field(subscription, 'latest_invoice')),
                    pre_registration_payment_method_id=payment_method_id,
                    platform_fee_percentage=fee,
                    contact_info=encode_contact_info(contact_info),
                )
        except IntegrityError as e:
            raise AlreadyRegistered() from e

    saga = Saga('confirm_pre_registration', {'community_id': community.pk, 'user_id': user.pk})
    saga.step('subscription', create_subscription, compensation=cancel_subscription)
    saga.step('member', insert_member)

    try:
        ctx = saga.run()
    except stripe.StripeError as e:
        raise processor_error(e, 'create pre-registration subscription') from e

    member = ctx['member']
    logger.info(
        f"Pre-registered user {user.pk} for community {community.slug} "
        f"(subscription {member.stripe_subscription_id}, anchor {anchor})"
    )

    try:
        send_pre_registration_confirmation_email(member)
    except Exception as e:
        logger.warning(f"Pre-registration confirmation email failed for member {member.pk}: {e}")

    return member


def _cancel_subscription(subscription_id, options):
    try:
        stripe.Subscription.cancel(subscription_id, **options)
        return 'cancelled'
    except stripe.InvalidRequestError as e:
        if is_missing_resource(e):
            logger.info(f"Subscription {subscription_id} already gone")
            return 'missing'
        raise


def _void_invoice(invoice_id, options):
    """Void an open invoice, delete a draft; already void or missing is success."""
    try:
        invoice = stripe.Invoice.retrieve(invoice_id, **options)
    except stripe.InvalidRequestError as e:
        if is_missing_resource(e):
            logger.info(f"Invoice {invoice_id} not found, nothing to void")
            return 'missing'
        raise

    invoice_status = stripe_field(invoice, 'status')
    if invoice_status == 'void':
        return 'already_void'
    if invoice_status == 'draft':
        stripe.Invoice.delete(invoice_id, **options)
        return 'deleted'
    if invoice_status == 'open':
        stripe.Invoice.void_invoice(invoice_id, **options)
        return 'voided'

    logger.warning(f"Invoice {invoice_id} is '{invoice_status}', leaving it as is")
    return invoice_status


def cancel_pre_registration(slug, user):
    """
    Reverse a pre-registration before the community opens.

    Returns:
        The Saga that ran, so callers can inspect skipped cleanup steps.
    """
    community = get_community(slug)
    member = get_membership(community, user)

    if not member.is_cancellable:
        raise InvalidState("Member is not in pre-registration status")

    options = stripe_options(community)
    saga = Saga('cancel_pre_registration', {'member_id': member.pk})

    if member.stripe_subscription_id:
        saga.step(
            'cancel_subscription',
            lambda ctx: _cancel_subscription(member.stripe_subscription_id, options),
            tolerate=(stripe.StripeError,),
        )
    if member.stripe_invoice_id:
        saga.step(
            'void_invoice',
            lambda ctx: _void_invoice(member.stripe_invoice_id, options),
            tolerate=(stripe.StripeError,),
        )
    if member.pre_registration_payment_method_id:
        saga.step(
            'detach_payment_method',
            lambda ctx: stripe.PaymentMethod.detach(member.pre_registration_payment_method_id, **options),
            tolerate=(stripe.StripeError,),
        )
    if member.stripe_customer_id:
        saga.step(
            'delete_customer',
            lambda ctx: stripe.Customer.delete(member.stripe_customer_id, **options),
            tolerate=(stripe.StripeError,),
        )

    def delete_member(ctx):
        deleted, _ = CommunityMember.objects.filter(pk=member.pk).delete()
        if not deleted:
            raise NotFound("Pre-registration not found")
        return deleted

    saga.step('delete_member', delete_member)
    saga.run()

    for step_name, error in saga.skipped:
        logger.error(f"Pre-registration cancel for member {member.pk}: {step_name} failed: {error}")

    logger.info(f"Cancelled pre-registration of user {user.pk} in community {community.slug}")
    return saga
