"""
Builders shared by the community tests.

Stripe objects are plain namespaces carrying only the fields the code reads,
so a missing field shows up as None rather than as a truthy mock.
"""
from datetime import timedelta
from types import SimpleNamespace

from django.contrib.auth import get_user_model
from django.utils import timezone

from communities.models import Community, CommunityMember

User = get_user_model()


def make_user(username='dancer', **kwargs):
    kwargs.setdefault('email', f'{username}@example.com')
    kwargs.setdefault('password', 'testpass123')
    return User.objects.create_user(username=username, **kwargs)


def make_community(slug='salsa-club', **overrides):
    fields = {
        'name': 'Salsa Club',
        'slug': slug,
        'description': 'Weekly salsa classes and socials.',
        'status': Community.Status.PRE_REGISTRATION,
        'opening_date': timezone.now() + timedelta(days=14),
        'stripe_account_id': 'acct_test123',
        'stripe_price_id': 'price_test123',
        'membership_price': 2500,
        'currency': 'eur',
    }
    fields.update(overrides)
    return Community.objects.create(**fields)


def make_member(community, user, **overrides):
    fields = {
        'community': community,
        'user': user,
        'status': CommunityMember.Status.PRE_REGISTERED,
        'stripe_customer_id': f'cus_{user.username}',
        'stripe_subscription_id': f'sub_{user.username}',
        'stripe_invoice_id': f'in_{user.username}',
        'pre_registration_payment_method_id': f'pm_{user.username}',
    }
    fields.update(overrides)
    return CommunityMember.objects.create(**fields)


def stripe_obj(**fields):
    return SimpleNamespace(**fields)


def setup_intent(user, community, status='succeeded', **overrides):
    metadata = {
        'user_id': str(user.pk),
        'community_id': str(community.pk),
        'platform_fee_percentage': '0',
        'stripe_customer_id': 'cus_new',
    }
    metadata.update(overrides.pop('metadata', {}))
    fields = {
        'id': 'seti_test123',
        'status': status,
        'payment_method': 'pm_new',
        'customer': 'cus_new',
        'metadata': metadata,
    }
    fields.update(overrides)
    return stripe_obj(**fields)
