"""
Platform fee schedule for community memberships.

New communities get a promotional period with no platform fee; afterwards
the fee steps down as the community grows. The percentage is captured on the
member row at registration and never recomputed for that member.
"""
from datetime import timedelta
from decimal import Decimal

from django.utils import timezone

PROMOTIONAL_PERIOD = timedelta(days=30)

# (max active members, fee percentage); the last tier has no ceiling
FEE_TIERS = (
    (50, Decimal('8.0')),
    (100, Decimal('6.0')),
    (None, Decimal('4.0')),
)


def is_promotional(community, now=None):
    now = now or timezone.now()
    if not community.created_at:
        return True
    return now - community.created_at < PROMOTIONAL_PERIOD


def platform_fee_percentage(community, now=None):
    """Fee percentage a member joining ``community`` now is billed at."""
    if is_promotional(community, now):
        return Decimal('0')
    for ceiling, fee in FEE_TIERS:
        if ceiling is None or community.active_member_count <= ceiling:
            return fee
    return FEE_TIERS[-1][1]


def parse_fee_percentage(raw):
    """Fee from Stripe metadata (a string), or None when absent or malformed."""
    if raw in (None, ''):
        return None
    try:
        fee = Decimal(str(raw))
    except ArithmeticError:
        return None
    if fee.is_nan() or fee < 0 or fee > 100:
        return None
    return fee.quantize(Decimal('0.01'))
