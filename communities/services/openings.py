"""
Opening-day reconciliation.

Communities in pre-registration whose opening date has passed are switched
to active. On the way, every pre-registered member's Stripe subscription is
checked. Billing problems of individual members never keep a community
closed; Stripe's own retries and dunning handle them.

The job is safe to run repeatedly and concurrently:
- only ``pre_registration`` communities are selected, so an opened community
  is never picked up again;
- the member checks are read-only except for members without a subscription;
- the community flip is a conditional update, and only the run that
  performed it sends the opening emails.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import stripe
from django.conf import settings
from django.utils import timezone

from utils.error_reporting import report_error, report_warning
from utils.retry import retry_call
from ..models import Community, CommunityMember
from ..stripe_utils import (
    HEALTHY_SUBSCRIPTION_STATUSES,
    is_transient_stripe_error,
    stripe_field,
    stripe_options,
)

logger = logging.getLogger(__name__)


@dataclass
class MemberResult:
    user_id: int
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    subscription_status: Optional[str] = None

    def as_dict(self):
        data = {'userId': self.user_id, 'success': self.success}
        if self.message:
            data['message'] = self.message
        if self.error:
            data['error'] = self.error
        if self.subscription_status:
            data['subscriptionStatus'] = self.subscription_status
        return data


@dataclass
class CommunityResult:
    community_id: int
    community_name: str
    success: bool
    opened: bool = False
    member_results: List[MemberResult] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def members_processed(self):
        return len(self.member_results)

    @property
    def success_count(self):
        return sum(1 for r in self.member_results if r.success)

    @property
    def fail_count(self):
        return sum(1 for r in self.member_results if not r.success)

    def as_dict(self):
        data = {
            'communityId': self.community_id,
            'communityName': self.community_name,
            'success': self.success,
        }
        if self.error:
            data['error'] = self.error
            return data
        data.update({
            'opened': self.opened,
            'membersProcessed': self.members_processed,
            'successCount': self.success_count,
            'failCount': self.fail_count,
            'memberResults': [r.as_dict() for r in self.member_results],
        })
        return data


@dataclass
class OpeningRunReport:
    results: List[CommunityResult] = field(default_factory=list)

    @property
    def processed(self):
        return len(self.results)

    @property
    def message(self):
        if not self.results:
            return 'No communities ready to open'
        return 'Community openings processed'

    def as_dict(self):
        return {
            'message': self.message,
            'processed': self.processed,
            'results': [r.as_dict() for r in self.results],
        }


def communities_ready_to_open(now=None):
    now = now or timezone.now()
    return Community.objects.filter(
        status=Community.Status.PRE_REGISTRATION,
        opening_date__lte=now,
    ).order_by('opening_date', 'pk')


def retrieve_subscription(subscription_id, options):
    """Fetch a subscription, retrying transient Stripe failures."""
    return retry_call(
        lambda: stripe.Subscription.retrieve(subscription_id, **options),
        should_retry=is_transient_stripe_error,
        max_attempts=settings.COMMUNITY_OPENING_RETRY_ATTEMPTS,
        delay=settings.COMMUNITY_OPENING_RETRY_DELAY,
        desc=f"retrieve subscription {subscription_id}",
    )


def reconcile_member(member, options):
    """Check one pre-registered member's subscription. Never raises."""
    try:
        if not member.stripe_subscription_id:
            logger.error(f"No subscription found for pre-registered member {member.pk} (user {member.user_id})")
            member.deactivate()
            return MemberResult(member.user_id, False, error='No subscription found')

        subscription = retrieve_subscription(member.stripe_subscription_id, options)
        subscription_status = stripe_field(subscription, 'status')

        if subscription_status in HEALTHY_SUBSCRIPTION_STATUSES:
            return MemberResult(
                member.user_id,
                True,
                message='Subscription in good standing',
                subscription_status=subscription_status,
            )

        report_warning(
            f"Unexpected subscription status '{subscription_status}', leaving membership unchanged",
            'reconcile_member',
            {'member_id': member.pk, 'subscription_id': member.stripe_subscription_id},
        )
        return MemberResult(
            member.user_id,
            False,
            error=f"Unexpected subscription status: {subscription_status}",
            subscription_status=subscription_status,
        )
    except Exception as e:
        report_error(e, 'reconcile_member', {
            'member_id': member.pk,
            'subscription_id': member.stripe_subscription_id,
        })
        return MemberResult(member.user_id, False, error=str(e) or type(e).__name__)


def open_community(community):
    """Reconcile one community's members and open it. Never raises."""
    result = CommunityResult(community.pk, community.name, success=True)
    try:
        options = stripe_options(community)
        members = list(
            CommunityMember.objects.filter(
                community=community,
                status=CommunityMember.Status.PRE_REGISTERED,
            ).order_by('pk')
        )

        for member in members:
            result.member_results.append(reconcile_member(member, options))

        result.opened = community.open()
        if result.opened:
            logger.info(
                f"Opened community {community.slug}: {result.success_count} ok, "
                f"{result.fail_count} failed of {result.members_processed} pre-registered"
            )
            _queue_opening_emails(community)
        else:
            logger.info(f"Community {community.slug} was already opened by another run")
    except Exception as e:
        report_error(e, 'open_community', {'community_id': community.pk})
        result.success = False
        result.error = str(e) or type(e).__name__
    return result


def _queue_opening_emails(community):
    try:
        from ..tasks import send_community_opening_emails
        send_community_opening_emails.delay(community.pk)
    except Exception as e:
        logger.warning(f"Could not queue opening emails for community {community.pk}: {e}")


def process_community_openings(now=None):
    """
    Open every pre-registration community whose opening date has passed.

    Only a failure to list the communities propagates; every community and
    every member is processed inside its own error boundary.
    """
    now = now or timezone.now()
    communities = list(communities_ready_to_open(now))

    report = OpeningRunReport()
    for community in communities:
        report.results.append(open_community(community))

    logger.info(f"Community opening run at {now.isoformat()}: {report.processed} processed")
    return report
