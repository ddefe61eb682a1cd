import logging

from celery import shared_task

from .emails import send_community_opening_email
from .models import Community, CommunityMember
from .services.openings import process_community_openings

logger = logging.getLogger(__name__)


@shared_task(name='communities.tasks.process_community_openings_task')
def process_community_openings_task():
    """Scheduled entry point for the opening-day reconciliation job."""
    return process_community_openings().as_dict()


@shared_task(name='communities.tasks.send_community_opening_emails')
def send_community_opening_emails(community_id: int) -> int:
    """Email every pre-registered or active member that the community opened."""
    try:
        community = Community.objects.get(id=community_id)
    except Community.DoesNotExist:
        return 0

    members = (
        CommunityMember.objects
        .select_related('user', 'community')
        .filter(
            community=community,
            status__in=[CommunityMember.Status.PRE_REGISTERED, CommunityMember.Status.ACTIVE],
        )
    )

    sent = 0
    for member in members:
        if send_community_opening_email(member):
            sent += 1

    logger.info(f"Sent {sent} opening emails for community {community.slug}")
    return sent
