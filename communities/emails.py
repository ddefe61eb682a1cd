"""
Community email notifications.

Transactional mail for the pre-registration lifecycle plus the opening-day
announcement. Every sender returns True/False and never raises: email is a
side effect and must not fail the operation that triggered it.
"""

import logging
from typing import Optional

from django.conf import settings
from django.utils import timezone
from django.utils.html import format_html

from utils.email import render_email_layout, send_html_email
from .models import EmailPreference

logger = logging.getLogger(__name__)

BUTTON_STYLE = (
    "background-color: #6d28d9; color: white; padding: 12px 30px; "
    "text-decoration: none; border-radius: 5px; display: inline-block;"
)


def community_url(community, path=''):
    return f"{settings.APP_BASE_URL}/community/{community.slug}{path}"


def format_price(amount_cents, currency):
    return f"{amount_cents / 100:.2f} {currency.upper()}"


def format_opening_date(value):
    if not value:
        return 'to be announced'
    return timezone.localtime(value).strftime('%A, %B %d, %Y at %H:%M %Z')


def _member_name(user):
    return user.get_full_name() or user.username


def _recipient(member):
    return (member.user.email or '').strip()


def send_pre_registration_confirmation_email(member) -> bool:
    """Confirm a saved payment method and the deferred first charge."""
    recipient = _recipient(member)
    if not recipient:
        logger.warning(f"Member {member.id} has no email address, skipping pre-registration confirmation")
        return False

    community = member.community
    try:
        body = format_html(
            '<h1 style="color: #4c1d95;">Pre-registration confirmed!</h1>'
            '<p>Hi {},</p>'
            '<p>You have successfully pre-registered for <strong>{}</strong>. '
            'Your payment method has been saved and nothing has been charged yet.</p>'
            '<p><strong>Opening date:</strong> {}<br>'
            '<strong>Membership:</strong> {} per month, first charged on the opening date.</p>'
            '<p>You can cancel your pre-registration at any time before the opening date.</p>'
            '<p style="text-align: center; margin: 30px 0;">'
            '<a href="{}" style="{}">View community</a></p>',
            _member_name(member.user),
            community.name,
            format_opening_date(community.opening_date),
            format_price(community.membership_price, community.currency),
            community_url(community),
            BUTTON_STYLE,
        )
        html_content = render_email_layout(
            title=f"Pre-registration confirmed for {community.name}",
            body_html=body,
            preview=f"You're pre-registered for {community.name}!",
        )
        return send_html_email(
            subject=f"You're pre-registered for {community.name}",
            html_content=html_content,
            recipient_email=recipient,
            reply_to=[settings.SUPPORT_EMAIL],
            fail_silently=True,
        )
    except Exception as e:
        logger.error(f"Failed to send pre-registration confirmation to member {member.id}: {e}")
        return False


def send_community_opening_email(member) -> bool:
    """Announce that a community the member pre-registered for is open."""
    recipient = _recipient(member)
    if not recipient:
        return False

    community = member.community
    try:
        if not EmailPreference.can_send(recipient, EmailPreference.Category.COMMUNITY_UPDATES):
            logger.info(f"Member {member.id} opted out of community updates, skipping opening email")
            return False

        body = format_html(
            '<h1 style="color: #4c1d95;">{} is now open!</h1>'
            '<p>Hi {},</p>'
            '<p>The wait is over. <strong>{}</strong> has officially opened and your '
            'membership is ready. Courses, live classes and the community feed are '
            'now available.</p>'
            '<p>{}</p>'
            '<p style="text-align: center; margin: 30px 0;">'
            '<a href="{}" style="{}">Enter the community</a></p>',
            community.name,
            _member_name(member.user),
            community.name,
            community.description,
            community_url(community),
            BUTTON_STYLE,
        )
        html_content = render_email_layout(
            title=f"{community.name} is open",
            body_html=body,
            preview=f"{community.name} has officially opened",
        )
        return send_html_email(
            subject=f"{community.name} is now open!",
            html_content=html_content,
            recipient_email=recipient,
            fail_silently=True,
        )
    except Exception as e:
        logger.error(f"Failed to send opening email to member {member.id}: {e}")
        return False


def send_pre_registration_payment_failed_email(member, failure_reason: Optional[str] = None) -> bool:
    """Ask the member to update their payment method after a failed first charge."""
    recipient = _recipient(member)
    if not recipient:
        logger.warning(f"Member {member.id} has no email address, skipping payment failed email")
        return False

    community = member.community
    try:
        body = format_html(
            '<h1 style="color: #b91c1c;">Action required: payment failed</h1>'
            '<p>Hi {},</p>'
            '<p>We could not process the membership payment of {} for <strong>{}</strong>.</p>'
            '<p>{}</p>'
            '<p>Please update your payment method to keep your access.</p>'
            '<p style="text-align: center; margin: 30px 0;">'
            '<a href="{}" style="{}">Update payment method</a></p>',
            _member_name(member.user),
            format_price(community.membership_price, community.currency),
            community.name,
            f"Reason: {failure_reason}" if failure_reason else '',
            community_url(community, '/billing'),
            BUTTON_STYLE,
        )
        html_content = render_email_layout(
            title=f"Payment failed for {community.name}",
            body_html=body,
            preview=f"Action Required: Payment Failed for {community.name}",
        )
        return send_html_email(
            subject=f"Action required: payment failed for {community.name}",
            html_content=html_content,
            recipient_email=recipient,
            reply_to=[settings.SUPPORT_EMAIL],
            fail_silently=True,
        )
    except Exception as e:
        logger.error(f"Failed to send payment failed email to member {member.id}: {e}")
        return False
