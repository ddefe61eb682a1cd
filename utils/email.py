"""
Email utility module for sending HTML emails via Django's email framework.
"""
import logging
from typing import List, Optional, Union

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.utils.html import escape
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)


def html_to_text(html_content: str) -> str:
    """Plain-text fallback for an HTML body, one non-empty line per block."""
    plain_text = BeautifulSoup(html_content, 'html.parser').get_text(separator='\n')
    return '\n'.join(line.strip() for line in plain_text.split('\n') if line.strip())


def send_html_email(
    subject: str,
    html_content: str,
    recipient_email: Union[str, List[str]],
    from_email: Optional[str] = None,
    reply_to: Optional[List[str]] = None,
    fail_silently: bool = False,
) -> bool:
    """
    Send an HTML email with automatic plain-text fallback.

    Args:
        subject: Email subject line
        html_content: HTML content of the email
        recipient_email: Single email address or list of addresses
        from_email: Sender email (defaults to DEFAULT_FROM_EMAIL)
        reply_to: Optional list of reply-to addresses
        fail_silently: If True, don't raise exceptions on failure

    Returns:
        bool: True if email was sent successfully, False otherwise
    """
    try:
        sender = from_email or settings.DEFAULT_FROM_EMAIL

        if isinstance(recipient_email, str):
            recipients = [recipient_email]
        else:
            recipients = list(recipient_email)

        email = EmailMultiAlternatives(
            subject=subject,
            body=html_to_text(html_content),
            from_email=sender,
            to=recipients,
            reply_to=reply_to,
        )
        email.attach_alternative(html_content, "text/html")
        email.send(fail_silently=fail_silently)

        logger.info(f"Email sent successfully to {recipients} with subject: {subject[:50]}...")
        return True

    except Exception as e:
        logger.exception(f"Failed to send email to {recipient_email}: {e}")
        if not fail_silently:
            raise
        return False


def render_email_layout(title: str, body_html: str, preview: str = '') -> str:
    """
    Wrap a body fragment in the shared DanceHub email layout.

    ``body_html`` must already be escaped; callers build it with format_html.
    """
    return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <meta charset="utf-8">
        <meta name="viewport" content="width=device-width, initial-scale=1.0">
        <title>{escape(title)}</title>
    </head>
    <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
        <span style="display: none;">{escape(preview)}</span>
        <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
            {body_html}
            <hr style="border: none; border-top: 1px solid #e2e8f0; margin: 30px 0;">
            <p style="color: #718096; font-size: 14px;">
                DanceHub &middot; Questions? Reply to this email or contact {settings.SUPPORT_EMAIL}.
            </p>
        </div>
    </body>
    </html>
    """
