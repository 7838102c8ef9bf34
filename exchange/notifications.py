"""
Email notifications sent to exchange participants.

``notify`` is the single entry point. It never raises: a failed delivery is
logged and reported as ``False`` so that the action that triggered it still
succeeds.
"""

import logging
import smtplib

from django.conf import settings
from django.core.mail import BadHeaderError, send_mail

logger = logging.getLogger(__name__)

NEW_MESSAGE = 'new_message'
UPDATE_SCHEDULE = 'update_schedule'
NEW_PROPOSAL = 'new_proposal'
STATUS_CHANGED = 'status_changed'

# kind -> (subject, body); formatted with the notification context
TEMPLATES = {
    NEW_MESSAGE: (
        'New message from {sender_name}',
        'Hi {recipient_name},\n\n'
        '{sender_name} sent you a message on Bazaar:\n\n'
        '{message}\n\n'
        'Reply at {site_url}\n',
    ),
    UPDATE_SCHEDULE: (
        'Update on your exchange with {sender_name}',
        'Hi {recipient_name},\n\n'
        'Your exchange with {sender_name} has been updated! '
        'Please log on to Bazaar to review it.\n\n'
        '{site_url}\n',
    ),
    NEW_PROPOSAL: (
        '{sender_name} wants to exchange {service} with you',
        'Hi {recipient_name},\n\n'
        '{sender_name} proposed an exchange of {service}. '
        'Log on to Bazaar to accept or decline it.\n\n'
        '{site_url}\n',
    ),
    STATUS_CHANGED: (
        'Your exchange with {sender_name} is now {status}',
        'Hi {recipient_name},\n\n'
        'Your exchange of {service} with {sender_name} is now {status}.\n\n'
        '{site_url}\n',
    ),
}


def build_email(recipient, kind, context):
    """
    Return (subject, body) for a notification kind.

    Raises:
        KeyError: If kind is unknown
    """
    subject_format, body_format = TEMPLATES[kind]
    values = {
        'recipient_name': recipient.display_name,
        'site_url': getattr(settings, 'SITE_URL', ''),
    }
    values.update(context)
    # Mail headers must be a single line
    subject = ' '.join(subject_format.format(**values).split())
    return subject, body_format.format(**values)


def notify(recipient, kind, context):
    """
    Email ``recipient`` a notification of the given kind.

    Args:
        recipient: User receiving the email
        kind: One of the TEMPLATES keys
        context: Values substituted into the subject and body

    Returns:
        bool: True if the email was handed to the mail backend
    """
    if not recipient.email:
        logger.warning(f"Skipping {kind} notification: user {recipient.pk} has no email")
        return False

    try:
        subject, body = build_email(recipient, kind, context)
    except KeyError as e:
        logger.error(f"Cannot build {kind} notification for user {recipient.pk}: missing {e}")
        return False

    try:
        send_mail(
            subject,
            body,
            settings.DEFAULT_FROM_EMAIL,
            [recipient.email],
            fail_silently=False,
        )
    except (smtplib.SMTPException, BadHeaderError, OSError) as e:
        logger.warning(
            f"Failed to send {kind} notification to user {recipient.pk}: {e}"
        )
        return False
    except Exception as e:
        logger.error(
            f"Unexpected error sending {kind} notification to user {recipient.pk}: {e}",
            exc_info=True
        )
        return False

    logger.info(f"Sent {kind} notification to user {recipient.pk}")
    return True
