"""
Tests for email notifications.
"""

import smtplib
from unittest.mock import patch

import pytest
from django.core import mail
from django.core.mail import BadHeaderError

from exchange import notifications


@pytest.mark.django_db
class TestNotify:
    """Test sending notification emails."""

    def test_new_message_email(self, alice, bob):
        sent = notifications.notify(bob, notifications.NEW_MESSAGE, {
            'sender_name': alice.display_name,
            'message': 'Fancy a coffee?',
        })

        assert sent is True
        assert len(mail.outbox) == 1
        email = mail.outbox[0]
        assert email.to == ['bob@example.com']
        assert email.subject == 'New message from Alice'
        assert 'Hi Bob' in email.body
        assert 'Fancy a coffee?' in email.body
        assert email.from_email == 'Bazaar Team <team@shareonbazaar.eu>'

    def test_site_url_in_body(self, settings, bob):
        settings.SITE_URL = 'https://bazaar.example.org'

        notifications.notify(bob, notifications.UPDATE_SCHEDULE, {'sender_name': 'Alice'})

        assert 'https://bazaar.example.org' in mail.outbox[0].body

    def test_user_without_email_is_skipped(self, make_user):
        user = make_user('noemail', email='')

        assert notifications.notify(user, notifications.NEW_MESSAGE, {
            'sender_name': 'Alice',
            'message': 'Hi',
        }) is False
        assert mail.outbox == []

    def test_missing_context_returns_false(self, bob):
        """Test that a template placeholder without a value is reported, not raised."""
        assert notifications.notify(bob, notifications.NEW_MESSAGE, {'sender_name': 'Alice'}) is False
        assert mail.outbox == []

    def test_smtp_failure_returns_false(self, bob):
        with patch('exchange.notifications.send_mail', side_effect=smtplib.SMTPException('down')):
            sent = notifications.notify(bob, notifications.NEW_PROPOSAL, {
                'sender_name': 'Alice',
                'service': 'Knitting',
            })

        assert sent is False

    def test_newline_in_sender_name_is_flattened(self, bob):
        """Test that a multi-line display name still yields a single-line subject."""
        sent = notifications.notify(bob, notifications.NEW_MESSAGE, {
            'sender_name': 'Alice\nEvil',
            'message': 'Hi',
        })

        assert sent is True
        assert mail.outbox[0].subject == 'New message from Alice Evil'

    @pytest.mark.parametrize('error', [
        BadHeaderError("Header values can't contain newlines"),
        RuntimeError('backend misconfigured'),
    ])
    def test_unexpected_backend_error_returns_false(self, bob, error):
        with patch('exchange.notifications.send_mail', side_effect=error):
            sent = notifications.notify(bob, notifications.NEW_MESSAGE, {
                'sender_name': 'Alice',
                'message': 'Hi',
            })

        assert sent is False


def test_every_kind_has_a_template():
    kinds = {
        notifications.NEW_MESSAGE,
        notifications.UPDATE_SCHEDULE,
        notifications.NEW_PROPOSAL,
        notifications.STATUS_CHANGED,
    }

    assert kinds == set(notifications.TEMPLATES)


def test_status_changed_subject():
    class Recipient:
        display_name = 'Bob'

    subject, body = notifications.build_email(Recipient(), notifications.STATUS_CHANGED, {
        'sender_name': 'Alice',
        'service': 'Guitar lessons',
        'status': 'accepted',
    })

    assert subject == 'Your exchange with Alice is now accepted'
    assert 'Guitar lessons' in body
