"""
Shared fixtures for the exchange test suite.
"""

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from exchange.delivery import connection_registry
from exchange.models import Skill, Transaction

User = get_user_model()


@pytest.fixture(autouse=True)
def clear_connections():
    """Reset the process-wide connection registry around every test."""
    connection_registry.clear()
    yield
    connection_registry.clear()


@pytest.fixture
def api_client():
    """Provide API client for testing."""
    return APIClient()


@pytest.fixture
def make_user(db):
    """Factory fixture creating users with unique usernames and emails."""
    counter = {'value': 0}

    def _make(username=None, **kwargs):
        counter['value'] += 1
        username = username or f"user{counter['value']}"
        kwargs.setdefault('email', f'{username}@example.com')
        kwargs.setdefault('name', username.capitalize())
        return User.objects.create_user(username=username, password='testpass123', **kwargs)

    return _make


@pytest.fixture
def alice(make_user):
    return make_user('alice')


@pytest.fixture
def bob(make_user):
    return make_user('bob')


@pytest.fixture
def carol(make_user):
    return make_user('carol')


@pytest.fixture
def skill(db):
    return Skill.objects.create(name='Guitar lessons')


@pytest.fixture
def make_transaction(skill):
    """Create a transaction directly in a given status."""

    def _make(creator, recipient, status=Transaction.Status.PROPOSED, **kwargs):
        return Transaction.objects.create(
            creator=creator,
            recipient=recipient,
            service=skill,
            request_type=kwargs.pop('request_type', Transaction.RequestType.OFFER),
            status=status,
            **kwargs
        )

    return _make


@pytest.fixture
def auth_client():
    """Return an APIClient authenticated as the given user with a JWT."""

    def _make(user):
        client = APIClient()
        token = str(RefreshToken.for_user(user).access_token)
        client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
        return client

    return _make


class RecordingTransport:
    """Transport double that records pushes instead of using a channel layer."""

    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = set(fail_for)

    def send(self, channel_name, payload):
        from exchange.exceptions import TransientIOError

        if channel_name in self.fail_for:
            raise TransientIOError(f'{channel_name} unreachable')
        self.sent.append((channel_name, payload))


@pytest.fixture
def transport():
    return RecordingTransport()
