"""
End-to-end exchange scenarios across the state machine, messaging and delivery.
"""

import pytest

from exchange import messaging, transactions
from exchange.delivery import ConnectionRegistry, DeliveryCoordinator
from exchange.messaging import MessageTarget
from exchange.models import Transaction
from exchange.transactions import Outcome

Status = Transaction.Status


@pytest.mark.django_db
def test_full_exchange_lifecycle(alice, bob, skill):
    """Propose, accept, both confirm, then a late confirmation is a no-op."""
    trans = transactions.propose(alice, bob, skill, Transaction.RequestType.OFFER)
    assert transactions.get_status(trans.pk) == Status.PROPOSED

    assert transactions.accept(trans.pk, bob).status == Status.ACCEPTED
    assert transactions.confirm_exchange(trans.pk, alice).status == Status.SENDER_ACK
    assert transactions.confirm_exchange(trans.pk, bob).status == Status.COMPLETE

    late = transactions.confirm_exchange(trans.pk, alice)

    assert late.outcome is Outcome.NO_OP
    assert late.status == Status.COMPLETE


@pytest.mark.django_db
def test_cancelled_proposal_cannot_be_accepted(alice, bob, skill):
    trans = transactions.propose(alice, bob, skill, Transaction.RequestType.REQUEST)

    assert transactions.cancel(trans.pk, alice).status == Status.CANCELLED

    result = transactions.accept(trans.pk, bob)

    assert result.outcome is Outcome.NO_OP
    assert result.status == Status.CANCELLED


@pytest.mark.django_db
def test_thread_message_pushed_to_connected_participant_only(alice, bob, transport):
    """B is online and A is the sender: only B is pushed and B's unread grows by one."""
    first = messaging.post_message(alice, 'Hi', MessageTarget(recipients=(bob.pk,)))
    registry = ConnectionRegistry()
    registry.register(bob.pk, 'bob-chan')
    coordinator = DeliveryCoordinator(registry=registry, transport=transport)
    unread_before = messaging.unread_count(bob)

    posted = messaging.post_message(alice, 'Are we still on?', MessageTarget(thread_id=first.thread.pk))
    coordinator.fan_out(posted)

    assert [channel for channel, _ in transport.sent] == ['bob-chan']
    assert transport.sent[0][1]['message'] == 'Are we still on?'
    assert messaging.unread_count(bob) == unread_before + 1
    assert messaging.unread_count(alice) == 0
