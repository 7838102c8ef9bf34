"""
Tests for the transaction lifecycle state machine.

Test Coverage:
- Proposals (validation, initial message, notification)
- Every valid transition and its authorization rule
- Ineffective transitions reported as no-ops, never raised
- Scheduling (time, location, notification, validation)
- Listing and grouping of a user's transactions
"""

from datetime import timedelta

import pytest
from django.core import mail
from django.utils import timezone

from exchange import transactions
from exchange.exceptions import AuthorizationError, NotFoundError, ValidationError
from exchange.models import Message, Transaction
from exchange.transactions import Location, Outcome

Status = Transaction.Status


# ============================================================================
# Proposals
# ============================================================================

@pytest.mark.django_db
class TestPropose:
    """Test creating transactions in the proposed state."""

    def test_propose_creates_proposed_transaction(self, alice, bob, skill):
        """Test that a proposal is stored with status proposed."""
        trans = transactions.propose(alice, bob, skill, Transaction.RequestType.OFFER)

        trans.refresh_from_db()
        assert trans.status == Status.PROPOSED
        assert trans.creator == alice
        assert trans.recipient == bob
        assert trans.service == skill
        assert trans.request_type == 'offer'

    def test_propose_without_message_emails_recipient(self, alice, bob, skill):
        """Test that the recipient is told about a proposal without a message."""
        transactions.propose(alice, bob, skill, Transaction.RequestType.REQUEST)

        assert len(mail.outbox) == 1
        assert mail.outbox[0].to == ['bob@example.com']
        assert 'Guitar lessons' in mail.outbox[0].subject

    def test_propose_with_message_stores_message_on_transaction(self, alice, bob, skill):
        """Test that the initial message is bound to the new transaction."""
        trans = transactions.propose(
            alice, bob, skill, Transaction.RequestType.OFFER, message='Want to jam?'
        )

        messages = list(Message.objects.filter(transaction=trans))
        assert len(messages) == 1
        assert messages[0].message == 'Want to jam?'
        assert messages[0].sender == alice
        assert messages[0].thread is None

    def test_propose_with_message_delivers_message(self, alice, bob, skill):
        """Test that the initial message is emailed and marked unread for the recipient."""
        trans = transactions.propose(
            alice, bob, skill, Transaction.RequestType.OFFER, message='Want to jam?'
        )

        assert len(mail.outbox) == 1
        assert 'Want to jam?' in mail.outbox[0].body
        assert list(bob.unread_transactions.all()) == [trans]
        assert alice.unread_transactions.count() == 0

    def test_blank_message_is_ignored(self, alice, bob, skill):
        """Test that a whitespace-only initial message is not stored."""
        trans = transactions.propose(alice, bob, skill, 'offer', message='   ')

        assert trans.messages.count() == 0

    def test_propose_to_self_is_rejected(self, alice, skill):
        """Test that a user cannot propose an exchange to themselves."""
        with pytest.raises(ValidationError) as exc_info:
            transactions.propose(alice, alice, skill, 'offer')

        assert exc_info.value.field == 'recipient'
        assert Transaction.objects.count() == 0

    def test_propose_requires_service(self, alice, bob):
        """Test that a missing service is rejected before any write."""
        with pytest.raises(ValidationError) as exc_info:
            transactions.propose(alice, bob, None, 'offer')

        assert exc_info.value.field == 'service'
        assert Transaction.objects.count() == 0

    def test_propose_requires_recipient(self, alice, skill):
        """Test that a missing recipient is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            transactions.propose(alice, None, skill, 'offer')

        assert exc_info.value.field == 'recipient'

    def test_propose_rejects_unknown_request_type(self, alice, bob, skill):
        """Test that request types other than offer/request are rejected."""
        with pytest.raises(ValidationError) as exc_info:
            transactions.propose(alice, bob, skill, 'barter')

        assert exc_info.value.field == 'request_type'
        assert Transaction.objects.count() == 0


# ============================================================================
# Accept / Reject / Cancel
# ============================================================================

@pytest.mark.django_db
class TestAccept:
    """Test proposed -> accepted."""

    def test_recipient_can_accept(self, alice, bob, make_transaction):
        """Test that the recipient accepting a proposal applies."""
        trans = make_transaction(alice, bob)

        result = transactions.accept(trans.pk, bob)

        assert result.outcome is Outcome.APPLIED
        assert result.status == Status.ACCEPTED
        trans.refresh_from_db()
        assert trans.status == Status.ACCEPTED

    def test_accept_emails_creator(self, alice, bob, make_transaction):
        """Test that the creator is told the proposal was accepted."""
        trans = make_transaction(alice, bob)

        transactions.accept(trans.pk, bob)

        assert len(mail.outbox) == 1
        assert mail.outbox[0].to == ['alice@example.com']
        assert 'accepted' in mail.outbox[0].subject

    def test_accept_with_message_appends_message(self, alice, bob, make_transaction):
        """Test that the acceptance message is stored on the transaction."""
        trans = make_transaction(alice, bob)

        transactions.accept(trans.pk, bob, message='See you Saturday')

        message = trans.messages.get()
        assert message.sender == bob
        assert message.message == 'See you Saturday'
        assert list(alice.unread_transactions.all()) == [trans]

    def test_creator_cannot_accept_own_proposal(self, alice, bob, make_transaction):
        """Test that the creator accepting raises and leaves the status alone."""
        trans = make_transaction(alice, bob)

        with pytest.raises(AuthorizationError):
            transactions.accept(trans.pk, alice)

        trans.refresh_from_db()
        assert trans.status == Status.PROPOSED

    def test_non_participant_cannot_accept(self, alice, bob, carol, make_transaction):
        """Test that an outsider cannot accept."""
        trans = make_transaction(alice, bob)

        with pytest.raises(AuthorizationError):
            transactions.accept(trans.pk, carol)

        trans.refresh_from_db()
        assert trans.status == Status.PROPOSED

    def test_second_accept_is_no_op_without_message(self, alice, bob, make_transaction):
        """Test that accepting twice is a no-op and does not append a message."""
        trans = make_transaction(alice, bob)
        transactions.accept(trans.pk, bob)

        result = transactions.accept(trans.pk, bob, message='Accepting again')

        assert result.outcome is Outcome.NO_OP
        assert result.status == Status.ACCEPTED
        assert trans.messages.count() == 0

    def test_accept_cancelled_transaction_is_no_op(self, alice, bob, make_transaction):
        """Test that a cancelled transaction cannot be revived."""
        trans = make_transaction(alice, bob, status=Status.CANCELLED)

        result = transactions.accept(trans.pk, bob)

        assert result.outcome is Outcome.NO_OP
        assert result.status == Status.CANCELLED
        assert len(mail.outbox) == 0

    def test_accept_unknown_transaction_raises_not_found(self, bob):
        """Test that a missing transaction raises NotFoundError."""
        with pytest.raises(NotFoundError):
            transactions.accept(999999, bob)


@pytest.mark.django_db
class TestReject:
    """Test proposed -> rejected."""

    @pytest.mark.parametrize('actor', ['alice', 'bob'])
    def test_either_participant_can_reject(self, actor, alice, bob, make_transaction):
        """Test that both creator and recipient may reject a proposal."""
        trans = make_transaction(alice, bob)
        requester = {'alice': alice, 'bob': bob}[actor]

        result = transactions.reject(trans.pk, requester)

        assert result.applied
        assert result.status == Status.REJECTED

    def test_reject_accepted_transaction_is_no_op(self, alice, bob, make_transaction):
        """Test that only proposals can be rejected."""
        trans = make_transaction(alice, bob, status=Status.ACCEPTED)

        result = transactions.reject(trans.pk, bob)

        assert result.outcome is Outcome.NO_OP
        assert result.status == Status.ACCEPTED

    def test_non_participant_cannot_reject(self, alice, bob, carol, make_transaction):
        trans = make_transaction(alice, bob)

        with pytest.raises(AuthorizationError):
            transactions.reject(trans.pk, carol)


@pytest.mark.django_db
class TestCancel:
    """Test proposed|accepted -> cancelled."""

    @pytest.mark.parametrize('start', [Status.PROPOSED, Status.ACCEPTED])
    def test_creator_can_cancel(self, start, alice, bob, make_transaction):
        """Test that the creator can cancel a proposed or accepted exchange."""
        trans = make_transaction(alice, bob, status=start)

        result = transactions.cancel(trans.pk, alice)

        assert result.applied
        assert result.status == Status.CANCELLED

    def test_cancel_emails_recipient(self, alice, bob, make_transaction):
        trans = make_transaction(alice, bob)

        transactions.cancel(trans.pk, alice)

        assert len(mail.outbox) == 1
        assert mail.outbox[0].to == ['bob@example.com']
        assert 'cancelled' in mail.outbox[0].subject

    def test_recipient_cannot_cancel(self, alice, bob, make_transaction):
        """Test that the recipient is not allowed to cancel."""
        trans = make_transaction(alice, bob)

        with pytest.raises(AuthorizationError):
            transactions.cancel(trans.pk, bob)

        trans.refresh_from_db()
        assert trans.status == Status.PROPOSED

    @pytest.mark.parametrize('start', [Status.SENDER_ACK, Status.COMPLETE, Status.REJECTED])
    def test_cancel_after_acceptance_phase_is_no_op(self, start, alice, bob, make_transaction):
        trans = make_transaction(alice, bob, status=start)

        result = transactions.cancel(trans.pk, alice)

        assert result.outcome is Outcome.NO_OP
        assert result.status == start


# ============================================================================
# Confirmation
# ============================================================================

@pytest.mark.django_db
class TestConfirmExchange:
    """Test accepted -> *_ack -> complete."""

    def test_creator_confirms_first(self, alice, bob, make_transaction):
        """Test that the creator's confirmation records sender_ack."""
        trans = make_transaction(alice, bob, status=Status.ACCEPTED)

        result = transactions.confirm_exchange(trans.pk, alice)

        assert result.applied
        assert result.status == Status.SENDER_ACK

    def test_recipient_confirms_first(self, alice, bob, make_transaction):
        """Test that the recipient's confirmation records recipient_ack."""
        trans = make_transaction(alice, bob, status=Status.ACCEPTED)

        result = transactions.confirm_exchange(trans.pk, bob)

        assert result.applied
        assert result.status == Status.RECIPIENT_ACK

    @pytest.mark.parametrize('first,second', [('alice', 'bob'), ('bob', 'alice')])
    def test_both_confirmations_complete_exchange(self, first, second, alice, bob, make_transaction):
        """Test that the second confirmation completes the exchange in either order."""
        users = {'alice': alice, 'bob': bob}
        trans = make_transaction(alice, bob, status=Status.ACCEPTED)

        transactions.confirm_exchange(trans.pk, users[first])
        result = transactions.confirm_exchange(trans.pk, users[second])

        assert result.applied
        assert result.status == Status.COMPLETE

    def test_repeated_confirmation_is_no_op(self, alice, bob, make_transaction):
        """Test that confirming twice does not advance the exchange."""
        trans = make_transaction(alice, bob, status=Status.ACCEPTED)
        transactions.confirm_exchange(trans.pk, alice)

        result = transactions.confirm_exchange(trans.pk, alice)

        assert result.outcome is Outcome.NO_OP
        assert result.status == Status.SENDER_ACK

    @pytest.mark.parametrize('start', [Status.PROPOSED, Status.COMPLETE, Status.CANCELLED])
    def test_confirm_outside_accepted_phase_is_no_op(self, start, alice, bob, make_transaction):
        trans = make_transaction(alice, bob, status=start)

        result = transactions.confirm_exchange(trans.pk, bob)

        assert result.outcome is Outcome.NO_OP
        assert result.status == start

    def test_non_participant_cannot_confirm(self, alice, bob, carol, make_transaction):
        trans = make_transaction(alice, bob, status=Status.ACCEPTED)

        with pytest.raises(AuthorizationError):
            transactions.confirm_exchange(trans.pk, carol)


# ============================================================================
# Scheduling
# ============================================================================

@pytest.mark.django_db
class TestSchedule:
    """Test updating time and place of an exchange."""

    def test_schedule_time_only(self, alice, bob, make_transaction):
        """Test that only the time changes when only a time is given."""
        trans = make_transaction(alice, bob, status=Status.ACCEPTED)
        when = timezone.now() + timedelta(days=3)

        updated = transactions.schedule(trans.pk, bob, happened_at=when)

        assert updated.happened_at == when
        assert updated.latitude is None
        assert updated.status == Status.ACCEPTED

    def test_schedule_location_only(self, alice, bob, make_transaction):
        """Test that a location updates coordinates and place name."""
        trans = make_transaction(alice, bob)

        updated = transactions.schedule(
            trans.pk, alice, location=Location(52.52, 13.405, 'Alexanderplatz')
        )

        assert updated.latitude == 52.52
        assert updated.longitude == 13.405
        assert updated.place_name == 'Alexanderplatz'
        assert updated.happened_at is None
        assert updated.status == Status.PROPOSED

    def test_schedule_emails_other_participant(self, alice, bob, make_transaction):
        """Test that the other participant receives an update notification."""
        trans = make_transaction(alice, bob, status=Status.ACCEPTED)

        transactions.schedule(trans.pk, alice, happened_at=timezone.now())

        assert len(mail.outbox) == 1
        assert mail.outbox[0].to == ['bob@example.com']
        assert 'Alice' in mail.outbox[0].subject

    def test_schedule_requires_time_or_location(self, alice, bob, make_transaction):
        trans = make_transaction(alice, bob)

        with pytest.raises(ValidationError):
            transactions.schedule(trans.pk, alice)

    def test_schedule_rejects_invalid_latitude(self, alice, bob, make_transaction):
        """Test that out-of-range coordinates are rejected before the update."""
        trans = make_transaction(alice, bob)

        with pytest.raises(ValidationError) as exc_info:
            transactions.schedule(trans.pk, alice, location=Location(123.0, 10.0))

        assert exc_info.value.field == 'location'
        trans.refresh_from_db()
        assert trans.latitude is None

    def test_non_participant_cannot_schedule(self, alice, bob, carol, make_transaction):
        trans = make_transaction(alice, bob)

        with pytest.raises(AuthorizationError):
            transactions.schedule(trans.pk, carol, happened_at=timezone.now())

        assert len(mail.outbox) == 0


# ============================================================================
# Listing
# ============================================================================

@pytest.mark.django_db
class TestListTransactions:
    """Test grouping a user's transactions for display."""

    def test_groups_by_status(self, alice, bob, make_transaction):
        """Test that transactions land in proposed, upcoming and complete."""
        proposed = make_transaction(alice, bob)
        upcoming = make_transaction(bob, alice, status=Status.ACCEPTED)
        acked = make_transaction(alice, bob, status=Status.SENDER_ACK)
        complete = make_transaction(alice, bob, status=Status.COMPLETE)
        make_transaction(alice, bob, status=Status.REJECTED)
        make_transaction(alice, bob, status=Status.CANCELLED)

        groups = transactions.list_transactions(alice)

        assert [t.pk for t in groups['proposed']] == [proposed.pk]
        assert [t.pk for t in groups['upcoming']] == [upcoming.pk]
        assert sorted(t.pk for t in groups['complete']) == sorted([acked.pk, complete.pk])

    def test_annotates_other_person_and_message_count(self, alice, bob, skill):
        trans = transactions.propose(alice, bob, skill, 'offer', message='Hi')

        groups = transactions.list_transactions(bob)

        listed = next(t for t in groups['proposed'] if t.pk == trans.pk)
        assert listed.other_person == alice
        assert listed.message_count == 1

    def test_excludes_other_users_transactions(self, alice, bob, carol, make_transaction):
        make_transaction(alice, bob)

        groups = transactions.list_transactions(carol)

        assert groups == {'proposed': [], 'upcoming': [], 'complete': []}


@pytest.mark.django_db
def test_get_status_reads_database(alice, bob, make_transaction):
    """Test that get_status reflects changes made behind the service's back."""
    trans = make_transaction(alice, bob)
    Transaction.objects.filter(pk=trans.pk).update(status=Status.ACCEPTED)

    assert transactions.get_status(trans.pk) == Status.ACCEPTED


@pytest.mark.django_db
def test_get_transaction_for_requires_participant(alice, bob, carol, make_transaction):
    trans = make_transaction(alice, bob)

    assert transactions.get_transaction_for(trans.pk, bob) == trans
    with pytest.raises(AuthorizationError):
        transactions.get_transaction_for(trans.pk, carol)

