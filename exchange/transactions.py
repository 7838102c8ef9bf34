"""
Transaction lifecycle state machine.

Valid transitions:
- proposed -> accepted (recipient only)
- proposed -> rejected (either participant)
- proposed, accepted -> cancelled (creator only)
- accepted -> sender_ack / recipient_ack (the confirming participant's ack)
- recipient_ack -> complete (creator confirms), sender_ack -> complete
  (recipient confirms)
- complete, rejected, cancelled -> (terminal)

Every status change is one conditional UPDATE keyed on the expected current
status, so two parties acting at the same time race at the database and
exactly one consistent outcome wins. An update whose precondition no longer
holds matches no row; that is reported as ``Outcome.NO_OP``, not raised.
The database is the only source of truth for status: results always carry a
fresh re-read.
"""

import enum
import logging
from dataclasses import dataclass

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, transaction as db_transaction
from django.db.models import Count, Q
from django.utils import timezone

from . import notifications
from .delivery import get_coordinator
from .exceptions import AuthorizationError, NotFoundError, TransientIOError, ValidationError
from .messaging import MessageTarget, post_message
from .models import Transaction
from .validators import validate_latitude, validate_longitude

logger = logging.getLogger(__name__)

Status = Transaction.Status

# Statuses listed on a user's transactions page
VISIBLE_STATUSES = (
    Status.PROPOSED,
    Status.ACCEPTED,
    Status.RECIPIENT_ACK,
    Status.SENDER_ACK,
    Status.COMPLETE,
)

# A confirmation re-issues its batch at most this many times
MAX_ACK_ATTEMPTS = 3


class Outcome(enum.Enum):
    APPLIED = 'applied'
    NO_OP = 'no_op'


@dataclass(frozen=True)
class TransitionResult:
    """Status of a transaction after a transition attempt."""

    transaction_id: int
    status: str
    outcome: Outcome

    @property
    def applied(self):
        return self.outcome is Outcome.APPLIED


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float
    name: str = ''


def _get_transaction(transaction_id):
    try:
        return Transaction.objects.select_related(
            'creator', 'recipient', 'service'
        ).get(pk=transaction_id)
    except (Transaction.DoesNotExist, ValueError, TypeError):
        raise NotFoundError(f'Transaction with ID {transaction_id} does not exist.')


def _require_participant(trans, user):
    if not trans.is_participant(user):
        logger.warning(
            f"User {getattr(user, 'pk', None)} is not a participant of transaction {trans.pk}"
        )
        raise AuthorizationError('You are not a participant of this transaction.')


def _conditional_update(transaction_id, expected, actor_filter=None, **changes):
    """
    Apply ``changes`` only if the transaction's status is in ``expected``.

    Args:
        transaction_id: Transaction primary key
        expected: Statuses the transaction must currently be in
        actor_filter: Optional Q restricting which row may match
        **changes: Field values to set

    Returns:
        int: Number of rows changed (0 or 1)

    Raises:
        TransientIOError: If the database write fails
    """
    queryset = Transaction.objects.filter(pk=transaction_id, status__in=expected)
    if actor_filter is not None:
        queryset = queryset.filter(actor_filter)

    try:
        return queryset.update(updated_at=timezone.now(), **changes)
    except DatabaseError as e:
        logger.error(
            f"Conditional update failed for transaction {transaction_id}: {e}",
            exc_info=True
        )
        raise TransientIOError() from e


def _current_status(transaction_id):
    try:
        return Transaction.objects.values_list('status', flat=True).get(pk=transaction_id)
    except Transaction.DoesNotExist:
        raise NotFoundError(f'Transaction with ID {transaction_id} does not exist.')


def _result(transaction_id, matched):
    return TransitionResult(
        transaction_id=transaction_id,
        status=_current_status(transaction_id),
        outcome=Outcome.APPLIED if matched else Outcome.NO_OP,
    )


def _log_result(action, result, user):
    if result.applied:
        logger.info(
            f"Transaction {action}. Transaction ID: {result.transaction_id}, "
            f"New Status: {result.status}, User ID: {user.pk}"
        )
    else:
        logger.warning(
            f"Transaction {action} had no effect. Transaction ID: {result.transaction_id}, "
            f"Current Status: {result.status}, User ID: {user.pk}"
        )


def _notify_status_change(trans, actor, result):
    if not result.applied:
        return
    notifications.notify(trans.other_participant(actor), notifications.STATUS_CHANGED, {
        'sender_name': actor.display_name,
        'service': trans.service.name,
        'status': Transaction.Status(result.status).label.lower(),
    })


def _append_message(trans, sender, body):
    """Persist a message on the transaction, then fan it out."""
    posted = post_message(sender, body, MessageTarget(transaction_id=trans.pk))
    get_coordinator().fan_out(posted)
    return posted


def propose(creator, recipient, service, request_type, message=None):
    """
    Create a transaction in the proposed state.

    Args:
        creator: User proposing the exchange
        recipient: User the exchange is proposed to
        service: Skill being exchanged
        request_type: Transaction.RequestType value
        message: Optional first chat message on the transaction

    Returns:
        Transaction: The new transaction

    Raises:
        ValidationError: If service or recipient is missing or invalid
        TransientIOError: If the transaction cannot be saved
    """
    if service is None:
        raise ValidationError('A service is required.', field='service')

    if recipient is None:
        raise ValidationError('A recipient is required.', field='recipient')

    if recipient.pk == creator.pk:
        raise ValidationError('You cannot propose an exchange to yourself.', field='recipient')

    if request_type not in Transaction.RequestType.values:
        raise ValidationError(
            f"Invalid request type. Must be one of: {', '.join(Transaction.RequestType.values)}.",
            field='request_type'
        )

    if message is not None and not message.strip():
        message = None

    try:
        with db_transaction.atomic():
            trans = Transaction.objects.create(
                creator=creator,
                recipient=recipient,
                service=service,
                request_type=request_type,
                status=Status.PROPOSED,
            )
            posted = None
            if message:
                posted = post_message(creator, message, MessageTarget(transaction_id=trans.pk))
    except DatabaseError as e:
        logger.error(f"Error creating transaction: {e}, Creator ID: {creator.pk}", exc_info=True)
        raise TransientIOError() from e

    logger.info(
        f"Transaction proposed. Transaction ID: {trans.pk}, "
        f"Creator ID: {creator.pk}, Recipient ID: {recipient.pk}, "
        f"Service: {service.name}, Request Type: {request_type}"
    )

    if posted is not None:
        get_coordinator().fan_out(posted)
    else:
        notifications.notify(recipient, notifications.NEW_PROPOSAL, {
            'sender_name': creator.display_name,
            'service': service.name,
        })

    return trans


def accept(transaction_id, accepter, message=None):
    """
    proposed -> accepted.

    Only the recipient may accept. The optional message is appended only
    when the transition applied.

    Raises:
        NotFoundError: If the transaction does not exist
        AuthorizationError: If accepter is the creator or not a participant
    """
    trans = _get_transaction(transaction_id)
    _require_participant(trans, accepter)

    if accepter.pk == trans.creator_id:
        raise AuthorizationError('You cannot accept your own proposal.')

    matched = _conditional_update(
        trans.pk,
        [Status.PROPOSED],
        actor_filter=Q(recipient=accepter),
        status=Status.ACCEPTED,
    )
    result = _result(trans.pk, matched)
    _log_result('accepted', result, accepter)
    _notify_status_change(trans, accepter, result)

    if result.applied and message and message.strip():
        _append_message(trans, accepter, message)

    return result


def reject(transaction_id, requester):
    """
    proposed -> rejected.

    Raises:
        NotFoundError: If the transaction does not exist
        AuthorizationError: If requester is not a participant
    """
    trans = _get_transaction(transaction_id)
    _require_participant(trans, requester)

    matched = _conditional_update(
        trans.pk,
        [Status.PROPOSED],
        actor_filter=Q(creator=requester) | Q(recipient=requester),
        status=Status.REJECTED,
    )
    result = _result(trans.pk, matched)
    _log_result('rejected', result, requester)
    _notify_status_change(trans, requester, result)
    return result


def cancel(transaction_id, requester):
    """
    proposed, accepted -> cancelled.

    Raises:
        NotFoundError: If the transaction does not exist
        AuthorizationError: If requester is not the creator
    """
    trans = _get_transaction(transaction_id)
    _require_participant(trans, requester)

    if requester.pk != trans.creator_id:
        raise AuthorizationError('Only the creator can cancel this transaction.')

    matched = _conditional_update(
        trans.pk,
        [Status.PROPOSED, Status.ACCEPTED],
        actor_filter=Q(creator=requester),
        status=Status.CANCELLED,
    )
    result = _result(trans.pk, matched)
    _log_result('cancelled', result, requester)
    _notify_status_change(trans, requester, result)
    return result


def _acknowledgement_batch(transaction_id, my_ack, partner_ack):
    """
    Issue both acknowledgement updates; each is independently atomic.

    At most one of them can match for a given status.
    """
    completed = _conditional_update(transaction_id, [partner_ack], status=Status.COMPLETE)
    acknowledged = _conditional_update(transaction_id, [Status.ACCEPTED], status=my_ack)
    return completed + acknowledged


def confirm_exchange(transaction_id, requester):
    """
    Record that ``requester`` confirms the exchange took place.

    The first confirmation moves accepted -> the requester's ack status; a
    confirmation landing on the partner's ack status moves it to complete.
    If the partner's ack lands between our two updates, neither matches;
    the re-read then shows the partner's ack and the batch is re-issued so
    the exchange still completes.

    Returns:
        TransitionResult: Authoritative status after the batch

    Raises:
        NotFoundError: If the transaction does not exist
        AuthorizationError: If requester is not a participant
    """
    trans = _get_transaction(transaction_id)
    _require_participant(trans, requester)

    my_ack, partner_ack = trans.ack_statuses_for(requester)

    matched = 0
    status = None
    for _attempt in range(MAX_ACK_ATTEMPTS):
        matched = _acknowledgement_batch(trans.pk, my_ack, partner_ack)
        status = _current_status(trans.pk)
        if matched or status != partner_ack:
            break

    result = TransitionResult(
        transaction_id=trans.pk,
        status=status,
        outcome=Outcome.APPLIED if matched else Outcome.NO_OP,
    )
    _log_result('confirmed', result, requester)
    return result


def _validate_location(location):
    try:
        validate_latitude(location.latitude)
        validate_longitude(location.longitude)
    except DjangoValidationError as e:
        raise ValidationError(e.messages[0], field='location')


def schedule(transaction_id, requester, happened_at=None, location=None):
    """
    Update when and where the exchange happens. Status is not touched.

    Every other participant is emailed about the change.

    Args:
        transaction_id: Transaction primary key
        requester: Participant making the change
        happened_at: Optional scheduled datetime
        location: Optional Location

    Returns:
        Transaction: The updated transaction

    Raises:
        ValidationError: If neither a time nor a valid location is given
        NotFoundError: If the transaction does not exist
        AuthorizationError: If requester is not a participant
    """
    if happened_at is None and location is None:
        raise ValidationError('Provide a time or a location to schedule.')

    changes = {}
    if happened_at is not None:
        changes['happened_at'] = happened_at
    if location is not None:
        _validate_location(location)
        changes['latitude'] = location.latitude
        changes['longitude'] = location.longitude
        changes['place_name'] = location.name or ''

    trans = _get_transaction(transaction_id)
    _require_participant(trans, requester)

    try:
        Transaction.objects.filter(
            Q(creator=requester) | Q(recipient=requester),
            pk=trans.pk,
        ).update(updated_at=timezone.now(), **changes)
    except DatabaseError as e:
        logger.error(f"Error scheduling transaction {trans.pk}: {e}", exc_info=True)
        raise TransientIOError() from e

    trans.refresh_from_db()
    logger.info(
        f"Transaction scheduled. Transaction ID: {trans.pk}, "
        f"Happened At: {trans.happened_at}, Place: {trans.place_name!r}, "
        f"User ID: {requester.pk}"
    )

    for participant in trans.participants:
        if participant.pk == requester.pk:
            continue
        notifications.notify(participant, notifications.UPDATE_SCHEDULE, {
            'sender_name': requester.display_name,
        })

    return trans


def get_transaction_for(transaction_id, user):
    """
    Return a transaction the user takes part in.

    Raises:
        NotFoundError: If the transaction does not exist
        AuthorizationError: If user is not a participant
    """
    trans = _get_transaction(transaction_id)
    _require_participant(trans, user)
    return trans


def list_transactions(user):
    """
    Group the user's visible transactions for display, newest first.

    Returns:
        dict: 'proposed', 'upcoming' (accepted) and 'complete' (acknowledged
        or complete) lists; each transaction carries ``other_person`` and
        ``message_count``.
    """
    queryset = (
        Transaction.objects
        .filter(Q(creator=user) | Q(recipient=user), status__in=VISIBLE_STATUSES)
        .select_related('creator', 'recipient', 'service')
        .annotate(message_count=Count('messages'))
        .order_by('-created_at')
    )

    groups = {'proposed': [], 'upcoming': [], 'complete': []}
    for trans in queryset:
        trans.other_person = trans.other_participant(user)
        if trans.status == Status.PROPOSED:
            groups['proposed'].append(trans)
        elif trans.status == Status.ACCEPTED:
            groups['upcoming'].append(trans)
        else:
            groups['complete'].append(trans)
    return groups


def get_status(transaction_id):
    """Current status straight from the database."""
    return _current_status(transaction_id)
