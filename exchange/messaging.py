"""
Chat messages, threads and unread tracking.

A message is bound either to a standalone thread or to a transaction. The
message is committed before ``post_message`` returns; delivering it to the
other participants (``exchange.delivery``) is always a separate, later step.
"""

import logging
from dataclasses import dataclass, field

from django.contrib.auth import get_user_model
from django.db import DatabaseError, transaction as db_transaction

from .exceptions import AuthorizationError, NotFoundError, TransientIOError, ValidationError
from .models import Message, Thread, Transaction

logger = logging.getLogger(__name__)

User = get_user_model()

THREAD = 'thread'
TRANSACTION = 'transaction'


def _coerce_id(value, field_name):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'Invalid {field_name}.', field=field_name)


@dataclass(frozen=True)
class MessageTarget:
    """
    Where a message goes: an existing thread, an existing transaction, or a
    new thread with the given recipients.
    """

    thread_id: int = None
    transaction_id: int = None
    recipients: tuple = field(default_factory=tuple)

    @property
    def is_new_thread(self):
        return self.thread_id is None and self.transaction_id is None

    @classmethod
    def from_event(cls, data):
        """
        Build a target from an inbound chat event.

        Accepts ``isNewThread`` + ``to``, ``t_id`` / ``transaction_id`` or
        ``thread_id``.

        Raises:
            ValidationError: If no usable target is present
        """
        if data.get('isNewThread') or data.get('is_new_thread'):
            recipients = data.get('to') or []
            if not isinstance(recipients, (list, tuple)):
                recipients = [recipients]
            if not recipients:
                raise ValidationError('A new thread needs at least one recipient.', field='to')
            return cls(recipients=tuple(_coerce_id(r, 'to') for r in recipients))

        transaction_id = data.get('t_id') or data.get('transaction_id')
        if transaction_id:
            return cls(transaction_id=_coerce_id(transaction_id, 'transaction_id'))

        thread_id = data.get('thread_id')
        if thread_id:
            return cls(thread_id=_coerce_id(thread_id, 'thread_id'))

        raise ValidationError('A thread, a transaction or a list of recipients is required.')


@dataclass(frozen=True)
class PostedMessage:
    """A persisted message together with its resolved conversation."""

    message: Message
    participants: tuple
    thread: Thread = None
    transaction: Transaction = None

    @property
    def sender(self):
        return self.message.sender

    @property
    def conversation_id(self):
        return self.thread.pk if self.thread is not None else self.transaction.pk


def _find_thread(participant_ids):
    """Return the thread whose participant set is exactly ``participant_ids``."""
    candidates = Thread.objects.filter(
        participants=participant_ids[0]
    ).prefetch_related('participants')
    for thread in candidates:
        if sorted(user.pk for user in thread.participants.all()) == participant_ids:
            return thread
    return None


def _get_or_create_thread(sender, recipient_ids):
    participant_ids = sorted({sender.pk, *recipient_ids})
    if len(participant_ids) < 2:
        raise ValidationError('A thread needs at least one other participant.', field='to')

    # Locked in pk order so concurrent first messages between the same users
    # cannot both miss the lookup below and create two threads
    users = list(
        User.objects.select_for_update().filter(pk__in=participant_ids).order_by('pk')
    )
    if len(users) != len(participant_ids):
        raise NotFoundError('One or more recipients do not exist.')

    thread = _find_thread(participant_ids)
    if thread is None:
        thread = Thread.objects.create()
        thread.participants.set(users)
        logger.info(f"Thread created. Thread ID: {thread.pk}, Participants: {participant_ids}")
    return thread, tuple(users)


def _get_thread(thread_id):
    try:
        return Thread.objects.get(pk=thread_id)
    except Thread.DoesNotExist:
        raise NotFoundError(f'Thread with ID {thread_id} does not exist.')


def _get_transaction(transaction_id):
    try:
        return Transaction.objects.select_related('creator', 'recipient').get(pk=transaction_id)
    except Transaction.DoesNotExist:
        raise NotFoundError(f'Transaction with ID {transaction_id} does not exist.')


def post_message(sender, body, target):
    """
    Persist a message on a thread or transaction.

    Args:
        sender: User sending the message
        body: Message text
        target: MessageTarget

    Returns:
        PostedMessage: The saved message and its conversation participants

    Raises:
        ValidationError: If the body is empty
        NotFoundError: If the thread, transaction or a recipient does not exist
        AuthorizationError: If sender is not part of the conversation
        TransientIOError: If the message cannot be saved
    """
    if body is None or not str(body).strip():
        raise ValidationError('Message cannot be empty.', field='message')

    thread = None
    trans = None
    try:
        with db_transaction.atomic():
            if target.transaction_id is not None:
                trans = _get_transaction(target.transaction_id)
                participants = trans.participants
            elif target.thread_id is not None:
                thread = _get_thread(target.thread_id)
                participants = tuple(thread.participants.order_by('pk'))
            else:
                thread, participants = _get_or_create_thread(sender, target.recipients)

            if sender.pk not in [user.pk for user in participants]:
                raise AuthorizationError('You are not a participant of this conversation.')

            message = Message.objects.create(
                sender=sender,
                message=body,
                thread=thread,
                transaction=trans,
            )
    except DatabaseError as e:
        logger.error(f"Error saving message from user {sender.pk}: {e}", exc_info=True)
        raise TransientIOError() from e

    logger.info(
        f"Message saved. Message ID: {message.pk}, Sender ID: {sender.pk}, "
        f"{'Thread' if thread is not None else 'Transaction'} ID: "
        f"{thread.pk if thread is not None else trans.pk}"
    )
    return PostedMessage(message=message, participants=participants, thread=thread, transaction=trans)


def _serialize_author(user, requesting_user):
    return {
        'id': user.pk,
        'name': user.display_name,
        'picture': user.picture,
        'is_me': user.pk == requesting_user.pk,
    }


def serialize_message(message, requesting_user):
    return {
        'id': message.pk,
        'message': message.message,
        'time_sent': message.time_sent,
        'thread': message.thread_id,
        'transaction': message.transaction_id,
        'author': _serialize_author(message.sender, requesting_user),
    }


def list_messages(target_id, requesting_user, kind=THREAD):
    """
    Messages of a thread or transaction, oldest first.

    Each message carries ``author.is_me`` relative to ``requesting_user``.

    Raises:
        NotFoundError: If the thread or transaction does not exist
        AuthorizationError: If requesting_user is not part of it
    """
    if kind == TRANSACTION:
        trans = _get_transaction(target_id)
        if not trans.is_participant(requesting_user):
            raise AuthorizationError('You are not a participant of this conversation.')
        queryset = Message.objects.filter(transaction=trans)
    else:
        thread = _get_thread(target_id)
        if not thread.participants.filter(pk=requesting_user.pk).exists():
            raise AuthorizationError('You are not a participant of this conversation.')
        queryset = Message.objects.filter(thread=thread)

    queryset = queryset.select_related('sender').order_by('time_sent', 'pk')
    return [serialize_message(message, requesting_user) for message in queryset]


def list_threads(user):
    """The user's threads, most recently updated first."""
    unread = set(user.unread_threads.values_list('pk', flat=True))
    threads = (
        Thread.objects
        .filter(participants=user)
        .prefetch_related('participants')
        .order_by('-last_updated')
    )
    return [
        {
            'id': thread.pk,
            'last_updated': thread.last_updated,
            'unread': thread.pk in unread,
            'participants': [
                _serialize_author(participant, user)
                for participant in thread.participants.all()
                if participant.pk != user.pk
            ],
        }
        for thread in threads
    ]


def unread_count(user):
    """Number of conversations holding messages the user has not read."""
    return user.unread_threads.count() + user.unread_transactions.count()


def mark_unread(user, posted):
    """Add the message's conversation to the user's unread set."""
    if posted.thread is not None:
        user.unread_threads.add(posted.thread)
    else:
        user.unread_transactions.add(posted.transaction)


def acknowledge(user, thread_id):
    """
    Mark a thread as read. Acknowledging a thread that is not unread is a no-op.

    Returns:
        int: The user's new unread count
    """
    user.unread_threads.remove(_coerce_id(thread_id, 'thread_id'))
    return unread_count(user)


def acknowledge_transaction(user, transaction_id):
    """Mark a transaction conversation as read; same semantics as acknowledge."""
    user.unread_transactions.remove(_coerce_id(transaction_id, 'transaction_id'))
    return unread_count(user)
