"""
Real-time delivery of chat messages.

``ConnectionRegistry`` maps each online user to the channel name of their
WebSocket connection. ``DeliveryCoordinator`` takes a message that has
already been persisted and, for every participant other than the sender,
pushes it to their live connection (if any), emails them and marks the
conversation unread. Participants are processed independently: a failure
for one is logged and the others are still served.
"""

import logging
import threading
from dataclasses import dataclass, field

from asgiref.sync import async_to_sync
from channels.exceptions import ChannelFull
from channels.layers import get_channel_layer
from django.db import DatabaseError, transaction as db_transaction

from . import notifications
from .exceptions import TransientIOError
from .messaging import mark_unread, post_message, MessageTarget

logger = logging.getLogger(__name__)

NEW_MESSAGE_EVENT = 'new message'
CHAT_MESSAGE_TYPE = 'chat.message'


class ConnectionRegistry:
    """
    Process-wide map of user id -> channel name.

    Safe under concurrent connect/disconnect from consumer threads. The most
    recent registration for a user wins; closing an older, replaced
    connection does not remove the newer one.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._connections = {}

    def register(self, user_id, channel_name):
        """Register a connection; returns the channel name it replaced, if any."""
        with self._lock:
            previous = self._connections.get(user_id)
            self._connections[user_id] = channel_name
        if previous is not None and previous != channel_name:
            logger.info(f"Connection for user {user_id} replaced: {previous} -> {channel_name}")
        return previous

    def unregister(self, user_id, channel_name):
        """Remove the connection only if it is still the registered one."""
        with self._lock:
            if self._connections.get(user_id) != channel_name:
                return False
            del self._connections[user_id]
        return True

    def lookup(self, user_id):
        with self._lock:
            return self._connections.get(user_id)

    def clear(self):
        with self._lock:
            self._connections.clear()

    def __contains__(self, user_id):
        return self.lookup(user_id) is not None

    def __len__(self):
        with self._lock:
            return len(self._connections)


connection_registry = ConnectionRegistry()


class ChannelLayerTransport:
    """
    Sends an event to one channel through the configured channel layer.

    Delivery is best effort; there is no acknowledgement or retry.
    """

    def __init__(self, channel_layer=None):
        self._channel_layer = channel_layer

    @property
    def channel_layer(self):
        if self._channel_layer is None:
            self._channel_layer = get_channel_layer()
        return self._channel_layer

    def send(self, channel_name, payload):
        layer = self.channel_layer
        if layer is None:
            raise TransientIOError('No channel layer is configured.')
        try:
            async_to_sync(layer.send)(channel_name, {
                'type': CHAT_MESSAGE_TYPE,
                'payload': payload,
            })
        except ChannelFull as e:
            raise TransientIOError(f'Channel {channel_name} is full.') from e
        except OSError as e:
            raise TransientIOError(f'Channel layer unavailable: {e}') from e


@dataclass
class DeliveryReport:
    """What happened to each non-sender participant of one message."""

    pushed: list = field(default_factory=list)
    emailed: list = field(default_factory=list)
    marked_unread: list = field(default_factory=list)
    failures: list = field(default_factory=list)


def build_event(posted):
    """Event payload pushed to a recipient's connection."""
    message = posted.message
    sender = message.sender
    return {
        'event': NEW_MESSAGE_EVENT,
        'id': message.pk,
        'message': message.message,
        'time_sent': message.time_sent.isoformat(),
        'thread': posted.thread.pk if posted.thread is not None else None,
        'transaction': posted.transaction.pk if posted.transaction is not None else None,
        'author': {
            'id': sender.pk,
            'name': sender.display_name,
            'picture': sender.picture,
            'is_me': False,
        },
    }


class DeliveryCoordinator:
    """
    Fans out persisted messages to the other participants.

    Args:
        registry: ConnectionRegistry of live connections
        transport: Object with ``send(channel_name, payload)``
        notifier: Callable ``(recipient, kind, context) -> bool``
    """

    def __init__(self, registry=None, transport=None, notifier=None):
        self.registry = registry if registry is not None else connection_registry
        self.transport = transport if transport is not None else ChannelLayerTransport()
        self.notifier = notifier

    def fan_out(self, posted):
        """
        Deliver ``posted`` to every participant except its sender.

        Must only be called once the message is committed.

        Returns:
            DeliveryReport
        """
        report = DeliveryReport()
        event = build_event(posted)
        sender_id = posted.sender.pk

        for participant in posted.participants:
            if participant.pk == sender_id:
                continue
            self._deliver(participant, posted, event, report)

        logger.info(
            f"Message {posted.message.pk} fanned out. Pushed: {report.pushed}, "
            f"Emailed: {report.emailed}, Marked unread: {report.marked_unread}, "
            f"Failures: {len(report.failures)}"
        )
        return report

    def _deliver(self, participant, posted, event, report):
        channel_name = self.registry.lookup(participant.pk)
        if channel_name is not None:
            try:
                self.transport.send(channel_name, event)
                report.pushed.append(participant.pk)
            except TransientIOError as e:
                logger.warning(f"Push to user {participant.pk} failed: {e}")
                report.failures.append((participant.pk, 'push', str(e)))
            except Exception as e:
                logger.error(f"Unexpected error pushing to user {participant.pk}: {e}", exc_info=True)
                report.failures.append((participant.pk, 'push', str(e)))

        # Email goes out whether or not the participant is online
        notify = self.notifier or notifications.notify
        try:
            if notify(participant, notifications.NEW_MESSAGE, {
                'sender_name': posted.sender.display_name,
                'message': posted.message.message,
            }):
                report.emailed.append(participant.pk)
        except TransientIOError as e:
            logger.warning(f"Email to user {participant.pk} failed: {e}")
            report.failures.append((participant.pk, 'email', str(e)))
        except Exception as e:
            logger.error(f"Unexpected error emailing user {participant.pk}: {e}", exc_info=True)
            report.failures.append((participant.pk, 'email', str(e)))

        try:
            with db_transaction.atomic():
                mark_unread(participant, posted)
            report.marked_unread.append(participant.pk)
        except DatabaseError as e:
            logger.warning(f"Could not mark conversation unread for user {participant.pk}: {e}")
            report.failures.append((participant.pk, 'unread', str(e)))
        except Exception as e:
            logger.error(f"Unexpected error marking unread for user {participant.pk}: {e}", exc_info=True)
            report.failures.append((participant.pk, 'unread', str(e)))

    def handle_chat_event(self, sender, data):
        """
        Handle an inbound ``send message`` event from a connected client.

        The message is saved first; fan-out only runs after the save returned.

        Returns:
            tuple: (PostedMessage, DeliveryReport)

        Raises:
            ValidationError, NotFoundError, AuthorizationError, TransientIOError
        """
        target = MessageTarget.from_event(data)
        posted = post_message(sender, data.get('message'), target)
        report = self.fan_out(posted)
        return posted, report


_default_coordinator = None
_default_lock = threading.Lock()


def get_coordinator():
    """Return the process-wide coordinator, creating it on first use."""
    global _default_coordinator
    with _default_lock:
        if _default_coordinator is None:
            _default_coordinator = DeliveryCoordinator()
        return _default_coordinator
