"""
WebSocket consumer for real-time chat.

Clients connect to ``ws/chat/`` with an authenticated session and send::

    {"event": "send message", "message": "...", "thread_id": 1}
    {"event": "send message", "message": "...", "t_id": 7}
    {"event": "send message", "message": "...", "isNewThread": true, "to": [3]}

Other participants that are online receive ``{"event": "new message", ...}``.
The sender gets ``{"event": "message sent", ...}`` or ``{"event": "error"}``.
"""

import logging

from channels.generic.websocket import JsonWebsocketConsumer

from .delivery import connection_registry, get_coordinator
from .exceptions import ExchangeError
from .messaging import serialize_message

logger = logging.getLogger(__name__)

SEND_MESSAGE_EVENT = 'send message'


class ChatConsumer(JsonWebsocketConsumer):
    """
    One instance per WebSocket connection.

    Registers the connection for its user on connect and removes it on
    disconnect; routes inbound chat events to the delivery coordinator.
    """

    def connect(self):
        user = self.scope.get('user')
        if user is None or not user.is_authenticated:
            logger.warning("Rejected unauthenticated WebSocket connection")
            self.close()
            return

        self.user = user
        # Reachable before the client learns the connection is open
        connection_registry.register(user.pk, self.channel_name)
        self.accept()
        logger.info(f"WebSocket connected. User ID: {user.pk}, Channel: {self.channel_name}")

    def disconnect(self, code):
        user = getattr(self, 'user', None)
        if user is None:
            return
        connection_registry.unregister(user.pk, self.channel_name)
        logger.info(f"WebSocket disconnected. User ID: {user.pk}, Code: {code}")

    def receive_json(self, content, **kwargs):
        if not isinstance(content, dict):
            self.send_json({'event': 'error', 'detail': 'Malformed event.'})
            return

        event = content.get('event')
        if event != SEND_MESSAGE_EVENT:
            self.send_json({'event': 'error', 'detail': f'Unknown event: {event!r}.'})
            return

        try:
            posted, _report = get_coordinator().handle_chat_event(self.user, content)
        except ExchangeError as e:
            logger.warning(f"Chat event from user {self.user.pk} failed: {e}")
            self.send_json({'event': 'error', 'detail': e.message})
            return

        payload = serialize_message(posted.message, self.user)
        payload['time_sent'] = posted.message.time_sent.isoformat()
        payload['event'] = 'message sent'
        self.send_json(payload)

    def chat_message(self, event):
        """Relay a pushed message to this connection."""
        self.send_json(event['payload'])

