"""
HTTP API for exchanges, conversations and reviews.

Views validate request shape with serializers and delegate every business
rule to the service modules. Service errors (``exchange.exceptions``) are
turned into responses by ``exchange.exception_handler``.
"""

import logging

from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from . import messaging, reviews, transactions
from .delivery import get_coordinator
from .messaging import MessageTarget
from .serializers import (
    MessageCreateSerializer,
    OptionalMessageSerializer,
    ReviewCreateSerializer,
    ReviewSerializer,
    ScheduleSerializer,
    TransactionProposeSerializer,
    TransactionSerializer,
    TransitionResultSerializer,
)

logger = logging.getLogger(__name__)


class ClientIPMixin:

    def get_client_ip(self, request):
        """
        Get client IP address from request.
        Handles proxy headers for accurate IP detection.
        """
        x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
        if x_forwarded_for:
            ip = x_forwarded_for.split(',')[0]
        else:
            ip = request.META.get('REMOTE_ADDR')
        return ip


class TransactionListCreateView(ClientIPMixin, APIView):
    """
    API endpoint for listing and proposing exchanges.

    GET /api/transactions/
    Success response (200):
    {
        "proposed": [<transaction>, ...],
        "upcoming": [<transaction>, ...],
        "complete": [<transaction>, ...]
    }

    POST /api/transactions/
    Request body: {
        "recipient": 2,
        "service": 1,
        "request_type": "offer",
        "message": "Could you help me with this?"
    }
    Success response (201): <transaction>

    Error responses:
    - 401: Missing or invalid credentials
    - 400: Invalid data (unknown recipient or service, self-proposal)
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, *args, **kwargs):
        groups = transactions.list_transactions(request.user)
        context = {'request': request}
        return Response({
            name: TransactionSerializer(items, many=True, context=context).data
            for name, items in groups.items()
        })

    def post(self, request, *args, **kwargs):
        serializer = TransactionProposeSerializer(data=request.data, context={'request': request})
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        trans = transactions.propose(
            creator=request.user,
            recipient=data['recipient'],
            service=data['service'],
            request_type=data['request_type'],
            message=data.get('message') or None,
        )
        logger.info(
            f"Proposal submitted over HTTP. Transaction ID: {trans.pk}, "
            f"User ID: {request.user.pk}, IP: {self.get_client_ip(request)}"
        )
        return Response(
            TransactionSerializer(trans, context={'request': request}).data,
            status=status.HTTP_201_CREATED
        )


class TransactionDetailView(APIView):
    """
    GET /api/transactions/<id>/

    Returns the transaction if the requesting user takes part in it.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, pk, *args, **kwargs):
        trans = transactions.get_transaction_for(pk, request.user)
        return Response(TransactionSerializer(trans, context={'request': request}).data)


class TransactionTransitionView(ClientIPMixin, APIView):
    """
    Base view for status transitions.

    POST /api/transactions/<id>/<action>/
    Success response (200):
    {
        "id": 1,
        "status": "accepted",
        "outcome": "applied"
    }

    ``outcome`` is "no_op" when the transaction was not in a state the
    action applies to; the response still carries the current status.
    """
    permission_classes = [IsAuthenticated]
    action = None

    def perform_transition(self, request, pk):
        raise NotImplementedError

    def post(self, request, pk, *args, **kwargs):
        result = self.perform_transition(request, pk)
        if not result.applied:
            logger.info(
                f"Transition '{self.action}' had no effect. Transaction ID: {pk}, "
                f"Status: {result.status}, User ID: {request.user.pk}, "
                f"IP: {self.get_client_ip(request)}"
            )
        return Response(TransitionResultSerializer(result).data)


class TransactionAcceptView(TransactionTransitionView):
    """Request body: {"message": "See you then!"} (message optional)"""
    action = 'accept'

    def perform_transition(self, request, pk):
        serializer = OptionalMessageSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return transactions.accept(pk, request.user, message=serializer.validated_data.get('message'))


class TransactionRejectView(TransactionTransitionView):
    action = 'reject'

    def perform_transition(self, request, pk):
        return transactions.reject(pk, request.user)


class TransactionCancelView(TransactionTransitionView):
    action = 'cancel'

    def perform_transition(self, request, pk):
        return transactions.cancel(pk, request.user)


class TransactionConfirmView(TransactionTransitionView):
    action = 'confirm'

    def perform_transition(self, request, pk):
        return transactions.confirm_exchange(pk, request.user)


class TransactionScheduleView(APIView):
    """
    API endpoint for setting when and where an exchange happens.

    POST /api/transactions/<id>/schedule/
    Request body: {
        "happened_at": "2025-12-10T14:00:00Z",
        "location": {"latitude": 52.52, "longitude": 13.40, "name": "Cafe"}
    }
    Either field may be omitted, but not both.

    Success response (200): <transaction>
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, pk, *args, **kwargs):
        serializer = ScheduleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        location = None
        if 'location' in data:
            location = transactions.Location(
                latitude=data['location']['latitude'],
                longitude=data['location']['longitude'],
                name=data['location'].get('name', ''),
            )

        trans = transactions.schedule(
            pk,
            request.user,
            happened_at=data.get('happened_at'),
            location=location,
        )
        return Response(TransactionSerializer(trans, context={'request': request}).data)


class ConversationMessagesView(APIView):
    """
    Base view for reading and posting messages in one conversation.

    GET returns messages oldest first, each with ``author.is_me``.
    POST saves the message, then delivers it to the other participants.
    """
    permission_classes = [IsAuthenticated]
    kind = None

    def get_target(self, pk):
        raise NotImplementedError

    def get(self, request, pk, *args, **kwargs):
        return Response(messaging.list_messages(pk, request.user, kind=self.kind))

    def post(self, request, pk, *args, **kwargs):
        serializer = MessageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        posted = messaging.post_message(
            request.user,
            serializer.validated_data['message'],
            self.get_target(pk),
        )
        get_coordinator().fan_out(posted)
        return Response(
            messaging.serialize_message(posted.message, request.user),
            status=status.HTTP_201_CREATED
        )


class TransactionMessagesView(ConversationMessagesView):
    kind = messaging.TRANSACTION

    def get_target(self, pk):
        return MessageTarget(transaction_id=pk)


class ThreadMessagesView(ConversationMessagesView):
    kind = messaging.THREAD

    def get_target(self, pk):
        return MessageTarget(thread_id=pk)


class ThreadListView(APIView):
    """
    GET /api/threads/
    The user's threads, most recently updated first, with an ``unread`` flag.

    POST /api/threads/
    Request body: {"to": [2, 3], "message": "Hi both!"}
    Starts a thread with the given users, or reuses the existing thread with
    exactly the same participants.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, *args, **kwargs):
        return Response(messaging.list_threads(request.user))

    def post(self, request, *args, **kwargs):
        serializer = MessageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        target = MessageTarget.from_event({
            'isNewThread': True,
            'to': request.data.get('to'),
        })
        posted = messaging.post_message(request.user, serializer.validated_data['message'], target)
        get_coordinator().fan_out(posted)
        return Response(
            messaging.serialize_message(posted.message, request.user),
            status=status.HTTP_201_CREATED
        )


class ThreadAcknowledgeView(APIView):
    """
    POST /api/threads/<id>/ack/
    Success response (200): {"unread": 0}
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, pk, *args, **kwargs):
        return Response({'unread': messaging.acknowledge(request.user, pk)})


class TransactionAcknowledgeView(APIView):
    """
    POST /api/transactions/<id>/ack/
    Success response (200): {"unread": 0}
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, pk, *args, **kwargs):
        return Response({'unread': messaging.acknowledge_transaction(request.user, pk)})


class UnreadCountView(APIView):
    """
    GET /api/unread/
    Success response (200): {"unread": 2}
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, *args, **kwargs):
        return Response({'unread': messaging.unread_count(request.user)})


class TransactionReviewView(ClientIPMixin, APIView):
    """
    API endpoint for exchange reviews.

    GET /api/transactions/<id>/reviews/
    Returns one of:
    - {"curr_user_has_review": false}
    - {"partner_has_review": false}
    - {"review": {"author": {...}, "text": "...", "rating": 5, ...}}

    POST /api/transactions/<id>/reviews/
    Request body: {"rating": 5, "text": "Great exchange"}
    Success response (201): <review>

    Error responses:
    - 400: Invalid rating or text, exchange not complete, duplicate review
    - 403: Not a participant of the exchange
    - 404: Transaction does not exist
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, pk, *args, **kwargs):
        return Response(reviews.get_review_view(pk, request.user))

    def post(self, request, pk, *args, **kwargs):
        serializer = ReviewCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        review = reviews.submit_review(
            pk,
            request.user,
            serializer.validated_data['rating'],
            serializer.validated_data['text'],
        )
        logger.info(
            f"Review submitted over HTTP. Review ID: {review.pk}, "
            f"User ID: {request.user.pk}, IP: {self.get_client_ip(request)}"
        )
        return Response(ReviewSerializer(review).data, status=status.HTTP_201_CREATED)
