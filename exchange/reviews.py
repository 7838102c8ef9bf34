"""
Reviews left by exchange participants about each other.

Reviews are blind until both sides have written one: a participant only sees
their partner's review after submitting their own.
"""

import logging

from django.conf import settings
from django.db import DatabaseError, IntegrityError, transaction as db_transaction
from django.utils.timesince import timesince

from .exceptions import AuthorizationError, NotFoundError, TransientIOError, ValidationError
from .models import Review, Transaction

logger = logging.getLogger(__name__)


def _review_requires_complete():
    return getattr(settings, 'EXCHANGE_REVIEW_REQUIRES_COMPLETE', True)


def _get_transaction(transaction_id):
    try:
        return Transaction.objects.select_related('creator', 'recipient').get(pk=transaction_id)
    except Transaction.DoesNotExist:
        raise NotFoundError(f'Transaction with ID {transaction_id} does not exist.')


def submit_review(transaction_id, creator, rating, text):
    """
    Record ``creator``'s review of their exchange partner.

    Args:
        transaction_id: Transaction being reviewed
        creator: Participant writing the review
        rating: Integer from 1 to 5
        text: Written feedback

    Returns:
        Review: The saved review

    Raises:
        NotFoundError: If the transaction does not exist
        AuthorizationError: If creator is not a participant
        ValidationError: If rating/text are invalid, the exchange is not
            complete (when required), or creator already reviewed it
        TransientIOError: If the review cannot be saved
    """
    trans = _get_transaction(transaction_id)

    if not trans.is_participant(creator):
        logger.warning(
            f"Non-participant attempted review. Transaction ID: {trans.pk}, User ID: {creator.pk}"
        )
        raise AuthorizationError('You can only review exchanges you participated in.')

    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationError('Rating must be an integer between 1 and 5.', field='rating')

    if text is None or not str(text).strip():
        raise ValidationError('Review text cannot be empty.', field='text')

    if _review_requires_complete() and trans.status != Transaction.Status.COMPLETE:
        raise ValidationError(
            f'Only completed exchanges can be reviewed. This exchange is {trans.status}.',
            field='transaction'
        )

    try:
        with db_transaction.atomic():
            review = Review.objects.create(
                transaction=trans,
                creator=creator,
                rating=rating,
                text=text,
            )
    except IntegrityError:
        logger.warning(
            f"Duplicate review attempt. Transaction ID: {trans.pk}, User ID: {creator.pk}"
        )
        raise ValidationError('You have already reviewed this exchange.', field='transaction')
    except DatabaseError as e:
        logger.error(f"Error saving review for transaction {trans.pk}: {e}", exc_info=True)
        raise TransientIOError() from e

    logger.info(
        f"Review created. Review ID: {review.pk}, Transaction ID: {trans.pk}, "
        f"Creator ID: {creator.pk}, Rating: {rating}"
    )
    return review


def get_review_view(transaction_id, requesting_user):
    """
    What ``requesting_user`` may see of the reviews on a transaction.

    Returns one of:
        {'curr_user_has_review': False}
        {'partner_has_review': False}
        {'review': {author, text, rating, time_sent, timestamp}}

    Raises:
        NotFoundError: If the transaction does not exist
        AuthorizationError: If requesting_user is not a participant
    """
    trans = _get_transaction(transaction_id)
    if not trans.is_participant(requesting_user):
        raise AuthorizationError('You are not a participant of this transaction.')

    reviews = list(trans.reviews.select_related('creator'))
    own_review = next((r for r in reviews if r.creator_id == requesting_user.pk), None)
    partner_review = next((r for r in reviews if r.creator_id != requesting_user.pk), None)

    if own_review is None:
        return {'curr_user_has_review': False}

    if partner_review is None:
        return {'partner_has_review': False}

    author = partner_review.creator
    return {
        'review': {
            'author': {
                'id': author.pk,
                'name': author.display_name,
                'picture': author.picture,
            },
            'text': partner_review.text,
            'rating': partner_review.rating,
            'time_sent': partner_review.time_sent,
            'timestamp': f'{timesince(partner_review.time_sent)} ago',
        }
    }
