"""
Data model for the Bazaar exchange marketplace.

Users propose service exchanges (transactions) to each other, chat about them
in threads or on the transaction itself, and review each other once the
exchange has happened.
"""

from django.contrib.auth.models import AbstractUser
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models
from django.db.models import Q, F
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from .validators import validate_latitude, validate_longitude, validate_not_blank


class User(AbstractUser):
    """
    Custom User model extending Django's AbstractUser.

    Additional fields:
    - email: Required, unique email address
    - name: Public display name
    - picture: Optional profile picture URL
    - unread_threads: Threads holding messages the user has not read yet
    - unread_transactions: Transaction conversations with unread messages
    - created_at: Account creation timestamp
    - updated_at: Last update timestamp
    """

    email = models.EmailField(
        _('email address'),
        unique=True,
        blank=False,
        null=False,
        error_messages={
            'unique': _('A user with that email already exists.'),
        },
        help_text=_('Required. Enter a valid email address.')
    )

    name = models.CharField(
        _('name'),
        max_length=200,
        blank=True,
        default='',
        help_text=_('Public display name.')
    )

    picture = models.URLField(
        _('picture'),
        max_length=500,
        blank=True,
        default='',
        help_text=_('Optional. URL of the profile picture.')
    )

    unread_threads = models.ManyToManyField(
        'Thread',
        blank=True,
        related_name='unread_by',
        help_text=_('Threads with messages the user has not read yet')
    )

    unread_transactions = models.ManyToManyField(
        'Transaction',
        blank=True,
        related_name='unread_by',
        help_text=_('Transactions with messages the user has not read yet')
    )

    created_at = models.DateTimeField(
        _('created at'),
        auto_now_add=True,
        help_text=_('Timestamp when the account was created.')
    )

    updated_at = models.DateTimeField(
        _('updated at'),
        auto_now=True,
        help_text=_('Timestamp when the account was last updated.')
    )

    class Meta:
        verbose_name = _('user')
        verbose_name_plural = _('users')
        ordering = ['-created_at']

    def __str__(self):
        """Return email as string representation."""
        return self.email or self.username

    @property
    def display_name(self):
        return self.name or self.get_full_name() or self.username

    def save(self, *args, **kwargs):
        # Normalize email to lowercase for case-insensitive uniqueness
        if self.email:
            self.email = self.email.lower()
        super().save(*args, **kwargs)


class Skill(models.Model):
    """
    A service users can offer or request in an exchange.
    """

    name = models.CharField(
        _('name'),
        max_length=200,
        unique=True,
        validators=[validate_not_blank],
        help_text=_('Name of the skill or service')
    )

    created_at = models.DateTimeField(
        _('created at'),
        auto_now_add=True
    )

    class Meta:
        verbose_name = _('skill')
        verbose_name_plural = _('skills')
        ordering = ['name']

    def __str__(self):
        return self.name


class Transaction(models.Model):
    """
    A proposed, ongoing or finished service exchange between two users.

    Fields:
    - creator: User who proposed the exchange
    - recipient: The other party of the exchange
    - service: Skill being exchanged
    - request_type: Whether the creator offers or requests the service
    - status: Lifecycle status (see Status)
    - happened_at: Scheduled time of the exchange
    - latitude/longitude/place_name: Scheduled meeting point
    - created_at: Creation timestamp
    - updated_at: Last update timestamp

    Status changes go through exchange.transactions only, which issues
    conditional updates keyed on the expected current status.
    """

    class Status(models.TextChoices):
        PROPOSED = 'proposed', _('Proposed')
        ACCEPTED = 'accepted', _('Accepted')
        SENDER_ACK = 'sender_ack', _('Acknowledged by creator')
        RECIPIENT_ACK = 'recipient_ack', _('Acknowledged by recipient')
        COMPLETE = 'complete', _('Complete')
        REJECTED = 'rejected', _('Rejected')
        CANCELLED = 'cancelled', _('Cancelled')

    class RequestType(models.TextChoices):
        OFFER = 'offer', _('Offer')
        REQUEST = 'request', _('Request')

    TERMINAL_STATUSES = (Status.COMPLETE, Status.REJECTED, Status.CANCELLED)

    creator = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='created_transactions',
        help_text=_('User who proposed the exchange')
    )

    recipient = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='received_transactions',
        help_text=_('User the exchange was proposed to')
    )

    service = models.ForeignKey(
        Skill,
        on_delete=models.PROTECT,
        related_name='transactions',
        help_text=_('Skill being exchanged')
    )

    request_type = models.CharField(
        _('request type'),
        max_length=10,
        choices=RequestType.choices,
        help_text=_('Whether the creator offers or requests the service')
    )

    status = models.CharField(
        _('status'),
        max_length=20,
        choices=Status.choices,
        default=Status.PROPOSED,
        help_text=_('Current status of the exchange')
    )

    happened_at = models.DateTimeField(
        _('scheduled time'),
        blank=True,
        null=True,
        help_text=_('When the exchange takes place')
    )

    latitude = models.FloatField(
        _('latitude'),
        blank=True,
        null=True,
        validators=[validate_latitude]
    )

    longitude = models.FloatField(
        _('longitude'),
        blank=True,
        null=True,
        validators=[validate_longitude]
    )

    place_name = models.CharField(
        _('place name'),
        max_length=300,
        blank=True,
        default='',
        help_text=_('Name of the meeting place')
    )

    created_at = models.DateTimeField(
        _('created at'),
        auto_now_add=True
    )

    updated_at = models.DateTimeField(
        _('updated at'),
        auto_now=True
    )

    class Meta:
        verbose_name = _('transaction')
        verbose_name_plural = _('transactions')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['creator'], name='transaction_creator_idx'),
            models.Index(fields=['recipient'], name='transaction_recipient_idx'),
            models.Index(fields=['status'], name='transaction_status_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=~Q(creator=F('recipient')),
                name='transaction_distinct_participants'
            ),
        ]

    def __str__(self):
        return f"Transaction {self.pk} ({self.status}): {self.creator_id} -> {self.recipient_id}"

    @property
    def participants(self):
        """Both parties, recipient first, creator second."""
        return (self.recipient, self.creator)

    @property
    def participant_ids(self):
        return (self.recipient_id, self.creator_id)

    def is_participant(self, user):
        return user is not None and user.pk in self.participant_ids

    def other_participant(self, user):
        """Return the party of this exchange that is not ``user``."""
        return self.recipient if user.pk == self.creator_id else self.creator

    def ack_statuses_for(self, user):
        """
        Return (my_ack, partner_ack) statuses for a participant.

        The creator acknowledges as SENDER_ACK, the recipient as RECIPIENT_ACK.
        """
        if user.pk == self.creator_id:
            return self.Status.SENDER_ACK, self.Status.RECIPIENT_ACK
        return self.Status.RECIPIENT_ACK, self.Status.SENDER_ACK

    def clean(self):
        super().clean()

        if self.creator_id and self.recipient_id and self.creator_id == self.recipient_id:
            raise ValidationError({
                'recipient': _('You cannot propose an exchange to yourself.')
            })

        # Location is either fully given or absent
        if (self.latitude is None) != (self.longitude is None):
            raise ValidationError({
                'longitude': _('Latitude and longitude must be provided together.')
            })


class Thread(models.Model):
    """
    A standalone chat conversation not tied to a transaction.

    Threads are created lazily by the first message between a set of users.
    """

    participants = models.ManyToManyField(
        User,
        related_name='threads',
        help_text=_('Users taking part in the conversation')
    )

    last_updated = models.DateTimeField(
        _('last updated'),
        default=timezone.now,
        help_text=_('Time of the most recent message')
    )

    created_at = models.DateTimeField(
        _('created at'),
        auto_now_add=True
    )

    class Meta:
        verbose_name = _('thread')
        verbose_name_plural = _('threads')
        ordering = ['-last_updated']

    def __str__(self):
        return f"Thread {self.pk}"


class Message(models.Model):
    """
    A chat message, bound either to a thread or to a transaction.

    Messages are append-only: once saved they are never modified.
    """

    sender = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='messages_sent',
        help_text=_('Author of the message')
    )

    message = models.TextField(
        _('message'),
        validators=[validate_not_blank],
        help_text=_('Message body')
    )

    time_sent = models.DateTimeField(
        _('time sent'),
        default=timezone.now
    )

    thread = models.ForeignKey(
        Thread,
        on_delete=models.CASCADE,
        related_name='messages',
        blank=True,
        null=True
    )

    transaction = models.ForeignKey(
        Transaction,
        on_delete=models.CASCADE,
        related_name='messages',
        blank=True,
        null=True
    )

    class Meta:
        verbose_name = _('message')
        verbose_name_plural = _('messages')
        ordering = ['time_sent', 'pk']
        indexes = [
            models.Index(fields=['thread', 'time_sent'], name='message_thread_time_idx'),
            models.Index(fields=['transaction', 'time_sent'], name='message_transaction_time_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(thread__isnull=False, transaction__isnull=True)
                    | Q(thread__isnull=True, transaction__isnull=False)
                ),
                name='message_single_owner'
            ),
        ]

    def __str__(self):
        return f"Message {self.pk} from {self.sender_id}"

    def clean(self):
        super().clean()
        if (self.thread_id is None) == (self.transaction_id is None):
            raise ValidationError(
                _('A message belongs to exactly one thread or transaction.')
            )

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise ValidationError(_('Messages cannot be modified once sent.'))
        # The single-owner constraint is checked in clean()
        self.full_clean(validate_constraints=False)
        super().save(*args, **kwargs)


class Review(models.Model):
    """
    Review left by one party of a transaction about the other.

    Fields:
    - transaction: The exchange being reviewed
    - creator: Participant writing the review
    - rating: Integer rating from 1 to 5
    - text: Written feedback
    - time_sent: When the review was submitted
    """

    transaction = models.ForeignKey(
        Transaction,
        on_delete=models.CASCADE,
        related_name='reviews',
        help_text=_('Exchange being reviewed')
    )

    creator = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='reviews_given',
        help_text=_('User writing the review')
    )

    rating = models.PositiveSmallIntegerField(
        _('rating'),
        validators=[
            MinValueValidator(1, message=_('Rating must be at least 1.')),
            MaxValueValidator(5, message=_('Rating must be at most 5.'))
        ],
        help_text=_('Rating from 1 to 5 stars')
    )

    text = models.TextField(
        _('text'),
        validators=[validate_not_blank],
        help_text=_('Written feedback about the exchange')
    )

    time_sent = models.DateTimeField(
        _('time sent'),
        default=timezone.now
    )

    class Meta:
        verbose_name = _('review')
        verbose_name_plural = _('reviews')
        ordering = ['-time_sent']
        constraints = [
            models.UniqueConstraint(
                fields=['transaction', 'creator'],
                name='unique_review_per_transaction_creator'
            ),
        ]

    def __str__(self):
        return f"Review by {self.creator_id} on transaction {self.transaction_id} - {self.rating}★"

    def clean(self):
        """
        Validate model fields.

        Ensures:
        - Creator is a participant of the transaction
        - Text is not empty or whitespace-only

        Raises:
            ValidationError: If validation fails
        """
        super().clean()

        if self.transaction_id and self.creator_id:
            if self.creator_id not in self.transaction.participant_ids:
                raise ValidationError({
                    'creator': _('Reviewer must be a participant of the transaction.')
                })
