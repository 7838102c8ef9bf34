"""
Exception hierarchy for the exchange service layer.

These exceptions are not DRF exceptions so that the service functions can be
called from views, the WebSocket consumer and management code alike.
``exchange.exception_handler.exchange_exception_handler`` maps them to HTTP
responses:

    ValidationError     -> 400
    AuthorizationError  -> 403
    NotFoundError       -> 404
    TransientIOError    -> 503

A conditional update that matches nothing is not an error; it is reported as
``Outcome.NO_OP`` on the returned ``TransitionResult``.
"""


class ExchangeError(Exception):
    """Base class for all exchange errors."""

    default_message = 'The action could not be completed.'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ExchangeError):
    """
    A required field is missing or malformed. Raised before any write.
    """

    default_message = 'Invalid or missing data.'

    def __init__(self, message=None, field=None):
        super().__init__(message)
        self.field = field


class NotFoundError(ExchangeError):
    """The referenced transaction, thread, message or user does not exist."""

    default_message = 'The requested resource was not found.'


class AuthorizationError(ExchangeError):
    """The actor is not a legitimate party to the action."""

    default_message = 'You do not have permission to perform this action.'


class TransientIOError(ExchangeError):
    """
    Storage, email or transport hiccup.

    Surfaces to the caller when it hits the primary write; swallowed and
    logged during notification fan-out.
    """

    default_message = 'A temporary error occurred. Please try again.'
