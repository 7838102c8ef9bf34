"""
DRF exception handler for exchange service errors.

Register in settings::

    REST_FRAMEWORK = {
        'EXCEPTION_HANDLER': 'exchange.exception_handler.exchange_exception_handler',
    }
"""

import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_default_handler

from .exceptions import (
    AuthorizationError,
    ExchangeError,
    NotFoundError,
    TransientIOError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Most specific first; ExchangeError is the catch-all
_STATUS_MAP = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (TransientIOError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ExchangeError, status.HTTP_400_BAD_REQUEST),
)


def exchange_exception_handler(exc, context):
    """
    Let DRF handle its own exceptions, then map exchange errors.

    Returns None for anything else so DRF re-raises it.
    """
    response = drf_default_handler(exc, context)
    if response is not None:
        return response

    for exc_class, status_code in _STATUS_MAP:
        if isinstance(exc, exc_class):
            view = context.get('view')
            logger.warning(
                f"{exc_class.__name__} in {view.__class__.__name__ if view else 'unknown'}: {exc}"
            )
            body = {'detail': exc.message}
            if isinstance(exc, ValidationError) and exc.field:
                body = {exc.field: [exc.message]}
            return Response(body, status=status_code)

    return None
