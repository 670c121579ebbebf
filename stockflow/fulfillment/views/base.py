"""
Shared response helpers for the fulfillment views.
"""

import logging
from rest_framework import status
from rest_framework.response import Response

from ..exceptions import BusinessException

logger = logging.getLogger(__name__)


def actor_id(request) -> str:
    """Identity recorded on packages, transports, returns and audit records."""
    return str(request.user.pk)


def validation_error_response(errors) -> Response:
    return Response({
        'message': 'Validation failed',
        'errors': errors
    }, status=status.HTTP_400_BAD_REQUEST)


def error_response(exc: Exception) -> Response:
    """
    Map a service exception to a JSON error response.

    Business errors carry their own status; anything else is logged and
    reported as a 500 without internal details.
    """
    if isinstance(exc, BusinessException):
        return Response({
            'message': exc.message,
            'code': exc.code,
            'details': exc.details
        }, status=exc.http_status)

    logger.exception("Unexpected error while handling request")
    return Response({
        'message': 'Internal server error'
    }, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
