import logging

from rest_framework import exceptions
from rest_framework.response import Response
from rest_framework.views import exception_handler

from .errors import ERPError, StorageError, ValidationError

logger = logging.getLogger(__name__)


def api_exception_handler(exc, context):
    """
    Render service errors as {"error": ..., "kind": ...}.

    Serializer failures are reported with kind ValidationError so that every
    rejected request carries an inspectable kind.
    """
    if isinstance(exc, ERPError):
        if isinstance(exc, StorageError):
            logger.error('Storage failure in %s: %s', type(context.get('view')).__name__, exc.message)
        return Response({'error': exc.message, 'kind': exc.kind}, status=exc.status_code)

    response = exception_handler(exc, context)
    if response is not None and isinstance(exc, exceptions.ValidationError):
        response.data = {
            'error': 'Invalid request',
            'kind': ValidationError.kind,
            'fields': response.data,
        }
    return response
