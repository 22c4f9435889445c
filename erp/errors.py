"""
Error kinds raised by the order, kitchen and billing services.

Callers branch on the class (or on ``kind`` once rendered over HTTP), never
on the message text.
"""
from rest_framework import status


class ERPError(Exception):
    kind = 'Error'
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = 'Request failed'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ERPError):
    """Malformed or missing input. Not retryable as-is."""
    kind = 'ValidationError'
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'Invalid input'


class NotFound(ERPError):
    kind = 'NotFound'
    status_code = status.HTTP_404_NOT_FOUND
    default_message = 'Not found'


class BillNotFound(NotFound):
    kind = 'BillNotFound'
    default_message = 'No bill has been generated for this order'


class Conflict(ERPError):
    """A state precondition of the operation does not hold."""
    kind = 'Conflict'
    status_code = status.HTTP_409_CONFLICT
    default_message = 'Conflicting state'


class OrderClosed(Conflict):
    kind = 'OrderClosed'
    default_message = 'Order is closed'


class AlreadyBilled(Conflict):
    kind = 'AlreadyBilled'
    default_message = 'Order has already been billed'


class IllegalTransition(Conflict):
    kind = 'IllegalTransition'
    default_message = 'Status transition is not allowed'


class NoItems(Conflict):
    kind = 'NoItems'
    default_message = 'Order has no items to bill'


class StorageError(ERPError):
    """Transient database failure. The whole operation may be retried."""
    kind = 'StorageError'
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = 'Storage is unavailable'
