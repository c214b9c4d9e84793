"""
Booking Service Errors

Every core operation either succeeds or raises one of these. The HTTP layer
maps `status_code` and `code` straight onto the JSON error envelope.
"""


class BookingError(Exception):
    """Base class for all lifecycle, ledger and dispatch errors"""

    status_code = 500
    code = 'BOOKING_ERROR'

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__

    def to_dict(self):
        return {
            'success': False,
            'error': self.code,
            'message': self.message
        }


class NotAuthenticated(BookingError):
    """No valid caller identity"""
    status_code = 401
    code = 'NOT_AUTHENTICATED'


class AccessDenied(BookingError):
    """Caller's role does not allow this operation"""
    status_code = 403
    code = 'ACCESS_DENIED'


class NotFound(BookingError):
    """Referenced record does not exist or has been deleted"""
    status_code = 404
    code = 'NOT_FOUND'


class PreconditionFailed(BookingError):
    """Booking is not in the state this operation requires"""
    status_code = 409
    code = 'PRECONDITION_FAILED'


class Conflict(PreconditionFailed):
    """Booking was already taken or its state changed; refresh and retry"""
    code = 'CONFLICT'


class InsufficientBalance(BookingError):
    """Requested amount exceeds the available earnings balance"""
    status_code = 400
    code = 'INSUFFICIENT_BALANCE'


class InvalidRequest(BookingError):
    """Request data failed validation"""
    status_code = 400
    code = 'INVALID_REQUEST'


class UpstreamFailure(BookingError):
    """Store or blob transport failed; the operation was rolled back and may be retried"""
    status_code = 503
    code = 'UPSTREAM_FAILURE'
