"""
Domain error taxonomy.

Every failure a ride or chat operation can report is a ``RideError``
subclass carrying a stable ``code`` and the HTTP status the REST layer maps
it to.  The realtime layer renders the same exceptions as ``error`` events.
"""


class RideError(Exception):
    """Base class for all domain failures."""

    code = "RIDE_ERROR"
    status_code = 400
    default_message = "Ride operation failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class RideNotFoundError(RideError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Ride not found"


class ForbiddenError(RideError):
    code = "FORBIDDEN"
    status_code = 403
    default_message = "Access denied"


class InvalidStateError(RideError):
    code = "INVALID_STATE"
    status_code = 409
    default_message = "Operation not allowed in the ride's current state"


class InvalidInputError(RideError):
    code = "INVALID_INPUT"
    status_code = 400
    default_message = "Invalid input"


class AlreadyRequestedError(RideError):
    code = "ALREADY_REQUESTED"
    default_message = "Already requested/confirmed"


class SelfRequestError(RideError):
    code = "SELF_REQUEST"
    default_message = "Cannot request your own ride"


class GenderMismatchError(RideError):
    code = "GENDER_MISMATCH"
    status_code = 403
    default_message = "This ride is restricted to another gender"


class NotRequestedError(RideError):
    code = "NOT_REQUESTED"
    default_message = "User did not request this ride"


class NoPendingRequestError(RideError):
    code = "NO_PENDING_REQUEST"
    default_message = "No pending request to cancel"


class NoSeatsLeftError(RideError):
    code = "NO_SEATS_LEFT"
    status_code = 409
    default_message = "No seats available"


class UnauthenticatedError(RideError):
    code = "UNAUTHENTICATED"
    status_code = 401
    default_message = "Invalid or expired token"


class UnauthorizedError(RideError):
    code = "UNAUTHORIZED"
    status_code = 403
    default_message = "Not authorized"
