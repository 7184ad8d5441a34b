"""Domain errors raised by the date request lifecycle."""

from typing import Optional


class DateRequestError(Exception):
    """Base class for lifecycle errors surfaced to callers."""

    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class AuthorizationError(DateRequestError):
    """Actor is not a valid party for the action."""
    status_code = 403


class NotFoundError(DateRequestError):
    """Request ID does not resolve."""
    status_code = 404


class InvalidStateError(DateRequestError):
    """Action attempted from a state that forbids it."""
    status_code = 400


class ExpiredError(DateRequestError):
    """Approval attempted after the request expired."""
    status_code = 400


class ValidationError(DateRequestError):
    """Input rejected before touching storage."""
    status_code = 400


class PaymentGatewayError(DateRequestError):
    """
    Failure reported by the payment processor.

    Carries the request and operation so the call can be retried by hand.
    """

    status_code = 502

    def __init__(
        self,
        message: str,
        code: str = "PROVIDER_ERROR",
        retryable: bool = False,
        request_id: Optional[str] = None,
        operation: Optional[str] = None,
    ):
        super().__init__(message)
        self.code = code
        self.retryable = retryable
        self.request_id = request_id
        self.operation = operation
