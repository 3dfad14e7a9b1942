"""Errors raised by the session, routing and onboarding logic."""


class SessionError(Exception):
    """Base error. `message` is safe to show to the user."""

    code = "SESSION_ERROR"

    def __init__(self, message: str, code: str | None = None):
        self.message = message
        if code:
            self.code = code
        super().__init__(message)


class ValidationError(SessionError):
    """Caller-supplied input violates a precondition."""

    code = "VALIDATION_ERROR"


class InvalidTransitionError(ValidationError):
    """Attempt to move the onboarding flag backwards."""

    code = "INVALID_TRANSITION"


class NotAuthenticatedError(SessionError):
    """The operation needs a signed-in user and there is none."""

    code = "NOT_AUTHENTICATED"

    def __init__(self, message: str = "Please sign in first."):
        super().__init__(message)


class OperationInProgressError(SessionError):
    """Another session operation is still running."""

    code = "OPERATION_IN_PROGRESS"

    def __init__(self, operation: str):
        super().__init__(
            f"Cannot {operation} while another account operation is in progress. "
            "Please try again in a moment."
        )


class TransportError(SessionError):
    """The auth backend could not be reached or did not answer in time."""

    code = "TRANSPORT_ERROR"


class StoreError(SessionError):
    """The local store could not be written."""

    code = "STORE_ERROR"
