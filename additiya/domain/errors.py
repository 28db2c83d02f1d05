"""
Client error taxonomy.

Every failure a caller can observe is one of these types, produced at the
point where the cause is known (HTTP status, storage medium, device prompt).
UI code branches on the type, never on message text.

- PersistenceError: storage medium unavailable
- AuthExpired: 401/403 or no credential; the session has already been ended
- ValidationError: local form rules failed; nothing was sent
- NetworkFailure: transport error or timeout; safe to retry
- ServerRejected: the backend refused the request with a business error
- PermissionDenied / Cancelled: silent terminations of the photo flow
- Busy: a conflicting operation is already running
"""

from typing import Any


class ClientError(Exception):
    """Base class for all errors surfaced by the client."""

    default_message = "Something went wrong. Please try again."
    retryable: bool = False
    silent: bool = False

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def user_message(self) -> str:
        """Text suitable for showing to the user."""
        return self.message


class PersistenceError(ClientError):
    default_message = "Could not access storage on this device."


class AuthExpired(ClientError):
    default_message = "Session expired. Please log in again."

    def __init__(self, message: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ValidationError(ClientError):
    default_message = "Please correct the highlighted fields."

    def __init__(self, field_errors: dict[str, str], message: str | None = None) -> None:
        super().__init__(message)
        self.field_errors = dict(field_errors)

    def __str__(self) -> str:
        fields = ", ".join(f"{k}: {v}" for k, v in self.field_errors.items())
        return f"{self.message} ({fields})" if fields else self.message


class NetworkFailure(ClientError):
    default_message = "Please check your internet connection and try again."
    retryable = True

    def __init__(self, reason: str, message: str | None = None) -> None:
        super().__init__(message)
        self.reason = reason

    def __str__(self) -> str:
        return f"{self.message} [{self.reason}]"


class ServerRejected(ClientError):
    """Business error from the backend; its message is shown verbatim when present."""

    default_message = "The request could not be completed. Please try again."

    def __init__(
        self,
        server_message: str | None = None,
        status_code: int | None = None,
        fallback: str | None = None,
    ) -> None:
        super().__init__(server_message or fallback)
        self.server_message = server_message
        self.status_code = status_code

    @classmethod
    def from_body(
        cls, body: dict[str, Any], status_code: int, fallback: str | None = None
    ) -> "ServerRejected":
        message = body.get("message")
        if not isinstance(message, str) or not message.strip():
            message = None
        return cls(message, status_code=status_code, fallback=fallback)


class PermissionDenied(ClientError):
    default_message = "Permission is required to continue."
    silent = True

    def __init__(self, kind: str, message: str | None = None) -> None:
        super().__init__(message)
        self.kind = kind


class Cancelled(ClientError):
    default_message = "Cancelled."
    silent = True


class Busy(ClientError):
    default_message = "Please wait for the current operation to finish."

    def __init__(self, operation: str, message: str | None = None) -> None:
        super().__init__(message)
        self.operation = operation
