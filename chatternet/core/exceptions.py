"""
Messaging error taxonomy.

Every error carries a stable ``code`` (the class name) and the HTTP status the
API layer answers with. The client maps ``code`` back to the same classes, so
callers on both sides of the wire catch identical exception types.
"""

from typing import Any, Dict, Optional, Type

from fastapi import status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class MessagingError(Exception):
    """Base class for all messaging-layer errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message or self.__class__.__doc__ or self.__class__.__name__
        self.code = self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class UnauthenticatedError(MessagingError):
    """No valid principal for this request."""

    status_code = status.HTTP_401_UNAUTHORIZED


class SelfThreadError(MessagingError):
    """Cannot open a thread with yourself."""

    status_code = status.HTTP_400_BAD_REQUEST


class UnknownUserError(MessagingError):
    """User does not exist."""

    status_code = status.HTTP_404_NOT_FOUND


class EmptyMessageError(MessagingError):
    """Message text cannot be empty."""

    status_code = HTTP_422_UNPROCESSABLE


class TooLongError(MessagingError):
    """Message text is too long."""

    status_code = HTTP_422_UNPROCESSABLE


class ThreadNotFoundError(MessagingError):
    """Thread does not exist."""

    status_code = status.HTTP_404_NOT_FOUND


class NotAParticipantError(MessagingError):
    """Caller is not a participant of this thread."""

    status_code = status.HTTP_403_FORBIDDEN


class InvalidCursorError(MessagingError):
    """Malformed history cursor."""

    status_code = status.HTTP_400_BAD_REQUEST


class TransientStoreError(MessagingError):
    """Datastore temporarily unavailable, retry later."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


ERRORS_BY_CODE: Dict[str, Type[MessagingError]] = {
    cls.__name__: cls
    for cls in (
        UnauthenticatedError,
        SelfThreadError,
        UnknownUserError,
        EmptyMessageError,
        TooLongError,
        ThreadNotFoundError,
        NotAParticipantError,
        InvalidCursorError,
        TransientStoreError,
    )
}
