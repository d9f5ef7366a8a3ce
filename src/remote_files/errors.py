"""Error taxonomy shared by the gateway, the mutation engine and the batch coordinator."""

from __future__ import annotations

GENERIC_TRANSPORT_MESSAGE = "Unable to reach the file server. Please try again."
GENERIC_UNAUTHORIZED_MESSAGE = "Your session has expired or you are not allowed to do that."
GENERIC_SERVER_MESSAGE = "The file server reported an unexpected error."


class ResourceError(Exception):
    """Base class for every failure raised by the resource management core."""

    @property
    def user_message(self) -> str:
        """Text suitable for display to the end user."""
        return str(self)


class InvalidNameError(ResourceError):
    """Raised when a resource name is empty or contains a path separator."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Invalid name: {name!r}")
        self.name = name


class ConflictError(ResourceError):
    """Raised when the destination already holds an item with the same name and kind."""

    def __init__(self, name: str, destination: str = "", message: str = "") -> None:
        super().__init__(message or f"'{name}' already exists in '{destination or '/'}'")
        self.name = name
        self.destination = destination


class InvalidDestinationError(ResourceError):
    """Raised when a move targets the resource itself, a descendant, or its current directory."""


class UnsupportedOperationError(ResourceError):
    """Raised when an operation is not available for the given resource kind."""


class NotFoundError(ResourceError):
    """Raised when the backend reports that the target resource does not exist."""


class TransportFailureError(ResourceError):
    """Raised on timeouts and connection errors."""

    @property
    def user_message(self) -> str:
        return GENERIC_TRANSPORT_MESSAGE


class UnauthorizedError(ResourceError):
    """Raised when the backend rejects the session credential (401/403)."""

    @property
    def user_message(self) -> str:
        return GENERIC_UNAUTHORIZED_MESSAGE


class UnknownServerError(ResourceError):
    """Raised for any other non-2xx response."""

    def __init__(self, status_code: int, message: str = "") -> None:
        super().__init__(f"Server error {status_code}: {message or 'no details'}")
        self.status_code = status_code
        self.message = message

    @property
    def user_message(self) -> str:
        return self.message or GENERIC_SERVER_MESSAGE
