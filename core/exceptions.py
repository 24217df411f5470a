"""
Core domain exceptions.

These exceptions are transport-agnostic. Fetch and transport failures are
contained inside the sync subsystem and only logged; write failures are
collected per step by the save coordinator; the server layer converts the
remaining ones into HTTP responses.
"""


class CoreError(Exception):
    """Base exception for all core errors."""

    pass


class BackendError(CoreError):
    """Raised by a backend adapter when a query or write is rejected."""

    def __init__(self, message: str, code: str | None = None):
        self.message = message
        self.code = code
        super().__init__(message)


class TransportError(CoreError):
    """A change-feed subscription could not be opened or maintained."""

    pass


class FetchError(CoreError):
    """Hydrating a full record after a push event failed."""

    def __init__(self, table: str, record_id: object, message: str):
        self.table = table
        self.record_id = record_id
        super().__init__(f"Could not fetch {table} {record_id}: {message}")


class WriteError(CoreError):
    """A single step of a multi-step save failed."""

    def __init__(self, step: str, message: str):
        self.step = step
        self.message = message
        super().__init__(message)


class PermissionDeniedError(CoreError):
    """A save produced no usable record for the acting user."""

    pass


class InvalidOperationError(CoreError):
    """Raised when an operation cannot be performed in the current state."""

    pass
