"""Exceptions raised by the backend adapters."""


class BackendError(Exception):
    """A hosted service (data store, object storage, AI) request failed."""


class AuthError(Exception):
    """Authentication failed; ``str(exc)`` is safe to show to the user."""

    def __init__(self, message: str, code: str = ""):
        super().__init__(message)
        self.code = code


class SlipGenerationError(BackendError):
    """The printable gate pass text could not be produced."""
