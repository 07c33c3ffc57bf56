"""Error taxonomy shared by the profile, sync and sharing services."""

from typing import Optional


class PrelaudError(Exception):
    """Base class for all prelaud sync errors."""


class ProfileValidationError(PrelaudError):
    """A username or artist name violates its local constraints."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field
        self.message = message


class UsernameTakenError(PrelaudError):
    """The identity service already holds this username."""

    def __init__(self, username: str, message: Optional[str] = None) -> None:
        super().__init__(message or f"Username '{username}' is already taken")
        self.username = username


class TransientNetworkError(PrelaudError):
    """Timeout, connectivity loss or a server-side failure."""


class IdentityServiceError(PrelaudError):
    """The identity service answered with something we cannot use."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CorruptLocalStateError(PrelaudError):
    """The local store could not be read or parsed."""


class ConcurrentCreateRejectedError(PrelaudError):
    """A profile already exists or another creation is still pending."""


class ProfileNotFoundError(PrelaudError):
    """An operation needs a local profile but none is set up."""
