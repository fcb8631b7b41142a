"""Error taxonomy for the avatar pool core.

The transport layer maps these onto HTTP statuses: `NotFoundError` -> 404,
`ValidationFailure` -> 400, anything else -> 500.
"""

from __future__ import annotations

from typing import Optional


class AvatarPoolError(Exception):
    """Base class for all avatar pool errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class NotFoundError(AvatarPoolError):
    """An avatar, user or binding does not exist."""


class AvatarNotFound(NotFoundError):
    """The avatar id is unknown or its pool file is gone."""


class UserNotFound(NotFoundError):
    """The identity provider does not know the user."""


class ValidationFailure(AvatarPoolError):
    """Rejected input (extension, size, content, identifier shape)."""


class IOFailure(AvatarPoolError):
    """A disk write, copy or delete on the primary path failed."""


class CopyFailed(IOFailure):
    """Materializing the pool file into the user's directory failed."""


class PointerUpdateFailed(IOFailure):
    """The identity provider refused to persist the new profile-image pointer."""


class InvariantViolation(AvatarPoolError):
    """A component was used while a collaborator was missing."""
