"""Records shared by the pool, binding and binder components."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass
class AvatarRecord:
    """A row in the AVATAR table.

    Attributes:
        id: Random UUID string, immutable for the lifetime of the record.
        name: Display label taken from the uploaded filename (not unique).
        stored_filename: `id` plus extension; the file name inside the pool directory.
        created_at: Unix timestamp (seconds) when the avatar entered the pool.
    """

    id: str
    name: str
    stored_filename: str
    created_at: int


@dataclass
class BindingRecord:
    """The avatar a user selected. At most one per user."""

    user_id: str
    avatar_id: str


@dataclass
class User:
    """Identity provider view of a user.

    `profile_image_path` is the authoritative pointer to the user's current
    profile image; the binder writes the file but the provider owns the pointer.
    """

    id: str
    name: str = ""
    profile_image_path: Optional[str] = None


@dataclass
class MaterializedProfileImage:
    """Outcome of a successful bind."""

    user_id: str
    avatar_id: str
    path: str
    mime_type: str
