"""Interface the core consumes from the host's identity subsystem."""

from __future__ import annotations

from typing import List, Optional, Protocol

from models.avatar_models import User


class IdentityProvider(Protocol):
    """Owner of users and of each user's profile-image pointer.

    `persist_user` must raise when the change could not be stored; the binder
    treats any exception as a failed pointer update and rolls back.
    """

    async def get_user(self, user_id: str) -> Optional[User]: ...

    async def list_users(self) -> List[User]: ...

    async def persist_user(self, user: User) -> None: ...
