"""SQLite-backed identity provider.

Stands in for the host's user-management subsystem when the service runs on
its own. Hosts with their own user store plug in any object satisfying
`services.identity.IdentityProvider` instead.
"""

from __future__ import annotations

import uuid
from typing import List, Optional, Sequence

from models.avatar_models import User
from utils.database_init import AsyncDatabaseInitializer


class UserDAL:
    """Data access layer for USERS rows."""

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer

    async def create_user(self, name: str, user_id: Optional[str] = None) -> User:
        """Insert a user without a profile image and return it."""
        user = User(id=user_id or uuid.uuid4().hex, name=name)
        async with self._db.connection() as conn:
            await conn.execute(
                "INSERT INTO USERS (id, name, profile_image_path) VALUES (?, ?, NULL)",
                (user.id, user.name),
            )
            await conn.commit()
        return user

    async def get_user(self, user_id: str) -> Optional[User]:
        async with self._db.connection() as conn:
            cur = await conn.execute(
                "SELECT id, name, profile_image_path FROM USERS WHERE id = ?",
                (user_id,),
            )
            row = await cur.fetchone()
            return self._row_to_user(row) if row else None

    async def list_users(self) -> List[User]:
        async with self._db.connection() as conn:
            cur = await conn.execute("SELECT id, name, profile_image_path FROM USERS ORDER BY id")
            rows = await cur.fetchall()
            return [self._row_to_user(r) for r in rows]

    async def persist_user(self, user: User) -> None:
        """Write the user's name and profile-image pointer.

        Raises:
            LookupError: If the user row no longer exists.
        """
        async with self._db.connection() as conn:
            cur = await conn.execute(
                "UPDATE USERS SET name = ?, profile_image_path = ? WHERE id = ?",
                (user.name, user.profile_image_path, user.id),
            )
            await conn.commit()
            if cur.rowcount == 0:
                raise LookupError(f"User {user.id} not found")

    @staticmethod
    def _row_to_user(row: Sequence[object]) -> User:
        return User(id=row[0], name=row[1], profile_image_path=row[2])
