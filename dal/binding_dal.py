"""Binding store: the persisted user -> avatar selection table.

Every mutation commits before it returns, so a reported success survives an
immediate crash. The table does not enforce that `avatar_id` exists in the
pool; the binder and the reconciler re-validate it.
"""

from __future__ import annotations

import time
from typing import Iterable, List, Optional

from models.avatar_models import BindingRecord
from utils.database_init import AsyncDatabaseInitializer


class BindingDAL:
    """Data access layer for USER_AVATAR rows (one per user, upsert semantics)."""

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer

    async def get(self, user_id: str) -> Optional[str]:
        """Return the avatar id bound to `user_id`, or None."""
        async with self._db.connection() as conn:
            cur = await conn.execute(
                "SELECT avatar_id FROM USER_AVATAR WHERE user_id = ?",
                (user_id,),
            )
            row = await cur.fetchone()
            return row[0] if row else None

    async def set(self, user_id: str, avatar_id: str) -> None:
        """Insert or replace the binding for `user_id`."""
        async with self._db.connection() as conn:
            await conn.execute(
                """
                INSERT INTO USER_AVATAR (user_id, avatar_id, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    avatar_id = excluded.avatar_id,
                    updated_at = excluded.updated_at
                """,
                (user_id, avatar_id, int(time.time())),
            )
            await conn.commit()

    async def clear(self, user_id: str) -> bool:
        """Remove the binding for `user_id`. Returns True if one existed."""
        async with self._db.connection() as conn:
            cur = await conn.execute("DELETE FROM USER_AVATAR WHERE user_id = ?", (user_id,))
            await conn.commit()
            return cur.rowcount > 0

    async def clear_all_for(self, avatar_id: str) -> int:
        """Remove every binding that points at `avatar_id` and return the count."""
        async with self._db.connection() as conn:
            cur = await conn.execute("DELETE FROM USER_AVATAR WHERE avatar_id = ?", (avatar_id,))
            await conn.commit()
            return max(cur.rowcount, 0)

    async def clear_many(self, user_ids: Iterable[str]) -> int:
        """Remove the bindings of all `user_ids` in a single transaction."""
        params = [(user_id,) for user_id in dict.fromkeys(user_ids)]
        if not params:
            return 0
        async with self._db.connection() as conn:
            await conn.executemany("DELETE FROM USER_AVATAR WHERE user_id = ?", params)
            await conn.commit()
        return len(params)

    async def list(self) -> List[BindingRecord]:
        """Return every binding ordered by user id."""
        async with self._db.connection() as conn:
            cur = await conn.execute(
                "SELECT user_id, avatar_id FROM USER_AVATAR ORDER BY user_id"
            )
            rows = await cur.fetchall()
            return [BindingRecord(user_id=r[0], avatar_id=r[1]) for r in rows]
