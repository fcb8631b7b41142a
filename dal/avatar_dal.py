"""Async Data Access Layer for the AVATAR table (the pool list).

Provides AvatarDAL with async CRUD operations on top of
`utils.database_init.AsyncDatabaseInitializer`.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from models.avatar_models import AvatarRecord
from utils.database_init import AsyncDatabaseInitializer


class AvatarDAL:
    """Data access layer for pool records.

    Rows keep an autoincrement `seq` column so listing returns avatars in the
    order they were admitted.
    """

    _COLUMNS = ("id", "name", "stored_filename", "created_at")
    _COLUMN_LIST = ", ".join(_COLUMNS)

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer

    async def insert_avatar(self, record: AvatarRecord) -> None:
        """Insert a new pool record. Commits before returning."""
        async with self._db.connection() as conn:
            await conn.execute(
                f"INSERT INTO AVATAR ({self._COLUMN_LIST}) VALUES (?, ?, ?, ?)",
                (record.id, record.name, record.stored_filename, record.created_at),
            )
            await conn.commit()

    async def get_avatar(self, avatar_id: str) -> Optional[AvatarRecord]:
        """Return the AvatarRecord for `avatar_id`, or None if not found."""
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMN_LIST} FROM AVATAR WHERE id = ?",
                (avatar_id,),
            )
            row = await cur.fetchone()
            return self._row_to_record(row) if row else None

    async def list_avatars(self) -> List[AvatarRecord]:
        """List every pool record in insertion order."""
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMN_LIST} FROM AVATAR ORDER BY seq ASC"
            )
            rows = await cur.fetchall()
            return [self._row_to_record(r) for r in rows]

    async def delete_avatar(self, avatar_id: str) -> bool:
        """Delete the pool record. Returns True if a row was deleted."""
        async with self._db.connection() as conn:
            cur = await conn.execute("DELETE FROM AVATAR WHERE id = ?", (avatar_id,))
            await conn.commit()
            return cur.rowcount > 0

    @staticmethod
    def _row_to_record(row: Sequence[object]) -> AvatarRecord:
        return AvatarRecord(
            id=row[0],
            name=row[1],
            stored_filename=row[2],
            created_at=row[3],
        )
