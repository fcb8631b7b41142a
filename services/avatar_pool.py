"""Pool store: the shared directory of avatar images and their records.

The file is always written before its record is inserted, so a record never
exists without a backing file. Removal drops the file, then the record, then
every binding that pointed at it.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
import uuid
from pathlib import Path
from typing import List, Optional, Tuple

import aiofiles.os

from dal.avatar_dal import AvatarDAL
from dal.binding_dal import BindingDAL
from models.avatar_models import AvatarRecord
from models.errors import AvatarNotFound, IOFailure
from utils.file_ops import remove_quietly, write_bytes
from utils.locks import MaintenanceGate
from utils.media_validation import mime_type_for, validate_avatar_upload

LOGGER = logging.getLogger(__name__)


class AvatarPoolStore:
    """Durable pool of avatar files plus their AVATAR rows.

    Args:
        avatar_dir: Directory holding the pool files.
        avatar_dal: Persistence for pool records.
        bindings: Binding store, cleared for an avatar when it is removed.
        gate: Shared with the reconciler so pool mutations pause during maintenance.
    """

    def __init__(
        self,
        avatar_dir: Path | str,
        avatar_dal: AvatarDAL,
        bindings: BindingDAL,
        gate: Optional[MaintenanceGate] = None,
    ) -> None:
        self.avatar_dir = Path(avatar_dir)
        self.avatar_dir.mkdir(parents=True, exist_ok=True)
        self._dal = avatar_dal
        self._bindings = bindings
        self._gate = gate or MaintenanceGate()
        self._write_lock = asyncio.Lock()

    async def add(self, original_filename: str, data: bytes) -> AvatarRecord:
        """Validate and admit a new avatar into the pool.

        Args:
            original_filename: Upload filename; its stem becomes the display name.
            data: Raw image bytes.

        Returns:
            The persisted AvatarRecord.

        Raises:
            ValidationFailure: Bad extension, size or image content.
            IOFailure: The file could not be written or the record stored.
        """
        # Image decoding is blocking -> run in thread
        name, ext = await asyncio.to_thread(validate_avatar_upload, original_filename, data)

        avatar_id = str(uuid.uuid4())
        record = AvatarRecord(
            id=avatar_id,
            name=name,
            stored_filename=f"{avatar_id}{ext}",
            created_at=int(time.time()),
        )
        path = self._path_for(record)

        async with self._gate.shared(), self._write_lock:
            try:
                await write_bytes(path, data)
            except OSError as exc:
                LOGGER.error("Failed to write avatar file %s", path, exc_info=True)
                raise IOFailure(f"Failed to save avatar: {original_filename}") from exc

            try:
                await self._dal.insert_avatar(record)
            except asyncio.CancelledError:
                await remove_quietly(path)
                raise
            except Exception as exc:
                await remove_quietly(path)
                LOGGER.error("Failed to store avatar record %s", avatar_id, exc_info=True)
                raise IOFailure(f"Failed to save avatar: {original_filename}") from exc

        LOGGER.info("Saved avatar: %s (%s)", record.name, record.id)
        return record

    async def remove(self, avatar_id: str) -> bool:
        """Delete an avatar from the pool.

        Users already bound to it keep their materialized profile image; only
        their bindings are cleared.

        Returns:
            False if the avatar id is unknown, True otherwise.
        """
        async with self._gate.shared(), self._write_lock:
            record = await self._dal.get_avatar(avatar_id)
            if record is None:
                LOGGER.warning("Avatar not found: %s", avatar_id)
                return False

            path = self._path_for(record)
            try:
                await aiofiles.os.remove(path)
                LOGGER.info("Deleted avatar file: %s", path)
            except FileNotFoundError:
                LOGGER.warning("Avatar file already missing: %s", path)
            except OSError as exc:
                raise IOFailure(f"Failed to delete avatar file {path}") from exc

            await self._dal.delete_avatar(avatar_id)
            cleared = await self._bindings.clear_all_for(avatar_id)

        if cleared:
            LOGGER.warning(
                "Avatar %s was used by %d user(s); bindings cleared, profile images kept",
                avatar_id,
                cleared,
            )
        LOGGER.info("Deleted avatar from pool: %s (%s)", record.name, avatar_id)
        return True

    async def resolve(self, avatar_id: str) -> Tuple[str, str]:
        """Return `(file_path, mime_type)` for a pool avatar.

        Raises:
            AvatarNotFound: The record is unknown or its file is missing.
        """
        record = await self._dal.get_avatar(avatar_id)
        if record is None:
            raise AvatarNotFound(f"Avatar not found: {avatar_id}", {"avatar_id": avatar_id})
        path = self._path_for(record)
        if not await aiofiles.os.path.isfile(path):
            raise AvatarNotFound(f"Avatar file missing: {avatar_id}", {"avatar_id": avatar_id})
        return path, mime_type_for(path)

    async def get(self, avatar_id: str) -> Optional[AvatarRecord]:
        return await self._dal.get_avatar(avatar_id)

    async def list(self) -> List[AvatarRecord]:
        """All pool records in insertion order."""
        return await self._dal.list_avatars()

    def _path_for(self, record: AvatarRecord) -> str:
        return os.path.join(self.avatar_dir, record.stored_filename)
