"""Profile-image binder: copy a pool avatar into a user's profile slot.

The three pieces of state involved (the copied file, the identity provider's
pointer and the binding row) cannot be updated atomically, so `bind` commits
them in a fixed order:

1. resolve the avatar, 2. resolve the user, 3. remember the current pointer,
4. pick a fresh target path, 5. copy, 6. update and persist the pointer
(rolling back the copy on failure), 7. best-effort delete of the previous
file, 8. record the binding.

Whatever step fails, a later reconciliation pass converges the state.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from pathlib import Path
from typing import Optional

import aiofiles.os

from dal.binding_dal import BindingDAL
from models.avatar_models import MaterializedProfileImage, User
from models.errors import (
    CopyFailed,
    InvariantViolation,
    IOFailure,
    PointerUpdateFailed,
    UserNotFound,
)
from services.avatar_pool import AvatarPoolStore
from services.identity import IdentityProvider
from utils.file_ops import copy_file, remove_quietly
from utils.locks import KeyedLock, MaintenanceGate
from utils.media_validation import validate_user_id

LOGGER = logging.getLogger(__name__)

PROFILE_PREFIX = "profile_"


class ProfileImageBinder:
    """Binds pool avatars to users' profile images.

    `bind` and `unbind` hold a per-user lock for the whole protocol, so two
    requests for the same user never interleave; different users run in
    parallel. Both also enter the maintenance gate in shared mode.
    """

    def __init__(
        self,
        pool: AvatarPoolStore,
        bindings: BindingDAL,
        identity: IdentityProvider,
        user_data_dir: Path | str,
        gate: Optional[MaintenanceGate] = None,
        user_locks: Optional[KeyedLock] = None,
    ) -> None:
        missing = [
            name
            for name, value in (("pool", pool), ("bindings", bindings), ("identity", identity))
            if value is None
        ]
        if missing:
            LOGGER.critical("ProfileImageBinder created without %s", ", ".join(missing))
            raise InvariantViolation(f"Binder collaborators not initialized: {', '.join(missing)}")

        self.pool = pool
        self.bindings = bindings
        self.identity = identity
        self.user_data_dir = Path(user_data_dir)
        self.gate = gate or MaintenanceGate()
        self.user_locks = user_locks or KeyedLock()
        self._last_token = 0

    def user_dir(self, user_id: str) -> str:
        """Private directory holding a user's materialized profile images."""
        return os.path.join(self.user_data_dir, validate_user_id(user_id))

    async def bind(self, user_id: str, avatar_id: str) -> MaterializedProfileImage:
        """Copy `avatar_id` into the profile slot of `user_id` and record the choice.

        Raises:
            ValidationFailure: `user_id` is not a usable identifier.
            AvatarNotFound: The avatar is not in the pool.
            UserNotFound: The identity provider does not know the user.
            CopyFailed: The pool file could not be copied.
            PointerUpdateFailed: The pointer could not be persisted; the copy was removed.
            IOFailure: The binding row could not be written.
        """
        validate_user_id(user_id)
        async with self.gate.shared(), self.user_locks.hold(user_id):
            return await self.materialize(user_id, avatar_id)

    async def materialize(self, user_id: str, avatar_id: str) -> MaterializedProfileImage:
        """Run the bind protocol without taking any lock.

        Callers must already exclude concurrent operations on `user_id`,
        either through the user's lock or the exclusive maintenance gate.
        """
        source_path, mime_type = await self.pool.resolve(avatar_id)

        user = await self.identity.get_user(user_id)
        if user is None:
            raise UserNotFound(f"User not found: {user_id}", {"user_id": user_id})

        previous_path = user.profile_image_path or None
        user_dir = self.user_dir(user_id)
        ext = os.path.splitext(source_path)[1].lower()

        try:
            await aiofiles.os.makedirs(user_dir, exist_ok=True)
        except OSError as exc:
            raise CopyFailed(f"Cannot create profile directory {user_dir}") from exc

        target_path = self._new_target_path(user_dir, avatar_id, ext, previous_path)

        try:
            await copy_file(source_path, target_path)
        except asyncio.CancelledError:
            await remove_quietly(target_path)
            raise
        except OSError as exc:
            await remove_quietly(target_path)
            LOGGER.error("Failed to copy avatar %s for user %s", avatar_id, user_id, exc_info=True)
            raise CopyFailed(f"Failed to copy avatar {avatar_id}", {"target": target_path}) from exc

        user.profile_image_path = target_path
        try:
            await self.identity.persist_user(user)
        except asyncio.CancelledError:
            user.profile_image_path = previous_path
            await remove_quietly(target_path)
            raise
        except Exception as exc:
            user.profile_image_path = previous_path
            LOGGER.error("Failed to update profile image pointer for user %s", user_id, exc_info=True)
            if await remove_quietly(target_path):
                LOGGER.info("Cleaned up copied file after failed update: %s", target_path)
            raise PointerUpdateFailed(
                f"Failed to update profile image for user {user_id}", {"user_id": user_id}
            ) from exc

        if previous_path and previous_path != target_path:
            await self._discard_previous(user_dir, previous_path)

        try:
            await self.bindings.set(user_id, avatar_id)
        except Exception as exc:
            LOGGER.error("Failed to record binding %s -> %s", user_id, avatar_id, exc_info=True)
            raise IOFailure(f"Failed to record avatar binding for user {user_id}") from exc

        LOGGER.info("Set avatar %s for user %s (%s)", avatar_id, user.name or user_id, user_id)
        return MaterializedProfileImage(
            user_id=user_id, avatar_id=avatar_id, path=target_path, mime_type=mime_type
        )

    async def unbind(self, user_id: str) -> bool:
        """Clear the user's profile image and binding. The pool is left alone.

        Returns:
            True if the user had a pointer or a binding to clear.

        Raises:
            UserNotFound: The identity provider does not know the user.
            PointerUpdateFailed: Clearing the pointer could not be persisted.
            IOFailure: The binding row could not be removed.
        """
        validate_user_id(user_id)
        async with self.gate.shared(), self.user_locks.hold(user_id):
            user = await self.identity.get_user(user_id)
            if user is None:
                raise UserNotFound(f"User not found: {user_id}", {"user_id": user_id})

            previous_path = user.profile_image_path or None
            had_binding = await self.bindings.get(user_id) is not None

            if previous_path:
                await self.clear_pointer(user, raise_on_failure=True)
                await self._discard_previous(self.user_dir(user_id), previous_path)

            try:
                await self.bindings.clear(user_id)
            except Exception as exc:
                LOGGER.error("Failed to clear binding for user %s", user_id, exc_info=True)
                raise IOFailure(f"Failed to clear avatar binding for user {user_id}") from exc

        LOGGER.info("Removed avatar assignment for user %s", user_id)
        return bool(previous_path) or had_binding

    async def clear_pointer(self, user: User, raise_on_failure: bool = False) -> bool:
        """Set the user's pointer to None and persist it.

        Returns False (after logging) on failure unless `raise_on_failure`.
        """
        previous_path = user.profile_image_path
        user.profile_image_path = None
        try:
            await self.identity.persist_user(user)
        except asyncio.CancelledError:
            user.profile_image_path = previous_path
            raise
        except Exception as exc:
            user.profile_image_path = previous_path
            if raise_on_failure:
                raise PointerUpdateFailed(
                    f"Failed to clear profile image for user {user.id}", {"user_id": user.id}
                ) from exc
            LOGGER.warning("Could not clear profile image for user %s", user.id, exc_info=True)
            return False
        LOGGER.info("Cleared profile image reference for user %s", user.id)
        return True

    async def _discard_previous(self, user_dir: str, path: str) -> None:
        # Only files inside the user's private directory belong to us.
        if not _is_inside(user_dir, path):
            LOGGER.info("Leaving foreign profile image in place: %s", path)
            return
        if await remove_quietly(path):
            LOGGER.info("Deleted old profile image: %s", path)
        elif await aiofiles.os.path.exists(path):
            LOGGER.warning("Could not delete old profile image (orphan file left): %s", path)

    def _new_target_path(
        self, user_dir: str, avatar_id: str, ext: str, previous_path: Optional[str]
    ) -> str:
        # The token only has to differ between binds; it busts client caches.
        token = max(time.time_ns(), self._last_token + 1)
        while True:
            path = os.path.join(user_dir, f"{PROFILE_PREFIX}avatar_{avatar_id}_{token}{ext}")
            if path != previous_path:
                self._last_token = token
                return path
            token += 1


def _is_inside(directory: str, path: str) -> bool:
    return os.path.dirname(os.path.abspath(path)) == os.path.abspath(directory)
