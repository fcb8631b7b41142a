"""Startup reconciliation and orphan collection for materialized profile images."""

from __future__ import annotations

import asyncio
import logging
import os
from typing import List

from models.errors import AvatarPoolError, NotFoundError
from services.profile_binder import PROFILE_PREFIX, ProfileImageBinder
from utils.file_ops import is_readable_file, list_files, remove_quietly

LOGGER = logging.getLogger(__name__)

_VALID, _REPAIRED, _DROP = "valid", "repaired", "drop"


class AvatarReconciler:
    """Repair drift between bindings, the pool and users' profile images.

    Both passes hold the maintenance gate exclusively, so no bind, unbind or
    pool mutation runs while bindings are being validated or files collected.
    """

    def __init__(self, binder: ProfileImageBinder) -> None:
        """
        Args:
            binder: Binder whose pool, binding store, identity provider and gate are reused.
        """
        self._binder = binder
        self._bindings = binder.bindings
        self._identity = binder.identity
        self._pool = binder.pool

    async def validate(self) -> int:
        """Check every binding and repair or drop it.

        Returns:
            Number of bindings whose profile image was re-materialized.
        """
        async with self._binder.gate.exclusive():
            bindings = await self._bindings.list()
            if not bindings:
                LOGGER.info("No user avatars to validate")
                return 0

            repaired = 0
            to_remove: List[str] = []
            for binding in bindings:
                try:
                    outcome = await self._check_binding(binding.user_id, binding.avatar_id)
                except asyncio.CancelledError:
                    raise
                except Exception:
                    LOGGER.error("Error validating avatar for user %s", binding.user_id, exc_info=True)
                    continue
                if outcome == _REPAIRED:
                    repaired += 1
                elif outcome == _DROP:
                    to_remove.append(binding.user_id)

            if to_remove:
                await self._bindings.clear_many(to_remove)
                LOGGER.info("Removed %d invalid avatar mappings", len(to_remove))

        LOGGER.info(
            "Avatar validation complete. Repaired: %d, Removed invalid: %d",
            repaired,
            len(to_remove),
        )
        return repaired

    async def _check_binding(self, user_id: str, avatar_id: str) -> str:
        user = await self._identity.get_user(user_id)
        if user is None:
            LOGGER.warning("User not found for avatar mapping: %s", user_id)
            return _DROP

        try:
            await self._pool.resolve(avatar_id)
        except NotFoundError:
            LOGGER.error(
                "Cannot repair avatar for user %s: avatar %s no longer exists in pool",
                user_id,
                avatar_id,
            )
            if user.profile_image_path:
                await self._binder.clear_pointer(user)
            return _DROP

        if user.profile_image_path and await is_readable_file(user.profile_image_path):
            LOGGER.debug("Avatar for user %s is valid", user_id)
            return _VALID

        LOGGER.warning(
            "Profile image missing for user %s (expected: %s). Attempting to repair...",
            user_id,
            user.profile_image_path,
        )
        try:
            await self._binder.materialize(user_id, avatar_id)
        except AvatarPoolError:
            LOGGER.error("Repair failed for user %s", user_id, exc_info=True)
            user = await self._identity.get_user(user_id)
            if user is not None and user.profile_image_path:
                await self._binder.clear_pointer(user)
            return _DROP

        LOGGER.info("Successfully repaired avatar for user %s", user_id)
        return _REPAIRED

    async def collect_orphans(self) -> int:
        """Delete `profile_*` files that are not any user's current image.

        Returns:
            Number of files deleted.
        """
        deleted = 0
        async with self._binder.gate.exclusive():
            for user in await self._identity.list_users():
                try:
                    user_dir = self._binder.user_dir(user.id)
                    current = (
                        os.path.abspath(user.profile_image_path) if user.profile_image_path else None
                    )
                    for path in await list_files(user_dir, PROFILE_PREFIX):
                        if os.path.abspath(path) == current:
                            continue
                        if await remove_quietly(path):
                            deleted += 1
                            LOGGER.debug("Deleted orphaned profile image: %s", path)
                except asyncio.CancelledError:
                    raise
                except Exception:
                    LOGGER.error("Error cleaning profile images for user %s", user.id, exc_info=True)

        LOGGER.info("Cleaned up %d orphaned profile images", deleted)
        return deleted

    async def run_once(self) -> tuple[int, int]:
        """Validate bindings, then collect orphans. Returns `(repaired, deleted)`."""
        repaired = await self.validate()
        if repaired > 0:
            LOGGER.info("Avatar validation completed. Repaired %d missing avatar(s).", repaired)
        else:
            LOGGER.info("Avatar validation completed. All avatars are valid.")

        deleted = await self.collect_orphans()
        if deleted > 0:
            LOGGER.info("Cleaned up %d orphaned profile image(s).", deleted)
        return repaired, deleted

    async def run_startup(self, delay_seconds: float = 5.0) -> None:
        """
        Wait for the host to settle, then run one maintenance pass.

        Errors are logged, never raised; cancellation propagates.
        """
        LOGGER.info("Avatar validation starting in %.1fs", delay_seconds)
        await asyncio.sleep(delay_seconds)
        try:
            await self.run_once()
        except asyncio.CancelledError:
            raise
        except Exception:
            LOGGER.error("Error during avatar validation at startup", exc_info=True)

    async def run_periodic(self, interval_seconds: float) -> None:
        """
        Repeat the maintenance pass at the given interval until cancelled.

        Args:
            interval_seconds: Seconds to sleep between runs.
        """
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                # Avoid crashing the loop; retry on the next tick.
                LOGGER.error("Periodic avatar maintenance failed", exc_info=True)
