"""
Pytest configuration and shared fixtures.

Every test gets its own temporary database, pool directory and user data
directory. The identity provider is an in-memory stand-in whose persistence
can be made to fail on demand.
"""

import asyncio
import dataclasses
import io
from typing import Dict, List, Optional

import pytest
from PIL import Image

from models.avatar_models import User
from services.avatar_service import AvatarService
from utils.database_init import AsyncDatabaseInitializer
from utils.settings import AppSettings


def make_image_bytes(color=(200, 30, 30), fmt: str = "PNG", size=(8, 8)) -> bytes:
    """Encode a small solid-colour image."""
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format=fmt)
    return buf.getvalue()


class InMemoryIdentity:
    """Identity provider keeping users in a dict.

    `get_user` hands out copies, like a real store would, so only
    `persist_user` changes what later reads observe.
    """

    def __init__(self) -> None:
        self.users: Dict[str, User] = {}
        self.fail_persist = False
        self.persist_delay = 0.0
        self.persist_calls = 0

    def add(self, user_id: str, name: str = "", profile_image_path: Optional[str] = None) -> User:
        user = User(id=user_id, name=name or user_id, profile_image_path=profile_image_path)
        self.users[user_id] = user
        return dataclasses.replace(user)

    def pointer(self, user_id: str) -> Optional[str]:
        return self.users[user_id].profile_image_path

    async def get_user(self, user_id: str) -> Optional[User]:
        user = self.users.get(user_id)
        return dataclasses.replace(user) if user else None

    async def list_users(self) -> List[User]:
        return [dataclasses.replace(u) for u in self.users.values()]

    async def persist_user(self, user: User) -> None:
        self.persist_calls += 1
        if self.persist_delay:
            await asyncio.sleep(self.persist_delay)
        if self.fail_persist:
            raise RuntimeError("identity store unavailable")
        self.users[user.id] = dataclasses.replace(user)


@pytest.fixture
def png_bytes() -> bytes:
    return make_image_bytes()


@pytest.fixture
def settings(tmp_path) -> AppSettings:
    return AppSettings.for_root(tmp_path)


@pytest.fixture
def db(settings) -> AsyncDatabaseInitializer:
    return AsyncDatabaseInitializer(settings.database_dir)


@pytest.fixture
def identity() -> InMemoryIdentity:
    return InMemoryIdentity()


@pytest.fixture
def service(settings, db, identity) -> AvatarService:
    return AvatarService.create(settings, db, identity=identity)
