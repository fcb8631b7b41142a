"""Facade exposing the avatar pool operations to the transport layer."""

from __future__ import annotations

from typing import List, Optional, Tuple

from dal.avatar_dal import AvatarDAL
from dal.binding_dal import BindingDAL
from dal.user_dal import UserDAL
from models.avatar_models import AvatarRecord, MaterializedProfileImage
from services.avatar_pool import AvatarPoolStore
from services.identity import IdentityProvider
from services.profile_binder import ProfileImageBinder
from services.reconciler import AvatarReconciler
from utils.database_init import AsyncDatabaseInitializer
from utils.locks import KeyedLock, MaintenanceGate
from utils.settings import AppSettings


class AvatarService:
    """Owns one pool store, binding store, binder and reconciler.

    All components share one `MaintenanceGate` so reconciliation excludes
    request-path mutations.
    """

    def __init__(
        self,
        pool: AvatarPoolStore,
        bindings: BindingDAL,
        binder: ProfileImageBinder,
        reconciler: AvatarReconciler,
    ) -> None:
        self.pool = pool
        self.bindings = bindings
        self.binder = binder
        self.reconciler = reconciler

    @classmethod
    def create(
        cls,
        settings: AppSettings,
        db_initializer: AsyncDatabaseInitializer,
        identity: Optional[IdentityProvider] = None,
    ) -> "AvatarService":
        """Build the default component graph.

        Args:
            settings: Resolved directories and timings.
            db_initializer: Connection provider for the AVATAR/USER_AVATAR tables.
            identity: Host identity provider; defaults to the SQLite `UserDAL`.
        """
        gate = MaintenanceGate()
        bindings = BindingDAL(db_initializer)
        pool = AvatarPoolStore(settings.avatar_dir, AvatarDAL(db_initializer), bindings, gate=gate)
        binder = ProfileImageBinder(
            pool,
            bindings,
            identity if identity is not None else UserDAL(db_initializer),
            settings.user_data_dir,
            gate=gate,
            user_locks=KeyedLock(),
        )
        return cls(pool, bindings, binder, AvatarReconciler(binder))

    async def list_avatars(self) -> List[AvatarRecord]:
        return await self.pool.list()

    async def add_avatar(self, filename: str, data: bytes) -> AvatarRecord:
        return await self.pool.add(filename, data)

    async def remove_avatar(self, avatar_id: str) -> bool:
        return await self.pool.remove(avatar_id)

    async def resolve(self, avatar_id: str) -> Tuple[str, str]:
        return await self.pool.resolve(avatar_id)

    async def bind(self, user_id: str, avatar_id: str) -> MaterializedProfileImage:
        return await self.binder.bind(user_id, avatar_id)

    async def unbind(self, user_id: str) -> bool:
        return await self.binder.unbind(user_id)

    async def get_binding(self, user_id: str) -> Optional[str]:
        return await self.bindings.get(user_id)

    async def validate(self) -> int:
        return await self.reconciler.validate()

    async def collect_orphans(self) -> int:
        return await self.reconciler.collect_orphans()
