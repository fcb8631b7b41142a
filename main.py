import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request

from routes.avatar_route import router as avatar_router
from services.avatar_service import AvatarService
from services.identity import IdentityProvider
from utils.database_init import AsyncDatabaseInitializer
from utils.settings import AppSettings

from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file if present

LOGGER = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


async def _cancel(tasks) -> None:
    for task in tasks:
        task.cancel()
    for task in tasks:
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception:
            LOGGER.error("Background task failed during shutdown", exc_info=True)


def create_app(
    settings: Optional[AppSettings] = None,
    identity: Optional[IdentityProvider] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application instance.

    Args:
        settings: Explicit settings; read from the environment at startup when omitted.
        identity: Host identity provider; the SQLite USERS table is used when omitted.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Lifespan manager to initialize:
          - the SQLite database at <DATABASE_DIR>/app.db (kept across restarts)
          - the avatar service (pool, bindings, binder, reconciler)
        attach them to `app.state`, and schedule the startup reconciliation.
        """
        resolved = settings or AppSettings.from_env()
        configure_logging(resolved.log_level)

        db_initializer = AsyncDatabaseInitializer(resolved.database_dir)
        await db_initializer.ensure_database()

        service = AvatarService.create(resolved, db_initializer, identity=identity)
        app.state.settings = resolved
        app.state.db_initializer = db_initializer
        app.state.avatar_service = service

        tasks = [
            asyncio.create_task(service.reconciler.run_startup(resolved.reconcile_delay_seconds))
        ]
        if resolved.reconcile_interval_seconds > 0:
            tasks.append(
                asyncio.create_task(
                    service.reconciler.run_periodic(resolved.reconcile_interval_seconds)
                )
            )
        app.state.maintenance_tasks = tasks

        try:
            yield
        finally:
            await _cancel(tasks)

    app = FastAPI(lifespan=lifespan)

    @app.get("/health")
    async def health(request: Request):
        """
        Simple health check that verifies the DB initializer and avatar service are present.
        """
        has_db = hasattr(request.app.state, "db_initializer")
        has_service = getattr(request.app.state, "avatar_service", None) is not None
        return {"ok": True, "db_initialized": has_db, "avatar_service": has_service}

    # Register application routers
    app.include_router(avatar_router)

    return app


app = create_app()
