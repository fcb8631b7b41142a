"""Environment-driven settings for the avatar pool service."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional


def _resolve_dir(raw: Optional[str], default: Path) -> Path:
    if raw is None or not raw.strip():
        return default
    return Path(raw).expanduser()


def _read_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{key}={raw!r} is not a number") from exc


@dataclass(frozen=True)
class AppSettings:
    """Resolved configuration.

    Attributes:
        database_dir: Directory holding the SQLite file (`DATABASE_DIR`, required).
        avatar_dir: Pool directory (`AVATAR_DIR`, default `<database_dir>/avatars`).
        user_data_dir: Root of per-user private directories
            (`USER_DATA_DIR`, default `<database_dir>/users`).
        reconcile_delay_seconds: Delay before the startup reconciliation pass.
        reconcile_interval_seconds: Period of the background pass; 0 disables it.
        log_level: Root logging level name.
    """

    database_dir: Path
    avatar_dir: Path
    user_data_dir: Path
    reconcile_delay_seconds: float = 5.0
    reconcile_interval_seconds: float = 0.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "AppSettings":
        env = os.environ if env is None else env
        raw_db_dir = env.get("DATABASE_DIR")
        if raw_db_dir is None or not raw_db_dir.strip():
            raise RuntimeError(
                "DATABASE_DIR environment variable must be set to a writable "
                "directory path where the SQLite database file will be stored."
            )
        database_dir = Path(raw_db_dir).expanduser()
        return cls(
            database_dir=database_dir,
            avatar_dir=_resolve_dir(env.get("AVATAR_DIR"), database_dir / "avatars"),
            user_data_dir=_resolve_dir(env.get("USER_DATA_DIR"), database_dir / "users"),
            reconcile_delay_seconds=_read_float(env, "RECONCILE_DELAY_SECONDS", 5.0),
            reconcile_interval_seconds=_read_float(env, "RECONCILE_INTERVAL_SECONDS", 0.0),
            log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
        )

    @classmethod
    def for_root(cls, root: Path | str) -> "AppSettings":
        """Settings with every directory under `root` and no startup delay."""
        root = Path(root)
        return cls(
            database_dir=root / "database",
            avatar_dir=root / "avatars",
            user_data_dir=root / "users",
            reconcile_delay_seconds=0.0,
        )
