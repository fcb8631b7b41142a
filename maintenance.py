"""Run avatar pool maintenance outside the web process.

Reuses the same `DATABASE_DIR` / `AVATAR_DIR` / `USER_DATA_DIR` settings as
the application.

Run: `python maintenance.py validate` to repair bindings,
     `python maintenance.py orphans` to delete stray profile images,
     `python maintenance.py list` to print the pool and the bindings.
"""
import argparse
import asyncio
import logging
from typing import List, Optional

from dotenv import load_dotenv

from services.avatar_service import AvatarService
from utils.database_init import AsyncDatabaseInitializer
from utils.settings import AppSettings


async def _print_state(service: AvatarService) -> None:
    """Print every pool avatar followed by every binding."""
    avatars = await service.list_avatars()
    print(f"Avatars: {len(avatars)}")
    for record in avatars:
        print(f"  {record.id}: name={record.name!r}; file={record.stored_filename}; created_at={record.created_at}")
    bindings = await service.bindings.list()
    print(f"Bindings: {len(bindings)}")
    for binding in bindings:
        print(f"  {binding.user_id} -> {binding.avatar_id}")


async def run(command: str, settings: AppSettings) -> int:
    """Execute `command` and return the count it produced (0 for `list`)."""
    db_initializer = AsyncDatabaseInitializer(settings.database_dir)
    service = AvatarService.create(settings, db_initializer)

    if command == "validate":
        repaired = await service.validate()
        print(f"Repaired {repaired} binding(s)")
        return repaired
    if command == "orphans":
        deleted = await service.collect_orphans()
        print(f"Deleted {deleted} orphaned profile image(s)")
        return deleted
    await _print_state(service)
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("command", choices=("validate", "orphans", "list"))
    args = parser.parse_args(argv)

    load_dotenv()
    settings = AppSettings.from_env()
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))
    asyncio.run(run(args.command, settings))


if __name__ == "__main__":
    main()
