"""Async file helpers built on aiofiles.

Copies are chunked so a cancelled task stops between chunks instead of
leaving a worker thread writing behind its back.
"""

from __future__ import annotations

import logging
import os
from typing import List

import aiofiles
import aiofiles.os

LOGGER = logging.getLogger(__name__)

COPY_CHUNK_SIZE = 64 * 1024


async def write_bytes(path: str, data: bytes) -> None:
    """Write `data` to `path`, removing the partial file if the write fails."""
    try:
        async with aiofiles.open(path, "wb") as f:
            await f.write(data)
    except BaseException:
        await remove_quietly(path)
        raise


async def copy_file(src: str, dst: str, chunk_size: int = COPY_CHUNK_SIZE) -> None:
    """Copy `src` to `dst`, truncating any existing `dst`."""
    async with aiofiles.open(src, "rb") as reader, aiofiles.open(dst, "wb") as writer:
        while True:
            chunk = await reader.read(chunk_size)
            if not chunk:
                break
            await writer.write(chunk)


async def remove_quietly(path: str) -> bool:
    """Delete `path`; log and return False instead of raising."""
    try:
        await aiofiles.os.remove(path)
        return True
    except FileNotFoundError:
        return False
    except OSError:
        LOGGER.warning("Could not delete %s", path, exc_info=True)
        return False


async def is_readable_file(path: str) -> bool:
    """True when `path` is an existing regular file the process can read."""
    if not await aiofiles.os.path.isfile(path):
        return False
    return os.access(path, os.R_OK)


async def list_files(directory: str, prefix: str = "") -> List[str]:
    """Return full paths of regular files in `directory` whose name starts with `prefix`.

    A missing directory yields an empty list.
    """
    try:
        names = await aiofiles.os.listdir(directory)
    except FileNotFoundError:
        return []
    paths = []
    for name in sorted(names):
        if not name.startswith(prefix):
            continue
        path = os.path.join(directory, name)
        if await aiofiles.os.path.isfile(path):
            paths.append(path)
    return paths
