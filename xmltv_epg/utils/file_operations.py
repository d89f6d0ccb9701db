"""
File operation utilities

This module handles atomic file writes, JSON snapshots and file metadata
used by the cache and token stores.
"""
import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

from xmltv_epg.exceptions import CacheIOError


logger = logging.getLogger(__name__)


async def write_bytes_atomic(path: Path, content: bytes) -> None:
    """
    Write bytes to path so that readers never see a partial file

    Content goes to a temporary file in the target directory which is then
    renamed over the destination.

    Args:
        path: Destination file
        content: Bytes to write

    Raises:
        CacheIOError: If the directory, temporary file or rename fails
    """
    temp_path: Path | None = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        os.close(fd)
        temp_path = Path(temp_name)

        async with aiofiles.open(temp_path, "wb") as f:
            await f.write(content)
            await f.flush()

        await aiofiles.os.replace(temp_path, path)
        temp_path = None
    except OSError as e:
        raise CacheIOError(f"Failed to write {path}: {e}") from e
    finally:
        if temp_path is not None:
            cleanup_temp_file(temp_path)


async def read_bytes(path: Path) -> bytes:
    """
    Read a whole file

    Raises:
        CacheIOError: If the file is missing or unreadable
    """
    try:
        async with aiofiles.open(path, "rb") as f:
            return await f.read()
    except OSError as e:
        raise CacheIOError(f"Failed to read {path}: {e}") from e


async def write_json(path: Path, payload: Any) -> None:
    """Serialize payload as indented JSON and write it atomically"""
    try:
        content = json.dumps(payload, indent=2, default=str).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise CacheIOError(f"Failed to serialize {path.name}: {e}") from e
    await write_bytes_atomic(path, content)


async def read_json(path: Path) -> Any:
    """
    Read and decode a JSON file

    Raises:
        CacheIOError: If the file is missing, unreadable or not valid JSON
    """
    raw = await read_bytes(path)
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise CacheIOError(f"Invalid JSON in {path}: {e}") from e


async def file_modified_at(path: Path) -> datetime | None:
    """
    Last modification time of a file in UTC

    Returns:
        Timezone-aware datetime, or None if the file is missing or cannot be stat'ed
    """
    try:
        stat_result = await aiofiles.os.stat(path)
    except OSError as e:
        logger.debug(f"Cannot stat {path}: {e}")
        return None
    return datetime.fromtimestamp(stat_result.st_mtime, tz=timezone.utc)


def cleanup_temp_file(file_path: Path) -> bool:
    """
    Safely delete a temporary file

    Args:
        file_path: Path to file to delete

    Returns:
        True if deleted successfully, False otherwise
    """
    if not file_path or not file_path.exists():
        return False

    try:
        file_path.unlink()
        logger.debug(f"Cleaned up temporary file: {file_path}")
        return True
    except (OSError, PermissionError) as e:
        logger.warning(f"Failed to delete temporary file {file_path}: {e}")
        return False
