"""
Cache Gate

Decides from the cache file's age whether a previously rendered guide can be
served, and persists newly rendered guides atomically.
"""
import logging
from datetime import datetime, timezone
from pathlib import Path

from xmltv_epg.exceptions import CacheIOError
from xmltv_epg.services.fetch_types import CachedDocument
from xmltv_epg.utils.file_operations import file_modified_at, read_bytes, write_bytes_atomic


logger = logging.getLogger(__name__)

CACHE_FILENAME = "xmltv.xml"


class CacheGate:
    """Flat-file cache for the rendered guide document."""

    def __init__(self, path: Path):
        self.path = path

    async def age_hours(self, now: datetime | None = None) -> float | None:
        """Age of the cache file in hours, or None when there is no usable file"""
        modified_at = await file_modified_at(self.path)
        if modified_at is None:
            return None
        now = now or datetime.now(timezone.utc)
        return (now - modified_at).total_seconds() / 3600

    async def is_fresh(self, max_age_hours: float, now: datetime | None = None) -> bool:
        """True if the cache file exists and is younger than max_age_hours"""
        age = await self.age_hours(now)
        if age is None:
            return False
        return age < max_age_hours

    async def read(self) -> CachedDocument | None:
        """
        Read the cached document

        Returns:
            The document, or None if the file is missing or unreadable
        """
        modified_at = await file_modified_at(self.path)
        if modified_at is None:
            return None
        try:
            content = await read_bytes(self.path)
        except CacheIOError as exc:
            logger.warning("Cache file unreadable, treating as stale: %s", exc)
            return None
        return CachedDocument(content=content, modified_at=modified_at)

    async def write(self, content: bytes) -> None:
        """
        Replace the cached document atomically

        Raises:
            CacheIOError: If the file cannot be written
        """
        await write_bytes_atomic(self.path, content)
        logger.info("Cached guide written to %s (%.1f KB)", self.path, len(content) / 1024)
