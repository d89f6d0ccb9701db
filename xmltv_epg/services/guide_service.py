"""
Guide Service

Entry point used by the HTTP routes and the scheduler: serves the cached guide
while it is fresh, otherwise rebuilds it through the refresh pipeline and
persists the result.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from time import perf_counter

from xmltv_epg.config import Settings
from xmltv_epg.exceptions import CacheIOError, EPGServiceError
from xmltv_epg.services.cache_gate import CACHE_FILENAME, CacheGate
from xmltv_epg.services.fetch_coordinator import RefreshCoordinator
from xmltv_epg.services.guide_pipeline import ClientFactory, GuidePipeline, RefreshResult
from xmltv_epg.services.provider_client import SchedulesDirectClient
from xmltv_epg.utils.logging_helpers import log_refresh_end, log_refresh_start


logger = logging.getLogger(__name__)


class GuideService:
    """Owns the guide cache and serializes refreshes of it."""

    def __init__(self, settings: Settings, *, client_factory: ClientFactory | None = None) -> None:
        self.settings = settings
        self.cache = CacheGate(settings.cache_path / CACHE_FILENAME)
        self._coordinator = RefreshCoordinator()
        self._client_factory = client_factory or (lambda: SchedulesDirectClient.from_settings(settings))
        self.last_result: RefreshResult | None = None
        self.last_error: str | None = None
        self.last_error_at: datetime | None = None

    @property
    def is_refreshing(self) -> bool:
        return self._coordinator.is_refreshing()

    async def get_document(self) -> bytes:
        """
        Cached guide if fresh, otherwise a freshly built one

        Raises:
            EPGServiceError: If a needed refresh fails; nothing partial is served
        """
        max_age = self.settings.epg_cache_hours
        if await self.cache.is_fresh(max_age):
            cached = await self.cache.read()
            if cached is not None:
                logger.info("Serving cached guide (age: %.2f hours)", cached.age_hours())
                return cached.content

        logger.info("Cached guide missing or older than %s hours; refreshing", max_age)
        result = await self.refresh()
        return result.content

    async def refresh(self) -> RefreshResult:
        """
        Rebuild the guide, joining a refresh that is already running

        Raises:
            EPGServiceError: If any pipeline stage fails; the previous cache file is left untouched
        """
        return await self._coordinator.execute(self._run_refresh)

    async def _run_refresh(self) -> RefreshResult:
        log_refresh_start(logger)
        started = perf_counter()

        try:
            result = await GuidePipeline(self.settings, self._client_factory).run()
        except EPGServiceError as exc:
            self.last_error = str(exc)
            self.last_error_at = datetime.now(timezone.utc)
            logger.error("Guide refresh failed, keeping previous cache: %s", exc)
            raise

        try:
            await self.cache.write(result.content)
        except CacheIOError as exc:
            logger.error("Guide built but could not be cached: %s", exc)

        self.last_result = result
        self.last_error = None
        self.last_error_at = None
        log_refresh_end(logger, perf_counter() - started)
        return result

    async def status(self) -> dict:
        """Cache and refresh state for the health endpoint"""
        age = await self.cache.age_hours()
        return {
            "cache_age_hours": round(age, 3) if age is not None else None,
            "cache_fresh": age is not None and age < self.settings.epg_cache_hours,
            "refreshing": self.is_refreshing,
            "last_refresh": self.last_result.completed_at.isoformat() if self.last_result else None,
            "last_error": self.last_error,
        }
