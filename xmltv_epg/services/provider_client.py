"""
Schedules Direct Client

Owns the provider session for one refresh: the HTTP connection pool, the
authentication token and its on-disk copy. Bulk schedule and program requests
are split into provider-sized chunks and issued with bounded concurrency.
"""
from __future__ import annotations

import asyncio
import hashlib
import logging
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Sequence

import aiofiles.os
import httpx

from xmltv_epg.exceptions import AuthError, CacheIOError, ProviderError
from xmltv_epg.services.fetch_types import AuthToken
from xmltv_epg.utils.data_merging import chunk_list, unique_in_order
from xmltv_epg.utils.file_operations import read_json, write_json
from xmltv_epg.utils.logging_helpers import sanitize_url_for_logging
from xmltv_epg.utils.timezone import schedule_dates

if TYPE_CHECKING:
    from xmltv_epg.config import Settings


logger = logging.getLogger(__name__)

TOKEN_VALIDITY = timedelta(hours=24)
TOKEN_FILENAME = "sd_token.json"
SCHEDULE_CHUNK_SIZE = 450
PROGRAM_CHUNK_SIZE = 4500

SD_CODE_OK = 0
SD_CODE_TOKEN_EXPIRED = 4006


def _provider_code(payload: Any) -> int | None:
    if isinstance(payload, dict):
        try:
            return int(payload.get("code"))
        except (TypeError, ValueError):
            return None
    return None


def _error_details(response: httpx.Response) -> tuple[str, int | None]:
    """Extract a readable message and provider error code from a response"""
    try:
        payload = response.json()
    except ValueError:
        return (response.text[:200] or response.reason_phrase), None
    code = _provider_code(payload)
    if isinstance(payload, dict):
        message = payload.get("message") or payload.get("response") or response.reason_phrase
        return str(message), code
    return response.reason_phrase, code


class SchedulesDirectClient:
    """
    Session object for the Schedules Direct JSON API.

    Use as an async context manager so the connection pool is closed:

        async with SchedulesDirectClient.from_settings(settings) as client:
            lineups = await client.get_account_lineups()
    """

    def __init__(
        self,
        *,
        base_url: str,
        username: str,
        password: str,
        user_agent: str,
        token_path: Path,
        timeout: float = 60.0,
        max_concurrency: int = 2,
        schedule_chunk_size: int = SCHEDULE_CHUNK_SIZE,
        program_chunk_size: int = PROGRAM_CHUNK_SIZE,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._username = username
        self._password = password
        self.token_path = token_path
        self._max_concurrency = max(1, max_concurrency)
        self._schedule_chunk_size = min(schedule_chunk_size, SCHEDULE_CHUNK_SIZE)
        self._program_chunk_size = min(program_chunk_size, PROGRAM_CHUNK_SIZE)
        self._token: AuthToken | None = None
        self._auth_lock = asyncio.Lock()
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers={"User-Agent": user_agent},
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> SchedulesDirectClient:
        return cls(
            base_url=settings.sd_base_url,
            username=settings.sd_username,
            password=settings.sd_password,
            user_agent=settings.sd_user_agent,
            token_path=settings.cache_path / TOKEN_FILENAME,
            timeout=settings.sd_request_timeout_sec,
            max_concurrency=settings.sd_max_concurrent_requests,
            schedule_chunk_size=settings.sd_schedule_chunk_size,
            program_chunk_size=settings.sd_program_chunk_size,
            transport=transport,
        )

    async def __aenter__(self) -> SchedulesDirectClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    async def authenticate(self) -> AuthToken:
        """
        Return a valid token, reusing the in-memory or persisted one when possible

        Raises:
            AuthError: If the provider rejects the credential exchange
        """
        async with self._auth_lock:
            now = datetime.now(timezone.utc)
            if self._token and self._token.is_valid(now):
                return self._token

            persisted = await self._load_token()
            if persisted and persisted.is_valid(now):
                logger.debug("Reusing persisted token (expires %s)", persisted.expires_at.isoformat())
                self._token = persisted
                return persisted

            self._token = await self._exchange_credentials()
            await self._save_token(self._token)
            return self._token

    async def _exchange_credentials(self) -> AuthToken:
        logger.info("Authenticating with Schedules Direct as %s", self._username or "(no username)")
        password_hash = hashlib.sha1(self._password.encode("utf-8")).hexdigest().lower()

        try:
            response = await self._client.post(
                "/token",
                json={"username": self._username, "password": password_hash},
            )
        except httpx.HTTPError as exc:
            raise AuthError(f"Token request failed: {type(exc).__name__}: {exc}") from exc

        if not response.is_success:
            message, code = _error_details(response)
            raise AuthError(f"Authentication failed (HTTP {response.status_code}, code {code}): {message}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise AuthError("Authentication failed: token response is not JSON") from exc

        code = _provider_code(payload)
        token = payload.get("token") if isinstance(payload, dict) else None
        if code != SD_CODE_OK or not token:
            message = payload.get("message") if isinstance(payload, dict) else None
            raise AuthError(f"Authentication failed (code {code}): {message or 'no token returned'}")

        logger.info("Successfully authenticated with Schedules Direct")
        return AuthToken(token=str(token), expires_at=datetime.now(timezone.utc) + TOKEN_VALIDITY)

    async def _load_token(self) -> AuthToken | None:
        if not self.token_path.exists():
            return None
        try:
            return AuthToken.from_dict(await read_json(self.token_path))
        except (CacheIOError, ValueError, TypeError, OverflowError) as exc:
            logger.warning("Ignoring unreadable token file %s: %s", self.token_path, exc)
            return None

    async def _save_token(self, token: AuthToken) -> None:
        try:
            await write_json(self.token_path, token.to_dict())
        except CacheIOError as exc:
            logger.warning("Could not persist token: %s", exc)

    async def _discard_token(self) -> None:
        self._token = None
        try:
            await aiofiles.os.remove(self.token_path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Could not remove token file %s: %s", self.token_path, exc)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        *,
        params: dict[str, str] | None = None,
    ) -> Any:
        """
        Issue an authenticated API call and return the decoded JSON body

        Raises:
            AuthError: If a token cannot be obtained
            ProviderError: On non-2xx responses, transport failures or timeouts
        """
        token = await self.authenticate()
        display = sanitize_url_for_logging(f"{self.base_url}{path}")

        try:
            response = await self._client.request(
                method,
                path,
                json=body,
                params=params,
                headers={"token": token.token},
            )
        except httpx.TimeoutException as exc:
            raise ProviderError(None, f"{method} {display} timed out") from exc
        except httpx.HTTPError as exc:
            raise ProviderError(None, f"{method} {display} failed: {type(exc).__name__}: {exc}") from exc

        if not response.is_success:
            message, code = _error_details(response)
            if code == SD_CODE_TOKEN_EXPIRED:
                logger.warning("Provider reports token expired; it will be renewed on the next call")
                await self._discard_token()
            raise ProviderError(response.status_code, f"{method} {display}: {message}", code=code)

        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(response.status_code, f"{method} {display}: response is not JSON") from exc

    async def get_account_lineups(self) -> Any:
        """Lineups currently attached to the account"""
        return await self.request("GET", "/lineups")

    async def get_available_lineups(self, country: str, postal_code: str) -> Any:
        """Lineups offered at a postal location"""
        return await self.request(
            "GET",
            "/lineups",
            params={"country": country, "postalcode": postal_code},
        )

    async def add_lineup(self, lineup_id: str) -> Any:
        """Attach a lineup to the account"""
        return await self.request("PUT", f"/lineups/{lineup_id}")

    async def get_lineup_details(self, lineup_id: str) -> Any:
        """Station metadata (call signs, names, logos) for a lineup"""
        return await self.request("GET", f"/lineups/{lineup_id}")

    async def get_lineup_stations(self, lineup_id: str) -> Any:
        """Station id list used to query schedules for a lineup"""
        return await self.request("GET", f"/lineups/{lineup_id}/stations")

    async def get_schedules(
        self,
        station_ids: Sequence[str],
        days: int,
        *,
        today: date | None = None,
    ) -> list[Any]:
        """
        Fetch schedules for all stations over one shared date range

        Args:
            station_ids: Stations to query
            days: Number of days starting today
            today: Override for the first day

        Returns:
            Concatenated schedule records from every chunk

        Raises:
            ProviderError: If any chunk fails; no partial result is returned
        """
        if not station_ids:
            return []

        dates = schedule_dates(days, today)
        payload = [{"stationID": str(station_id), "date": dates} for station_id in station_ids]
        chunks = chunk_list(payload, self._schedule_chunk_size)
        logger.info(
            "Requesting schedules for %s stations, %s -> %s (%s chunk(s))",
            len(payload),
            dates[0],
            dates[-1],
            len(chunks),
        )
        return await self._post_chunks("/schedules", chunks, "schedules")

    async def get_programs(self, program_ids: Sequence[str]) -> list[Any]:
        """
        Fetch program metadata, de-duplicating ids first

        Raises:
            ProviderError: If any chunk fails; no partial result is returned
        """
        unique_ids = unique_in_order(str(program_id) for program_id in program_ids)
        if not unique_ids:
            return []

        chunks = chunk_list(unique_ids, self._program_chunk_size)
        logger.info(
            "Requesting %s programs (%s referenced, %s chunk(s))",
            len(unique_ids),
            len(program_ids),
            len(chunks),
        )
        return await self._post_chunks("/programs", chunks, "programs")

    async def _post_chunks(self, path: str, chunks: list[list[Any]], label: str) -> list[Any]:
        # Authenticate once up front so concurrent chunks share one token exchange
        await self.authenticate()

        semaphore = asyncio.Semaphore(self._max_concurrency)
        total = len(chunks)

        async def post_chunk(index: int, chunk: list[Any]) -> Any:
            async with semaphore:
                logger.debug("[%s %s/%s] POST %s (%s entries)", label, index, total, path, len(chunk))
                return await self.request("POST", path, chunk)

        tasks = [
            asyncio.create_task(post_chunk(index, chunk))
            for index, chunk in enumerate(chunks, start=1)
        ]
        try:
            responses = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        results: list[Any] = []
        for index, response in enumerate(responses, start=1):
            if isinstance(response, list):
                results.extend(response)
            else:
                logger.warning("[%s %s/%s] Unexpected response shape: %s", label, index, total, type(response).__name__)
        return results
