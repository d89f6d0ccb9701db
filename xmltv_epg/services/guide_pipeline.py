"""
Guide Refresh Pipeline

Runs one full rebuild of the guide: lineup resolution, chunked schedule and
program retrieval, assembly and rendering. Each run uses its own provider
session; nothing is written to the guide cache here.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from xmltv_epg.config import Settings
from xmltv_epg.exceptions import CacheIOError
from xmltv_epg.services.guide_assembler import (
    Guide,
    assemble_guide,
    build_channels_only,
    collect_program_ids,
    parse_programs,
    parse_schedules,
)
from xmltv_epg.services.lineup_resolver import (
    StationSet,
    ensure_broadcast_lineup,
    fallback_station_ids,
    pick_broadcast_lineup,
    resolve_stations,
)
from xmltv_epg.services.provider_client import SchedulesDirectClient
from xmltv_epg.services.xmltv_builder import build_xmltv
from xmltv_epg.utils.file_operations import write_json
from xmltv_epg.utils.logging_helpers import log_guide_summary, log_section_end, log_section_start
from xmltv_epg.utils.timezone import resolve_render_timezone


logger = logging.getLogger(__name__)

ClientFactory = Callable[[], SchedulesDirectClient]


@dataclass(slots=True)
class RefreshResult:
    content: bytes
    started_at: datetime
    completed_at: datetime
    lineup_id: str | None
    stations_requested: int
    channels: int
    listings: int
    channels_only: bool

    @property
    def duration_seconds(self) -> float:
        return max(0.0, (self.completed_at - self.started_at).total_seconds())

    def to_dict(self) -> dict:
        return {
            "status": "success",
            "lineup": self.lineup_id,
            "stations_requested": self.stations_requested,
            "channels": self.channels,
            "listings": self.listings,
            "channels_only": self.channels_only,
            "bytes": len(self.content),
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
            "duration_seconds": self.duration_seconds,
        }


class GuidePipeline:
    """Coordinates the provider, assembly and rendering stages of one refresh."""

    def __init__(self, settings: Settings, client_factory: ClientFactory) -> None:
        self.settings = settings
        self._client_factory = client_factory
        self._channel_map = list(settings.epg_channels)

    async def run(self) -> RefreshResult:
        started_at = datetime.now(timezone.utc)

        async with self._client_factory() as client:
            station_set = await self._resolve_station_set(client)
            station_ids = station_set.station_ids or fallback_station_ids(self._channel_map)
            if not station_set.station_ids:
                logger.warning(
                    "No lineup stations available; using %s station(s) from the static channel map",
                    len(station_ids),
                )

            guide = await self._collect_guide(client, station_set, station_ids)

        content = build_xmltv(
            guide.channels,
            guide.listings,
            tz=resolve_render_timezone(self.settings.epg_timezone),
        )
        log_guide_summary(logger, len(guide.channels), len(guide.listings), len(content))

        return RefreshResult(
            content=content,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
            lineup_id=station_set.lineup_id,
            stations_requested=len(station_ids),
            channels=len(guide.channels),
            listings=len(guide.listings),
            channels_only=not guide.listings,
        )

    async def _resolve_station_set(self, client: SchedulesDirectClient) -> StationSet:
        log_section_start(logger, "lineup resolution")
        lineups = await ensure_broadcast_lineup(
            client,
            self.settings.epg_postal_code,
            self.settings.epg_country,
        )
        await self._snapshot("sd_lineups.json", [asdict(lineup) for lineup in lineups])

        chosen = pick_broadcast_lineup(lineups)
        if chosen is None:
            log_section_end(logger, "lineup resolution (no broadcast lineup)")
            return StationSet(lineup_id=None)

        station_set, details, lineup_stations = await resolve_stations(client, chosen)
        await self._snapshot("sd_lineup_details.json", details)
        await self._snapshot("sd_lineup_stations.json", lineup_stations)
        log_section_end(logger, f"lineup resolution ({chosen.lineup_id})")
        return station_set

    async def _collect_guide(
        self,
        client: SchedulesDirectClient,
        station_set: StationSet,
        station_ids: list[str],
    ) -> Guide:
        log_section_start(logger, f"schedule retrieval for {len(station_ids)} stations")
        raw_schedules = await client.get_schedules(station_ids, self.settings.epg_days) if station_ids else []
        await self._snapshot("sd_schedules.json", raw_schedules)
        schedules = parse_schedules(raw_schedules)
        log_section_end(logger, f"schedule retrieval ({len(schedules)} schedules)")

        if not schedules:
            return build_channels_only(station_set.stations, self._channel_map)

        program_ids = collect_program_ids(schedules)
        log_section_start(logger, f"program retrieval for {len(program_ids)} airings")
        raw_programs = await client.get_programs(program_ids)
        await self._snapshot("sd_programs.json", raw_programs)
        programs = parse_programs(raw_programs)
        log_section_end(logger, f"program retrieval ({len(programs)} programs)")

        guide = assemble_guide(
            schedules,
            programs,
            station_set.stations,
            self._channel_map,
            image_base_url=self.settings.sd_base_url,
        )
        await self._snapshot("sd_channels.json", [asdict(channel) for channel in guide.channels])
        await self._snapshot("sd_listings.json", [asdict(listing) for listing in guide.listings])
        return guide

    async def _snapshot(self, filename: str, payload: Any) -> None:
        """Write a diagnostic JSON snapshot; failures are logged only"""
        if not self.settings.write_snapshots:
            return
        try:
            await write_json(self.settings.cache_path / filename, payload)
        except CacheIOError as exc:
            logger.warning("Could not write snapshot %s: %s", filename, exc)
