"""
Lineup Resolution

Chooses the broadcast (antenna) lineup for the configured location and turns
it into the station set used for schedule queries.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from xmltv_epg.config import ChannelMapping
from xmltv_epg.exceptions import AssemblyError, ProviderError
from xmltv_epg.services.fetch_types import Lineup, Station
from xmltv_epg.services.provider_client import SchedulesDirectClient
from xmltv_epg.utils.data_merging import unique_in_order


logger = logging.getLogger(__name__)

SD_CODE_NO_LINEUPS = 4102


@dataclass(slots=True)
class StationSet:
    """Stations of the chosen lineup (or of the static fallback)."""
    lineup_id: str | None
    stations: dict[str, Station] = field(default_factory=dict)
    station_ids: list[str] = field(default_factory=list)

    @property
    def is_fallback(self) -> bool:
        return self.lineup_id is None


def parse_lineups(payload: Any) -> list[Lineup]:
    """
    Extract lineups from a provider response

    Accepts ``{"lineups": [...]}``, a bare list of lineups, or a list of
    headends that each carry their own ``lineups`` list.
    """
    if isinstance(payload, dict):
        entries: Iterable[Any] = payload.get("lineups") or []
    elif isinstance(payload, list):
        entries = []
        for item in payload:
            if isinstance(item, dict) and isinstance(item.get("lineups"), list):
                entries.extend(item["lineups"])
            else:
                entries.append(item)
    else:
        entries = []

    lineups: list[Lineup] = []
    for entry in entries:
        try:
            lineups.append(Lineup.from_api(entry))
        except AssemblyError as exc:
            logger.warning("Skipping malformed lineup: %s", exc)
    return lineups


def pick_broadcast_lineup(lineups: Sequence[Lineup]) -> Lineup | None:
    """First broadcast lineup in provider order, if any"""
    return next((lineup for lineup in lineups if lineup.is_broadcast), None)


async def _account_lineups(client: SchedulesDirectClient) -> list[Lineup]:
    try:
        return parse_lineups(await client.get_account_lineups())
    except ProviderError as exc:
        if exc.code == SD_CODE_NO_LINEUPS:
            logger.info("Account has no lineups yet")
            return []
        raise


async def ensure_broadcast_lineup(
    client: SchedulesDirectClient,
    postal_code: str,
    country: str,
) -> list[Lineup]:
    """
    Make sure the account carries a broadcast lineup for the location

    Returns the account lineups, updated when a broadcast lineup was added.
    When no broadcast lineup exists anywhere the unmodified set is returned;
    callers fall back to the static channel map.
    """
    lineups = await _account_lineups(client)
    if pick_broadcast_lineup(lineups):
        return lineups

    logger.info("No broadcast lineup on account; searching %s %s", country, postal_code)
    available = parse_lineups(await client.get_available_lineups(country, postal_code))
    candidate = pick_broadcast_lineup(available)
    if candidate is None:
        logger.warning("No broadcast lineup available for %s %s", country, postal_code)
        return lineups

    logger.info("Adding broadcast lineup %s (%s) to account", candidate.lineup_id, candidate.name)
    await client.add_lineup(candidate.lineup_id)
    return await _account_lineups(client)


def parse_stations(payload: Any) -> dict[str, Station]:
    """Station metadata keyed by station id, first occurrence wins"""
    raw_stations = payload.get("stations") if isinstance(payload, dict) else payload
    stations: dict[str, Station] = {}
    for raw in raw_stations or []:
        try:
            station = Station.from_api(raw)
        except AssemblyError as exc:
            logger.warning("Skipping malformed station: %s", exc)
            continue
        stations.setdefault(station.station_id, station)
    return stations


def parse_station_ids(payload: Any) -> list[str]:
    raw_stations = payload.get("stations") if isinstance(payload, dict) else payload
    ids = (
        str(raw["stationID"])
        for raw in raw_stations or []
        if isinstance(raw, dict) and raw.get("stationID")
    )
    return unique_in_order(ids)


async def resolve_stations(
    client: SchedulesDirectClient,
    lineup: Lineup,
) -> tuple[StationSet, Any, Any]:
    """
    Fetch lineup details and lineup stations for the chosen lineup

    Returns:
        Tuple of (station set, raw details payload, raw stations payload);
        the raw payloads are kept for diagnostic snapshots
    """
    details = await client.get_lineup_details(lineup.lineup_id)
    lineup_stations = await client.get_lineup_stations(lineup.lineup_id)

    station_set = StationSet(
        lineup_id=lineup.lineup_id,
        stations=parse_stations(details),
        station_ids=parse_station_ids(lineup_stations),
    )
    logger.info(
        "Lineup %s: %s station(s) with metadata, %s station id(s) for schedules",
        lineup.lineup_id,
        len(station_set.stations),
        len(station_set.station_ids),
    )
    return station_set, details, lineup_stations


def fallback_station_ids(channel_map: Sequence[ChannelMapping]) -> list[str]:
    """Station ids of the static channel map, in configured order"""
    return unique_in_order(mapping.station_id for mapping in channel_map)
