"""
Guide Assembly

Joins schedules, program metadata and station identities into the channel and
listing records rendered by the XMLTV builder.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

from xmltv_epg.config import ChannelMapping
from xmltv_epg.exceptions import AssemblyError
from xmltv_epg.services.fetch_types import (
    Channel,
    Listing,
    ProgramMetadata,
    Schedule,
    Station,
)
from xmltv_epg.utils.data_merging import merge_channels


logger = logging.getLogger(__name__)

UNKNOWN_TITLE = "Unknown"


@dataclass(slots=True)
class Guide:
    """Channels and listings of one rendered document."""
    channels: list[Channel] = field(default_factory=list)
    listings: list[Listing] = field(default_factory=list)


def parse_schedules(payload: Iterable[Any]) -> list[Schedule]:
    """Convert raw schedule records, skipping the malformed ones"""
    schedules: list[Schedule] = []
    skipped_airings = 0
    for raw in payload:
        try:
            schedule, skipped = Schedule.from_api(raw)
        except AssemblyError as exc:
            logger.warning("Skipping malformed schedule: %s", exc)
            continue
        skipped_airings += skipped
        schedules.append(schedule)
    if skipped_airings:
        logger.warning("Skipped %s malformed airing(s)", skipped_airings)
    return schedules


def parse_programs(payload: Iterable[Any]) -> dict[str, ProgramMetadata]:
    """Program metadata keyed by program id"""
    programs: dict[str, ProgramMetadata] = {}
    for raw in payload:
        try:
            program = ProgramMetadata.from_api(raw)
        except AssemblyError as exc:
            logger.warning("Skipping malformed program: %s", exc)
            continue
        programs[program.program_id] = program
    return programs


def collect_program_ids(schedules: Iterable[Schedule]) -> list[str]:
    return [airing.program_id for schedule in schedules for airing in schedule.airings]


def _mappings_by_station(channel_map: Sequence[ChannelMapping]) -> dict[str, ChannelMapping]:
    by_station: dict[str, ChannelMapping] = {}
    for mapping in channel_map:
        by_station.setdefault(mapping.station_id, mapping)
    return by_station


def channel_display_name(
    station_id: str,
    station: Station | None,
    mapping: ChannelMapping | None,
) -> str:
    """
    Display name for a station

    "<mapped name> <call sign>" when both are known, the call sign (or station
    name) alone, the mapping label alone, or "Channel-<id>" as a last resort.
    """
    label = station.label if station else ""
    if label and mapping:
        return f"{mapping.name} {label}"
    if label:
        return label
    if mapping:
        return mapping.label
    return f"Channel-{station_id}"


def program_image_url(image_base_url: str, program_id: str) -> str:
    return f"{image_base_url.rstrip('/')}/image/{program_id}"


def assemble_guide(
    schedules: Sequence[Schedule],
    programs: Mapping[str, ProgramMetadata],
    stations: Mapping[str, Station],
    channel_map: Sequence[ChannelMapping],
    *,
    image_base_url: str,
) -> Guide:
    """
    Build channels and listings from fetched provider data

    Args:
        schedules: Per-station airing lists
        programs: Program metadata by program id
        stations: Station metadata by station id
        channel_map: Static channel map used for display-name prefixes
        image_base_url: Provider base URL used to build artwork links

    Returns:
        Guide with one channel per distinct station and one listing per airing
    """
    mappings = _mappings_by_station(channel_map)
    channels: dict[str, Channel] = {}
    listings: list[Listing] = []
    missing_metadata = 0
    skipped_airings = 0

    for schedule in schedules:
        station_id = schedule.station_id
        station = stations.get(station_id)
        merge_channels(
            channels,
            [
                Channel(
                    channel_id=station_id,
                    display_name=channel_display_name(station_id, station, mappings.get(station_id)),
                    icon_url=station.logo_url if station else None,
                )
            ],
        )

        for airing in schedule.airings:
            if airing.duration <= 0:
                skipped_airings += 1
                logger.debug("Skipping airing %s on %s with duration %s", airing.program_id, station_id, airing.duration)
                continue

            program = programs.get(airing.program_id)
            if program is None:
                missing_metadata += 1

            listings.append(
                Listing(
                    channel_id=station_id,
                    start=airing.air_date_time,
                    stop=airing.end_time,
                    title=(program.title if program else "") or UNKNOWN_TITLE,
                    subtitle=program.episode_title if program else "",
                    description=program.description if program else "",
                    icon_url=(
                        program_image_url(image_base_url, airing.program_id)
                        if program and program.has_image_artwork
                        else ""
                    ),
                    program_id=airing.program_id,
                )
            )

    if missing_metadata:
        logger.warning("%s listing(s) have no program metadata; using defaults", missing_metadata)
    if skipped_airings:
        logger.warning("Skipped %s airing(s) without a positive duration", skipped_airings)

    logger.info("Assembled %s channels and %s listings", len(channels), len(listings))
    return Guide(channels=list(channels.values()), listings=listings)


def build_channels_only(
    stations: Mapping[str, Station],
    channel_map: Sequence[ChannelMapping],
) -> Guide:
    """
    Channels-only guide used when no schedules could be fetched

    Channels come from lineup-detail stations when any are known, otherwise
    from the static channel map in its configured order.
    """
    channels: dict[str, Channel] = {}

    if stations:
        mappings = _mappings_by_station(channel_map)
        merge_channels(
            channels,
            (
                Channel(
                    channel_id=station_id,
                    display_name=channel_display_name(station_id, station, mappings.get(station_id)),
                    icon_url=station.logo_url,
                )
                for station_id, station in stations.items()
            ),
        )
        source = "lineup stations"
    else:
        merge_channels(
            channels,
            (Channel(channel_id=mapping.station_id, display_name=mapping.label) for mapping in channel_map),
        )
        source = "static channel map"

    logger.warning("No schedules available; building channels-only guide from %s (%s channels)", source, len(channels))
    return Guide(channels=list(channels.values()))
