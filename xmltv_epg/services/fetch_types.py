"""
Shared dataclasses used across the guide pipeline.

Provider payloads are converted into these types through the ``from_api``
constructors, which raise :class:`AssemblyError` on records with a shape we
cannot use.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from xmltv_epg.exceptions import AssemblyError
from xmltv_epg.utils.timezone import DateFormatError, parse_iso8601_to_utc


BROADCAST_TRANSPORTS = ("Antenna", "Broadcast")


def _require_str(data: Any, key: str, kind: str) -> str:
    if not isinstance(data, dict):
        raise AssemblyError(f"{kind} record is not an object: {type(data).__name__}")
    value = data.get(key)
    if value is None or value == "":
        raise AssemblyError(f"{kind} record is missing '{key}'")
    return str(value)


@dataclass(slots=True)
class AuthToken:
    """Provider session token with its absolute expiry."""
    token: str
    expires_at: datetime

    def is_valid(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return bool(self.token) and now < self.expires_at

    def to_dict(self) -> dict:
        return {
            "token": self.token,
            "expires": int(self.expires_at.timestamp() * 1000),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "AuthToken":
        if not isinstance(data, dict) or not data.get("token") or "expires" not in data:
            raise ValueError("Token file does not contain 'token' and 'expires'")
        expires_at = datetime.fromtimestamp(float(data["expires"]) / 1000, tz=timezone.utc)
        return cls(token=str(data["token"]), expires_at=expires_at)


@dataclass(slots=True)
class Lineup:
    """Provider lineup (a station bundle for one transport at one location)."""
    lineup_id: str
    transport: str = ""
    name: str = ""
    location: str = ""

    @property
    def is_broadcast(self) -> bool:
        return any(marker in self.transport for marker in BROADCAST_TRANSPORTS)

    @classmethod
    def from_api(cls, data: Any) -> "Lineup":
        lineup_id = _require_str(data, "lineup", "Lineup")
        return cls(
            lineup_id=lineup_id,
            transport=str(data.get("transport") or ""),
            name=str(data.get("name") or ""),
            location=str(data.get("location") or ""),
        )


@dataclass(slots=True)
class Station:
    """Station identity as reported by lineup details."""
    station_id: str
    callsign: str = ""
    name: str = ""
    logo_url: str | None = None

    @property
    def label(self) -> str:
        return self.callsign or self.name

    @classmethod
    def from_api(cls, data: Any) -> "Station":
        station_id = _require_str(data, "stationID", "Station")
        logo = data.get("logo")
        logo_url = logo.get("URL") if isinstance(logo, dict) else None
        if not logo_url:
            logos = data.get("stationLogo")
            if isinstance(logos, list) and logos and isinstance(logos[0], dict):
                logo_url = logos[0].get("URL")
        return cls(
            station_id=station_id,
            callsign=str(data.get("callsign") or ""),
            name=str(data.get("name") or ""),
            logo_url=logo_url or None,
        )


@dataclass(slots=True)
class Airing:
    """A single scheduled airing of a program on a station."""
    program_id: str
    air_date_time: datetime
    duration: int

    @property
    def end_time(self) -> datetime:
        return self.air_date_time + timedelta(seconds=self.duration)

    @classmethod
    def from_api(cls, data: Any) -> "Airing":
        program_id = _require_str(data, "programID", "Airing")
        raw_start = _require_str(data, "airDateTime", "Airing")
        try:
            start = parse_iso8601_to_utc(raw_start)
        except DateFormatError as exc:
            raise AssemblyError(str(exc)) from exc
        try:
            duration = int(data.get("duration"))
        except (TypeError, ValueError) as exc:
            raise AssemblyError(f"Airing {program_id} has invalid duration: {data.get('duration')!r}") from exc
        return cls(program_id=program_id, air_date_time=start, duration=duration)


@dataclass(slots=True)
class Schedule:
    """Ordered airings for one station."""
    station_id: str
    airings: list[Airing] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: Any) -> tuple["Schedule", int]:
        """Build a schedule; returns it together with the count of skipped airings."""
        station_id = _require_str(data, "stationID", "Schedule")
        airings: list[Airing] = []
        skipped = 0
        raw_programs = data.get("programs") or []
        if not isinstance(raw_programs, list):
            raise AssemblyError(f"Schedule {station_id} has non-list 'programs'")
        for raw in raw_programs:
            try:
                airings.append(Airing.from_api(raw))
            except AssemblyError:
                skipped += 1
        return cls(station_id=station_id, airings=airings), skipped


@dataclass(slots=True)
class ProgramMetadata:
    """Program details shared by every airing of that program."""
    program_id: str
    title: str = ""
    episode_title: str = ""
    description: str = ""
    has_image_artwork: bool = False

    @classmethod
    def from_api(cls, data: Any) -> "ProgramMetadata":
        program_id = _require_str(data, "programID", "Program")

        title = ""
        titles = data.get("titles")
        if isinstance(titles, list) and titles and isinstance(titles[0], dict):
            title = str(titles[0].get("title120") or "")

        description = ""
        descriptions = data.get("descriptions")
        if isinstance(descriptions, dict):
            for key in ("description1000", "description100"):
                entries = descriptions.get(key)
                if isinstance(entries, list) and entries and isinstance(entries[0], dict):
                    description = str(entries[0].get("description") or "")
                    if description:
                        break

        return cls(
            program_id=program_id,
            title=title,
            episode_title=str(data.get("episodeTitle150") or ""),
            description=description,
            has_image_artwork=bool(data.get("hasImageArtwork")),
        )


@dataclass(slots=True)
class Channel:
    """Channel entry of the rendered guide."""
    channel_id: str
    display_name: str
    icon_url: str | None = None


@dataclass(slots=True)
class Listing:
    """Programme entry of the rendered guide."""
    channel_id: str
    start: datetime
    stop: datetime
    title: str
    subtitle: str = ""
    description: str = ""
    icon_url: str = ""
    program_id: str = ""


@dataclass(slots=True)
class CachedDocument:
    """Rendered guide bytes plus the last write time of the cache file."""
    content: bytes
    modified_at: datetime

    def age_hours(self, now: datetime | None = None) -> float:
        now = now or datetime.now(timezone.utc)
        return (now - self.modified_at).total_seconds() / 3600


__all__ = [
    "AuthToken",
    "Lineup",
    "Station",
    "Airing",
    "Schedule",
    "ProgramMetadata",
    "Channel",
    "Listing",
    "CachedDocument",
]
