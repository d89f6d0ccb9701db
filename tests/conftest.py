"""
Shared fixtures: settings rooted in a temporary cache directory and an
in-memory Schedules Direct stand-in served through ``httpx.MockTransport``.
"""
import json
from pathlib import Path

import httpx
import pytest

from xmltv_epg.config import ChannelMapping, Settings
from xmltv_epg.services.provider_client import SchedulesDirectClient


API_PREFIX = "/20141201"
TOKEN = "token-abc"

BROADCAST_LINEUP = {
    "lineup": "USA-OTA-72201",
    "name": "Antenna",
    "transport": "Antenna",
    "location": "72201",
}
CABLE_LINEUP = {
    "lineup": "USA-AR12345-X",
    "name": "Comcast",
    "transport": "Cable",
    "location": "Little Rock",
}


class FakeScheduleDirect:
    """Minimal Schedules Direct API keeping a log of every call it serves."""

    def __init__(self):
        self.calls: list[tuple[str, str]] = []
        self.schedule_chunks: list[list[dict]] = []
        self.program_chunks: list[list[str]] = []
        self.token_response: tuple[int, dict] = (200, {"code": 0, "message": "OK", "token": TOKEN})
        self.failures: dict[str, tuple[int, dict]] = {}
        self.account_lineups: list[dict] = [dict(BROADCAST_LINEUP)]
        self.available_lineups: list[dict] = []
        self.stations = [
            {"stationID": "98078", "callsign": "KETS", "name": "KETS PBS", "logo": {"URL": "https://logos.example/kets.png"}},
            {"stationID": "65902", "callsign": "KARK", "name": "KARK NBC"},
        ]
        self.airings: dict[str, list[dict]] = {
            "98078": [
                {"programID": "EP000001", "airDateTime": "2025-09-28T20:00:00Z", "duration": 3600},
                {"programID": "EP000002", "airDateTime": "2025-09-28T21:00:00Z", "duration": 1800},
            ],
            "65902": [
                {"programID": "EP000001", "airDateTime": "2025-09-28T22:00:00Z", "duration": 3600},
            ],
        }
        self.programs: dict[str, dict] = {
            "EP000001": {
                "programID": "EP000001",
                "titles": [{"title120": "Test Show"}],
                "episodeTitle150": "Pilot",
                "descriptions": {"description1000": [{"descriptionLanguage": "en", "description": "A & B"}]},
                "hasImageArtwork": True,
            },
            "EP000002": {
                "programID": "EP000002",
                "titles": [{"title120": "News <Live>"}],
            },
        }

    def count(self, method: str, path: str) -> int:
        return sum(1 for call in self.calls if call == (method, path))

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix(API_PREFIX)
        method = request.method
        self.calls.append((method, path))

        if path in self.failures:
            status, body = self.failures[path]
            return httpx.Response(status, json=body)

        if path == "/token":
            status, body = self.token_response
            return httpx.Response(status, json=body)

        if request.headers.get("token") != TOKEN:
            return httpx.Response(403, json={"code": 4006, "message": "Token has expired."})

        if path == "/lineups" and method == "GET":
            if "postalcode" in request.url.params:
                return httpx.Response(200, json={"lineups": self.available_lineups})
            if not self.account_lineups:
                return httpx.Response(400, json={"code": 4102, "message": "No lineups have been added."})
            return httpx.Response(200, json={"code": 0, "lineups": self.account_lineups})

        if path.startswith("/lineups/") and path.endswith("/stations"):
            return httpx.Response(200, json={"stations": [{"stationID": s["stationID"]} for s in self.stations]})

        if path.startswith("/lineups/") and method == "PUT":
            lineup_id = path.split("/")[2]
            match = next(lu for lu in self.available_lineups if lu["lineup"] == lineup_id)
            self.account_lineups.append(match)
            return httpx.Response(200, json={"code": 0, "message": "Added lineup."})

        if path.startswith("/lineups/"):
            return httpx.Response(200, json={"map": [], "stations": self.stations})

        if path == "/schedules":
            chunk = json.loads(request.content)
            self.schedule_chunks.append(chunk)
            return httpx.Response(
                200,
                json=[
                    {"stationID": entry["stationID"], "programs": self.airings.get(entry["stationID"], [])}
                    for entry in chunk
                    if entry["stationID"] in self.airings
                ],
            )

        if path == "/programs":
            chunk = json.loads(request.content)
            self.program_chunks.append(chunk)
            return httpx.Response(200, json=[self.programs[pid] for pid in chunk if pid in self.programs])

        return httpx.Response(404, json={"code": 2000, "message": f"Unknown path {path}"})


@pytest.fixture
def channel_map() -> list[ChannelMapping]:
    return [
        ChannelMapping(number="2.1", station_id="98078", name="KETS-1"),
        ChannelMapping(number="4.1", station_id="65902", name="KARK-DT"),
        ChannelMapping(number="7.1", station_id="50887", name="ABC"),
    ]


@pytest.fixture
def settings(tmp_path: Path, channel_map) -> Settings:
    return Settings(
        _env_file=None,
        sd_username="user",
        sd_password="pass",
        cache_dir=str(tmp_path / "cache"),
        api_key="test-key",
        epg_timezone="UTC",
        epg_days=2,
        epg_channels=channel_map,
    )


@pytest.fixture
def provider() -> FakeScheduleDirect:
    return FakeScheduleDirect()


@pytest.fixture
def client_factory(settings, provider):
    def factory() -> SchedulesDirectClient:
        return SchedulesDirectClient.from_settings(settings, transport=httpx.MockTransport(provider.handler))
    return factory
