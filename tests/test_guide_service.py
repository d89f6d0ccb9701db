import asyncio
import logging
import os
import time

import pytest
from lxml import etree

from xmltv_epg.exceptions import AuthError, CacheIOError, ProviderError
from xmltv_epg.services.guide_service import GuideService

from tests.conftest import CABLE_LINEUP


@pytest.fixture
def guide_service(settings, client_factory) -> GuideService:
    return GuideService(settings, client_factory=client_factory)


def _cache_file(settings):
    return settings.cache_path / "xmltv.xml"


async def test_refresh_builds_and_caches_guide(guide_service, settings, provider):
    result = await guide_service.refresh()

    assert result.lineup_id == "USA-OTA-72201"
    assert (result.channels, result.listings) == (2, 3)
    assert _cache_file(settings).read_bytes() == result.content
    assert await guide_service.cache.is_fresh(settings.epg_cache_hours)

    root = etree.fromstring(result.content)
    names = [el.findtext("display-name") for el in root.findall("channel")]
    assert names == ["KETS-1 KETS", "KARK-DT KARK"]
    first = root.find("programme")
    assert first.findtext("title") == "Test Show"
    assert first.findtext("desc") == "A & B"
    assert first.find("icon").get("src") == f"{settings.sd_base_url}/image/EP000001"
    assert provider.count("POST", "/programs") == 1
    assert provider.program_chunks == [["EP000001", "EP000002"]]


async def test_refresh_writes_diagnostic_snapshots(guide_service, settings):
    await guide_service.refresh()

    for name in (
        "sd_lineups.json",
        "sd_lineup_details.json",
        "sd_lineup_stations.json",
        "sd_schedules.json",
        "sd_programs.json",
        "sd_channels.json",
        "sd_listings.json",
    ):
        assert (settings.cache_path / name).exists(), name


async def test_snapshots_can_be_disabled(settings, client_factory):
    settings.write_snapshots = False
    service = GuideService(settings, client_factory=client_factory)

    await service.refresh()

    assert not (settings.cache_path / "sd_schedules.json").exists()


async def test_fresh_cache_is_served_without_provider_calls(guide_service, settings, provider):
    _cache_file(settings).write_bytes(b"<tv>cached</tv>")

    content = await guide_service.get_document()

    assert content == b"<tv>cached</tv>"
    assert provider.calls == []


async def test_stale_cache_triggers_rebuild(guide_service, settings, provider):
    path = _cache_file(settings)
    path.write_bytes(b"<tv>old</tv>")
    old = time.time() - (settings.epg_cache_hours + 1) * 3600
    os.utime(path, (old, old))

    content = await guide_service.get_document()

    assert content != b"<tv>old</tv>"
    assert path.read_bytes() == content
    assert provider.count("POST", "/schedules") == 1


async def test_failed_refresh_keeps_previous_cache(guide_service, settings, provider):
    path = _cache_file(settings)
    path.write_bytes(b"<tv>previous</tv>")
    old = time.time() - 24 * 3600
    os.utime(path, (old, old))
    provider.failures["/programs"] = (500, {"message": "boom"})

    with pytest.raises(ProviderError):
        await guide_service.get_document()

    assert path.read_bytes() == b"<tv>previous</tv>"
    assert guide_service.last_error is not None


async def test_auth_failure_aborts_refresh(guide_service, settings, provider):
    provider.token_response = (401, {"code": 4003, "message": "Invalid user"})

    with pytest.raises(AuthError):
        await guide_service.refresh()

    assert not _cache_file(settings).exists()


async def test_concurrent_refreshes_run_once(guide_service, provider):
    first, second = await asyncio.gather(guide_service.refresh(), guide_service.refresh())

    assert first is second
    assert provider.count("POST", "/schedules") == 1
    assert not guide_service.is_refreshing


async def test_empty_schedules_produce_channels_only_guide(guide_service, provider):
    provider.airings = {}

    result = await guide_service.refresh()

    root = etree.fromstring(result.content)
    assert result.channels_only
    assert len(root.findall("channel")) == 2
    assert root.findall("programme") == []
    assert provider.count("POST", "/programs") == 0


async def test_no_broadcast_lineup_uses_static_channel_map(guide_service, provider, channel_map):
    provider.account_lineups = [dict(CABLE_LINEUP)]
    provider.available_lineups = []
    provider.airings = {}

    result = await guide_service.refresh()

    requested = [entry["stationID"] for chunk in provider.schedule_chunks for entry in chunk]
    assert requested == [mapping.station_id for mapping in channel_map]
    assert result.lineup_id is None
    root = etree.fromstring(result.content)
    assert [el.findtext("display-name") for el in root.findall("channel")] == [m.label for m in channel_map]
    assert root.findall("programme") == []


async def test_status_reports_cache_state(guide_service):
    before = await guide_service.status()
    await guide_service.refresh()
    after = await guide_service.status()

    assert before["cache_fresh"] is False and before["cache_age_hours"] is None
    assert after["cache_fresh"] is True
    assert after["last_refresh"] is not None


async def test_cache_write_failure_still_returns_document(guide_service, settings, monkeypatch, caplog):
    path = _cache_file(settings)
    path.write_bytes(b"<tv>previous</tv>")

    async def failing_write(target, content):
        raise CacheIOError(f"Failed to write {target}: disk full")

    monkeypatch.setattr("xmltv_epg.services.cache_gate.write_bytes_atomic", failing_write)

    with caplog.at_level(logging.ERROR, logger="xmltv_epg.services.guide_service"):
        result = await guide_service.refresh()

    assert result.content.startswith(b'<?xml version="1.0" encoding="UTF-8"?>')
    assert path.read_bytes() == b"<tv>previous</tv>"
    assert guide_service.last_error is None
    assert "could not be cached" in caplog.text
