import re
from datetime import datetime, timedelta, timezone

import pytest
from lxml import etree

from xmltv_epg.services.fetch_types import Channel, Listing
from xmltv_epg.services.xmltv_builder import build_xmltv, xml_escape


XMLTV_TIME = re.compile(r"^\d{14} [+-]\d{4}$")
CENTRAL = timezone(timedelta(hours=-5))


def _listing(**overrides) -> Listing:
    values = dict(
        channel_id="98078",
        start=datetime(2025, 9, 28, 20, 0, tzinfo=timezone.utc),
        stop=datetime(2025, 9, 28, 21, 0, tzinfo=timezone.utc),
        title="Test Show",
    )
    values.update(overrides)
    return Listing(**values)


def _parse(document: bytes):
    return etree.fromstring(document)


def test_xml_escape_replaces_all_reserved_characters():
    assert xml_escape("""a&b<c>d"e'f""") == "a&amp;b&lt;c&gt;d&quot;e&apos;f"


def test_xml_escape_does_not_double_escape_ampersands():
    assert xml_escape("&lt;") == "&amp;lt;"


def test_end_to_end_example():
    channels = [Channel(channel_id="98078", display_name="2.1 KETS-1")]
    listings = [_listing(description="A & B")]

    document = build_xmltv(channels, listings, tz=CENTRAL)
    text = document.decode("utf-8")
    root = _parse(document)

    channel_elements = root.findall("channel")
    assert len(channel_elements) == 1
    assert channel_elements[0].get("id") == "98078"
    assert channel_elements[0].findtext("display-name") == "2.1 KETS-1"

    programmes = root.findall("programme")
    assert len(programmes) == 1
    assert XMLTV_TIME.match(programmes[0].get("start"))
    assert XMLTV_TIME.match(programmes[0].get("stop"))
    assert programmes[0].get("start") == "20250928150000 -0500"
    assert programmes[0].get("stop") == "20250928160000 -0500"
    assert '<desc lang="en">A &amp; B</desc>' in text


@pytest.mark.parametrize("char", ["&", "<", ">", '"', "'"])
def test_reserved_characters_round_trip(char):
    title = f"Tom {char} Jerry"
    description = f"{char}start and end{char}"
    channels = [Channel(channel_id=f"id{char}", display_name=f"Name {char}", icon_url=f"https://x/?a=1{char}")]
    listings = [_listing(channel_id=f"id{char}", title=title, description=description, subtitle=char)]

    root = _parse(build_xmltv(channels, listings, tz=timezone.utc))

    channel = root.find("channel")
    programme = root.find("programme")
    assert channel.get("id") == f"id{char}"
    assert channel.findtext("display-name") == f"Name {char}"
    assert channel.find("icon").get("src") == f"https://x/?a=1{char}"
    assert programme.get("channel") == f"id{char}"
    assert programme.findtext("title") == title
    assert programme.findtext("sub-title") == char
    assert programme.findtext("desc") == description


def test_empty_document_is_well_formed():
    document = build_xmltv([], [], tz=timezone.utc)

    root = _parse(document)
    assert root.tag == "tv"
    assert len(root) == 0
    assert document.startswith(b'<?xml version="1.0" encoding="UTF-8"?>')


def test_optional_elements_are_omitted_when_empty():
    channels = [Channel(channel_id="98078", display_name="KETS")]
    listings = [_listing()]

    root = _parse(build_xmltv(channels, listings, tz=timezone.utc))

    assert root.find("channel/icon") is None
    programme = root.find("programme")
    assert programme.findtext("title") == "Test Show"
    for tag in ("sub-title", "desc", "icon", "episode-num"):
        assert programme.find(tag) is None


def test_full_listing_elements_and_order():
    channels = [
        Channel(channel_id="1", display_name="One", icon_url="https://logos/1.png"),
        Channel(channel_id="2", display_name="Two"),
    ]
    listings = [
        _listing(channel_id="2", title="Second channel first"),
        _listing(
            channel_id="1",
            title="Show",
            subtitle="Episode",
            description="Desc",
            icon_url="https://img/EP1",
            program_id="EP1",
        ),
    ]

    root = _parse(build_xmltv(channels, listings, tz=timezone.utc))

    assert [child.tag for child in root] == ["channel", "channel", "programme", "programme"]
    assert [el.get("id") for el in root.findall("channel")] == ["1", "2"]
    assert [el.get("channel") for el in root.findall("programme")] == ["2", "1"]
    full = root.findall("programme")[1]
    assert [child.tag for child in full] == ["title", "sub-title", "desc", "icon", "episode-num"]
    assert full.find("episode-num").get("system") == "dd_progid"
    assert full.findtext("episode-num") == "EP1"


def test_offset_is_fixed_for_whole_document():
    listings = [
        _listing(start=datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc), stop=datetime(2025, 1, 15, 13, 0, tzinfo=timezone.utc)),
        _listing(start=datetime(2025, 7, 15, 12, 0, tzinfo=timezone.utc), stop=datetime(2025, 7, 15, 13, 0, tzinfo=timezone.utc)),
    ]

    root = _parse(build_xmltv([Channel("98078", "KETS")], listings, tz=CENTRAL))

    offsets = {el.get("start").split()[1] for el in root.findall("programme")}
    assert offsets == {"-0500"}


def test_characters_forbidden_in_xml_are_dropped():
    channels = [Channel(channel_id="98078", display_name="KETS\x00")]
    listings = [_listing(title="Test\x1f Show", description="Line one\x0bline two\x1a\ufffe")]

    root = _parse(build_xmltv(channels, listings, tz=timezone.utc))

    assert root.find("channel").findtext("display-name") == "KETS"
    programme = root.find("programme")
    assert programme.findtext("title") == "Test Show"
    assert programme.findtext("desc") == "Line oneline two"


def test_xml_escape_keeps_tabs_and_newlines():
    assert xml_escape("a\tb\nc\rd") == "a\tb\nc\rd"
