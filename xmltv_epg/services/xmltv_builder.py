"""
XMLTV Document Builder

Serializes channels and listings into an XMLTV document. Pure: no I/O and no
state beyond the arguments.
"""
from __future__ import annotations

import re
from datetime import timezone
from typing import Sequence

from xmltv_epg import __version__
from xmltv_epg.services.fetch_types import Channel, Listing
from xmltv_epg.utils.timezone import format_xmltv_time, resolve_render_timezone


SOURCE_INFO_URL = "https://schedulesdirect.org"
SOURCE_INFO_NAME = "Schedules Direct"
GENERATOR_INFO_NAME = f"xmltv-epg/{__version__}"

_XML_ESCAPES = (
    ("&", "&amp;"),
    ("<", "&lt;"),
    (">", "&gt;"),
    ('"', "&quot;"),
    ("'", "&apos;"),
)

# Code points XML 1.0 does not allow anywhere in a document
_INVALID_XML_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff]")


def xml_escape(value: object) -> str:
    """Drop characters XML cannot carry, then replace the five reserved markup characters"""
    text = value if isinstance(value, str) else str(value)
    text = _INVALID_XML_CHARS.sub("", text)
    for char, entity in _XML_ESCAPES:
        text = text.replace(char, entity)
    return text


def _channel_lines(channel: Channel) -> list[str]:
    lines = [
        f'  <channel id="{xml_escape(channel.channel_id)}">',
        f"    <display-name>{xml_escape(channel.display_name)}</display-name>",
    ]
    if channel.icon_url:
        lines.append(f'    <icon src="{xml_escape(channel.icon_url)}"/>')
    lines.append("  </channel>")
    return lines


def _programme_lines(listing: Listing, tz: timezone) -> list[str]:
    lines = [
        f'  <programme start="{format_xmltv_time(listing.start, tz)}" '
        f'stop="{format_xmltv_time(listing.stop, tz)}" '
        f'channel="{xml_escape(listing.channel_id)}">',
        f'    <title lang="en">{xml_escape(listing.title)}</title>',
    ]
    if listing.subtitle:
        lines.append(f'    <sub-title lang="en">{xml_escape(listing.subtitle)}</sub-title>')
    if listing.description:
        lines.append(f'    <desc lang="en">{xml_escape(listing.description)}</desc>')
    if listing.icon_url:
        lines.append(f'    <icon src="{xml_escape(listing.icon_url)}"/>')
    if listing.program_id:
        lines.append(f'    <episode-num system="dd_progid">{xml_escape(listing.program_id)}</episode-num>')
    lines.append("  </programme>")
    return lines


def build_xmltv(
    channels: Sequence[Channel],
    listings: Sequence[Listing],
    *,
    tz: timezone | None = None,
) -> bytes:
    """
    Render an XMLTV document

    Args:
        channels: Channel entries, emitted first in input order
        listings: Programme entries, emitted after channels in input order
        tz: Fixed-offset zone for every timestamp (defaults to the host's
            local offset at render time)

    Returns:
        UTF-8 encoded document
    """
    tz = tz or resolve_render_timezone()

    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<!DOCTYPE tv SYSTEM "xmltv.dtd">',
        f'<tv source-info-url="{SOURCE_INFO_URL}" source-info-name="{SOURCE_INFO_NAME}" '
        f'generator-info-name="{xml_escape(GENERATOR_INFO_NAME)}">',
    ]
    for channel in channels:
        lines.extend(_channel_lines(channel))
    for listing in listings:
        lines.extend(_programme_lines(listing, tz))
    lines.append("</tv>")

    return ("\n".join(lines) + "\n").encode("utf-8")
