"""
Data merging utilities

This module handles request chunking and de-duplication of provider data.
"""
from __future__ import annotations

import logging
from collections.abc import Hashable, Iterable, MutableMapping, Sequence
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from xmltv_epg.services.fetch_types import Channel

logger = logging.getLogger(__name__)

T = TypeVar("T")
H = TypeVar("H", bound=Hashable)


def chunk_list(items: Sequence[T], chunk_size: int) -> list[list[T]]:
    """
    Split a sequence into consecutive chunks of at most chunk_size items.

    Args:
        items: Sequence to split
        chunk_size: Maximum number of items per chunk

    Returns:
        List of chunks; concatenating them yields the original order

    Raises:
        ValueError: If chunk_size is not positive
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be > 0, got {chunk_size}")
    return [list(items[i:i + chunk_size]) for i in range(0, len(items), chunk_size)]


def unique_in_order(items: Iterable[H]) -> list[H]:
    """Drop repeated items, keeping the first occurrence of each."""
    seen: set[H] = set()
    result: list[H] = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        result.append(item)
    return result


def merge_channels(
    existing_channels: MutableMapping[str, Channel],
    new_channels: Iterable[Channel]
) -> tuple[MutableMapping[str, Channel], int]:
    """
    Merge new channels into existing channel dictionary.

    The first channel seen for a station id wins; later duplicates are ignored.

    Args:
        existing_channels: Dictionary of existing channels (channel_id -> Channel)
        new_channels: Iterable of channels to merge

    Returns:
        Tuple of (updated_channels_dict, count_of_new_channels_added)
    """
    new_count = 0

    for channel in new_channels:
        if channel.channel_id in existing_channels:
            logger.debug("Skipping duplicate channel %s", channel.channel_id)
            continue
        existing_channels[channel.channel_id] = channel
        new_count += 1

    return existing_channels, new_count
