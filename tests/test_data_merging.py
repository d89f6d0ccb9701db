import math

import pytest

from xmltv_epg.services.fetch_types import Channel
from xmltv_epg.utils.data_merging import chunk_list, merge_channels, unique_in_order


@pytest.mark.parametrize(
    "length,size",
    [(0, 450), (1, 450), (449, 450), (450, 450), (451, 450), (901, 450), (9001, 4500), (7, 3)],
)
def test_chunk_list_counts_sizes_and_order(length, size):
    items = list(range(length))

    chunks = chunk_list(items, size)

    assert len(chunks) == math.ceil(length / size)
    assert all(0 < len(chunk) <= size for chunk in chunks)
    assert [item for chunk in chunks for item in chunk] == items


def test_chunk_list_rejects_non_positive_size():
    with pytest.raises(ValueError):
        chunk_list([1, 2, 3], 0)


def test_unique_in_order_keeps_first_occurrence():
    assert unique_in_order(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]


def test_merge_channels_first_occurrence_wins():
    existing = {}
    first = Channel(channel_id="98078", display_name="KETS-1 KETS")
    duplicate = Channel(channel_id="98078", display_name="Other")
    other = Channel(channel_id="65902", display_name="KARK")

    merged, added = merge_channels(existing, [first, duplicate, other])

    assert added == 2
    assert list(merged) == ["98078", "65902"]
    assert merged["98078"].display_name == "KETS-1 KETS"
