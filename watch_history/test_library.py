"""Tests for WatchLibrary aggregates, filtering and the JSON cache."""

from datetime import datetime, timedelta, timezone

import pytest

from .errors import MalformedInput
from .library import WatchLibrary, video_key
from .schemas import Product, WatchEvent


START = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)


def event(title, hours_ago, url=None, channel=None, product=Product.YOUTUBE):
    return WatchEvent(
        title=title,
        watched_at=START - timedelta(hours=hours_ago),
        product=product,
        url=url,
        channel_name=channel,
        channel_url=f"https://www.youtube.com/@{channel}" if channel else None,
    )


@pytest.fixture
def library():
    """Most-recent-first, like a Takeout export."""
    return WatchLibrary([
        event("Song A", 0, "https://music.youtube.com/watch?v=aaa", "Band", Product.YOUTUBE_MUSIC),
        event("Talk B", 1, "https://www.youtube.com/watch?v=bbb", "Speaker"),
        event("Song A", 2, "https://music.youtube.com/watch?v=aaa", "Band", Product.YOUTUBE_MUSIC),
        event("a video that has been removed", 3),
        event("Talk C", 4, "https://www.youtube.com/watch?v=ccc", "Speaker"),
        event("Song A", 5, "https://music.youtube.com/watch?v=aaa", "Band", Product.YOUTUBE_MUSIC),
        event("a video that has been removed", 6),
    ])


class TestCounts:

    def test_watches_and_videos(self, library):
        assert library.count_watches() == 7
        assert len(library) == 7
        # aaa, bbb, ccc and the removed placeholder
        assert library.count_videos() == 4

    def test_video_key(self):
        assert video_key(event("x", 0, "https://youtu.be/x")) == "https://youtu.be/x"
        assert video_key(event("gone", 0)) == "removed:gone"

    def test_channels_first_seen_order(self, library):
        assert library.channels() == [
            ("https://www.youtube.com/@Band", "Band"),
            ("https://www.youtube.com/@Speaker", "Speaker"),
        ]

    def test_most_watched(self, library):
        top = library.most_watched(3)
        assert [(count, e.title) for count, e in top] == [
            (3, "Song A"),
            (2, "a video that has been removed"),
            (1, "Talk B"),
        ]
        # represented by the latest watch
        assert top[0][1].watched_at == START

    def test_most_watched_ties_keep_source_order(self, library):
        singles = [e.title for count, e in library.most_watched(10) if count == 1]
        assert singles == ["Talk B", "Talk C"]

    def test_top_channels(self, library):
        assert library.top_channels(5) == [(3, "Band"), (2, "Speaker")]

    def test_empty(self):
        empty = WatchLibrary([])
        assert empty.count_videos() == 0
        assert empty.most_watched() == []
        assert empty.channels() == []


class TestFilter:

    def test_by_product(self, library):
        music = library.filter(product=Product.YOUTUBE_MUSIC)
        assert music.count_watches() == 3
        assert {e.title for e in music} == {"Song A"}

    def test_by_time_window(self, library):
        window = library.filter(since=START - timedelta(hours=4), until=START - timedelta(hours=1))
        assert [e.title for e in window] == ["Song A", "a video that has been removed", "Talk C"]

    def test_by_channel_name_or_url(self, library):
        assert library.filter(channel="Speaker").count_watches() == 2
        assert library.filter(channel="https://www.youtube.com/@Speaker").count_watches() == 2

    def test_filter_returns_new_library(self, library):
        library.filter(product=Product.YOUTUBE)
        assert library.count_watches() == 7


class TestCache:

    def test_round_trip(self, library, tmp_path):
        path = tmp_path / "nested" / "cache.json"
        library.save_cache(path)

        loaded = WatchLibrary.load_cache(path)
        assert loaded.events == library.events

    @pytest.mark.parametrize("text", [
        "not json",
        "[]",
        '{"version": 99, "events": []}',
        '{"version": 1}',
        '{"version": 1, "events": [{"title": "x"}]}',
        '{"version": 1, "events": [{"title": "x", "watched_at": "soon"}]}',
    ])
    def test_corrupt_cache(self, text):
        with pytest.raises(MalformedInput):
            WatchLibrary.from_json(text)

    def test_invalid_utf8_cache(self, tmp_path):
        path = tmp_path / "cache.json"
        path.write_bytes(b'{"version": 1, "events": ["\xff"]}')
        with pytest.raises(MalformedInput, match="invalid UTF-8"):
            WatchLibrary.load_cache(path)

    def test_unreadable_cache(self, tmp_path):
        # a directory where the file should be
        with pytest.raises(MalformedInput, match="Unreadable cache"):
            WatchLibrary.load_cache(tmp_path)

    def test_settings_must_match(self, library, tmp_path):
        path = tmp_path / "cache.json"
        library.save_cache(path, {"policy": "skip"})

        assert WatchLibrary.load_cache(path, {"policy": "skip"}).events == library.events
        # no settings given, no check
        assert len(WatchLibrary.load_cache(path)) == 7
        with pytest.raises(MalformedInput, match="different parse settings"):
            WatchLibrary.load_cache(path, {"policy": "abort"})
