"""
Watch Library - queries over a parsed history

Wraps the ordered events from a ParseResult with the aggregate views the
CLI prints: unique videos, unique channels, most-watched videos and
channels, plus filtering and a JSON cache so large exports are parsed once.

Usage:
    from watch_history.library import WatchLibrary

    library = WatchLibrary(result.events)
    print(library.count_videos(), library.count_watches())

    for count, event in library.most_watched(10):
        print(count, event.title)

    library.save_cache(Path("data/cache.json"))
    library = WatchLibrary.load_cache(Path("data/cache.json"))
"""

import json
import logging
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from .errors import MalformedInput
from .schemas import Product, WatchEvent

logger = logging.getLogger(__name__)

CACHE_VERSION = 1


def video_key(event: WatchEvent) -> str:
    """Identity of a video: its url, or its title when the video is gone."""
    if event.url:
        return event.url
    return f"removed:{event.title}"


class WatchLibrary:
    """Ordered, read-only collection of WatchEvents."""

    def __init__(self, events: Iterable[WatchEvent]):
        self._events: Tuple[WatchEvent, ...] = tuple(events)

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[WatchEvent]:
        return iter(self._events)

    @property
    def events(self) -> Tuple[WatchEvent, ...]:
        return self._events

    # ─── Counts ───────────────────────────────────────────────────────

    def count_watches(self) -> int:
        return len(self._events)

    def count_videos(self) -> int:
        return len({video_key(e) for e in self._events})

    def channels(self) -> List[Tuple[Optional[str], str]]:
        """Unique (channel_url, channel_name) pairs in first-seen order."""
        seen: Dict[Tuple[Optional[str], str], None] = {}
        for event in self._events:
            if event.channel_name:
                seen.setdefault((event.channel_url, event.channel_name), None)
        return list(seen)

    def most_watched(self, n: int = 10) -> List[Tuple[int, WatchEvent]]:
        """
        Top n videos by watch count.

        Each video is represented by its first event in source order, which
        for a most-recent-first export is the latest watch. Ties keep
        first-seen order.
        """
        counts: Counter = Counter()
        first: Dict[str, WatchEvent] = {}
        for event in self._events:
            key = video_key(event)
            counts[key] += 1
            first.setdefault(key, event)

        ranked = sorted(first, key=lambda k: -counts[k])
        return [(counts[k], first[k]) for k in ranked[:n]]

    def top_channels(self, n: int = 10) -> List[Tuple[int, str]]:
        """Top n channel names by watch count."""
        counts = Counter(e.channel_name for e in self._events if e.channel_name)
        return [(count, name) for name, count in counts.most_common(n)]

    # ─── Filtering ────────────────────────────────────────────────────

    def filter(
        self,
        product: Optional[Product] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        channel: Optional[str] = None,
    ) -> "WatchLibrary":
        """
        New library with the matching events, source order kept.

        since/until must be tz-aware; until is exclusive. channel matches
        either the channel name or the channel url.
        """
        def keep(event: WatchEvent) -> bool:
            if product is not None and event.product is not product:
                return False
            if since is not None and event.watched_at < since:
                return False
            if until is not None and event.watched_at >= until:
                return False
            if channel is not None and channel not in (event.channel_name, event.channel_url):
                return False
            return True

        return WatchLibrary(e for e in self._events if keep(e))

    # ─── Cache ────────────────────────────────────────────────────────

    def to_json(self, settings: Optional[Dict[str, Any]] = None) -> str:
        """Serialize, tagged with the parse settings the events came from."""
        return json.dumps({
            "version": CACHE_VERSION,
            "settings": settings or {},
            "events": [e.to_dict() for e in self._events],
        }, ensure_ascii=False)

    @classmethod
    def from_json(cls, text: str, settings: Optional[Dict[str, Any]] = None) -> "WatchLibrary":
        """
        Rebuild from to_json() output.

        When settings are given they must match the ones stored, so a cache
        built under one record policy is never served for another.
        """
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise MalformedInput(f"Corrupt cache: {e}") from e

        if not isinstance(data, dict) or data.get("version") != CACHE_VERSION:
            raise MalformedInput("Unsupported cache layout or version")

        if settings is not None and data.get("settings", {}) != settings:
            raise MalformedInput("Cache was built with different parse settings")

        try:
            return cls([WatchEvent.from_dict(item) for item in data["events"]])
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedInput(f"Corrupt cache entry: {e}") from e

    def save_cache(self, path: Path, settings: Optional[Dict[str, Any]] = None) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_json(settings), encoding="utf-8")
        logger.info(f"Wrote cache with {len(self)} events to {path}")

    @classmethod
    def load_cache(cls, path: Path, settings: Optional[Dict[str, Any]] = None) -> "WatchLibrary":
        path = Path(path)
        try:
            text = path.read_bytes().decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedInput(f"Corrupt cache: invalid UTF-8 at byte {e.start}") from e
        except OSError as e:
            raise MalformedInput(f"Unreadable cache {path}: {e}") from e

        library = cls.from_json(text, settings)
        logger.info(f"Loaded {len(library)} events from cache {path}")
        return library
