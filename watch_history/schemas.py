"""
Watch History Schemas - the format-agnostic event model

Both export parsers (JSON and HTML) converge on WatchEvent. A parse call
returns a ParseResult: the ordered events plus whatever was skipped.

Version: 1.0.0 (watch_history)
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional
from urllib.parse import parse_qs, urlparse


# ═══════════════════════════════════════════════════════════════════════════
# ENUMS
# ═══════════════════════════════════════════════════════════════════════════

class Product(str, Enum):
    """Service a watch event came from."""
    YOUTUBE = "YouTube"
    YOUTUBE_MUSIC = "YouTube Music"

    @classmethod
    def from_marker(cls, marker: Optional[str], url: Optional[str] = None) -> "Product":
        """
        Map an export header/products marker to a Product.

        Exports label each entry with "YouTube" or "YouTube Music". When the
        marker is missing, a music.youtube.com link still identifies music.
        """
        text = " ".join((marker or "").split()).lower()
        if "music" in text:
            return cls.YOUTUBE_MUSIC
        if not text and url and "music.youtube.com" in url:
            return cls.YOUTUBE_MUSIC
        return cls.YOUTUBE


class HistoryFormat(str, Enum):
    """Supported export formats."""
    JSON = "json"
    HTML = "html"


class RecordPolicy(str, Enum):
    """What a parser does with a record it cannot convert."""
    SKIP = "skip"      # drop it, remember it in ParseResult.skipped
    ABORT = "abort"    # raise MalformedRecord, no partial result


# ═══════════════════════════════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════════════════════════════

def collapse_whitespace(text: Optional[str]) -> str:
    """Collapse runs of whitespace (incl. U+00A0 and U+202F) to one space."""
    if not text:
        return ""
    return " ".join(text.split())


def strip_watched_prefix(title: str) -> str:
    """Exports prefix titles with the action: 'Watched <title>'."""
    if title.startswith("Watched "):
        return title[len("Watched "):]
    return title


def extract_video_id(url: Optional[str]) -> Optional[str]:
    """Video id from a watch URL, youtu.be link or shorts link."""
    if not url:
        return None
    parsed = urlparse(url)
    host = parsed.netloc.lower()
    path = parsed.path.rstrip("/")

    if "youtu.be" in host and path:
        return path.split("/")[-1]

    if "youtube.com" in host:
        if path == "/watch":
            return parse_qs(parsed.query).get("v", [None])[0]
        if path.startswith("/shorts/"):
            return path.split("/shorts/")[-1]
    return None


# ═══════════════════════════════════════════════════════════════════════════
# WATCH EVENT
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class WatchEvent:
    """
    One watched video or track at a point in time.

    Built exactly once per source record and never modified. Removed videos
    keep the placeholder title the export gives them and have no url.
    """
    # ─── Content ──────────────────────────────────────────────────────
    title: str
    watched_at: datetime             # tz-aware, UTC
    product: Product = Product.YOUTUBE

    # ─── Links (None when the export omits them) ──────────────────────
    url: Optional[str] = None
    channel_name: Optional[str] = None
    channel_url: Optional[str] = None

    def is_well_formed(self) -> bool:
        """Title present and a real point in time."""
        return bool(self.title) and self.watched_at.tzinfo is not None

    @property
    def is_removed(self) -> bool:
        return self.url is None

    @property
    def video_id(self) -> Optional[str]:
        return extract_video_id(self.url)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for the cache file."""
        return {
            "title": self.title,
            "watched_at": self.watched_at.isoformat(),
            "product": self.product.value,
            "url": self.url,
            "channel_name": self.channel_name,
            "channel_url": self.channel_url,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WatchEvent":
        """Deserialize from the cache file."""
        watched_at = datetime.fromisoformat(data["watched_at"])
        if watched_at.tzinfo is None:
            watched_at = watched_at.replace(tzinfo=timezone.utc)
        return cls(
            title=data["title"],
            watched_at=watched_at.astimezone(timezone.utc),
            product=Product(data.get("product", Product.YOUTUBE.value)),
            url=data.get("url"),
            channel_name=data.get("channel_name"),
            channel_url=data.get("channel_url"),
        )


# ═══════════════════════════════════════════════════════════════════════════
# PARSE RESULT
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SkippedRecord:
    """A record dropped under RecordPolicy.SKIP."""
    index: int                       # position in the source export
    reason: str
    line: Optional[int] = None       # source line (HTML only)
    raw: str = ""                    # short excerpt for diagnostics


@dataclass
class ParseResult:
    """Events in source order, plus what was skipped or ignored."""
    events: List[WatchEvent]
    format: HistoryFormat
    skipped: List[SkippedRecord] = field(default_factory=list)
    ignored: int = 0                 # non-watch rows ("Visited YouTube Music")

    def __len__(self) -> int:
        return len(self.events)

    def __iter__(self) -> Iterator[WatchEvent]:
        return iter(self.events)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)
