"""
History Parser Factory - YouTube Watch-History Import
======================================================

Drop your Takeout export. Get an ordered list of watch events.

Supported Formats:
- watch-history.json  (Takeout "JSON" option)
- watch-history.html  (Takeout default, rendered markup)

Auto-detection: Factory checks the file extension, then sniffs the first
bytes of the content, and routes to the matching parser.

Usage:
    factory = HistoryParserFactory()
    result = factory.parse_file("Takeout/YouTube and YouTube Music/history/watch-history.html")

    for event in result:
        print(event.watched_at, event.title)

    # Or explicit:
    result = factory.parse(raw_bytes, fmt=HistoryFormat.JSON)

Record policy:
    A record that cannot become a WatchEvent (no timestamp, bad timestamp,
    no title link) is either skipped and listed in result.skipped
    (RecordPolicy.SKIP, default) or raised as MalformedRecord
    (RecordPolicy.ABORT). The policy belongs to the parser instance, so
    every record of a parse is treated the same way.

Version: 1.0.0
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from bs4 import BeautifulSoup
from bs4.element import Comment, NavigableString, Tag

from .errors import MalformedInput, MalformedRecord, TimestampError, UnrecognizedFormat
from .schemas import (
    HistoryFormat,
    ParseResult,
    Product,
    RecordPolicy,
    SkippedRecord,
    WatchEvent,
    collapse_whitespace,
    strip_watched_prefix,
)
from .timestamps import ZoneSpec, parse_export_timestamp, parse_iso_timestamp

logger = logging.getLogger(__name__)

Content = Union[str, bytes]

# Individual skip warnings before switching to a summary line
MAX_LOGGED_SKIPS = 5


# ============================================================================
# BASE PARSER (Abstract)
# ============================================================================

class BaseHistoryParser(ABC):
    """Base class for watch-history export parsers."""

    FORMAT: HistoryFormat

    def __init__(
        self,
        policy: Union[RecordPolicy, str] = RecordPolicy.SKIP,
        extra_zones: Optional[Mapping[str, ZoneSpec]] = None,
    ):
        self.policy = RecordPolicy(policy)
        self.extra_zones = dict(extra_zones or {})
        self.stats = self._empty_stats()

    @staticmethod
    def _empty_stats() -> Dict[str, int]:
        return {
            'total_records': 0,
            'events': 0,
            'skipped': 0,
            'ignored': 0,
        }

    @classmethod
    @abstractmethod
    def can_parse(cls, head: str) -> bool:
        """Check whether the start of a document looks like this format."""
        pass

    @abstractmethod
    def _split_records(self, text: str) -> List[Any]:
        """Break the document into raw records. Raises MalformedInput."""
        pass

    @abstractmethod
    def _to_event(self, index: int, record: Any) -> Optional[WatchEvent]:
        """
        Convert one raw record.

        Returns None for rows that are not watch events at all.
        Raises MalformedRecord for rows that should be but are unusable.
        """
        pass

    @abstractmethod
    def _excerpt(self, record: Any) -> str:
        """Short text of a raw record for SkippedRecord.raw."""
        pass

    def parse(self, content: Content) -> ParseResult:
        """Parse a whole export into a ParseResult (source order kept)."""
        self.stats = self._empty_stats()

        text = self._decode(content)
        records = self._split_records(text)
        self.stats['total_records'] = len(records)

        events: List[WatchEvent] = []
        skipped: List[SkippedRecord] = []
        ignored = 0

        for index, record in enumerate(records):
            try:
                event = self._to_event(index, record)
            except MalformedRecord as e:
                if self.policy is RecordPolicy.ABORT:
                    logger.error(f"Aborting {self.FORMAT.value} parse: {e}")
                    raise
                skipped.append(SkippedRecord(
                    index=e.index,
                    reason=e.reason,
                    line=e.line,
                    raw=self._excerpt(record),
                ))
                if len(skipped) <= MAX_LOGGED_SKIPS:
                    logger.warning(f"Skipping {e}")
                continue

            if event is None:
                ignored += 1
                continue
            events.append(event)

        if len(skipped) > MAX_LOGGED_SKIPS:
            logger.warning(
                f"Skipped {len(skipped)} malformed records "
                f"({len(skipped) - MAX_LOGGED_SKIPS} not shown)"
            )

        self.stats.update(events=len(events), skipped=len(skipped), ignored=ignored)
        logger.info(
            f"Parsed {len(events)} events from {len(records)} {self.FORMAT.value} records "
            f"({len(skipped)} skipped, {ignored} ignored)"
        )

        return ParseResult(
            events=events,
            format=self.FORMAT,
            skipped=skipped,
            ignored=ignored,
        )

    def parse_file(self, filepath: Union[str, Path]) -> ParseResult:
        """Read a file and parse it."""
        filepath = Path(filepath)
        return self.parse(filepath.read_bytes())

    @staticmethod
    def _decode(content: Content) -> str:
        """Bytes -> text. Takeout writes UTF-8, sometimes with a BOM."""
        if isinstance(content, bytes):
            try:
                return content.decode('utf-8-sig')
            except UnicodeDecodeError as e:
                raise MalformedInput(
                    f"Invalid UTF-8 at byte {e.start}: {content[e.start:e.end]!r}"
                ) from e
        return content.lstrip('\ufeff')


# ============================================================================
# JSON PARSER
# ============================================================================

class JsonHistoryParser(BaseHistoryParser):
    """
    Parser for watch-history.json.

    Structure (array, most recent first):
    [
      {
        "header": "YouTube",
        "title": "Watched An Addictive Alternative To DAWs",
        "titleUrl": "https://www.youtube.com/watch?v=rtTWtzWav8I",
        "subtitles": [{"name": "Benn Jordan", "url": "https://www.youtube.com/channel/..."}],
        "time": "2023-06-04T04:07:59.107Z",
        "products": ["YouTube"],
        "activityControls": ["YouTube watch history"]
      }
    ]

    Removed videos have no titleUrl and no subtitles.
    """

    FORMAT = HistoryFormat.JSON

    @classmethod
    def can_parse(cls, head: str) -> bool:
        """JSON exports start with an array (or object) token."""
        return head.lstrip()[:1] in ('[', '{')

    def _split_records(self, text: str) -> List[Any]:
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as e:
            raise MalformedInput(
                f"Invalid JSON at line {e.lineno} column {e.colno}: {e.msg}"
            ) from e

        if not isinstance(raw, list):
            raise MalformedInput(
                f"Expected a JSON array of history records, got {type(raw).__name__}"
            )
        return raw

    def _to_event(self, index: int, record: Any) -> Optional[WatchEvent]:
        if not isinstance(record, dict):
            raise MalformedRecord(index, f"expected object, got {type(record).__name__}")

        raw_title = record.get('title')
        if not isinstance(raw_title, str) or not raw_title.strip():
            raise MalformedRecord(index, "missing title")

        title = collapse_whitespace(raw_title)
        if title.startswith('Visited '):
            # "Visited YouTube Music" and friends are not watches
            return None

        if 'time' not in record:
            raise MalformedRecord(index, "missing time")
        try:
            watched_at = parse_iso_timestamp(record['time'])
        except TimestampError as e:
            raise MalformedRecord(index, str(e)) from e

        url = self._optional_str(index, record, 'titleUrl')

        channel_name = channel_url = None
        subtitles = record.get('subtitles') or []
        if isinstance(subtitles, list) and subtitles and isinstance(subtitles[0], dict):
            name = self._optional_str(index, subtitles[0], 'name', 'subtitles.name')
            if name:
                channel_name = collapse_whitespace(name) or None
            channel_url = self._optional_str(index, subtitles[0], 'url', 'subtitles.url')

        marker = self._optional_str(index, record, 'header')
        if not marker:
            products = record.get('products') or []
            if isinstance(products, list):
                marker = " ".join(p for p in products if isinstance(p, str))

        return WatchEvent(
            title=strip_watched_prefix(title),
            watched_at=watched_at,
            product=Product.from_marker(marker, url),
            url=url,
            channel_name=channel_name,
            channel_url=channel_url,
        )

    @staticmethod
    def _optional_str(index: int, obj: Dict[str, Any], key: str, label: Optional[str] = None) -> Optional[str]:
        """String field or None; any other type fails the record."""
        value = obj.get(key)
        if value is None or value == '':
            return None
        if not isinstance(value, str):
            raise MalformedRecord(
                index, f"{label or key} must be a string, got {type(value).__name__}"
            )
        return value

    def _excerpt(self, record: Any) -> str:
        try:
            return json.dumps(record, ensure_ascii=False)[:120]
        except (TypeError, ValueError):
            return repr(record)[:120]


# ============================================================================
# HTML PARSER
# ============================================================================

class HtmlHistoryParser(BaseHistoryParser):
    """
    Parser for watch-history.html.

    Every entry is an outer-cell block. Only the header and the first
    body-1 content cell matter; the rest is layout and the "Products:"
    caption.

    <div class="outer-cell mdl-cell mdl-cell--12-col mdl-shadow--2dp">
      <div class="mdl-grid">
        <div class="header-cell mdl-cell mdl-cell--12-col">
          <p class="mdl-typography--title">YouTube<br></p>
        </div>
        <div class="content-cell mdl-cell mdl-cell--6-col mdl-typography--body-1">
          Watched&nbsp;<a href="https://www.youtube.com/watch?v=...">Title</a><br>
          <a href="https://www.youtube.com/channel/...">Channel</a><br>
          Jun 29, 2021, 4:49:36 PM EDT<br>
        </div>
        <div class="content-cell mdl-cell mdl-cell--6-col mdl-typography--body-1
                    mdl-typography--text-right"></div>
        <div class="content-cell mdl-cell mdl-cell--12-col mdl-typography--caption">
          <b>Products:</b><br>&emsp;YouTube<br>
        </div>
      </div>
    </div>
    """

    FORMAT = HistoryFormat.HTML

    CONTAINER_SELECTOR = 'div.outer-cell'
    HEADER_SELECTOR = '.header-cell, .mdl-typography--title'
    BODY_SELECTOR = 'div.content-cell.mdl-typography--body-1'

    @classmethod
    def can_parse(cls, head: str) -> bool:
        """HTML exports start with a doctype or the root element."""
        start = head.lstrip().lower()
        return start.startswith('<!doctype html') or start.startswith('<html')

    def _split_records(self, text: str) -> List[Any]:
        soup = BeautifulSoup(text, 'html.parser')

        if soup.find() is None:
            raise MalformedInput("Document contains no markup")

        containers = soup.select(self.CONTAINER_SELECTOR)
        if not containers:
            raise MalformedInput("No history entries found in HTML document")
        return containers

    def _to_event(self, index: int, container: Tag) -> Optional[WatchEvent]:
        line = container.sourceline

        body = container.select_one(self.BODY_SELECTOR)
        if body is None:
            raise MalformedRecord(index, "missing content cell", line)

        lead = next((s for s in body.find_all(string=True) if s.strip()), '')
        if collapse_whitespace(lead).startswith('Visited'):
            return None

        links = body.find_all('a')
        if not links:
            raise MalformedRecord(index, "missing title link", line)

        title_link = links[0]
        url = title_link.get('href') or None
        title = collapse_whitespace(title_link.get_text()) or url
        if not title:
            raise MalformedRecord(index, "empty title link", line)

        channel_name = channel_url = None
        if len(links) > 1:
            channel_name = collapse_whitespace(links[1].get_text()) or None
            channel_url = links[1].get('href') or None

        stamp = self._timestamp_text(body, title_link)
        if stamp is None:
            raise MalformedRecord(index, "missing timestamp", line)
        try:
            watched_at = parse_export_timestamp(stamp, self.extra_zones)
        except TimestampError as e:
            raise MalformedRecord(index, str(e), line) from e

        header = container.select_one(self.HEADER_SELECTOR)
        marker = header.get_text() if header is not None else None

        return WatchEvent(
            title=title,
            watched_at=watched_at,
            product=Product.from_marker(marker, url),
            url=url,
            channel_name=channel_name,
            channel_url=channel_url,
        )

    @staticmethod
    def _timestamp_text(body: Tag, title_link: Tag) -> Optional[str]:
        """Last non-empty text node after the title link that is not link text."""
        seen_link = False
        last = None
        for node in body.descendants:
            if node is title_link:
                seen_link = True
                continue
            if not seen_link or not isinstance(node, NavigableString):
                continue
            if isinstance(node, Comment) or node.find_parent('a') is not None:
                continue
            text = collapse_whitespace(node)
            if text:
                last = text
        return last

    def _excerpt(self, container: Tag) -> str:
        return collapse_whitespace(container.get_text(' '))[:120]


# ============================================================================
# FACTORY
# ============================================================================

class HistoryParserFactory:
    """
    Format dispatcher for watch-history exports.

    Extension decides first (.json, .html, .htm); otherwise the content is
    sniffed. The chosen parser's ParseResult is returned untouched.

    Usage:
        factory = HistoryParserFactory(policy="skip")

        # Auto-detect
        result = factory.parse_file("watch-history.html")

        # Content without a useful name
        result = factory.parse(data)
    """

    PARSERS = {
        HistoryFormat.JSON: JsonHistoryParser,
        HistoryFormat.HTML: HtmlHistoryParser,
    }

    EXTENSIONS = {
        '.json': HistoryFormat.JSON,
        '.html': HistoryFormat.HTML,
        '.htm': HistoryFormat.HTML,
    }

    # Bytes looked at when sniffing content
    SNIFF_BYTES = 512

    def __init__(
        self,
        policy: Union[RecordPolicy, str] = RecordPolicy.SKIP,
        extra_zones: Optional[Mapping[str, ZoneSpec]] = None,
    ):
        self.policy = RecordPolicy(policy)
        self.extra_zones = dict(extra_zones or {})
        self.last_format: Optional[HistoryFormat] = None
        self.last_stats: Dict[str, Any] = {}

    @classmethod
    def from_config(cls) -> "HistoryParserFactory":
        """Factory using parsing.* settings from config.yaml."""
        from .config import cfg

        return cls(
            policy=cfg("parsing.record_policy", RecordPolicy.SKIP.value),
            extra_zones=cfg("parsing.extra_timezones", {}) or {},
        )

    def create_parser(self, fmt: Union[HistoryFormat, str]) -> BaseHistoryParser:
        """Instantiate the parser for a format with this factory's policy."""
        parser_class = self.PARSERS[HistoryFormat(fmt)]
        return parser_class(policy=self.policy, extra_zones=self.extra_zones)

    def detect_format(self, content: Content, filename: Optional[Union[str, Path]] = None) -> HistoryFormat:
        """
        Decide which export format content is in.

        Raises:
            UnrecognizedFormat: neither extension nor content is conclusive
        """
        if filename is not None:
            suffix = Path(filename).suffix.lower()
            if suffix in self.EXTENSIONS:
                fmt = self.EXTENSIONS[suffix]
                logger.debug(f"Detected {fmt.value} from extension {suffix}")
                return fmt

        head = content[:self.SNIFF_BYTES]
        if isinstance(head, bytes):
            head = head.decode('utf-8-sig', errors='ignore')
        head = head.lstrip('\ufeff')

        for fmt, parser_class in self.PARSERS.items():
            if parser_class.can_parse(head):
                logger.debug(f"Detected {fmt.value} from content")
                return fmt

        name = f" for {Path(filename).name}" if filename is not None else ""
        raise UnrecognizedFormat(
            f"Could not detect watch-history format{name}. "
            "Supported: Takeout JSON (.json) and HTML (.html, .htm)."
        )

    def parse(
        self,
        content: Content,
        filename: Optional[Union[str, Path]] = None,
        fmt: Optional[Union[HistoryFormat, str]] = None,
    ) -> ParseResult:
        """
        Parse export content with auto-detection or an explicit format.

        Args:
            content: Raw file bytes or text
            filename: Optional name used for extension detection
            fmt: Explicit format, skips detection

        Returns:
            ParseResult from the matching parser
        """
        fmt = HistoryFormat(fmt) if fmt is not None else self.detect_format(content, filename)
        parser = self.create_parser(fmt)
        self.last_format = fmt

        try:
            return parser.parse(content)
        finally:
            self.last_stats = dict(parser.stats)

    def parse_file(
        self,
        filepath: Union[str, Path],
        fmt: Optional[Union[HistoryFormat, str]] = None,
    ) -> ParseResult:
        """Read and parse an export file."""
        filepath = Path(filepath)

        if not filepath.exists():
            raise FileNotFoundError(f"File not found: {filepath}")

        logger.info(f"Reading watch history from {filepath}")
        return self.parse(filepath.read_bytes(), filename=filepath, fmt=fmt)

    def get_stats(self) -> Dict[str, Any]:
        """Get parsing statistics from last parse operation."""
        return {
            'format': self.last_format.value if self.last_format else None,
            **self.last_stats
        }
