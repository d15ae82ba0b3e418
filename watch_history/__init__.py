"""YouTube watch-history export parsing (Takeout JSON and HTML)."""
from .errors import (
    HistoryError, UnrecognizedFormat, MalformedInput, MalformedRecord, TimestampError
)
from .schemas import (
    WatchEvent, Product, HistoryFormat, RecordPolicy, SkippedRecord, ParseResult
)
from .timestamps import parse_export_timestamp, parse_iso_timestamp, TZ_ABBREVIATIONS
from .history_parser import (
    BaseHistoryParser, JsonHistoryParser, HtmlHistoryParser, HistoryParserFactory
)
from .library import WatchLibrary

__version__ = "1.0.0"

__all__ = [
    # Errors
    "HistoryError", "UnrecognizedFormat", "MalformedInput", "MalformedRecord", "TimestampError",
    # Schemas
    "WatchEvent", "Product", "HistoryFormat", "RecordPolicy", "SkippedRecord", "ParseResult",
    # Timestamps
    "parse_export_timestamp", "parse_iso_timestamp", "TZ_ABBREVIATIONS",
    # Parsers
    "BaseHistoryParser", "JsonHistoryParser", "HtmlHistoryParser", "HistoryParserFactory",
    # Library
    "WatchLibrary",
]
