"""
Error taxonomy for watch-history parsing.

    HistoryError
    ├── UnrecognizedFormat   file is neither JSON nor HTML export
    ├── MalformedInput       whole document could not be parsed
    └── MalformedRecord      a single entry could not become a WatchEvent

TimestampError is raised by the timestamp helpers and converted into
MalformedRecord by the parsers.
"""

from typing import Optional


class HistoryError(ValueError):
    """Base class for all watch-history parse failures."""


class UnrecognizedFormat(HistoryError):
    """Neither the file name nor the content identifies a supported export."""


class MalformedInput(HistoryError):
    """The top-level document is broken (invalid JSON, undecodable bytes, ...)."""


class MalformedRecord(HistoryError):
    """One record inside an otherwise valid export is unusable."""

    def __init__(self, index: int, reason: str, line: Optional[int] = None):
        self.index = index
        self.reason = reason
        self.line = line
        where = f"record {index}"
        if line is not None:
            where += f" (line {line})"
        super().__init__(f"{where}: {reason}")


class TimestampError(ValueError):
    """A timestamp string did not match any known export layout."""
