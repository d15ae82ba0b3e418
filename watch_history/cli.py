"""
Watch History CLI - summary of a Takeout watch-history export

Usage:
    python -m watch_history                          # config.yaml data file
    python -m watch_history watch-history.json --top 20
    python -m watch_history export.txt --format html --policy abort
    python -m watch_history --product music --no-cache
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import cfg, get_cache_file, get_data_file, setup_logging
from .errors import HistoryError
from .history_parser import HistoryParserFactory
from .library import WatchLibrary
from .schemas import HistoryFormat, Product, RecordPolicy

logger = logging.getLogger(__name__)

PRODUCTS = {
    "youtube": Product.YOUTUBE,
    "music": Product.YOUTUBE_MUSIC,
}


def cache_is_fresh(cache_file: Path, source: Path) -> bool:
    """Cache exists and is not older than the export it was built from."""
    if not cache_file.exists():
        return False
    if not source.exists():
        return True
    return cache_file.stat().st_mtime >= source.stat().st_mtime


def load_library(
    source: Path,
    fmt: Optional[str],
    policy: str,
    use_cache: bool,
    cache_file: Path,
) -> WatchLibrary:
    """Load from cache when possible, else parse the export (and cache it)."""
    extra_zones = cfg("parsing.extra_timezones", {}) or {}
    settings = {
        "format": fmt,
        "policy": RecordPolicy(policy).value,
        "extra_timezones": dict(extra_zones),
    }

    if use_cache and cache_is_fresh(cache_file, source):
        try:
            return WatchLibrary.load_cache(cache_file, settings)
        except HistoryError as e:
            logger.warning(f"Couldn't use cache data: {e}")

    factory = HistoryParserFactory(policy=policy, extra_zones=extra_zones)
    result = factory.parse_file(source, fmt=fmt)

    if result.skipped:
        print(f"Skipped {result.skipped_count} malformed entries")
        for skipped in result.skipped[:5]:
            print(f"  #{skipped.index}: {skipped.reason}")

    library = WatchLibrary(result.events)
    if use_cache:
        library.save_cache(cache_file, settings)
    return library


def print_summary(library: WatchLibrary, top: int) -> None:
    print(
        f"History contains {library.count_videos()} unique videos "
        f"and {library.count_watches()} watches"
    )

    if top <= 0 or not len(library):
        return

    print()
    print(f"Top {top} most watched videos")
    for i, (count, event) in enumerate(library.most_watched(top), 1):
        s = "s" if count != 1 else ""
        print(f"  {i}. {event.title} viewed {count} time{s}")

    channels = library.top_channels(top)
    if channels:
        print()
        print(f"Top {top} channels")
        for i, (count, name) in enumerate(channels, 1):
            print(f"  {i}. {name} ({count})")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Summarize a YouTube watch-history export")
    parser.add_argument("path", nargs="?", help="Export file (default: history.data_file from config)")
    parser.add_argument("--format", choices=[f.value for f in HistoryFormat], help="Skip format detection")
    parser.add_argument(
        "--policy",
        choices=[p.value for p in RecordPolicy],
        default=None,
        help="Malformed record handling (default: parsing.record_policy)",
    )
    parser.add_argument("-n", "--top", type=int, default=10, help="Number of top videos/channels to show")
    parser.add_argument("--product", choices=sorted(PRODUCTS), help="Only count one product")
    parser.add_argument("--no-cache", action="store_true", help="Always parse the export")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    args = parser.parse_args(argv)
    setup_logging("DEBUG" if args.verbose else None)

    default_source = get_data_file()
    source = Path(args.path) if args.path else default_source
    policy = args.policy or cfg("parsing.record_policy", RecordPolicy.SKIP.value)
    if policy not in [p.value for p in RecordPolicy]:
        choices = ", ".join(p.value for p in RecordPolicy)
        print(f"Error: parsing.record_policy must be one of {choices}, got {policy!r}", file=sys.stderr)
        return 1

    # The cache belongs to the configured export only
    use_cache = (
        cfg("history.use_cache", True)
        and not args.no_cache
        and source.resolve() == default_source.resolve()
    )

    try:
        library = load_library(source, args.format, policy, use_cache, get_cache_file())
    except (HistoryError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.product:
        library = library.filter(product=PRODUCTS[args.product])

    print_summary(library, args.top)
    return 0


if __name__ == "__main__":
    sys.exit(main())
