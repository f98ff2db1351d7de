"""
Orchestrator - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line interface for the market-data pipeline.

- Provides argparse-based CLI
- Loads configuration from the environment (.env honoured)
- Long-running mode plus one-shot administrative commands
- Entry point for the application

============================================================
USAGE
============================================================
python app.py run
python app.py force-update fear_greed_index
python app.py publish 1234
python app.py check-now
python app.py status
python app.py report altcoin_season_index --days 30
python app.py init-db

============================================================
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from core.config import AppSettings, load_settings
from core.exceptions import ConfigurationError
from data_ingestion.analysis import analyze_altcoin_season, analyze_market, analyze_sentiment
from data_ingestion.ingestion_service import UnknownFeedError
from data_ingestion.types import FeedKind, IngestionError
from orchestrator.runtime import Runtime, setup_logging
from storage.database import session_scope
from storage.repositories.exceptions import RepositoryException
from storage.repositories.market_data import (
    AltcoinSeasonRepository,
    CryptocurrencyListingsRepository,
    FearGreedRepository,
)


FEED_CHOICES = [kind.value for kind in FeedKind]

RuntimeFactory = Callable[[AppSettings], Runtime]


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="market-signal-pipeline",
        description="Market data ingestion and Telegram publishing pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  run            - Run the feed schedulers and the publisher until SIGINT/SIGTERM
  force-update   - Refresh one feed now, ignoring its watermark
  publish        - Publish one processed content item regardless of the cursor
  check-now      - Run one publisher cycle
  status         - Print watermarks, cursor and scheduler state
  report         - Print an analysis of stored feed data
  init-db        - Create missing tables

Feeds:
  cryptocurrency_listings, fear_greed_index, altcoin_season_index
        """,
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Logging level (default: LOG_LEVEL or INFO)",
    )
    parser.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        default=None,
        help="Log output format (default: LOG_FORMAT or text)",
    )

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    run_parser = subparsers.add_parser("run", help="Run the pipeline")
    run_parser.add_argument(
        "--skip-init-db",
        action="store_true",
        help="Do not create missing tables at startup",
    )
    run_parser.add_argument(
        "--publisher-interval",
        type=float,
        default=None,
        help="Publisher poll period in seconds (overrides PUBLISHER_INTERVAL_SECONDS)",
    )

    force_parser = subparsers.add_parser("force-update", help="Refresh one feed now")
    force_parser.add_argument("feed", choices=FEED_CHOICES)

    publish_parser = subparsers.add_parser("publish", help="Force publish one content item")
    publish_parser.add_argument("content_id", type=int)

    subparsers.add_parser("check-now", help="Run one publisher cycle")
    subparsers.add_parser("status", help="Show pipeline status")

    report_parser = subparsers.add_parser("report", help="Analyze stored feed data")
    report_parser.add_argument("feed", choices=FEED_CHOICES)
    report_parser.add_argument(
        "--days",
        type=int,
        default=30,
        help="History window for the index feeds (default: 30)",
    )
    report_parser.add_argument(
        "--limit",
        type=int,
        default=100,
        help="Number of top cryptocurrencies for the listings report (default: 100)",
    )

    subparsers.add_parser("init-db", help="Create missing tables")

    return parser


# ============================================================
# CLI VALIDATION
# ============================================================

def validate_args(args: argparse.Namespace) -> List[str]:
    """
    Validate CLI arguments.

    Args:
        args: Parsed arguments

    Returns:
        List of validation errors
    """
    errors = []

    if args.command == "publish" and args.content_id < 1:
        errors.append("content_id must be a positive integer")

    if args.command == "report":
        if args.days < 1:
            errors.append("--days must be at least 1")
        if args.limit < 1:
            errors.append("--limit must be at least 1")

    if args.command == "run" and args.publisher_interval is not None and args.publisher_interval <= 0:
        errors.append("--publisher-interval must be positive")

    return errors


# ============================================================
# REPORTS
# ============================================================

def build_report(runtime: Runtime, feed_id: str, days: int = 30, limit: int = 100) -> Dict[str, Any]:
    """Load stored data for ``feed_id`` and analyze it."""
    since = runtime.clock.now() - timedelta(days=days)

    with session_scope(runtime.session_factory) as session:
        if feed_id == FeedKind.ALTCOIN_SEASON_INDEX.value:
            points = AltcoinSeasonRepository(session).get_historical(since)
            analysis = analyze_altcoin_season(points)
        elif feed_id == FeedKind.FEAR_GREED_INDEX.value:
            points = FearGreedRepository(session).get_historical(since)
            analysis = analyze_sentiment(points)
        else:
            listings = CryptocurrencyListingsRepository(session).get_top_cryptocurrencies(limit)
            analysis = analyze_market(listings)

    return {"feed_id": feed_id, "window_days": days, "analysis": analysis}


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


# ============================================================
# MAIN ENTRY POINT
# ============================================================

async def async_main(
    args: argparse.Namespace,
    settings: AppSettings,
    runtime_factory: RuntimeFactory = Runtime,
) -> int:
    """
    Async main entry point.

    Args:
        args: Parsed arguments
        settings: Loaded settings
        runtime_factory: Builds the runtime (injectable for tests)

    Returns:
        Exit code
    """
    runtime = runtime_factory(settings)

    try:
        if args.command == "run":
            if not args.skip_init_db:
                runtime.initialize_database()
            if args.publisher_interval is not None:
                runtime.publisher.start(args.publisher_interval)
            await runtime.run_forever()
            return 0

        if args.command == "init-db":
            runtime.initialize_database()
            print("Database tables ready")
            return 0

        if args.command == "force-update":
            result = await runtime.ingestion.force_update(args.feed)
            _print_json(result.to_dict())
            return 0

        if args.command == "publish":
            delivered = await runtime.publisher.force_publish(args.content_id)
            print(f"Content {args.content_id}: {'published' if delivered else 'NOT published'}")
            return 0 if delivered else 1

        if args.command == "check-now":
            result = await runtime.publisher.check_now()
            _print_json(result.to_dict())
            return 0

        if args.command == "status":
            _print_json(runtime.get_status())
            return 0

        if args.command == "report":
            _print_json(build_report(runtime, args.feed, args.days, args.limit))
            return 0

        print(f"Error: unknown command {args.command}", file=sys.stderr)
        return 2

    except UnknownFeedError as e:
        print(f"Error: {e.args[0]}", file=sys.stderr)
        return 1
    except (IngestionError, RepositoryException) as e:
        logging.error(f"{args.command} failed: {type(e).__name__}: {e}")
        print(f"Error: {type(e).__name__}: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        return 130
    except Exception as e:
        logging.error(f"Fatal error: {e}", exc_info=True)
        return 1
    finally:
        await runtime.stop()


def main(
    argv: Optional[List[str]] = None,
    settings: Optional[AppSettings] = None,
    runtime_factory: RuntimeFactory = Runtime,
) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])
        settings: Preloaded settings (default: load_settings())
        runtime_factory: Builds the runtime

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    errors = validate_args(args)
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return 1

    if settings is None:
        try:
            settings = load_settings()
        except ConfigurationError as e:
            print(f"Configuration error: {e.message}", file=sys.stderr)
            print(json.dumps(e.to_dict(), indent=2, default=str), file=sys.stderr)
            return 1

    setup_logging(
        level=args.log_level or settings.log_level,
        log_format=args.log_format or settings.log_format,
    )

    if args.command == "run":
        print_banner(args, settings)

    return asyncio.run(async_main(args, settings, runtime_factory))


def print_banner(args: argparse.Namespace, settings: AppSettings) -> None:
    """Print startup banner."""
    print()
    print("=" * 60)
    print("  MARKET SIGNAL PIPELINE")
    print("=" * 60)
    print(f"  API keys:   {len(settings.provider.api_keys)}")
    for feed in settings.feeds:
        state = "on" if feed.enabled else "off"
        print(f"  {feed.feed_id:<24} {state:<3} poll {feed.poll_seconds}s / update {feed.interval_seconds}s")
    print(f"  Publisher:  {'on' if settings.publisher.enabled else 'off'}")
    print(f"  Telegram:   {len(settings.telegram.chat_ids)} chat(s)")
    print("=" * 60)
    print()


# ============================================================
# MODULE EXECUTION
# ============================================================

if __name__ == "__main__":
    sys.exit(main())
