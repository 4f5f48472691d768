"""CLI commands for podcast syncing.

Provides commands for:
- Syncing feeds and downloading new episodes
- Catching up (marking existing episodes as done)
- Listing subscriptions
- Adding subscriptions
"""

import argparse
import logging
import re
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from .. import __version__
from ..config import LOG_LEVELS, Config
from ..errors import ConfigError, LedgerWriteError, SubscriptionError
from ..podcast.feed_sync import FeedSyncService, SyncResult
from ..podcast.subscriptions import Subscription, Subscriptions

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO", log_dir: Optional[Path] = None) -> Optional[Path]:
    """
    Configure root logging for a CLI run.

    Logs go to stderr, and additionally to a timestamped file inside `log_dir` when given.

    Returns:
        Path of the log file, or None when logging only to stderr.
    """
    handlers = [logging.StreamHandler(sys.stderr)]
    log_path = None

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        log_path = log_dir / datetime.now().strftime("%Y-%m-%d_%H-%M-%S.log")
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
    return log_path


def _print_errors(result: SyncResult, limit: int = 10) -> None:
    if not result.errors:
        return

    print(f"\n{len(result.errors)} errors:", file=sys.stderr)
    for error in result.errors[:limit]:
        print(f"  - {error}", file=sys.stderr)
    if len(result.errors) > limit:
        print(f"  ... and {len(result.errors) - limit} more (see log)", file=sys.stderr)

    unrecorded = [e for e in result.errors if isinstance(e, LedgerWriteError)]
    if unrecorded:
        print(
            f"\nWARNING: {len(unrecorded)} downloaded episodes could not be recorded "
            f"and will be downloaded again next time.",
            file=sys.stderr,
        )


def sync_feeds(args, config: Config):
    """
    Sync subscriptions and download new episodes.

    Honors `args.filter` (case-insensitive regex on subscription names) and `args.print`
    (print downloaded paths to stdout).
    """
    subscriptions = Subscriptions.load(config.SUBSCRIPTIONS_FILE).assert_not_empty()
    service = FeedSyncService.from_config(config)

    try:
        result = service.sync(
            subscriptions,
            name_filter=args.filter,
            ledger_path=config.LEDGER_PATH,
            require_matches=True,
        )
    finally:
        service.close()

    print("Syncing complete!", file=sys.stderr)
    print(f"{result.downloaded} episodes downloaded.", file=sys.stderr)
    _print_errors(result)

    if args.print:
        for path in result.paths:
            print(path)


def catch_up(args, config: Config, name_filter=None):
    """Mark every episode published so far as done, without downloading."""
    subscriptions = Subscriptions.load(config.SUBSCRIPTIONS_FILE).assert_not_empty()
    service = FeedSyncService.from_config(config)

    if name_filter is None:
        name_filter = getattr(args, "filter", None)

    try:
        result = service.catch_up(
            subscriptions,
            name_filter=name_filter,
            ledger_path=config.LEDGER_PATH,
            require_matches=True,
        )
    finally:
        service.close()

    print(f"Caught up: {result.marked} episodes marked as done.", file=sys.stderr)
    _print_errors(result)


def list_podcasts(args, config: Config):
    """Print the names of subscriptions matching `args.filter`."""
    subscriptions = Subscriptions.load(config.SUBSCRIPTIONS_FILE).filter(args.filter)

    for name in subscriptions:
        print(name)


def add_podcast(args, config: Config):
    """
    Add a subscription from `args.url` under `args.name`.

    With `args.catch_up`, existing episodes of the new subscription are marked as done.
    """
    subscriptions = Subscriptions.load(config.SUBSCRIPTIONS_FILE)

    try:
        subscription = Subscription(name=args.name, url=args.url)
    except ValueError as e:
        raise ConfigError(str(e)) from e

    subscriptions.add(subscription)
    subscriptions.save(config.SUBSCRIPTIONS_FILE)
    print(f"'{args.name}' added!", file=sys.stderr)

    if args.catch_up:
        # Matches only the added podcast
        catch_up(args, config, name_filter=re.compile(f"^{re.escape(args.name)}$"))


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="podsync",
        description="A simple CLI podcast synchronizer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--env-file",
        help="Path to .env file",
        default=None,
    )
    parser.add_argument(
        "-l",
        "--log-level",
        choices=LOG_LEVELS,
        type=str.upper,
        help="Override PODSYNC_LOG_LEVEL",
        default=None,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # sync command
    sync_parser = subparsers.add_parser(
        "sync",
        help="Download new episodes",
    )
    sync_parser.add_argument(
        "-f",
        "--filter",
        help="Only sync podcasts whose name matches this regex (case-insensitive)",
    )
    sync_parser.add_argument(
        "-p",
        "--print",
        action="store_true",
        help="Print the downloaded paths to stdout",
    )

    # catch-up command
    catch_up_parser = subparsers.add_parser(
        "catch-up",
        help="Mark episodes published so far as downloaded",
    )
    catch_up_parser.add_argument(
        "-f",
        "--filter",
        help="Only catch up podcasts whose name matches this regex (case-insensitive)",
    )

    # list command
    list_parser = subparsers.add_parser(
        "list",
        help="List podcasts",
    )
    list_parser.add_argument(
        "-f",
        "--filter",
        help="Only list podcasts whose name matches this regex (case-insensitive)",
    )

    # add command
    add_parser = subparsers.add_parser(
        "add",
        help="Add a podcast from feed URL",
    )
    add_parser.add_argument("url", help="RSS feed URL")
    add_parser.add_argument("name", help="Name of the podcast")
    add_parser.add_argument(
        "-c",
        "--catch-up",
        action="store_true",
        help="Skip episodes published before now",
    )

    return parser


def main(argv=None):
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    commands = {
        "sync": sync_feeds,
        "catch-up": catch_up,
        "list": list_podcasts,
        "add": add_podcast,
    }

    try:
        config = Config(env_file=args.env_file)
        log_path = setup_logging(args.log_level or config.LOG_LEVEL, config.LOG_DIR)
        if log_path:
            logger.debug(f"Logging to {log_path}")

        commands[args.command](args, config)
    except (ConfigError, SubscriptionError) as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    main()
