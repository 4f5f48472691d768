"""Feed synchronization service.

Fans a sync run out over the subscriptions, one worker per feed, and
records every completed episode in the shared download ledger.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import List, Mapping, Optional, Union

from ..config import Config
from ..errors import (
    ConfigError,
    DownloadError,
    FetchError,
    LedgerWriteError,
    NoSubscriptionsError,
)
from ..utils import sanitize_filename
from .downloader import EpisodeDownloader
from .feed_parser import FeedParser
from .ledger import DownloadLedger
from .selector import EpisodeAction, SelectedEpisode, select_episodes
from .subscriptions import NameFilter, Subscription, Subscriptions

logger = logging.getLogger(__name__)


@dataclass
class SubscriptionResult:
    """Outcome of syncing one subscription."""

    name: str
    paths: List[Path] = field(default_factory=list)
    marked: int = 0
    skipped: int = 0
    errors: List[Exception] = field(default_factory=list)


@dataclass
class SyncResult:
    """Merged outcome of a sync run.

    Attributes:
        paths: Files downloaded during the run.
        marked: Episodes recorded as done without downloading (catch-up).
        skipped: Episodes already claimed or recorded by another worker.
        errors: Non-fatal errors, in the order they were collected.
        subscriptions: Per-subscription results.
    """

    paths: List[Path] = field(default_factory=list)
    marked: int = 0
    skipped: int = 0
    errors: List[Exception] = field(default_factory=list)
    subscriptions: List[SubscriptionResult] = field(default_factory=list)

    @property
    def downloaded(self) -> int:
        """Number of episodes downloaded."""
        return len(self.paths)

    def add(self, result: SubscriptionResult) -> None:
        """Merge one subscription's result into the run."""
        self.subscriptions.append(result)
        self.paths.extend(result.paths)
        self.marked += result.marked
        self.skipped += result.skipped
        self.errors.extend(result.errors)


class FeedSyncService:
    """Service for synchronizing podcast feeds with local storage.

    Each matching subscription is handled by its own worker: the feed is
    fetched, new episodes are selected against the ledger, and each one is
    downloaded (or, in catch-up mode, only recorded). Failures are isolated
    to the episode or subscription they happen in.

    Example:
        service = FeedSyncService.from_config(config)
        result = service.sync(subscriptions, name_filter="news", ledger_path=config.LEDGER_PATH)
        print(f"Downloaded: {result.downloaded}")
    """

    def __init__(
        self,
        download_directory: Union[str, Path],
        feed_parser: Optional[FeedParser] = None,
        downloader: Optional[EpisodeDownloader] = None,
        ledger_path: Optional[Union[str, Path]] = None,
        max_concurrent_feeds: int = 4,
        episode_workers: int = 2,
    ):
        """Create a FeedSyncService.

        Args:
            download_directory: Base directory; each subscription gets a subdirectory
                unless it configures its own.
            feed_parser: Feed source. Created with defaults when omitted.
            downloader: Download executor. Created with defaults when omitted.
            ledger_path: Default ledger path used when `sync` is not given one.
            max_concurrent_feeds: Subscriptions processed at the same time.
            episode_workers: Concurrent downloads within one subscription.
        """
        if max_concurrent_feeds < 1:
            raise ValueError(f"max_concurrent_feeds must be >= 1, got {max_concurrent_feeds}")
        if episode_workers < 1:
            raise ValueError(f"episode_workers must be >= 1, got {episode_workers}")

        self.download_directory = Path(download_directory)
        self.feed_parser = feed_parser or FeedParser()
        self.downloader = downloader or EpisodeDownloader()
        self.ledger_path = Path(ledger_path) if ledger_path else None
        self.max_concurrent_feeds = max_concurrent_feeds
        self.episode_workers = episode_workers

        self._stop_event = threading.Event()

    @classmethod
    def from_config(cls, config: Config) -> "FeedSyncService":
        """Build a service wired to the transport settings in `config`."""
        return cls(
            download_directory=config.DOWNLOAD_DIRECTORY,
            feed_parser=FeedParser(
                user_agent=config.USER_AGENT,
                timeout=config.FEED_TIMEOUT,
                retry_attempts=config.RETRY_ATTEMPTS,
            ),
            downloader=EpisodeDownloader(
                retry_attempts=config.RETRY_ATTEMPTS,
                timeout=config.DOWNLOAD_TIMEOUT,
                chunk_size=config.CHUNK_SIZE,
                user_agent=config.USER_AGENT,
            ),
            ledger_path=config.LEDGER_PATH,
            max_concurrent_feeds=config.MAX_CONCURRENT_FEEDS,
            episode_workers=config.EPISODE_WORKERS,
        )

    def sync(
        self,
        subscriptions: Union[Subscriptions, Mapping[str, Subscription]],
        name_filter: NameFilter = None,
        catch_up: bool = False,
        ledger_path: Optional[Union[str, Path]] = None,
        require_matches: bool = False,
        now: Optional[datetime] = None,
    ) -> SyncResult:
        """
        Sync every subscription whose name matches `name_filter`.

        Parameters:
            subscriptions: Mapping of subscription names to subscriptions.
            name_filter: Regular expression (case-insensitive when given as a string)
                searched in subscription names; None selects all.
            catch_up (bool): Record existing episodes as done instead of downloading them.
            ledger_path: Download ledger; defaults to the service's ledger path.
            require_matches (bool): Raise when the filter leaves nothing to sync.
            now: Start of the run used for catch-up; defaults to the current time.

        Returns:
            SyncResult: downloaded paths, catch-up count and collected non-fatal errors.

        Raises:
            ConfigError: If the ledger cannot be used or the filter is invalid.
            NoSubscriptionsError: If `require_matches` is set and nothing matches.
        """
        ledger_path = ledger_path or self.ledger_path
        if ledger_path is None:
            raise ConfigError("No download ledger path configured")

        ledger = DownloadLedger.load(ledger_path)

        if not isinstance(subscriptions, Subscriptions):
            subscriptions = Subscriptions(dict(subscriptions))
        selected = subscriptions.filter(name_filter)

        if not selected:
            if require_matches:
                raise NoSubscriptionsError(
                    f"No podcasts match filter '{getattr(name_filter, 'pattern', name_filter)}'"
                    if name_filter is not None
                    else "No podcasts configured"
                )
            logger.info("No podcasts to sync")
            return SyncResult()

        now = now or datetime.now(UTC)
        self._stop_event.clear()

        mode = "Catching up" if catch_up else "Syncing"
        logger.info(f"{mode} {len(selected)} podcasts ({len(ledger)} episodes already recorded)")

        result = SyncResult()
        executor = ThreadPoolExecutor(
            max_workers=min(self.max_concurrent_feeds, len(selected)),
            thread_name_prefix="podsync-feed",
        )
        interrupted = False

        try:
            future_to_name = {
                executor.submit(self.sync_subscription, subscription, ledger, catch_up, now): name
                for name, subscription in selected.items()
            }

            for future in as_completed(future_to_name):
                name = future_to_name[future]
                try:
                    result.add(future.result())
                except Exception as e:
                    logger.exception(f"[{name}] Sync failed unexpectedly: {e}")
                    result.add(SubscriptionResult(name=name, errors=[e]))

        except KeyboardInterrupt:
            interrupted = True
            logger.warning("Interrupted, stopping after in-flight episodes")
            self.stop()
            raise
        finally:
            executor.shutdown(wait=not interrupted, cancel_futures=interrupted)

        logger.info(
            f"{mode} complete: {result.downloaded} downloaded, "
            f"{result.marked} marked as done, {len(result.errors)} errors"
        )
        return result

    def catch_up(
        self,
        subscriptions: Union[Subscriptions, Mapping[str, Subscription]],
        name_filter: NameFilter = None,
        ledger_path: Optional[Union[str, Path]] = None,
        require_matches: bool = False,
        now: Optional[datetime] = None,
    ) -> SyncResult:
        """Record every currently published episode as done without downloading."""
        return self.sync(
            subscriptions,
            name_filter=name_filter,
            catch_up=True,
            ledger_path=ledger_path,
            require_matches=require_matches,
            now=now,
        )

    def stop(self) -> None:
        """Ask workers to stop after the episode they are working on."""
        self._stop_event.set()

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    def sync_subscription(
        self,
        subscription: Subscription,
        ledger: DownloadLedger,
        catch_up: bool,
        now: datetime,
    ) -> SubscriptionResult:
        """
        Fetch one subscription's feed and process its new episodes in feed order.

        Errors are logged and collected in the returned result; a feed that
        cannot be fetched yields a result with a single FetchError.
        """
        result = SubscriptionResult(name=subscription.name)

        try:
            podcast = self.feed_parser.fetch(subscription)
        except FetchError as e:
            logger.error(str(e))
            result.errors.append(e)
            return result

        selected = select_episodes(podcast.episodes, ledger, catch_up, now)
        if not selected:
            logger.info(f"[{subscription.name}] No new episodes")
            return result

        logger.info(f"[{subscription.name}] {len(selected)} new episodes")

        if catch_up:
            self._mark_done(subscription, selected, ledger, result)
        else:
            self._download_selected(subscription, selected, ledger, result)

        logger.info(
            f"[{subscription.name}] Done: {len(result.paths)} downloaded, "
            f"{result.marked} marked, {len(result.errors)} errors"
        )
        return result

    def _mark_done(
        self,
        subscription: Subscription,
        selected: List[SelectedEpisode],
        ledger: DownloadLedger,
        result: SubscriptionResult,
    ) -> None:
        for item in selected:
            if self.stopping:
                break
            if not ledger.claim(item.episode_id):
                result.skipped += 1
                continue
            if self._record(subscription, item, ledger, result):
                result.marked += 1

    def _download_selected(
        self,
        subscription: Subscription,
        selected: List[SelectedEpisode],
        ledger: DownloadLedger,
        result: SubscriptionResult,
    ) -> None:
        claimed = []
        for item in selected:
            if item.action is not EpisodeAction.DOWNLOAD:
                continue
            if ledger.claim(item.episode_id):
                claimed.append(item)
            else:
                result.skipped += 1

        if not claimed:
            return

        destination = self._destination(subscription)
        workers = subscription.max_concurrent_downloads or self.episode_workers

        with ThreadPoolExecutor(
            max_workers=min(workers, len(claimed)),
            thread_name_prefix=f"podsync-{sanitize_filename(subscription.name, fallback='feed')[:20]}",
        ) as pool:
            futures = [
                (item, pool.submit(self._download_one, subscription, item, destination))
                for item in claimed
            ]

            # Commit in feed order so ledger appends follow the feed
            for item, future in futures:
                try:
                    path = future.result()
                except DownloadError as e:
                    ledger.release(item.episode_id)
                    logger.error(str(e))
                    result.errors.append(e)
                    continue

                if path is None:
                    ledger.release(item.episode_id)
                    continue

                if self._record(subscription, item, ledger, result, path):
                    result.paths.append(path)

    def _download_one(
        self,
        subscription: Subscription,
        item: SelectedEpisode,
        destination: Path,
    ) -> Optional[Path]:
        if self.stopping:
            return None

        try:
            return self.downloader.download(item.episode, destination, subscription.name)
        except DownloadError:
            raise
        except Exception as e:
            logger.exception(f"[{subscription.name}] Unexpected download error: {e}")
            raise DownloadError(subscription.name, item.episode_id, str(e)) from e

    def _record(
        self,
        subscription: Subscription,
        item: SelectedEpisode,
        ledger: DownloadLedger,
        result: SubscriptionResult,
        path: Optional[Path] = None,
    ) -> bool:
        """Append the ledger entry for a handled episode; True when recorded."""
        try:
            recorded = ledger.append(item.episode_id, item.episode.title)
        except LedgerWriteError as write_error:
            # A downloaded file keeps its claim so no other subscription fetches it again this run
            if path is None:
                ledger.release(item.episode_id)
            e = LedgerWriteError(
                write_error.episode_id,
                write_error.path,
                write_error.message,
                subscription_name=subscription.name,
            )
            if path is not None:
                logger.error(
                    f"[{subscription.name}] {e}. {path} was downloaded but not recorded "
                    f"and will be downloaded again on the next run"
                )
            else:
                logger.error(f"[{subscription.name}] {e}")
            result.errors.append(e)
            return False

        if not recorded:
            result.skipped += 1
        return recorded

    def _destination(self, subscription: Subscription) -> Path:
        if subscription.download_directory is not None:
            return subscription.download_directory
        return self.download_directory / sanitize_filename(subscription.name, fallback="podcast")

    def close(self) -> None:
        """Close the feed parser and downloader sessions."""
        self.feed_parser.close()
        self.downloader.close()
