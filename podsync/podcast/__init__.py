"""Podcast syncing module.

Provides functionality for:
- RSS feed parsing
- Episode selection and downloading
- The download ledger
- Feed synchronization
"""

from .downloader import EpisodeDownloader
from .feed_parser import FeedParser, ParsedEpisode, ParsedPodcast
from .feed_sync import FeedSyncService, SubscriptionResult, SyncResult
from .ledger import DownloadLedger, LedgerEntry
from .selector import EpisodeAction, SelectedEpisode, select_episodes
from .subscriptions import Subscription, Subscriptions

__all__ = [
    "DownloadLedger",
    "LedgerEntry",
    "FeedParser",
    "ParsedPodcast",
    "ParsedEpisode",
    "EpisodeAction",
    "SelectedEpisode",
    "select_episodes",
    "EpisodeDownloader",
    "FeedSyncService",
    "SubscriptionResult",
    "SyncResult",
    "Subscription",
    "Subscriptions",
]
