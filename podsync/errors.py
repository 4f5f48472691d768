"""Custom exceptions for podsync.

Fatal errors derive from ConfigError and abort a sync run before any work
starts. Fetch, download and ledger write errors are per-item failures that
the sync orchestrator collects and reports instead of raising.
"""

from pathlib import Path
from typing import Optional, Union


class PodsyncError(Exception):
    """Base exception for all podsync errors."""

    pass


class ConfigError(PodsyncError):
    """Configuration-related errors."""

    pass


class LedgerConfigError(ConfigError):
    """The download ledger path cannot be used."""

    pass


class InvalidSubscriptionsError(ConfigError):
    """Subscriptions file could not be read or is malformed."""

    pass


class SubscriptionError(PodsyncError):
    """Subscription management errors."""

    pass


class NoSubscriptionsError(SubscriptionError):
    """No subscriptions are configured, or none match the filter."""

    pass


class DuplicateSubscriptionError(SubscriptionError):
    """A subscription with the same name already exists."""

    pass


class FetchError(PodsyncError):
    """A subscription's feed could not be retrieved or parsed."""

    def __init__(self, subscription_name: str, message: str):
        self.subscription_name = subscription_name
        self.message = message
        super().__init__(f"[{subscription_name}] feed fetch failed: {message}")


class DownloadError(PodsyncError):
    """A single episode transfer failed."""

    def __init__(self, subscription_name: str, episode_id: str, message: str):
        self.subscription_name = subscription_name
        self.episode_id = episode_id
        self.message = message
        super().__init__(
            f"[{subscription_name}] download of {episode_id} failed: {message}"
        )


class LedgerWriteError(PodsyncError):
    """Recording an entry in the download ledger failed.

    When this follows a successful download the file exists on disk without
    a ledger entry and will be downloaded again on the next run.
    """

    def __init__(
        self,
        episode_id: str,
        path: Union[str, Path],
        message: str,
        subscription_name: Optional[str] = None,
    ):
        self.episode_id = episode_id
        self.path = Path(path)
        self.message = message
        self.subscription_name = subscription_name
        prefix = f"[{subscription_name}] " if subscription_name else ""
        super().__init__(
            f"{prefix}could not record {episode_id} in {self.path}: {message}"
        )
