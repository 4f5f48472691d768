"""Podcast subscriptions keyed by name.

Subscriptions are stored as JSON:

    {
      "podcasts": {
        "My Show": {"url": "https://example.com/feed.xml"}
      }
    }
"""

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, Optional, Pattern, Union

from ..errors import (
    ConfigError,
    DuplicateSubscriptionError,
    InvalidSubscriptionsError,
    NoSubscriptionsError,
)

logger = logging.getLogger(__name__)

NameFilter = Union[str, Pattern[str], None]


@dataclass(frozen=True)
class Subscription:
    """A named podcast feed and its per-feed options."""

    name: str
    url: str
    download_directory: Optional[Path] = None
    max_concurrent_downloads: Optional[int] = None

    def __post_init__(self):
        if not self.url or not self.url.strip():
            raise ValueError(f"Subscription '{self.name}' has no feed url")

    @classmethod
    def from_dict(cls, name: str, data: dict) -> "Subscription":
        directory = data.get("download_directory")
        workers = data.get("max_concurrent_downloads")
        if workers is not None and (not isinstance(workers, int) or workers < 1):
            raise ValueError(
                f"max_concurrent_downloads for '{name}' must be a positive integer"
            )
        return cls(
            name=name,
            url=str(data.get("url", "")).strip(),
            download_directory=Path(directory).expanduser() if directory else None,
            max_concurrent_downloads=workers,
        )

    def to_dict(self) -> dict:
        data = {"url": self.url}
        if self.download_directory is not None:
            data["download_directory"] = str(self.download_directory)
        if self.max_concurrent_downloads is not None:
            data["max_concurrent_downloads"] = self.max_concurrent_downloads
        return data


def compile_name_filter(name_filter: NameFilter) -> Optional[Pattern[str]]:
    """Compile a subscription name filter.

    Strings are compiled case-insensitively; compiled patterns are used as-is.

    Raises:
        ConfigError: If the pattern is not a valid regular expression
    """
    if name_filter is None:
        return None
    if isinstance(name_filter, re.Pattern):
        return name_filter
    try:
        return re.compile(name_filter, re.IGNORECASE)
    except re.error as e:
        raise ConfigError(f"Invalid filter pattern '{name_filter}': {e}") from e


class Subscriptions:
    """Read-mostly mapping of subscription names to subscriptions."""

    def __init__(self, podcasts: Optional[Dict[str, Subscription]] = None):
        self._podcasts: Dict[str, Subscription] = dict(podcasts or {})

    def __len__(self) -> int:
        return len(self._podcasts)

    def __iter__(self) -> Iterator[str]:
        return iter(self._podcasts)

    def __contains__(self, name: str) -> bool:
        return name in self._podcasts

    def __getitem__(self, name: str) -> Subscription:
        return self._podcasts[name]

    def items(self):
        return self._podcasts.items()

    def values(self):
        return self._podcasts.values()

    def names(self) -> list:
        return list(self._podcasts)

    def filter(self, name_filter: NameFilter) -> "Subscriptions":
        """Return the subscriptions whose name matches `name_filter`."""
        pattern = compile_name_filter(name_filter)
        if pattern is None:
            return Subscriptions(self._podcasts)
        return Subscriptions(
            {name: sub for name, sub in self._podcasts.items() if pattern.search(name)}
        )

    def assert_not_empty(self) -> "Subscriptions":
        """Raise NoSubscriptionsError when nothing is configured."""
        if not self._podcasts:
            raise NoSubscriptionsError(
                "No podcasts configured. Add one with 'podsync add <url> <name>'."
            )
        return self

    def add(self, subscription: Subscription) -> None:
        """Add a new subscription.

        Raises:
            DuplicateSubscriptionError: If the name is already in use
        """
        if subscription.name in self._podcasts:
            raise DuplicateSubscriptionError(
                f"Podcast '{subscription.name}' already exists"
            )
        self._podcasts[subscription.name] = subscription

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Subscriptions":
        """Load subscriptions from a JSON file.

        A missing file yields an empty collection.

        Raises:
            InvalidSubscriptionsError: If the file is unreadable or malformed
        """
        path = Path(path)
        if not path.exists():
            logger.debug(f"No subscriptions file at {path}")
            return cls()

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f) or {}
            podcasts = data.get("podcasts", {})
            if not isinstance(podcasts, dict):
                raise ValueError("'podcasts' must be an object")
            loaded = {
                name: Subscription.from_dict(name, entry)
                for name, entry in podcasts.items()
            }
        except (OSError, ValueError, TypeError, AttributeError) as e:
            raise InvalidSubscriptionsError(
                f"Invalid subscriptions file {path}: {e}"
            ) from e

        logger.debug(f"Loaded {len(loaded)} subscriptions from {path}")
        return cls(loaded)

    def save(self, path: Union[str, Path]) -> None:
        """Write subscriptions to a JSON file, creating parent directories."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "podcasts": {name: sub.to_dict() for name, sub in self._podcasts.items()}
        }
        tmp_path = path.with_name(path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.write("\n")
        tmp_path.replace(path)
