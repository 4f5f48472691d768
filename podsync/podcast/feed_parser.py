"""RSS/Atom feed source for podcast episodes.

Fetches feeds over HTTP with a retrying requests session and parses them
with the feedparser library, yielding episodes in the order the feed lists
them.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import List, Optional
from urllib.parse import urlparse

import feedparser
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .. import __version__
from ..errors import FetchError
from .ledger import normalize_episode_id
from .subscriptions import Subscription

logger = logging.getLogger(__name__)


@dataclass
class ParsedEpisode:
    """Parsed episode data from RSS feed."""

    # Core identifiers
    guid: str
    title: str
    enclosure_url: str
    enclosure_type: str

    # Optional metadata
    description: Optional[str] = None
    link: Optional[str] = None
    published_date: Optional[datetime] = None
    duration_seconds: Optional[int] = None

    # Episode numbering
    episode_number: Optional[str] = None
    season_number: Optional[int] = None

    # Enclosure details
    enclosure_length: Optional[int] = None

    @property
    def episode_id(self) -> str:
        """Identifier used as the ledger key."""
        return normalize_episode_id(self.guid)


@dataclass
class ParsedPodcast:
    """Parsed podcast data from RSS feed."""

    feed_url: str
    title: str

    description: Optional[str] = None
    website_url: Optional[str] = None
    author: Optional[str] = None

    # Episodes, in feed order
    episodes: List[ParsedEpisode] = field(default_factory=list)


class FeedParser:
    """Parser for podcast RSS/Atom feeds.

    Example:
        parser = FeedParser(timeout=30)
        podcast = parser.fetch(subscription)
        for episode in podcast.episodes:
            print(f"  - {episode.title}")
    """

    USER_AGENT = f"podsync/{__version__}"
    DEFAULT_TIMEOUT = 30

    def __init__(
        self,
        user_agent: Optional[str] = None,
        timeout: int = DEFAULT_TIMEOUT,
        retry_attempts: int = 3,
    ):
        """Initialize the feed parser.

        Args:
            user_agent: Custom user agent string for requests
            timeout: Feed request timeout in seconds
            retry_attempts: Retries for transient HTTP failures
        """
        self.user_agent = user_agent or self.USER_AGENT
        self.timeout = timeout
        self.retry_attempts = retry_attempts
        self._session = self._create_session()

    def _create_session(self) -> requests.Session:
        """Create a requests session with retry logic."""
        session = requests.Session()

        retry_strategy = Retry(
            total=self.retry_attempts,
            backoff_factor=1,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET", "HEAD"],
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        session.headers.update({"User-Agent": self.user_agent})

        return session

    def fetch(self, subscription: Subscription) -> ParsedPodcast:
        """Fetch and parse the feed of a subscription.

        Raises:
            FetchError: If the feed cannot be retrieved or parsed
        """
        try:
            return self.parse_url(subscription.url)
        except FetchError:
            raise
        except requests.RequestException as e:
            raise FetchError(subscription.name, str(e)) from e
        except ValueError as e:
            raise FetchError(subscription.name, str(e)) from e

    def parse_url(self, feed_url: str) -> ParsedPodcast:
        """Parse a podcast feed from URL.

        Args:
            feed_url: URL of the RSS/Atom feed

        Returns:
            ParsedPodcast with podcast and episode data

        Raises:
            requests.RequestException: If the feed cannot be downloaded
            ValueError: If feed cannot be parsed or is empty
        """
        logger.info(f"Fetching feed: {feed_url}")

        response = self._session.get(feed_url, timeout=self.timeout)
        response.raise_for_status()

        return self.parse_string(response.content, feed_url)

    def parse_string(self, content, feed_url: str = "") -> ParsedPodcast:
        """Parse a podcast feed from string (or bytes) content.

        Args:
            content: RSS/Atom feed content
            feed_url: Original URL of the feed (for reference)

        Returns:
            ParsedPodcast with podcast and episode data

        Raises:
            ValueError: If the content is not a feed
        """
        feed = feedparser.parse(content)

        if feed.bozo and feed.get("bozo_exception"):
            logger.warning(f"Feed parsing warning for {feed_url}: {feed.bozo_exception}")

        if not feed.feed and not feed.entries:
            raise ValueError(f"Failed to parse feed: {feed_url}")

        return self._parse_feed(feed, feed_url)

    def _parse_feed(self, feed: feedparser.FeedParserDict, feed_url: str) -> ParsedPodcast:
        f = feed.feed

        podcast = ParsedPodcast(
            feed_url=feed_url,
            title=f.get("title", "Unknown Podcast"),
            description=self._clean_html(f.get("description") or f.get("subtitle")),
            website_url=f.get("link"),
            author=f.get("author") or f.get("itunes_author"),
        )

        for entry in feed.entries:
            episode = self._parse_episode(entry)
            if episode:
                podcast.episodes.append(episode)

        logger.debug(f"Parsed podcast '{podcast.title}' with {len(podcast.episodes)} episodes")
        return podcast

    def _parse_episode(self, entry: feedparser.FeedParserDict) -> Optional[ParsedEpisode]:
        """Parse a feed entry into a ParsedEpisode.

        Returns:
            ParsedEpisode or None if entry lacks an audio enclosure
        """
        enclosure = self._extract_enclosure(entry)
        if not enclosure:
            logger.debug(f"Skipping entry without audio enclosure: {entry.get('title')}")
            return None

        enclosure_url, enclosure_type, enclosure_length = enclosure

        # GUID falls back to the link, then to the enclosure URL
        guid = (entry.get("id") or entry.get("guid") or entry.get("link") or enclosure_url).strip()
        if not normalize_episode_id(guid):
            guid = enclosure_url

        title = entry.get("title") or entry.get("itunes_title") or "Untitled Episode"

        episode = ParsedEpisode(
            guid=guid,
            title=title,
            enclosure_url=enclosure_url,
            enclosure_type=enclosure_type,
            enclosure_length=enclosure_length,
            description=self._clean_html(entry.get("description") or entry.get("summary")),
            link=entry.get("link"),
        )

        if entry.get("itunes_season"):
            try:
                episode.season_number = int(entry.itunes_season)
            except (ValueError, TypeError):
                pass

        if entry.get("itunes_episode"):
            episode.episode_number = str(entry.itunes_episode)

        episode.published_date = self._parse_published(entry)

        episode.duration_seconds = self._parse_duration(
            entry.get("itunes_duration") or entry.get("duration")
        )

        return episode

    def _parse_published(self, entry: feedparser.FeedParserDict) -> Optional[datetime]:
        # feedparser normalizes *_parsed values to UTC
        if entry.get("published_parsed"):
            try:
                return datetime(*entry.published_parsed[:6], tzinfo=UTC)
            except (TypeError, ValueError):
                pass
        if entry.get("published"):
            try:
                published = parsedate_to_datetime(entry.published)
            except (TypeError, ValueError):
                return None
            if published.tzinfo is None:
                published = published.replace(tzinfo=UTC)
            return published
        return None

    def _extract_enclosure(self, entry: feedparser.FeedParserDict) -> Optional[tuple]:
        """Extract audio enclosure from feed entry.

        Returns:
            Tuple of (url, type, length) or None if no audio found
        """
        candidates = []
        for enclosure in entry.get("enclosures", []):
            candidates.append(
                (enclosure.get("href") or enclosure.get("url"), enclosure.get("type", ""), enclosure.get("length"))
            )
        for media in entry.get("media_content", []):
            candidates.append((media.get("url"), media.get("type", ""), media.get("filesize")))
        for link in entry.get("links", []):
            if link.get("rel") == "enclosure":
                candidates.append((link.get("href"), link.get("type", ""), link.get("length")))

        for url, mime_type, raw_length in candidates:
            if url and self._is_audio_type(mime_type, url):
                length = None
                if raw_length:
                    try:
                        length = int(raw_length)
                    except (ValueError, TypeError):
                        pass
                return (url, mime_type or "audio/mpeg", length)

        return None

    def _is_audio_type(self, mime_type: str, url: str) -> bool:
        """Check if content is an audio file."""
        if mime_type:
            if mime_type.startswith("audio/"):
                return True
            if mime_type != "application/octet-stream":
                return False

        path = urlparse(url).path.lower()
        audio_extensions = (".mp3", ".m4a", ".mp4", ".ogg", ".opus", ".wav", ".aac")
        return any(path.endswith(ext) for ext in audio_extensions)

    def _parse_duration(self, value) -> Optional[int]:
        """Parse duration string into seconds.

        Handles "3600", "60:00" and "1:00:00".
        """
        if not value:
            return None

        value_str = str(value).strip()

        try:
            return int(value_str)
        except ValueError:
            pass

        parts = value_str.split(":")
        try:
            if len(parts) == 2:
                return int(parts[0]) * 60 + int(parts[1])
            elif len(parts) == 3:
                return int(parts[0]) * 3600 + int(parts[1]) * 60 + int(parts[2])
        except (ValueError, TypeError):
            pass

        return None

    def _clean_html(self, text: Optional[str]) -> Optional[str]:
        """Remove HTML tags from text."""
        if not text:
            return None

        clean = re.sub(r"<[^>]+>", "", text)
        clean = clean.replace("&amp;", "&")
        clean = clean.replace("&lt;", "<")
        clean = clean.replace("&gt;", ">")
        clean = clean.replace("&quot;", '"')
        clean = clean.replace("&#39;", "'")
        clean = clean.replace("&nbsp;", " ")
        clean = re.sub(r"\s+", " ", clean).strip()

        return clean if clean else None

    def close(self):
        """Close the parser and release resources."""
        self._session.close()
