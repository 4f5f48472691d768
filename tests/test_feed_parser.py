"""Tests for the RSS feed parser."""

from datetime import UTC, datetime
from unittest.mock import Mock

import pytest
import requests

from podsync.errors import FetchError
from podsync.podcast.feed_parser import FeedParser
from podsync.podcast.subscriptions import Subscription


@pytest.fixture
def parser():
    """Provide a new FeedParser instance for tests."""
    return FeedParser()


# Sample RSS feed for testing
SAMPLE_RSS_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"
     xmlns:itunes="http://www.itunes.com/dtds/podcast-1.0.dtd">
  <channel>
    <title>Test Podcast</title>
    <description>A podcast for testing</description>
    <link>https://example.com</link>
    <itunes:author>Test Author</itunes:author>

    <item>
      <title>Episode 2: Deep Dive</title>
      <description><![CDATA[<p>A deeper look at the topic.</p>]]></description>
      <guid>episode-2-guid</guid>
      <pubDate>Mon, 08 Jan 2024 12:00:00 +0000</pubDate>
      <itunes:episode>2</itunes:episode>
      <itunes:season>1</itunes:season>
      <itunes:duration>45:30</itunes:duration>
      <enclosure url="https://example.com/ep2.mp3" length="27000000" type="audio/mpeg"/>
    </item>

    <item>
      <title>Episode 1: Introduction</title>
      <link>https://example.com/ep1</link>
      <guid>episode-1-guid</guid>
      <pubDate>Mon, 01 Jan 2024 12:00:00 +0000</pubDate>
      <itunes:duration>01:30:00</itunes:duration>
      <enclosure url="https://example.com/ep1.mp3" length="54000000" type="audio/mpeg"/>
    </item>

    <item>
      <title>Blog post without audio</title>
      <guid>post-guid</guid>
    </item>

    <item>
      <title>Video only</title>
      <guid>video-guid</guid>
      <enclosure url="https://example.com/video.mkv" type="video/x-matroska"/>
    </item>
  </channel>
</rss>
"""

NO_GUID_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Fallbacks</title>
    <item>
      <title>Only enclosure</title>
      <enclosure url="https://example.com/only.mp3" type="audio/mpeg"/>
    </item>
    <item>
      <title>Spaced guid</title>
      <guid isPermaLink="false">episode 3 guid</guid>
      <enclosure url="https://example.com/spaced.m4a" type=""/>
    </item>
  </channel>
</rss>
"""


class TestParseString:
    """Tests for FeedParser.parse_string."""

    def test_podcast_metadata(self, parser):
        """Test extraction of podcast-level fields."""
        podcast = parser.parse_string(SAMPLE_RSS_FEED, "https://example.com/feed.xml")

        assert podcast.title == "Test Podcast"
        assert podcast.feed_url == "https://example.com/feed.xml"
        assert podcast.website_url == "https://example.com"
        assert podcast.author == "Test Author"

    def test_only_audio_episodes_in_feed_order(self, parser):
        """Test that non-audio entries are skipped and order is kept."""
        podcast = parser.parse_string(SAMPLE_RSS_FEED)

        assert [e.guid for e in podcast.episodes] == ["episode-2-guid", "episode-1-guid"]

    def test_episode_fields(self, parser):
        """Test extraction of episode fields."""
        episode = parser.parse_string(SAMPLE_RSS_FEED).episodes[0]

        assert episode.title == "Episode 2: Deep Dive"
        assert episode.episode_id == "episode-2-guid"
        assert episode.enclosure_url == "https://example.com/ep2.mp3"
        assert episode.enclosure_type == "audio/mpeg"
        assert episode.enclosure_length == 27000000
        assert episode.episode_number == "2"
        assert episode.season_number == 1
        assert episode.duration_seconds == 45 * 60 + 30
        assert episode.description == "A deeper look at the topic."

    def test_published_date_is_utc(self, parser):
        """Test that publish dates are timezone-aware."""
        episode = parser.parse_string(SAMPLE_RSS_FEED).episodes[1]

        assert episode.published_date == datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
        assert episode.duration_seconds == 5400

    def test_guid_falls_back_to_enclosure(self, parser):
        """Test identifier fallback when the entry has no guid or link."""
        episode = parser.parse_string(NO_GUID_FEED).episodes[0]

        assert episode.episode_id == "https://example.com/only.mp3"

    def test_guid_whitespace_normalized(self, parser):
        """Test that ids never contain whitespace."""
        episode = parser.parse_string(NO_GUID_FEED).episodes[1]

        assert episode.guid == "episode 3 guid"
        assert episode.episode_id == "episode_3_guid"

    def test_audio_detected_from_extension(self, parser):
        """Test that enclosures without a MIME type are accepted by extension."""
        episode = parser.parse_string(NO_GUID_FEED).episodes[1]

        assert episode.enclosure_url == "https://example.com/spaced.m4a"
        assert episode.enclosure_type == "audio/mpeg"

    def test_bytes_content(self, parser):
        podcast = parser.parse_string(SAMPLE_RSS_FEED.encode("utf-8"))
        assert len(podcast.episodes) == 2

    def test_not_a_feed(self, parser):
        """Test that garbage content raises ValueError."""
        with pytest.raises(ValueError):
            parser.parse_string(b"this is not xml")


class TestParseDuration:
    """Tests for duration parsing."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("3600", 3600),
            ("60:00", 3600),
            ("1:00:00", 3600),
            ("", None),
            (None, None),
            ("soon", None),
        ],
    )
    def test_formats(self, parser, value, expected):
        assert parser._parse_duration(value) == expected


class TestFetch:
    """Tests for FeedParser.fetch."""

    @pytest.fixture
    def subscription(self):
        return Subscription(name="Test", url="https://example.com/feed.xml")

    def test_init_defaults(self):
        """Test default transport settings."""
        parser = FeedParser()

        assert parser.timeout == 30
        assert parser.retry_attempts == 3
        assert "podsync" in parser._session.headers["User-Agent"]

    def test_fetch_success(self, parser, subscription):
        """Test fetching a feed through the session."""
        response = Mock()
        response.content = SAMPLE_RSS_FEED.encode("utf-8")
        parser._session.get = Mock(return_value=response)

        podcast = parser.fetch(subscription)

        assert podcast.title == "Test Podcast"
        assert len(podcast.episodes) == 2
        parser._session.get.assert_called_once_with(
            "https://example.com/feed.xml", timeout=30
        )

    def test_fetch_connection_error(self, parser, subscription):
        """Test that transport failures become FetchError."""
        parser._session.get = Mock(side_effect=requests.ConnectionError("unreachable"))

        with pytest.raises(FetchError) as exc_info:
            parser.fetch(subscription)

        assert exc_info.value.subscription_name == "Test"
        assert "unreachable" in str(exc_info.value)

    def test_fetch_http_error(self, parser, subscription):
        """Test that HTTP error statuses become FetchError."""
        response = Mock()
        response.raise_for_status.side_effect = requests.HTTPError("404 Client Error")
        parser._session.get = Mock(return_value=response)

        with pytest.raises(FetchError, match="404"):
            parser.fetch(subscription)

    def test_fetch_unparseable(self, parser, subscription):
        """Test that invalid feed content becomes FetchError."""
        response = Mock()
        response.content = b"this is not xml"
        parser._session.get = Mock(return_value=response)

        with pytest.raises(FetchError):
            parser.fetch(subscription)
