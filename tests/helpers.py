"""Shared builders for podsync tests."""

from datetime import UTC, datetime

from podsync.podcast.feed_parser import ParsedEpisode, ParsedPodcast

EPOCH = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


def make_episode(guid, title=None, published=EPOCH, **kwargs):
    """Build a ParsedEpisode with sensible defaults."""
    return ParsedEpisode(
        guid=guid,
        title=title or f"Episode {guid}",
        enclosure_url=kwargs.pop("enclosure_url", f"https://example.com/{guid}.mp3"),
        enclosure_type=kwargs.pop("enclosure_type", "audio/mpeg"),
        published_date=published,
        **kwargs,
    )


def make_podcast(*episodes, title="Test Podcast"):
    return ParsedPodcast(feed_url="https://example.com/feed.xml", title=title, episodes=list(episodes))
