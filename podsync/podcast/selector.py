"""Selection of new episodes from a fetched feed."""

import enum
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Iterable, List

from .feed_parser import ParsedEpisode
from .ledger import DownloadLedger


class EpisodeAction(enum.Enum):
    DOWNLOAD = "download"
    MARK_DONE = "mark_done"


@dataclass(frozen=True)
class SelectedEpisode:
    episode: ParsedEpisode
    action: EpisodeAction

    @property
    def episode_id(self) -> str:
        return self.episode.episode_id


def select_episodes(
    candidates: Iterable[ParsedEpisode],
    ledger: DownloadLedger,
    catch_up: bool,
    now: datetime,
) -> List[SelectedEpisode]:
    """Pick the candidates not yet recorded in the ledger, in feed order.

    With `catch_up`, episodes published at or before `now` (or undated) are
    to be marked as done instead of downloaded, and episodes dated after
    `now` are left for a later sync.

    Args:
        candidates: Episodes in the order the feed listed them
        ledger: Ledger snapshot to check against
        catch_up: Mark instead of download
        now: Start of the sync run (timezone-aware)

    Returns:
        Selected episodes with the action to take for each
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)

    selected = []
    for episode in candidates:
        if ledger.contains(episode.episode_id):
            continue

        if not catch_up:
            selected.append(SelectedEpisode(episode, EpisodeAction.DOWNLOAD))
            continue

        published = episode.published_date
        if published is not None and published.tzinfo is None:
            published = published.replace(tzinfo=UTC)
        if published is None or published <= now:
            selected.append(SelectedEpisode(episode, EpisodeAction.MARK_DONE))

    return selected
