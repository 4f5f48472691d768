"""Append-only ledger of downloaded episodes.

The ledger is a UTF-8 text file with one record per line:

    <episode_id> <unix_timestamp> "<title>"

Only the first whitespace-delimited token is needed to rebuild the set of
recorded ids, so trailing fields may change without breaking older files.
Records are appended and never rewritten; an interrupted run leaves a valid
prefix of completed entries.
"""

import logging
import os
import re
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, Optional, Set, Union

from ..errors import LedgerConfigError, LedgerWriteError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerEntry:
    """A single ledger record."""

    episode_id: str
    recorded_at: int
    title: str

    def to_line(self) -> str:
        """Render the entry as one ledger line (without newline)."""
        # Titles are not escaped; only line breaks are folded so the record stays on one line
        title = re.sub(r"[\r\n]+", " ", self.title)
        return f'{self.episode_id} {self.recorded_at} "{title}"'

    @classmethod
    def from_line(cls, line: str) -> Optional["LedgerEntry"]:
        """Parse a ledger line.

        Missing or malformed payload fields are tolerated: the timestamp falls
        back to 0 and the title to an empty string.

        Returns:
            LedgerEntry, or None for blank lines
        """
        parts = line.strip().split(maxsplit=2)
        if not parts:
            return None

        episode_id = parts[0]
        recorded_at = 0
        title = ""

        if len(parts) > 1:
            try:
                recorded_at = int(parts[1])
            except ValueError:
                pass
        if len(parts) > 2:
            title = parts[2]
            if len(title) >= 2 and title.startswith('"') and title.endswith('"'):
                title = title[1:-1]

        return cls(episode_id=episode_id, recorded_at=recorded_at, title=title)


def normalize_episode_id(raw_id: str) -> str:
    """Make an identifier safe to use as the first token of a ledger line."""
    return re.sub(r"\s+", "_", raw_id.strip())


def _read_ledger_text(path: Path) -> Optional[str]:
    if path.is_dir():
        raise LedgerConfigError(
            f"Invalid download ledger path: {path} (ledger cannot point to a directory)"
        )

    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError) as e:
        raise LedgerConfigError(f"Failed to read download ledger {path}: {e}") from e


def iter_entries(path: Union[str, Path]) -> Iterator[LedgerEntry]:
    """Yield every entry recorded in the ledger at `path`.

    A missing ledger yields nothing.

    Raises:
        LedgerConfigError: If the ledger exists but cannot be read
    """
    text = _read_ledger_text(Path(path))
    if text is None:
        return

    for line in text.splitlines():
        entry = LedgerEntry.from_line(line)
        if entry is not None:
            yield entry


class DownloadLedger:
    """Keeps track of which episodes have already been downloaded.

    Lookups read an in-memory set and need no locking. Claims and appends go
    through a single writer lock so that "id is absent" and "id is recorded"
    can never interleave between two workers.

    Example:
        ledger = DownloadLedger.load(Path("~/.local/share/podsync/downloaded"))
        if ledger.claim(episode_id):
            path = downloader.download(...)
            ledger.append(episode_id, title)
    """

    def __init__(
        self,
        path: Union[str, Path],
        episode_ids: Optional[Set[str]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.path = Path(path)
        self._ids: Set[str] = set(episode_ids or ())
        self._claimed: Set[str] = set()
        self._lock = threading.Lock()
        self._clock = clock

    @classmethod
    def load(
        cls,
        path: Union[str, Path],
        clock: Callable[[], float] = time.time,
    ) -> "DownloadLedger":
        """Load the ledger from `path`.

        A missing file is a first run and yields an empty ledger.

        Raises:
            LedgerConfigError: If the path is a directory, its parent cannot be
                created, or the file cannot be read.
        """
        path = Path(path).expanduser()
        text = _read_ledger_text(path)

        if text is None:
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise LedgerConfigError(
                    f"Cannot create download ledger directory {path.parent}: {e}"
                ) from e
            logger.debug(f"No download ledger at {path}, starting empty")
            return cls(path, clock=clock)

        ids = set()
        for line in text.splitlines():
            parts = line.split(maxsplit=1)
            if parts:
                ids.add(parts[0])

        logger.debug(f"Loaded {len(ids)} recorded episodes from {path}")
        return cls(path, episode_ids=ids, clock=clock)

    def contains(self, episode_id: str) -> bool:
        """True iff an entry with this id has been recorded."""
        return episode_id in self._ids

    def __contains__(self, episode_id: str) -> bool:
        return self.contains(episode_id)

    def __len__(self) -> int:
        return len(self._ids)

    def claim(self, episode_id: str) -> bool:
        """Reserve an id for processing.

        Returns:
            False if the id is already recorded or held by another worker
        """
        with self._lock:
            if episode_id in self._ids or episode_id in self._claimed:
                return False
            self._claimed.add(episode_id)
            return True

    def release(self, episode_id: str) -> None:
        """Give up a claim without recording the id."""
        with self._lock:
            self._claimed.discard(episode_id)

    def append(self, episode_id: str, title: str) -> bool:
        """Durably record an episode.

        The id only becomes visible to `contains` once the line has been
        written and synced. Any claim on the id is released.

        Returns:
            True if a line was written, False if the id was already recorded

        Raises:
            LedgerWriteError: If the ledger file cannot be opened or written
        """
        entry = LedgerEntry(
            episode_id=episode_id,
            recorded_at=int(self._clock()),
            title=title or "",
        )

        with self._lock:
            if episode_id in self._ids:
                self._claimed.discard(episode_id)
                return False

            try:
                self._write_line(entry.to_line())
            except OSError as e:
                raise LedgerWriteError(episode_id, self.path, str(e)) from e

            self._ids.add(episode_id)
            self._claimed.discard(episode_id)

        logger.debug(f"Recorded {episode_id} in {self.path}")
        return True

    def _write_line(self, line: str) -> None:
        if self.path.is_dir():
            raise IsADirectoryError(f"ledger path is a directory: {self.path}")

        self.path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.path, "a", encoding="utf-8") as f:
            f.write(line + "\n")
            f.flush()
            os.fsync(f.fileno())
