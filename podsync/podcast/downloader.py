"""Episode downloader.

Streams episode enclosures to disk with:
- Retry logic with exponential backoff for transient HTTP errors
- Per-request timeout
- Partial files that only become visible once complete
- Progress tracking
"""

import hashlib
import logging
import os
import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Set, Union
from urllib.parse import unquote, urlparse

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .. import __version__
from ..errors import DownloadError
from ..utils import sanitize_filename
from .feed_parser import ParsedEpisode

logger = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".part"

MIME_TO_EXT = {
    "audio/mpeg": ".mp3",
    "audio/mp3": ".mp3",
    "audio/mp4": ".m4a",
    "audio/x-m4a": ".m4a",
    "audio/aac": ".aac",
    "audio/ogg": ".ogg",
    "audio/opus": ".opus",
    "audio/wav": ".wav",
}


def _id_digest(episode_id: str) -> str:
    return hashlib.sha1(episode_id.encode("utf-8")).hexdigest()[:8]


class EpisodeDownloader:
    """Downloads podcast episodes into subscription directories.

    The downloader never touches the ledger; callers record an episode only
    after `download` returned a path.

    Example:
        downloader = EpisodeDownloader(timeout=300)
        path = downloader.download(episode, Path("~/Podcasts/Show"), "Show")
    """

    DEFAULT_USER_AGENT = f"podsync/{__version__}"
    DEFAULT_CHUNK_SIZE = 8192
    DEFAULT_TIMEOUT = 300  # 5 minutes

    def __init__(
        self,
        retry_attempts: int = 3,
        timeout: int = DEFAULT_TIMEOUT,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        user_agent: Optional[str] = None,
        progress_callback: Optional[Callable[[str, int, int], None]] = None,
    ):
        """Initialize the episode downloader.

        Args:
            retry_attempts: Number of retry attempts for failed requests
            timeout: Download timeout in seconds
            chunk_size: Chunk size for streaming downloads
            user_agent: Custom user agent string
            progress_callback: Callback for progress updates (episode_id, downloaded, total)
        """
        self.retry_attempts = retry_attempts
        self.timeout = timeout
        self.chunk_size = chunk_size
        self.user_agent = user_agent or self.DEFAULT_USER_AGENT
        self.progress_callback = progress_callback

        self._session = self._create_session()

        # Output paths held by downloads in progress
        self._reserved: Set[Path] = set()
        self._reserve_lock = threading.Lock()

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

    def download(
        self,
        episode: ParsedEpisode,
        destination_dir: Union[str, Path],
        subscription_name: str,
    ) -> Path:
        """Download a single episode.

        Args:
            episode: Episode to download
            destination_dir: Subscription directory to write into
            subscription_name: Name used in error reports

        Returns:
            Path of the downloaded file

        Raises:
            DownloadError: On any transport or filesystem failure
        """
        start_time = datetime.now()
        destination_dir = Path(destination_dir)

        try:
            destination_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DownloadError(subscription_name, episode.episode_id, str(e)) from e

        digest = _id_digest(episode.episode_id)
        output_path = self._reserve_output_path(episode, destination_dir, digest)
        partial_path = output_path.with_name(f"{output_path.name}.{digest}{PARTIAL_SUFFIX}")

        logger.info(f"[{subscription_name}] Downloading: {episode.title}")

        try:
            file_size = self._download_file(
                url=episode.enclosure_url,
                output_path=partial_path,
                episode_id=episode.episode_id,
                expected_size=episode.enclosure_length,
            )
            os.replace(partial_path, output_path)

        except (requests.RequestException, OSError) as e:
            # Clean up partial file
            if partial_path.exists():
                try:
                    partial_path.unlink()
                except OSError:
                    logger.warning(f"Could not remove partial file {partial_path}")
            raise DownloadError(subscription_name, episode.episode_id, str(e)) from e
        finally:
            with self._reserve_lock:
                self._reserved.discard(output_path)

        duration = (datetime.now() - start_time).total_seconds()
        logger.info(
            f"[{subscription_name}] Downloaded: {episode.title} "
            f"({file_size / 1024 / 1024:.1f} MB in {duration:.1f}s)"
        )

        return output_path

    def _download_file(
        self,
        url: str,
        output_path: Path,
        episode_id: str,
        expected_size: Optional[int] = None,
    ) -> int:
        """Stream a URL to `output_path`.

        Returns:
            Number of bytes written
        """
        downloaded = 0

        response = self._session.get(
            url,
            stream=True,
            timeout=self.timeout,
            allow_redirects=True,
        )
        try:
            response.raise_for_status()

            total_size = expected_size
            if "content-length" in response.headers:
                try:
                    total_size = int(response.headers["content-length"])
                except ValueError:
                    pass

            with open(output_path, "wb") as f:
                for chunk in response.iter_content(chunk_size=self.chunk_size):
                    if chunk:
                        f.write(chunk)
                        downloaded += len(chunk)

                        if self.progress_callback and total_size:
                            self.progress_callback(episode_id, downloaded, total_size)
        finally:
            response.close()

        return downloaded

    def _reserve_output_path(
        self, episode: ParsedEpisode, destination_dir: Path, digest: str
    ) -> Path:
        """Pick and reserve a destination file no other file or download holds.

        The caller must discard the reservation once the download is over.
        """
        base = destination_dir / self._generate_filename(episode)
        output_path = base
        attempt = 0

        with self._reserve_lock:
            while output_path.exists() or output_path in self._reserved:
                # Same title as another episode; disambiguate by id
                attempt += 1
                suffix = digest if attempt == 1 else f"{digest}_{attempt}"
                output_path = base.with_name(f"{base.stem}_{suffix}{base.suffix}")
            self._reserved.add(output_path)

        return output_path

    def _generate_filename(self, episode: ParsedEpisode) -> str:
        """Generate a filename for an episode.

        Args:
            episode: Episode to generate filename for

        Returns:
            Sanitized filename
        """
        url_path = urlparse(episode.enclosure_url).path
        url_filename = unquote(os.path.basename(url_path))
        _, ext = os.path.splitext(url_filename)

        if not ext or len(ext) > 5:
            ext = MIME_TO_EXT.get(episode.enclosure_type, ".mp3")

        parts = []
        if episode.episode_number:
            parts.append(f"E{sanitize_filename(episode.episode_number, fallback='0')}")
        parts.append(sanitize_filename(episode.title, max_length=196))

        filename = "_".join(parts) + ext

        if len(filename) > 200:
            filename = filename[:196] + ext

        return filename

    def close(self):
        """Close the downloader and release resources."""
        self._session.close()
