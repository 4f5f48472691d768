import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from podsync import __version__
from podsync.errors import ConfigError

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _get_int_env(
    name: str,
    default: int,
    min_val: Optional[int] = None,
    max_val: Optional[int] = None,
) -> int:
    """Parse an integer from an environment variable with validation.

    Args:
        name: Environment variable name.
        default: Default value if env var is not set.
        min_val: Minimum allowed value (inclusive), or None for no minimum.
        max_val: Maximum allowed value (inclusive), or None for no maximum.

    Returns:
        The parsed and validated integer value.

    Raises:
        ConfigError: If the value cannot be parsed as an integer or is out of range.
    """
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default

    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(
            f"Invalid value for {name}: '{raw}' is not a valid integer"
        )

    if min_val is not None and value < min_val:
        raise ConfigError(
            f"Invalid value for {name}: {value} must be >= {min_val}"
        )

    if max_val is not None and value > max_val:
        raise ConfigError(
            f"Invalid value for {name}: {value} must be <= {max_val}"
        )

    return value


def _get_path_env(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if not raw:
        return default
    return Path(raw).expanduser()


class Config:
    def __init__(self, env_file=None):
        """
        Initialize configuration by loading environment variables and setting default attributes.

        Loads environment variables from the provided .env file path when `env_file` is given;
        otherwise loads from the default .env discovery. Values already present in the
        process environment take precedence over the .env file.

        Parameters:
            env_file (str | None): Optional path to a .env file to load environment variables from.

        Raises:
            ConfigError: If a numeric or log-level setting is invalid.
        """
        if env_file:
            load_dotenv(env_file)
        else:
            load_dotenv()

        # Where podcasts.json lives
        self.CONFIG_DIR = _get_path_env(
            "PODSYNC_CONFIG_DIR", Path("~/.config/podsync").expanduser()
        )
        self.SUBSCRIPTIONS_FILE = _get_path_env(
            "PODSYNC_SUBSCRIPTIONS_FILE", self.CONFIG_DIR / "podcasts.json"
        )

        # Download tracker shared by every subscription
        self.LEDGER_PATH = _get_path_env(
            "PODSYNC_LEDGER_PATH",
            Path("~/.local/share/podsync/downloaded").expanduser(),
        )

        # Base directory for audio files, one subdirectory per subscription
        self.DOWNLOAD_DIRECTORY = _get_path_env(
            "PODSYNC_DOWNLOAD_DIRECTORY", Path("~/Podcasts").expanduser()
        )

        # Concurrency
        self.MAX_CONCURRENT_FEEDS = _get_int_env(
            "PODSYNC_MAX_CONCURRENT_FEEDS", 4, min_val=1
        )
        self.EPISODE_WORKERS = _get_int_env("PODSYNC_EPISODE_WORKERS", 2, min_val=1)

        # Transport
        self.FEED_TIMEOUT = _get_int_env("PODSYNC_FEED_TIMEOUT", 30, min_val=1)
        self.DOWNLOAD_TIMEOUT = _get_int_env("PODSYNC_DOWNLOAD_TIMEOUT", 300, min_val=1)
        self.RETRY_ATTEMPTS = _get_int_env("PODSYNC_RETRY_ATTEMPTS", 3, min_val=0)
        self.CHUNK_SIZE = _get_int_env("PODSYNC_CHUNK_SIZE", 8192, min_val=1)
        self.USER_AGENT = os.getenv("PODSYNC_USER_AGENT") or f"podsync/{__version__}"

        # Logging
        self.LOG_LEVEL = os.getenv("PODSYNC_LOG_LEVEL", "INFO").upper()
        if self.LOG_LEVEL not in LOG_LEVELS:
            raise ConfigError(
                f"Invalid value for PODSYNC_LOG_LEVEL: '{self.LOG_LEVEL}' "
                f"(expected one of {', '.join(LOG_LEVELS)})"
            )
        log_dir = os.getenv("PODSYNC_LOG_DIR")
        self.LOG_DIR = Path(log_dir).expanduser() if log_dir else None

