"""Tests for environment-based configuration."""

from pathlib import Path
from unittest.mock import patch

import pytest

from podsync.config import Config, _get_int_env
from podsync.errors import ConfigError


@pytest.fixture
def env_file(tmp_path):
    """An empty .env so that no developer .env is picked up."""
    path = tmp_path / ".env"
    path.write_text("", encoding="utf-8")
    return str(path)


class TestGetIntEnv:
    """Tests for _get_int_env."""

    def test_default_when_unset(self):
        assert _get_int_env("PODSYNC_TEST_INT", 7) == 7

    def test_default_when_blank(self):
        with patch.dict("os.environ", {"PODSYNC_TEST_INT": "  "}):
            assert _get_int_env("PODSYNC_TEST_INT", 7) == 7

    def test_parses_value(self):
        with patch.dict("os.environ", {"PODSYNC_TEST_INT": "12"}):
            assert _get_int_env("PODSYNC_TEST_INT", 7, min_val=1) == 12

    def test_not_an_integer(self):
        with patch.dict("os.environ", {"PODSYNC_TEST_INT": "many"}):
            with pytest.raises(ConfigError, match="not a valid integer"):
                _get_int_env("PODSYNC_TEST_INT", 7)

    def test_below_minimum(self):
        with patch.dict("os.environ", {"PODSYNC_TEST_INT": "0"}):
            with pytest.raises(ConfigError, match=">= 1"):
                _get_int_env("PODSYNC_TEST_INT", 7, min_val=1)

    def test_above_maximum(self):
        with patch.dict("os.environ", {"PODSYNC_TEST_INT": "99"}):
            with pytest.raises(ConfigError, match="<= 10"):
                _get_int_env("PODSYNC_TEST_INT", 7, max_val=10)


class TestConfig:
    """Tests for Config."""

    def test_default_values(self, env_file):
        """Test default configuration values."""
        config = Config(env_file=env_file)

        assert config.SUBSCRIPTIONS_FILE == config.CONFIG_DIR / "podcasts.json"
        assert config.LEDGER_PATH.name == "downloaded"
        assert config.MAX_CONCURRENT_FEEDS == 4
        assert config.EPISODE_WORKERS == 2
        assert config.FEED_TIMEOUT == 30
        assert config.DOWNLOAD_TIMEOUT == 300
        assert config.RETRY_ATTEMPTS == 3
        assert config.CHUNK_SIZE == 8192
        assert config.USER_AGENT.startswith("podsync/")
        assert config.LOG_LEVEL == "INFO"
        assert config.LOG_DIR is None

    def test_from_env(self, env_file, tmp_path):
        """Test loading configuration from environment variables."""
        with patch.dict(
            "os.environ",
            {
                "PODSYNC_CONFIG_DIR": str(tmp_path / "cfg"),
                "PODSYNC_LEDGER_PATH": str(tmp_path / "ledger"),
                "PODSYNC_DOWNLOAD_DIRECTORY": str(tmp_path / "audio"),
                "PODSYNC_MAX_CONCURRENT_FEEDS": "8",
                "PODSYNC_LOG_LEVEL": "debug",
                "PODSYNC_LOG_DIR": str(tmp_path / "logs"),
            },
        ):
            config = Config(env_file=env_file)

            assert config.SUBSCRIPTIONS_FILE == tmp_path / "cfg" / "podcasts.json"
            assert config.LEDGER_PATH == tmp_path / "ledger"
            assert config.DOWNLOAD_DIRECTORY == tmp_path / "audio"
            assert config.MAX_CONCURRENT_FEEDS == 8
            assert config.LOG_LEVEL == "DEBUG"
            assert config.LOG_DIR == tmp_path / "logs"
            # Other values should be defaults
            assert config.EPISODE_WORKERS == 2

    def test_env_file_values(self, tmp_path):
        """Test that values are read from the given .env file."""
        env_path = tmp_path / "custom.env"
        env_path.write_text("PODSYNC_EPISODE_WORKERS=5\n", encoding="utf-8")

        with patch.dict("os.environ", {}):
            config = Config(env_file=str(env_path))

            assert config.EPISODE_WORKERS == 5

    def test_user_agent_override(self, env_file):
        with patch.dict("os.environ", {"PODSYNC_USER_AGENT": "MyAgent/2.0"}):
            assert Config(env_file=env_file).USER_AGENT == "MyAgent/2.0"

    def test_invalid_log_level(self, env_file):
        with patch.dict("os.environ", {"PODSYNC_LOG_LEVEL": "LOUD"}):
            with pytest.raises(ConfigError, match="PODSYNC_LOG_LEVEL"):
                Config(env_file=env_file)

    def test_invalid_concurrency(self, env_file):
        with patch.dict("os.environ", {"PODSYNC_MAX_CONCURRENT_FEEDS": "0"}):
            with pytest.raises(ConfigError, match="PODSYNC_MAX_CONCURRENT_FEEDS"):
                Config(env_file=env_file)

    def test_paths_expand_user(self, env_file):
        with patch.dict("os.environ", {"PODSYNC_DOWNLOAD_DIRECTORY": "~/pods"}):
            config = Config(env_file=env_file)

            assert config.DOWNLOAD_DIRECTORY == Path("~/pods").expanduser()
