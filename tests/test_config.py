"""
Tests for config.py, context.py and env.py.
"""

import argparse
import os
import time

import pytest

from regioncatalog.config import DEFAULT_DATABASE_URL, SyncConfig
from regioncatalog.context import RunContext
from regioncatalog.env import load_env
from regioncatalog.errors import DeadlineExceeded


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("VK_TOKEN", "REGIONCATALOG_DB_URL", "REGIONCATALOG_WORKERS"):
        # setenv first so the original state is restored even if load_env writes it
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return monkeypatch


class TestSyncConfig:
    """Test configuration validation and defaults."""

    def test_token_required(self):
        with pytest.raises(ValueError):
            SyncConfig(token="")
        with pytest.raises(ValueError):
            SyncConfig(token="   ")

    def test_workers_default_to_cpu_count(self, monkeypatch):
        monkeypatch.setattr("os.cpu_count", lambda: 6)
        assert SyncConfig(token="t").workers == 6

    def test_negative_workers_rejected(self):
        with pytest.raises(ValueError):
            SyncConfig(token="t", workers=-1)

    def test_non_positive_deadline_rejected(self):
        with pytest.raises(ValueError):
            SyncConfig(token="t", deadline_seconds=0)

    def test_frozen(self):
        config = SyncConfig(token="t", workers=2)
        with pytest.raises(AttributeError):
            config.workers = 3

    def test_from_args_prefers_flags(self, clean_env):
        clean_env.setenv("VK_TOKEN", "env-token")
        clean_env.setenv("REGIONCATALOG_WORKERS", "3")
        args = argparse.Namespace(
            token="flag-token", workers=5, all_regions=True, db_url="sqlite:///x.db",
            deadline=30.0, request_timeout=None, log_level="DEBUG", log_dir=None,
        )

        config = SyncConfig.from_args(args)

        assert config.token == "flag-token"
        assert config.workers == 5
        assert config.all_regions is True
        assert config.database_url == "sqlite:///x.db"
        assert config.deadline_seconds == 30.0
        assert config.request_timeout == 15.0
        assert config.log_level == "DEBUG"

    def test_from_args_falls_back_to_environment(self, clean_env):
        clean_env.setenv("VK_TOKEN", "env-token")
        clean_env.setenv("REGIONCATALOG_WORKERS", "3")
        clean_env.setenv("REGIONCATALOG_DB_URL", "sqlite:///env.db")

        config = SyncConfig.from_args(argparse.Namespace())

        assert config.token == "env-token"
        assert config.workers == 3
        assert config.database_url == "sqlite:///env.db"

    def test_from_args_default_database(self, clean_env):
        config = SyncConfig.from_args(argparse.Namespace(token="t"))
        assert config.database_url == DEFAULT_DATABASE_URL


class TestRunContext:
    """Test cancellation and deadlines."""

    def test_unbounded_context(self):
        ctx = RunContext()
        assert ctx.remaining() is None
        assert ctx.clip_timeout(15.0) == 15.0
        ctx.check()

    def test_cancel(self):
        ctx = RunContext()
        ctx.cancel("stop requested")

        assert ctx.cancelled
        with pytest.raises(DeadlineExceeded) as exc_info:
            ctx.check()
        assert "stop requested" in str(exc_info.value)

    def test_deadline_expires(self):
        ctx = RunContext(timeout=0.05)
        assert not ctx.cancelled
        time.sleep(0.1)

        assert ctx.cancelled
        with pytest.raises(DeadlineExceeded):
            ctx.check()

    def test_clip_timeout(self):
        ctx = RunContext(timeout=2.0)
        assert ctx.clip_timeout(15.0) <= 2.0
        assert ctx.clip_timeout(0.5) == 0.5


class TestLoadEnv:
    """Test .env loading."""

    def test_loads_dotenv_from_cwd(self, tmp_path, clean_env):
        (tmp_path / ".env").write_text("VK_TOKEN=from-dotenv\n")
        clean_env.chdir(tmp_path)

        load_env()

        assert os.environ["VK_TOKEN"] == "from-dotenv"

    def test_existing_variables_win(self, tmp_path, clean_env):
        (tmp_path / ".env").write_text("VK_TOKEN=from-dotenv\n")
        clean_env.setenv("VK_TOKEN", "already-set")
        clean_env.chdir(tmp_path)

        load_env()

        assert os.environ["VK_TOKEN"] == "already-set"

    def test_missing_file_is_ignored(self, tmp_path, clean_env):
        clean_env.chdir(tmp_path)
        load_env()
