"""
Run configuration.

Built once (from CLI flags and environment defaults) and passed explicitly
to the orchestrator; nothing here is module-level mutable state.
"""

import os
import argparse
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DEFAULT_DATABASE_URL = "sqlite:///data/catalog.db"
DEFAULT_API_BASE_URL = "https://api.vk.com/method/"
DEFAULT_API_VERSION = "5.103"
RUSSIA_COUNTRY_ID = 1


def default_workers() -> int:
    return os.cpu_count() or 1


def database_url_from_env() -> str:
    return os.getenv("REGIONCATALOG_DB_URL") or DEFAULT_DATABASE_URL


@dataclass(frozen=True)
class SyncConfig:
    """Everything a sync run needs besides its collaborators."""

    token: str
    workers: int = 0
    all_regions: bool = False
    database_url: str = DEFAULT_DATABASE_URL
    deadline_seconds: Optional[float] = None
    request_timeout: float = 15.0
    api_base_url: str = DEFAULT_API_BASE_URL
    api_version: str = DEFAULT_API_VERSION
    country_id: int = RUSSIA_COUNTRY_ID
    log_level: str = "INFO"
    log_dir: Optional[Path] = None

    def __post_init__(self):
        if not self.token or not self.token.strip():
            raise ValueError("VK access token isn't provided")
        if self.workers == 0:
            object.__setattr__(self, "workers", default_workers())
        if self.workers < 0:
            raise ValueError(f"workers must be positive, got {self.workers}")
        if self.deadline_seconds is not None and self.deadline_seconds <= 0:
            raise ValueError(f"deadline must be positive, got {self.deadline_seconds}")
        if self.request_timeout <= 0:
            raise ValueError(f"request timeout must be positive, got {self.request_timeout}")

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "SyncConfig":
        """
        Merge parsed CLI flags with environment defaults.

        Flags win over VK_TOKEN, REGIONCATALOG_DB_URL and REGIONCATALOG_WORKERS.
        """
        token = getattr(args, "token", None) or os.getenv("VK_TOKEN", "")
        database_url = getattr(args, "db_url", None) or database_url_from_env()
        workers = getattr(args, "workers", None)
        if workers is None:
            workers = int(os.getenv("REGIONCATALOG_WORKERS", "0"))
        log_dir = getattr(args, "log_dir", None)
        return cls(
            token=token,
            workers=workers,
            all_regions=bool(getattr(args, "all_regions", False)),
            database_url=database_url,
            deadline_seconds=getattr(args, "deadline", None),
            request_timeout=getattr(args, "request_timeout", None) or 15.0,
            log_level=getattr(args, "log_level", None) or "INFO",
            log_dir=Path(log_dir) if log_dir else None,
        )
