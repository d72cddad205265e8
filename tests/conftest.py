"""
Pytest configuration and shared fixtures.
"""

import threading
from typing import Dict, List, Sequence, Union

import pytest

from regioncatalog.config import SyncConfig
from regioncatalog.context import RunContext
from regioncatalog.database import create_db_engine, init_database
from regioncatalog.logger import StructuredLogger
from regioncatalog.models import Entity, Page
from regioncatalog.store import UpsertStore

PageScript = Union[Sequence[Entity], Exception]


def make_entities(*names: str, start: int = 1) -> List[Entity]:
    return [Entity(remote_id=start + i, name=name) for i, name in enumerate(names)]


class FakeFetcher:
    """
    Stands in for PageFetcher.

    Region pages are served in call order; institution pages are keyed by
    region remote id. An Exception in either list is raised instead of a page.
    """

    def __init__(
        self,
        region_pages: List[PageScript],
        institutions: Dict[int, List[PageScript]] = None,
    ):
        self.region_pages = list(region_pages)
        self.institutions = institutions or {}
        self.region_calls: List[tuple] = []
        self.institution_calls: List[tuple] = []
        self._lock = threading.Lock()

    def fetch_regions(self, offset: int, count: int, ctx: RunContext, need_all: bool = False) -> Page:
        ctx.check()
        with self._lock:
            index = len(self.region_calls)
            self.region_calls.append((offset, count, need_all))
        scripted = self.region_pages[index] if index < len(self.region_pages) else []
        if isinstance(scripted, Exception):
            raise scripted
        return Page(items=list(scripted), requested=count, offset=offset, total_count=0)

    def fetch_institutions(self, region_remote_id: int, offset: int, count: int, ctx: RunContext) -> Page:
        ctx.check()
        with self._lock:
            index = sum(1 for call in self.institution_calls if call[0] == region_remote_id)
            self.institution_calls.append((region_remote_id, offset, count, threading.current_thread().name))
        pages = self.institutions.get(region_remote_id, [])
        scripted = pages[index] if index < len(pages) else []
        if isinstance(scripted, Exception):
            raise scripted
        return Page(items=list(scripted), requested=count, offset=offset, total_count=0)


@pytest.fixture
def ctx() -> RunContext:
    return RunContext()


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'catalog.db'}"


@pytest.fixture
def engine(db_url):
    engine = create_db_engine(db_url)
    init_database(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine) -> UpsertStore:
    return UpsertStore(engine)


@pytest.fixture
def logger(tmp_path, request):
    """Quiet logger writing only to tmp_path."""
    logger = StructuredLogger(
        name=f"test.{request.node.name}",
        level="DEBUG",
        log_dir=tmp_path / "logs",
        enable_console=False,
    )
    yield logger
    logger.close()


@pytest.fixture
def make_config(db_url):
    def _make(**overrides) -> SyncConfig:
        values = {"token": "test-token", "workers": 2, "database_url": db_url}
        values.update(overrides)
        return SyncConfig(**values)
    return _make
