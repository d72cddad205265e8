"""
Worker pool fed through a synchronous handoff.

The handoff has no buffer: put() returns only after a worker has taken the
item, which is the pipeline's only backpressure. Each worker processes one
region end to end before asking for the next one.

A worker whose region fails (store, fetch, decode or deadline error) logs the
failure and exits for the rest of the run. It is not replaced and the other
workers keep going. Once every worker is gone, put() raises NoConsumersError
instead of blocking forever.
"""

import threading
from typing import Any, Callable, Iterator, List, Optional

from .context import RunContext
from .errors import CatalogError, NoConsumersError
from .fetcher import PageFetcher
from .logger import StructuredLogger
from .models import Entity, Page
from .pagination import INSTITUTION_PAGE_SIZE, PaginationCursor
from .store import UpsertStore

_POLL_INTERVAL = 0.05


class HandoffClosed(Exception):
    """Raised by put() after close()."""
    pass


class Handoff:
    """Zero-capacity rendezvous between one producer and many consumers."""

    def __init__(self, poll_interval: float = _POLL_INTERVAL):
        self._cond = threading.Condition()
        self._poll_interval = poll_interval
        self._item: Any = None
        self._has_item = False
        self._closed = False
        self._consumers = 0
        self._put_seq = 0
        self._taken_seq = 0

    @property
    def consumers(self) -> int:
        with self._cond:
            return self._consumers

    @property
    def pending(self) -> bool:
        """True while an item sits in the slot waiting for a consumer."""
        with self._cond:
            return self._has_item

    @property
    def taken(self) -> int:
        with self._cond:
            return self._taken_seq

    def register_consumer(self) -> None:
        with self._cond:
            self._consumers += 1
            self._cond.notify_all()

    def unregister_consumer(self) -> None:
        with self._cond:
            self._consumers -= 1
            self._cond.notify_all()

    def close(self) -> None:
        """No more puts; consumers exit once the slot is empty."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def put(self, item: Any, ctx: RunContext) -> None:
        """
        Hand one item to a consumer, blocking until it has been taken.

        Raises:
            NoConsumersError: Every consumer has exited
            DeadlineExceeded: The run was cancelled while waiting
            HandoffClosed: close() was already called
        """
        with self._cond:
            while self._has_item:
                self._check_waiting_producer(ctx)
                self._cond.wait(self._poll_interval)

            if self._closed:
                raise HandoffClosed("put() on a closed handoff")
            self._check_waiting_producer(ctx)

            self._item = item
            self._has_item = True
            self._put_seq += 1
            ticket = self._put_seq
            self._cond.notify_all()

            while self._taken_seq < ticket:
                try:
                    self._check_waiting_producer(ctx)
                except CatalogError:
                    # Take the item back so nobody picks it up later
                    self._item = None
                    self._has_item = False
                    self._put_seq -= 1
                    raise
                self._cond.wait(self._poll_interval)

    def _check_waiting_producer(self, ctx: RunContext) -> None:
        if self._consumers <= 0:
            raise NoConsumersError("No workers left to accept regions")
        ctx.check()

    def get(self, ctx: RunContext) -> Optional[Any]:
        """
        Take the next item, blocking while idle.

        Returns:
            The item, or None once the handoff is closed and empty

        Raises:
            DeadlineExceeded: The run was cancelled while waiting
        """
        with self._cond:
            while not self._has_item:
                if self._closed:
                    return None
                ctx.check()
                self._cond.wait(self._poll_interval)

            item = self._item
            self._item = None
            self._has_item = False
            self._taken_seq += 1
            self._cond.notify_all()
            return item

    def consume(self, ctx: RunContext) -> Iterator[Any]:
        """Iterate items until the handoff is closed."""
        while True:
            item = self.get(ctx)
            if item is None:
                return
            yield item


class RegionIngestor:
    """Processes one region: store it, then page through and store its institutions."""

    def __init__(
        self,
        fetcher: PageFetcher,
        store: UpsertStore,
        logger: StructuredLogger,
        ctx: RunContext,
        page_size: int = INSTITUTION_PAGE_SIZE,
    ):
        self.fetcher = fetcher
        self.store = store
        self.logger = logger
        self.ctx = ctx
        self.page_size = page_size

    def __call__(self, region: Entity) -> None:
        region = region.normalized()
        cursor = None
        try:
            region_id = self._store_region(region)
            cursor = self._institutions(region)
            for institution in cursor:
                self._store_institution(region, region_id, institution.normalized())
        except CatalogError as e:
            e.details = {
                "region": region.name,
                "remote_id": region.remote_id,
                "offset": cursor.offset if cursor is not None else None,
                **e.details,
            }
            raise

    def _store_region(self, region: Entity) -> int:
        region_id, existed = self.store.upsert_region(region.name, self.ctx)
        if existed:
            self.logger.info(f"region '{region.name}': already exists", region_id=region_id)
            self.logger.increment("regions_existing")
        else:
            self.logger.increment("regions_stored")
        return region_id

    def _institutions(self, region: Entity) -> PaginationCursor:
        def fetch(offset: int, count: int, ctx: RunContext) -> Page:
            return self.fetcher.fetch_institutions(region.remote_id, offset, count, ctx)

        def on_page(page: Page) -> None:
            self.logger.increment("pages_fetched")
            self.logger.info(f"region '{region.name}': fetched {len(page.items)} institutions", offset=page.offset)

        return PaginationCursor(fetch, self.page_size, self.ctx, on_page=on_page)

    def _store_institution(self, region: Entity, region_id: int, institution: Entity) -> None:
        if self.store.upsert_institution(region_id, institution.name, self.ctx):
            self.logger.info(
                f"region '{region.name}': institution exists, skipping",
                remote_id=institution.remote_id,
                name=institution.name,
            )
            self.logger.increment("institutions_existing")
        else:
            self.logger.increment("institutions_stored")


class WorkerPool:
    """Fixed set of worker threads draining one Handoff."""

    def __init__(
        self,
        size: int,
        handoff: Handoff,
        process: Callable[[Entity], None],
        logger: StructuredLogger,
        ctx: RunContext,
    ):
        if size <= 0:
            raise ValueError(f"pool size must be positive, got {size}")
        self.size = size
        self.handoff = handoff
        self.process = process
        self.logger = logger
        self.ctx = ctx
        self.failures: List[str] = []
        self._failures_lock = threading.Lock()
        self._threads: List[threading.Thread] = []

    def start(self) -> None:
        if self._threads:
            raise RuntimeError("WorkerPool already started")
        for i in range(self.size):
            # Register before the thread runs so the producer never sees zero consumers at startup
            self.handoff.register_consumer()
            thread = threading.Thread(target=self._run, name=f"worker-{i}")
            self._threads.append(thread)
        for thread in self._threads:
            thread.start()

    def join(self) -> None:
        """Block until every worker has exited."""
        for thread in self._threads:
            thread.join()

    @property
    def alive(self) -> int:
        return sum(1 for t in self._threads if t.is_alive())

    def _record_failure(self, description: str, error_type: str) -> None:
        with self._failures_lock:
            self.failures.append(description)
        self.logger.increment("worker_failures")
        self.logger.record_failure(error_type)

    def _run(self) -> None:
        name = threading.current_thread().name
        processed = 0
        try:
            for region in self.handoff.consume(self.ctx):
                try:
                    self.process(region)
                except CatalogError as e:
                    self.logger.error(f"{name}: stopping after failure: {e}", **e.details)
                    self._record_failure(f"{name}: {e}", type(e).__name__)
                    return
                except Exception as e:
                    self.logger.exception(f"{name}: stopping after unexpected error", region=region.name)
                    self._record_failure(f"{name}: {e}", type(e).__name__)
                    return
                processed += 1
        except CatalogError as e:
            # Cancelled while idle
            self.logger.warning(f"{name}: stopping: {e}", **e.details)
        finally:
            self.handoff.unregister_consumer()
            self.logger.debug(f"{name}: exiting", processed=processed)
