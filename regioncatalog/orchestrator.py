"""
Sync orchestration.

Paginates regions on the calling thread, hands each region to the worker
pool through the blocking handoff, then waits for every worker to exit.
A failure on the region side stops further fetching but never cancels work
already handed off; the run always reaches DONE.
"""

import time
from enum import Enum
from typing import Optional

from .config import SyncConfig
from .context import RunContext
from .database import create_db_engine, init_database
from .errors import CatalogError, NoConsumersError
from .fetcher import PageFetcher
from .logger import StructuredLogger
from .models import Page, SyncReport
from .pagination import INSTITUTION_PAGE_SIZE, REGION_PAGE_SIZE, PaginationCursor
from .store import UpsertStore
from .workers import Handoff, RegionIngestor, WorkerPool


class SyncState(str, Enum):
    PENDING = "pending"
    FETCHING_OUTER = "fetching_outer"
    DISPATCHING = "dispatching"
    DRAINING = "draining"
    DONE = "done"


class Orchestrator:
    """
    One sync run: regions producer, worker pool, join barrier.

    An Orchestrator runs once; build a new one for the next run.
    """

    def __init__(
        self,
        config: SyncConfig,
        fetcher: PageFetcher,
        store: UpsertStore,
        logger: StructuredLogger,
        ctx: Optional[RunContext] = None,
        region_page_size: int = REGION_PAGE_SIZE,
        institution_page_size: int = INSTITUTION_PAGE_SIZE,
    ):
        self.config = config
        self.fetcher = fetcher
        self.store = store
        self.logger = logger
        self.ctx = ctx if ctx is not None else RunContext(config.deadline_seconds)
        self.region_page_size = region_page_size
        self.institution_page_size = institution_page_size
        self.state = SyncState.PENDING
        self.handoff = Handoff()
        self.pool = WorkerPool(
            config.workers,
            self.handoff,
            RegionIngestor(fetcher, store, logger, self.ctx, page_size=institution_page_size),
            logger,
            self.ctx,
        )

    def cancel(self, reason: str = "cancelled by caller") -> None:
        self.ctx.cancel(reason)

    def run(self) -> SyncReport:
        """
        Execute the run to completion.

        Partial failures are logged and recorded in the report, never raised.
        """
        if self.state != SyncState.PENDING:
            raise RuntimeError(f"Orchestrator already ran (state: {self.state.value})")

        started = time.monotonic()
        before = self.logger.get_metrics()
        report = SyncReport()

        self.logger.info(
            "Starting sync",
            workers=self.config.workers,
            all_regions=self.config.all_regions,
            deadline=self.config.deadline_seconds,
        )
        self.pool.start()

        self.state = SyncState.FETCHING_OUTER
        cursor = PaginationCursor(self._fetch_regions, self.region_page_size, self.ctx, on_page=self._on_region_page)
        try:
            for page in cursor.pages():
                self.state = SyncState.DISPATCHING
                for region in page.items:
                    self.handoff.put(region, self.ctx)
                    report.regions_dispatched += 1
                self.state = SyncState.FETCHING_OUTER
        except NoConsumersError as e:
            self.logger.error(
                f"Every worker has stopped, abandoning remaining regions: {e}",
                offset=cursor.offset,
                dispatched=report.regions_dispatched,
            )
            report.producer_error = str(e)
        except CatalogError as e:
            self.logger.error(f"Failed to get regions, offset {cursor.offset}: {e}", **e.details)
            self.logger.record_failure(type(e).__name__)
            report.producer_error = str(e)
        finally:
            self.handoff.close()

        self.state = SyncState.DRAINING
        self.logger.info("Region pagination finished, waiting for workers", dispatched=report.regions_dispatched)
        self.pool.join()

        self.state = SyncState.DONE
        after = self.logger.get_metrics()
        for counter in (
            "pages_fetched",
            "regions_stored",
            "regions_existing",
            "institutions_stored",
            "institutions_existing",
        ):
            setattr(report, counter, after[counter] - before[counter])
        report.failed_workers = len(self.pool.failures)
        report.worker_errors = list(self.pool.failures)
        report.state = self.state.value
        report.elapsed_seconds = round(time.monotonic() - started, 3)

        self.logger.log_metrics_summary()
        self.logger.info("done", elapsed=report.elapsed_seconds)
        return report

    def _fetch_regions(self, offset: int, count: int, ctx: RunContext) -> Page:
        return self.fetcher.fetch_regions(offset, count, ctx, need_all=self.config.all_regions)

    def _on_region_page(self, page: Page) -> None:
        self.logger.increment("pages_fetched")
        self.logger.info(f"fetched {len(page.items)} regions", offset=page.offset, total=page.total_count)


def build_orchestrator(config: SyncConfig, logger: StructuredLogger) -> Orchestrator:
    """Wire the default collaborators (HTTP fetcher, SQLAlchemy store) for a config."""
    engine = create_db_engine(config.database_url)
    init_database(engine)
    fetcher = PageFetcher(
        token=config.token,
        base_url=config.api_base_url,
        api_version=config.api_version,
        timeout=config.request_timeout,
        country_id=config.country_id,
        pool_size=config.workers + 1,
    )
    return Orchestrator(config, fetcher, UpsertStore(engine), logger)
