"""
Offset-based pagination over one remote resource.

A cursor walks offsets 0, page_size, 2*page_size, ... and stops after the
first short page (fewer items than requested, including zero). It is a
one-shot iterator: once exhausted or failed it yields nothing more.
"""

from typing import Callable, Iterator, Optional

from .context import RunContext
from .models import Entity, Page

REGION_PAGE_SIZE = 1000
INSTITUTION_PAGE_SIZE = 10000

# fetch(offset, count, ctx) -> Page
PageFetch = Callable[[int, int, RunContext], Page]


class PaginationCursor:
    """Lazy, finite, non-restartable item sequence for one resource."""

    def __init__(
        self,
        fetch: PageFetch,
        page_size: int,
        ctx: RunContext,
        on_page: Optional[Callable[[Page], None]] = None,
    ):
        """
        Args:
            fetch: Callable returning the page at (offset, count)
            page_size: Items requested per call
            ctx: Run context checked before each request
            on_page: Optional hook called once per fetched page
        """
        if page_size <= 0:
            raise ValueError(f"page_size must be positive, got {page_size}")
        self._fetch = fetch
        self.page_size = page_size
        self._ctx = ctx
        self._on_page = on_page
        self.offset = 0
        self.pages_fetched = 0
        self.exhausted = False
        self.failed = False
        self._items = self._walk()

    def _next_page(self) -> Page:
        try:
            self._ctx.check()
            page = self._fetch(self.offset, self.page_size, self._ctx)
        except Exception:
            # Dead cursor: items already handed out stay valid, nothing more follows
            self.failed = True
            raise
        self.pages_fetched += 1
        if self._on_page is not None:
            self._on_page(page)

        if page.is_final:
            self.exhausted = True
        else:
            self.offset += self.page_size
        return page

    def pages(self) -> Iterator[Page]:
        """
        Walk the resource page by page instead of item by item.

        Shares state with item iteration; use one or the other.
        """
        while not (self.exhausted or self.failed):
            yield self._next_page()

    def _walk(self) -> Iterator[Entity]:
        for page in self.pages():
            yield from page.items

    def __iter__(self) -> "PaginationCursor":
        return self

    def __next__(self) -> Entity:
        if self.failed:
            raise StopIteration
        return next(self._items)
