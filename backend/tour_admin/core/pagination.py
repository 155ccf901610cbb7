"""
Paginated list queries over the document store.

Two modes, picked per query:

* cursor mode (no text filter): ordered range queries limited to
  ``page_size + 1`` rows, anchored on the last/first record of the page
  on screen.
* scan mode (text filter or value sort present): the store cannot do
  substring search or order by values it only holds as text, so the whole
  ordered collection is fetched, filtered and re-sorted in memory, then sliced.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Any, Awaitable, Callable, Dict, Generic, Iterable, List, Optional, TypeVar,
)

from tour_admin.db.crud import (
    DocumentCursor, DocumentSnapshot, DocumentStore, SortDirection,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PaginationMode(str, Enum):
    CURSOR = "cursor"
    SCAN = "scan"


class PageLoadError(RuntimeError):
    """A page could not be loaded; the caller keeps showing what it had"""


@dataclass(frozen=True)
class ValueSort:
    """
    In-memory ordering on a number derived from each record, applied after
    the store ordering. Python sorts are stable, so records with equal values
    keep their store order; records without a value go last either way.
    """
    key: Callable[[Any], Optional[float]]
    direction: SortDirection = SortDirection.ASC

    def apply(self, items: List[T]) -> List[T]:
        keyed = [(self.key(item), item) for item in items]
        ranked = sorted(
            (pair for pair in keyed if pair[0] is not None),
            key=lambda pair: pair[0],
            reverse=self.direction == SortDirection.DESC,
        )
        return [item for _, item in ranked] + [item for value, item in keyed if value is None]


@dataclass
class ListQuery:
    sort_field: str = "createdAt"
    sort_direction: SortDirection = SortDirection.DESC
    page_size: int = 10
    text_filter: str = ""
    equality_filters: Dict[str, Any] = field(default_factory=dict)
    value_sort: Optional[ValueSort] = None

    def __post_init__(self):
        if self.page_size < 1:
            raise ValueError("page_size must be at least 1")

    @property
    def mode(self) -> PaginationMode:
        if self.value_sort is not None:
            return PaginationMode.SCAN
        if self.text_filter and self.text_filter.strip():
            return PaginationMode.SCAN
        return PaginationMode.CURSOR


@dataclass
class ListSource(Generic[T]):
    """
    What a list shows: the collection, how to turn a snapshot into an entity,
    which display fields a text filter matches against, and an optional join
    that attaches related entities to a batch of records.
    """
    collection: str
    parse: Callable[[DocumentSnapshot], T]
    search_text: Callable[[T], Iterable[Optional[str]]] = lambda item: ()
    enrich: Optional[Callable[[List[T]], Awaitable[List[T]]]] = None


@dataclass
class Page(Generic[T]):
    items: List[T]
    page_number: int
    has_next_page: bool
    has_previous_page: bool
    mode: PaginationMode
    first_cursor: Optional[DocumentCursor] = None
    last_cursor: Optional[DocumentCursor] = None


def _parse_all(source: ListSource[T], snapshots: List[DocumentSnapshot]) -> List[T]:
    items = []
    for snapshot in snapshots:
        try:
            items.append(source.parse(snapshot))
        except ValueError as e:
            # one malformed record must not take the whole list down
            logger.warning(f"Skipping unreadable document {snapshot.collection}/{snapshot.id}: {e}")
    return items


async def _materialize(source: ListSource[T], snapshots: List[DocumentSnapshot]) -> List[T]:
    items = _parse_all(source, snapshots)
    if source.enrich is not None and items:
        items = await source.enrich(items)
    return items


def matches_text(source: ListSource[T], item: T, text_filter: str) -> bool:
    needle = text_filter.strip().lower()
    if not needle:
        return True
    return any(value and needle in value.lower() for value in source.search_text(item))


async def fetch_cursor_page(
    store: DocumentStore,
    source: ListSource[T],
    query: ListQuery,
    after: Optional[DocumentCursor] = None,
    before: Optional[DocumentCursor] = None,
    page_number: int = 1,
) -> Page[T]:
    """
    Load one page in cursor mode.

    Without anchors this is the first page. ``after`` loads the page that
    follows the given record; ``before`` loads the page that precedes it.
    Backward queries come back from the store nearest-first, so they are
    reversed before display.
    """
    order = (query.sort_field, query.sort_direction)
    limit = query.page_size + 1

    try:
        snapshots = await store.find(
            source.collection,
            filters=query.equality_filters,
            order=order,
            start_after=after,
            end_before=before,
            limit=limit,
        )
    except Exception as e:
        logger.error(f"Cursor page query on {source.collection} failed: {e}")
        raise PageLoadError(f"Failed to load {source.collection}") from e

    has_more = len(snapshots) > query.page_size
    snapshots = snapshots[:query.page_size]

    if before is not None:
        snapshots = list(reversed(snapshots))
        has_next_page = True
        has_previous_page = has_more
    else:
        has_next_page = has_more
        has_previous_page = after is not None

    items = await _materialize(source, snapshots)
    return Page(
        items=items,
        page_number=page_number,
        has_next_page=has_next_page,
        has_previous_page=has_previous_page,
        mode=PaginationMode.CURSOR,
        first_cursor=snapshots[0].cursor(query.sort_field) if snapshots else None,
        last_cursor=snapshots[-1].cursor(query.sort_field) if snapshots else None,
    )


async def scan_matches(
    store: DocumentStore,
    source: ListSource[T],
    query: ListQuery,
) -> List[T]:
    """Fetch the whole ordered collection, keep the records matching the text filter, apply any value sort"""
    try:
        snapshots = await store.find(
            source.collection,
            filters=query.equality_filters,
            order=(query.sort_field, query.sort_direction),
        )
    except Exception as e:
        logger.error(f"Full scan of {source.collection} failed: {e}")
        raise PageLoadError(f"Failed to load {source.collection}") from e

    items = await _materialize(source, snapshots)
    matched = [item for item in items if matches_text(source, item, query.text_filter)]
    if query.value_sort is not None:
        matched = query.value_sort.apply(matched)
    logger.info(f"Scanned {len(snapshots)} {source.collection}, {len(matched)} match")
    return matched


def slice_page(matches: List[T], page_number: int, page_size: int) -> Page[T]:
    page_number = max(1, page_number)
    start = (page_number - 1) * page_size
    end = page_number * page_size
    return Page(
        items=matches[start:end],
        page_number=page_number,
        has_next_page=end < len(matches),
        has_previous_page=page_number > 1,
        mode=PaginationMode.SCAN,
    )


class ListPaginator(Generic[T]):
    """
    Stateful page navigation for one list view.

    Keeps the page on screen, the stack of first-record cursors of the pages
    already passed (cursor mode) and the filtered full scan (scan mode).
    A failed load raises ``PageLoadError`` and leaves all of that untouched.
    """

    def __init__(self, store: DocumentStore, source: ListSource[T], query: Optional[ListQuery] = None):
        self.store = store
        self.source = source
        self.query = query or ListQuery()
        self.page: Optional[Page[T]] = None
        self.is_loading = False
        self._history: List[DocumentCursor] = []
        self._matches: Optional[List[T]] = None

    @property
    def items(self) -> List[T]:
        return self.page.items if self.page else []

    @property
    def page_number(self) -> int:
        return self.page.page_number if self.page else 1

    @property
    def has_next_page(self) -> bool:
        return bool(self.page and self.page.has_next_page)

    @property
    def has_previous_page(self) -> bool:
        return bool(self.page and self.page.has_previous_page)

    @property
    def mode(self) -> PaginationMode:
        return self.query.mode

    async def first_page(self) -> Page[T]:
        """(Re)load page 1 for the current query, dropping history and cached scan"""
        async with self._loading():
            page, matches = await self._load_first(self.query)
            self._history = []
            self._matches = matches
            self.page = page
        return page

    async def set_query(self, query: ListQuery) -> Page[T]:
        """Switch filters or sorting; always lands on page 1"""
        async with self._loading():
            page, matches = await self._load_first(query)
            self.query = query
            self._history = []
            self._matches = matches
            self.page = page
        return page

    async def next_page(self) -> Page[T]:
        if self.page is None:
            return await self.first_page()
        if not self.page.has_next_page:
            return self.page

        async with self._loading():
            if self.mode == PaginationMode.SCAN:
                matches = await self._scan_cache()
                page = slice_page(matches, self.page.page_number + 1, self.query.page_size)
            else:
                page = await fetch_cursor_page(
                    self.store, self.source, self.query,
                    after=self.page.last_cursor,
                    page_number=self.page.page_number + 1,
                )
                self._history.append(self.page.first_cursor)
            self.page = page
        return page

    async def previous_page(self) -> Page[T]:
        if self.page is None:
            return await self.first_page()
        if not self.page.has_previous_page:
            return self.page

        async with self._loading():
            if self.mode == PaginationMode.SCAN:
                matches = await self._scan_cache()
                page = slice_page(matches, self.page.page_number - 1, self.query.page_size)
            else:
                remaining = self._history[:-1]
                if not remaining:
                    # back on page 1: a plain limited query, nothing to reverse
                    page = await fetch_cursor_page(self.store, self.source, self.query)
                else:
                    page = await fetch_cursor_page(
                        self.store, self.source, self.query,
                        before=self.page.first_cursor,
                        page_number=self.page.page_number - 1,
                    )
                    page.has_previous_page = True
                self._history = remaining
            self.page = page
        return page

    async def delete(self, document_id: str) -> Page[T]:
        """Delete a record, then reload page 1 instead of patching the page in place"""
        deleted = await self.store.delete(self.source.collection, document_id)
        if not deleted:
            logger.warning(f"Delete of missing {self.source.collection}/{document_id}")
        return await self.first_page()

    async def _load_first(self, query: ListQuery):
        if query.mode == PaginationMode.SCAN:
            matches = await scan_matches(self.store, self.source, query)
            return slice_page(matches, 1, query.page_size), matches
        page = await fetch_cursor_page(self.store, self.source, query)
        return page, None

    async def _scan_cache(self) -> List[T]:
        if self._matches is None:
            self._matches = await scan_matches(self.store, self.source, self.query)
        return self._matches

    @asynccontextmanager
    async def _loading(self):
        self.is_loading = True
        try:
            yield
        finally:
            self.is_loading = False
