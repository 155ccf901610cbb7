"""
Shared plumbing for the list, detail and delete endpoints
"""

import logging
from typing import Any, Dict, Optional, Type

from fastapi import HTTPException, Query, status

from tour_admin.api.schemas import (
    DocumentValidationError, ModelT, PageResponse, parse_document,
)
from tour_admin.core.pagination import (
    ListQuery, ListSource, PageLoadError, PaginationMode, ValueSort,
    fetch_cursor_page, scan_matches, slice_page,
)
from tour_admin.core.settings import Settings
from tour_admin.db.crud import (
    DocumentCursor, DocumentStore, InvalidCursorError, SortDirection,
)
from tour_admin.db.models import SORTABLE_FIELDS

logger = logging.getLogger(__name__)


class ListParams:
    """Query parameters every list endpoint accepts"""

    def __init__(
        self,
        sort: SortDirection = Query(SortDirection.DESC, description="Sort direction on sort_field"),
        sort_field: str = Query("createdAt", description="createdAt or updatedAt"),
        page_size: Optional[int] = Query(None, ge=1, description="Records per page"),
        search: str = Query("", description="Case-insensitive text filter; switches to scan mode"),
        page: Optional[int] = Query(None, ge=1, description="Page number (scan mode) or display number (cursor mode)"),
        after: Optional[str] = Query(None, description="Cursor token: load the page after this record"),
        before: Optional[str] = Query(None, description="Cursor token: load the page before this record"),
    ):
        self.sort = sort
        self.sort_field = sort_field
        self.page_size = page_size
        self.search = search
        self.page = page
        self.after = after
        self.before = before

    def cursor_page_number(self) -> int:
        """
        Display number of the page a cursor request lands on. Anchored pages
        are never page 1 going forward, and the client has to say which page
        it is stepping back to.
        """
        if self.after:
            if self.page is None:
                return 2
            if self.page < 2:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="page must be at least 2 when loading the page after a cursor",
                )
            return self.page
        if self.before:
            if self.page is None:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="page is required when loading the page before a cursor",
                )
            return self.page
        return 1

    def to_query(
        self,
        settings: Settings,
        equality_filters: Dict[str, Any],
        value_sort: Optional[ValueSort] = None,
    ) -> ListQuery:
        if self.sort_field not in SORTABLE_FIELDS:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"sort_field must be one of {sorted(SORTABLE_FIELDS)}",
            )
        page_size = min(self.page_size or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)
        return ListQuery(
            sort_field=self.sort_field,
            sort_direction=self.sort,
            page_size=page_size,
            text_filter=self.search,
            equality_filters={k: v for k, v in equality_filters.items() if v is not None},
            value_sort=value_sort,
        )


def _decode_cursor(token: Optional[str]) -> Optional[DocumentCursor]:
    return DocumentCursor.decode(token) if token else None


async def load_page(
    store: DocumentStore,
    source: ListSource,
    params: ListParams,
    settings: Settings,
    equality_filters: Optional[Dict[str, Any]] = None,
    value_sort: Optional[ValueSort] = None,
) -> PageResponse:
    query = params.to_query(settings, equality_filters or {}, value_sort)

    try:
        if query.mode == PaginationMode.SCAN:
            matches = await scan_matches(store, source, query)
            page = slice_page(matches, params.page or 1, query.page_size)
        else:
            if params.after and params.before:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Pass either after or before, not both",
                )
            page = await fetch_cursor_page(
                store, source, query,
                after=_decode_cursor(params.after),
                before=_decode_cursor(params.before),
                page_number=params.cursor_page_number(),
            )
    except InvalidCursorError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except PageLoadError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    return PageResponse(
        items=page.items,
        page=page.page_number,
        page_size=query.page_size,
        has_next_page=page.has_next_page,
        has_previous_page=page.has_previous_page,
        next_cursor=page.last_cursor.encode() if page.has_next_page and page.last_cursor else None,
        prev_cursor=page.first_cursor.encode() if page.has_previous_page and page.first_cursor else None,
        mode=page.mode.value,
    )


async def fetch_related(
    store: DocumentStore,
    collection: str,
    document_id: Optional[str],
    model: Type[ModelT],
) -> Optional[ModelT]:
    """Look up a referenced entity; a missing or failing lookup leaves the relation empty"""
    if not document_id:
        return None
    try:
        snapshot = await store.get(collection, document_id)
        return parse_document(model, snapshot) if snapshot else None
    except Exception as e:
        logger.warning(f"Could not resolve {collection}/{document_id}: {e}")
        return None


async def get_or_404(store: DocumentStore, collection: str, document_id: str, model: Type[ModelT]) -> ModelT:
    snapshot = await store.get(collection, document_id)
    if snapshot is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{collection}/{document_id} not found",
        )
    try:
        return parse_document(model, snapshot)
    except DocumentValidationError as e:
        logger.error(str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"{collection}/{document_id} is malformed",
        )


async def delete_or_404(store: DocumentStore, collection: str, document_id: str) -> None:
    if not await store.delete(collection, document_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{collection}/{document_id} not found",
        )
