"""
Tests for the paginated list engine in cursor and scan mode
"""

import math
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from tour_admin.api.listing import fetch_related
from tour_admin.api.schemas import User
from tour_admin.core.pagination import (
    ListPaginator, ListQuery, ListSource, PageLoadError, PaginationMode, ValueSort,
    fetch_cursor_page, scan_matches, slice_page,
)
from tour_admin.db.crud import DocumentSnapshot, DocumentStore, SortDirection


def numbers(page):
    return [item.data["n"] for item in page.items]


def plain_source(**overrides):
    values = dict(
        collection="tours",
        parse=lambda snapshot: snapshot,
        search_text=lambda snapshot: (snapshot.data.get("title"),),
    )
    values.update(overrides)
    return ListSource(**values)


async def fill(store, count, collection="tours"):
    for i in range(count):
        await store.add(collection, {"n": i, "title": f"Tour {i}", "style": "Lux" if i % 2 else "Econom"})


async def walk(paginator):
    """Every page forward from page 1, as lists of record numbers"""
    page = await paginator.first_page()
    pages = [numbers(page)]
    while page.has_next_page:
        page = await paginator.next_page()
        assert page.page_number == len(pages) + 1
        pages.append(numbers(page))
    return pages


@pytest.mark.asyncio
@pytest.mark.parametrize("direction", [SortDirection.DESC, SortDirection.ASC])
@pytest.mark.parametrize("count, page_size", [(0, 3), (1, 1), (3, 3), (4, 3), (7, 2), (25, 10)])
async def test_pages_cover_every_record_both_ways(store, count, page_size, direction):
    await fill(store, count)
    paginator = ListPaginator(store, plain_source(), ListQuery(page_size=page_size, sort_direction=direction))

    pages = await walk(paginator)

    expected = sorted(range(count), reverse=direction == SortDirection.DESC)
    assert [n for page in pages for n in page] == expected
    assert len(pages) == max(1, math.ceil(count / page_size))
    assert all(len(page) == page_size for page in pages[:-1])

    for number in range(len(pages) - 1, 0, -1):
        page = await paginator.previous_page()
        assert page.page_number == number
        assert numbers(page) == pages[number - 1]
    assert not paginator.has_previous_page


@pytest.mark.asyncio
async def test_identical_timestamps_page_by_id(db):
    """Records created in the same instant still page without gaps or repeats"""
    instant = datetime(2024, 1, 1, tzinfo=timezone.utc)
    store = DocumentStore(db, clock=lambda: instant)
    await fill(store, 7)
    by_id = sorted(await store.find("tours"), key=lambda snapshot: snapshot.id, reverse=True)
    paginator = ListPaginator(store, plain_source(), ListQuery(page_size=3))

    pages = await walk(paginator)

    assert [n for page in pages for n in page] == [snapshot.data["n"] for snapshot in by_id]
    assert numbers(await paginator.previous_page()) == pages[1]
    assert numbers(await paginator.previous_page()) == pages[0]


@pytest.mark.asyncio
async def test_cursor_mode_walks_forward_and_back(store):
    """25 records, 10 per page: forward twice, back twice, same pages every time"""
    await fill(store, 25)
    paginator = ListPaginator(store, plain_source(), ListQuery(page_size=10))

    page = await paginator.first_page()
    assert paginator.mode == PaginationMode.CURSOR
    assert numbers(page) == list(range(24, 14, -1))
    assert page.has_next_page and not page.has_previous_page

    page = await paginator.next_page()
    assert numbers(page) == list(range(14, 4, -1))
    assert page.page_number == 2

    page = await paginator.next_page()
    assert numbers(page) == [4, 3, 2, 1, 0]
    assert not page.has_next_page and page.has_previous_page

    page = await paginator.previous_page()
    assert numbers(page) == list(range(14, 4, -1))
    assert page.page_number == 2
    assert page.has_previous_page and page.has_next_page

    page = await paginator.previous_page()
    assert numbers(page) == list(range(24, 14, -1))
    assert page.page_number == 1
    assert not page.has_previous_page


@pytest.mark.asyncio
async def test_next_on_last_page_is_a_no_op(store):
    await fill(store, 3)
    paginator = ListPaginator(store, plain_source(), ListQuery(page_size=10))
    first = await paginator.first_page()

    assert not first.has_next_page
    assert await paginator.next_page() is first
    assert await paginator.previous_page() is first


@pytest.mark.asyncio
async def test_exact_multiple_has_no_phantom_page(store):
    await fill(store, 10)
    page = await fetch_cursor_page(store, plain_source(), ListQuery(page_size=10))
    assert len(page.items) == 10
    assert not page.has_next_page


@pytest.mark.asyncio
async def test_equality_filter_in_cursor_mode(store):
    await fill(store, 6)
    query = ListQuery(page_size=10, equality_filters={"style": "Lux"})
    page = await fetch_cursor_page(store, plain_source(), query)
    assert numbers(page) == [5, 3, 1]


@pytest.mark.asyncio
async def test_text_filter_switches_to_scan_mode(store):
    """A search term loads everything once and slices in memory"""
    for i in range(25):
        await store.add("tours", {"n": i, "title": "Samarkand" if i % 2 == 0 else "Bukhara"})

    paginator = ListPaginator(store, plain_source(), ListQuery(page_size=5))
    await paginator.first_page()

    page = await paginator.set_query(ListQuery(page_size=5, text_filter="samar"))
    assert paginator.mode == PaginationMode.SCAN
    assert page.page_number == 1
    assert numbers(page) == [24, 22, 20, 18, 16]

    store.find = AsyncMock(side_effect=AssertionError("scan result should be cached"))
    page = await paginator.next_page()
    assert numbers(page) == [14, 12, 10, 8, 6]
    page = await paginator.next_page()
    assert numbers(page) == [4, 2, 0]
    assert not page.has_next_page
    page = await paginator.previous_page()
    assert page.page_number == 2


@pytest.mark.asyncio
async def test_set_query_resets_to_first_page(store):
    await fill(store, 25)
    paginator = ListPaginator(store, plain_source(), ListQuery(page_size=10))
    await paginator.first_page()
    await paginator.next_page()

    page = await paginator.set_query(ListQuery(page_size=10, text_filter="Tour 2"))
    assert page.page_number == 1
    assert numbers(page) == [24, 23, 22, 21, 20, 2]

    page = await paginator.set_query(ListQuery(page_size=10))
    assert page.mode == PaginationMode.CURSOR
    assert page.page_number == 1
    assert numbers(page)[0] == 24


@pytest.mark.asyncio
async def test_failed_load_keeps_current_page(store):
    await fill(store, 25)
    paginator = ListPaginator(store, plain_source(), ListQuery(page_size=10))
    first = await paginator.first_page()

    store.find = AsyncMock(side_effect=ConnectionError("database unreachable"))
    with pytest.raises(PageLoadError):
        await paginator.next_page()

    assert paginator.page is first
    assert paginator.page_number == 1
    assert paginator.is_loading is False


@pytest.mark.asyncio
async def test_failed_query_change_keeps_old_query(store):
    await fill(store, 5)
    paginator = ListPaginator(store, plain_source(), ListQuery(page_size=10))
    await paginator.first_page()

    store.find = AsyncMock(side_effect=ConnectionError("database unreachable"))
    with pytest.raises(PageLoadError):
        await paginator.set_query(ListQuery(page_size=10, text_filter="Tour"))

    assert paginator.mode == PaginationMode.CURSOR
    assert len(paginator.items) == 5


@pytest.mark.asyncio
async def test_delete_reloads_first_page(store):
    await fill(store, 25)
    paginator = ListPaginator(store, plain_source(), ListQuery(page_size=10))
    await paginator.first_page()
    page = await paginator.next_page()
    victim = page.items[0].id

    page = await paginator.delete(victim)

    assert page.page_number == 1
    assert await store.count("tours") == 24
    assert victim not in [item.id for item in page.items]


@pytest.mark.asyncio
async def test_deleting_only_record_on_last_page_returns_to_full_first_page(store):
    await fill(store, 21)
    paginator = ListPaginator(store, plain_source(), ListQuery(page_size=10))
    await paginator.first_page()
    await paginator.next_page()
    last = await paginator.next_page()
    assert last.page_number == 3 and numbers(last) == [0]

    page = await paginator.delete(last.items[0].id)

    assert page.page_number == 1
    assert numbers(page) == list(range(20, 10, -1))
    assert page.has_next_page and not page.has_previous_page
    assert numbers(await paginator.next_page()) == list(range(10, 0, -1))
    assert not paginator.has_next_page


@pytest.mark.asyncio
async def test_deleting_the_only_record_leaves_an_empty_first_page(store):
    await fill(store, 1)
    paginator = ListPaginator(store, plain_source(), ListQuery(page_size=10))
    page = await paginator.first_page()

    page = await paginator.delete(page.items[0].id)

    assert page.items == []
    assert page.page_number == 1
    assert not page.has_next_page and not page.has_previous_page


@pytest.mark.asyncio
async def test_unreadable_documents_are_skipped(store):
    await fill(store, 3)

    def parse(snapshot):
        if snapshot.data["n"] == 1:
            raise ValueError("bad document")
        return snapshot

    page = await fetch_cursor_page(store, plain_source(parse=parse), ListQuery())
    assert numbers(page) == [2, 0]


@pytest.mark.asyncio
async def test_scan_matches_joined_fields(store):
    """Search sees fields attached by the join, like a booking's user name"""
    await store.add("bookings", {"n": 0, "userId": "u1"})
    await store.add("bookings", {"n": 1, "userId": "u2"})
    names = {"u1": "Aziz Karimov", "u2": "Olga Petrova"}

    async def enrich(items):
        for item in items:
            item.data["userName"] = names[item.data["userId"]]
        return items

    source = plain_source(
        collection="bookings",
        search_text=lambda snapshot: (snapshot.data.get("userName"),),
        enrich=enrich,
    )
    matches = await scan_matches(store, source, ListQuery(text_filter="OLGA"))
    assert [m.data["n"] for m in matches] == [1]


def test_slice_page_bounds():
    items = [DocumentSnapshot(collection="tours", id=str(i)) for i in range(12)]

    first = slice_page(items, 1, 5)
    last = slice_page(items, 3, 5)

    assert [i.id for i in first.items] == ["0", "1", "2", "3", "4"]
    assert first.has_next_page and not first.has_previous_page
    assert [i.id for i in last.items] == ["10", "11"]
    assert not last.has_next_page and last.has_previous_page


def test_page_size_must_be_positive():
    with pytest.raises(ValueError):
        ListQuery(page_size=0)


@pytest.mark.asyncio
async def test_failed_relation_lookup_leaves_relation_empty(store):
    failing = AsyncMock()
    failing.get.side_effect = RuntimeError("store offline")

    assert await fetch_related(failing, "users", "u1", User) is None
    assert await fetch_related(store, "users", None, User) is None
    assert await fetch_related(store, "users", "missing", User) is None


def test_value_sort_is_stable_and_puts_missing_values_last():
    items = [("a", 3.0), ("b", None), ("c", 1.0), ("d", 3.0), ("e", 2.0)]

    ascending = ValueSort(lambda item: item[1], SortDirection.ASC).apply(items)
    descending = ValueSort(lambda item: item[1], SortDirection.DESC).apply(items)

    assert [name for name, _ in ascending] == ["c", "e", "a", "d", "b"]
    assert [name for name, _ in descending] == ["a", "d", "e", "c", "b"]


@pytest.mark.asyncio
async def test_value_sort_runs_in_scan_mode(store):
    for n, price in enumerate([300, 50, 120, 50]):
        await store.add("tours", {"n": n, "title": f"Tour {n}", "price": price})
    by_price = ValueSort(lambda snapshot: snapshot.data["price"], SortDirection.ASC)
    query = ListQuery(page_size=2, value_sort=by_price)

    paginator = ListPaginator(store, plain_source(), query)
    page = await paginator.first_page()

    assert paginator.mode == PaginationMode.SCAN
    # equal prices keep the newest-first store order
    assert numbers(page) == [3, 1]
    assert numbers(await paginator.next_page()) == [2, 0]
