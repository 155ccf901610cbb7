"""
Booking endpoints: listing with the booked user and tour joined in
"""

import asyncio
import logging
from functools import partial
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from tour_admin.api.listing import (
    ListParams, delete_or_404, fetch_related, get_or_404, load_page,
)
from tour_admin.api.schemas import BookingDetail, PageResponse, Tour, User, parse_document
from tour_admin.core.context import get_settings, get_store
from tour_admin.core.pagination import ListSource
from tour_admin.core.security import get_current_admin
from tour_admin.core.settings import Settings
from tour_admin.db.crud import DocumentStore
from tour_admin.db.models import BookingStatus, Collection

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["bookings"], dependencies=[Depends(get_current_admin)])

BOOKINGS = Collection.BOOKINGS.value


async def attach_relations(store: DocumentStore, bookings: List[BookingDetail]) -> List[BookingDetail]:
    """Resolve every booking's user and tour concurrently"""
    async def resolve(booking: BookingDetail) -> BookingDetail:
        booking.user, booking.tour = await asyncio.gather(
            fetch_related(store, Collection.USERS.value, booking.user_id, User),
            fetch_related(store, Collection.TOURS.value, booking.tour_id, Tour),
        )
        return booking

    return list(await asyncio.gather(*(resolve(booking) for booking in bookings)))


def booking_source(store: DocumentStore) -> ListSource:
    return ListSource(
        collection=BOOKINGS,
        parse=partial(parse_document, BookingDetail),
        search_text=lambda booking: (
            booking.user.name if booking.user else None,
            booking.user.email if booking.user else None,
        ),
        enrich=partial(attach_relations, store),
    )


@router.get("",
    response_model=PageResponse[BookingDetail],
    responses={
        200: {"description": "One page of bookings with user and tour"},
        400: {"description": "Malformed cursor or sort field"},
        500: {"description": "Database error"}
    },
    summary="List bookings",
    description="Search matches the booking user's name or email"
)
async def list_bookings(
    params: ListParams = Depends(),
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    user_id: Optional[str] = None,
    tour_id: Optional[str] = None,
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    filters = {"status": booking_status, "userId": user_id, "tourId": tour_id}
    return await load_page(store, booking_source(store), params, settings, filters)


@router.get("/{booking_id}",
    response_model=BookingDetail,
    responses={404: {"description": "Booking not found"}},
    summary="Get a booking with its user and tour"
)
async def get_booking(booking_id: str, store: DocumentStore = Depends(get_store)):
    booking = await get_or_404(store, BOOKINGS, booking_id, BookingDetail)
    [booking] = await attach_relations(store, [booking])
    return booking


@router.delete("/{booking_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"description": "Booking not found"}},
    summary="Delete a booking"
)
async def delete_booking(booking_id: str, store: DocumentStore = Depends(get_store)):
    await delete_or_404(store, BOOKINGS, booking_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
