"""
Demo data: random bookings over the existing users and tours
"""

import random
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status

from tour_admin.api.schemas import Booking, GeneratedBookings, leading_number, parse_document
from tour_admin.core.context import ServiceContext, get_context
from tour_admin.core.rate_limit import limiter, settings as limit_settings
from tour_admin.core.security import get_current_admin
from tour_admin.db.crud import DocumentSnapshot
from tour_admin.db.models import BookingStatus, Collection, utcnow

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["seed"], dependencies=[Depends(get_current_admin)])

# Blank entries make roughly a third of the bookings come without a note
BOOKING_NOTES = [
    "Хочу забронировать номер с видом на море",
    "Нужна помощь с визой",
    "Предпочитаю утренние рейсы",
    "Вегетарианское питание",
    "Путешествую с детьми",
    "Нужен трансфер из аэропорта",
    "Особые требования к размещению",
    "",
    "",
    "",
]

FALLBACK_TOUR_PRICE = 100.0


def parse_tour_price(raw: Any) -> float:
    """Leading number of the tour price; missing, unparseable or zero prices count as 100"""
    return leading_number(raw) or FALLBACK_TOUR_PRICE


def build_bookings(
    users: List[DocumentSnapshot],
    tours: List[DocumentSnapshot],
    count: int,
    now: Optional[datetime] = None,
    rng: random.Random = random,
) -> List[Tuple[Dict[str, Any], datetime]]:
    """Booking payloads paired with the booking date they were created at"""
    now = now or utcnow()
    bookings = []
    for _ in range(count):
        user = rng.choice(users)
        tour = rng.choice(tours)
        people = rng.randint(1, 5)
        total = parse_tour_price(tour.data.get("price")) * people

        booking_date = now - timedelta(days=rng.random() * 90)
        travel_date = booking_date + timedelta(days=rng.random() * 60)

        payload = {
            "userId": user.id,
            "tourId": tour.id,
            "status": rng.choice(list(BookingStatus)).value,
            "numberOfPeople": people,
            "totalPrice": f"{total:.2f} USD",
            "bookingDate": booking_date.isoformat(),
            "travelDate": travel_date.isoformat(),
        }
        note = rng.choice(BOOKING_NOTES)
        if note:
            payload["notes"] = note
        bookings.append((payload, booking_date))
    return bookings


@router.post("/generate-bookings",
    response_model=GeneratedBookings,
    responses={
        200: {"description": "Bookings generated"},
        400: {"description": "No users or no tours to book"},
        429: {"description": "Rate limit exceeded"}
    },
    summary="Generate demo bookings",
    description="Create random bookings pairing existing users with existing tours"
)
@limiter.limit(limit_settings.RATE_LIMIT_SEED)
async def generate_bookings(
    request: Request,
    context: ServiceContext = Depends(get_context),
):
    store = context.store
    users = await store.find(Collection.USERS.value)
    if not users:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No users found in the database. Please create some users first."
        )

    tours = await store.find(Collection.TOURS.value)
    if not tours:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No tours found in the database. Please create some tours first."
        )

    logger.info("seed_started", users=len(users), tours=len(tours))

    created = []
    for payload, booking_date in build_bookings(users, tours, context.settings.SEED_BOOKINGS_COUNT):
        snapshot = await store.add(Collection.BOOKINGS.value, payload, created_at=booking_date)
        created.append(parse_document(Booking, snapshot))
        logger.info("booking_generated", booking_id=snapshot.id, user_id=payload["userId"], tour_id=payload["tourId"])

    return GeneratedBookings(
        message=f"Successfully created {len(created)} bookings",
        bookings=created,
    )
