import random
from datetime import datetime, timedelta, timezone

import pytest

from tour_admin.api.seed import BOOKING_NOTES, build_bookings, parse_tour_price
from tour_admin.db.crud import DocumentSnapshot
from tour_admin.db.models import BookingStatus


@pytest.mark.parametrize("raw, expected", [
    ("250", 250.0),
    ("99.5 USD", 99.5),
    (120, 120.0),
    ("$300", 100.0),
    ("", 100.0),
    ("0", 100.0),
    (None, 100.0),
])
def test_parse_tour_price(raw, expected):
    assert parse_tour_price(raw) == expected


def test_build_bookings_follows_the_rules():
    """Random but bounded: people, prices, dates and notes"""
    now = datetime(2024, 6, 1, tzinfo=timezone.utc)
    users = [DocumentSnapshot(collection="users", id=f"u{i}") for i in range(3)]
    tours = [
        DocumentSnapshot(collection="tours", id="t1", data={"price": "200"}),
        DocumentSnapshot(collection="tours", id="t2", data={"price": "call us"}),
    ]

    bookings = build_bookings(users, tours, 15, now=now, rng=random.Random(7))

    assert len(bookings) == 15
    for payload, booking_date in bookings:
        people = payload["numberOfPeople"]
        assert 1 <= people <= 5
        assert payload["userId"] in {"u0", "u1", "u2"}
        unit = 200.0 if payload["tourId"] == "t1" else 100.0
        assert payload["totalPrice"] == f"{unit * people:.2f} USD"
        assert BookingStatus(payload["status"])

        assert now - timedelta(days=90) <= booking_date <= now
        travel = datetime.fromisoformat(payload["travelDate"])
        assert booking_date <= travel <= booking_date + timedelta(days=60)
        assert payload["bookingDate"] == booking_date.isoformat()

        if "notes" in payload:
            assert payload["notes"] in BOOKING_NOTES
            assert payload["notes"].strip()
