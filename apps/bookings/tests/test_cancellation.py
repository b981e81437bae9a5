"""Booking cancellation by owner or admin."""

from datetime import timedelta
from uuid import uuid4

import pytest

from apps.bookings.application.cancellation import cancel_booking
from apps.bookings.domain.events import BookingCancelled
from apps.bookings.tasks import sweep_abandoned_bookings
from apps.users.principal import ROLE_ADMIN, Principal
from conftest import local
from shared.application.store import Entities
from shared.domain.errors import ErrorCode


def add_booking(store, seed, day, status, start=10, end=12):
    booking = store.add(
        Entities.BOOKINGS,
        room_id=seed.room["id"], user_id=seed.user["id"], date=day,
        start_time=local(day, start), end_time=local(day, end),
        booking_type="booking", payment_status=status,
    )
    store.add(
        Entities.BOOKINGS,
        room_id=seed.room["id"], user_id=seed.user["id"], date=day,
        start_time=local(day, end), end_time=local(day, end, 30),
        booking_type="buffer", payment_status="confirmed",
    )
    return booking


@pytest.fixture
def owner(seed):
    return Principal(user_id=seed.user["id"])


def test_cancel_paid_booking_frees_buffer_and_quota(store, bus, seed, owner, booking_day):
    store.one(Entities.USERS, id=seed.user["id"])["current_monthly_bookings"] = 3
    booking = add_booking(store, seed, booking_day, "paid")
    events = []
    bus.register_event_handler(BookingCancelled, events.append)

    result = cancel_booking(store, booking["id"], owner, bus)

    assert result.ok
    assert store.one(Entities.BOOKINGS, id=booking["id"])["payment_status"] == "cancelled"
    assert store.find(Entities.BOOKINGS, {"booking_type": "buffer"}) == []
    assert store.one(Entities.USERS, id=seed.user["id"])["current_monthly_bookings"] == 2
    assert [e.previous_status for e in events] == ["paid"]


def test_cancelled_pending_booking_keeps_its_quota_slot(store, bus, processor, seed, owner, booking_day, now):
    store.one(Entities.USERS, id=seed.user["id"])["current_monthly_bookings"] = 3
    booking = add_booking(store, seed, booking_day, "pending")

    assert cancel_booking(store, booking["id"], owner, bus).ok
    swept = sweep_abandoned_bookings(store, processor, now + timedelta(days=1), timedelta(minutes=30), bus)

    assert swept["rolled_back"] == 0
    assert store.one(Entities.BOOKINGS, id=booking["id"])["payment_status"] == "cancelled"
    assert store.one(Entities.USERS, id=seed.user["id"])["current_monthly_bookings"] == 3


def test_cancel_twice_is_idempotent(store, bus, seed, owner, booking_day):
    store.one(Entities.USERS, id=seed.user["id"])["current_monthly_bookings"] = 3
    booking = add_booking(store, seed, booking_day, "paid")

    cancel_booking(store, booking["id"], owner, bus)
    again = cancel_booking(store, booking["id"], owner, bus)

    assert again.ok
    assert again.meta["already_cancelled"]
    assert store.one(Entities.USERS, id=seed.user["id"])["current_monthly_bookings"] == 2


def test_admin_can_cancel_any_booking(store, bus, seed, booking_day):
    booking = add_booking(store, seed, booking_day, "paid")

    result = cancel_booking(store, booking["id"], Principal(user_id=uuid4(), role=ROLE_ADMIN), bus)

    assert result.ok


def test_stranger_cannot_cancel(store, bus, seed, booking_day):
    booking = add_booking(store, seed, booking_day, "paid")

    result = cancel_booking(store, booking["id"], Principal(user_id=uuid4()), bus)

    assert result.error.code == ErrorCode.FORBIDDEN
    assert store.one(Entities.BOOKINGS, id=booking["id"])["payment_status"] == "paid"


def test_requires_principal(store, bus, seed, booking_day):
    booking = add_booking(store, seed, booking_day, "paid")

    assert cancel_booking(store, booking["id"], None, bus).error.code == ErrorCode.UNAUTHENTICATED


def test_cancelled_slot_can_be_booked_again(store, bus, seed, owner, booking_day):
    booking = add_booking(store, seed, booking_day, "paid")
    cancel_booking(store, booking["id"], owner, bus)

    store.insert(Entities.BOOKINGS, {
        "room_id": seed.room["id"], "user_id": seed.user["id"], "date": booking_day,
        "start_time": local(booking_day, 10), "end_time": local(booking_day, 12),
        "booking_type": "booking", "payment_status": "pending",
    })
