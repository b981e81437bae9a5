from datetime import timedelta

import pytest
from django.contrib.auth import get_user_model

from apps.bookings.application.saga import PaymentSagaCoordinator
from apps.bookings.domain.events import CompensationFailed
from apps.bookings.tasks import reset_monthly_booking_counters, sweep_abandoned_bookings
from conftest import local
from shared.application.store import Entities
from shared.domain.errors import ErrorCode


def add(store, seed, day, start, status, created_at, booking_type="booking"):
    return store.add(
        Entities.BOOKINGS,
        room_id=seed.room["id"], user_id=seed.user["id"], date=day,
        start_time=local(day, start), end_time=local(day, start + 1),
        booking_type=booking_type, payment_status=status, created_at=created_at,
    )


def test_sweep_rolls_back_only_stale_pending_bookings(store, bus, processor, seed, now, booking_day):
    store.one(Entities.USERS, id=seed.user["id"])["current_monthly_bookings"] = 3
    stale = add(store, seed, booking_day, 10, "pending", now - timedelta(minutes=45))
    fresh = add(store, seed, booking_day, 13, "pending", now - timedelta(minutes=5))
    paid = add(store, seed, booking_day, 16, "paid", now - timedelta(hours=3))

    summary = sweep_abandoned_bookings(store, processor, now, timedelta(minutes=30), bus)

    assert summary == {"rolled_back": 1, "confirmed": 0, "skipped": 0, "failed": 0}
    remaining = {row["id"] for row in store.find(Entities.BOOKINGS)}
    assert remaining == {fresh["id"], paid["id"]}
    assert stale["id"] not in remaining
    assert store.one(Entities.USERS, id=seed.user["id"])["current_monthly_bookings"] == 2


def test_sweep_confirms_booking_the_processor_reports_paid(store, bus, processor, seed, now, booking_day):
    store.one(Entities.USERS, id=seed.user["id"])["current_monthly_bookings"] = 1
    stale = add(store, seed, booking_day, 10, "pending", now - timedelta(minutes=45))
    processor.add_intent("pi_paid", metadata={"booking_id": str(stale["id"])})

    summary = sweep_abandoned_bookings(store, processor, now, timedelta(minutes=30), bus)

    assert summary == {"rolled_back": 0, "confirmed": 1, "skipped": 0, "failed": 0}
    row = store.one(Entities.BOOKINGS, id=stale["id"])
    assert row["payment_status"] == "paid"
    assert row["transaction_id"] == "pi_paid"
    assert store.one(Entities.USERS, id=seed.user["id"])["current_monthly_bookings"] == 1


def test_sweep_rolls_back_when_the_intent_never_succeeded(store, bus, processor, seed, now, booking_day):
    stale = add(store, seed, booking_day, 10, "pending", now - timedelta(minutes=45))
    processor.add_intent("pi_open", status="requires_payment_method", metadata={"booking_id": str(stale["id"])})

    summary = sweep_abandoned_bookings(store, processor, now, timedelta(minutes=30), bus)

    assert summary["rolled_back"] == 1
    assert store.find(Entities.BOOKINGS, {"id": stale["id"]}) == []


def test_sweep_keeps_booking_when_payment_lookup_fails(store, bus, processor, seed, now, booking_day):
    stale = add(store, seed, booking_day, 10, "pending", now - timedelta(minutes=45))
    processor.fail_on("find_payment_intents")

    summary = sweep_abandoned_bookings(store, processor, now, timedelta(minutes=30), bus)

    assert summary == {"rolled_back": 0, "confirmed": 0, "skipped": 1, "failed": 0}
    assert store.one(Entities.BOOKINGS, id=stale["id"])["payment_status"] == "pending"


def test_payment_arriving_after_sweep_is_escalated(store, bus, processor, seed, now, booking_day):
    alerts = []
    bus.register_event_handler(CompensationFailed, alerts.append)
    booking = add(store, seed, booking_day, 10, "pending", now)
    processor.add_intent("pi_paid")

    summary = sweep_abandoned_bookings(store, processor, now + timedelta(minutes=31), timedelta(minutes=30), bus)
    assert summary["rolled_back"] == 1

    result = PaymentSagaCoordinator(store, processor, bus).on_payment_succeeded(booking["id"], "pi_paid")

    assert result.error.code == ErrorCode.COMPENSATION_FAILED
    assert result.error.critical
    assert [e.booking_id for e in alerts] == [booking["id"]]


def test_sweep_counts_failures(store, bus, processor, seed, now, booking_day):
    add(store, seed, booking_day, 10, "pending", now - timedelta(hours=1))
    store.fail_on("delete", Entities.BOOKINGS, times=2)

    summary = sweep_abandoned_bookings(store, processor, now, timedelta(minutes=30), bus)

    assert summary == {"rolled_back": 0, "confirmed": 0, "skipped": 0, "failed": 1}


def test_sweep_survives_listing_failure(store, bus, processor, now):
    store.fail_on("find", Entities.BOOKINGS)

    summary = sweep_abandoned_bookings(store, processor, now, timedelta(minutes=30), bus)

    assert summary == {"rolled_back": 0, "confirmed": 0, "skipped": 0, "failed": 0}


@pytest.mark.django_db
def test_reset_monthly_booking_counters():
    User = get_user_model()
    busy = User.objects.create_user(email="busy@example.com", password="x", current_monthly_bookings=4)
    idle = User.objects.create_user(email="idle@example.com", password="x")

    assert reset_monthly_booking_counters() == 1

    busy.refresh_from_db()
    idle.refresh_from_db()
    assert busy.current_monthly_bookings == 0
    assert idle.current_monthly_bookings == 0
