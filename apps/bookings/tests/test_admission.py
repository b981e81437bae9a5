"""Booking admission: checkpoint order, rejections and persisted side effects."""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from apps.bookings.application.admission import AdmissionStage, BookingAdmissionService
from apps.bookings.domain.events import BookingAdmitted
from apps.users.principal import ROLE_ADMIN, Principal
from conftest import local
from shared.application.store import Entities, StoreErrorCode
from shared.domain.errors import ErrorCode


@pytest.fixture
def service(store, bus, now):
    return BookingAdmissionService(store, bus, clock=lambda: now)


@pytest.fixture
def member(seed):
    return Principal(user_id=seed.user["id"])


def payload(seed, day, start=(10, 0), end=(12, 0), *, total="180.00", people=4, amenities=()):
    return {
        "user_id": str(seed.user["id"]),
        "room_id": str(seed.room["id"]),
        "date": day.isoformat(),
        "start_time": local(day, *start).isoformat(),
        "end_time": local(day, *end).isoformat(),
        "number_of_people": people,
        "total_price": total,
        "amenity_ids": [str(a) for a in amenities],
    }


def test_admits_booking_with_server_price(service, store, seed, member, booking_day):
    result = service.admit(member, payload(
        seed, booking_day, total="247.50", amenities=[seed.projector["id"], seed.coffee["id"]],
    ))

    assert result.ok, result.error
    outcome = result.data
    assert outcome.stage is AdmissionStage.QUOTA_INCREMENTED
    assert outcome.quote.total.amount == Decimal("247.50")

    row = store.one(Entities.BOOKINGS, id=outcome.booking.id)
    assert row["payment_status"] == "pending"
    assert row["total_price"] == Decimal("247.50")
    assert row["discount"] == Decimal("10")
    assert len(store.find(Entities.BOOKING_AMENITIES, {"booking_id": outcome.booking.id})) == 2
    assert store.one(Entities.USERS, id=seed.user["id"])["current_monthly_bookings"] == 1


def test_publishes_admitted_event_after_commit(service, bus, seed, member, booking_day):
    received = []
    bus.register_event_handler(BookingAdmitted, received.append)

    result = service.admit(member, payload(seed, booking_day))

    assert [e.booking_id for e in received] == [result.data.booking.id]


def test_unauthenticated_request_never_reads_store(service, store, seed, booking_day):
    result = service.admit(None, {"garbage": True})

    assert result.error.code == ErrorCode.UNAUTHENTICATED
    assert store.calls == []


def test_malformed_request_rejected_before_any_read(service, store, seed, member, booking_day):
    data = payload(seed, booking_day)
    data["number_of_people"] = 0

    result = service.admit(member, data)

    assert result.error.code == ErrorCode.VALIDATION_ERROR
    assert result.meta["failed_at"] == AdmissionStage.VALIDATED.value
    assert store.calls == []


def test_end_before_start_is_invalid_time_slot(service, store, seed, member, booking_day):
    result = service.admit(member, payload(seed, booking_day, start=(12, 0), end=(10, 0)))

    assert result.error.code == ErrorCode.INVALID_TIME_SLOT
    assert store.calls == []


def test_member_cannot_book_for_someone_else(service, seed, booking_day):
    stranger = Principal(user_id=uuid4())

    result = service.admit(stranger, payload(seed, booking_day))

    assert result.error.code == ErrorCode.FORBIDDEN


def test_admin_may_book_for_member(service, seed, booking_day):
    admin = Principal(user_id=uuid4(), role=ROLE_ADMIN)

    assert service.admit(admin, payload(seed, booking_day)).ok


def test_quota_boundary(service, store, seed, member, booking_day):
    store.one(Entities.USERS, id=seed.user["id"])["current_monthly_bookings"] = 4

    first = service.admit(member, payload(seed, booking_day))
    second = service.admit(member, payload(seed, booking_day, start=(15, 0), end=(16, 0), total="90.00"))

    assert first.ok
    assert store.one(Entities.USERS, id=seed.user["id"])["current_monthly_bookings"] == 5
    assert second.error.code == ErrorCode.SUBSCRIPTION_LIMIT_EXCEEDED
    assert second.meta["failed_at"] == AdmissionStage.QUOTA_CHECKED.value


def test_unlimited_tier_never_rejected_on_quota(service, store, seed, member, booking_day):
    store.one(Entities.SUBSCRIPTIONS, id=seed.subscription["id"])["max_monthly_bookings"] = None
    store.one(Entities.USERS, id=seed.user["id"])["current_monthly_bookings"] = 1000

    assert service.admit(member, payload(seed, booking_day)).ok


def test_quota_checked_before_capacity(service, store, seed, member, booking_day):
    store.one(Entities.USERS, id=seed.user["id"])["current_monthly_bookings"] = 5

    result = service.admit(member, payload(seed, booking_day, people=50))

    assert result.error.code == ErrorCode.SUBSCRIPTION_LIMIT_EXCEEDED


def test_capacity_exceeded(service, seed, member, booking_day):
    result = service.admit(member, payload(seed, booking_day, people=9))

    assert result.error.code == ErrorCode.CAPACITY_EXCEEDED


def test_amenity_not_offered_by_room(service, store, seed, member, booking_day):
    whiteboard = store.add(Entities.AMENITIES, name="Whiteboard", price=Decimal("10.00"))

    result = service.admit(member, payload(seed, booking_day, amenities=[whiteboard["id"]]))

    assert result.error.code == ErrorCode.INVALID_AMENITY


def test_unknown_room(service, seed, member, booking_day):
    data = payload(seed, booking_day)
    data["room_id"] = str(uuid4())

    assert service.admit(member, data).error.code == ErrorCode.ROOM_NOT_FOUND


def test_past_date(service, seed, member, now):
    yesterday = now.date() - timedelta(days=1)

    assert service.admit(member, payload(seed, yesterday)).error.code == ErrorCode.PAST_DATE


def test_past_time_today(service, store, seed, member, now):
    # now is 08:00; 07:00 has gone by and is also outside business hours
    result = service.admit(member, payload(seed, now.date(), start=(7, 0), end=(8, 0), total="90.00"))

    assert result.error.code == ErrorCode.PAST_TIME


@pytest.mark.parametrize("start,end", [((8, 0), (9, 0)), ((21, 0), (22, 30))])
def test_outside_business_hours(service, seed, member, booking_day, start, end):
    result = service.admit(member, payload(seed, booking_day, start=start, end=end, total="90.00"))

    assert result.error.code == ErrorCode.INVALID_TIME_SLOT
    assert result.meta["failed_at"] == AdmissionStage.TIME_CHECKED.value


def test_full_business_day_is_bookable(service, seed, member, booking_day):
    # 13 hours at 100/h minus 10%
    result = service.admit(member, payload(seed, booking_day, start=(9, 0), end=(22, 0), total="1170.00"))

    assert result.ok, result.error


def test_identical_resubmission_conflicts(service, store, seed, member, booking_day):
    data = payload(seed, booking_day)

    assert service.admit(member, data).ok
    second = service.admit(member, data)

    assert second.error.code == ErrorCode.TIME_SLOT_CONFLICT
    assert len(store.find(Entities.BOOKINGS)) == 1


def test_slot_inside_existing_buffer_window_conflicts(service, store, seed, member, booking_day):
    store.add(
        Entities.BOOKINGS,
        room_id=seed.room["id"], user_id=uuid4(), date=booking_day,
        start_time=local(booking_day, 12, 0), end_time=local(booking_day, 14, 0),
        booking_type="booking", payment_status="paid",
    )

    blocked = service.admit(member, payload(seed, booking_day, start=(14, 10), end=(15, 0), total="75.00"))
    after_buffer = service.admit(member, payload(seed, booking_day, start=(14, 30), end=(15, 30), total="90.00"))

    assert blocked.error.code == ErrorCode.TIME_SLOT_CONFLICT
    assert after_buffer.ok, after_buffer.error


def test_unavailable_day_conflicts(service, store, seed, member, booking_day):
    store.add(
        Entities.UNAVAILABILITIES,
        room_id=seed.room["id"], start_date=booking_day, end_date=booking_day, reason="Painting",
    )

    result = service.admit(member, payload(seed, booking_day))

    assert result.error.code == ErrorCode.TIME_SLOT_CONFLICT
    assert result.error.details == "room_unavailable"


def test_price_tampering_rejected(service, store, seed, member, booking_day):
    result = service.admit(member, payload(seed, booking_day, total="180.02"))

    assert result.error.code == ErrorCode.PRICE_MISMATCH
    assert store.find(Entities.BOOKINGS) == []


def test_price_within_half_cent_accepted(service, seed, member, booking_day):
    assert service.admit(member, payload(seed, booking_day, total="180.005")).ok


def test_price_mismatch_logged_as_warning(service, seed, member, booking_day, caplog):
    service.admit(member, payload(seed, booking_day, total="1.00"))

    assert any(r.levelname == "WARNING" and "tampering" in r.getMessage() for r in caplog.records)


def test_losing_insert_race_is_a_conflict(service, store, seed, member, booking_day):
    store.fail_on("insert", Entities.BOOKINGS, code=StoreErrorCode.EXCLUSION_VIOLATION)

    result = service.admit(member, payload(seed, booking_day))

    assert result.error.code == ErrorCode.TIME_SLOT_CONFLICT
    assert store.one(Entities.USERS, id=seed.user["id"])["current_monthly_bookings"] == 0


def test_counter_failure_keeps_booking(service, store, bus, seed, member, booking_day):
    store.fail_on("adjust_counter", Entities.USERS)

    result = service.admit(member, payload(seed, booking_day))

    assert result.ok
    assert result.data.stage is AdmissionStage.PERSISTED
    assert result.data.quota_incremented is False
    assert len(store.find(Entities.BOOKINGS)) == 1


def test_quota_taken_concurrently_rolls_back_booking(service, store, seed, member, booking_day, monkeypatch):
    monkeypatch.setattr(store, "adjust_counter", lambda *args, **kwargs: 0)

    result = service.admit(member, payload(seed, booking_day))

    assert result.error.code == ErrorCode.SUBSCRIPTION_LIMIT_EXCEEDED
    assert store.find(Entities.BOOKINGS) == []


def test_storage_error_keeps_native_code(service, store, seed, member, booking_day):
    store.fail_on("find", Entities.USERS, code=StoreErrorCode.UNKNOWN)

    result = service.admit(member, payload(seed, booking_day))

    assert result.error.code == StoreErrorCode.UNKNOWN
    assert not result.error.critical


def test_policy_settings_reach_default_service(store, bus, seed, member, booking_day, now, settings):
    settings.BOOKING_CLOSING_HOUR = 20
    settings.BOOKING_PRICE_TOLERANCE = "0"
    service = BookingAdmissionService(store, bus, clock=lambda: now)

    late = service.admit(member, payload(seed, booking_day, start=(20, 0), end=(21, 0), total="90.00"))
    off_by_a_cent = service.admit(member, payload(seed, booking_day, start=(14, 0), end=(15, 0), total="90.01"))

    assert late.error.code == ErrorCode.INVALID_TIME_SLOT
    assert off_by_a_cent.error.code == ErrorCode.PRICE_MISMATCH
    assert store.find(Entities.BOOKINGS) == []
