"""Admin writes of room unavailability periods."""

from __future__ import annotations

import logging
from datetime import date
from uuid import UUID

from apps.bookings.application.availability import NOT_CANCELLED
from apps.bookings.domain.time_policy import date_ranges_overlap
from apps.bookings.messages import MESSAGES, STORE_READ_FAILED, message_for
from apps.users.principal import Principal
from shared.application.store import AbstractStore, Entities, Row, StoreError, StoreErrorCode
from shared.domain.errors import ErrorCode, ServiceResult

logger = logging.getLogger(__name__)


def _failure(code: str, details: str = "") -> ServiceResult:
    return ServiceResult.failure(code, MESSAGES[code], details=details)


def _require_admin(principal: Principal | None) -> ServiceResult | None:
    if principal is None:
        return _failure(ErrorCode.UNAUTHENTICATED)
    if not principal.is_admin:
        return _failure(ErrorCode.FORBIDDEN)
    return None


def _validate_period(
    store: AbstractStore,
    room_id: UUID,
    start_date: date,
    end_date: date,
    exclude_id: UUID | None = None,
) -> ServiceResult | None:
    """Date order, overlap with the room's other periods, bookings inside the period."""
    if start_date > end_date:
        return _failure(ErrorCode.INVALID_DATE_RANGE, f"{start_date} > {end_date}")

    try:
        periods = store.find(Entities.UNAVAILABILITIES, {"room_id": room_id})
        for period in periods:
            if exclude_id is not None and str(period["id"]) == str(exclude_id):
                continue
            if date_ranges_overlap(start_date, end_date, period["start_date"], period["end_date"]):
                return _failure(
                    ErrorCode.OVERLAPPING_DATES,
                    f"{period['start_date']} - {period['end_date']}",
                )

        bookings = store.find(
            Entities.BOOKINGS,
            {"room_id": room_id, "date__gte": start_date, "date__lte": end_date},
            exclude=NOT_CANCELLED,
        )
    except StoreError as e:
        logger.error("Unavailability validation read failed for room %s: %s", room_id, e.message)
        return ServiceResult.failure(e.code, STORE_READ_FAILED, details=e.message)

    if bookings:
        return _failure(ErrorCode.BOOKING_CONFLICT, f"{len(bookings)} booking(s)")
    return None


def create_unavailability(
    store: AbstractStore,
    principal: Principal | None,
    room_id: UUID,
    start_date: date,
    end_date: date,
    reason: str = "",
) -> ServiceResult[Row]:
    denied = _require_admin(principal)
    if denied:
        return denied

    try:
        store.get(Entities.ROOMS, {"id": room_id})
    except StoreError as e:
        if e.code == StoreErrorCode.NOT_FOUND:
            return _failure(ErrorCode.ROOM_NOT_FOUND)
        return ServiceResult.failure(e.code, STORE_READ_FAILED, details=e.message)

    invalid = _validate_period(store, room_id, start_date, end_date)
    if invalid:
        return invalid

    try:
        row = store.insert(Entities.UNAVAILABILITIES, {
            "room_id": room_id,
            "start_date": start_date,
            "end_date": end_date,
            "reason": reason or "",
        })
    except StoreError as e:
        return ServiceResult.failure(e.code, message_for(e.code), details=e.message)

    logger.info("Room %s unavailable %s - %s", room_id, start_date, end_date)
    return ServiceResult.success(row)


def update_unavailability(
    store: AbstractStore,
    principal: Principal | None,
    unavailability_id: UUID,
    *,
    start_date: date | None = None,
    end_date: date | None = None,
    reason: str | None = None,
) -> ServiceResult[Row]:
    """Change a period; dates not given keep their current value."""
    denied = _require_admin(principal)
    if denied:
        return denied

    try:
        current = store.get(Entities.UNAVAILABILITIES, {"id": unavailability_id})
    except StoreError as e:
        if e.code == StoreErrorCode.NOT_FOUND:
            return ServiceResult.failure(e.code, "Unavailability period not found.")
        return ServiceResult.failure(e.code, STORE_READ_FAILED, details=e.message)

    patch = {}
    if start_date is not None or end_date is not None:
        new_start = start_date or current["start_date"]
        new_end = end_date or current["end_date"]
        invalid = _validate_period(store, current["room_id"], new_start, new_end, exclude_id=unavailability_id)
        if invalid:
            return invalid
        patch.update(start_date=new_start, end_date=new_end)
    if reason is not None:
        patch["reason"] = reason
    if not patch:
        return ServiceResult.success(current)

    try:
        rows = store.update(Entities.UNAVAILABILITIES, {"id": unavailability_id}, patch)
    except StoreError as e:
        return ServiceResult.failure(e.code, message_for(e.code), details=e.message)
    return ServiceResult.success(rows[0] if rows else current)


def delete_unavailability(store: AbstractStore, principal: Principal | None, unavailability_id: UUID) -> ServiceResult[int]:
    denied = _require_admin(principal)
    if denied:
        return denied
    try:
        removed = store.delete(Entities.UNAVAILABILITIES, {"id": unavailability_id})
    except StoreError as e:
        return ServiceResult.failure(e.code, message_for(e.code), details=e.message)
    if not removed:
        return ServiceResult.failure(StoreErrorCode.NOT_FOUND, "Unavailability period not found.")
    return ServiceResult.success(removed)
