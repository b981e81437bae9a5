"""
Availability Checker

Decides whether a room can take a candidate slot:

1. no unavailability period of the room contains the booking date
2. no non-cancelled booking (any type) overlaps the slot
3. no non-cancelled booking starts inside the buffer window right after
   the slot, so the post-payment buffer is guaranteed to fit
4. the slot does not start inside the buffer window owed to a booking
   that ends just before it, even while that buffer is not yet written

These are advisory reads without locks. Concurrent admissions are caught
again by the store, which rejects overlapping inserts.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from uuid import UUID

from apps.bookings.conf import get_time_policy
from apps.bookings.domain.entities import BookingType, PaymentStatus
from apps.bookings.domain.time_policy import (
    TimePolicy,
    compute_buffer_window,
    date_ranges_overlap,
    overlaps,
)
from apps.bookings.messages import MESSAGES, STORE_READ_FAILED
from shared.application.store import AbstractStore, Entities, Row, StoreError
from shared.domain.errors import ErrorCode, ServiceResult

logger = logging.getLogger(__name__)

NOT_CANCELLED = {"payment_status": PaymentStatus.CANCELLED.value}


class ConflictReason:
    UNAVAILABLE = "room_unavailable"
    OVERLAP = "overlapping_booking"
    BUFFER = "buffer_window_taken"


class AvailabilityChecker:
    def __init__(self, store: AbstractStore, policy: TimePolicy | None = None):
        self.store = store
        self.policy = policy or get_time_policy()

    def check(
        self,
        room_id: UUID,
        start: datetime,
        end: datetime,
        booking_date: date,
        *,
        exclude_booking_id: UUID | None = None,
    ) -> ServiceResult[None]:
        try:
            if self._unavailable_on(room_id, booking_date):
                return self._conflict(ConflictReason.UNAVAILABLE, room_id, start, end)

            if self.overlapping_bookings(room_id, start, end, exclude_booking_id=exclude_booking_id):
                return self._conflict(ConflictReason.OVERLAP, room_id, start, end)

            if self._buffer_window_taken(room_id, end, exclude_booking_id):
                return self._conflict(ConflictReason.BUFFER, room_id, start, end)

            if self._inside_previous_buffer(room_id, start, end, exclude_booking_id):
                return self._conflict(ConflictReason.BUFFER, room_id, start, end)
        except StoreError as e:
            logger.error("Availability read failed for room %s: %s", room_id, e.message)
            return ServiceResult.failure(e.code, STORE_READ_FAILED, details=e.message)

        return ServiceResult.success()

    def overlapping_bookings(
        self,
        room_id: UUID,
        start: datetime,
        end: datetime,
        *,
        exclude_booking_id: UUID | None = None,
    ) -> list[Row]:
        """Non-cancelled bookings and buffers of the room sharing any instant with [start, end)."""
        rows = self.store.find(
            Entities.BOOKINGS,
            {"room_id": room_id, "start_time__lt": end, "end_time__gt": start},
            exclude=NOT_CANCELLED,
        )
        return [
            row for row in rows
            if not _same_id(row["id"], exclude_booking_id)
            and overlaps(start, end, row["start_time"], row["end_time"])
        ]

    def _unavailable_on(self, room_id: UUID, booking_date: date) -> bool:
        rows = self.store.find(
            Entities.UNAVAILABILITIES,
            {"room_id": room_id, "start_date__lte": booking_date, "end_date__gte": booking_date},
        )
        return any(
            date_ranges_overlap(booking_date, booking_date, row["start_date"], row["end_date"])
            for row in rows
        )

    def _buffer_window_taken(self, room_id: UUID, end: datetime, exclude_booking_id: UUID | None) -> bool:
        window_end = end + self.policy.buffer
        rows = self.store.find(
            Entities.BOOKINGS,
            {"room_id": room_id, "start_time__gte": end, "start_time__lt": window_end},
            exclude=NOT_CANCELLED,
        )
        return any(not _same_id(row["id"], exclude_booking_id) for row in rows)

    def _inside_previous_buffer(self, room_id: UUID, start: datetime, end: datetime, exclude_booking_id: UUID | None) -> bool:
        rows = self.store.find(
            Entities.BOOKINGS,
            {
                "room_id": room_id,
                "booking_type": BookingType.BOOKING.value,
                "end_time__gt": start - self.policy.buffer,
                "end_time__lte": start,
            },
            exclude=NOT_CANCELLED,
        )
        for row in rows:
            if _same_id(row["id"], exclude_booking_id):
                continue
            window = compute_buffer_window(row["end_time"], self.policy)
            if window is not None and overlaps(window.start, window.end, start, end):
                return True
        return False

    def _conflict(self, reason: str, room_id: UUID, start: datetime, end: datetime) -> ServiceResult[None]:
        logger.info("Room %s not available for %s - %s (%s)", room_id, start, end, reason)
        return ServiceResult.failure(
            ErrorCode.TIME_SLOT_CONFLICT,
            MESSAGES[ErrorCode.TIME_SLOT_CONFLICT],
            details=reason,
        )


def _same_id(a, b) -> bool:
    return b is not None and str(a) == str(b)
