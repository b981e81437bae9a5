"""
Rollback / Compensation

Removes a pending booking after its payment failed or was abandoned.
Each step runs on its own; a failed step is logged and the next one still
runs, so as much as possible gets cleaned up. Only the final delete of the
booking row decides the outcome.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from uuid import UUID

from apps.bookings.domain.entities import BookingType
from apps.bookings.domain.events import BookingRolledBack
from apps.bookings.messages import MESSAGES
from shared.application.store import AbstractStore, Entities, StoreError, StoreErrorCode
from shared.domain.errors import ErrorCode, ServiceResult

logger = logging.getLogger(__name__)


class RollbackStep:
    AMENITY_LINKS = 'delete_amenity_links'
    BUFFER = 'delete_buffer'
    COUNTER = 'decrement_counter'
    BOOKING = 'delete_booking'


@dataclass
class RollbackReport:
    booking_id: UUID
    completed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def booking_deleted(self) -> bool:
        return RollbackStep.BOOKING in self.completed


def rollback_booking(store: AbstractStore, booking_id: UUID, user_id: UUID, bus=None) -> ServiceResult[RollbackReport]:
    """Undo an admitted booking: amenity links, buffer, counter, then the row."""
    report = RollbackReport(booking_id=booking_id)

    booking = None
    try:
        rows = store.find(Entities.BOOKINGS, {'id': booking_id})
    except StoreError as e:
        # keep going; the steps below do not need the row except for the buffer
        logger.error("Rollback of booking %s could not load the row: %s", booking_id, e.message)
    else:
        if not rows:
            return ServiceResult.failure(ErrorCode.BOOKING_NOT_FOUND, MESSAGES[ErrorCode.BOOKING_NOT_FOUND])
        booking = rows[0]

    def run(step, action):
        try:
            action()
        except StoreError as e:
            logger.error("Rollback step %s failed for booking %s: %s", step, booking_id, e.message)
            report.failed.append(step)
        else:
            report.completed.append(step)

    run(RollbackStep.AMENITY_LINKS, lambda: store.delete(Entities.BOOKING_AMENITIES, {'booking_id': booking_id}))

    if booking is not None:
        run(RollbackStep.BUFFER, lambda: store.delete(Entities.BOOKINGS, {
            'room_id': booking['room_id'],
            'booking_type': BookingType.BUFFER.value,
            'start_time': booking['end_time'],
        }))
    else:
        report.failed.append(RollbackStep.BUFFER)

    run(RollbackStep.COUNTER, lambda: store.adjust_counter(
        Entities.USERS, {'id': user_id}, 'current_monthly_bookings', -1,
    ))

    def delete_booking():
        if not store.delete(Entities.BOOKINGS, {'id': booking_id}):
            raise StoreError(StoreErrorCode.NOT_FOUND, f"Booking {booking_id} was not deleted")

    run(RollbackStep.BOOKING, delete_booking)

    if not report.booking_deleted:
        logger.error("Rollback of booking %s failed; booking row still present", booking_id)
        return ServiceResult.failure(
            ErrorCode.ROLLBACK_FAILED,
            MESSAGES[ErrorCode.ROLLBACK_FAILED],
            details=", ".join(report.failed),
        )

    if report.failed:
        logger.warning("Booking %s rolled back with leftovers: %s", booking_id, report.failed)
    else:
        logger.info("Booking %s rolled back", booking_id)

    _publish(bus, BookingRolledBack(
        aggregate_id=booking_id,
        booking_id=booking_id,
        user_id=user_id,
        failed_steps=tuple(report.failed),
    ))
    return ServiceResult.success(report)


def _publish(bus, event):
    if bus is None:
        from shared.application.message_bus import message_bus
        bus = message_bus
    bus.publish_events([event])
