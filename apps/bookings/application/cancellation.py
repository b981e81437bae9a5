"""Booking cancellation by its owner or an admin."""

from __future__ import annotations

import logging
from uuid import UUID

from apps.bookings.domain.entities import Booking, BookingType
from apps.bookings.messages import MESSAGES, STORE_READ_FAILED, message_for
from apps.users.principal import Principal
from shared.application.store import AbstractStore, Entities, StoreError, StoreErrorCode
from shared.application.uow import StoreUnitOfWork
from shared.domain.errors import ErrorCode, ServiceResult

logger = logging.getLogger(__name__)


def cancel_booking(
    store: AbstractStore,
    booking_id: UUID,
    principal: Principal | None,
    bus=None,
) -> ServiceResult[Booking]:
    """
    Mark a booking cancelled and free its buffer.

    Cancelling an already cancelled booking succeeds without changes. The
    monthly counter is given back only for bookings that had been paid or
    confirmed. A pending booking cancelled before payment keeps its quota
    slot, and the abandoned-checkout sweep no longer picks it up.
    """
    if principal is None:
        return ServiceResult.failure(ErrorCode.UNAUTHENTICATED, MESSAGES[ErrorCode.UNAUTHENTICATED])

    try:
        row = store.get(Entities.BOOKINGS, {'id': booking_id})
    except StoreError as e:
        if e.code == StoreErrorCode.NOT_FOUND:
            return ServiceResult.failure(ErrorCode.BOOKING_NOT_FOUND, MESSAGES[ErrorCode.BOOKING_NOT_FOUND])
        return ServiceResult.failure(e.code, STORE_READ_FAILED, details=e.message)

    booking = Booking.from_record(row)
    if not principal.can_act_for(booking.user_id):
        return ServiceResult.failure(ErrorCode.FORBIDDEN, MESSAGES[ErrorCode.FORBIDDEN])
    if booking.is_buffer:
        return ServiceResult.failure(
            ErrorCode.INVALID_BOOKING_STATE,
            MESSAGES[ErrorCode.INVALID_BOOKING_STATE],
            details="buffer slots cannot be cancelled directly",
        )
    if booking.is_cancelled:
        return ServiceResult.success(booking, already_cancelled=True)

    was_settled = booking.is_paid
    booking.cancel()

    try:
        with StoreUnitOfWork(store, bus) as uow:
            store.update(Entities.BOOKINGS, {'id': booking.id}, {'payment_status': booking.payment_status.value})
            uow.collect_events(booking)
    except StoreError as e:
        logger.error("Failed to cancel booking %s: %s", booking.id, e.message)
        return ServiceResult.failure(e.code, message_for(e.code), details=e.message)

    try:
        store.delete(Entities.BOOKINGS, {
            'room_id': booking.room_id,
            'booking_type': BookingType.BUFFER.value,
            'start_time': booking.end_time,
        })
    except StoreError as e:
        logger.error("Booking %s cancelled but its buffer was not removed: %s", booking.id, e.message)

    if was_settled:
        try:
            store.adjust_counter(Entities.USERS, {'id': booking.user_id}, 'current_monthly_bookings', -1)
        except StoreError as e:
            logger.error("Booking %s cancelled but user %s count was not decremented: %s",
                         booking.id, booking.user_id, e.message)

    logger.info("Booking %s cancelled by %s", booking.id, principal.user_id)
    return ServiceResult.success(booking, already_cancelled=False)
