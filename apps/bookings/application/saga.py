"""
Payment Saga Coordinator

Keeps the store and the payment processor consistent for one booking:

    pending --payment succeeded--> paid (+ buffer slot)
    pending --payment abandoned/failed--> deleted (rollback)

The processor is the only authority on whether money moved. If it says
yes and the booking cannot be marked paid, the booking is rolled back; if
that rollback fails too the failure is escalated to operators. So is a
successful payment for a booking that no longer exists.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from apps.bookings.application.availability import NOT_CANCELLED, AvailabilityChecker
from apps.bookings.application.rollback import rollback_booking
from apps.bookings.domain.entities import Booking, BookingType, PaymentStatus
from apps.bookings.domain.events import BufferSlotCreated, CompensationFailed
from apps.bookings.conf import get_time_policy
from apps.bookings.domain.time_policy import TimePolicy, compute_buffer_window
from apps.bookings.messages import MESSAGES, STORE_READ_FAILED
from apps.payments.processor import SUCCEEDED, AbstractPaymentProcessor, PaymentProcessorError
from apps.users.principal import Principal
from shared.application.store import AbstractStore, Entities, StoreError, StoreErrorCode
from shared.application.uow import StoreUnitOfWork
from shared.domain.errors import ErrorCode, ServiceError, ServiceResult

logger = logging.getLogger(__name__)


@dataclass
class PaymentConfirmation:
    booking: Booking
    buffer_id: UUID | None = None
    already_paid: bool = False


class PaymentSagaCoordinator:
    def __init__(
        self,
        store: AbstractStore,
        processor: AbstractPaymentProcessor,
        bus=None,
        *,
        policy: TimePolicy | None = None,
    ):
        self.store = store
        self.processor = processor
        self.bus = bus
        self.policy = policy or get_time_policy()
        self.availability = AvailabilityChecker(store, self.policy)

    def on_payment_succeeded(
        self,
        booking_id: UUID,
        payment_reference: str,
        principal: Principal | None = None,
    ) -> ServiceResult[PaymentConfirmation]:
        """
        Finalize a booking after the client reports a successful payment.

        Safe to call repeatedly: once the booking is paid further calls
        return success without touching the processor or the store.
        """
        loaded = self._load(booking_id, principal)
        if not loaded.ok:
            if loaded.error.code == ErrorCode.BOOKING_NOT_FOUND:
                return self._payment_without_booking(booking_id, payment_reference, loaded)
            return loaded
        booking = loaded.data

        if booking.is_paid:
            logger.info("Booking %s already paid, nothing to do", booking.id)
            return ServiceResult.success(PaymentConfirmation(booking, already_paid=True))
        if booking.is_cancelled or booking.is_buffer:
            return _failure(ErrorCode.INVALID_BOOKING_STATE, details=booking.payment_status.value)

        try:
            status = self.processor.retrieve_payment_status(payment_reference)
        except PaymentProcessorError as e:
            logger.error("Could not retrieve payment %s: %s", payment_reference, e.message)
            return _failure(ErrorCode.PAYMENT_STATUS_ERROR, details=e.message)

        if status != SUCCEEDED:
            logger.info("Payment %s for booking %s has status %s", payment_reference, booking.id, status)
            return _failure(ErrorCode.PAYMENT_NOT_SUCCEEDED, details=status)

        try:
            receipt_url = self.processor.retrieve_receipt(payment_reference)
        except PaymentProcessorError as e:
            logger.warning("No receipt for payment %s: %s", payment_reference, e.message)
            receipt_url = None

        booking.mark_paid(payment_reference, receipt_url)
        try:
            with StoreUnitOfWork(self.store, self.bus) as uow:
                updated = self.store.update(
                    Entities.BOOKINGS,
                    {'id': booking.id, 'payment_status': PaymentStatus.PENDING.value},
                    {
                        'payment_status': PaymentStatus.PAID.value,
                        'transaction_id': payment_reference,
                        'receipt_url': receipt_url,
                    },
                )
                if updated:
                    uow.collect_events(booking)
        except StoreError as e:
            logger.error("Payment %s succeeded but booking %s update failed: %s", payment_reference, booking.id, e.message)
            return self._compensate(booking, payment_reference, e.message)

        if not updated:
            current = self._reload(booking.id)
            if current is not None and current.is_paid:
                logger.info("Booking %s was paid concurrently", booking.id)
                return ServiceResult.success(PaymentConfirmation(current, already_paid=True))
            return self._compensate(booking, payment_reference, "booking was no longer pending")

        logger.info("Booking %s paid (payment %s)", booking.id, payment_reference)
        buffer_id = self._create_buffer(booking)
        return ServiceResult.success(PaymentConfirmation(booking, buffer_id=buffer_id))

    def on_payment_abandoned(self, booking_id: UUID, principal: Principal | None = None) -> ServiceResult:
        """Compensate a booking whose payment failed or never arrived."""
        loaded = self._load(booking_id, principal)
        if not loaded.ok:
            return loaded
        booking = loaded.data
        if booking.payment_status is not PaymentStatus.PENDING or booking.is_buffer:
            return _failure(ErrorCode.INVALID_BOOKING_STATE, details=booking.payment_status.value)

        logger.info("Rolling back unpaid booking %s", booking.id)
        return rollback_booking(self.store, booking.id, booking.user_id, self.bus)

    # ----- internals -----

    def _load(self, booking_id: UUID, principal: Principal | None) -> ServiceResult[Booking]:
        try:
            row = self.store.get(Entities.BOOKINGS, {'id': booking_id})
        except StoreError as e:
            if e.code == StoreErrorCode.NOT_FOUND:
                return _failure(ErrorCode.BOOKING_NOT_FOUND)
            return ServiceResult.failure(e.code, STORE_READ_FAILED, details=e.message)

        booking = Booking.from_record(row)
        if principal is not None and not principal.can_act_for(booking.user_id):
            return _failure(ErrorCode.FORBIDDEN)
        return ServiceResult.success(booking)

    def _reload(self, booking_id: UUID) -> Booking | None:
        try:
            rows = self.store.find(Entities.BOOKINGS, {'id': booking_id})
        except StoreError:
            logger.error("Could not re-read booking %s", booking_id, exc_info=True)
            return None
        return Booking.from_record(rows[0]) if rows else None

    def _payment_without_booking(self, booking_id: UUID, payment_reference: str, missing: ServiceResult) -> ServiceResult:
        """The booking is gone; money that still moved for it has to be escalated."""
        try:
            status = self.processor.retrieve_payment_status(payment_reference)
        except PaymentProcessorError as e:
            logger.warning("Booking %s not found and payment %s unreadable: %s", booking_id, payment_reference, e.message)
            return missing
        if status != SUCCEEDED:
            return missing

        logger.error("Payment %s succeeded for booking %s which no longer exists", payment_reference, booking_id)
        return self._escalate(booking_id, None, payment_reference, "booking no longer exists")

    def _compensate(self, booking: Booking, payment_reference: str, reason: str) -> ServiceResult:
        result = rollback_booking(self.store, booking.id, booking.user_id, self.bus)
        if result.ok:
            return _failure(
                ErrorCode.UPDATE_FAILED,
                details=reason,
                hint=f"Refund payment {payment_reference}",
            )

        logger.error(
            "Booking %s could not be rolled back after payment %s: %s",
            booking.id, payment_reference, result.error.details,
        )
        return self._escalate(booking.id, booking.user_id, payment_reference, reason)

    def _escalate(self, booking_id: UUID, user_id: UUID | None, payment_reference: str, reason: str) -> ServiceResult:
        self._publish(CompensationFailed(
            aggregate_id=booking_id,
            booking_id=booking_id,
            user_id=user_id,
            payment_reference=payment_reference,
            reason=reason,
        ))
        return ServiceResult.from_error(ServiceError(
            ErrorCode.COMPENSATION_FAILED,
            MESSAGES[ErrorCode.COMPENSATION_FAILED],
            details=reason,
            hint=f"Reconcile payment {payment_reference} by hand",
            critical=True,
        ))

    def _create_buffer(self, booking: Booking) -> UUID | None:
        """Best effort; a missing buffer never fails the payment."""
        window = compute_buffer_window(booking.end_time, self.policy)
        if window is None:
            logger.info("No room for a buffer after booking %s (ends %s)", booking.id, booking.end_time)
            return None

        try:
            existing = self.store.find(
                Entities.BOOKINGS,
                {
                    'room_id': booking.room_id,
                    'booking_type': BookingType.BUFFER.value,
                    'start_time': booking.end_time,
                },
                exclude=NOT_CANCELLED,
            )
            if existing:
                return existing[0]['id']

            conflicts = self.availability.overlapping_bookings(
                booking.room_id, window.start, window.end, exclude_booking_id=booking.id,
            )
            if conflicts:
                logger.info("Buffer after booking %s skipped, window is taken", booking.id)
                return None

            buffer = Booking.buffer_after(booking, window)
            buffer.add_event(BufferSlotCreated(
                aggregate_id=buffer.id,
                booking_id=booking.id,
                buffer_id=buffer.id,
                room_id=buffer.room_id,
                start_time=buffer.start_time,
                end_time=buffer.end_time,
            ))
            with StoreUnitOfWork(self.store, self.bus) as uow:
                self.store.insert(Entities.BOOKINGS, buffer.to_record())
                uow.collect_events(buffer)
        except StoreError as e:
            logger.error("Failed to create buffer after booking %s: %s", booking.id, e.message)
            return None

        logger.info("Buffer %s created after booking %s", buffer.id, booking.id)
        return buffer.id

    def _publish(self, event):
        if self.bus is None:
            from shared.application.message_bus import message_bus
            bus = message_bus
        else:
            bus = self.bus
        bus.publish_events([event])


def _failure(code: str, *, details: str = '', hint: str = '') -> ServiceResult:
    return ServiceResult.failure(code, MESSAGES[code], details=details, hint=hint)
