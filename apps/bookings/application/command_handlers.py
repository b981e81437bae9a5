"""
Booking Command Handlers

Entry points the transport layer dispatches through the message bus.

Commands:
- CreateBookingCommand: run a candidate booking through admission
- ConfirmPaymentCommand: finalize a booking after payment succeeded
- AbandonPaymentCommand: compensate a booking whose payment never arrived
- CancelBookingCommand: cancel a booking
"""

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional
from uuid import UUID
import logging

from apps.bookings.application.admission import BookingAdmissionService
from apps.bookings.application.cancellation import cancel_booking
from apps.bookings.application.saga import PaymentSagaCoordinator
from apps.bookings.domain.events import CompensationFailed
from apps.users.principal import Principal

logger = logging.getLogger(__name__)
critical_logger = logging.getLogger('apps.bookings.critical')


# ===== Commands =====

@dataclass
class CreateBookingCommand:
    principal: Optional[Principal]
    data: Mapping[str, Any] = field(default_factory=dict)


@dataclass
class ConfirmPaymentCommand:
    booking_id: UUID
    payment_reference: str
    principal: Optional[Principal] = None


@dataclass
class AbandonPaymentCommand:
    booking_id: UUID
    principal: Optional[Principal] = None


@dataclass
class CancelBookingCommand:
    booking_id: UUID
    principal: Optional[Principal]


# ===== Event Handlers =====

def alert_operators(event: CompensationFailed):
    critical_logger.critical(
        "Compensation failed for booking %s (user %s, payment %s): %s",
        event.booking_id, event.user_id, event.payment_reference, event.reason,
    )


# ===== Wiring =====

def register_handlers(bus, store, processor, *, policy=None, clock=None, price_tolerance=None):
    """Bind every booking command to its handler on ``bus``."""
    admission = BookingAdmissionService(
        store, bus, policy=policy, clock=clock, price_tolerance=price_tolerance,
    )
    saga = PaymentSagaCoordinator(store, processor, bus, policy=policy)

    bus.register_command_handler(
        CreateBookingCommand,
        lambda command: admission.admit(command.principal, command.data),
    )
    bus.register_command_handler(
        ConfirmPaymentCommand,
        lambda command: saga.on_payment_succeeded(
            command.booking_id, command.payment_reference, command.principal,
        ),
    )
    bus.register_command_handler(
        AbandonPaymentCommand,
        lambda command: saga.on_payment_abandoned(command.booking_id, command.principal),
    )
    bus.register_command_handler(
        CancelBookingCommand,
        lambda command: cancel_booking(store, command.booking_id, command.principal, bus),
    )
    bus.register_event_handler(CompensationFailed, alert_operators)
    logger.debug("Booking command handlers registered")
    return bus
