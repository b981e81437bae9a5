"""
Booking Domain Events

Published after the store transaction that produced them commits.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from shared.domain.base import DomainEvent


@dataclass
class BookingAdmitted(DomainEvent):
    """
    Event: a pending booking passed admission and was persisted

    Triggers:
    - caller starts the external payment step
    - abandoned-checkout sweep picks it up if payment never arrives
    """
    booking_id: UUID = None
    room_id: UUID = None
    user_id: UUID = None
    start_time: datetime = None
    end_time: datetime = None
    total_price: Decimal = None


@dataclass
class BookingPaid(DomainEvent):
    """Event: the processor confirmed payment (PENDING -> PAID)."""
    booking_id: UUID = None
    room_id: UUID = None
    user_id: UUID = None
    transaction_id: str = ''


@dataclass
class BufferSlotCreated(DomainEvent):
    """Event: a buffer slot now follows a paid booking."""
    booking_id: UUID = None
    buffer_id: UUID = None
    room_id: UUID = None
    start_time: datetime = None
    end_time: datetime = None


@dataclass
class BookingCancelled(DomainEvent):
    booking_id: UUID = None
    room_id: UUID = None
    user_id: UUID = None
    previous_status: str = ''


@dataclass
class BookingRolledBack(DomainEvent):
    """
    Event: compensation removed a booking

    ``failed_steps`` names the best-effort steps that could not be completed
    and were left for cleanup.
    """
    booking_id: UUID = None
    user_id: UUID = None
    failed_steps: tuple = ()


@dataclass
class CompensationFailed(DomainEvent):
    """
    Event: rollback after a successful payment did not complete

    Money has moved and no booking records it. Operators must reconcile
    the payment with the processor by hand.
    """
    booking_id: UUID = None
    user_id: UUID = None
    payment_reference: str = ''
    reason: str = ''
