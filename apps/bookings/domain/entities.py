"""
Booking Domain Entities

- Booking: aggregate for a meeting-room reservation or a buffer slot
- BookingType: user booking or system-generated buffer
- PaymentStatus: lifecycle of the payment side of a booking
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from shared.domain.base import Aggregate, utcnow
from shared.domain.value_objects import TimeSlot


class BookingType(Enum):
    BOOKING = 'booking'
    BUFFER = 'buffer'


class PaymentStatus(Enum):
    """
    Payment lifecycle

    - PENDING -> PAID (payment confirmed by the processor)
    - PENDING -> deleted (rollback after a failed or abandoned payment)
    - PENDING / PAID / CONFIRMED -> CANCELLED (cancellation)
    Buffers are created directly as CONFIRMED.
    """
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    PAID = 'paid'
    CANCELLED = 'cancelled'


SETTLED_STATUSES = (PaymentStatus.PAID, PaymentStatus.CONFIRMED)


@dataclass(eq=False)
class Booking(Aggregate):
    """
    Booking Aggregate Root

    Key invariants:
    - end_time is after start_time
    - a user booking has at least one person; a buffer has none
    - total price is never negative and comes from the pricing engine
    """

    room_id: UUID = None
    user_id: UUID = None
    booking_date: date = None
    start_time: datetime = None
    end_time: datetime = None
    booking_type: BookingType = BookingType.BOOKING
    number_of_people: int = 1
    total_price: Decimal = Decimal('0.00')
    discount: Decimal | None = None
    payment_status: PaymentStatus = PaymentStatus.PENDING
    transaction_id: str | None = None
    receipt_url: str | None = None
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if self.room_id is None or self.user_id is None:
            raise ValueError("Booking needs a room and a user")
        if self.start_time is None or self.end_time is None or self.end_time <= self.start_time:
            raise ValueError("Booking end time must be after its start time")
        if self.booking_type is BookingType.BOOKING and self.number_of_people < 1:
            raise ValueError("Number of people must be at least 1")
        if self.total_price < 0:
            raise ValueError("Total price cannot be negative")

    @property
    def slot(self) -> TimeSlot:
        return TimeSlot(self.start_time, self.end_time)

    @property
    def is_buffer(self) -> bool:
        return self.booking_type is BookingType.BUFFER

    @property
    def is_paid(self) -> bool:
        return self.payment_status in SETTLED_STATUSES

    @property
    def is_cancelled(self) -> bool:
        return self.payment_status is PaymentStatus.CANCELLED

    def mark_paid(self, transaction_id: str, receipt_url: str | None = None):
        """PENDING -> PAID. Emits BookingPaid."""
        if self.payment_status is not PaymentStatus.PENDING:
            raise ValueError(
                f"Cannot mark booking {self.id} as paid from status {self.payment_status.value}"
            )

        from apps.bookings.domain.events import BookingPaid

        self.payment_status = PaymentStatus.PAID
        self.transaction_id = transaction_id
        self.receipt_url = receipt_url
        self.add_event(BookingPaid(
            aggregate_id=self.id,
            booking_id=self.id,
            room_id=self.room_id,
            user_id=self.user_id,
            transaction_id=transaction_id,
        ))

    def cancel(self):
        """Any non-cancelled status -> CANCELLED. Emits BookingCancelled."""
        if self.is_cancelled:
            raise ValueError(f"Booking {self.id} is already cancelled")

        from apps.bookings.domain.events import BookingCancelled

        previous = self.payment_status
        self.payment_status = PaymentStatus.CANCELLED
        self.add_event(BookingCancelled(
            aggregate_id=self.id,
            booking_id=self.id,
            room_id=self.room_id,
            user_id=self.user_id,
            previous_status=previous.value,
        ))

    @classmethod
    def buffer_after(cls, booking: 'Booking', window: TimeSlot) -> 'Booking':
        """System-generated, zero-price idle slot following ``booking``."""
        return cls(
            id=uuid4(),
            room_id=booking.room_id,
            user_id=booking.user_id,
            booking_date=booking.booking_date,
            start_time=window.start,
            end_time=window.end,
            booking_type=BookingType.BUFFER,
            number_of_people=0,
            total_price=Decimal('0.00'),
            payment_status=PaymentStatus.CONFIRMED,
        )

    # ----- store mapping -----

    def to_record(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'room_id': self.room_id,
            'user_id': self.user_id,
            'date': self.booking_date,
            'start_time': self.start_time,
            'end_time': self.end_time,
            'booking_type': self.booking_type.value,
            'number_of_people': self.number_of_people,
            'total_price': self.total_price,
            'discount': self.discount,
            'payment_status': self.payment_status.value,
            'transaction_id': self.transaction_id,
            'receipt_url': self.receipt_url,
            'created_at': self.created_at,
        }

    @classmethod
    def from_record(cls, row: dict[str, Any]) -> 'Booking':
        return cls(
            id=row['id'],
            room_id=row['room_id'],
            user_id=row['user_id'],
            booking_date=row['date'],
            start_time=row['start_time'],
            end_time=row['end_time'],
            booking_type=BookingType(row.get('booking_type', 'booking')),
            number_of_people=row.get('number_of_people', 1),
            total_price=Decimal(str(row.get('total_price') or '0')),
            discount=row.get('discount'),
            payment_status=PaymentStatus(row.get('payment_status', 'pending')),
            transaction_id=row.get('transaction_id'),
            receipt_url=row.get('receipt_url'),
            created_at=row.get('created_at') or utcnow(),
        )

    def __str__(self):
        return f"Booking {self.id} ({self.booking_type.value}, {self.payment_status.value})"
