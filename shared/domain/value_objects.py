"""
Common Value Objects

- Money: non-negative monetary amount in a single currency
- DateRange: closed calendar range (both ends inclusive), used for room
  unavailability periods
- TimeSlot: half-open [start, end) interval of aware datetimes, used for
  bookings and buffers
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP

from shared.domain.base import ValueObject

CENT = Decimal('0.01')
SUPPORTED_CURRENCIES = ('DKK', 'EUR', 'USD')


@dataclass(frozen=True)
class Money(ValueObject):
    """
    Money value object

    Amounts are kept at full precision; call ``rounded()`` when a value
    leaves the domain (storage, payment processor, API response).
    """
    amount: Decimal
    currency: str = 'DKK'

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', Decimal(str(self.amount)))
        if self.amount < 0:
            raise ValueError("Amount cannot be negative")
        if self.currency not in SUPPORTED_CURRENCIES:
            raise ValueError(f"Unsupported currency: {self.currency}")

    @classmethod
    def zero(cls, currency: str = 'DKK') -> 'Money':
        return cls(Decimal('0'), currency)

    def _check_currency(self, other: 'Money'):
        if not isinstance(other, Money):
            raise TypeError("Can only combine Money with Money")
        if self.currency != other.currency:
            raise ValueError(f"Currency mismatch: {self.currency} and {other.currency}")

    def __add__(self, other: 'Money') -> 'Money':
        self._check_currency(other)
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: 'Money') -> 'Money':
        """Subtract, flooring at zero."""
        self._check_currency(other)
        return Money(max(self.amount - other.amount, Decimal('0')), self.currency)

    def __mul__(self, factor) -> 'Money':
        if not isinstance(factor, (int, float, Decimal)):
            raise TypeError("Can only multiply Money by number")
        return Money(self.amount * Decimal(str(factor)), self.currency)

    def rounded(self) -> 'Money':
        return Money(self.amount.quantize(CENT, rounding=ROUND_HALF_UP), self.currency)

    @property
    def minor_units(self) -> int:
        """Amount in the smallest currency unit (øre, cents)."""
        return int((self.amount * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))

    def __str__(self):
        return f"{self.amount:,.2f} {self.currency}"

    def __repr__(self):
        return f"Money({self.amount}, '{self.currency}')"


@dataclass(frozen=True)
class DateRange(ValueObject):
    """
    Closed date range

    Both ends are inclusive: a single-day period has start_date == end_date.
    """
    start_date: date
    end_date: date

    def __post_init__(self):
        if self.start_date > self.end_date:
            raise ValueError(f"Start date ({self.start_date}) must not be after end date ({self.end_date})")

    def overlaps_with(self, other: 'DateRange') -> bool:
        """
        Two closed ranges overlap when they share at least one day.

        Examples:
            - DateRange(1, 3) overlaps with DateRange(3, 5) -> True
            - DateRange(1, 3) overlaps with DateRange(4, 5) -> False
        """
        if not isinstance(other, DateRange):
            raise TypeError("Can only check overlap with another DateRange")
        return self.start_date <= other.end_date and other.start_date <= self.end_date

    def contains(self, check_date: date) -> bool:
        return self.start_date <= check_date <= self.end_date

    def __len__(self) -> int:
        """Number of days covered, both ends included."""
        return (self.end_date - self.start_date).days + 1

    def __str__(self):
        return f"{self.start_date.isoformat()} - {self.end_date.isoformat()}"


@dataclass(frozen=True)
class TimeSlot(ValueObject):
    """
    Half-open time interval [start, end)

    Touching slots (one ends exactly when the other starts) do not overlap.
    """
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.end <= self.start:
            raise ValueError(f"Slot end ({self.end}) must be after start ({self.start})")

    def overlaps_with(self, other: 'TimeSlot') -> bool:
        if not isinstance(other, TimeSlot):
            raise TypeError("Can only check overlap with another TimeSlot")
        return self.start < other.end and other.start < self.end

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def hours(self) -> Decimal:
        """Duration in fractional hours."""
        return Decimal(int(self.duration.total_seconds())) / Decimal(3600)

    def __str__(self):
        return f"{self.start.isoformat()} - {self.end.isoformat()}"
