"""
Pricing Engine

Computes the authoritative price of a booking:

    room_subtotal      = hourly_price * duration_hours
    amenities_subtotal = sum(amenity prices)          # once per booking
    subtotal           = room_subtotal + amenities_subtotal
    discount_amount    = subtotal * discount_rate / 100
    total              = max(0, subtotal - discount_amount)

Amounts are rounded half-up to the cent only when the quote is built, so
intermediate values never accumulate rounding error. Amenities are priced
once per booking regardless of the number of people.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable

from shared.domain.value_objects import Money, TimeSlot

DEFAULT_PRICE_TOLERANCE = Decimal('0.01')
HUNDRED = Decimal('100')


@dataclass(frozen=True)
class PriceQuote:
    room_subtotal: Money
    amenities_subtotal: Money
    subtotal: Money
    discount_amount: Money
    total: Money
    # Rate kept for audit storage; None when no discount applies.
    discount_percentage: Decimal | None = None


def _decimal(value) -> Decimal:
    if value is None:
        return Decimal('0')
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def calculate_price(
    hourly_price,
    start: datetime,
    end: datetime,
    amenity_prices: Iterable = (),
    discount_rate=0,
    currency: str = 'DKK',
) -> PriceQuote:
    """
    Price a booking from its room rate, slot, amenities and discount.

    ``amenity_prices`` may contain None for free amenities.
    ``discount_rate`` is a percentage between 0 and 100.

    Raises:
        ValueError: negative price, end not after start, or a discount
            outside 0-100. Callers validate input before pricing, so these
            indicate a programming error.
    """
    rate = _decimal(discount_rate)
    if rate < 0 or rate > HUNDRED:
        raise ValueError(f"Discount rate must be between 0 and 100, got {rate}")

    slot = TimeSlot(start, end)
    hourly = Money(_decimal(hourly_price), currency)

    room_subtotal = hourly * slot.hours
    amenities_subtotal = Money.zero(currency)
    for price in amenity_prices:
        amenities_subtotal += Money(_decimal(price), currency)

    subtotal = room_subtotal + amenities_subtotal
    discount_amount = subtotal * (rate / HUNDRED)
    total = subtotal - discount_amount

    return PriceQuote(
        room_subtotal=room_subtotal.rounded(),
        amenities_subtotal=amenities_subtotal.rounded(),
        subtotal=subtotal.rounded(),
        discount_amount=discount_amount.rounded(),
        total=total.rounded(),
        discount_percentage=rate if rate > 0 else None,
    )


def price_matches(submitted, quote: PriceQuote, tolerance: Decimal = DEFAULT_PRICE_TOLERANCE) -> bool:
    """True when a client-submitted total is within ``tolerance`` of the quote."""
    return abs(_decimal(submitted) - quote.total.amount) <= tolerance
