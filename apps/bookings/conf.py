"""Booking policy settings with defaults."""

from datetime import time, timedelta
from decimal import Decimal

from django.conf import settings  # type: ignore

from apps.bookings.domain.time_policy import TimePolicy


def get_time_policy() -> TimePolicy:
    return TimePolicy(
        opening=time(getattr(settings, "BOOKING_OPENING_HOUR", 9), 0),
        closing=time(getattr(settings, "BOOKING_CLOSING_HOUR", 22), 0),
        buffer=timedelta(minutes=getattr(settings, "BOOKING_BUFFER_MINUTES", 30)),
        timezone_name=getattr(settings, "TIME_ZONE", "Europe/Copenhagen"),
    )


def get_price_tolerance() -> Decimal:
    return Decimal(str(getattr(settings, "BOOKING_PRICE_TOLERANCE", "0.01")))


def get_max_total_price() -> Decimal:
    return Decimal(str(getattr(settings, "BOOKING_MAX_TOTAL_PRICE", "99999.99")))


def get_pending_timeout() -> timedelta:
    return timedelta(minutes=getattr(settings, "BOOKING_PENDING_TIMEOUT_MINUTES", 30))
