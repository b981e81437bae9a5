"""
Interval and time-policy rules for meeting-room bookings.

Pure functions, no I/O. All wall-clock decisions (business hours, "today",
buffer clipping) are taken in the single business timezone carried by
``TimePolicy``; naive datetimes are read as local business time.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from functools import cached_property
from zoneinfo import ZoneInfo

from shared.domain.value_objects import TimeSlot


@dataclass(frozen=True)
class TimePolicy:
    opening: time = time(9, 0)
    closing: time = time(22, 0)
    buffer: timedelta = timedelta(minutes=30)
    timezone_name: str = 'Europe/Copenhagen'

    @cached_property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone_name)

    def to_local(self, moment: datetime) -> datetime:
        if moment.tzinfo is None:
            return moment.replace(tzinfo=self.tz)
        return moment.astimezone(self.tz)

    def closing_on(self, day: date) -> datetime:
        return datetime.combine(day, self.closing, tzinfo=self.tz)


DEFAULT_POLICY = TimePolicy()


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open overlap: touching endpoints do not overlap."""
    return start_a < end_b and start_b < end_a


def date_ranges_overlap(start1: date, end1: date, start2: date, end2: date) -> bool:
    """Inclusive overlap of two closed date ranges."""
    return start1 <= end2 and start2 <= end1


def within_business_hours(start: datetime, end: datetime, policy: TimePolicy = DEFAULT_POLICY) -> bool:
    local_start = policy.to_local(start)
    local_end = policy.to_local(end)
    if local_start.date() != local_end.date():
        # crossing midnight is never bookable
        return False
    return local_start.time() >= policy.opening and local_end.time() <= policy.closing


def today(now: datetime, policy: TimePolicy = DEFAULT_POLICY) -> date:
    return policy.to_local(now).date()


def is_past_date(booking_date: date, now: datetime, policy: TimePolicy = DEFAULT_POLICY) -> bool:
    return booking_date < today(now, policy)


def is_in_past(
    booking_date: date,
    start_time: datetime,
    now: datetime,
    policy: TimePolicy = DEFAULT_POLICY,
) -> bool:
    """
    A booking is in the past when its date is before today, or when it is
    today and its start time has already gone by.
    """
    current_day = today(now, policy)
    if booking_date < current_day:
        return True
    if booking_date == current_day:
        return policy.to_local(start_time) < policy.to_local(now)
    return False


def compute_buffer_window(booking_end: datetime, policy: TimePolicy = DEFAULT_POLICY) -> TimeSlot | None:
    """
    Idle window that follows a booking.

    Starts exactly at ``booking_end`` and lasts ``policy.buffer``, clipped to
    closing time. Returns None when the booking already ends at or after the
    closing hour, or when clipping leaves less than a full buffer.
    """
    local_end = policy.to_local(booking_end)
    if local_end.hour >= policy.closing.hour:
        return None

    window_end = min(local_end + policy.buffer, policy.closing_on(local_end.date()))
    if window_end - local_end < policy.buffer:
        return None
    return TimeSlot(local_end, window_end)
