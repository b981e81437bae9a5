"""
Booking Admission Service

Runs a candidate booking through a fixed sequence of checkpoints:

    Received -> Authenticated -> Validated -> QuotaChecked -> CapacityChecked
    -> TimeChecked -> ConflictChecked -> Priced -> PriceVerified -> Persisted
    -> QuotaIncremented

Any checkpoint may end the attempt with a rejection carrying a specific
error code; nothing is retried. Authentication and shape validation come
before the first store read. On success one ``pending`` booking row, its
amenity links and the user's monthly counter increment are written in a
single store transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Mapping
from uuid import uuid4

from apps.bookings.application.availability import AvailabilityChecker
from apps.bookings.conf import get_price_tolerance, get_time_policy
from apps.bookings.domain.entities import Booking, PaymentStatus
from apps.bookings.domain.events import BookingAdmitted
from apps.bookings.domain.pricing import (
    PriceQuote,
    calculate_price,
    price_matches,
)
from apps.bookings.domain.time_policy import (
    TimePolicy,
    is_in_past,
    is_past_date,
    within_business_hours,
)
from apps.bookings.messages import MESSAGES, QUOTA_READ_FAILED, STORE_READ_FAILED, message_for
from apps.bookings.serializers import CreateBookingSerializer, error_code_for, flatten_errors
from apps.users.principal import Principal
from shared.application.store import AbstractStore, Entities, Row, StoreError, StoreErrorCode
from shared.application.uow import StoreUnitOfWork
from shared.domain.errors import ErrorCode, ServiceError, ServiceResult

logger = logging.getLogger(__name__)

POLICY_REJECTIONS = frozenset({
    ErrorCode.CAPACITY_EXCEEDED,
    ErrorCode.PAST_DATE,
    ErrorCode.PAST_TIME,
    ErrorCode.SUBSCRIPTION_LIMIT_EXCEEDED,
    ErrorCode.TIME_SLOT_CONFLICT,
    ErrorCode.INVALID_AMENITY,
    ErrorCode.INVALID_TIME_SLOT,
    ErrorCode.VALIDATION_ERROR,
    ErrorCode.UNAUTHENTICATED,
    ErrorCode.FORBIDDEN,
    ErrorCode.USER_NOT_FOUND,
    ErrorCode.ROOM_NOT_FOUND,
    ErrorCode.SUBSCRIPTION_NOT_FOUND,
})


class AdmissionStage(Enum):
    RECEIVED = 'Received'
    AUTHENTICATED = 'Authenticated'
    VALIDATED = 'Validated'
    QUOTA_CHECKED = 'QuotaChecked'
    CAPACITY_CHECKED = 'CapacityChecked'
    TIME_CHECKED = 'TimeChecked'
    CONFLICT_CHECKED = 'ConflictChecked'
    PRICED = 'Priced'
    PRICE_VERIFIED = 'PriceVerified'
    PERSISTED = 'Persisted'
    QUOTA_INCREMENTED = 'QuotaIncremented'
    REJECTED = 'Rejected'


@dataclass
class AdmissionOutcome:
    booking: Booking
    quote: PriceQuote
    stage: AdmissionStage
    quota_incremented: bool = True


@dataclass
class _Candidate:
    principal: Principal | None
    data: Mapping[str, Any]
    attrs: dict = field(default_factory=dict)
    user: Row | None = None
    max_monthly_bookings: int | None = None
    discount_rate: Decimal = Decimal('0')
    room: Row | None = None
    amenities: list[Row] = field(default_factory=list)
    quote: PriceQuote | None = None
    booking: Booking | None = None
    quota_incremented: bool = False


class _QuotaRaceLost(Exception):
    """Another admission consumed the last quota slot between check and write."""


class BookingAdmissionService:
    def __init__(
        self,
        store: AbstractStore,
        bus=None,
        *,
        policy: TimePolicy | None = None,
        clock: Callable[[], datetime] | None = None,
        price_tolerance: Decimal | None = None,
    ):
        self.store = store
        self.bus = bus
        self.policy = policy or get_time_policy()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.price_tolerance = get_price_tolerance() if price_tolerance is None else price_tolerance
        self.availability = AvailabilityChecker(store, self.policy)

    def admit(self, principal: Principal | None, data: Mapping[str, Any]) -> ServiceResult[AdmissionOutcome]:
        """
        Decide whether a candidate booking may be accepted.

        Returns the pending booking and its server-computed quote, or a
        rejection whose ``meta['stage']`` names the checkpoint that failed.
        """
        candidate = _Candidate(principal=principal, data=data)
        pipeline = (
            (AdmissionStage.AUTHENTICATED, self._authenticate),
            (AdmissionStage.VALIDATED, self._validate),
            (AdmissionStage.QUOTA_CHECKED, self._check_quota),
            (AdmissionStage.CAPACITY_CHECKED, self._check_room),
            (AdmissionStage.TIME_CHECKED, self._check_time),
            (AdmissionStage.CONFLICT_CHECKED, self._check_conflicts),
            (AdmissionStage.PRICED, self._price),
            (AdmissionStage.PRICE_VERIFIED, self._verify_price),
            (AdmissionStage.PERSISTED, self._persist),
        )

        for stage, step in pipeline:
            error = step(candidate)
            if error is not None:
                return self._reject(stage, error)
            logger.debug("Admission reached %s", stage.value)

        final_stage = (
            AdmissionStage.QUOTA_INCREMENTED if candidate.quota_incremented else AdmissionStage.PERSISTED
        )
        logger.info(
            "Booking %s admitted for room %s (%s - %s), total %s",
            candidate.booking.id, candidate.booking.room_id,
            candidate.booking.start_time, candidate.booking.end_time, candidate.quote.total,
        )
        return ServiceResult.success(
            AdmissionOutcome(
                booking=candidate.booking,
                quote=candidate.quote,
                stage=final_stage,
                quota_incremented=candidate.quota_incremented,
            ),
            stage=final_stage.value,
        )

    # ----- checkpoints -----

    def _authenticate(self, candidate: _Candidate) -> ServiceError | None:
        if candidate.principal is None:
            return _error(ErrorCode.UNAUTHENTICATED)
        return None

    def _validate(self, candidate: _Candidate) -> ServiceError | None:
        serializer = CreateBookingSerializer(data=dict(candidate.data))
        if not serializer.is_valid():
            code = error_code_for(serializer.errors)
            return _error(code, details=flatten_errors(serializer.errors))

        candidate.attrs = dict(serializer.validated_data)
        if not candidate.principal.can_act_for(candidate.attrs['user_id']):
            return _error(ErrorCode.FORBIDDEN, details="Bookings can only be made for yourself.")
        return None

    def _check_quota(self, candidate: _Candidate) -> ServiceError | None:
        user_id = candidate.attrs['user_id']
        try:
            candidate.user = self.store.get(Entities.USERS, {'id': user_id})
        except StoreError as e:
            if e.code == StoreErrorCode.NOT_FOUND:
                return _error(ErrorCode.USER_NOT_FOUND)
            return ServiceError(e.code, QUOTA_READ_FAILED, details=e.message)

        subscription_id = candidate.user.get('subscription_id')
        if subscription_id is not None:
            try:
                subscription = self.store.get(Entities.SUBSCRIPTIONS, {'id': subscription_id})
            except StoreError as e:
                if e.code == StoreErrorCode.NOT_FOUND:
                    return _error(ErrorCode.SUBSCRIPTION_NOT_FOUND)
                return ServiceError(e.code, QUOTA_READ_FAILED, details=e.message)
            candidate.max_monthly_bookings = subscription.get('max_monthly_bookings')
            candidate.discount_rate = Decimal(str(subscription.get('discount_rate') or 0))

        current = candidate.user.get('current_monthly_bookings') or 0
        limit = candidate.max_monthly_bookings
        if limit is not None and current >= limit:
            return _error(
                ErrorCode.SUBSCRIPTION_LIMIT_EXCEEDED,
                details=f"{current}/{limit} bookings used this month",
            )
        return None

    def _check_room(self, candidate: _Candidate) -> ServiceError | None:
        room_id = candidate.attrs['room_id']
        try:
            candidate.room = self.store.get(Entities.ROOMS, {'id': room_id})
        except StoreError as e:
            if e.code == StoreErrorCode.NOT_FOUND:
                return _error(ErrorCode.ROOM_NOT_FOUND)
            return ServiceError(e.code, STORE_READ_FAILED, details=e.message)

        people = candidate.attrs['number_of_people']
        capacity = candidate.room['capacity']
        if people > capacity:
            return _error(ErrorCode.CAPACITY_EXCEEDED, details=f"{people} people, capacity {capacity}")

        selected = [str(amenity_id) for amenity_id in candidate.attrs.get('amenity_ids') or []]
        if not selected:
            return None

        try:
            offered = {
                str(row['amenity_id'])
                for row in self.store.find(Entities.ROOM_AMENITIES, {'room_id': room_id})
            }
            missing = [amenity_id for amenity_id in selected if amenity_id not in offered]
            if missing:
                return _error(ErrorCode.INVALID_AMENITY, details=", ".join(missing))
            candidate.amenities = self.store.find(
                Entities.AMENITIES, {'id__in': candidate.attrs['amenity_ids']}
            )
        except StoreError as e:
            return ServiceError(e.code, STORE_READ_FAILED, details=e.message)

        if len(candidate.amenities) != len(selected):
            return _error(ErrorCode.INVALID_AMENITY, details="unknown amenity")
        return None

    def _check_time(self, candidate: _Candidate) -> ServiceError | None:
        attrs = candidate.attrs
        now = self.clock()
        if is_past_date(attrs['date'], now, self.policy):
            return _error(ErrorCode.PAST_DATE)
        if is_in_past(attrs['date'], attrs['start_time'], now, self.policy):
            return _error(ErrorCode.PAST_TIME)
        if not within_business_hours(attrs['start_time'], attrs['end_time'], self.policy):
            return _error(
                ErrorCode.INVALID_TIME_SLOT,
                details=(
                    f"Bookings must be between {self.policy.opening:%H:%M} "
                    f"and {self.policy.closing:%H:%M}"
                ),
            )
        return None

    def _check_conflicts(self, candidate: _Candidate) -> ServiceError | None:
        attrs = candidate.attrs
        result = self.availability.check(
            attrs['room_id'], attrs['start_time'], attrs['end_time'], attrs['date'],
        )
        return result.error

    def _price(self, candidate: _Candidate) -> ServiceError | None:
        attrs = candidate.attrs
        candidate.quote = calculate_price(
            candidate.room['hourly_price'],
            attrs['start_time'],
            attrs['end_time'],
            [amenity.get('price') for amenity in candidate.amenities],
            candidate.discount_rate,
        )
        return None

    def _verify_price(self, candidate: _Candidate) -> ServiceError | None:
        submitted = candidate.attrs['total_price']
        if price_matches(submitted, candidate.quote, self.price_tolerance):
            return None
        return _error(
            ErrorCode.PRICE_MISMATCH,
            details=f"submitted {submitted}, expected {candidate.quote.total.amount}",
        )

    def _persist(self, candidate: _Candidate) -> ServiceError | None:
        attrs = candidate.attrs
        booking = Booking(
            id=uuid4(),
            room_id=attrs['room_id'],
            user_id=attrs['user_id'],
            booking_date=attrs['date'],
            start_time=attrs['start_time'],
            end_time=attrs['end_time'],
            number_of_people=attrs['number_of_people'],
            total_price=candidate.quote.total.amount,
            discount=candidate.quote.discount_percentage,
            payment_status=PaymentStatus.PENDING,
        )
        booking.add_event(BookingAdmitted(
            aggregate_id=booking.id,
            booking_id=booking.id,
            room_id=booking.room_id,
            user_id=booking.user_id,
            start_time=booking.start_time,
            end_time=booking.end_time,
            total_price=booking.total_price,
        ))

        try:
            with StoreUnitOfWork(self.store, self.bus) as uow:
                self.store.insert(Entities.BOOKINGS, booking.to_record())
                for amenity in candidate.amenities:
                    self.store.insert(
                        Entities.BOOKING_AMENITIES,
                        {'booking_id': booking.id, 'amenity_id': amenity['id']},
                    )
                candidate.quota_incremented = self._increment_quota(candidate, booking)
                uow.collect_events(booking)
        except _QuotaRaceLost:
            return _error(ErrorCode.SUBSCRIPTION_LIMIT_EXCEEDED, details="limit reached concurrently")
        except StoreError as e:
            if e.code == StoreErrorCode.EXCLUSION_VIOLATION:
                return _error(ErrorCode.TIME_SLOT_CONFLICT, details="slot taken concurrently")
            logger.error("Failed to persist booking for room %s: %s", booking.room_id, e.message)
            return ServiceError(e.code, message_for(e.code), details=e.message)

        candidate.booking = booking
        return None

    def _increment_quota(self, candidate: _Candidate, booking: Booking) -> bool:
        """
        Bump the monthly counter inside the admission transaction.

        A storage failure here is logged and the booking is kept (the
        counter gates admission, it does not bill). A guarded update that
        matches nothing means the quota was used up concurrently, which
        aborts the whole admission.
        """
        limit = candidate.max_monthly_bookings
        try:
            with self.store.atomic():
                changed = self.store.adjust_counter(
                    Entities.USERS,
                    {'id': booking.user_id},
                    'current_monthly_bookings',
                    1,
                    upper_bound=limit,
                )
        except StoreError as e:
            logger.error(
                "Booking %s created but failed to update user %s monthly count: %s",
                booking.id, booking.user_id, e.message,
            )
            return False

        if changed:
            return True
        if limit is not None:
            raise _QuotaRaceLost()
        logger.error("Booking %s created but user %s counter was not updated", booking.id, booking.user_id)
        return False

    # ----- helpers -----

    def _reject(self, stage: AdmissionStage, error: ServiceError) -> ServiceResult[AdmissionOutcome]:
        if error.code == ErrorCode.PRICE_MISMATCH:
            logger.warning("Possible price tampering at %s: %s", stage.value, error.details)
        elif error.code in POLICY_REJECTIONS:
            logger.info("Booking rejected at %s: %s %s", stage.value, error.code, error.details)
        else:
            logger.error("Booking admission failed at %s: %s %s", stage.value, error.code, error.details)
        return ServiceResult(
            error=error,
            meta={'stage': AdmissionStage.REJECTED.value, 'failed_at': stage.value},
        )


def _error(code: str, *, details: str = '') -> ServiceError:
    return ServiceError(code, MESSAGES[code], details=details)
