"""
Result and error vocabulary for the booking core.

Expected outcomes (validation failures, policy rejections, upstream errors)
travel back to the caller as ``ServiceResult`` values; exceptions are kept
for programming errors and unreachable states.
"""

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

T = TypeVar('T')


class ErrorCode:
    """Machine-readable error codes crossing the core boundary."""

    # Authentication / authorization
    UNAUTHENTICATED = 'UNAUTHENTICATED'
    FORBIDDEN = 'FORBIDDEN'

    # Input validation
    VALIDATION_ERROR = 'VALIDATION_ERROR'
    INVALID_TIME_SLOT = 'INVALID_TIME_SLOT'
    INVALID_DATE_RANGE = 'INVALID_DATE_RANGE'
    INVALID_AMOUNT = 'INVALID_AMOUNT'

    # Policy rejections
    CAPACITY_EXCEEDED = 'CAPACITY_EXCEEDED'
    PAST_DATE = 'PAST_DATE'
    PAST_TIME = 'PAST_TIME'
    SUBSCRIPTION_LIMIT_EXCEEDED = 'SUBSCRIPTION_LIMIT_EXCEEDED'
    TIME_SLOT_CONFLICT = 'TIME_SLOT_CONFLICT'
    INVALID_AMENITY = 'INVALID_AMENITY'
    OVERLAPPING_DATES = 'OVERLAPPING_DATES'
    BOOKING_CONFLICT = 'BOOKING_CONFLICT'
    INVALID_BOOKING_STATE = 'INVALID_BOOKING_STATE'

    # Integrity
    PRICE_MISMATCH = 'PRICE_MISMATCH'

    # Lookups
    USER_NOT_FOUND = 'USER_NOT_FOUND'
    ROOM_NOT_FOUND = 'ROOM_NOT_FOUND'
    BOOKING_NOT_FOUND = 'BOOKING_NOT_FOUND'
    SUBSCRIPTION_NOT_FOUND = 'SUBSCRIPTION_NOT_FOUND'

    # Payment processor
    PAYMENT_NOT_SUCCEEDED = 'PAYMENT_NOT_SUCCEEDED'
    PAYMENT_STATUS_ERROR = 'PAYMENT_STATUS_ERROR'
    STRIPE_ERROR = 'STRIPE_ERROR'
    STRIPE_CUSTOMER_ERROR = 'STRIPE_CUSTOMER_ERROR'
    STRIPE_SUBSCRIPTION_ERROR = 'STRIPE_SUBSCRIPTION_ERROR'
    STRIPE_PRICE_MISSING = 'STRIPE_PRICE_MISSING'
    PAYMENT_INTENT_ERROR = 'PAYMENT_INTENT_ERROR'

    # Storage and compensation
    UPDATE_FAILED = 'UPDATE_FAILED'
    ROLLBACK_FAILED = 'ROLLBACK_FAILED'
    COMPENSATION_FAILED = 'COMPENSATION_FAILED'
    UNKNOWN = 'UNKNOWN'


@dataclass(frozen=True)
class ServiceError:
    """
    Error object returned across the core boundary.

    ``critical`` marks failures that need an operator (money moved with no
    booking left behind); those are never plain user errors.
    """
    code: str
    message: str
    details: str = ''
    hint: str = ''
    critical: bool = False

    def to_dict(self) -> dict:
        return {
            'code': self.code,
            'message': self.message,
            'details': self.details,
            'hint': self.hint,
            'critical': self.critical,
        }

    def __str__(self):
        return f"[{self.code}] {self.message}"


@dataclass(frozen=True)
class ServiceResult(Generic[T]):
    """Either ``data`` or ``error`` is set, never both."""
    data: T | None = None
    error: ServiceError | None = None
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, data: T = None, **meta) -> 'ServiceResult[T]':
        return cls(data=data, meta=meta)

    @classmethod
    def failure(
        cls,
        code: str,
        message: str,
        *,
        details: str = '',
        hint: str = '',
        critical: bool = False,
    ) -> 'ServiceResult[T]':
        return cls(error=ServiceError(code, message, details, hint, critical))

    @classmethod
    def from_error(cls, error: ServiceError) -> 'ServiceResult[T]':
        return cls(error=error)
