"""User-facing messages for booking errors."""

from shared.application.store import StoreErrorCode
from shared.domain.errors import ErrorCode

MESSAGES = {
    ErrorCode.UNAUTHENTICATED: "Please log in to continue.",
    ErrorCode.FORBIDDEN: "You are not allowed to perform this action.",
    ErrorCode.VALIDATION_ERROR: "Some booking details are missing or invalid.",
    ErrorCode.INVALID_TIME_SLOT: "The selected time slot is not valid.",
    ErrorCode.CAPACITY_EXCEEDED: "The number of people exceeds the room capacity.",
    ErrorCode.PAST_DATE: "You cannot book a date in the past.",
    ErrorCode.PAST_TIME: "You cannot book a time that has already passed.",
    ErrorCode.SUBSCRIPTION_LIMIT_EXCEEDED: (
        "You have reached the monthly booking limit of your subscription."
    ),
    ErrorCode.TIME_SLOT_CONFLICT: "The room is not available for the selected time.",
    ErrorCode.INVALID_AMENITY: "One or more selected amenities are not offered by this room.",
    ErrorCode.INVALID_DATE_RANGE: "The end date must be on or after the start date.",
    ErrorCode.OVERLAPPING_DATES: "This period overlaps another unavailability period of the room.",
    ErrorCode.BOOKING_CONFLICT: "The room has bookings in this period. Cancel them first.",
    ErrorCode.PRICE_MISMATCH: "The price has changed. Please review your booking and try again.",
    ErrorCode.USER_NOT_FOUND: "User not found.",
    ErrorCode.ROOM_NOT_FOUND: "Meeting room not found.",
    ErrorCode.BOOKING_NOT_FOUND: "Booking not found.",
    ErrorCode.SUBSCRIPTION_NOT_FOUND: "Subscription not found. Please contact support.",
    ErrorCode.INVALID_BOOKING_STATE: "This booking can no longer be changed.",
    ErrorCode.PAYMENT_NOT_SUCCEEDED: "Payment has not been completed.",
    ErrorCode.PAYMENT_STATUS_ERROR: "Unable to verify the payment. Please try again.",
    ErrorCode.UPDATE_FAILED: "Payment succeeded but the booking could not be updated.",
    ErrorCode.ROLLBACK_FAILED: "Failed to undo the booking. Please contact support.",
    ErrorCode.COMPENSATION_FAILED: (
        "Your payment was received but the booking could not be recorded. "
        "Our team has been notified."
    ),
}

# Storage errors keep their native code; these are the messages shown for them.
STORE_MESSAGES = {
    StoreErrorCode.UNIQUE_VIOLATION: "A booking with these details already exists.",
    StoreErrorCode.FOREIGN_KEY_VIOLATION: "The selected room or user does not exist.",
    StoreErrorCode.NOT_NULL_VIOLATION: "Some required booking information is missing.",
    StoreErrorCode.CHECK_VIOLATION: "The booking details are not valid.",
}

STORE_READ_FAILED = "Unable to load booking information. Please try again."
STORE_WRITE_FAILED = "Failed to save the booking. Please try again."
QUOTA_READ_FAILED = "Unable to verify subscription limits. Please try again."


def message_for(code: str) -> str:
    return MESSAGES.get(code) or STORE_MESSAGES.get(code) or STORE_WRITE_FAILED
