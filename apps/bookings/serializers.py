"""Input shape validation for booking commands."""

from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers  # type: ignore

from apps.bookings.conf import get_max_total_price, get_time_policy
from apps.bookings.domain.entities import BookingType
from shared.domain.errors import ErrorCode


class CreateBookingSerializer(serializers.Serializer):
    """
    Validates a candidate booking before anything is read from the store.

    The submitted ``total_price`` is what the client saw; it is compared
    with the server price later and never stored as-is. ``discount`` is
    accepted for shape compatibility and ignored in favour of the
    subscription tier's rate.
    """

    user_id = serializers.UUIDField()
    room_id = serializers.UUIDField()
    date = serializers.DateField()
    start_time = serializers.DateTimeField()
    end_time = serializers.DateTimeField()
    booking_type = serializers.ChoiceField(
        choices=[t.value for t in BookingType],
        default=BookingType.BOOKING.value,
    )
    number_of_people = serializers.IntegerField(min_value=1)
    total_price = serializers.DecimalField(
        max_digits=None,
        decimal_places=None,
        min_value=Decimal("0"),
    )
    discount = serializers.DecimalField(
        max_digits=None,
        decimal_places=None,
        min_value=Decimal("0"),
        max_value=Decimal("100"),
        required=False,
        allow_null=True,
    )
    amenity_ids = serializers.ListField(
        child=serializers.UUIDField(),
        required=False,
        default=list,
    )

    def validate_total_price(self, value):
        if value > get_max_total_price():
            raise serializers.ValidationError(
                f"Total price cannot exceed {get_max_total_price()}."
            )
        return value

    def validate_booking_type(self, value):
        if value != BookingType.BOOKING.value:
            raise serializers.ValidationError("Buffer slots are created by the system only.")
        return value

    def validate_amenity_ids(self, value):
        if len(set(value)) != len(value):
            raise serializers.ValidationError("Amenities must not repeat.")
        return value

    def validate(self, attrs):  # type: ignore
        start = attrs["start_time"]
        end = attrs["end_time"]
        if end <= start:
            raise serializers.ValidationError(
                "End time must be after start time.",
                code=ErrorCode.INVALID_TIME_SLOT,
            )

        policy = get_time_policy()
        if policy.to_local(start).date() != attrs["date"] or policy.to_local(end).date() != attrs["date"]:
            raise serializers.ValidationError(
                "Start and end time must fall on the booking date.",
                code=ErrorCode.INVALID_TIME_SLOT,
            )
        return attrs


def error_code_for(errors) -> str:
    """Most specific error code found in ``serializer.errors``."""
    details = []
    for value in errors.values():
        details.extend(value if isinstance(value, list) else [value])
    if any(getattr(detail, "code", None) == ErrorCode.INVALID_TIME_SLOT for detail in details):
        return ErrorCode.INVALID_TIME_SLOT
    return ErrorCode.VALIDATION_ERROR


def flatten_errors(errors) -> str:
    parts = []
    for field_name, value in errors.items():
        messages = value if isinstance(value, list) else [value]
        parts.append(f"{field_name}: {' '.join(str(m) for m in messages)}")
    return "; ".join(parts)
