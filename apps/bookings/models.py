"""Booking models for the meeting-room booking platform."""

from __future__ import annotations

import uuid
from decimal import Decimal

from django.conf import settings  # type: ignore
from django.core.exceptions import ValidationError  # type: ignore
from django.db import models, transaction  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

OVERLAP_ERROR_CODE = "exclusion_violation"


class Booking(models.Model):
    """Paid or pending use of a room, or the buffer slot that follows one."""

    class BookingType(models.TextChoices):
        BOOKING = "booking", _("Booking")
        BUFFER = "buffer", _("Buffer")

    class PaymentStatus(models.TextChoices):
        PENDING = "pending", _("Pending")
        CONFIRMED = "confirmed", _("Confirmed")
        PAID = "paid", _("Paid")
        CANCELLED = "cancelled", _("Cancelled")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    room = models.ForeignKey(
        "rooms.Room",
        on_delete=models.CASCADE,
        related_name="bookings",
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="bookings",
    )
    date = models.DateField()
    start_time = models.DateTimeField()
    end_time = models.DateTimeField()
    booking_type = models.CharField(
        max_length=10,
        choices=BookingType.choices,
        default=BookingType.BOOKING,
    )
    number_of_people = models.PositiveIntegerField(default=1)
    total_price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    discount = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
        help_text=_("Subscription discount rate applied, in percent."),
    )
    payment_status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    transaction_id = models.CharField(max_length=255, null=True, blank=True)
    receipt_url = models.URLField(max_length=500, null=True, blank=True)
    amenities = models.ManyToManyField(
        "rooms.Amenity",
        through="BookingAmenity",
        related_name="bookings",
        blank=True,
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "bookings"
        ordering = ["start_time"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(end_time__gt=models.F("start_time")),
                name="booking_valid_times",
            ),
            models.CheckConstraint(
                condition=models.Q(total_price__gte=0),
                name="booking_price_not_negative",
            ),
        ]
        indexes = [
            models.Index(fields=["room", "start_time", "end_time"], name="bookings_room_id_8a2d41_idx"),
            models.Index(fields=["user", "payment_status"], name="bookings_user_id_5e7c90_idx"),
        ]

    def __str__(self) -> str:
        return f"Booking {self.id} ({self.booking_type}, {self.payment_status})"

    def clean(self) -> None:
        if self.start_time and self.end_time and self.end_time <= self.start_time:
            raise ValidationError(_("End time must be after start time."))

        if self.payment_status == self.PaymentStatus.CANCELLED:
            return

        clash = (
            Booking.objects.filter(
                room_id=self.room_id,
                start_time__lt=self.end_time,
                end_time__gt=self.start_time,
            )
            .exclude(payment_status=self.PaymentStatus.CANCELLED)
            .exclude(pk=self.pk)
        )
        if clash.exists():
            raise ValidationError(
                _("The room is already booked for this time."),
                code=OVERLAP_ERROR_CODE,
            )

    def save(self, *args, **kwargs):  # type: ignore
        with transaction.atomic():
            # serialize writers per room so the overlap check cannot race
            from apps.rooms.models import Room

            Room.objects.select_for_update().filter(pk=self.room_id).first()
            self.clean()
            super().save(*args, **kwargs)


class BookingAmenity(models.Model):
    """Amenity selected for a booking."""

    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name="selected_amenities")
    amenity = models.ForeignKey("rooms.Amenity", on_delete=models.PROTECT, related_name="booking_links")

    class Meta:
        db_table = "booking_amenities"
        constraints = [
            models.UniqueConstraint(fields=["booking", "amenity"], name="booking_amenity_unique"),
        ]
