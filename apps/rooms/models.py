"""Meeting rooms, amenities and unavailability periods."""

from __future__ import annotations

import uuid
from decimal import Decimal

from django.core.validators import MinValueValidator  # type: ignore
from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class Amenity(models.Model):
    """Bookable extra. An empty price means the amenity is free."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=100, unique=True)
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal("0"))],
    )

    class Meta:
        db_table = "amenities"
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name


class Room(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=150)
    capacity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    hourly_price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0"))],
    )
    amenities = models.ManyToManyField(
        Amenity,
        through="RoomAmenity",
        related_name="rooms",
        blank=True,
    )

    class Meta:
        db_table = "rooms"
        ordering = ["name"]
        constraints = [
            models.CheckConstraint(condition=models.Q(capacity__gte=1), name="room_capacity_positive"),
            models.CheckConstraint(condition=models.Q(hourly_price__gte=0), name="room_price_not_negative"),
        ]

    def __str__(self) -> str:
        return self.name


class RoomAmenity(models.Model):
    """Amenity offered by a room."""

    room = models.ForeignKey(Room, on_delete=models.CASCADE, related_name="offered_amenities")
    amenity = models.ForeignKey(Amenity, on_delete=models.CASCADE, related_name="room_links")

    class Meta:
        db_table = "room_amenities"
        constraints = [
            models.UniqueConstraint(fields=["room", "amenity"], name="room_amenity_unique"),
        ]


class RoomUnavailability(models.Model):
    """Closed, inclusive date range in which the room cannot be booked."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    room = models.ForeignKey(Room, on_delete=models.CASCADE, related_name="unavailabilities")
    start_date = models.DateField()
    end_date = models.DateField()
    reason = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "unavailabilities"
        ordering = ["start_date"]
        verbose_name_plural = _("room unavailabilities")
        constraints = [
            models.CheckConstraint(
                condition=models.Q(end_date__gte=models.F("start_date")),
                name="unavailability_valid_dates",
            ),
        ]
        indexes = [
            models.Index(fields=["room", "start_date", "end_date"], name="unavailabil_room_id_3c1f2a_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.room_id}: {self.start_date} - {self.end_date}"
