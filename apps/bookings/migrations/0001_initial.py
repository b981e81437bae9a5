import uuid
from decimal import Decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("rooms", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Booking",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("date", models.DateField()),
                ("start_time", models.DateTimeField()),
                ("end_time", models.DateTimeField()),
                (
                    "booking_type",
                    models.CharField(
                        choices=[("booking", "Booking"), ("buffer", "Buffer")],
                        default="booking",
                        max_length=10,
                    ),
                ),
                ("number_of_people", models.PositiveIntegerField(default=1)),
                ("total_price", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10)),
                (
                    "discount",
                    models.DecimalField(
                        blank=True,
                        decimal_places=2,
                        help_text="Subscription discount rate applied, in percent.",
                        max_digits=5,
                        null=True,
                    ),
                ),
                (
                    "payment_status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("confirmed", "Confirmed"),
                            ("paid", "Paid"),
                            ("cancelled", "Cancelled"),
                        ],
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("transaction_id", models.CharField(blank=True, max_length=255, null=True)),
                ("receipt_url", models.URLField(blank=True, max_length=500, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "room",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="bookings",
                        to="rooms.room",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="bookings",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "bookings",
                "ordering": ["start_time"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("end_time__gt", models.F("start_time"))),
                        name="booking_valid_times",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("total_price__gte", 0)),
                        name="booking_price_not_negative",
                    ),
                ],
                "indexes": [
                    models.Index(fields=["room", "start_time", "end_time"], name="bookings_room_id_8a2d41_idx"),
                    models.Index(fields=["user", "payment_status"], name="bookings_user_id_5e7c90_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="BookingAmenity",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "amenity",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="booking_links",
                        to="rooms.amenity",
                    ),
                ),
                (
                    "booking",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="selected_amenities",
                        to="bookings.booking",
                    ),
                ),
            ],
            options={
                "db_table": "booking_amenities",
                "constraints": [
                    models.UniqueConstraint(fields=("booking", "amenity"), name="booking_amenity_unique"),
                ],
            },
        ),
        migrations.AddField(
            model_name="booking",
            name="amenities",
            field=models.ManyToManyField(
                blank=True,
                related_name="bookings",
                through="bookings.BookingAmenity",
                to="rooms.amenity",
            ),
        ),
    ]
