import uuid
from decimal import Decimal

import django.core.validators
import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Amenity",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=100, unique=True)),
                (
                    "price",
                    models.DecimalField(
                        blank=True,
                        decimal_places=2,
                        max_digits=10,
                        null=True,
                        validators=[django.core.validators.MinValueValidator(Decimal("0"))],
                    ),
                ),
            ],
            options={"db_table": "amenities", "ordering": ["name"]},
        ),
        migrations.CreateModel(
            name="Room",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=150)),
                ("capacity", models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)])),
                (
                    "hourly_price",
                    models.DecimalField(
                        decimal_places=2,
                        max_digits=10,
                        validators=[django.core.validators.MinValueValidator(Decimal("0"))],
                    ),
                ),
            ],
            options={
                "db_table": "rooms",
                "ordering": ["name"],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("capacity__gte", 1)), name="room_capacity_positive"),
                    models.CheckConstraint(condition=models.Q(("hourly_price__gte", 0)), name="room_price_not_negative"),
                ],
            },
        ),
        migrations.CreateModel(
            name="RoomAmenity",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "amenity",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="room_links",
                        to="rooms.amenity",
                    ),
                ),
                (
                    "room",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="offered_amenities",
                        to="rooms.room",
                    ),
                ),
            ],
            options={
                "db_table": "room_amenities",
                "constraints": [
                    models.UniqueConstraint(fields=("room", "amenity"), name="room_amenity_unique"),
                ],
            },
        ),
        migrations.AddField(
            model_name="room",
            name="amenities",
            field=models.ManyToManyField(
                blank=True,
                related_name="rooms",
                through="rooms.RoomAmenity",
                to="rooms.amenity",
            ),
        ),
        migrations.CreateModel(
            name="RoomUnavailability",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("start_date", models.DateField()),
                ("end_date", models.DateField()),
                ("reason", models.CharField(blank=True, max_length=255)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "room",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="unavailabilities",
                        to="rooms.room",
                    ),
                ),
            ],
            options={
                "db_table": "unavailabilities",
                "ordering": ["start_date"],
                "verbose_name_plural": "room unavailabilities",
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("end_date__gte", models.F("start_date"))),
                        name="unavailability_valid_dates",
                    ),
                ],
                "indexes": [
                    models.Index(fields=["room", "start_date", "end_date"], name="unavailabil_room_id_3c1f2a_idx"),
                ],
            },
        ),
    ]
