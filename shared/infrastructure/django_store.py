"""
Django ORM implementation of the Store port.

Every operation runs in its own savepoint so a failed write leaves an
enclosing transaction usable. Database errors are re-raised as
``StoreError`` carrying the PostgreSQL SQLSTATE where the driver exposes
one; on SQLite the code is derived from the error text.
"""

from contextlib import contextmanager
from typing import Any, Mapping
import logging

from django.apps import apps
from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import F

from shared.application.store import (
    AbstractStore,
    Entities,
    Row,
    StoreError,
    StoreErrorCode,
)

logger = logging.getLogger(__name__)

ENTITY_MODELS = {
    Entities.ROOMS: 'rooms.Room',
    Entities.UNAVAILABILITIES: 'rooms.RoomUnavailability',
    Entities.BOOKINGS: 'bookings.Booking',
    Entities.BOOKING_AMENITIES: 'bookings.BookingAmenity',
    Entities.AMENITIES: 'rooms.Amenity',
    Entities.ROOM_AMENITIES: 'rooms.RoomAmenity',
    Entities.USERS: None,  # AUTH_USER_MODEL
    Entities.SUBSCRIPTIONS: 'users.SubscriptionTier',
}

_SQLITE_MESSAGES = (
    ('UNIQUE constraint failed', StoreErrorCode.UNIQUE_VIOLATION),
    ('FOREIGN KEY constraint failed', StoreErrorCode.FOREIGN_KEY_VIOLATION),
    ('NOT NULL constraint failed', StoreErrorCode.NOT_NULL_VIOLATION),
    ('CHECK constraint failed', StoreErrorCode.CHECK_VIOLATION),
)


def to_store_error(error: Exception) -> StoreError:
    """Translate an ORM exception into a ``StoreError``."""
    if isinstance(error, ValidationError):
        from apps.bookings.models import OVERLAP_ERROR_CODE

        codes = {getattr(e, 'code', None) for e in error.error_list} if hasattr(error, 'error_list') else set()
        code = StoreErrorCode.EXCLUSION_VIOLATION if OVERLAP_ERROR_CODE in codes else StoreErrorCode.CHECK_VIOLATION
        return StoreError(code, '; '.join(error.messages))

    cause = error.__cause__
    native = getattr(cause, 'sqlstate', None) or getattr(cause, 'pgcode', None)
    if native:
        return StoreError(native, str(error))

    if isinstance(error, IntegrityError):
        text = str(error)
        for marker, code in _SQLITE_MESSAGES:
            if marker in text:
                return StoreError(code, text)
    return StoreError(StoreErrorCode.UNKNOWN, str(error))


class DjangoStore(AbstractStore):
    def __init__(self, using: str = 'default'):
        self.using = using

    def model_for(self, entity: str):
        if entity not in ENTITY_MODELS:
            raise StoreError(StoreErrorCode.UNKNOWN, f"Unknown entity {entity!r}")
        label = ENTITY_MODELS[entity] or settings.AUTH_USER_MODEL
        return apps.get_model(label)

    def _queryset(self, entity: str, filters: Mapping[str, Any] | None, exclude: Mapping[str, Any] | None = None):
        model = self.model_for(entity)
        queryset = model._default_manager.using(self.using).filter(**dict(filters or {}))
        for lookup, value in (exclude or {}).items():
            queryset = queryset.exclude(**{lookup: value})
        return queryset

    def find(self, entity, filters=None, *, exclude=None) -> list[Row]:
        try:
            return list(self._queryset(entity, filters, exclude).values())
        except DatabaseError as e:
            logger.error("Store read on %s failed: %s", entity, e)
            raise to_store_error(e) from e

    def insert(self, entity, record) -> Row:
        model = self.model_for(entity)
        try:
            with transaction.atomic(using=self.using):
                instance = model(**dict(record))
                instance.save(using=self.using)
                return model._default_manager.using(self.using).filter(pk=instance.pk).values().get()
        except (DatabaseError, ValidationError) as e:
            logger.error("Store insert into %s failed: %s", entity, e)
            raise to_store_error(e) from e

    def update(self, entity, filters, patch) -> list[Row]:
        model = self.model_for(entity)
        try:
            with transaction.atomic(using=self.using):
                pks = list(
                    self._queryset(entity, filters).select_for_update().values_list('pk', flat=True)
                )
                if not pks:
                    return []
                manager = model._default_manager.using(self.using)
                manager.filter(pk__in=pks).update(**dict(patch))
                return list(manager.filter(pk__in=pks).values())
        except DatabaseError as e:
            logger.error("Store update on %s failed: %s", entity, e)
            raise to_store_error(e) from e

    def delete(self, entity, filters) -> int:
        model = self.model_for(entity)
        try:
            with transaction.atomic(using=self.using):
                _, per_model = self._queryset(entity, filters).delete()
        except DatabaseError as e:
            logger.error("Store delete on %s failed: %s", entity, e)
            raise to_store_error(e) from e
        return per_model.get(model._meta.label, 0)

    def adjust_counter(self, entity, filters, field, delta, *, upper_bound=None) -> int:
        queryset = self._queryset(entity, filters)
        if delta > 0 and upper_bound is not None:
            queryset = queryset.filter(**{f'{field}__lte': upper_bound - delta})
        elif delta < 0:
            queryset = queryset.filter(**{f'{field}__gte': -delta})
        try:
            with transaction.atomic(using=self.using):
                return queryset.update(**{field: F(field) + delta})
        except DatabaseError as e:
            logger.error("Counter %s.%s update failed: %s", entity, field, e)
            raise to_store_error(e) from e

    @contextmanager
    def atomic(self):
        try:
            with transaction.atomic(using=self.using):
                yield self
        except DatabaseError as e:
            raise to_store_error(e) from e
