"""
Store Port

The booking core talks to the relational store only through this
interface. Rows travel as plain dicts keyed by column name (foreign keys
as ``<name>_id``). Filters are Django-style keyword lookups:

    store.find('bookings', {'room_id': room_id, 'start_time__lt': end},
               exclude={'payment_status': 'cancelled'})

Supported lookups: exact (no suffix), ``__lt``, ``__lte``, ``__gt``,
``__gte`` and ``__in``.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Any, Mapping


class Entities:
    """Entity names understood by every store implementation."""
    ROOMS = 'rooms'
    UNAVAILABILITIES = 'unavailabilities'
    BOOKINGS = 'bookings'
    BOOKING_AMENITIES = 'booking_amenities'
    AMENITIES = 'amenities'
    ROOM_AMENITIES = 'room_amenities'
    USERS = 'users'
    SUBSCRIPTIONS = 'subscriptions'

    ALL = (
        ROOMS, UNAVAILABILITIES, BOOKINGS, BOOKING_AMENITIES,
        AMENITIES, ROOM_AMENITIES, USERS, SUBSCRIPTIONS,
    )


class StoreErrorCode:
    """Native codes preserved from the database (PostgreSQL SQLSTATE)."""
    UNIQUE_VIOLATION = '23505'
    FOREIGN_KEY_VIOLATION = '23503'
    NOT_NULL_VIOLATION = '23502'
    CHECK_VIOLATION = '23514'
    EXCLUSION_VIOLATION = '23P01'
    NOT_FOUND = 'PGRST116'
    UNKNOWN = 'DB_ERROR'


class StoreError(Exception):
    """Raised by store implementations for any failed read or write."""

    def __init__(self, code: str, message: str, details: str = ''):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details

    def __repr__(self):
        return f"StoreError(code={self.code!r}, message={self.message!r})"


Row = dict[str, Any]


class AbstractStore(ABC):
    """Generic query/insert/update/delete access to the relational store."""

    @abstractmethod
    def find(
        self,
        entity: str,
        filters: Mapping[str, Any] | None = None,
        *,
        exclude: Mapping[str, Any] | None = None,
    ) -> list[Row]:
        """Return all rows matching ``filters`` and not matching ``exclude``."""

    @abstractmethod
    def insert(self, entity: str, record: Mapping[str, Any]) -> Row:
        """Insert one row and return it as stored."""

    @abstractmethod
    def update(self, entity: str, filters: Mapping[str, Any], patch: Mapping[str, Any]) -> list[Row]:
        """Apply ``patch`` to matching rows and return the updated rows."""

    @abstractmethod
    def delete(self, entity: str, filters: Mapping[str, Any]) -> int:
        """Delete matching rows and return how many were removed."""

    @abstractmethod
    def adjust_counter(
        self,
        entity: str,
        filters: Mapping[str, Any],
        field: str,
        delta: int,
        *,
        upper_bound: int | None = None,
    ) -> int:
        """
        Atomically add ``delta`` to an integer column.

        Incrementing only touches rows where ``field < upper_bound`` (when an
        upper bound is given); decrementing only touches rows where
        ``field > 0``. Returns the number of rows changed, so a caller can
        tell a lost race from a success.
        """

    @abstractmethod
    def atomic(self) -> AbstractContextManager:
        """Transaction context. Nested use creates a savepoint."""

    def get(self, entity: str, filters: Mapping[str, Any]) -> Row:
        """Return exactly one row or raise ``StoreError`` with NOT_FOUND."""
        rows = self.find(entity, filters)
        if not rows:
            raise StoreError(
                StoreErrorCode.NOT_FOUND,
                f"No {entity} row matches {dict(filters)}",
            )
        return rows[0]
