"""
Unit of Work Pattern

Wraps a store transaction and publishes the domain events collected
during it only after the transaction has committed.
"""

from abc import ABC, abstractmethod
from typing import List
import logging

from shared.application.store import AbstractStore
from shared.domain.base import DomainEvent

logger = logging.getLogger(__name__)


class AbstractUnitOfWork(ABC):
    """Abstract Unit of Work pattern"""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.commit()
        else:
            self.rollback()

    @abstractmethod
    def commit(self):
        pass

    @abstractmethod
    def rollback(self):
        pass

    @abstractmethod
    def collect_events(self, aggregate):
        pass


class StoreUnitOfWork(AbstractUnitOfWork):
    """
    Unit of Work over an ``AbstractStore`` transaction

    Usage:
        with StoreUnitOfWork(store) as uow:
            row = store.insert('bookings', booking.to_record())
            uow.collect_events(booking)
        # transaction committed, events published
    """

    def __init__(self, store: AbstractStore, bus=None):
        self.store = store
        self._bus = bus
        self._events: List[DomainEvent] = []
        self._transaction = None

    def __enter__(self):
        self._transaction = self.store.atomic()
        self._transaction.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        transaction = self._transaction
        self._transaction = None
        if exc_type is not None:
            self.rollback()
            transaction.__exit__(exc_type, exc_val, exc_tb)
            return False

        try:
            transaction.__exit__(None, None, None)
        except Exception:
            self.rollback()
            raise
        self.commit()
        return False

    def commit(self):
        """Publish collected events; the store transaction is already closed."""
        events = self._events.copy()
        self._events.clear()
        logger.debug("Committed unit of work with %d events", len(events))
        if events:
            self._publish_events(events)

    def rollback(self):
        if self._events:
            logger.warning("Rolling back unit of work, discarding %d events", len(self._events))
        self._events.clear()

    def collect_events(self, aggregate):
        """Drain events from an aggregate root into this unit of work."""
        new_events = getattr(aggregate, 'events', None)
        if new_events:
            self._events.extend(new_events)
            aggregate.clear_events()
            logger.debug(
                "Collected %d events from %s (ID: %s)",
                len(new_events), aggregate.__class__.__name__, aggregate.id,
            )

    def _publish_events(self, events: List[DomainEvent]):
        if self._bus is None:
            from shared.application.message_bus import message_bus
            bus = message_bus
        else:
            bus = self._bus

        try:
            bus.publish_events(events)
        except Exception as e:
            # The write is committed; a publishing failure must not undo it.
            logger.error("Error publishing events: %s", e, exc_info=True)
