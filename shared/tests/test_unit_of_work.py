from dataclasses import dataclass

import pytest

from shared.application.message_bus import MessageBus
from shared.application.store import Entities
from shared.application.uow import StoreUnitOfWork
from shared.domain.base import DomainEvent


@dataclass
class Pinged(DomainEvent):
    label: str = ""


class Aggregate:
    id = "agg-1"

    def __init__(self):
        self.events = [Pinged(label="one")]

    def clear_events(self):
        self.events = []


def test_events_published_after_commit(store):
    bus = MessageBus()
    seen = []
    bus.register_event_handler(Pinged, seen.append)

    with StoreUnitOfWork(store, bus) as uow:
        store.insert(Entities.ROOMS, {"name": "Fjord"})
        uow.collect_events(Aggregate())
        assert seen == []

    assert [e.label for e in seen] == ["one"]


def test_rollback_discards_writes_and_events(store):
    bus = MessageBus()
    seen = []
    bus.register_event_handler(Pinged, seen.append)

    with pytest.raises(RuntimeError):
        with StoreUnitOfWork(store, bus) as uow:
            store.insert(Entities.ROOMS, {"name": "Fjord"})
            uow.collect_events(Aggregate())
            raise RuntimeError("boom")

    assert seen == []
    assert store.find(Entities.ROOMS) == []


def test_failing_handler_does_not_stop_others(caplog):
    bus = MessageBus()
    seen = []

    def broken(event):
        raise RuntimeError("handler down")

    bus.register_event_handler(Pinged, broken)
    bus.register_event_handler(Pinged, seen.append)

    bus.publish_events([Pinged(label="two")])

    assert [e.label for e in seen] == ["two"]
    assert any(r.levelname == "ERROR" for r in caplog.records)
