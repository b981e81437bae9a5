"""Shared fixtures: an in-memory store, a fake payment processor and seed data."""

import copy
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from uuid import UUID, uuid4
from zoneinfo import ZoneInfo

import pytest

from apps.payments.processor import AbstractPaymentProcessor, PaymentProcessorError
from shared.application.message_bus import MessageBus
from shared.application.store import AbstractStore, Entities, StoreError, StoreErrorCode

CPH = ZoneInfo("Europe/Copenhagen")


def _norm(value):
    return str(value) if isinstance(value, UUID) else value


def _lookup(actual, op, expected):
    actual = _norm(actual)
    if op == "in":
        return actual in {_norm(v) for v in expected}
    expected = _norm(expected)
    if op == "exact":
        return actual == expected
    if actual is None or expected is None:
        return False
    if op == "lt":
        return actual < expected
    if op == "lte":
        return actual <= expected
    if op == "gt":
        return actual > expected
    if op == "gte":
        return actual >= expected
    raise ValueError(f"Unsupported lookup {op}")


def _matches(row, filters):
    for key, expected in (filters or {}).items():
        field, _, op = key.partition("__")
        if not _lookup(row.get(field), op or "exact", expected):
            return False
    return True


class InMemoryStore(AbstractStore):
    """
    Dict-backed store with savepoint semantics and fault injection.

    ``fail_on('update', Entities.BOOKINGS)`` makes the next update of
    bookings raise a ``StoreError``. Booking inserts reject overlapping
    non-cancelled rows of the same room, like the database backstop.
    """

    def __init__(self):
        self.tables = {entity: [] for entity in Entities.ALL}
        self._faults = {}
        self.calls = []

    def fail_on(self, operation, entity, code=StoreErrorCode.UNKNOWN, times=1):
        self._faults[(operation, entity)] = [code, times]

    def _maybe_fail(self, operation, entity):
        self.calls.append((operation, entity))
        fault = self._faults.get((operation, entity))
        if fault and fault[1] > 0:
            fault[1] -= 1
            raise StoreError(fault[0], f"injected {operation} failure on {entity}")

    def add(self, entity, **row):
        row.setdefault("id", uuid4())
        self.tables[entity].append(row)
        return row

    def find(self, entity, filters=None, *, exclude=None):
        self._maybe_fail("find", entity)
        rows = [row for row in self.tables[entity] if _matches(row, filters)]
        for key, value in (exclude or {}).items():
            rows = [row for row in rows if not _matches(row, {key: value})]
        return [dict(row) for row in rows]

    def insert(self, entity, record):
        self._maybe_fail("insert", entity)
        row = dict(record)
        row.setdefault("id", uuid4())
        if entity == Entities.BOOKINGS and row.get("payment_status") != "cancelled":
            for other in self.tables[entity]:
                if (
                    _norm(other["room_id"]) == _norm(row["room_id"])
                    and other.get("payment_status") != "cancelled"
                    and other["start_time"] < row["end_time"]
                    and row["start_time"] < other["end_time"]
                ):
                    raise StoreError(StoreErrorCode.EXCLUSION_VIOLATION, "overlapping booking")
        self.tables[entity].append(row)
        return dict(row)

    def update(self, entity, filters, patch):
        self._maybe_fail("update", entity)
        updated = []
        for row in self.tables[entity]:
            if _matches(row, filters):
                row.update(patch)
                updated.append(dict(row))
        return updated

    def delete(self, entity, filters):
        self._maybe_fail("delete", entity)
        keep = [row for row in self.tables[entity] if not _matches(row, filters)]
        removed = len(self.tables[entity]) - len(keep)
        self.tables[entity] = keep
        return removed

    def adjust_counter(self, entity, filters, field, delta, *, upper_bound=None):
        self._maybe_fail("adjust_counter", entity)
        changed = 0
        for row in self.tables[entity]:
            if not _matches(row, filters):
                continue
            current = row.get(field) or 0
            if delta > 0 and upper_bound is not None and current + delta > upper_bound:
                continue
            if delta < 0 and current + delta < 0:
                continue
            row[field] = current + delta
            changed += 1
        return changed

    @contextmanager
    def atomic(self):
        snapshot = copy.deepcopy(self.tables)
        try:
            yield self
        except BaseException:
            self.tables = snapshot
            raise

    # convenience for assertions
    def one(self, entity, **filters):
        rows = [row for row in self.tables[entity] if _matches(row, filters)]
        assert len(rows) == 1, rows
        return rows[0]


class FakePaymentProcessor(AbstractPaymentProcessor):
    def __init__(self):
        self.intents = {}
        self.customers = {}
        self.subscriptions = {}
        self.invoices = {}
        self.calls = []
        self._faults = {}

    def fail_on(self, method, message="processor unavailable"):
        self._faults[method] = message

    def _record(self, method, *args):
        self.calls.append((method,) + args)
        if method in self._faults:
            raise PaymentProcessorError(self._faults[method])

    def add_intent(self, reference, status="succeeded", receipt_url="https://pay.example/receipt/1", metadata=None):
        self.intents[reference] = {
            "id": reference,
            "status": status,
            "client_secret": f"{reference}_secret",
            "latest_charge": {"receipt_url": receipt_url} if receipt_url else None,
            "metadata": dict(metadata or {}),
        }
        return self.intents[reference]

    def create_customer(self, email, name, metadata=None):
        self._record("create_customer", email)
        customer = {"id": f"cus_{len(self.customers) + 1}", "email": email, "name": name}
        self.customers[customer["id"]] = customer
        return customer

    def create_subscription(self, customer_id, price_id):
        self._record("create_subscription", customer_id, price_id)
        invoice = {"id": f"in_{len(self.invoices) + 1}", "amount_due": 49900, "currency": "dkk", "payment_intent": None}
        self.invoices[invoice["id"]] = invoice
        subscription = {"id": f"sub_{len(self.subscriptions) + 1}", "latest_invoice": invoice["id"]}
        self.subscriptions[subscription["id"]] = subscription
        return subscription

    def retrieve_invoice(self, invoice_id):
        self._record("retrieve_invoice", invoice_id)
        return self.invoices[invoice_id]

    def create_payment_intent(self, amount, currency, metadata=None, customer_id=None):
        self._record("create_payment_intent", amount, currency)
        reference = f"pi_{len(self.intents) + 1}"
        intent = self.add_intent(reference, status="requires_payment_method", receipt_url=None)
        intent.update(amount=amount, currency=currency, metadata=metadata or {}, customer=customer_id)
        return intent

    def retrieve_payment_intent(self, reference):
        self._record("retrieve_payment_intent", reference)
        if reference not in self.intents:
            raise PaymentProcessorError(f"No such payment_intent: {reference}")
        return self.intents[reference]

    def find_payment_intents(self, metadata):
        self._record("find_payment_intents", metadata)
        return [
            intent for intent in self.intents.values()
            if all(intent.get("metadata", {}).get(key) == value for key, value in metadata.items())
        ]

    def cancel_subscription(self, subscription_id):
        self._record("cancel_subscription", subscription_id)
        self.subscriptions.pop(subscription_id, None)

    def delete_customer(self, customer_id):
        self._record("delete_customer", customer_id)
        self.customers.pop(customer_id, None)


@dataclass
class Seed:
    room: dict
    user: dict
    subscription: dict
    projector: dict
    coffee: dict


def local(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=CPH)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def processor():
    return FakePaymentProcessor()


@pytest.fixture
def bus():
    return MessageBus()


@pytest.fixture
def now():
    return local(date(2026, 3, 2), 8, 0)


@pytest.fixture
def booking_day(now):
    return now.date() + timedelta(days=1)


@pytest.fixture
def seed(store):
    subscription = store.add(
        Entities.SUBSCRIPTIONS,
        name="Business",
        monthly_price=Decimal("499.00"),
        discount_rate=Decimal("10"),
        max_monthly_bookings=5,
        stripe_price_id="price_business",
    )
    user = store.add(
        Entities.USERS,
        email="member@example.com",
        subscription_id=subscription["id"],
        current_monthly_bookings=0,
    )
    room = store.add(Entities.ROOMS, name="Fjord", capacity=8, hourly_price=Decimal("100.00"))
    projector = store.add(Entities.AMENITIES, name="Projector", price=Decimal("50.00"))
    coffee = store.add(Entities.AMENITIES, name="Coffee", price=Decimal("25.00"))
    for amenity in (projector, coffee):
        store.add(Entities.ROOM_AMENITIES, room_id=room["id"], amenity_id=amenity["id"])
    return Seed(room=room, user=user, subscription=subscription, projector=projector, coffee=coffee)
