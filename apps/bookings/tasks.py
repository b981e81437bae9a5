"""Celery tasks for the booking domain."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from celery import shared_task  # type: ignore
from django.utils import timezone  # type: ignore

from apps.bookings.application.rollback import rollback_booking
from apps.bookings.application.saga import PaymentSagaCoordinator
from apps.bookings.conf import get_pending_timeout
from apps.bookings.domain.entities import BookingType, PaymentStatus
from apps.payments.processor import SUCCEEDED, AbstractPaymentProcessor, PaymentProcessorError
from shared.application.store import AbstractStore, Entities, StoreError

logger = logging.getLogger(__name__)


def sweep_abandoned_bookings(
    store: AbstractStore,
    processor: AbstractPaymentProcessor,
    now: datetime,
    timeout: timedelta,
    bus=None,
) -> dict[str, int]:
    """
    Compensate pending bookings whose checkout was started before ``now - timeout``.

    The processor is asked first: a booking whose payment went through is
    confirmed instead of deleted, and one whose payment cannot be looked up
    is left for the next run.
    """
    cutoff = now - timeout
    summary = {"rolled_back": 0, "confirmed": 0, "skipped": 0, "failed": 0}
    try:
        stale = store.find(Entities.BOOKINGS, {
            "payment_status": PaymentStatus.PENDING.value,
            "booking_type": BookingType.BOOKING.value,
            "created_at__lt": cutoff,
        })
    except StoreError as e:
        logger.error("Could not list abandoned bookings: %s", e.message)
        return summary

    saga = PaymentSagaCoordinator(store, processor, bus)
    for row in stale:
        try:
            intents = processor.find_payment_intents({"booking_id": str(row["id"])})
        except PaymentProcessorError as e:
            logger.warning("Payment lookup for booking %s failed, kept for the next sweep: %s", row["id"], e.message)
            summary["skipped"] += 1
            continue

        paid = next((intent for intent in intents if intent.get("status") == SUCCEEDED), None)
        if paid is not None:
            result = saga.on_payment_succeeded(row["id"], paid["id"])
            outcome = "confirmed" if result.ok else "failed"
            if not result.ok:
                logger.error("Paid booking %s could not be confirmed: %s", row["id"], result.error)
        else:
            result = rollback_booking(store, row["id"], row["user_id"], bus)
            outcome = "rolled_back" if result.ok else "failed"
            if not result.ok:
                logger.error("Abandoned booking %s could not be rolled back: %s", row["id"], result.error)
        summary[outcome] += 1

    if stale:
        logger.info(
            "Abandoned checkout sweep: %(rolled_back)d rolled back, %(confirmed)d confirmed, "
            "%(skipped)d skipped, %(failed)d failed", summary,
        )
    return summary


# ============================================================================
# PERIODIC TASKS (run by Celery Beat)
# ============================================================================

@shared_task(name="bookings.rollback_abandoned_bookings")
def rollback_abandoned_bookings() -> dict[str, int]:
    """
    Compensate bookings whose payment never arrived.

    Runs every 5 minutes through Celery Beat; the cutoff is
    BOOKING_PENDING_TIMEOUT_MINUTES after the booking was created.
    """
    from apps.payments.stripe_service import StripePaymentProcessor
    from shared.infrastructure.django_store import DjangoStore

    return sweep_abandoned_bookings(
        DjangoStore(), StripePaymentProcessor(), timezone.now(), get_pending_timeout(),
    )


@shared_task(name="bookings.reset_monthly_booking_counters")
def reset_monthly_booking_counters() -> int:
    """Start a new quota month: every member's counter back to zero."""
    from django.contrib.auth import get_user_model

    updated = get_user_model().objects.filter(current_monthly_bookings__gt=0).update(current_monthly_bookings=0)
    logger.info("Reset monthly booking counters for %d users", updated)
    return updated
