"""
Payment setup services

- booking payment intent: one card payment for an admitted booking
- subscription checkout: customer -> subscription -> invoice -> payment
  intent; anything created at the processor for a failed attempt is torn
  down again before the error is returned
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional
from uuid import UUID

from django.conf import settings

from apps.payments.processor import AbstractPaymentProcessor, PaymentProcessorError
from shared.application.store import AbstractStore, Entities, StoreError, StoreErrorCode
from shared.domain.errors import ErrorCode, ServiceError, ServiceResult
from shared.domain.value_objects import Money

logger = logging.getLogger(__name__)

MINIMUM_CHARGE = 50  # øre


@dataclass(frozen=True)
class PaymentIntentHandle:
    client_secret: str
    payment_intent_id: str


@dataclass(frozen=True)
class SubscriptionCheckout:
    client_secret: str
    payment_intent_id: str
    customer_id: str
    subscription_id: str
    subscription_name: str
    invoice_amount: Decimal
    invoice_currency: str


def to_minor_units(amount, currency: str = "dkk") -> int:
    return Money(Decimal(str(amount)), currency.upper()).minor_units


def create_booking_payment_intent(
    processor: AbstractPaymentProcessor,
    *,
    amount,
    user_id: UUID,
    room_id: UUID,
    booking_date: date,
    booking_id: Optional[UUID] = None,
    currency: Optional[str] = None,
) -> ServiceResult[PaymentIntentHandle]:
    """Create a card payment intent for ``amount`` given in major units (STRIPE_CURRENCY by default)."""
    currency = currency or getattr(settings, "STRIPE_CURRENCY", "dkk")
    try:
        minor = to_minor_units(amount, currency)
    except (ValueError, InvalidOperation):
        minor = 0
    if minor < MINIMUM_CHARGE:
        return ServiceResult.failure(
            ErrorCode.INVALID_AMOUNT, "Payment amount must be at least 0.50 DKK",
        )

    metadata = {
        "user_id": str(user_id),
        "room_id": str(room_id),
        "booking_date": booking_date.isoformat(),
    }
    if booking_id is not None:
        metadata["booking_id"] = str(booking_id)

    try:
        intent = processor.create_payment_intent(minor, currency, metadata=metadata)
    except PaymentProcessorError as e:
        return ServiceResult.failure(ErrorCode.STRIPE_ERROR, e.message, details=e.details)

    if not intent.get("client_secret"):
        return ServiceResult.failure(
            ErrorCode.STRIPE_ERROR, "Payment intent created but no client secret returned",
        )

    logger.info("Payment intent %s created for booking %s", intent.get("id"), booking_id)
    return ServiceResult.success(PaymentIntentHandle(intent["client_secret"], intent["id"]))


class SubscriptionCheckoutService:
    """Sets up the processor side of a new member's subscription."""

    def __init__(self, store: AbstractStore, processor: AbstractPaymentProcessor):
        self.store = store
        self.processor = processor

    def start(
        self,
        *,
        user_id: UUID,
        subscription_id: UUID,
        email: str,
        company_name: str,
    ) -> ServiceResult[SubscriptionCheckout]:
        try:
            tier = self.store.get(Entities.SUBSCRIPTIONS, {"id": subscription_id})
        except StoreError as e:
            if e.code == StoreErrorCode.NOT_FOUND:
                return ServiceResult.failure(
                    ErrorCode.SUBSCRIPTION_NOT_FOUND,
                    "Subscription not found. Please contact support.",
                )
            return ServiceResult.failure(e.code, "Unable to load subscription.", details=e.message)

        price_id = tier.get("stripe_price_id")
        if not price_id:
            return ServiceResult.failure(
                ErrorCode.STRIPE_PRICE_MISSING,
                "Subscription is not configured for payments. Please contact support.",
            )

        try:
            customer = self.processor.create_customer(
                email, company_name, metadata={"user_id": str(user_id)}
            )
        except PaymentProcessorError as e:
            return ServiceResult.failure(
                ErrorCode.STRIPE_CUSTOMER_ERROR,
                "Failed to create payment account. Please try again.",
                details=e.message,
            )

        try:
            subscription = self.processor.create_subscription(customer["id"], price_id)
        except PaymentProcessorError as e:
            self._teardown(None, customer["id"])
            return ServiceResult.failure(
                ErrorCode.STRIPE_SUBSCRIPTION_ERROR,
                "Failed to create subscription. Please try again.",
                details=e.message,
            )

        try:
            invoice = self._invoice_of(subscription)
            intent = self._payment_intent_of(invoice, customer["id"], subscription["id"], user_id)
        except PaymentProcessorError as e:
            self._teardown(subscription["id"], customer["id"])
            return ServiceResult.from_error(ServiceError(
                ErrorCode.PAYMENT_INTENT_ERROR,
                "Failed to initialize payment. Please try again.",
                details=e.message,
            ))

        logger.info(
            "Subscription checkout started for user %s (customer %s, subscription %s)",
            user_id, customer["id"], subscription["id"],
        )
        return ServiceResult.success(SubscriptionCheckout(
            client_secret=intent["client_secret"],
            payment_intent_id=intent["id"],
            customer_id=customer["id"],
            subscription_id=subscription["id"],
            subscription_name=tier.get("name", ""),
            invoice_amount=Decimal(invoice.get("amount_due") or 0) / 100,
            invoice_currency=invoice.get("currency") or "dkk",
        ))

    def _invoice_of(self, subscription: dict) -> dict:
        latest = subscription.get("latest_invoice")
        if isinstance(latest, str):
            return self.processor.retrieve_invoice(latest)
        if isinstance(latest, dict):
            return latest
        raise PaymentProcessorError(f"Invalid invoice structure from Stripe: {type(latest).__name__}")

    def _payment_intent_of(self, invoice: dict, customer_id: str, subscription_id: str, user_id) -> dict:
        embedded = invoice.get("payment_intent")
        if embedded is None:
            intent = self.processor.create_payment_intent(
                invoice.get("amount_due") or 0,
                invoice.get("currency") or "dkk",
                metadata={
                    "invoice_id": invoice.get("id"),
                    "subscription_id": subscription_id,
                    "user_id": str(user_id),
                },
                customer_id=customer_id,
            )
        elif isinstance(embedded, str):
            intent = self.processor.retrieve_payment_intent(embedded)
        elif isinstance(embedded, dict) and embedded.get("client_secret"):
            intent = embedded
        elif isinstance(embedded, dict) and embedded.get("id"):
            intent = self.processor.retrieve_payment_intent(embedded["id"])
        else:
            raise PaymentProcessorError("Payment intent object missing id")

        if not intent.get("client_secret") or not intent.get("id"):
            raise PaymentProcessorError("Payment intent missing required fields")
        return intent

    def _teardown(self, subscription_id: Optional[str], customer_id: Optional[str]):
        if subscription_id:
            try:
                self.processor.cancel_subscription(subscription_id)
            except PaymentProcessorError as e:
                logger.error("Failed to cancel orphaned subscription %s: %s", subscription_id, e.message)
        if customer_id:
            try:
                self.processor.delete_customer(customer_id)
            except PaymentProcessorError as e:
                logger.error("Failed to delete orphaned customer %s: %s", customer_id, e.message)
