"""
Stripe Payment Gateway Integration

Thin client over the Stripe REST API. Requests are form-encoded with the
bracket notation Stripe expects (``metadata[booking_id]=...``) and
authenticated with the secret key.
"""

import logging
from typing import Any, Optional

import requests
from django.conf import settings

from apps.payments.processor import AbstractPaymentProcessor, PaymentProcessorError

logger = logging.getLogger(__name__)


def _flatten_params(params: dict, prefix: str = "") -> list[tuple[str, str]]:
    """Encode nested dicts and lists the way Stripe's form API reads them."""
    items = []
    for key, value in params.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, dict):
            items.extend(_flatten_params(value, name))
        elif isinstance(value, (list, tuple)):
            for index, element in enumerate(value):
                if isinstance(element, dict):
                    items.extend(_flatten_params(element, f"{name}[{index}]"))
                else:
                    items.append((f"{name}[{index}]", _encode(element)))
        else:
            items.append((name, _encode(value)))
    return items


def _encode(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class StripePaymentProcessor(AbstractPaymentProcessor):
    def __init__(
        self,
        secret_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.secret_key = secret_key if secret_key is not None else getattr(settings, "STRIPE_SECRET_KEY", "")
        self.base_url = (base_url or getattr(settings, "STRIPE_API_BASE_URL", "https://api.stripe.com/v1/")).rstrip("/") + "/"
        self.timeout = timeout or getattr(settings, "STRIPE_TIMEOUT", 30)
        self.session = session or requests.Session()

    # ----- customers -----

    def create_customer(self, email, name, metadata=None):
        logger.info("Creating Stripe customer for %s", email)
        return self._request("post", "customers", {"email": email, "name": name, "metadata": metadata or {}})

    def delete_customer(self, customer_id):
        logger.info("Deleting Stripe customer %s", customer_id)
        self._request("delete", f"customers/{customer_id}")

    # ----- subscriptions -----

    def create_subscription(self, customer_id, price_id):
        logger.info("Creating Stripe subscription for customer %s", customer_id)
        return self._request("post", "subscriptions", {
            "customer": customer_id,
            "items": [{"price": price_id}],
            "payment_behavior": "default_incomplete",
            "payment_settings": {"save_default_payment_method": "on_subscription"},
            "expand": ["latest_invoice.payment_intent"],
        })

    def cancel_subscription(self, subscription_id):
        logger.info("Cancelling Stripe subscription %s", subscription_id)
        self._request("delete", f"subscriptions/{subscription_id}")

    def retrieve_invoice(self, invoice_id):
        return self._request("get", f"invoices/{invoice_id}", {"expand": ["payment_intent"]})

    # ----- payment intents -----

    def create_payment_intent(self, amount, currency, metadata=None, customer_id=None):
        logger.info("Creating Stripe payment intent: %s %s", amount, currency)
        return self._request("post", "payment_intents", {
            "amount": amount,
            "currency": currency.lower(),
            "customer": customer_id,
            "metadata": metadata or {},
            "payment_method_types": ["card"],
            "capture_method": "automatic",
        })

    def retrieve_payment_intent(self, reference):
        return self._request("get", f"payment_intents/{reference}", {"expand": ["latest_charge"]})

    def find_payment_intents(self, metadata):
        query = " AND ".join(f"metadata['{key}']:'{value}'" for key, value in metadata.items())
        body = self._request("get", "payment_intents/search", {"query": query})
        return body.get("data", [])

    # ----- transport -----

    def _request(self, method: str, path: str, params: Optional[dict] = None) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        encoded = _flatten_params(params or {})
        kwargs = {"params": encoded} if method in ("get", "delete") else {"data": encoded}

        try:
            response = self.session.request(
                method,
                url,
                auth=(self.secret_key, ""),
                timeout=self.timeout,
                **kwargs,
            )
        except requests.exceptions.RequestException as e:
            logger.error("Network error calling Stripe %s %s: %s", method.upper(), path, e)
            raise PaymentProcessorError(f"Connection to Stripe failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code >= 400:
            error = body.get("error") or {}
            message = error.get("message") or f"Stripe returned HTTP {response.status_code}"
            logger.error("Stripe %s %s failed: %s", method.upper(), path, message)
            raise PaymentProcessorError(
                message,
                code=error.get("code") or error.get("type") or "stripe_error",
                details=str(response.status_code),
            )
        return body
