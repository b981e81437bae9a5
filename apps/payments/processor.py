"""Payment processor port used by the booking core."""

from abc import ABC, abstractmethod
from typing import Any, Optional

SUCCEEDED = "succeeded"


class PaymentProcessorError(Exception):
    """Raised when the payment processor rejects a call or cannot be reached."""

    def __init__(self, message: str, code: str = "processor_error", details: str = ""):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details


class AbstractPaymentProcessor(ABC):
    """Opaque remote authority over payments; every method is one bounded call."""

    @abstractmethod
    def create_customer(self, email: str, name: str, metadata: Optional[dict] = None) -> dict[str, Any]:
        ...

    @abstractmethod
    def create_subscription(self, customer_id: str, price_id: str) -> dict[str, Any]:
        ...

    @abstractmethod
    def retrieve_invoice(self, invoice_id: str) -> dict[str, Any]:
        ...

    @abstractmethod
    def create_payment_intent(
        self,
        amount: int,
        currency: str,
        metadata: Optional[dict] = None,
        customer_id: Optional[str] = None,
    ) -> dict[str, Any]:
        """``amount`` is in the currency's minor unit (øre for DKK)."""

    @abstractmethod
    def retrieve_payment_intent(self, reference: str) -> dict[str, Any]:
        ...

    @abstractmethod
    def find_payment_intents(self, metadata: dict[str, str]) -> list[dict[str, Any]]:
        """Intents whose metadata carries every given key/value pair."""

    @abstractmethod
    def cancel_subscription(self, subscription_id: str) -> None:
        ...

    @abstractmethod
    def delete_customer(self, customer_id: str) -> None:
        ...

    def retrieve_payment_status(self, reference: str) -> str:
        return self.retrieve_payment_intent(reference).get("status", "")

    def retrieve_receipt(self, reference: str) -> Optional[str]:
        """Receipt URL of the intent's latest charge, None if there is none."""
        intent = self.retrieve_payment_intent(reference)
        charge = intent.get("latest_charge")
        if isinstance(charge, dict):
            return charge.get("receipt_url")
        return None
