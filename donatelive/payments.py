from abc import ABC, abstractmethod
from typing import Any, Optional
import json

from .errors import ValidationError
from .signature import verify_signature


# ----------------------------
# Payment Adapter Interface
# ----------------------------
class PaymentAdapter(ABC):
    # request header carrying the provider's signature
    signature_header: str

    @abstractmethod
    def verify_webhook(self, payload: bytes, signature: Optional[str]) -> bool:
        ...

    @abstractmethod
    def parse_event(self, payload: bytes) -> dict:
        ...

    @abstractmethod
    def is_successful_charge(self, event: dict) -> bool:
        ...

    @abstractmethod
    def event_reference(self, event: dict) -> Optional[str]:
        ...

    # amount in minor units as reported by the provider, if any
    @abstractmethod
    def event_amount(self, event: dict) -> Optional[int]:
        ...


# ----------------------------
# Paystack implementation
# ----------------------------
class Paystack(PaymentAdapter):
    signature_header = "x-paystack-signature"
    success_event = "charge.success"

    def __init__(self, secret_key: str) -> None:
        self.secret_key = secret_key

    def verify_webhook(self, payload: bytes, signature: Optional[str]) -> bool:
        return verify_signature(self.secret_key, payload, signature)

    def parse_event(self, payload: bytes) -> dict:
        try:
            event = json.loads(payload.decode())
        except (UnicodeDecodeError, json.JSONDecodeError):
            raise ValidationError("notification body is not valid JSON")
        if not isinstance(event, dict):
            raise ValidationError("notification body must be a JSON object")
        return event

    def _data(self, event: dict) -> dict:
        data = event.get("data")
        return data if isinstance(data, dict) else {}

    def is_successful_charge(self, event: dict) -> bool:
        return event.get("event") == self.success_event

    def event_reference(self, event: dict) -> Optional[str]:
        ref = self._data(event).get("reference")
        return str(ref) if ref else None

    def event_amount(self, event: dict) -> Optional[int]:
        amount: Any = self._data(event).get("amount")
        if isinstance(amount, bool) or not isinstance(amount, (int, str)):
            return None
        try:
            return int(amount)
        except ValueError:
            return None
