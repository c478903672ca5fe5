"""Payment gateway integration.

The gateway class is named by the `PAYMENT_GATEWAY` setting. Every call
carries an idempotency key and an explicit timeout; a gateway signals any
failure by raising `PaymentFailed`.
"""

import hashlib
from decimal import Decimal
from typing import Protocol

from common.exceptions import PaymentFailed
from common.money import Money
from django.conf import settings
from django.utils.module_loading import import_string


class PaymentGateway(Protocol):
    def authorize(self, *, amount: Money, method: str, idempotency_key: str, timeout: float) -> str: ...

    def refund(self, *, transaction_ref: str, amount: Money, idempotency_key: str, timeout: float) -> str: ...


class ManualPaymentGateway:
    """Records payments taken outside the system (bank transfer, cash).

    References are derived from the idempotency key, so a retried call
    yields the same reference.
    """

    prefix = "manual"

    def _ref(self, kind: str, idempotency_key: str) -> str:
        digest = hashlib.sha256(f"{kind}:{idempotency_key}".encode("utf-8")).hexdigest()[:16]
        return f"{self.prefix}_{kind}_{digest}"

    def authorize(self, *, amount: Money, method: str, idempotency_key: str, timeout: float) -> str:
        if amount.is_negative():
            raise PaymentFailed("Cannot authorize a negative amount.")
        return self._ref("auth", idempotency_key)

    def refund(self, *, transaction_ref: str, amount: Money, idempotency_key: str, timeout: float) -> str:
        if amount.amount <= Decimal("0"):
            raise PaymentFailed("Refund amount must be positive.")
        return self._ref("refund", idempotency_key)


def get_payment_gateway() -> PaymentGateway:
    return import_string(settings.PAYMENT_GATEWAY)()
