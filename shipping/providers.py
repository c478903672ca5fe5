"""Rate-quote providers for calculated shipping.

The active provider is named by the `SHIPPING_RATE_PROVIDER` setting as a
dotted path to a class. A provider's `quote()` returns a `Money` or raises;
callers always pass an explicit timeout.
"""

from decimal import Decimal
from typing import Protocol

from common.exceptions import RateQuoteUnavailable
from common.money import Money
from django.conf import settings
from django.utils.module_loading import import_string


class RateQuoteProvider(Protocol):
    def quote(
        self,
        *,
        origin: dict,
        destination,
        weight: Decimal,
        service_code: str,
        currency: str,
        timeout: float,
    ) -> Money: ...


class NullRateQuoteProvider:
    """Used when no carrier integration is configured."""

    def quote(self, **kwargs) -> Money:
        raise RateQuoteUnavailable("No rate-quote provider is configured.")


def get_rate_quote_provider() -> RateQuoteProvider:
    return import_string(settings.SHIPPING_RATE_PROVIDER)()
