"""Shipping price strategies.

A method's strategy is one of a closed set of frozen variants sharing a
`calculate(context) -> Money` capability. `build_strategy` turns a stored
`ShippingMethod` into its variant and validates the tier table on the way:
tiered variants need tiers, every other variant must not have any.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Union

from common.address import Address
from common.exceptions import RateQuoteUnavailable, ValidationError
from common.money import Money
from django.conf import settings

from .providers import get_rate_quote_provider


@dataclass(frozen=True)
class OrderContext:
    """What is being shipped and where.

    `subtotal` is the post-discount merchandise value; `weight` is in kg.
    """

    subtotal: Money
    weight: Decimal = Decimal("0")
    quantity: int = 0
    address: Optional[Address] = None
    zone: Optional[object] = None

    @property
    def currency(self) -> str:
        return self.subtotal.currency


@dataclass(frozen=True)
class Tier:
    minimum: Decimal
    maximum: Optional[Decimal]
    rate: Decimal

    def contains(self, value: Decimal) -> bool:
        if value < self.minimum:
            return False
        return self.maximum is None or value < self.maximum


@dataclass(frozen=True)
class FlatRate:
    cost: Decimal

    def calculate(self, context: OrderContext) -> Money:
        return Money.of(self.cost, context.currency)


@dataclass(frozen=True)
class FreeShipping:
    def calculate(self, context: OrderContext) -> Money:
        return Money.zero(context.currency)


@dataclass(frozen=True)
class TieredRate:
    """Rate picked from `[minimum, maximum)` bands of one metric.

    A value past every band is charged the band with the highest minimum.
    """

    METRICS = ("weight", "subtotal", "quantity")

    metric: str
    tiers: tuple = field(default_factory=tuple)

    def __post_init__(self):
        if self.metric not in self.METRICS:
            raise ValidationError(f"Unknown tier metric: {self.metric}")
        if not self.tiers:
            raise ValidationError(f"A {self.metric}-tiered method needs at least one tier.")

    def measure(self, context: OrderContext) -> Decimal:
        if self.metric == "weight":
            return Decimal(context.weight or 0)
        if self.metric == "quantity":
            return Decimal(context.quantity or 0)
        return context.subtotal.amount

    def select(self, value: Decimal) -> Tier:
        ordered = sorted(self.tiers, key=lambda t: t.minimum)
        for tier in ordered:
            if tier.contains(value):
                return tier
        return ordered[-1]

    def calculate(self, context: OrderContext) -> Money:
        return Money.of(self.select(self.measure(context)).rate, context.currency)


@dataclass(frozen=True)
class CalculatedRate:
    """Price quoted live by the configured rate-quote provider."""

    provider: str
    service_code: str

    def calculate(self, context: OrderContext) -> Money:
        if context.address is None:
            raise ValidationError("A destination address is required for a calculated rate.")
        provider = get_rate_quote_provider()
        try:
            quote = provider.quote(
                origin=settings.SHIPPING_ORIGIN,
                destination=context.address,
                weight=Decimal(context.weight or 0),
                service_code=self.service_code,
                currency=context.currency,
                timeout=settings.RATE_QUOTE_TIMEOUT_SECONDS,
            )
        except RateQuoteUnavailable:
            raise
        except Exception as exc:  # provider transport errors and timeouts
            raise RateQuoteUnavailable(f"Rate quote failed: {exc}", provider=self.provider) from exc
        if not isinstance(quote, Money) or quote.currency != context.currency or quote.is_negative():
            raise RateQuoteUnavailable("Rate quote provider returned an unusable price.", provider=self.provider)
        return quote


Strategy = Union[FlatRate, TieredRate, FreeShipping, CalculatedRate]

TIER_METRICS = {
    "weight_based": "weight",
    "price_based": "subtotal",
    "quantity_based": "quantity",
}


def build_strategy(method) -> Strategy:
    tiers = tuple(Tier(minimum=t.minimum, maximum=t.maximum, rate=t.rate) for t in method.tiers.all())
    if method.strategy in TIER_METRICS:
        return TieredRate(metric=TIER_METRICS[method.strategy], tiers=tiers)
    if tiers:
        raise ValidationError(f"Rate tiers are not allowed on a {method.strategy} method.", method_id=method.id)
    if method.strategy == "flat_rate":
        return FlatRate(cost=method.cost)
    if method.strategy == "free":
        return FreeShipping()
    if method.strategy == "calculated":
        if not method.api_service_code:
            raise ValidationError("Calculated shipping requires a service code.", method_id=method.id)
        return CalculatedRate(provider=method.api_provider, service_code=method.api_service_code)
    raise ValidationError(f"Unknown shipping strategy: {method.strategy}", method_id=method.id)
