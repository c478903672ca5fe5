"""Shipping zone resolution, method availability and rate calculation."""

import datetime as dt
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from common.address import Address
from common.exceptions import RateQuoteUnavailable
from common.money import Money
from django.utils import timezone

from .models import ShippingMethod, ShippingZone
from .strategies import OrderContext, build_strategy

logger = logging.getLogger("shopcore.shipping")


@dataclass(frozen=True)
class DeliveryEstimate:
    earliest: dt.date
    latest: dt.date
    display: str


@dataclass(frozen=True)
class ShippingQuote:
    method: ShippingMethod
    price: Money
    estimate: DeliveryEstimate


def resolve_zone(address) -> Optional[ShippingZone]:
    """Highest-priority active zone covering `address`, else the default zone."""

    address = Address.from_mapping(address)
    zones = ShippingZone.objects.filter(status=ShippingZone.STATUS_ACTIVE).order_by("-priority", "name", "id")
    for zone in zones:
        if zone.covers(address):
            return zone
    return ShippingZone.objects.filter(status=ShippingZone.STATUS_ACTIVE, is_default=True).first()


def build_context(*, subtotal: Money, weight=Decimal("0"), quantity: int = 0, address=None) -> OrderContext:
    address = Address.from_mapping(address) if address else None
    zone = resolve_zone(address) if address else None
    return OrderContext(subtotal=subtotal, weight=Decimal(weight or 0), quantity=quantity, address=address, zone=zone)


def _within(value, lower, upper) -> bool:
    if lower is not None and value < lower:
        return False
    if upper is not None and value > upper:
        return False
    return True


def is_available_for(method: ShippingMethod, context: OrderContext) -> bool:
    """Whether `method` can ship this order.

    A NULL restriction is unconstrained; a zero restriction is a real bound.
    """

    if method.status != ShippingMethod.STATUS_ACTIVE:
        return False
    if context.zone is None or not method.zones.filter(pk=context.zone.pk).exists():
        return False
    if not _within(context.subtotal.amount, method.min_order_amount, method.max_order_amount):
        return False
    return _within(context.weight, method.min_weight, method.max_weight)


def calculate_rate(method: ShippingMethod, context: OrderContext) -> Money:
    """Price `method` for `context`, rounded to minor units.

    The free-shipping threshold is checked before the strategy runs.
    """

    threshold = method.free_shipping_threshold
    if threshold is not None and context.subtotal >= Money.of(threshold, context.currency):
        return Money.zero(context.currency)
    price = build_strategy(method).calculate(context).rounded()
    logger.debug(
        "shipping.rate_calculated",
        extra={"event": "shipping_rate", "method_id": method.id, "price": str(price.amount)},
    )
    return price


def _add_business_days(start: dt.date, days: int) -> dt.date:
    current = start
    while days > 0:
        current += dt.timedelta(days=1)
        if current.weekday() < 5:
            days -= 1
    return current


def estimated_delivery(method: ShippingMethod, now=None) -> DeliveryEstimate:
    today = timezone.localdate(now) if now is not None else timezone.localdate()
    lo, hi = method.estimated_days_min, method.estimated_days_max
    display = f"{lo} business days" if lo == hi else f"{lo}-{hi} business days"
    return DeliveryEstimate(
        earliest=_add_business_days(today, lo),
        latest=_add_business_days(today, hi),
        display=display,
    )


def available_methods(context: OrderContext, now=None) -> list[ShippingQuote]:
    """Methods that can ship `context`, each with its price and estimate.

    Calculated methods whose quote is unavailable are left out of the list.
    """

    if context.zone is None:
        return []
    quotes = []
    methods = (
        ShippingMethod.objects.filter(status=ShippingMethod.STATUS_ACTIVE, zones=context.zone)
        .prefetch_related("tiers")
        .order_by("sort_order", "name", "id")
        .distinct()
    )
    for method in methods:
        if not is_available_for(method, context):
            continue
        try:
            price = calculate_rate(method, context)
        except RateQuoteUnavailable as exc:
            logger.warning(
                "shipping.quote_unavailable",
                extra={"event": "rate_quote_unavailable", "method_id": method.id, "detail": exc.message},
            )
            continue
        quotes.append(ShippingQuote(method=method, price=price, estimate=estimated_delivery(method, now)))
    return quotes
