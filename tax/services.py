"""Tax resolution and calculation.

`resolve_rates` finds the rates that apply to a destination; `calculate_tax`
prices an amount against them. Simple rates are summed on the base amount.
Compound rates then apply one after another in priority order, each on the
base plus all tax accumulated so far. The total is rounded once.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from common.address import Address
from common.money import Money
from django.db.models import Q
from django.utils import timezone

from .models import TaxRate

logger = logging.getLogger("shopcore.tax")

RATE_QUANTUM = Decimal("0.0001")


@dataclass(frozen=True)
class TaxOptions:
    """What is being taxed. Every option must be satisfied by a rate."""

    is_shipping: bool = False
    is_digital: bool = False
    categories: tuple = ()
    tax_class: Optional[str] = None


@dataclass(frozen=True)
class TaxResult:
    total: Money
    exact: Money
    breakdown: list = field(default_factory=list)
    effective_rate: Decimal = Decimal("0")


def _applies(rate: TaxRate, options: TaxOptions) -> bool:
    if options.is_shipping and not rate.apply_to_shipping:
        return False
    if options.is_digital and not rate.apply_to_digital:
        return False
    if options.tax_class and rate.tax_class != options.tax_class:
        return False
    if options.categories:
        wanted = set(options.categories)
        # Exclusion is checked first and always wins
        excluded = {c.id for c in rate.excluded_categories.all()}
        if excluded & wanted:
            return False
        applicable = {c.id for c in rate.applicable_categories.all()}
        if applicable and not applicable & wanted:
            return False
    return True


def resolve_rates(address, options: Optional[TaxOptions] = None, at=None) -> list[TaxRate]:
    """Rates applicable to `address`, most specific first.

    Ordering is city over state over country, then priority and rate, both
    descending.
    """

    address = Address.from_mapping(address)
    options = options or TaxOptions()
    at = at or timezone.now()
    qs = (
        TaxRate.objects.filter(status=TaxRate.STATUS_ACTIVE, country=address.country)
        .filter(Q(effective_from__isnull=True) | Q(effective_from__lte=at))
        .filter(Q(effective_to__isnull=True) | Q(effective_to__gte=at))
        .prefetch_related("applicable_categories", "excluded_categories")
    )
    rates = [r for r in qs if r.matches_location(address) and _applies(r, options)]
    rates.sort(key=lambda r: (-r.specificity, -r.priority, -r.rate, r.id))
    return rates


def price_rates(amount: Money, rates) -> TaxResult:
    """Apply `rates` to `amount`, simple rates first, then compound ones."""

    accumulated = Money.zero(amount.currency)
    breakdown = []
    simple = [r for r in rates if not r.compound]
    compound = sorted((r for r in rates if r.compound), key=lambda r: (-r.priority, -r.rate, r.id))

    for rate in simple:
        tax = amount.percentage_of(rate.rate)
        accumulated = accumulated + tax
        breakdown.append(_row(rate, tax))
    for rate in compound:
        tax = (amount + accumulated).percentage_of(rate.rate)
        accumulated = accumulated + tax
        breakdown.append(_row(rate, tax))

    if amount.is_zero():
        effective = Decimal("0")
    else:
        effective = (accumulated.minor / amount.minor * 100).quantize(RATE_QUANTUM)
    return TaxResult(total=accumulated.rounded(), exact=accumulated, breakdown=breakdown, effective_rate=effective)


def _row(rate: TaxRate, tax: Money) -> dict:
    return {
        "rate_id": rate.id,
        "name": rate.name,
        "rate": str(rate.rate),
        "amount": str(tax.exact_amount),
        "compound": rate.compound,
    }


def calculate_tax(amount: Money, address, options: Optional[TaxOptions] = None, at=None) -> TaxResult:
    """Tax owed on `amount` shipped to `address`.

    No matching rate is not an error: the result is zero tax with an empty
    breakdown.
    """

    rates = resolve_rates(address, options, at=at)
    result = price_rates(amount, rates)
    logger.debug(
        "tax.calculated",
        extra={
            "event": "tax_calculated",
            "rates": [r.id for r in rates],
            "amount": str(amount.amount),
            "tax": str(result.total.amount),
        },
    )
    return result
