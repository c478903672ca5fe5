"""Cart totals as a function of lines, coupons, destination and shipping.

`compute_totals` always works top to bottom:

1. subtotal: sum of line totals
2. discount: applied coupons against the subtotal
3. tax: on `subtotal - discount`
4. shipping: on the post-discount subtotal, weight and quantity, plus
   shipping tax when the method is taxable
5. total: `subtotal + tax - discount + shipping`

Each component is rounded once, so the identity in step 5 holds exactly.
It never touches the cart row; identical inputs give identical totals.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from common.money import Money, sum_money
from discounts.services import total_discount
from shipping.services import calculate_rate, is_available_for, resolve_zone
from shipping.strategies import OrderContext
from tax.services import TaxOptions, calculate_tax


@dataclass(frozen=True)
class PricingLine:
    """A cart line reduced to what pricing needs."""

    unit_price: Money
    quantity: int
    weight: Decimal = Decimal("0")
    is_digital: bool = False
    tax_class: Optional[str] = None
    category_ids: tuple = ()

    @property
    def total(self) -> Money:
        return self.unit_price * self.quantity

    @property
    def tax_key(self) -> tuple:
        return (self.is_digital, self.tax_class, self.category_ids)


@dataclass(frozen=True)
class CartTotals:
    subtotal: Money
    discount: Money
    tax: Money
    shipping: Money
    total: Money
    item_count: int
    total_weight: Decimal
    tax_breakdown: list = field(default_factory=list)
    coupon_amounts: dict = field(default_factory=dict)
    requires_shipping: bool = False
    shipping_available: bool = True


def _merge_breakdown(rows_by_rate: dict, rows: list) -> None:
    for row in rows:
        merged = rows_by_rate.get(row["rate_id"])
        if merged is None:
            rows_by_rate[row["rate_id"]] = dict(row)
        else:
            merged["amount"] = str(Decimal(merged["amount"]) + Decimal(row["amount"]))


def _goods_tax(lines, subtotal: Money, discount: Money, address) -> tuple[Money, dict]:
    """Tax on the discounted goods, one resolution per kind of line.

    The discount is spread over the groups in proportion to their value.
    """

    currency = subtotal.currency
    exact = Money.zero(currency)
    rows_by_rate = {}
    if address is None or subtotal.is_zero():
        return exact, rows_by_rate

    groups = defaultdict(lambda: Money.zero(currency))
    for line in lines:
        groups[line.tax_key] = groups[line.tax_key] + line.total

    for (is_digital, tax_class, category_ids), group_total in groups.items():
        share = discount.multiply(group_total.minor / subtotal.minor)
        base = group_total - share
        if base.is_zero() or base.is_negative():
            continue
        options = TaxOptions(is_digital=is_digital, tax_class=tax_class, categories=category_ids)
        result = calculate_tax(base, address, options)
        exact = exact + result.exact
        _merge_breakdown(rows_by_rate, result.breakdown)
    return exact, rows_by_rate


def coupon_facts(lines, subtotal: Money, address, is_guest: bool) -> dict:
    """Variables coupon conditions are evaluated against."""

    return {
        "subtotal": subtotal.amount,
        "item_count": sum(int(line.quantity) for line in lines),
        "country": address.country if address else None,
        "state": address.state if address else None,
        "is_guest": is_guest,
        "category_ids": sorted({cid for line in lines for cid in line.category_ids}),
    }


def lines_subtotal(lines, currency: str) -> Money:
    return sum_money((line.total for line in lines), currency).rounded()


def compute_totals(
    lines,
    coupons,
    address,
    shipping_method,
    currency: str,
    *,
    is_guest: bool = False,
) -> CartTotals:
    lines = list(lines)
    zero = Money.zero(currency)

    # 1. subtotal
    subtotal = lines_subtotal(lines, currency)
    item_count = sum(int(line.quantity) for line in lines)
    shippable = [line for line in lines if not line.is_digital]
    weight = sum((line.weight * line.quantity for line in shippable), Decimal("0"))
    quantity = sum(int(line.quantity) for line in shippable)

    # 2. discount
    facts = coupon_facts(lines, subtotal, address, is_guest)
    discount_exact, coupon_lines = total_discount(coupons, subtotal, facts)
    discount = discount_exact.rounded()
    coupon_amounts = {line.coupon.id: line.amount.rounded() for line in coupon_lines}

    # 3. tax on the discounted goods
    tax_exact, rows_by_rate = _goods_tax(lines, subtotal, discount, address)

    # 4. shipping
    shipping = zero
    available = True
    requires_shipping = bool(shippable)
    if shipping_method is not None and requires_shipping and address is not None:
        context = OrderContext(
            subtotal=subtotal - discount,
            weight=weight,
            quantity=quantity,
            address=address,
            zone=resolve_zone(address),
        )
        available = is_available_for(shipping_method, context)
        if available:
            shipping = calculate_rate(shipping_method, context)
            if shipping_method.taxable and not shipping.is_zero():
                shipping_tax = calculate_tax(shipping, address, TaxOptions(is_shipping=True))
                tax_exact = tax_exact + shipping_tax.exact
                _merge_breakdown(rows_by_rate, shipping_tax.breakdown)
    elif shipping_method is not None and address is None:
        available = False

    tax = tax_exact.rounded()

    # 5. total
    total = subtotal + tax - discount + shipping
    return CartTotals(
        subtotal=subtotal,
        discount=discount,
        tax=tax,
        shipping=shipping,
        total=total,
        item_count=item_count,
        total_weight=weight,
        tax_breakdown=list(rows_by_rate.values()),
        coupon_amounts=coupon_amounts,
        requires_shipping=requires_shipping,
        shipping_available=available,
    )
