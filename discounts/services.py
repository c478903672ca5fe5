"""Discount engine.

Each applied coupon is computed independently against the pre-discount
subtotal; the cart discount is the sum, clamped so it never exceeds the
subtotal. Discounts never compound with one another.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from common.exceptions import BelowMinimum, CouponNotEligible, InvalidCoupon
from common.money import Money, sum_money
from common.predicates import evaluate_conditions
from django.db import transaction
from django.db.models import F, Q
from django.utils import timezone

from .models import Coupon, normalize_code

logger = logging.getLogger("shopcore.discounts")


@dataclass(frozen=True)
class CouponLine:
    """One coupon's contribution to a cart discount."""

    coupon: Coupon
    amount: Money
    eligible: bool


def get_valid_coupon(code: str, at=None) -> Coupon:
    """Return the redeemable coupon for `code` or raise InvalidCoupon."""

    try:
        coupon = Coupon.objects.get(code=normalize_code(code))
    except Coupon.DoesNotExist:
        raise InvalidCoupon(code=code)
    if not coupon.is_redeemable(at):
        raise InvalidCoupon(code=coupon.code)
    return coupon


def compute_discount(coupon: Coupon, subtotal: Money) -> Money:
    """Discount from one coupon on `subtotal`, unrounded.

    Percentage coupons are capped by `maximum_discount`; every coupon is
    clamped to the subtotal.
    """

    if coupon.discount_type == Coupon.TYPE_PERCENTAGE:
        amount = subtotal.percentage_of(coupon.value)
        if coupon.maximum_discount is not None:
            amount = amount.min(Money.of(coupon.maximum_discount, subtotal.currency))
    else:
        amount = Money.of(coupon.value, subtotal.currency)
    return amount.min(subtotal).max(Money.zero(subtotal.currency))


def check_eligibility(coupon: Coupon, subtotal: Money, facts: Optional[dict] = None) -> None:
    """Raise BelowMinimum or CouponNotEligible when the cart does not qualify."""

    if coupon.minimum_amount is not None and subtotal < Money.of(coupon.minimum_amount, subtotal.currency):
        raise BelowMinimum(code=coupon.code, minimum=str(coupon.minimum_amount))
    if coupon.conditions and not evaluate_conditions(coupon.conditions, facts or {}):
        raise CouponNotEligible(code=coupon.code)


def is_eligible(coupon: Coupon, subtotal: Money, facts: Optional[dict] = None) -> bool:
    try:
        check_eligibility(coupon, subtotal, facts)
    except (BelowMinimum, CouponNotEligible):
        return False
    return True


def total_discount(coupons, subtotal: Money, facts: Optional[dict] = None) -> tuple[Money, list[CouponLine]]:
    """Sum of each coupon's discount on `subtotal`, clamped to `subtotal`.

    A coupon the cart no longer qualifies for contributes zero but stays in
    the returned lines.
    """

    lines = []
    for coupon in coupons:
        eligible = is_eligible(coupon, subtotal, facts)
        amount = compute_discount(coupon, subtotal) if eligible else Money.zero(subtotal.currency)
        lines.append(CouponLine(coupon=coupon, amount=amount, eligible=eligible))
    total = sum_money((line.amount for line in lines), subtotal.currency)
    return total.min(subtotal), lines


@transaction.atomic
def redeem_coupons(coupon_ids) -> None:
    """Count one use of each coupon, refusing to pass its usage limit."""

    now = timezone.now()
    for coupon_id in coupon_ids:
        updated = (
            Coupon.objects.filter(id=coupon_id)
            .filter(Q(usage_limit__isnull=True) | Q(used_count__lt=F("usage_limit")))
            .update(used_count=F("used_count") + 1, updated_at=now)
        )
        if not updated:
            raise InvalidCoupon("Coupon usage limit reached.", coupon_id=coupon_id)
        logger.info("coupon_redeemed", extra={"event": "coupon_redeemed", "coupon_id": coupon_id})
