"""Cart services: mutations that keep cached totals in step with the cart.

Every mutation runs in one transaction, holds a row lock on the cart for
its whole read-modify-recompute-write cycle, and recomputes totals before
commit. Any failure, including an unavailable shipping quote, rolls the
cart back to its previous state.
"""

import functools
import logging
from decimal import Decimal

from catalog.selectors import current_unit_price, get_purchasable, unit_weight
from common.address import Address
from common.exceptions import (
    CartExpired,
    DuplicateCoupon,
    EmptyCart,
    InsufficientStock,
    NotFoundError,
    PolicyError,
    ValidationError,
)
from common.money import Money
from discounts.models import normalize_code
from discounts.services import check_eligibility, get_valid_coupon, redeem_coupons
from django.db import transaction
from django.utils import timezone
from inventory.selectors import available_quantity
from shipping.models import ShippingMethod

from .models import AppliedCoupon, Cart, CartItem
from .pricing import CartTotals, PricingLine, compute_totals, coupon_facts, lines_subtotal
from .selectors import find_active_cart_for_session, get_active_cart_for_user

logger = logging.getLogger("shopcore.cart")

TOTAL_FIELDS = [
    "subtotal",
    "discount_amount",
    "tax_amount",
    "shipping_amount",
    "total",
    "item_count",
    "total_weight",
    "tax_breakdown",
    "shipping_method",
    "version",
    "last_activity_at",
    "updated_at",
]


def _require_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("Quantity must be an integer.")
    return quantity


def _validate_extras(customizations, gift_wrap) -> None:
    for custom in customizations or []:
        if not isinstance(custom, dict) or not custom.get("name"):
            raise ValidationError("Each customization needs a name.")
        if Decimal(str(custom.get("price") or 0)) < 0:
            raise ValidationError("Customization price cannot be negative.")
    if gift_wrap is not None:
        if not isinstance(gift_wrap, dict):
            raise ValidationError("Gift wrap must be an object.")
        if Decimal(str(gift_wrap.get("price") or 0)) < 0:
            raise ValidationError("Gift wrap price cannot be negative.")


def _lock_cart(cart_id: int) -> Cart:
    try:
        cart = Cart.objects.select_for_update().select_related("shipping_method").get(id=cart_id)
    except Cart.DoesNotExist:
        raise NotFoundError("Cart not found.", cart_id=cart_id)
    if cart.status == Cart.STATUS_EXPIRED:
        raise CartExpired(cart_id=cart_id)
    if cart.status == Cart.STATUS_ACTIVE and cart.expires_at and cart.expires_at <= timezone.now():
        raise CartExpired(cart_id=cart_id)
    if cart.status != Cart.STATUS_ACTIVE:
        raise PolicyError("Cart is no longer active.", cart_id=cart_id)
    return cart


def _mark_expired(cart_id) -> None:
    now = timezone.now()
    Cart.objects.filter(id=cart_id, status=Cart.STATUS_ACTIVE, expires_at__lte=now).update(
        status=Cart.STATUS_EXPIRED, updated_at=now
    )


def cart_mutation(func):
    """Run `func` atomically; a stale guest cart is flipped to `expired`.

    The status change is written after the rollback so it survives the
    `CartExpired` raised to the caller.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            with transaction.atomic():
                return func(*args, **kwargs)
        except CartExpired as exc:
            _mark_expired(exc.context.get("cart_id"))
            raise

    return wrapper


def _check_stock(*, product_id: int, variant_id, quantity: int) -> None:
    available = available_quantity(product_id=product_id, variant_id=variant_id)
    if available is not None and quantity > available:
        raise InsufficientStock(product_id=product_id, variant_id=variant_id, available=available)


def _pricing_lines(cart: Cart) -> list[PricingLine]:
    """Build pricing lines, re-snapshotting unit prices from the catalog."""

    items = list(
        cart.items.select_related("product", "variant").prefetch_related("product__categories").order_by("id")
    )
    stale = []
    lines = []
    for item in items:
        price = current_unit_price(item.product, item.variant)
        if item.unit_price != price:
            item.unit_price = price
            stale.append(item)
        lines.append(
            PricingLine(
                unit_price=Money.of(item.effective_unit_price, cart.currency),
                quantity=int(item.quantity),
                weight=unit_weight(item.product, item.variant),
                is_digital=item.product.is_digital,
                tax_class=item.product.tax_class,
                category_ids=tuple(sorted(c.id for c in item.product.categories.all())),
            )
        )
    if stale:
        CartItem.objects.bulk_update(stale, ["unit_price"])
    return lines


def _recompute(cart: Cart) -> CartTotals:
    lines = _pricing_lines(cart)
    applied = list(cart.applied_coupons.select_related("coupon"))
    totals = compute_totals(
        lines,
        [a.coupon for a in applied],
        cart.address,
        cart.shipping_method,
        cart.currency,
        is_guest=cart.is_guest,
    )
    if cart.shipping_method_id and not totals.shipping_available:
        logger.warning(
            "cart.shipping_method_cleared",
            extra={
                "event": "cart.shipping_method_cleared",
                "cart_id": cart.id,
                "shipping_method_id": cart.shipping_method_id,
            },
        )
        cart.shipping_method = None

    for a in applied:
        amount = totals.coupon_amounts.get(a.coupon_id, Money.zero(cart.currency)).amount
        if a.discount_amount != amount:
            a.discount_amount = amount
            a.save(update_fields=["discount_amount", "updated_at"])

    cart.subtotal = totals.subtotal.amount
    cart.discount_amount = totals.discount.amount
    cart.tax_amount = totals.tax.amount
    cart.shipping_amount = totals.shipping.amount
    cart.total = totals.total.amount
    cart.item_count = totals.item_count
    cart.total_weight = totals.total_weight
    cart.tax_breakdown = totals.tax_breakdown
    cart.version = int(cart.version) + 1
    cart.last_activity_at = timezone.now()
    cart.save(update_fields=TOTAL_FIELDS)
    return totals


@cart_mutation
def recompute_cart(cart_id: int) -> Cart:
    """Recompute and persist a cart's totals from its current inputs."""

    cart = _lock_cart(cart_id)
    _recompute(cart)
    return cart


@cart_mutation
def add_item(
    *,
    cart_id: int,
    product_id: int,
    variant_id: int | None = None,
    quantity: int = 1,
    customizations=None,
    gift_wrap=None,
) -> CartItem:
    """Add a product (or variant) to the cart.

    Adding a line that already exists increments its quantity.
    """

    if _require_quantity(quantity) <= 0:
        raise ValidationError("Quantity must be positive.")
    _validate_extras(customizations, gift_wrap)
    cart = _lock_cart(cart_id)
    product, variant = get_purchasable(product_id=product_id, variant_id=variant_id)

    item = CartItem.objects.filter(cart=cart, product=product, variant=variant).first()
    new_quantity = quantity + (int(item.quantity) if item else 0)
    _check_stock(product_id=product.id, variant_id=getattr(variant, "id", None), quantity=new_quantity)

    if item is not None:
        item.quantity = new_quantity
        update_fields = ["quantity", "updated_at"]
        if customizations is not None:
            item.customizations = customizations
            update_fields.append("customizations")
        if gift_wrap is not None:
            item.gift_wrap = gift_wrap
            update_fields.append("gift_wrap")
        item.save(update_fields=update_fields)
        event = "cart.item_updated"
    else:
        item = CartItem.objects.create(
            cart=cart,
            product=product,
            variant=variant,
            quantity=quantity,
            unit_price=current_unit_price(product, variant),
            customizations=customizations or [],
            gift_wrap=gift_wrap,
        )
        event = "cart.item_added"
    _recompute(cart)
    item.refresh_from_db()
    logger.info(
        event,
        extra={
            "event": event,
            "cart_id": cart.id,
            "user_id": cart.user_id,
            "product_id": product.id,
            "variant_id": getattr(variant, "id", None),
            "quantity": item.quantity,
            "guest": cart.is_guest,
        },
    )
    return item


@cart_mutation
def update_item_quantity(*, cart_id: int, item_id: int, quantity: int) -> CartItem | None:
    """Set a line's quantity. Zero or less removes the line and returns None."""

    _require_quantity(quantity)
    cart = _lock_cart(cart_id)
    try:
        item = CartItem.objects.get(id=item_id, cart=cart)
    except CartItem.DoesNotExist:
        raise NotFoundError("Cart item not found.", item_id=item_id)

    if quantity <= 0:
        item.delete()
        _recompute(cart)
        logger.info(
            "cart.item_removed",
            extra={"event": "cart.item_removed", "cart_id": cart.id, "item_id": item_id, "guest": cart.is_guest},
        )
        return None

    _check_stock(product_id=item.product_id, variant_id=item.variant_id, quantity=quantity)
    item.quantity = quantity
    item.save(update_fields=["quantity", "updated_at"])
    _recompute(cart)
    item.refresh_from_db()
    logger.info(
        "cart.item_updated",
        extra={
            "event": "cart.item_updated",
            "cart_id": cart.id,
            "item_id": item.id,
            "quantity": quantity,
            "guest": cart.is_guest,
        },
    )
    return item


@cart_mutation
def remove_item(*, cart_id: int, item_id: int) -> None:
    """Remove an item from the cart."""

    cart = _lock_cart(cart_id)
    deleted, _ = CartItem.objects.filter(id=item_id, cart=cart).delete()
    _recompute(cart)
    if deleted:
        logger.info(
            "cart.item_removed",
            extra={"event": "cart.item_removed", "cart_id": cart.id, "item_id": item_id, "guest": cart.is_guest},
        )


@cart_mutation
def clear_cart(*, cart_id: int) -> None:
    """Remove every line. Applied coupons stay attached."""

    cart = _lock_cart(cart_id)
    CartItem.objects.filter(cart=cart).delete()
    _recompute(cart)
    logger.info(
        "cart.cleared",
        extra={"event": "cart.cleared", "cart_id": cart.id, "user_id": cart.user_id, "guest": cart.is_guest},
    )


@cart_mutation
def set_shipping_address(*, cart_id: int, address, email: str | None = None) -> Cart:
    """Set the destination used for tax and shipping."""

    address = Address.from_mapping(address)
    cart = _lock_cart(cart_id)
    cart.shipping_country = address.country
    cart.shipping_state = address.state
    cart.shipping_city = address.city
    cart.shipping_postal_code = address.postal_code
    update_fields = ["shipping_country", "shipping_state", "shipping_city", "shipping_postal_code"]
    if email:
        cart.email = email
        update_fields.append("email")
    cart.save(update_fields=update_fields)
    _recompute(cart)
    return cart


@cart_mutation
def select_shipping_method(*, cart_id: int, method_id: int) -> Cart:
    try:
        method = ShippingMethod.objects.get(id=method_id, status=ShippingMethod.STATUS_ACTIVE)
    except ShippingMethod.DoesNotExist:
        raise NotFoundError("Shipping method not found.", method_id=method_id)
    cart = _lock_cart(cart_id)
    if cart.address is None:
        raise ValidationError("Set a shipping address before choosing a shipping method.")
    cart.shipping_method = method
    totals = _recompute(cart)
    if not totals.shipping_available:
        raise PolicyError("Shipping method is not available for this cart.", method_id=method_id)
    logger.info(
        "cart.shipping_selected",
        extra={"event": "cart.shipping_selected", "cart_id": cart.id, "shipping_method_id": method.id},
    )
    return cart


@cart_mutation
def apply_coupon(*, cart_id: int, code: str) -> Cart:
    """Attach a coupon to the cart and recompute.

    Raises InvalidCoupon, DuplicateCoupon, BelowMinimum or CouponNotEligible.
    """

    cart = _lock_cart(cart_id)
    coupon = get_valid_coupon(code)
    if AppliedCoupon.objects.filter(cart=cart, coupon=coupon).exists():
        raise DuplicateCoupon(code=coupon.code)
    lines = _pricing_lines(cart)
    subtotal = lines_subtotal(lines, cart.currency)
    check_eligibility(coupon, subtotal, coupon_facts(lines, subtotal, cart.address, cart.is_guest))
    AppliedCoupon.objects.create(cart=cart, coupon=coupon, code=coupon.code, discount_type=coupon.discount_type)
    _recompute(cart)
    logger.info(
        "cart.coupon_applied",
        extra={"event": "cart.coupon_applied", "cart_id": cart.id, "code": coupon.code, "guest": cart.is_guest},
    )
    return cart


@cart_mutation
def remove_coupon(*, cart_id: int, code: str) -> Cart:
    cart = _lock_cart(cart_id)
    deleted, _ = AppliedCoupon.objects.filter(cart=cart, code=normalize_code(code)).delete()
    if not deleted:
        raise NotFoundError("Coupon is not applied to this cart.", code=code)
    _recompute(cart)
    logger.info(
        "cart.coupon_removed",
        extra={"event": "cart.coupon_removed", "cart_id": cart.id, "code": normalize_code(code)},
    )
    return cart


@transaction.atomic
def merge_guest_cart(*, session_id: str, user) -> Cart:
    """Merge a guest session cart into the user's active cart.

    Lines are unioned by product+variant with quantities summed, coupons not
    already on the user's cart are carried over, and the guest cart is
    deleted.
    """

    dest = get_active_cart_for_user(user=user)
    src = find_active_cart_for_session(session_id=session_id)
    if src is None or src.id == dest.id:
        return recompute_cart(dest.id)
    # Lock in id order so concurrent merges cannot deadlock
    locked = {c.id: c for c in Cart.objects.select_for_update().filter(id__in=[src.id, dest.id]).order_by("id")}
    dest, src = locked[dest.id], locked[src.id]

    for s_item in CartItem.objects.filter(cart=src).order_by("id"):
        d_item = CartItem.objects.filter(cart=dest, product_id=s_item.product_id, variant_id=s_item.variant_id).first()
        if d_item is not None:
            d_item.quantity = int(d_item.quantity) + int(s_item.quantity)
            d_item.save(update_fields=["quantity", "updated_at"])
            s_item.delete()
        else:
            s_item.cart = dest
            s_item.save(update_fields=["cart", "updated_at"])

    present = set(AppliedCoupon.objects.filter(cart=dest).values_list("coupon_id", flat=True))
    for applied in AppliedCoupon.objects.filter(cart=src):
        if applied.coupon_id not in present:
            applied.cart = dest
            applied.save(update_fields=["cart", "updated_at"])

    if not dest.shipping_country and src.shipping_country:
        dest.shipping_country = src.shipping_country
        dest.shipping_state = src.shipping_state
        dest.shipping_city = src.shipping_city
        dest.shipping_postal_code = src.shipping_postal_code
        dest.shipping_method_id = dest.shipping_method_id or src.shipping_method_id
        dest.save(
            update_fields=[
                "shipping_country",
                "shipping_state",
                "shipping_city",
                "shipping_postal_code",
                "shipping_method",
            ]
        )

    src_id = src.id
    src.delete()
    _recompute(dest)
    logger.info(
        "cart.merged",
        extra={
            "event": "cart.merged",
            "src_cart_id": src_id,
            "dest_cart_id": dest.id,
            "user_id": getattr(user, "id", None),
            "session_id": session_id,
        },
    )
    return dest


@cart_mutation
def checkout(*, cart_id: int, address=None, email: str | None = None) -> int:
    """Turn the cart into a pending order and return the order id.

    Stock is reserved for every line; it is only decremented once the order
    is confirmed.
    """

    from orders.services import create_order_from_cart

    if address is not None:
        address = Address.from_mapping(address)
    cart = _lock_cart(cart_id)
    if not cart.items.exists():
        raise EmptyCart(cart_id=cart_id)
    if address is not None:
        cart.shipping_country = address.country
        cart.shipping_state = address.state
        cart.shipping_city = address.city
        cart.shipping_postal_code = address.postal_code
    if email:
        cart.email = email
    cart.save(update_fields=["shipping_country", "shipping_state", "shipping_city", "shipping_postal_code", "email"])

    totals = _recompute(cart)
    if cart.address is None:
        raise ValidationError("A shipping address is required to check out.")
    if totals.requires_shipping and cart.shipping_method_id is None:
        raise ValidationError("Select a shipping method before checking out.")

    contributing = [cid for cid, amount in totals.coupon_amounts.items() if not amount.is_zero()]
    redeem_coupons(contributing)

    order = create_order_from_cart(cart, address=address or cart.address)
    cart.status = Cart.STATUS_ORDERED
    cart.save(update_fields=["status", "updated_at"])
    logger.info(
        "cart.checked_out",
        extra={
            "event": "cart.checked_out",
            "cart_id": cart.id,
            "user_id": cart.user_id,
            "order_id": int(order.id),
            "guest": cart.is_guest,
        },
    )
    return int(order.id)


@cart_mutation
def abandon_cart(*, cart_id: int) -> None:
    """Mark the active cart as abandoned."""

    cart = _lock_cart(cart_id)
    cart.status = Cart.STATUS_ABANDONED
    cart.save(update_fields=["status", "updated_at"])
    logger.info(
        "cart.abandoned",
        extra={"event": "cart.abandoned", "cart_id": cart.id, "user_id": cart.user_id, "guest": cart.is_guest},
    )
