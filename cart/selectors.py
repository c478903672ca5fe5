"""Selectors for read-only cart queries."""

from datetime import timedelta
from decimal import Decimal

from catalog.selectors import unit_weight
from common.money import Money
from django.conf import settings
from django.utils import timezone
from shipping.services import available_methods, build_context

from .models import Cart


def get_active_cart_for_user(*, user) -> Cart:
    """Return the user's active cart, creating it if missing."""

    cart, _ = Cart.objects.get_or_create(user=user, session_id=None, status=Cart.STATUS_ACTIVE)
    return cart


def find_active_cart_for_session(*, session_id: str):
    """Active, unexpired guest cart for the session, or None.

    A stale guest cart found here is flipped to `expired` on the way.
    """

    cart = Cart.objects.filter(user=None, session_id=session_id, status=Cart.STATUS_ACTIVE).first()
    if cart is not None and cart.expires_at and cart.expires_at <= timezone.now():
        Cart.objects.filter(id=cart.id, status=Cart.STATUS_ACTIVE).update(
            status=Cart.STATUS_EXPIRED, updated_at=timezone.now()
        )
        return None
    return cart


def get_active_cart_for_session(*, session_id: str) -> Cart:
    """Return the guest session's active cart, creating it if missing."""

    cart = find_active_cart_for_session(session_id=session_id)
    if cart is None:
        cart, _ = Cart.objects.get_or_create(
            user=None,
            session_id=session_id,
            status=Cart.STATUS_ACTIVE,
            defaults={"expires_at": timezone.now() + timedelta(days=settings.GUEST_CART_TTL_DAYS)},
        )
    return cart


def shipping_options(*, cart: Cart) -> list:
    """Shipping methods available for the cart's destination, with quotes.

    Empty when the cart has no address or only digital lines.
    """

    address = cart.address
    if address is None:
        return []
    shippable = [item for item in cart.items.select_related("product", "variant") if not item.product.is_digital]
    if not shippable:
        return []
    weight = sum((unit_weight(item.product, item.variant) * item.quantity for item in shippable), Decimal("0"))
    context = build_context(
        subtotal=Money.of(cart.subtotal - cart.discount_amount, cart.currency),
        weight=weight,
        quantity=sum(int(item.quantity) for item in shippable),
        address=address,
    )
    return available_methods(context)
