import datetime as dt
from decimal import Decimal

import pytest
from cart.models import AppliedCoupon, Cart, CartItem
from cart.services import (
    abandon_cart,
    add_item,
    apply_coupon,
    checkout,
    clear_cart,
    merge_guest_cart,
    recompute_cart,
    remove_coupon,
    remove_item,
    select_shipping_method,
    set_shipping_address,
    update_item_quantity,
)
from cart.tests.factories import CartFactory, GuestCartFactory, UserFactory
from catalog.tests.factories import ProductFactory, ProductVariantFactory
from common.exceptions import (
    BelowMinimum,
    CartExpired,
    DuplicateCoupon,
    EmptyCart,
    InsufficientStock,
    InvalidCoupon,
    NotFoundError,
    PolicyError,
    ValidationError,
)
from discounts.models import Coupon
from discounts.tests.factories import CouponFactory
from django.utils import timezone
from inventory.models import StockItem, StockReservation
from inventory.tests.factories import StockItemFactory
from orders.models import Order
from shipping.tests.factories import ShippingMethodFactory, ShippingZoneFactory
from tax.tests.factories import TaxRateFactory

ADDRESS = {"country": "US", "state": "CA", "city": "Los Angeles", "postal_code": "90210"}


def assert_identity(cart):
    assert cart.total == cart.subtotal + cart.tax_amount - cart.discount_amount + cart.shipping_amount


@pytest.fixture
def flat_method():
    zone = ShippingZoneFactory()
    return ShippingMethodFactory(cost=Decimal("5.00"), zones=[zone])


@pytest.mark.django_db
def test_adding_existing_line_increments_quantity():
    cart = CartFactory()
    product = ProductFactory(price=Decimal("12.50"))

    first = add_item(cart_id=cart.id, product_id=product.id, quantity=1)
    second = add_item(cart_id=cart.id, product_id=product.id, quantity=2)

    assert first.id == second.id
    assert second.quantity == 3
    cart.refresh_from_db()
    assert CartItem.objects.filter(cart=cart).count() == 1
    assert cart.subtotal == Decimal("37.50")
    assert cart.item_count == 3
    assert_identity(cart)


@pytest.mark.django_db
def test_variant_lines_are_distinct_from_product_line():
    cart = CartFactory()
    variant = ProductVariantFactory(price=Decimal("25.00"))

    add_item(cart_id=cart.id, product_id=variant.product_id, quantity=1)
    add_item(cart_id=cart.id, product_id=variant.product_id, variant_id=variant.id, quantity=1)

    cart.refresh_from_db()
    assert cart.items.count() == 2
    assert cart.subtotal == Decimal("35.00")


@pytest.mark.parametrize("quantity", [0, -1, True, "2"])
@pytest.mark.django_db
def test_add_rejects_bad_quantity_before_mutation(quantity):
    cart = CartFactory()
    product = ProductFactory()

    with pytest.raises(ValidationError):
        add_item(cart_id=cart.id, product_id=product.id, quantity=quantity)
    assert not cart.items.exists()


@pytest.mark.django_db
def test_unpublished_product_is_not_found():
    cart = CartFactory()
    product = ProductFactory(status="draft")

    with pytest.raises(NotFoundError):
        add_item(cart_id=cart.id, product_id=product.id)


@pytest.mark.django_db
def test_customizations_and_gift_wrap_add_to_unit_price():
    cart = CartFactory()
    product = ProductFactory(price=Decimal("10.00"))

    item = add_item(
        cart_id=cart.id,
        product_id=product.id,
        quantity=2,
        customizations=[{"name": "Engraving", "value": "A.B.", "price": "2.50"}],
        gift_wrap={"enabled": True, "message": "Enjoy", "price": "1.00"},
    )

    assert item.effective_unit_price == Decimal("13.50")
    cart.refresh_from_db()
    assert cart.subtotal == Decimal("27.00")


@pytest.mark.django_db
def test_quantity_zero_or_less_removes_line():
    cart = CartFactory()
    product = ProductFactory(price=Decimal("10.00"))
    item = add_item(cart_id=cart.id, product_id=product.id, quantity=2)

    assert update_item_quantity(cart_id=cart.id, item_id=item.id, quantity=0) is None

    cart.refresh_from_db()
    assert not cart.items.exists()
    assert cart.subtotal == Decimal("0.00")
    assert cart.total == Decimal("0.00")


@pytest.mark.django_db
def test_update_and_remove_item():
    cart = CartFactory()
    product = ProductFactory(price=Decimal("4.00"))
    item = add_item(cart_id=cart.id, product_id=product.id, quantity=1)

    update_item_quantity(cart_id=cart.id, item_id=item.id, quantity=5)
    cart.refresh_from_db()
    assert cart.subtotal == Decimal("20.00")

    remove_item(cart_id=cart.id, item_id=item.id)
    cart.refresh_from_db()
    assert cart.subtotal == Decimal("0.00")

    # Removing an unknown line is silent
    remove_item(cart_id=cart.id, item_id=999999)

    with pytest.raises(NotFoundError):
        update_item_quantity(cart_id=cart.id, item_id=999999, quantity=1)


@pytest.mark.django_db
def test_stock_limit_rejects_add_and_leaves_cart_unchanged():
    cart = CartFactory()
    product = ProductFactory(price=Decimal("10.00"))
    StockItemFactory(product=product, quantity=3)

    add_item(cart_id=cart.id, product_id=product.id, quantity=2)
    cart.refresh_from_db()
    version = cart.version

    with pytest.raises(InsufficientStock):
        add_item(cart_id=cart.id, product_id=product.id, quantity=2)

    cart.refresh_from_db()
    assert cart.items.get().quantity == 2
    assert cart.subtotal == Decimal("20.00")
    assert cart.version == version


@pytest.mark.django_db
def test_backordered_and_untracked_items_accept_any_quantity():
    cart = CartFactory()
    backordered = ProductFactory()
    StockItemFactory(product=backordered, quantity=0, allow_backorders=True)
    uncounted = ProductFactory()

    add_item(cart_id=cart.id, product_id=backordered.id, quantity=50)
    add_item(cart_id=cart.id, product_id=uncounted.id, quantity=50)

    assert cart.items.count() == 2


@pytest.mark.django_db
def test_interleaved_adds_keep_both_mutations():
    cart = CartFactory()
    product = ProductFactory(price=Decimal("3.00"))
    # Two clients holding stale copies of the same cart
    first_view = Cart.objects.get(id=cart.id)
    second_view = Cart.objects.get(id=cart.id)

    add_item(cart_id=first_view.id, product_id=product.id, quantity=2)
    add_item(cart_id=second_view.id, product_id=product.id, quantity=5)

    cart.refresh_from_db()
    assert cart.item_count == 7
    assert cart.items.get().quantity == 7
    assert cart.subtotal == Decimal("21.00")
    assert cart.version == 2


@pytest.mark.django_db
def test_totals_follow_fixed_order_to_exact_cents(flat_method):
    cart = CartFactory()
    product = ProductFactory(price=Decimal("100.00"), weight=Decimal("2.000"))
    TaxRateFactory(name="CA", rate=Decimal("8"), state="CA", priority=10)
    TaxRateFactory(name="Levy", rate=Decimal("5"), compound=True, priority=5)
    CouponFactory(code="TENOFF", discount_type=Coupon.TYPE_PERCENTAGE, value=Decimal("10"))
    CouponFactory(code="FIVE", discount_type=Coupon.TYPE_FIXED, value=Decimal("5"))

    add_item(cart_id=cart.id, product_id=product.id, quantity=1)
    set_shipping_address(cart_id=cart.id, address=ADDRESS)
    select_shipping_method(cart_id=cart.id, method_id=flat_method.id)
    apply_coupon(cart_id=cart.id, code="tenoff")
    apply_coupon(cart_id=cart.id, code="FIVE")

    cart.refresh_from_db()
    assert cart.subtotal == Decimal("100.00")
    # 10% + $5, each against the pre-discount subtotal
    assert cart.discount_amount == Decimal("15.00")
    # 8% of 85.00 = 6.80, then 5% of 91.80 = 4.59
    assert cart.tax_amount == Decimal("11.39")
    assert cart.shipping_amount == Decimal("5.00")
    assert cart.total == Decimal("101.39")
    assert cart.total_weight == Decimal("2.000")
    assert_identity(cart)
    assert [row["name"] for row in cart.tax_breakdown] == ["CA", "Levy"]
    amounts = dict(AppliedCoupon.objects.filter(cart=cart).values_list("code", "discount_amount"))
    assert amounts == {"TENOFF": Decimal("10.00"), "FIVE": Decimal("5.00")}


@pytest.mark.django_db
def test_taxable_shipping_adds_shipping_tax():
    zone = ShippingZoneFactory()
    method = ShippingMethodFactory(cost=Decimal("10.00"), taxable=True, zones=[zone])
    TaxRateFactory(rate=Decimal("10"), apply_to_shipping=True)
    cart = CartFactory()
    product = ProductFactory(price=Decimal("50.00"))

    add_item(cart_id=cart.id, product_id=product.id, quantity=1)
    set_shipping_address(cart_id=cart.id, address=ADDRESS)
    select_shipping_method(cart_id=cart.id, method_id=method.id)

    cart.refresh_from_db()
    assert cart.tax_amount == Decimal("6.00")
    assert cart.total == Decimal("66.00")
    assert len(cart.tax_breakdown) == 1
    assert Decimal(cart.tax_breakdown[0]["amount"]) == Decimal("6")


@pytest.mark.django_db
def test_recompute_twice_gives_identical_totals(flat_method):
    cart = CartFactory()
    product = ProductFactory(price=Decimal("19.99"))
    TaxRateFactory(rate=Decimal("7.25"))
    add_item(cart_id=cart.id, product_id=product.id, quantity=3)
    set_shipping_address(cart_id=cart.id, address=ADDRESS)
    select_shipping_method(cart_id=cart.id, method_id=flat_method.id)

    fields = ["subtotal", "discount_amount", "tax_amount", "shipping_amount", "total", "tax_breakdown"]
    first = recompute_cart(cart.id)
    snapshot = [getattr(first, f) for f in fields]
    second = recompute_cart(cart.id)

    assert [getattr(second, f) for f in fields] == snapshot
    assert second.version == first.version + 1


@pytest.mark.django_db
def test_recompute_resnapshots_changed_catalog_price():
    cart = CartFactory()
    product = ProductFactory(price=Decimal("10.00"))
    item = add_item(cart_id=cart.id, product_id=product.id, quantity=2)

    product.price = Decimal("12.00")
    product.save()
    recompute_cart(cart.id)

    item.refresh_from_db()
    cart.refresh_from_db()
    assert item.unit_price == Decimal("12.00")
    assert cart.subtotal == Decimal("24.00")


@pytest.mark.django_db
def test_coupon_rules():
    cart = CartFactory()
    product = ProductFactory(price=Decimal("40.00"))
    add_item(cart_id=cart.id, product_id=product.id, quantity=1)
    CouponFactory(code="SAVE10", value=Decimal("10"))
    CouponFactory(code="BIG", minimum_amount=Decimal("50.00"))

    with pytest.raises(InvalidCoupon):
        apply_coupon(cart_id=cart.id, code="NOPE")
    with pytest.raises(BelowMinimum):
        apply_coupon(cart_id=cart.id, code="BIG")

    apply_coupon(cart_id=cart.id, code="SAVE10")
    with pytest.raises(DuplicateCoupon):
        apply_coupon(cart_id=cart.id, code="save10")

    cart.refresh_from_db()
    assert cart.discount_amount == Decimal("4.00")

    remove_coupon(cart_id=cart.id, code="save10")
    cart.refresh_from_db()
    assert cart.discount_amount == Decimal("0.00")
    with pytest.raises(NotFoundError):
        remove_coupon(cart_id=cart.id, code="SAVE10")


@pytest.mark.django_db
def test_coupon_below_minimum_after_removal_contributes_zero():
    cart = CartFactory()
    product = ProductFactory(price=Decimal("30.00"))
    item = add_item(cart_id=cart.id, product_id=product.id, quantity=2)
    CouponFactory(code="MIN50", discount_type=Coupon.TYPE_FIXED, value=Decimal("10"), minimum_amount=Decimal("50"))
    apply_coupon(cart_id=cart.id, code="MIN50")

    update_item_quantity(cart_id=cart.id, item_id=item.id, quantity=1)

    cart.refresh_from_db()
    assert cart.discount_amount == Decimal("0.00")
    assert cart.applied_coupons.get().discount_amount == Decimal("0.00")
    assert_identity(cart)


@pytest.mark.django_db
def test_clear_cart_keeps_coupons():
    cart = CartFactory()
    product = ProductFactory(price=Decimal("10.00"))
    add_item(cart_id=cart.id, product_id=product.id, quantity=1)
    CouponFactory(code="KEEP")
    apply_coupon(cart_id=cart.id, code="KEEP")

    clear_cart(cart_id=cart.id)

    cart.refresh_from_db()
    assert not cart.items.exists()
    assert cart.applied_coupons.count() == 1
    assert cart.total == Decimal("0.00")


@pytest.mark.django_db
def test_shipping_method_requires_address_and_coverage():
    zone = ShippingZoneFactory(countries=[{"code": "CA"}])
    method = ShippingMethodFactory(zones=[zone])
    cart = CartFactory()
    add_item(cart_id=cart.id, product_id=ProductFactory().id, quantity=1)

    with pytest.raises(ValidationError):
        select_shipping_method(cart_id=cart.id, method_id=method.id)

    set_shipping_address(cart_id=cart.id, address=ADDRESS)
    with pytest.raises(PolicyError):
        select_shipping_method(cart_id=cart.id, method_id=method.id)
    cart.refresh_from_db()
    assert cart.shipping_method_id is None


@pytest.mark.django_db
def test_address_change_clears_unavailable_method(flat_method):
    cart = CartFactory()
    add_item(cart_id=cart.id, product_id=ProductFactory().id, quantity=1)
    set_shipping_address(cart_id=cart.id, address=ADDRESS)
    select_shipping_method(cart_id=cart.id, method_id=flat_method.id)

    set_shipping_address(cart_id=cart.id, address={"country": "DE", "postal_code": "10115"})

    cart.refresh_from_db()
    assert cart.shipping_method_id is None
    assert cart.shipping_amount == Decimal("0.00")


@pytest.mark.django_db
def test_address_change_keeps_method_still_serving_destination(flat_method):
    cart = CartFactory()
    add_item(cart_id=cart.id, product_id=ProductFactory().id, quantity=1)
    set_shipping_address(cart_id=cart.id, address=ADDRESS)
    select_shipping_method(cart_id=cart.id, method_id=flat_method.id)

    set_shipping_address(cart_id=cart.id, address={**ADDRESS, "city": "San Diego", "postal_code": "92101"})

    cart.refresh_from_db()
    assert cart.shipping_method_id == flat_method.id
    assert cart.shipping_amount == Decimal("5.00")


@pytest.mark.django_db
def test_merge_guest_cart_unions_lines_and_drops_source():
    user = UserFactory()
    shared = ProductFactory(price=Decimal("10.00"))
    guest_only = ProductFactory(price=Decimal("5.00"))
    user_cart = CartFactory(user=user)
    add_item(cart_id=user_cart.id, product_id=shared.id, quantity=1)
    guest = GuestCartFactory(session_id="guest-1")
    add_item(cart_id=guest.id, product_id=shared.id, quantity=2)
    add_item(cart_id=guest.id, product_id=guest_only.id, quantity=1)
    CouponFactory(code="GUEST")
    apply_coupon(cart_id=guest.id, code="GUEST")

    merged = merge_guest_cart(session_id="guest-1", user=user)

    assert merged.id == user_cart.id
    quantities = dict(merged.items.values_list("product_id", "quantity"))
    assert quantities == {shared.id: 3, guest_only.id: 1}
    assert list(merged.applied_coupons.values_list("code", flat=True)) == ["GUEST"]
    assert not Cart.objects.filter(id=guest.id).exists()
    merged.refresh_from_db()
    assert merged.subtotal == Decimal("35.00")
    assert merged.discount_amount == Decimal("3.50")


@pytest.mark.django_db
def test_merge_without_guest_cart_returns_user_cart():
    user = UserFactory()

    merged = merge_guest_cart(session_id="nobody", user=user)

    assert merged.user_id == user.id
    assert merged.status == Cart.STATUS_ACTIVE


@pytest.mark.django_db
def test_expired_guest_cart_rejects_mutation_and_is_marked_expired():
    guest = GuestCartFactory(expires_at=timezone.now() - dt.timedelta(minutes=1))

    with pytest.raises(CartExpired):
        recompute_cart(guest.id)

    guest.refresh_from_db()
    assert guest.status == Cart.STATUS_EXPIRED
    with pytest.raises(CartExpired):
        add_item(cart_id=guest.id, product_id=ProductFactory().id)
    assert not guest.items.exists()


@pytest.mark.django_db
def test_stale_guest_cart_expires_on_checkout_attempt():
    guest = GuestCartFactory(expires_at=timezone.now() - dt.timedelta(days=1))

    with pytest.raises(CartExpired):
        checkout(cart_id=guest.id)

    assert Cart.objects.get(id=guest.id).status == Cart.STATUS_EXPIRED


@pytest.mark.django_db
def test_abandoned_cart_is_read_only():
    cart = CartFactory()
    abandon_cart(cart_id=cart.id)

    cart.refresh_from_db()
    assert cart.status == Cart.STATUS_ABANDONED
    with pytest.raises(PolicyError):
        add_item(cart_id=cart.id, product_id=ProductFactory().id)


@pytest.mark.django_db
def test_checkout_requires_items_address_and_method(flat_method):
    cart = CartFactory()
    with pytest.raises(EmptyCart):
        checkout(cart_id=cart.id)

    add_item(cart_id=cart.id, product_id=ProductFactory().id, quantity=1)
    with pytest.raises(ValidationError):
        checkout(cart_id=cart.id)
    with pytest.raises(ValidationError):
        checkout(cart_id=cart.id, address=ADDRESS)

    cart.refresh_from_db()
    assert cart.status == Cart.STATUS_ACTIVE
    assert not Order.objects.exists()


@pytest.mark.django_db
def test_digital_only_cart_checks_out_without_shipping_method():
    cart = CartFactory()
    ebook = ProductFactory(price=Decimal("9.99"), is_digital=True)
    add_item(cart_id=cart.id, product_id=ebook.id, quantity=1)

    order_id = checkout(cart_id=cart.id, address={"country": "US", "state": "NY"})

    order = Order.objects.get(id=order_id)
    assert order.shipping_amount == Decimal("0.00")
    assert order.shipping_method is None
    assert order.items.get().is_digital is True


@pytest.mark.django_db
def test_checkout_reserves_stock_redeems_coupons_and_closes_cart(flat_method):
    user = UserFactory(email="buyer@example.com")
    cart = CartFactory(user=user)
    product = ProductFactory(price=Decimal("20.00"))
    stock = StockItemFactory(product=product, quantity=10)
    coupon = CouponFactory(code="ONCE", usage_limit=5)
    add_item(cart_id=cart.id, product_id=product.id, quantity=3)
    apply_coupon(cart_id=cart.id, code="ONCE")
    set_shipping_address(cart_id=cart.id, address=ADDRESS)
    select_shipping_method(cart_id=cart.id, method_id=flat_method.id)
    cart.refresh_from_db()

    order_id = checkout(cart_id=cart.id)

    order = Order.objects.get(id=order_id)
    assert order.status == Order.STATUS_PENDING
    assert order.total == cart.total
    assert order.email == "buyer@example.com"
    stock.refresh_from_db()
    assert stock.quantity == 10
    assert stock.reserved == 3
    reservation = StockReservation.objects.get(stock_item=stock)
    assert reservation.reference == f"order:{order.number}"
    coupon.refresh_from_db()
    assert coupon.used_count == 1
    cart.refresh_from_db()
    assert cart.status == Cart.STATUS_ORDERED
    with pytest.raises(PolicyError):
        checkout(cart_id=cart.id)


@pytest.mark.django_db
def test_checkout_rolls_back_when_stock_runs_out(flat_method):
    cart = CartFactory()
    product = ProductFactory()
    stock = StockItemFactory(product=product, quantity=5)
    add_item(cart_id=cart.id, product_id=product.id, quantity=4)
    set_shipping_address(cart_id=cart.id, address=ADDRESS)
    select_shipping_method(cart_id=cart.id, method_id=flat_method.id)
    # Someone else takes most of the stock in the meantime
    StockItem.objects.filter(id=stock.id).update(reserved=3)

    with pytest.raises(InsufficientStock):
        checkout(cart_id=cart.id)

    cart.refresh_from_db()
    assert cart.status == Cart.STATUS_ACTIVE
    assert not Order.objects.exists()
    stock.refresh_from_db()
    assert stock.reserved == 3
