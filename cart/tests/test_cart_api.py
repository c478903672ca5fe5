from decimal import Decimal

import pytest
from cart.tests.factories import UserFactory
from catalog.tests.factories import ProductFactory, ProductVariantFactory
from discounts.tests.factories import CouponFactory
from inventory.tests.factories import StockItemFactory
from rest_framework.test import APIClient
from shipping.tests.factories import ShippingMethodFactory, ShippingZoneFactory
from tax.tests.factories import TaxRateFactory

ADDRESS = {"country": "US", "state": "CA", "city": "Los Angeles", "postal_code": "90210"}


@pytest.fixture
def client():
    user = UserFactory()
    api = APIClient()
    api.force_authenticate(user=user)
    api.user = user
    return api


@pytest.mark.django_db
def test_cart_detail_initial_empty(client):
    resp = client.get("/api/v1/cart/")
    assert resp.status_code == 200
    body = resp.json()
    assert "id" in body
    assert body["items"] == []
    assert body["subtotal"] == "0.00"
    assert body["total"] == "0.00"
    assert body["currency"] == "USD"
    assert body["shipping_address"] is None


@pytest.mark.django_db
def test_add_item_endpoint_returns_cart_with_totals(client):
    variant = ProductVariantFactory(price=Decimal("25.00"))
    StockItemFactory(product=variant.product, variant=variant, quantity=5)

    resp = client.post(
        "/api/v1/cart/items/",
        {"product_id": variant.product_id, "variant_id": variant.id, "quantity": 2},
        format="json",
    )
    assert resp.status_code == 201
    body = resp.json()
    assert len(body["items"]) == 1
    line = body["items"][0]
    assert line["variant_sku"] == variant.sku
    assert Decimal(line["line_total"]) == Decimal("50.00")
    assert body["subtotal"] == "50.00"
    assert body["item_count"] == 2


@pytest.mark.django_db
def test_add_item_with_gift_wrap(client):
    product = ProductFactory(price=Decimal("10.00"))

    resp = client.post(
        "/api/v1/cart/items/",
        {"product_id": product.id, "quantity": 1, "gift_wrap": {"message": "Happy birthday", "price": "3.00"}},
        format="json",
    )
    assert resp.status_code == 201
    line = resp.json()["items"][0]
    assert line["gift_wrap"]["enabled"] is True
    assert Decimal(line["effective_unit_price"]) == Decimal("13.00")


@pytest.mark.django_db
def test_update_and_delete_item_endpoints(client):
    product = ProductFactory(price=Decimal("8.00"))
    item_id = client.post("/api/v1/cart/items/", {"product_id": product.id}, format="json").json()["items"][0]["id"]

    r_upd = client.patch(f"/api/v1/cart/items/{item_id}/", {"quantity": 3}, format="json")
    assert r_upd.status_code == 200
    assert r_upd.json()["subtotal"] == "24.00"

    r_del = client.delete(f"/api/v1/cart/items/{item_id}/delete/")
    assert r_del.status_code == 200
    assert r_del.json()["items"] == []


@pytest.mark.django_db
def test_insufficient_stock_is_conflict(client):
    product = ProductFactory()
    StockItemFactory(product=product, quantity=1)

    resp = client.post("/api/v1/cart/items/", {"product_id": product.id, "quantity": 2}, format="json")
    assert resp.status_code == 409
    assert resp.json()["code"] == "insufficient_stock"


@pytest.mark.django_db
def test_unknown_product_is_not_found(client):
    resp = client.post("/api/v1/cart/items/", {"product_id": 424242}, format="json")
    assert resp.status_code == 404
    assert resp.json()["code"] == "not_found"


@pytest.mark.django_db
def test_negative_quantity_is_rejected_by_serializer(client):
    product = ProductFactory()
    resp = client.post("/api/v1/cart/items/", {"product_id": product.id, "quantity": -1}, format="json")
    assert resp.status_code == 400
    assert "quantity" in resp.json()


@pytest.mark.django_db
def test_address_shipping_options_and_method_selection(client):
    zone = ShippingZoneFactory()
    standard = ShippingMethodFactory(name="Standard", cost=Decimal("5.00"), zones=[zone])
    ShippingMethodFactory(name="Express", cost=Decimal("15.00"), zones=[zone], sort_order=1)
    TaxRateFactory(rate=Decimal("10"))
    product = ProductFactory(price=Decimal("20.00"))
    client.post("/api/v1/cart/items/", {"product_id": product.id}, format="json")

    r_addr = client.put("/api/v1/cart/address/", {**ADDRESS, "email": "me@example.com"}, format="json")
    assert r_addr.status_code == 200
    assert r_addr.json()["shipping_address"]["state"] == "CA"
    assert r_addr.json()["email"] == "me@example.com"
    assert r_addr.json()["tax_amount"] == "2.00"

    r_opts = client.get("/api/v1/cart/shipping-options/")
    assert r_opts.status_code == 200
    options = r_opts.json()
    assert [o["name"] for o in options] == ["Standard", "Express"]
    assert Decimal(str(options[0]["price"])) == Decimal("5.00")
    assert options[0]["estimated_delivery"] == "2-5 business days"

    r_method = client.put("/api/v1/cart/shipping-method/", {"method_id": standard.id}, format="json")
    assert r_method.status_code == 200
    body = r_method.json()
    assert body["shipping_method"] == standard.id
    assert body["shipping_amount"] == "5.00"
    assert body["total"] == "27.00"


@pytest.mark.django_db
def test_invalid_country_is_validation_error(client):
    resp = client.put("/api/v1/cart/address/", {"country": "1X"}, format="json")
    assert resp.status_code == 400
    assert resp.json()["code"] == "invalid"


@pytest.mark.django_db
def test_coupon_endpoints(client):
    product = ProductFactory(price=Decimal("50.00"))
    CouponFactory(code="SAVE10", value=Decimal("10"))
    client.post("/api/v1/cart/items/", {"product_id": product.id}, format="json")

    r_apply = client.post("/api/v1/cart/coupons/", {"code": "save10"}, format="json")
    assert r_apply.status_code == 200
    assert r_apply.json()["discount_amount"] == "5.00"
    assert r_apply.json()["applied_coupons"][0]["code"] == "SAVE10"

    r_dup = client.post("/api/v1/cart/coupons/", {"code": "SAVE10"}, format="json")
    assert r_dup.status_code == 409
    assert r_dup.json()["code"] == "duplicate_coupon"

    r_bad = client.post("/api/v1/cart/coupons/", {"code": "NOPE"}, format="json")
    assert r_bad.status_code == 409
    assert r_bad.json()["code"] == "invalid_coupon"

    r_remove = client.delete("/api/v1/cart/coupons/SAVE10/")
    assert r_remove.status_code == 200
    assert r_remove.json()["discount_amount"] == "0.00"


@pytest.mark.django_db
def test_clear_checkout_abandon_endpoints(client):
    product = ProductFactory(price=Decimal("5.00"), is_digital=True)
    client.post("/api/v1/cart/items/", {"product_id": product.id, "quantity": 2}, format="json")

    r_clear = client.post("/api/v1/cart/clear/")
    assert r_clear.status_code == 200
    assert r_clear.json()["items"] == []

    r_empty = client.post("/api/v1/cart/checkout/", {"address": ADDRESS}, format="json")
    assert r_empty.status_code == 409
    assert r_empty.json()["code"] == "empty_cart"

    client.post("/api/v1/cart/items/", {"product_id": product.id}, format="json")
    r_checkout = client.post("/api/v1/cart/checkout/", {"address": ADDRESS}, format="json")
    assert r_checkout.status_code == 200
    assert r_checkout.json()["status"] == "ordered"

    # A fresh cart is opened after checkout
    r_detail = client.get("/api/v1/cart/")
    assert r_detail.json()["items"] == []
    r_abandon = client.post("/api/v1/cart/abandon/")
    assert r_abandon.status_code == 200
    assert r_abandon.json() == {"status": "abandoned"}


@pytest.mark.django_db
def test_checkout_without_address_is_validation_error(client):
    product = ProductFactory()
    client.post("/api/v1/cart/items/", {"product_id": product.id}, format="json")

    resp = client.post("/api/v1/cart/checkout/", {}, format="json")
    assert resp.status_code == 400
    assert resp.json()["code"] == "invalid"
