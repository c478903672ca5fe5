from decimal import Decimal

import pytest
from catalog.models import Product, ProductVariant
from catalog.selectors import build_line_snapshot, current_unit_price, get_purchasable, unit_weight
from catalog.tests.factories import (
    CategoryFactory,
    MediaFactory,
    ProductAttributeValueFactory,
    ProductFactory,
    ProductVariantFactory,
)
from common.exceptions import NotFoundError


@pytest.mark.django_db
def test_get_purchasable_requires_published_product_and_active_variant():
    variant = ProductVariantFactory()
    product, found = get_purchasable(product_id=variant.product_id, variant_id=variant.id)
    assert product == variant.product
    assert found == variant

    draft = ProductFactory(status=Product.STATUS_DRAFT)
    with pytest.raises(NotFoundError):
        get_purchasable(product_id=draft.id)

    inactive = ProductVariantFactory(status=ProductVariant.STATUS_INACTIVE)
    with pytest.raises(NotFoundError):
        get_purchasable(product_id=inactive.product_id, variant_id=inactive.id)

    # A variant of another product is not purchasable through this one
    with pytest.raises(NotFoundError):
        get_purchasable(product_id=ProductFactory().id, variant_id=variant.id)


@pytest.mark.django_db
def test_variant_price_and_weight_fall_back_to_product():
    product = ProductFactory(price=Decimal("12.00"), weight=Decimal("2.500"))
    priced = ProductVariantFactory(product=product, price=Decimal("15.00"), weight=Decimal("1.000"))
    bare = ProductVariantFactory(product=product, price=None, weight=None)

    assert current_unit_price(product, priced) == Decimal("15.00")
    assert current_unit_price(product, bare) == Decimal("12.00")
    assert unit_weight(product, priced) == Decimal("1.000")
    assert unit_weight(product, bare) == Decimal("2.500")
    assert unit_weight(ProductFactory(weight=None)) == Decimal("0")


@pytest.mark.django_db
def test_line_snapshot_freezes_catalog_facts():
    shoes = CategoryFactory(name="Shoes")
    product = ProductFactory(
        title="Runner",
        sku="RUN-1",
        length=Decimal("30"),
        width=Decimal("20"),
        height=Decimal("10"),
        categories=[shoes],
    )
    variant = ProductVariantFactory(product=product, sku="RUN-1-42")
    MediaFactory(product=product, url="https://cdn.example.com/runner.jpg", is_primary=True)
    MediaFactory(product=product, variant=variant, url="https://cdn.example.com/runner-42.jpg")
    ProductAttributeValueFactory(product=None, variant=variant, attribute__name="Size", value="42")

    snap = build_line_snapshot(product, variant)

    assert snap["name"] == "Runner"
    assert snap["sku"] == "RUN-1-42"
    assert snap["product_sku"] == "RUN-1"
    assert snap["image"] == "https://cdn.example.com/runner-42.jpg"
    assert snap["attributes"] == [{"name": "Size", "value": "42"}]
    assert snap["categories"] == [{"id": shoes.id, "name": "Shoes"}]
    assert snap["dimensions"]["unit"] == product.dimension_unit

    product.title = "Runner v2"
    product.save()
    assert snap["name"] == "Runner"


@pytest.mark.django_db
def test_line_snapshot_without_variant_uses_product_image():
    product = ProductFactory()
    MediaFactory(product=product, url="https://cdn.example.com/a.jpg", sort_order=1)
    MediaFactory(product=product, url="https://cdn.example.com/b.jpg", is_primary=True, sort_order=2)

    snap = build_line_snapshot(product)

    assert snap["sku"] == product.sku
    assert snap["image"] == "https://cdn.example.com/b.jpg"
    assert snap["dimensions"] is None
    assert snap["attributes"] == []
