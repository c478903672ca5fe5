"""Selectors for the catalog domain.

Read-only helpers the pricing engine uses to look up current prices and
weights, and to freeze catalog data into order line snapshots.
"""

from decimal import Decimal
from typing import Optional

from common.exceptions import NotFoundError

from .models import Media, Product, ProductAttributeValue, ProductVariant


def get_purchasable(*, product_id: int, variant_id: Optional[int] = None):
    """Return `(product, variant)` for a published product and active variant.

    Raises NotFoundError when the product or variant is missing, unpublished,
    inactive, or when the variant does not belong to the product.
    """

    try:
        product = Product.objects.get(id=product_id, status=Product.STATUS_PUBLISHED)
    except Product.DoesNotExist:
        raise NotFoundError("Product not found.", product_id=product_id)
    variant = None
    if variant_id is not None:
        try:
            variant = ProductVariant.objects.get(
                id=variant_id, product=product, status=ProductVariant.STATUS_ACTIVE
            )
        except ProductVariant.DoesNotExist:
            raise NotFoundError("Variant not found.", variant_id=variant_id)
    return product, variant


def current_unit_price(product: Product, variant: Optional[ProductVariant] = None) -> Decimal:
    """Variant price, falling back to the product price."""

    if variant is not None and variant.price is not None:
        return variant.price
    return product.price or Decimal("0.00")


def unit_weight(product: Product, variant: Optional[ProductVariant] = None) -> Decimal:
    """Weight in kilograms of a single unit; zero when not recorded."""

    if variant is not None and variant.weight is not None:
        return variant.weight
    return product.weight or Decimal("0")


def primary_image(product: Product, variant: Optional[ProductVariant] = None) -> Optional[str]:
    media = None
    if variant is not None:
        media = Media.objects.filter(variant=variant).order_by("-is_primary", "sort_order", "id").first()
    if media is None:
        media = (
            Media.objects.filter(product=product, variant__isnull=True)
            .order_by("-is_primary", "sort_order", "id")
            .first()
        )
    return media.url if media else None


def attribute_list(product: Product, variant: Optional[ProductVariant] = None) -> list[dict]:
    qs = ProductAttributeValue.objects.select_related("attribute")
    qs = qs.filter(variant=variant) if variant is not None else qs.filter(product=product)
    return [{"name": pav.attribute.name, "value": pav.value} for pav in qs]


def build_line_snapshot(product: Product, variant: Optional[ProductVariant] = None) -> dict:
    """Freeze the catalog facts an order line must keep after checkout.

    The result is plain JSON: names, SKU, image, weight, dimensions,
    attributes and categories as they are right now.
    """

    weight = unit_weight(product, variant)
    return {
        "name": product.title,
        "slug": product.slug,
        "sku": variant.sku if variant is not None else product.sku,
        "product_sku": product.sku,
        "description": product.description,
        "image": primary_image(product, variant),
        "weight": str(weight),
        "dimensions": product.dimensions,
        "attributes": attribute_list(product, variant),
        "categories": [{"id": c.id, "name": c.name} for c in product.categories.all()],
        "is_digital": product.is_digital,
        "tax_class": product.tax_class,
    }
