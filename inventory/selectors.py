"""Selectors for inventory domain (single-location)."""

from .models import StockItem


def available_quantity(*, product_id: int, variant_id: int | None = None) -> int | None:
    """Units available to sell, or None when the item is not counted."""

    item = StockItem.objects.filter(product_id=product_id, variant_id=variant_id).first()
    if item is None or not item.enforces_stock:
        return None
    return item.available

