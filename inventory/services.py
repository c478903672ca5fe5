"""Inventory services (single-location): atomic stock adjustments.

Every counter change is a single conditional `UPDATE ... SET x = x +/- n`.
When the condition fails no row is touched and `InsufficientStock` is raised,
so two orders drawing on the same item can never lose an update.
"""

import logging

from common.exceptions import InsufficientStock, InvariantViolation, ValidationError
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from .models import StockItem, StockMovement, StockReservation

logger = logging.getLogger("shopcore.inventory")


def get_or_create_stock_item(*, product_id: int, variant_id: int | None = None) -> StockItem:
    """Stock record for a product or variant.

    Items with no stock record yet are created untracked: they accept any
    reservation until somebody starts counting them.
    """

    item, _ = StockItem.objects.get_or_create(
        product_id=product_id,
        variant_id=variant_id,
        defaults={"quantity": 0, "reserved": 0, "track_inventory": False},
    )
    return item


def _adjust(item: StockItem, *, quantity_delta: int = 0, reserved_delta: int = 0, guard: bool = True) -> None:
    """Apply deltas to the counters of `item` in one statement.

    With `guard`, the update only matches when the item does not enforce stock
    or the resulting available count stays non-negative.
    """

    qs = StockItem.objects.filter(id=item.id)
    if guard and item.enforces_stock:
        # available after the change = (quantity + dq) - (reserved + dr) >= 0
        qs = qs.filter(quantity__gte=F("reserved") + reserved_delta - quantity_delta)
    if quantity_delta < 0 and item.enforces_stock:
        qs = qs.filter(quantity__gte=-quantity_delta)
    if reserved_delta < 0:
        qs = qs.filter(reserved__gte=-reserved_delta)
    updated = qs.update(
        quantity=F("quantity") + quantity_delta,
        reserved=F("reserved") + reserved_delta,
        updated_at=timezone.now(),
    )
    if updated == 0:
        raise InsufficientStock(
            stock_item_id=item.id,
            product_id=item.product_id,
            variant_id=item.variant_id,
        )


@transaction.atomic
def apply_movement(*, stock_item_id: int, movement_type: str, quantity: int, reason: str = "", reference: str = ""):
    """Apply a signed movement to a stock item.

    quantity: positive for inbound/additions, negative for outbound/deductions.
    movement_type: label for admin/documentation; logic is driven by sign.
    """
    if quantity == 0:
        return None
    try:
        item = StockItem.objects.get(id=stock_item_id)
    except StockItem.DoesNotExist:
        raise ValidationError("Stock item not found.", stock_item_id=stock_item_id)

    _adjust(item, quantity_delta=int(quantity), guard=quantity < 0)
    movement = StockMovement.objects.create(
        stock_item=item,
        movement_type=movement_type,
        quantity=quantity,
        reason=reason,
        reference=reference,
    )
    logger.info(
        "inventory.movement",
        extra={
            "event": "inventory_movement",
            "stock_item_id": item.id,
            "movement_type": movement_type,
            "quantity": quantity,
        },
    )
    return movement


@transaction.atomic
def create_reservation(
    *, product_id: int, variant_id: int | None = None, quantity: int, reference: str, expires_at=None
) -> StockReservation:
    if quantity <= 0:
        raise ValidationError("Reservation quantity must be positive.")
    item = get_or_create_stock_item(product_id=product_id, variant_id=variant_id)
    _adjust(item, reserved_delta=int(quantity))
    res = StockReservation.objects.create(
        stock_item=item,
        quantity=quantity,
        reference=reference,
        expires_at=expires_at,
        state=StockReservation.STATE_ACTIVE,
    )
    logger.info(
        "inventory.reserved",
        extra={"event": "stock_reserved", "stock_item_id": item.id, "quantity": quantity, "reference": reference},
    )
    return res


@transaction.atomic
def release_reservation(*, reservation_id: int) -> bool:
    """Return reserved units to the available pool. False if not active."""

    claimed = StockReservation.objects.filter(id=reservation_id, state=StockReservation.STATE_ACTIVE).update(
        state=StockReservation.STATE_RELEASED, updated_at=timezone.now()
    )
    if not claimed:
        return False
    res = StockReservation.objects.select_related("stock_item").get(id=reservation_id)
    try:
        _adjust(res.stock_item, reserved_delta=-int(res.quantity), guard=False)
    except InsufficientStock:
        raise InvariantViolation(
            "Reserved counter is lower than an active reservation.", reservation_id=reservation_id
        )
    logger.info(
        "inventory.released",
        extra={"event": "stock_released", "reservation_id": reservation_id, "quantity": res.quantity},
    )
    return True


@transaction.atomic
def convert_reservation(*, reservation_id: int, reason: str = "order", reference: str = "") -> bool:
    """Turn an active reservation into a permanent decrement.

    Runs at most once per reservation: a converted or released reservation
    is left alone and False is returned.
    """

    claimed = StockReservation.objects.filter(id=reservation_id, state=StockReservation.STATE_ACTIVE).update(
        state=StockReservation.STATE_CONVERTED, updated_at=timezone.now()
    )
    if not claimed:
        return False
    res = StockReservation.objects.select_related("stock_item").get(id=reservation_id)
    qty = int(res.quantity)
    _adjust(res.stock_item, quantity_delta=-qty, reserved_delta=-qty)
    StockMovement.objects.create(
        stock_item=res.stock_item,
        movement_type=StockMovement.TYPE_OUTBOUND,
        quantity=-qty,
        reason=reason,
        reference=reference or res.reference,
    )
    logger.info(
        "inventory.converted",
        extra={"event": "stock_allocated", "reservation_id": reservation_id, "quantity": qty},
    )
    return True


@transaction.atomic
def restock(*, stock_item_id: int, quantity: int, reason: str = "restock", reference: str = "") -> StockMovement:
    """Put units back on hand, e.g. after a cancellation or refund."""

    if quantity <= 0:
        raise ValidationError("Restock quantity must be positive.")
    return apply_movement(
        stock_item_id=stock_item_id,
        movement_type=StockMovement.TYPE_RESTOCK,
        quantity=int(quantity),
        reason=reason,
        reference=reference,
    )
