"""Inventory models (single-location).

Stock is tracked per product, or per variant when the product has variants.
Counters are only ever changed through `inventory.services`, which express
every adjustment as a conditional `UPDATE`.
"""

from common.choices import MovementType, ReservationState
from django.db import models


class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class StockItem(TimeStampedModel):
    product = models.ForeignKey("catalog.Product", related_name="stock_items", on_delete=models.CASCADE)
    variant = models.ForeignKey(
        "catalog.ProductVariant", related_name="stock_items", null=True, blank=True, on_delete=models.CASCADE
    )
    quantity = models.IntegerField(default=0)
    reserved = models.IntegerField(default=0)
    track_inventory = models.BooleanField(default=True)
    allow_backorders = models.BooleanField(default=False)

    class Meta:
        ordering = ["-updated_at", "id"]
        constraints = [
            # Only tracked items without backorders are held to a non-negative on-hand count
            models.CheckConstraint(
                name="stock_non_negative_unless_backordered",
                condition=(
                    models.Q(quantity__gte=0) | models.Q(allow_backorders=True) | models.Q(track_inventory=False)
                ),
            ),
            models.CheckConstraint(name="reserved_non_negative", condition=models.Q(reserved__gte=0)),
            models.UniqueConstraint(
                fields=["product", "variant"],
                condition=models.Q(variant__isnull=False),
                name="unique_stockitem_per_variant",
            ),
            models.UniqueConstraint(
                fields=["product"],
                condition=models.Q(variant__isnull=True),
                name="unique_stockitem_per_product",
            ),
        ]
        indexes = [
            models.Index(fields=["product", "variant"]),
        ]

    def __str__(self) -> str:  # pragma: no cover
        target = self.variant_id or f"p{self.product_id}"
        return f"StockItem<{target}> q={self.quantity} r={self.reserved}"

    @property
    def available(self) -> int:
        return int(self.quantity) - int(self.reserved)

    @property
    def enforces_stock(self) -> bool:
        return self.track_inventory and not self.allow_backorders


class StockMovement(TimeStampedModel):
    TYPE_INBOUND = MovementType.INBOUND
    TYPE_OUTBOUND = MovementType.OUTBOUND
    TYPE_ADJUST = MovementType.ADJUST
    TYPE_RESTOCK = MovementType.RESTOCK
    TYPE_CHOICES = MovementType.choices

    stock_item = models.ForeignKey(StockItem, on_delete=models.CASCADE, related_name="movements")
    movement_type = models.CharField(max_length=16, choices=TYPE_CHOICES)
    quantity = models.IntegerField()  # signed: +inbound, -outbound
    reason = models.CharField(max_length=200, blank=True)
    reference = models.CharField(max_length=120, blank=True)

    class Meta:
        ordering = ["-created_at", "id"]
        constraints = [
            models.CheckConstraint(name="movement_non_zero", condition=~models.Q(quantity=0)),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.movement_type} {self.quantity} for {self.stock_item_id}"


class StockReservation(TimeStampedModel):
    STATE_ACTIVE = ReservationState.ACTIVE
    STATE_RELEASED = ReservationState.RELEASED
    STATE_CONVERTED = ReservationState.CONVERTED
    STATE_CHOICES = ReservationState.choices

    stock_item = models.ForeignKey(StockItem, on_delete=models.CASCADE, related_name="reservations")
    quantity = models.IntegerField()
    reference = models.CharField(max_length=120)
    state = models.CharField(max_length=16, choices=STATE_CHOICES, default=STATE_ACTIVE)
    expires_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at", "id"]
        constraints = [
            models.CheckConstraint(name="reservation_positive_qty", condition=models.Q(quantity__gt=0)),
        ]
        indexes = [
            models.Index(fields=["stock_item", "state"]),
            models.Index(fields=["expires_at"]),
            models.Index(fields=["reference"]),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"Reservation<{self.stock_item_id}> qty={self.quantity} state={self.state}"
