"""Order app models.

An order is created once, at checkout, from a validated cart. Addresses,
shipping method, coupons and line items are frozen as snapshots so later
catalog changes never alter a placed order. Status, payment status and
fulfillment status move independently.
"""

from decimal import Decimal

from common.choices import FulfillmentStatus, LineFulfillmentStatus, OrderStatus, PaymentStatus
from django.conf import settings
from django.db import models
from django.utils import timezone


class TimeStampedModel(models.Model):
    """Abstract base model adding created/updated timestamps."""

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class Order(TimeStampedModel):
    """Purchase order capturing a snapshot of a checkout.

    Totals are denormalized to support reporting and auditability.
    """

    STATUS_PENDING = OrderStatus.PENDING
    STATUS_CONFIRMED = OrderStatus.CONFIRMED
    STATUS_PROCESSING = OrderStatus.PROCESSING
    STATUS_SHIPPED = OrderStatus.SHIPPED
    STATUS_DELIVERED = OrderStatus.DELIVERED
    STATUS_CANCELLED = OrderStatus.CANCELLED
    STATUS_REFUNDED = OrderStatus.REFUNDED
    STATUS_CHOICES = OrderStatus.choices

    PAYMENT_PENDING = PaymentStatus.PENDING
    PAYMENT_PAID = PaymentStatus.PAID
    PAYMENT_FAILED = PaymentStatus.FAILED
    PAYMENT_CANCELLED = PaymentStatus.CANCELLED
    PAYMENT_REFUNDED = PaymentStatus.REFUNDED
    PAYMENT_PARTIALLY_REFUNDED = PaymentStatus.PARTIALLY_REFUNDED

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, related_name="orders", null=True, blank=True, on_delete=models.SET_NULL
    )
    session_id = models.CharField(max_length=64, null=True, blank=True, db_index=True)
    number = models.CharField(max_length=32, unique=True, null=True, blank=True, db_index=True)
    email = models.EmailField(null=True, blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    payment_status = models.CharField(
        max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING, db_index=True
    )
    fulfillment_status = models.CharField(
        max_length=16, choices=FulfillmentStatus.choices, default=FulfillmentStatus.UNFULFILLED
    )

    currency = models.CharField(max_length=3)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    shipping_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    refunded_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    shipping_address = models.JSONField(default=dict)
    billing_address = models.JSONField(default=dict, blank=True)
    shipping_method = models.JSONField(null=True, blank=True)
    applied_coupons = models.JSONField(default=list, blank=True)
    tax_breakdown = models.JSONField(default=list, blank=True)

    payment_method = models.CharField(max_length=50, blank=True)
    payment_reference = models.CharField(max_length=120, blank=True)
    tracking_numbers = models.JSONField(default=list, blank=True)
    notes = models.TextField(blank=True)

    placed_at = models.DateTimeField(null=True, blank=True)
    confirmed_at = models.DateTimeField(null=True, blank=True)
    shipped_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-id"]
        indexes = [
            models.Index(fields=["user", "status", "created_at"]),
            models.Index(fields=["status", "payment_status"]),
        ]
        constraints = [
            models.CheckConstraint(
                name="order_refund_within_total",
                condition=models.Q(refunded_amount__gte=0, refunded_amount__lte=models.F("total")),
            ),
            models.CheckConstraint(name="order_total_non_negative", condition=models.Q(total__gte=0)),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"Order#{self.id} user={self.user_id} status={self.status}"

    @property
    def is_paid(self) -> bool:
        return self.payment_status in (self.PAYMENT_PAID, self.PAYMENT_PARTIALLY_REFUNDED)

    @property
    def can_cancel(self) -> bool:
        return self.status in (self.STATUS_PENDING, self.STATUS_CONFIRMED) and not self.is_paid

    @property
    def can_refund(self) -> bool:
        return self.is_paid and self.status not in (self.STATUS_CANCELLED, self.STATUS_REFUNDED)

    @property
    def refundable_amount(self) -> Decimal:
        return (self.total or Decimal("0.00")) - (self.refunded_amount or Decimal("0.00"))


class OrderItem(TimeStampedModel):
    """Line item within an order.

    `snapshot` freezes catalog data (name, slug, sku, image, weight,
    dimensions, attributes, categories) at checkout.
    """

    order = models.ForeignKey(Order, related_name="items", on_delete=models.CASCADE)
    product = models.ForeignKey(
        "catalog.Product", related_name="order_items", null=True, blank=True, on_delete=models.SET_NULL
    )
    variant = models.ForeignKey(
        "catalog.ProductVariant", related_name="order_items", null=True, blank=True, on_delete=models.SET_NULL
    )
    product_title = models.CharField(max_length=200, blank=True)
    variant_sku = models.CharField(max_length=64, blank=True)
    snapshot = models.JSONField(default=dict)
    is_digital = models.BooleanField(default=False)
    quantity = models.PositiveIntegerField(default=1)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    customizations = models.JSONField(default=list, blank=True)
    gift_wrap = models.JSONField(null=True, blank=True)
    line_total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    fulfillment_status = models.CharField(
        max_length=16, choices=LineFulfillmentStatus.choices, default=LineFulfillmentStatus.UNFULFILLED
    )
    shipped_quantity = models.PositiveIntegerField(default=0)
    refunded_quantity = models.PositiveIntegerField(default=0)
    refunded_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    reservation = models.ForeignKey(
        "inventory.StockReservation",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="order_items",
    )

    class Meta:
        ordering = ["id"]
        indexes = [
            models.Index(fields=["order", "product", "variant"]),
        ]
        constraints = [
            models.CheckConstraint(name="orderitem_price_non_negative", condition=models.Q(unit_price__gte=0)),
            models.CheckConstraint(
                name="orderitem_refunded_le_quantity",
                condition=models.Q(refunded_quantity__lte=models.F("quantity")),
            ),
            models.CheckConstraint(
                name="orderitem_shipped_le_unrefunded",
                condition=models.Q(
                    shipped_quantity__lte=models.F("quantity") - models.F("refunded_quantity")
                ),
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"OrderItem#{self.id} order={self.order_id} product={self.product_id} qty={self.quantity}"

    @property
    def open_quantity(self) -> int:
        """Units not yet refunded."""
        return int(self.quantity) - int(self.refunded_quantity)


class DigitalDownload(TimeStampedModel):
    """Download link issued for a digital order line.

    A link stops working once `expires_at` passes or `download_count`
    reaches `download_limit`; unset bounds never block.
    """

    order_item = models.ForeignKey(OrderItem, related_name="downloads", on_delete=models.CASCADE)
    name = models.CharField(max_length=200)
    url = models.URLField(max_length=500)
    expires_at = models.DateTimeField(null=True, blank=True)
    download_limit = models.PositiveIntegerField(null=True, blank=True)
    download_count = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.CheckConstraint(
                name="download_count_within_limit",
                condition=models.Q(download_limit__isnull=True)
                | models.Q(download_count__lte=models.F("download_limit")),
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.name} (item={self.order_item_id})"

    def blocked_reason(self, at=None):
        """Why the link cannot be used right now, or None when it can."""
        if self.expires_at and self.expires_at < (at or timezone.now()):
            return "Download link has expired."
        if self.download_limit is not None and self.download_count >= self.download_limit:
            return "Download limit exceeded."
        return None


class IdempotencyKey(TimeStampedModel):
    """Stores idempotent request results to prevent duplicate processing."""

    key = models.CharField(max_length=128)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.CASCADE)
    scope = models.CharField(max_length=128)
    path = models.CharField(max_length=255)
    method = models.CharField(max_length=16)
    request_hash = models.CharField(max_length=64, null=True, blank=True)
    response_code = models.IntegerField(null=True, blank=True)
    response_json = models.JSONField(null=True, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["key", "scope", "path", "method"], name="uniq_idem_scope_path_method"),
        ]
