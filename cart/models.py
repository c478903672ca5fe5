"""Cart app models.

A cart belongs either to a user or to a guest session, never both. Totals
are cached on the cart and only ever written by `cart.services`, which
recomputes them from line items, applied coupons, tax rates and the chosen
shipping method after every mutation.
"""

from decimal import Decimal

from common.address import Address
from common.choices import CartStatus
from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models


def default_currency() -> str:
    return settings.STORE_CURRENCY


class TimeStampedModel(models.Model):
    """Abstract base model adding created/updated timestamps."""

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class Cart(TimeStampedModel):
    """Shopping cart bound to a user or a guest `session_id`."""

    STATUS_ACTIVE = CartStatus.ACTIVE
    STATUS_ORDERED = CartStatus.ORDERED
    STATUS_ABANDONED = CartStatus.ABANDONED
    STATUS_EXPIRED = CartStatus.EXPIRED
    STATUS_CHOICES = CartStatus.choices

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, related_name="carts", null=True, blank=True, on_delete=models.CASCADE
    )
    session_id = models.CharField(max_length=64, null=True, blank=True, db_index=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_ACTIVE, db_index=True)
    currency = models.CharField(max_length=3, default=default_currency)
    email = models.EmailField(blank=True)

    # Destination, enough to resolve tax and shipping
    shipping_country = models.CharField(max_length=2, blank=True)
    shipping_state = models.CharField(max_length=40, blank=True)
    shipping_city = models.CharField(max_length=80, blank=True)
    shipping_postal_code = models.CharField(max_length=12, blank=True)
    shipping_method = models.ForeignKey(
        "shipping.ShippingMethod", null=True, blank=True, related_name="carts", on_delete=models.SET_NULL
    )

    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    shipping_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    item_count = models.PositiveIntegerField(default=0)
    total_weight = models.DecimalField(max_digits=12, decimal_places=3, default=Decimal("0"))
    tax_breakdown = models.JSONField(default=list, blank=True)

    version = models.PositiveIntegerField(default=0)
    expires_at = models.DateTimeField(null=True, blank=True, db_index=True)
    last_activity_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-updated_at"]
        indexes = [
            models.Index(fields=["user", "status"]),
            models.Index(fields=["session_id", "status"]),
        ]
        constraints = [
            models.CheckConstraint(
                name="cart_user_xor_session",
                condition=(
                    models.Q(user__isnull=False, session_id__isnull=True)
                    | models.Q(user__isnull=True, session_id__isnull=False)
                ),
            ),
            models.UniqueConstraint(
                fields=["user"],
                condition=models.Q(status="active", user__isnull=False),
                name="unique_active_cart_per_user",
            ),
            models.UniqueConstraint(
                fields=["session_id"],
                condition=models.Q(status="active", session_id__isnull=False),
                name="unique_active_cart_per_session",
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover
        owner = self.user_id or self.session_id
        return f"Cart#{self.id} ({owner})"

    def clean(self):
        if bool(self.user_id) == bool(self.session_id):
            raise ValidationError("A cart belongs to exactly one of a user or a guest session.")

    @property
    def is_guest(self) -> bool:
        return self.user_id is None

    @property
    def address(self):
        if not self.shipping_country:
            return None
        return Address(
            country=self.shipping_country,
            state=self.shipping_state,
            city=self.shipping_city,
            postal_code=self.shipping_postal_code,
        )


class CartItem(TimeStampedModel):
    """Line item for a product, or one of its variants.

    `unit_price` is the catalog price at the last recompute. Customizations
    (`[{"name", "value", "price"}]`) and an enabled gift wrap
    (`{"enabled", "message", "price"}`) add to the per-unit price.
    """

    cart = models.ForeignKey(Cart, related_name="items", on_delete=models.CASCADE)
    product = models.ForeignKey("catalog.Product", related_name="cart_items", on_delete=models.CASCADE)
    variant = models.ForeignKey(
        "catalog.ProductVariant", related_name="cart_items", null=True, blank=True, on_delete=models.CASCADE
    )
    quantity = models.PositiveIntegerField(default=1)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    customizations = models.JSONField(default=list, blank=True)
    gift_wrap = models.JSONField(null=True, blank=True)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.UniqueConstraint(
                fields=["cart", "product", "variant"],
                condition=models.Q(variant__isnull=False),
                name="unique_variant_per_cart",
            ),
            models.UniqueConstraint(
                fields=["cart", "product"],
                condition=models.Q(variant__isnull=True),
                name="unique_product_per_cart",
            ),
            models.CheckConstraint(
                name="quantity_positive",
                condition=models.Q(quantity__gte=1),
            ),
        ]
        indexes = [
            models.Index(fields=["cart", "product", "variant"]),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"CartItem#{self.id} cart={self.cart_id} product={self.product_id} qty={self.quantity}"

    @property
    def extras_price(self) -> Decimal:
        extras = sum((Decimal(str(c.get("price") or 0)) for c in self.customizations or []), Decimal("0"))
        if self.gift_wrap and self.gift_wrap.get("enabled"):
            extras += Decimal(str(self.gift_wrap.get("price") or 0))
        return extras

    @property
    def effective_unit_price(self) -> Decimal:
        return (self.unit_price or Decimal("0.00")) + self.extras_price

    @property
    def line_total(self) -> Decimal:
        return self.effective_unit_price * Decimal(int(self.quantity))


class AppliedCoupon(TimeStampedModel):
    """A coupon attached to a cart with its latest computed contribution."""

    cart = models.ForeignKey(Cart, related_name="applied_coupons", on_delete=models.CASCADE)
    coupon = models.ForeignKey("discounts.Coupon", related_name="applications", on_delete=models.CASCADE)
    code = models.CharField(max_length=50)
    discount_type = models.CharField(max_length=16)
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    class Meta:
        ordering = ["id"]
        constraints = [
            models.UniqueConstraint(fields=["cart", "coupon"], name="unique_coupon_per_cart"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.code} on Cart#{self.cart_id}"
