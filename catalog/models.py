"""Catalog app models.

The catalog is a collaborator of the pricing engine: it supplies current
prices, weights, tax-relevant flags and the data frozen into order line
snapshots. Categories, attributes, products, variants and media live here.
"""

from decimal import Decimal

from common.choices import ActiveInactive, DraftPublished, TaxClass
from django.db import models


class TimeStampedModel(models.Model):
    """Abstract base model adding created/updated timestamps."""

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class Category(TimeStampedModel):
    """Hierarchical product categorization."""

    name = models.CharField(max_length=120)
    slug = models.SlugField(max_length=140, unique=True)
    description = models.TextField(blank=True)
    parent = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        related_name="children",
        on_delete=models.SET_NULL,
    )
    is_active = models.BooleanField(default=True, db_index=True)
    sort_order = models.IntegerField(default=0)

    class Meta:
        ordering = ["sort_order", "name"]

    def __str__(self) -> str:  # pragma: no cover
        return self.name


class Attribute(TimeStampedModel):
    """Product attribute definition (e.g., color, size)."""

    name = models.CharField(max_length=120)
    code = models.CharField(max_length=64, unique=True)
    sort_order = models.IntegerField(default=0)

    class Meta:
        ordering = ["sort_order", "name"]

    def __str__(self) -> str:  # pragma: no cover
        return self.name


class Product(TimeStampedModel):
    """Core product entity.

    `price` is the fallback for variants without their own price. Weight is
    in kilograms and dimensions in `dimension_unit`.
    """

    STATUS_DRAFT = DraftPublished.DRAFT
    STATUS_PUBLISHED = DraftPublished.PUBLISHED
    STATUS_CHOICES = DraftPublished.choices

    UNIT_CM = "cm"
    UNIT_IN = "in"
    UNIT_CHOICES = [(UNIT_CM, "Centimetres"), (UNIT_IN, "Inches")]

    title = models.CharField(max_length=200)
    slug = models.SlugField(max_length=220, unique=True)
    sku = models.CharField(max_length=64, unique=True)
    description = models.TextField(blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_DRAFT, db_index=True)
    categories = models.ManyToManyField(Category, related_name="products", blank=True)
    price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    weight = models.DecimalField(max_digits=10, decimal_places=3, null=True, blank=True)
    length = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    width = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    height = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    dimension_unit = models.CharField(max_length=2, choices=UNIT_CHOICES, default=UNIT_CM)
    is_digital = models.BooleanField(default=False)
    tax_class = models.CharField(max_length=16, choices=TaxClass.choices, default=TaxClass.STANDARD)

    class Meta:
        ordering = ["title"]
        constraints = [
            models.CheckConstraint(name="product_price_non_negative", condition=models.Q(price__gte=0)),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return self.title

    @property
    def dimensions(self):
        if self.length is None or self.width is None or self.height is None:
            return None
        return {
            "length": str(self.length),
            "width": str(self.width),
            "height": str(self.height),
            "unit": self.dimension_unit,
        }


class ProductVariant(TimeStampedModel):
    """Variant SKU under a product (e.g., size/color)."""

    STATUS_ACTIVE = ActiveInactive.ACTIVE
    STATUS_INACTIVE = ActiveInactive.INACTIVE
    STATUS_CHOICES = ActiveInactive.choices

    product = models.ForeignKey(Product, related_name="variants", on_delete=models.CASCADE)
    sku = models.CharField(max_length=64, unique=True)
    price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    weight = models.DecimalField(max_digits=10, decimal_places=3, null=True, blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_ACTIVE)

    class Meta:
        ordering = ["sku"]
        constraints = [
            models.CheckConstraint(
                name="variant_price_non_negative",
                condition=models.Q(price__gte=0) | models.Q(price__isnull=True),
            ),
        ]
        indexes = [
            models.Index(fields=["product", "status"]),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.product.title} [{self.sku}]"


class ProductAttributeValue(TimeStampedModel):
    """Assigned attribute values to products or variants."""

    attribute = models.ForeignKey(Attribute, related_name="values", on_delete=models.CASCADE)
    product = models.ForeignKey(
        Product, related_name="attribute_values", null=True, blank=True, on_delete=models.CASCADE
    )
    variant = models.ForeignKey(
        ProductVariant, related_name="attribute_values", null=True, blank=True, on_delete=models.CASCADE
    )
    value = models.TextField()

    class Meta:
        ordering = ["attribute__sort_order", "attribute__name"]
        constraints = [
            models.CheckConstraint(
                name="pav_xor_product_variant",
                condition=(
                    models.Q(product__isnull=False, variant__isnull=True)
                    | models.Q(product__isnull=True, variant__isnull=False)
                ),
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover
        target = self.variant.sku if self.variant else (self.product.title if self.product else "-")
        return f"{self.attribute.code}={self.value} ({target})"


class Media(TimeStampedModel):
    """Product or variant imagery (URL-based)."""

    product = models.ForeignKey(Product, related_name="media", on_delete=models.CASCADE)
    variant = models.ForeignKey(ProductVariant, related_name="media", null=True, blank=True, on_delete=models.CASCADE)
    url = models.URLField()
    alt_text = models.CharField(max_length=200, blank=True)
    is_primary = models.BooleanField(default=False)
    sort_order = models.IntegerField(default=0)

    class Meta:
        ordering = ["sort_order", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["product"],
                condition=models.Q(is_primary=True, variant__isnull=True),
                name="unique_primary_media_per_product",
            ),
            models.UniqueConstraint(
                fields=["variant"],
                condition=models.Q(is_primary=True),
                name="unique_primary_media_per_variant",
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return self.url
