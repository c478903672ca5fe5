"""Coupon definitions.

`conditions` holds an optional list of predicates (see
`common.predicates`) evaluated against the cart at apply and recompute time.
"""

from common.choices import ActiveInactive, DiscountType
from common.exceptions import ValidationError as CommerceValidationError
from common.predicates import validate_conditions
from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone

# Variables a coupon condition may reference
CONDITION_FIELDS = ("subtotal", "item_count", "country", "state", "is_guest", "category_ids")


class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class Coupon(TimeStampedModel):
    STATUS_ACTIVE = ActiveInactive.ACTIVE
    STATUS_INACTIVE = ActiveInactive.INACTIVE
    STATUS_CHOICES = ActiveInactive.choices

    TYPE_PERCENTAGE = DiscountType.PERCENTAGE
    TYPE_FIXED = DiscountType.FIXED

    code = models.CharField(max_length=50, unique=True)
    description = models.CharField(max_length=255, blank=True)
    discount_type = models.CharField(max_length=16, choices=DiscountType.choices)
    value = models.DecimalField(max_digits=12, decimal_places=2)
    minimum_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    maximum_discount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_ACTIVE, db_index=True)
    starts_at = models.DateTimeField(null=True, blank=True)
    ends_at = models.DateTimeField(null=True, blank=True)
    usage_limit = models.PositiveIntegerField(null=True, blank=True)
    used_count = models.PositiveIntegerField(default=0)
    conditions = models.JSONField(default=list, blank=True)

    class Meta:
        ordering = ["code"]
        constraints = [
            models.CheckConstraint(name="coupon_value_positive", condition=models.Q(value__gt=0)),
            models.CheckConstraint(
                name="coupon_percentage_le_100",
                condition=~models.Q(discount_type="percentage") | models.Q(value__lte=100),
            ),
            models.CheckConstraint(
                name="coupon_usage_within_limit",
                condition=models.Q(usage_limit__isnull=True) | models.Q(used_count__lte=models.F("usage_limit")),
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return self.code

    def save(self, *args, **kwargs):
        self.code = normalize_code(self.code)
        super().save(*args, **kwargs)

    def clean(self):
        try:
            validate_conditions(self.conditions, CONDITION_FIELDS)
        except CommerceValidationError as exc:
            raise ValidationError({"conditions": exc.message})
        if self.starts_at and self.ends_at and self.starts_at > self.ends_at:
            raise ValidationError({"ends_at": "End must be after start."})

    def is_redeemable(self, at=None) -> bool:
        at = at or timezone.now()
        if self.status != self.STATUS_ACTIVE:
            return False
        if self.starts_at and self.starts_at > at:
            return False
        if self.ends_at and self.ends_at < at:
            return False
        if self.usage_limit is not None and self.used_count >= self.usage_limit:
            return False
        return True


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()
