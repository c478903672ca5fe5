"""Tax rate definitions.

A rate is scoped to a country and optionally narrowed by state, city and
postal code patterns. `rate` is a percentage (8.25 means 8.25%).
"""

from common.choices import ActiveInactive, TaxClass, TaxType
from common.postal import invalid_postal_patterns, matches_postal_code
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone


class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class TaxRate(TimeStampedModel):
    STATUS_ACTIVE = ActiveInactive.ACTIVE
    STATUS_INACTIVE = ActiveInactive.INACTIVE
    STATUS_CHOICES = ActiveInactive.choices

    TYPE_INCLUSIVE = TaxType.INCLUSIVE
    TYPE_EXCLUSIVE = TaxType.EXCLUSIVE

    name = models.CharField(max_length=100)
    description = models.CharField(max_length=500, blank=True)
    rate = models.DecimalField(
        max_digits=7,
        decimal_places=4,
        validators=[MinValueValidator(0), MaxValueValidator(100)],
    )
    type = models.CharField(max_length=16, choices=TaxType.choices, default=TaxType.EXCLUSIVE)
    country = models.CharField(max_length=2, db_index=True)
    state = models.CharField(max_length=40, blank=True, db_index=True)
    city = models.CharField(max_length=80, blank=True)
    postal_codes = models.JSONField(default=list, blank=True)
    apply_to_shipping = models.BooleanField(default=False)
    apply_to_digital = models.BooleanField(default=True)
    applicable_categories = models.ManyToManyField(
        "catalog.Category", related_name="applicable_tax_rates", blank=True
    )
    excluded_categories = models.ManyToManyField("catalog.Category", related_name="excluded_tax_rates", blank=True)
    tax_class = models.CharField(max_length=16, choices=TaxClass.choices, default=TaxClass.STANDARD, db_index=True)
    priority = models.IntegerField(default=0)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_ACTIVE, db_index=True)
    effective_from = models.DateTimeField(null=True, blank=True)
    effective_to = models.DateTimeField(null=True, blank=True)
    compound = models.BooleanField(default=False)

    class Meta:
        ordering = ["country", "state", "city", "-priority"]
        constraints = [
            models.CheckConstraint(
                name="tax_rate_between_0_and_100", condition=models.Q(rate__gte=0, rate__lte=100)
            ),
            models.CheckConstraint(
                name="tax_rate_effective_window",
                condition=(
                    models.Q(effective_from__isnull=True)
                    | models.Q(effective_to__isnull=True)
                    | models.Q(effective_from__lte=models.F("effective_to"))
                ),
            ),
        ]
        indexes = [
            models.Index(fields=["country", "state", "status"]),
            models.Index(fields=["status", "priority"]),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.name} ({self.rate}%)"

    def save(self, *args, **kwargs):
        self.country = (self.country or "").strip().upper()
        self.state = (self.state or "").strip().upper()
        self.city = (self.city or "").strip()
        self.postal_codes = [str(p).strip().upper() for p in (self.postal_codes or []) if str(p).strip()]
        super().save(*args, **kwargs)

    def clean(self):
        if self.city and not self.state:
            raise ValidationError({"state": "A city-scoped rate must also name its state."})
        if not isinstance(self.postal_codes, list):
            raise ValidationError({"postal_codes": "Postal codes must be a list of patterns."})
        bad = invalid_postal_patterns(self.postal_codes)
        if bad:
            raise ValidationError({"postal_codes": f"Only one * wildcard is allowed per pattern: {bad}"})

    @property
    def specificity(self) -> int:
        if self.city:
            return 2
        if self.state:
            return 1
        return 0

    def is_effective(self, at=None) -> bool:
        at = at or timezone.now()
        if self.effective_from and self.effective_from > at:
            return False
        if self.effective_to and self.effective_to < at:
            return False
        return True

    def matches_location(self, address) -> bool:
        if self.country != address.country:
            return False
        if self.city and not self.state:
            return False
        if self.state and self.state != address.state:
            return False
        if self.city and self.city.casefold() != address.city.casefold():
            return False
        return matches_postal_code(address.postal_code, self.postal_codes)
