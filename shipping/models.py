"""Shipping zones, methods and rate tiers.

A zone describes geographic coverage as a list of countries, each optionally
narrowed by states and postal code patterns. A method prices delivery into
one or more zones using a strategy; tiered strategies own `ShippingRateTier`
rows.
"""

from common.choices import ActiveInactive, ShippingStrategy
from common.postal import invalid_postal_patterns, matches_postal_code
from django.core.exceptions import ValidationError
from django.db import models, transaction


class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class ShippingZone(TimeStampedModel):
    """Coverage entries look like::

        [{"code": "US", "states": [{"code": "CA", "postal_codes": ["90*"]}], "postal_codes": []}]
    """

    STATUS_ACTIVE = ActiveInactive.ACTIVE
    STATUS_INACTIVE = ActiveInactive.INACTIVE
    STATUS_CHOICES = ActiveInactive.choices

    name = models.CharField(max_length=100)
    description = models.CharField(max_length=500, blank=True)
    countries = models.JSONField(default=list)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_ACTIVE, db_index=True)
    priority = models.IntegerField(default=0)
    is_default = models.BooleanField(default=False)

    class Meta:
        ordering = ["-priority", "name"]
        constraints = [
            models.UniqueConstraint(
                fields=["is_default"],
                condition=models.Q(is_default=True, status="active"),
                name="single_active_default_zone",
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return self.name

    def clean(self):
        if not isinstance(self.countries, list) or not self.countries:
            raise ValidationError({"countries": "At least one country must be specified."})
        for entry in self.countries:
            code = str(entry.get("code", "")) if isinstance(entry, dict) else ""
            if len(code.strip()) != 2:
                raise ValidationError({"countries": f"Invalid country code: {code!r}. Must be 2 characters."})
            patterns = list(entry.get("postal_codes") or [])
            for state in entry.get("states") or []:
                patterns.extend(state.get("postal_codes") or [] if isinstance(state, dict) else [])
            bad = invalid_postal_patterns(patterns)
            if bad:
                raise ValidationError({"countries": f"Only one * wildcard is allowed per pattern: {bad}"})

    def save(self, *args, **kwargs):
        self.countries = [_normalize_country(entry) for entry in (self.countries or [])]
        with transaction.atomic():
            if self.is_default and self.status == self.STATUS_ACTIVE:
                ShippingZone.objects.filter(is_default=True, status=self.STATUS_ACTIVE).exclude(pk=self.pk).update(
                    is_default=False
                )
            super().save(*args, **kwargs)

    @property
    def country_codes(self) -> list[str]:
        return [entry["code"] for entry in self.countries]

    def covers(self, address) -> bool:
        """True when the address falls inside this zone's coverage."""

        entry = next((c for c in self.countries if c["code"] == address.country), None)
        if entry is None:
            return False
        states = entry.get("states") or []
        if not address.state or not states:
            return matches_postal_code(address.postal_code, entry.get("postal_codes"))
        state = next((s for s in states if s["code"] == address.state), None)
        if state is None:
            return False
        return matches_postal_code(address.postal_code, state.get("postal_codes"))


def _normalize_country(entry: dict) -> dict:
    entry = dict(entry)
    entry["code"] = str(entry.get("code", "")).strip().upper()
    entry["states"] = [
        {**state, "code": str(state.get("code", "")).strip().upper()} for state in entry.get("states") or []
    ]
    entry["postal_codes"] = [str(p).strip().upper() for p in entry.get("postal_codes") or []]
    return entry


class ShippingMethod(TimeStampedModel):
    STATUS_ACTIVE = ActiveInactive.ACTIVE
    STATUS_INACTIVE = ActiveInactive.INACTIVE
    STATUS_CHOICES = ActiveInactive.choices

    STRATEGY_FLAT_RATE = ShippingStrategy.FLAT_RATE
    STRATEGY_WEIGHT_BASED = ShippingStrategy.WEIGHT_BASED
    STRATEGY_PRICE_BASED = ShippingStrategy.PRICE_BASED
    STRATEGY_QUANTITY_BASED = ShippingStrategy.QUANTITY_BASED
    STRATEGY_FREE = ShippingStrategy.FREE
    STRATEGY_CALCULATED = ShippingStrategy.CALCULATED

    name = models.CharField(max_length=100)
    description = models.CharField(max_length=500, blank=True)
    carrier = models.CharField(max_length=50, blank=True)
    strategy = models.CharField(max_length=20, choices=ShippingStrategy.choices, db_index=True)
    cost = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    free_shipping_threshold = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    min_order_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    max_order_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    min_weight = models.DecimalField(max_digits=10, decimal_places=3, null=True, blank=True)
    max_weight = models.DecimalField(max_digits=10, decimal_places=3, null=True, blank=True)
    zones = models.ManyToManyField(ShippingZone, related_name="methods", blank=True)
    estimated_days_min = models.PositiveIntegerField(default=1)
    estimated_days_max = models.PositiveIntegerField(default=5)
    tracking_available = models.BooleanField(default=False)
    signature_required = models.BooleanField(default=False)
    insurance_available = models.BooleanField(default=False)
    taxable = models.BooleanField(default=False)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_ACTIVE, db_index=True)
    sort_order = models.IntegerField(default=0)
    api_provider = models.CharField(max_length=50, blank=True)
    api_service_code = models.CharField(max_length=50, blank=True)

    class Meta:
        ordering = ["sort_order", "name"]
        constraints = [
            models.CheckConstraint(
                name="shipping_days_min_le_max",
                condition=models.Q(estimated_days_min__lte=models.F("estimated_days_max")),
            ),
            models.CheckConstraint(name="shipping_cost_non_negative", condition=models.Q(cost__gte=0)),
        ]
        indexes = [
            models.Index(fields=["status", "sort_order"]),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return self.name

    def clean(self):
        if self.estimated_days_min > self.estimated_days_max:
            raise ValidationError("Minimum estimated days cannot be greater than maximum.")
        if self.strategy == self.STRATEGY_CALCULATED and not self.api_service_code:
            raise ValidationError({"api_service_code": "Calculated shipping requires a service code."})

    def snapshot(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "carrier": self.carrier,
            "strategy": self.strategy,
            "estimated_days_min": self.estimated_days_min,
            "estimated_days_max": self.estimated_days_max,
            "tracking_available": self.tracking_available,
        }


class ShippingRateTier(TimeStampedModel):
    """One `[minimum, maximum)` band of a tiered method.

    The metric is weight, subtotal or quantity depending on the method's
    strategy. A NULL maximum leaves the band open-ended.
    """

    method = models.ForeignKey(ShippingMethod, related_name="tiers", on_delete=models.CASCADE)
    minimum = models.DecimalField(max_digits=12, decimal_places=3, default=0)
    maximum = models.DecimalField(max_digits=12, decimal_places=3, null=True, blank=True)
    rate = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        ordering = ["method", "minimum"]
        constraints = [
            models.CheckConstraint(name="tier_minimum_non_negative", condition=models.Q(minimum__gte=0)),
            models.CheckConstraint(name="tier_rate_non_negative", condition=models.Q(rate__gte=0)),
            models.CheckConstraint(
                name="tier_min_lt_max",
                condition=models.Q(maximum__isnull=True) | models.Q(minimum__lt=models.F("maximum")),
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover
        upper = self.maximum if self.maximum is not None else "+"
        return f"{self.method_id}: [{self.minimum}, {upper}) = {self.rate}"
