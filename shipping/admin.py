"""Admin registrations for shipping zones and methods."""

from django.contrib import admin

from .models import ShippingMethod, ShippingRateTier, ShippingZone


@admin.register(ShippingZone)
class ShippingZoneAdmin(admin.ModelAdmin):
    list_display = ("name", "status", "priority", "is_default")
    list_filter = ("status", "is_default")
    search_fields = ("name",)


class ShippingRateTierInline(admin.TabularInline):
    model = ShippingRateTier
    extra = 0


@admin.register(ShippingMethod)
class ShippingMethodAdmin(admin.ModelAdmin):
    list_display = ("name", "carrier", "strategy", "cost", "free_shipping_threshold", "taxable", "status")
    list_filter = ("status", "strategy", "taxable")
    search_fields = ("name", "carrier")
    filter_horizontal = ("zones",)
    inlines = [ShippingRateTierInline]
