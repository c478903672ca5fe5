"""Admin registrations for tax rates."""

from django.contrib import admin

from .models import TaxRate


@admin.register(TaxRate)
class TaxRateAdmin(admin.ModelAdmin):
    list_display = ("name", "rate", "country", "state", "city", "tax_class", "compound", "priority", "status")
    list_filter = ("status", "country", "tax_class", "compound", "apply_to_shipping")
    search_fields = ("name", "country", "state", "city")
    filter_horizontal = ("applicable_categories", "excluded_categories")
