"""Admin registrations for coupons."""

from django.contrib import admin

from .models import Coupon


@admin.register(Coupon)
class CouponAdmin(admin.ModelAdmin):
    list_display = ("code", "discount_type", "value", "minimum_amount", "status", "used_count", "usage_limit")
    list_filter = ("status", "discount_type")
    search_fields = ("code", "description")
    readonly_fields = ("used_count",)
