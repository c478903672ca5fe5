from django.contrib import admin

from .models import DigitalDownload, IdempotencyKey, Order, OrderItem


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    fields = (
        "product_title",
        "variant_sku",
        "quantity",
        "unit_price",
        "line_total",
        "fulfillment_status",
        "shipped_quantity",
        "refunded_quantity",
    )
    readonly_fields = fields
    can_delete = False


class DigitalDownloadInline(admin.TabularInline):
    model = DigitalDownload
    extra = 0
    fields = ("name", "url", "expires_at", "download_limit", "download_count")
    readonly_fields = ("download_count",)


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("id", "number", "status", "payment_status", "fulfillment_status", "total", "user", "created_at")
    list_filter = ("status", "payment_status", "fulfillment_status", "created_at")
    search_fields = ("number", "email", "payment_reference")
    date_hierarchy = "created_at"
    inlines = [OrderItemInline]
    readonly_fields = (
        "subtotal",
        "discount_amount",
        "tax_amount",
        "shipping_amount",
        "total",
        "refunded_amount",
        "shipping_address",
        "shipping_method",
        "applied_coupons",
        "tax_breakdown",
    )


@admin.register(OrderItem)
class OrderItemAdmin(admin.ModelAdmin):
    list_display = ("id", "order", "product_title", "variant_sku", "quantity", "unit_price", "fulfillment_status")
    list_filter = ("fulfillment_status",)
    search_fields = ("variant_sku", "product_title", "order__number")
    inlines = [DigitalDownloadInline]


@admin.register(IdempotencyKey)
class IdempotencyKeyAdmin(admin.ModelAdmin):
    list_display = ("id", "key", "scope", "path", "method", "response_code", "created_at")
    list_filter = ("method", "response_code", "created_at")
    search_fields = ("key", "scope", "path")
    date_hierarchy = "created_at"
