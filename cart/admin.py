"""Admin registration for cart models.

Provides admin interfaces for `Cart` and `CartItem`, with inline items and
applied coupons on the cart page for support staff.
"""

from common.exceptions import CommerceError
from django.contrib import admin, messages

from .models import AppliedCoupon, Cart, CartItem
from .services import abandon_cart, clear_cart, recompute_cart


class CartItemInline(admin.TabularInline):
    model = CartItem
    extra = 0
    fields = ("product", "variant", "quantity", "unit_price", "customizations", "gift_wrap", "updated_at")
    readonly_fields = ("unit_price", "updated_at")
    raw_id_fields = ("product", "variant")


class AppliedCouponInline(admin.TabularInline):
    model = AppliedCoupon
    extra = 0
    fields = ("code", "discount_type", "discount_amount")
    readonly_fields = fields
    can_delete = False


class OwnerTypeFilter(admin.SimpleListFilter):
    title = "owner type"
    parameter_name = "owner_type"

    def lookups(self, request, model_admin):
        return (
            ("user", "User carts"),
            ("guest", "Guest carts"),
        )

    def queryset(self, request, queryset):
        value = self.value()
        if value == "user":
            return queryset.filter(user__isnull=False)
        if value == "guest":
            return queryset.filter(user__isnull=True)
        return queryset


@admin.register(Cart)
class CartAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "session_id", "status", "total", "item_count", "version", "updated_at")
    list_filter = ("status", OwnerTypeFilter)
    search_fields = ("session_id", "user__username", "user__email", "email")
    ordering = ("-updated_at",)
    readonly_fields = (
        "subtotal",
        "discount_amount",
        "tax_amount",
        "shipping_amount",
        "total",
        "item_count",
        "total_weight",
        "tax_breakdown",
        "version",
        "created_at",
        "updated_at",
    )
    inlines = [CartItemInline, AppliedCouponInline]
    list_select_related = ("user",)
    actions = ["action_recompute", "action_clear_cart", "action_abandon_cart"]

    def _run(self, request, queryset, func, verb: str):
        successes = 0
        failures = 0
        for cart in queryset:
            try:
                func(cart_id=cart.id)
                successes += 1
            except CommerceError:
                failures += 1
        if successes:
            messages.success(request, f"{verb} {successes} cart(s).")
        if failures:
            messages.error(request, f"Skipped {failures} inactive or expired cart(s).")

    @admin.action(description="Recompute totals")
    def action_recompute(self, request, queryset):
        self._run(request, queryset, recompute_cart, "Recomputed")

    @admin.action(description="Clear cart (keep status active)")
    def action_clear_cart(self, request, queryset):
        self._run(request, queryset, clear_cart, "Cleared")

    @admin.action(description="Abandon cart")
    def action_abandon_cart(self, request, queryset):
        self._run(request, queryset, abandon_cart, "Abandoned")


@admin.register(CartItem)
class CartItemAdmin(admin.ModelAdmin):
    list_display = ("id", "cart", "product", "variant", "quantity", "unit_price", "updated_at")
    search_fields = ("product__title", "variant__sku", "cart__user__email", "cart__session_id")
    ordering = ("id",)
    readonly_fields = ("created_at", "updated_at")
    raw_id_fields = ("cart", "product", "variant")
