"""Cart URL routes (v1)."""

from django.urls import path

from .views import (
    CartAbandonView,
    CartAddItemView,
    CartAddressView,
    CartCheckoutView,
    CartClearView,
    CartCouponDeleteView,
    CartCouponView,
    CartDetailView,
    CartItemDeleteView,
    CartItemUpdateView,
    CartShippingMethodView,
    CartShippingOptionsView,
    MergeGuestCartView,
)

app_name = "cart"

urlpatterns = [
    path("", CartDetailView.as_view(), name="cart-detail"),
    path("items/", CartAddItemView.as_view(), name="cart-add-item"),
    path("items/<int:item_id>/", CartItemUpdateView.as_view(), name="cart-update-item"),
    path("items/<int:item_id>/delete/", CartItemDeleteView.as_view(), name="cart-delete-item"),
    path("address/", CartAddressView.as_view(), name="cart-address"),
    path("shipping-options/", CartShippingOptionsView.as_view(), name="cart-shipping-options"),
    path("shipping-method/", CartShippingMethodView.as_view(), name="cart-shipping-method"),
    path("coupons/", CartCouponView.as_view(), name="cart-apply-coupon"),
    path("coupons/<str:code>/", CartCouponDeleteView.as_view(), name="cart-remove-coupon"),
    path("checkout/", CartCheckoutView.as_view(), name="cart-checkout"),
    path("abandon/", CartAbandonView.as_view(), name="cart-abandon"),
    path("clear/", CartClearView.as_view(), name="cart-clear"),
    path("merge-guest/", MergeGuestCartView.as_view(), name="cart-merge-guest"),
]
