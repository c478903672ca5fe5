"""URL routes for the orders app (v1)."""

from django.urls import path

from .views import (
    OrderCancelView,
    OrderDetailView,
    OrderDownloadView,
    OrderItemDownloadCreateView,
    OrderListView,
    OrderPayView,
    OrderRefundView,
    OrderTransitionView,
)

app_name = "orders"

urlpatterns = [
    path("", OrderListView.as_view(), name="order-list"),
    path("<int:order_id>/", OrderDetailView.as_view(), name="order-detail"),
    path("<int:order_id>/pay/", OrderPayView.as_view(), name="order-pay"),
    path("<int:order_id>/cancel/", OrderCancelView.as_view(), name="order-cancel"),
    path("<int:order_id>/transition/", OrderTransitionView.as_view(), name="order-transition"),
    path("<int:order_id>/refund/", OrderRefundView.as_view(), name="order-refund"),
    path(
        "<int:order_id>/items/<int:item_id>/downloads/",
        OrderItemDownloadCreateView.as_view(),
        name="order-item-download-create",
    ),
    path("<int:order_id>/downloads/<int:download_id>/", OrderDownloadView.as_view(), name="order-download"),
]
