"""DRF serializers for Orders.

Order responses expose the stored snapshot: totals, addresses and line data
are what was frozen at checkout, never re-derived from the catalog.
"""

from common.choices import OrderStatus
from rest_framework import serializers

from .models import DigitalDownload, Order, OrderItem


class DigitalDownloadSerializer(serializers.ModelSerializer):
    """Link metadata; the url itself is handed out by the download endpoint."""

    class Meta:
        model = DigitalDownload
        fields = ["id", "name", "expires_at", "download_limit", "download_count"]
        read_only_fields = fields


class OrderItemSerializer(serializers.ModelSerializer):
    downloads = DigitalDownloadSerializer(many=True, read_only=True)

    class Meta:
        model = OrderItem
        fields = [
            "id",
            "product",
            "variant",
            "product_title",
            "variant_sku",
            "snapshot",
            "is_digital",
            "quantity",
            "unit_price",
            "customizations",
            "gift_wrap",
            "line_total",
            "fulfillment_status",
            "shipped_quantity",
            "refunded_quantity",
            "refunded_amount",
            "downloads",
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """API representation for an order with its line items."""

    items = OrderItemSerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "number",
            "status",
            "payment_status",
            "fulfillment_status",
            "email",
            "currency",
            "subtotal",
            "discount_amount",
            "tax_amount",
            "shipping_amount",
            "total",
            "refunded_amount",
            "shipping_address",
            "billing_address",
            "shipping_method",
            "applied_coupons",
            "tax_breakdown",
            "payment_method",
            "tracking_numbers",
            "placed_at",
            "confirmed_at",
            "shipped_at",
            "delivered_at",
            "cancelled_at",
            "refunded_at",
            "created_at",
            "items",
        ]
        read_only_fields = fields


class PayOrderSerializer(serializers.Serializer):
    payment_method = serializers.CharField(max_length=50, default="manual")


class TransitionSerializer(serializers.Serializer):
    """Target status plus optional shipment tracking."""

    status = serializers.ChoiceField(
        choices=[
            OrderStatus.CONFIRMED,
            OrderStatus.PROCESSING,
            OrderStatus.SHIPPED,
            OrderStatus.DELIVERED,
            OrderStatus.CANCELLED,
        ]
    )
    carrier = serializers.CharField(max_length=50, required=False)
    tracking_number = serializers.CharField(max_length=120, required=False)
    url = serializers.URLField(required=False)
    reason = serializers.CharField(max_length=500, required=False)


class CancelOrderSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True)


class AddDownloadSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=200)
    url = serializers.URLField(max_length=500)
    expires_at = serializers.DateTimeField(required=False, allow_null=True)
    download_limit = serializers.IntegerField(required=False, allow_null=True, min_value=1)


class RefundSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, min_value=0)
    items = serializers.DictField(child=serializers.IntegerField(min_value=1), required=False)

    def validate_items(self, value):
        try:
            return {int(k): v for k, v in value.items()}
        except (TypeError, ValueError):
            raise serializers.ValidationError("Item keys must be order item ids.")
