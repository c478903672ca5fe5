"""Cart serializers for read and write operations."""

from rest_framework import serializers

from .models import AppliedCoupon, Cart, CartItem


class CartItemReadSerializer(serializers.ModelSerializer):
    """Read serializer for a cart item."""

    product_title = serializers.CharField(source="product.title", read_only=True)
    variant_sku = serializers.CharField(source="variant.sku", read_only=True, default=None)
    effective_unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    line_total = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = CartItem
        fields = [
            "id",
            "product",
            "variant",
            "product_title",
            "variant_sku",
            "quantity",
            "unit_price",
            "customizations",
            "gift_wrap",
            "effective_unit_price",
            "line_total",
        ]


class AppliedCouponSerializer(serializers.ModelSerializer):
    class Meta:
        model = AppliedCoupon
        fields = ["code", "discount_type", "discount_amount"]


class CartReadSerializer(serializers.ModelSerializer):
    """Read serializer for the cart, its items and its cached totals."""

    items = CartItemReadSerializer(many=True, read_only=True)
    applied_coupons = AppliedCouponSerializer(many=True, read_only=True)
    shipping_address = serializers.SerializerMethodField()

    class Meta:
        model = Cart
        fields = [
            "id",
            "status",
            "currency",
            "email",
            "shipping_address",
            "shipping_method",
            "items",
            "applied_coupons",
            "subtotal",
            "discount_amount",
            "tax_amount",
            "shipping_amount",
            "total",
            "item_count",
            "total_weight",
            "tax_breakdown",
            "version",
            "expires_at",
        ]

    def get_shipping_address(self, obj: Cart):
        address = obj.address
        return address.to_dict() if address else None


class CustomizationSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100)
    value = serializers.CharField(max_length=500, allow_blank=True)
    price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, default="0.00")


class GiftWrapSerializer(serializers.Serializer):
    enabled = serializers.BooleanField(default=True)
    message = serializers.CharField(max_length=500, allow_blank=True, required=False, default="")
    price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, default="0.00")


def _json_extras(data: dict) -> dict:
    return {key: str(value) if key == "price" else value for key, value in data.items()}


class AddItemSerializer(serializers.Serializer):
    """Write serializer for adding a product (or variant) to the cart."""

    product_id = serializers.IntegerField()
    variant_id = serializers.IntegerField(required=False, allow_null=True)
    quantity = serializers.IntegerField(min_value=1, default=1)
    customizations = CustomizationSerializer(many=True, required=False)
    gift_wrap = GiftWrapSerializer(required=False, allow_null=True)

    def validate(self, attrs):
        if attrs.get("customizations"):
            attrs["customizations"] = [_json_extras(c) for c in attrs["customizations"]]
        if attrs.get("gift_wrap"):
            attrs["gift_wrap"] = _json_extras(attrs["gift_wrap"])
        return attrs


class UpdateItemQuantitySerializer(serializers.Serializer):
    """Write serializer for updating a cart item quantity; 0 removes the line."""

    quantity = serializers.IntegerField(min_value=0)


class ShippingAddressSerializer(serializers.Serializer):
    country = serializers.CharField(max_length=2)
    state = serializers.CharField(max_length=40, required=False, allow_blank=True, default="")
    city = serializers.CharField(max_length=80, required=False, allow_blank=True, default="")
    postal_code = serializers.CharField(max_length=12, required=False, allow_blank=True, default="")
    line1 = serializers.CharField(max_length=200, required=False, allow_blank=True, default="")
    line2 = serializers.CharField(max_length=200, required=False, allow_blank=True, default="")
    name = serializers.CharField(max_length=200, required=False, allow_blank=True, default="")
    email = serializers.EmailField(required=False)


class ShippingMethodSelectSerializer(serializers.Serializer):
    method_id = serializers.IntegerField()


class CouponCodeSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=50)


class CheckoutSerializer(serializers.Serializer):
    address = ShippingAddressSerializer(required=False)
    email = serializers.EmailField(required=False)
