"""DRF views for cart operations.

Authenticated users work on their own active cart. Guests identify their
cart with the `X-Session-Id` header. Engine errors are rendered as
`{"detail", "code"}` with the status their class carries.
"""

from common.api import error_response
from common.exceptions import CommerceError
from drf_spectacular.utils import OpenApiExample, OpenApiParameter, extend_schema, inline_serializer
from rest_framework import serializers as rf_serializers
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import Cart
from .selectors import get_active_cart_for_session, get_active_cart_for_user, shipping_options
from .serializers import (
    AddItemSerializer,
    CartReadSerializer,
    CheckoutSerializer,
    CouponCodeSerializer,
    ShippingAddressSerializer,
    ShippingMethodSelectSerializer,
    UpdateItemQuantitySerializer,
)
from .services import (
    abandon_cart,
    add_item,
    apply_coupon,
    checkout,
    clear_cart,
    merge_guest_cart,
    remove_coupon,
    remove_item,
    select_shipping_method,
    set_shipping_address,
    update_item_quantity,
)

SESSION_PARAMETER = OpenApiParameter(
    name="X-Session-Id",
    location=OpenApiParameter.HEADER,
    required=False,
    description="Guest session identifier; ignored for authenticated users",
    type=str,
)

ERROR_SHAPE = inline_serializer(
    name="CartError", fields={"detail": rf_serializers.CharField(), "code": rf_serializers.CharField()}
)


class MissingSession(CommerceError):
    code = "session_required"
    default_message = "Provide an X-Session-Id header or sign in."


def resolve_cart(request) -> Cart:
    """Active cart of the signed-in user, or of the guest session."""

    if request.user and request.user.is_authenticated:
        return get_active_cart_for_user(user=request.user)
    session_id = request.headers.get("X-Session-Id")
    if not session_id:
        raise MissingSession()
    return get_active_cart_for_session(session_id=session_id)


def _cart_response(cart_id: int, code: int = status.HTTP_200_OK) -> Response:
    cart = Cart.objects.prefetch_related("items__product", "items__variant", "applied_coupons").get(id=cart_id)
    return Response(CartReadSerializer(cart).data, status=code)


class CartView(APIView):
    """Base view: resolves the caller's cart and renders engine errors."""

    permission_classes = [AllowAny]
    throttle_scope = "cart_write"

    def handle_exception(self, exc):
        if isinstance(exc, CommerceError):
            return error_response(exc)
        return super().handle_exception(exc)


class CartDetailView(CartView):
    throttle_scope = "cart"

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Get active cart",
        description="Returns the caller's active cart with items, applied coupons and cached totals.",
        parameters=[SESSION_PARAMETER],
        responses={200: CartReadSerializer, 400: ERROR_SHAPE},
    )
    def get(self, request):
        cart = resolve_cart(request)
        return _cart_response(cart.id)


class CartAddItemView(CartView):
    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Add item to cart",
        description="Adds a product or variant; an existing line has its quantity increased.",
        request=AddItemSerializer,
        parameters=[SESSION_PARAMETER],
        responses={201: CartReadSerializer, 404: ERROR_SHAPE, 409: ERROR_SHAPE},
        examples=[OpenApiExample("Add", value={"product_id": 12, "quantity": 2}, request_only=True)],
    )
    def post(self, request):
        serializer = AddItemSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        cart = resolve_cart(request)
        add_item(cart_id=cart.id, **serializer.validated_data)
        return _cart_response(cart.id, status.HTTP_201_CREATED)


class CartItemUpdateView(CartView):
    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Update item quantity",
        description="Sets the line quantity; 0 removes the line.",
        request=UpdateItemQuantitySerializer,
        parameters=[SESSION_PARAMETER],
        responses={200: CartReadSerializer, 404: ERROR_SHAPE, 409: ERROR_SHAPE},
    )
    def patch(self, request, item_id: int):
        serializer = UpdateItemQuantitySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        cart = resolve_cart(request)
        update_item_quantity(cart_id=cart.id, item_id=item_id, quantity=serializer.validated_data["quantity"])
        return _cart_response(cart.id)


class CartItemDeleteView(CartView):
    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Remove item",
        parameters=[SESSION_PARAMETER],
        responses={200: CartReadSerializer},
    )
    def delete(self, request, item_id: int):
        cart = resolve_cart(request)
        remove_item(cart_id=cart.id, item_id=item_id)
        return _cart_response(cart.id)


class CartAddressView(CartView):
    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Set shipping address",
        description="Sets the destination used for tax and shipping and recomputes the cart.",
        request=ShippingAddressSerializer,
        parameters=[SESSION_PARAMETER],
        responses={200: CartReadSerializer, 400: ERROR_SHAPE},
        examples=[
            OpenApiExample(
                "Address", value={"country": "US", "state": "CA", "postal_code": "94107"}, request_only=True
            )
        ],
    )
    def put(self, request):
        serializer = ShippingAddressSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        email = data.pop("email", None)
        cart = resolve_cart(request)
        set_shipping_address(cart_id=cart.id, address=data, email=email)
        return _cart_response(cart.id)


class CartShippingOptionsView(CartView):
    throttle_scope = "cart"

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="List shipping options",
        description="Shipping methods available for the cart's address with price and delivery estimate.",
        parameters=[SESSION_PARAMETER],
        responses={
            200: inline_serializer(
                name="ShippingOption",
                many=True,
                fields={
                    "id": rf_serializers.IntegerField(),
                    "name": rf_serializers.CharField(),
                    "carrier": rf_serializers.CharField(),
                    "price": rf_serializers.DecimalField(max_digits=12, decimal_places=2),
                    "estimated_delivery": rf_serializers.CharField(),
                },
            )
        },
    )
    def get(self, request):
        cart = resolve_cart(request)
        data = [
            {
                "id": quote.method.id,
                "name": quote.method.name,
                "carrier": quote.method.carrier,
                "price": quote.price.amount,
                "estimated_delivery": quote.estimate.display,
                "earliest": quote.estimate.earliest,
                "latest": quote.estimate.latest,
            }
            for quote in shipping_options(cart=cart)
        ]
        return Response(data, status=status.HTTP_200_OK)


class CartShippingMethodView(CartView):
    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Select shipping method",
        request=ShippingMethodSelectSerializer,
        parameters=[SESSION_PARAMETER],
        responses={200: CartReadSerializer, 409: ERROR_SHAPE, 503: ERROR_SHAPE},
    )
    def put(self, request):
        serializer = ShippingMethodSelectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        cart = resolve_cart(request)
        select_shipping_method(cart_id=cart.id, method_id=serializer.validated_data["method_id"])
        return _cart_response(cart.id)


class CartCouponView(CartView):
    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Apply coupon",
        request=CouponCodeSerializer,
        parameters=[SESSION_PARAMETER],
        responses={200: CartReadSerializer, 400: ERROR_SHAPE, 409: ERROR_SHAPE},
        examples=[
            OpenApiExample("Apply", value={"code": "SAVE10"}, request_only=True),
            OpenApiExample(
                "Duplicate",
                value={"detail": "Coupon already applied.", "code": "duplicate_coupon"},
                response_only=True,
                status_codes=["409"],
            ),
        ],
    )
    def post(self, request):
        serializer = CouponCodeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        cart = resolve_cart(request)
        apply_coupon(cart_id=cart.id, code=serializer.validated_data["code"])
        return _cart_response(cart.id)


class CartCouponDeleteView(CartView):
    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Remove coupon",
        parameters=[SESSION_PARAMETER],
        responses={200: CartReadSerializer, 404: ERROR_SHAPE},
    )
    def delete(self, request, code: str):
        cart = resolve_cart(request)
        remove_coupon(cart_id=cart.id, code=code)
        return _cart_response(cart.id)


class CartCheckoutView(CartView):
    """Checkout the active cart into a pending order."""

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Checkout cart",
        description="Creates a pending order from the cart and reserves its stock.",
        request=CheckoutSerializer,
        parameters=[
            SESSION_PARAMETER,
            OpenApiParameter(
                name="Idempotency-Key",
                location=OpenApiParameter.HEADER,
                required=False,
                description="When provided, checkout becomes idempotent for this caller+path+method",
                type=str,
            ),
        ],
        responses={
            200: inline_serializer(
                name="CartCheckedOut",
                fields={"status": rf_serializers.CharField(), "order_id": rf_serializers.IntegerField()},
            ),
            409: ERROR_SHAPE,
        },
        examples=[OpenApiExample("Ordered", value={"status": "ordered", "order_id": 42}, response_only=True)],
    )
    def post(self, request):
        from orders.services import compute_request_hash, with_idempotency

        serializer = CheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        address = serializer.validated_data.get("address")
        if address is not None:
            address = {k: v for k, v in address.items() if k != "email"}
        email = serializer.validated_data.get("email")
        cart = resolve_cart(request)

        def _checkout_handler():
            try:
                order_id = checkout(cart_id=cart.id, address=address, email=email)
            except CommerceError as exc:
                resp = error_response(exc)
                return resp.data, resp.status_code
            return {"status": "ordered", "order_id": order_id}, 200

        idem_key = request.headers.get("Idempotency-Key")
        if idem_key:
            body, code = with_idempotency(
                key=idem_key,
                user=request.user,
                path=str(request.path),
                method=str(request.method),
                request_hash=compute_request_hash(getattr(request, "data", None)),
                handler=_checkout_handler,
            )
            return Response(body, status=code)
        body, code = _checkout_handler()
        return Response(body, status=code)


class CartAbandonView(CartView):
    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Abandon cart",
        parameters=[SESSION_PARAMETER],
        responses={200: inline_serializer(name="CartStatusAbandoned", fields={"status": rf_serializers.CharField()})},
    )
    def post(self, request):
        cart = resolve_cart(request)
        abandon_cart(cart_id=cart.id)
        return Response({"status": "abandoned"}, status=status.HTTP_200_OK)


class CartClearView(CartView):
    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Clear cart",
        description="Deletes every line; applied coupons stay attached.",
        parameters=[SESSION_PARAMETER],
        responses={200: CartReadSerializer},
    )
    def post(self, request):
        cart = resolve_cart(request)
        clear_cart(cart_id=cart.id)
        return _cart_response(cart.id)


class MergeGuestCartView(CartView):
    """Merge the guest session cart into the signed-in user's cart."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Merge guest cart",
        parameters=[
            OpenApiParameter(
                name="X-Session-Id",
                location=OpenApiParameter.HEADER,
                required=True,
                description="Guest session identifier",
                type=str,
            )
        ],
        responses={200: CartReadSerializer, 400: ERROR_SHAPE},
    )
    def post(self, request):
        session_id = request.headers.get("X-Session-Id")
        if not session_id:
            raise MissingSession()
        cart = merge_guest_cart(session_id=session_id, user=request.user)
        return _cart_response(cart.id)
