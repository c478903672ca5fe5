"""Orders API endpoints.

Owners list, read, pay and cancel their orders. Staff drive fulfillment
transitions and refunds. Mutations are idempotent when an
`Idempotency-Key` header is sent.
"""

from common.api import error_response
from common.exceptions import CommerceError
from django.http import Http404
from django_filters import rest_framework as filters
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiExample, OpenApiParameter, extend_schema
from rest_framework import generics
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .filters import OrderFilterSet
from .models import DigitalDownload, Order
from .serializers import (
    AddDownloadSerializer,
    CancelOrderSerializer,
    OrderSerializer,
    PayOrderSerializer,
    RefundSerializer,
    TransitionSerializer,
)
from .services import (
    add_download_link,
    compute_request_hash,
    pay_order,
    record_download,
    refund_order,
    transition_order,
    with_idempotency,
)

IDEMPOTENCY_PARAMETER = OpenApiParameter(
    name="Idempotency-Key",
    location=OpenApiParameter.HEADER,
    required=False,
    description="Makes the request idempotent within scope+path+method",
    type=str,
)


def _run_idempotent(request, handler):
    """Run `handler` under the request's Idempotency-Key, when one is sent."""

    idem_key = request.headers.get("Idempotency-Key")
    if idem_key:
        body, code = with_idempotency(
            key=idem_key,
            user=request.user,
            path=str(request.path),
            method=str(request.method),
            request_hash=compute_request_hash(getattr(request, "data", None)),
            handler=handler,
        )
        return Response(body, status=code)
    body, code = handler()
    return Response(body, status=code)


def _mutation_handler(request, mutate):
    def _handler():
        try:
            order = mutate()
        except CommerceError as exc:
            resp = error_response(exc)
            return resp.data, resp.status_code
        return OrderSerializer(order, context={"request": request}).data, 200

    return _handler


class DefaultPagination(PageNumberPagination):
    page_size = 20
    page_size_query_param = "page_size"


class OrderListView(generics.ListAPIView):
    """List the authenticated user's orders with filters and pagination."""

    permission_classes = [IsAuthenticated]
    serializer_class = OrderSerializer
    pagination_class = DefaultPagination
    filter_backends = [filters.DjangoFilterBackend]
    filterset_class = OrderFilterSet
    throttle_scope = "orders"

    def get_queryset(self):
        return Order.objects.filter(user_id=self.request.user.id).order_by("-id").prefetch_related("items__downloads")

    @extend_schema(
        tags=["Orders"],
        summary="List orders",
        description="List current user's orders. Filter by `status`, `payment_status`, `number`, `start`, `end`.",
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)


class OrderDetailView(generics.RetrieveAPIView):
    """Retrieve a single order for the authenticated user."""

    permission_classes = [IsAuthenticated]
    throttle_scope = "orders"
    serializer_class = OrderSerializer

    def get_queryset(self):
        return Order.objects.filter(user_id=self.request.user.id).prefetch_related("items__downloads")

    def get_object(self):
        try:
            return self.get_queryset().get(id=int(self.kwargs["order_id"]))
        except (Order.DoesNotExist, ValueError):
            raise Http404("Not found.")

    @extend_schema(tags=["Orders"], summary="Get order detail")
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)


class OrderPayView(APIView):
    """Pay an order as its owner; a pending order becomes confirmed."""

    permission_classes = [IsAuthenticated]
    throttle_scope = "orders_write"

    @extend_schema(
        tags=["Orders"],
        summary="Pay order",
        description="Authorizes the order total through the payment gateway and confirms the order.",
        request=PayOrderSerializer,
        parameters=[IDEMPOTENCY_PARAMETER],
        responses={200: OrderSerializer},
        examples=[
            OpenApiExample(
                "Payment failed",
                value={"detail": "Payment provider call failed.", "code": "payment_failed"},
                response_only=True,
                status_codes=["503"],
            ),
        ],
    )
    def post(self, request, order_id: int):
        if not Order.objects.filter(pk=order_id, user=request.user).exists():
            raise Http404
        ser = PayOrderSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        return _run_idempotent(
            request,
            _mutation_handler(
                request,
                lambda: pay_order(
                    order_id,
                    payment_method=ser.validated_data["payment_method"],
                    idempotency_key=request.headers.get("Idempotency-Key"),
                ),
            ),
        )


class OrderCancelView(APIView):
    """Cancel an unpaid order as its owner."""

    permission_classes = [IsAuthenticated]
    throttle_scope = "orders_write"

    @extend_schema(
        tags=["Orders"],
        summary="Cancel order",
        description=(
            "Cancels the order unless it is paid, releasing its stock. "
            "An optional `reason` is kept in the order notes."
        ),
        request=CancelOrderSerializer,
        parameters=[IDEMPOTENCY_PARAMETER],
        responses={200: OrderSerializer},
        examples=[
            OpenApiExample(
                "Paid order",
                value={"detail": "A paid order cannot be cancelled; refund it instead.", "code": "invalid_transition"},
                response_only=True,
                status_codes=["409"],
            ),
        ],
    )
    def post(self, request, order_id: int):
        if not Order.objects.filter(pk=order_id, user=request.user).exists():
            raise Http404
        ser = CancelOrderSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        metadata = {"reason": ser.validated_data.get("reason", "")}
        return _run_idempotent(
            request,
            _mutation_handler(request, lambda: transition_order(order_id, Order.STATUS_CANCELLED, metadata)),
        )


class OrderTransitionView(APIView):
    """Staff endpoint driving an order through its fulfillment statuses."""

    permission_classes = [IsAdminUser]
    throttle_scope = "orders_write"

    @extend_schema(
        tags=["Orders"],
        summary="Transition order status",
        request=TransitionSerializer,
        parameters=[IDEMPOTENCY_PARAMETER],
        responses={200: OrderSerializer},
        examples=[
            OpenApiExample(
                "Ship",
                value={"status": "shipped", "carrier": "UPS", "tracking_number": "1Z999"},
                request_only=True,
            ),
        ],
    )
    def post(self, request, order_id: int):
        ser = TransitionSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = dict(ser.validated_data)
        target = data.pop("status")
        return _run_idempotent(
            request, _mutation_handler(request, lambda: transition_order(order_id, target, data))
        )


class OrderRefundView(APIView):
    """Staff endpoint refunding part or all of a paid order."""

    permission_classes = [IsAdminUser]
    throttle_scope = "orders_write"

    @extend_schema(
        tags=["Orders"],
        summary="Refund order",
        description="Refunds `amount` (default: the remaining balance); `items` maps item ids to units to restock.",
        request=RefundSerializer,
        parameters=[IDEMPOTENCY_PARAMETER],
        responses={200: OrderSerializer},
        examples=[
            OpenApiExample("Partial refund", value={"amount": "30.00"}, request_only=True),
        ],
    )
    def post(self, request, order_id: int):
        ser = RefundSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        return _run_idempotent(
            request,
            _mutation_handler(
                request,
                lambda: refund_order(
                    order_id,
                    amount=ser.validated_data.get("amount"),
                    items=ser.validated_data.get("items"),
                    idempotency_key=request.headers.get("Idempotency-Key"),
                ),
            ),
        )


class OrderItemDownloadCreateView(APIView):
    """Staff endpoint issuing a download link for a digital order line."""

    permission_classes = [IsAdminUser]
    throttle_scope = "orders_write"

    @extend_schema(
        tags=["Orders"],
        summary="Add download link",
        description="Attaches a download link to a line of a paid order and marks the line fulfilled.",
        request=AddDownloadSerializer,
        responses={201: OrderSerializer},
    )
    def post(self, request, order_id: int, item_id: int):
        if not Order.objects.filter(pk=order_id, items__id=item_id).exists():
            raise Http404
        ser = AddDownloadSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        try:
            add_download_link(order_item_id=item_id, **ser.validated_data)
        except CommerceError as exc:
            return error_response(exc)
        order = Order.objects.prefetch_related("items__downloads").get(pk=order_id)
        return Response(OrderSerializer(order, context={"request": request}).data, status=201)


class OrderDownloadView(APIView):
    """Hand the owner a download url, counting the download."""

    permission_classes = [IsAuthenticated]
    throttle_scope = "orders_write"

    @extend_schema(
        tags=["Orders"],
        summary="Download digital item",
        request=None,
        responses={200: OpenApiTypes.OBJECT},
        examples=[
            OpenApiExample(
                "Limit reached",
                value={"detail": "Download limit exceeded.", "code": "policy"},
                response_only=True,
                status_codes=["409"],
            ),
        ],
    )
    def post(self, request, order_id: int, download_id: int):
        owned = DigitalDownload.objects.filter(
            pk=download_id, order_item__order_id=order_id, order_item__order__user=request.user
        )
        if not owned.exists():
            raise Http404
        try:
            download = record_download(download_id=download_id)
        except CommerceError as exc:
            return error_response(exc)
        return Response(
            {
                "id": download.id,
                "name": download.name,
                "url": download.url,
                "download_count": download.download_count,
                "download_limit": download.download_limit,
                "expires_at": download.expires_at,
            }
        )
