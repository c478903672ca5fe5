"""Order lifecycle: creation from a cart, status transitions, payment, refunds.

Every public function runs in one transaction under a row lock on the order,
so a transition reads and writes the status axes and stock counters together
and either completes or leaves nothing behind.
"""

import hashlib
import json
import logging
from datetime import timedelta
from decimal import Decimal
from typing import Callable, Optional, Tuple

from catalog.selectors import build_line_snapshot
from common.address import Address
from common.choices import FulfillmentStatus, LineFulfillmentStatus
from common.exceptions import (
    CommerceError,
    InvalidTransition,
    NotFoundError,
    PaymentFailed,
    PolicyError,
    ValidationError,
)
from common.money import Money
from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone
from inventory.models import StockReservation
from inventory.services import convert_reservation, create_reservation, release_reservation, restock

from .models import DigitalDownload, IdempotencyKey, Order, OrderItem
from .payments import get_payment_gateway

logger = logging.getLogger("shopcore.orders")

ALLOWED_TRANSITIONS = {
    Order.STATUS_PENDING: {Order.STATUS_CONFIRMED, Order.STATUS_CANCELLED},
    Order.STATUS_CONFIRMED: {Order.STATUS_PROCESSING, Order.STATUS_SHIPPED, Order.STATUS_CANCELLED},
    Order.STATUS_PROCESSING: {Order.STATUS_SHIPPED},
    Order.STATUS_SHIPPED: {Order.STATUS_DELIVERED},
}


def _log_status_change(order: Order, prev: str) -> None:
    logger.info(
        "order_status_changed",
        extra={
            "event": "order_status_changed",
            "order_id": order.id,
            "user_id": order.user_id,
            "status_from": prev,
            "status_to": order.status,
            "payment_status": order.payment_status,
        },
    )


def _lock_order(order_id: int) -> Order:
    try:
        return Order.objects.select_for_update().get(id=order_id)
    except Order.DoesNotExist:
        raise NotFoundError("Order not found.", order_id=order_id)


def _reference(order: Order) -> str:
    return f"order:{order.number}"


@transaction.atomic
def create_order_from_cart(cart, address) -> Order:
    """Create an Order and OrderItems from the given cart snapshot.

    The cart must already be locked and recomputed. Line data is frozen from
    the catalog and stock is reserved per line; nothing is decremented yet.
    """

    address = Address.from_mapping(address)
    now = timezone.now()
    email = cart.email or getattr(cart.user, "email", None) or None
    method = cart.shipping_method
    order = Order.objects.create(
        user=cart.user,
        session_id=cart.session_id,
        email=email,
        currency=cart.currency,
        subtotal=cart.subtotal,
        discount_amount=cart.discount_amount,
        tax_amount=cart.tax_amount,
        shipping_amount=cart.shipping_amount,
        total=cart.total,
        shipping_address=address.to_dict(),
        billing_address=address.to_dict(),
        shipping_method=method.snapshot() if method is not None else None,
        applied_coupons=[
            {
                "coupon_id": applied.coupon_id,
                "code": applied.code,
                "discount_type": applied.discount_type,
                "amount": str(applied.discount_amount),
            }
            for applied in cart.applied_coupons.order_by("id")
        ],
        tax_breakdown=cart.tax_breakdown,
        placed_at=now,
    )
    # Generate user-friendly order number (unique)
    order.number = f"ORD-{int(order.id):06d}"
    order.save(update_fields=["number"])

    expires_at = now + timedelta(minutes=settings.ORDER_RESERVATION_TTL_MINUTES)
    items = cart.items.select_related("product", "variant").order_by("id")
    for item in items:
        snapshot = build_line_snapshot(item.product, item.variant)
        reservation = create_reservation(
            product_id=item.product_id,
            variant_id=item.variant_id,
            quantity=int(item.quantity),
            reference=_reference(order),
            expires_at=expires_at,
        )
        OrderItem.objects.create(
            order=order,
            product=item.product,
            variant=item.variant,
            product_title=snapshot["name"],
            variant_sku=snapshot["sku"] or "",
            snapshot=snapshot,
            is_digital=bool(snapshot["is_digital"]),
            quantity=item.quantity,
            unit_price=item.unit_price,
            customizations=item.customizations,
            gift_wrap=item.gift_wrap,
            line_total=item.line_total,
            reservation=reservation,
        )

    logger.info(
        "order_placed",
        extra={
            "event": "order_placed",
            "order_id": order.id,
            "number": order.number,
            "user_id": order.user_id,
            "total": str(order.total),
            "currency": order.currency,
        },
    )
    return order


def _allocate_stock(order: Order) -> None:
    """Turn every active reservation of the order into a decrement."""

    for item in order.items.select_related("reservation").exclude(reservation=None):
        convert_reservation(reservation_id=item.reservation_id, reason="order confirmed", reference=order.number)


def _return_units(order: Order, item: OrderItem, quantity: int, reason: str) -> None:
    """Give `quantity` units of a line back to stock.

    An active reservation is released whole when the line is released in
    full; otherwise it is allocated first so the units can be restocked.
    """

    if quantity <= 0:
        return
    reservation = item.reservation
    if reservation is not None and reservation.state == StockReservation.STATE_ACTIVE:
        if quantity == int(reservation.quantity):
            release_reservation(reservation_id=reservation.id)
            return
        convert_reservation(reservation_id=reservation.id, reason="order allocated", reference=order.number)
        reservation.refresh_from_db()
    if reservation is not None and reservation.state == StockReservation.STATE_CONVERTED:
        restock(
            stock_item_id=reservation.stock_item_id,
            quantity=quantity,
            reason=reason,
            reference=order.number,
        )


def _ship(order: Order, metadata: dict) -> None:
    tracking = {
        key: metadata[key] for key in ("carrier", "tracking_number", "url") if metadata.get(key) is not None
    }
    if tracking.get("tracking_number"):
        order.tracking_numbers = [*order.tracking_numbers, tracking]
    for item in order.items.all():
        item.shipped_quantity = item.open_quantity
        item.fulfillment_status = (
            LineFulfillmentStatus.SHIPPED if item.open_quantity > 0 else LineFulfillmentStatus.CANCELLED
        )
        item.save(update_fields=["shipped_quantity", "fulfillment_status", "updated_at"])
    order.fulfillment_status = FulfillmentStatus.SHIPPED
    order.shipped_at = timezone.now()


def _deliver(order: Order) -> None:
    order.items.filter(fulfillment_status=LineFulfillmentStatus.SHIPPED).update(
        fulfillment_status=LineFulfillmentStatus.DELIVERED, updated_at=timezone.now()
    )
    order.fulfillment_status = FulfillmentStatus.DELIVERED
    order.delivered_at = timezone.now()


def _cancel(order: Order, metadata: dict) -> None:
    if order.is_paid:
        raise InvalidTransition("A paid order cannot be cancelled; refund it instead.", order_id=order.id)
    for item in order.items.select_related("reservation"):
        _return_units(order, item, item.open_quantity, reason="order cancelled")
        item.fulfillment_status = LineFulfillmentStatus.CANCELLED
        item.save(update_fields=["fulfillment_status", "updated_at"])
    if order.payment_status == Order.PAYMENT_PENDING:
        order.payment_status = Order.PAYMENT_CANCELLED
    order.cancelled_at = timezone.now()
    reason = (metadata.get("reason") or "").strip()
    if reason:
        order.notes = f"{order.notes}\nCancelled: {reason}" if order.notes else f"Cancelled: {reason}"


@transaction.atomic
def transition_order(order_id: int, target_status: str, metadata: Optional[dict] = None) -> Order:
    """Move an order to `target_status`, applying that status's side effects.

    `metadata` carries tracking details (`carrier`, `tracking_number`, `url`)
    for shipments and a `reason` for cancellations, which is appended to the
    order notes. `refunded` is reached through a full refund.
    """

    metadata = metadata or {}
    if target_status == Order.STATUS_REFUNDED:
        return refund_order(order_id=order_id, idempotency_key=metadata.get("idempotency_key"))

    order = _lock_order(order_id)
    prev = order.status
    if target_status not in ALLOWED_TRANSITIONS.get(prev, set()):
        raise InvalidTransition(
            f"Cannot move order from {prev} to {target_status}.",
            order_id=order.id,
            status_from=prev,
            status_to=target_status,
        )

    if target_status == Order.STATUS_CONFIRMED:
        _allocate_stock(order)
        order.confirmed_at = timezone.now()
    elif target_status == Order.STATUS_SHIPPED:
        _ship(order, metadata)
    elif target_status == Order.STATUS_DELIVERED:
        _deliver(order)
    elif target_status == Order.STATUS_CANCELLED:
        _cancel(order, metadata)

    order.status = target_status
    order.save()
    _log_status_change(order, prev)
    return order


@transaction.atomic
def fulfill_items(*, order_id: int, items: dict) -> Order:
    """Record units packed for shipment ahead of the `shipped` transition.

    `items` maps order-item ids to the number of units fulfilled. The order's
    fulfillment status becomes `partial` or `fulfilled`.
    """

    order = _lock_order(order_id)
    if order.status not in (Order.STATUS_CONFIRMED, Order.STATUS_PROCESSING):
        raise InvalidTransition("Only confirmed or processing orders can be fulfilled.", order_id=order.id)
    lines = {item.id: item for item in order.items.all()}
    for raw_id, raw_qty in items.items():
        item = lines.get(int(raw_id))
        if item is None:
            raise NotFoundError("Order item not found.", order_item_id=raw_id)
        qty = int(raw_qty)
        if qty <= 0 or item.shipped_quantity + qty > item.open_quantity:
            raise ValidationError("Fulfilled quantity exceeds the open quantity.", order_item_id=item.id)
        item.shipped_quantity += qty
        item.fulfillment_status = (
            LineFulfillmentStatus.FULFILLED
            if item.shipped_quantity == item.open_quantity
            else LineFulfillmentStatus.PARTIAL
        )
        item.save(update_fields=["shipped_quantity", "fulfillment_status", "updated_at"])

    done = all(
        item.shipped_quantity >= item.open_quantity for item in lines.values() if item.open_quantity > 0
    )
    order.fulfillment_status = FulfillmentStatus.FULFILLED if done else FulfillmentStatus.PARTIAL
    order.save(update_fields=["fulfillment_status", "updated_at"])
    logger.info(
        "order_fulfilled",
        extra={"event": "order_fulfilled", "order_id": order.id, "fulfillment_status": order.fulfillment_status},
    )
    return order


DOWNLOAD_DONE_STATUSES = (
    LineFulfillmentStatus.FULFILLED,
    LineFulfillmentStatus.SHIPPED,
    LineFulfillmentStatus.DELIVERED,
)


@transaction.atomic
def add_download_link(
    *,
    order_item_id: int,
    name: str,
    url: str,
    expires_at=None,
    download_limit: Optional[int] = None,
) -> DigitalDownload:
    """Issue a download link for a line of a paid order.

    The line counts as digital and fulfilled from then on. Once every open
    line is done the order's fulfillment status becomes `fulfilled`.
    """

    try:
        order_id = OrderItem.objects.values_list("order_id", flat=True).get(id=order_item_id)
    except OrderItem.DoesNotExist:
        raise NotFoundError("Order item not found.", order_item_id=order_item_id)
    order = _lock_order(order_id)
    if not order.is_paid:
        raise InvalidTransition("Download links are issued for paid orders only.", order_id=order.id)
    if not name or not url:
        raise ValidationError("A download link needs a name and a url.", order_item_id=order_item_id)
    if download_limit is not None and int(download_limit) <= 0:
        raise ValidationError("Download limit must be positive.", order_item_id=order_item_id)

    item = order.items.get(id=order_item_id)
    download = DigitalDownload.objects.create(
        order_item=item, name=name, url=url, expires_at=expires_at, download_limit=download_limit
    )
    item.is_digital = True
    item.fulfillment_status = LineFulfillmentStatus.FULFILLED
    item.save(update_fields=["is_digital", "fulfillment_status", "updated_at"])

    if order.fulfillment_status in (FulfillmentStatus.UNFULFILLED, FulfillmentStatus.PARTIAL):
        done = all(
            line.fulfillment_status in DOWNLOAD_DONE_STATUSES
            for line in order.items.all()
            if line.open_quantity > 0
        )
        order.fulfillment_status = FulfillmentStatus.FULFILLED if done else FulfillmentStatus.PARTIAL
        order.save(update_fields=["fulfillment_status", "updated_at"])
    logger.info(
        "download_link_added",
        extra={"event": "download_link_added", "order_id": order.id, "order_item_id": item.id},
    )
    return download


def can_download(download_id: int, at=None) -> Tuple[bool, Optional[str]]:
    """Return `(allowed, reason)` for a download link without consuming it."""

    try:
        download = DigitalDownload.objects.select_related("order_item__order").get(id=download_id)
    except DigitalDownload.DoesNotExist:
        return False, "Invalid download link."
    if not download.order_item.order.is_paid:
        return False, "Order is no longer paid."
    reason = download.blocked_reason(at)
    return reason is None, reason


@transaction.atomic
def record_download(*, download_id: int) -> DigitalDownload:
    """Count one use of a download link, refusing expired or exhausted links."""

    try:
        download = DigitalDownload.objects.select_for_update().select_related("order_item__order").get(id=download_id)
    except DigitalDownload.DoesNotExist:
        raise NotFoundError("Download link not found.", download_id=download_id)
    if not download.order_item.order.is_paid:
        raise PolicyError("Order is no longer paid.", download_id=download.id)
    reason = download.blocked_reason()
    if reason:
        raise PolicyError(reason, download_id=download.id)
    DigitalDownload.objects.filter(id=download.id).update(
        download_count=F("download_count") + 1, updated_at=timezone.now()
    )
    download.refresh_from_db()
    logger.info(
        "download_recorded",
        extra={"event": "download_recorded", "download_id": download.id, "download_count": download.download_count},
    )
    return download


@transaction.atomic
def pay_order(order_id: int, payment_method: str = "manual", idempotency_key: Optional[str] = None) -> Order:
    """Authorize the order total and confirm a pending order.

    Paying an already paid order returns it unchanged. A gateway failure
    raises `PaymentFailed` and records nothing.
    """

    order = _lock_order(order_id)
    if order.is_paid:
        return order
    if order.status in (Order.STATUS_CANCELLED, Order.STATUS_REFUNDED):
        raise InvalidTransition("Cannot pay a cancelled order.", order_id=order.id)

    gateway = get_payment_gateway()
    try:
        reference = gateway.authorize(
            amount=Money.of(order.total, order.currency),
            method=payment_method,
            idempotency_key=idempotency_key or f"pay:{order.number}",
            timeout=settings.PAYMENT_TIMEOUT_SECONDS,
        )
    except CommerceError:
        raise
    except Exception as exc:
        logger.warning(
            "payment_failed",
            extra={"event": "payment_failed", "order_id": order.id, "error": type(exc).__name__},
        )
        raise PaymentFailed(order_id=order.id) from exc

    prev = order.status
    order.payment_status = Order.PAYMENT_PAID
    order.payment_method = payment_method
    order.payment_reference = str(reference)
    if order.status == Order.STATUS_PENDING:
        _allocate_stock(order)
        order.status = Order.STATUS_CONFIRMED
        order.confirmed_at = timezone.now()
    order.save()
    _log_status_change(order, prev)
    return order


def _release_line(order: Order, item: OrderItem, quantity: int) -> None:
    """Mark `quantity` units of a line refunded and return them to stock."""

    if quantity <= 0:
        return
    if quantity > item.open_quantity:
        raise ValidationError("Refund quantity exceeds the open quantity.", order_item_id=item.id)
    _return_units(order, item, quantity, reason="order refunded")
    item.refunded_quantity += quantity
    # Refunded units that had shipped come back as returns.
    item.shipped_quantity = min(item.shipped_quantity, item.open_quantity)
    remaining_value = item.line_total - item.refunded_amount
    item.refunded_amount += min(item.unit_price * quantity, remaining_value)
    if item.open_quantity == 0:
        item.refunded_amount = item.line_total
        item.fulfillment_status = LineFulfillmentStatus.CANCELLED
    item.save(
        update_fields=[
            "refunded_quantity",
            "shipped_quantity",
            "refunded_amount",
            "fulfillment_status",
            "updated_at",
        ]
    )


@transaction.atomic
def refund_order(
    order_id: int,
    amount=None,
    items: Optional[dict] = None,
    idempotency_key: Optional[str] = None,
) -> Order:
    """Refund part or all of a paid order.

    `amount` defaults to the remaining refundable balance. `items` maps
    order-item ids to quantities to put back into stock. Once the refunded
    total reaches the order total the order is `refunded` and every open
    unit is released; otherwise payment becomes `partially_refunded`.
    """

    order = _lock_order(order_id)
    if not order.can_refund:
        raise InvalidTransition("Only paid orders can be refunded.", order_id=order.id)

    remaining = order.refundable_amount
    refund_amount = remaining if amount is None else Money.of(amount, order.currency).amount
    if refund_amount <= Decimal("0"):
        raise PolicyError("Refund amount must be positive.", order_id=order.id)
    if refund_amount > remaining:
        raise PolicyError("Refund amount exceeds the refundable balance.", order_id=order.id)

    lines = {item.id: item for item in order.items.select_related("reservation")}
    requested = {}
    for raw_id, raw_qty in (items or {}).items():
        try:
            item = lines[int(raw_id)]
        except (KeyError, ValueError):
            raise NotFoundError("Order item not found.", order_item_id=raw_id)
        requested[item.id] = int(raw_qty)
        if requested[item.id] <= 0:
            raise ValidationError("Refund quantity must be positive.", order_item_id=item.id)
        if requested[item.id] > item.open_quantity:
            raise ValidationError("Refund quantity exceeds the open quantity.", order_item_id=item.id)

    gateway = get_payment_gateway()
    try:
        refund_ref = gateway.refund(
            transaction_ref=order.payment_reference,
            amount=Money.of(refund_amount, order.currency),
            idempotency_key=idempotency_key or f"refund:{order.number}:{order.refunded_amount}",
            timeout=settings.PAYMENT_TIMEOUT_SECONDS,
        )
    except CommerceError:
        raise
    except Exception as exc:
        logger.warning(
            "refund_failed",
            extra={"event": "refund_failed", "order_id": order.id, "error": type(exc).__name__},
        )
        raise PaymentFailed(order_id=order.id) from exc

    full = order.refunded_amount + refund_amount >= order.total
    for item_id, qty in requested.items():
        _release_line(order, lines[item_id], qty)

    prev = order.status
    if full:
        for item in lines.values():
            item.refresh_from_db(fields=["refunded_quantity", "shipped_quantity", "refunded_amount"])
            _release_line(order, item, item.open_quantity)
        order.refunded_amount = order.total
        order.status = Order.STATUS_REFUNDED
        order.payment_status = Order.PAYMENT_REFUNDED
        order.refunded_at = timezone.now()
    else:
        order.refunded_amount = order.refunded_amount + refund_amount
        order.payment_status = Order.PAYMENT_PARTIALLY_REFUNDED
    order.save()

    logger.info(
        "order_refunded",
        extra={
            "event": "order_refunded",
            "order_id": order.id,
            "amount": str(refund_amount),
            "refunded_amount": str(order.refunded_amount),
            "refund_reference": str(refund_ref),
            "payment_status": order.payment_status,
        },
    )
    if order.status != prev:
        _log_status_change(order, prev)
    return order


def with_idempotency(
    *,
    key: str,
    user,
    path: str,
    method: str,
    handler: Callable[[], Tuple[dict, int]],
    request_hash: Optional[str] = None,
) -> Tuple[dict, int]:
    """Run handler idempotently and persist its response for the given key and scope.

    - Scope is derived from the caller: "user:<id>" for authenticated users, else "anon".
    - If a record exists and the stored `request_hash` differs from the provided one, returns 409.
    - If a record exists but response is not yet stored, returns 409 to indicate in-progress.
    - Responses with a 5xx code are not stored, so dependency failures can be retried.
    """

    scope = f"user:{getattr(user, 'id', None)}" if getattr(user, "id", None) else "anon"
    method = str(method).upper()
    path = str(path)

    try:
        with transaction.atomic():
            idem = IdempotencyKey.objects.create(
                key=key,
                user=user if getattr(user, "id", None) else None,
                scope=scope,
                path=path,
                method=method,
                request_hash=request_hash,
                expires_at=timezone.now() + timedelta(hours=settings.IDEMPOTENCY_TTL_HOURS),
            )
    except IntegrityError:
        idem = IdempotencyKey.objects.get(key=key, scope=scope, path=path, method=method)
        # Guard against key reuse with different fingerprints
        if idem.request_hash and request_hash and idem.request_hash != request_hash:
            return {"detail": "Idempotency key reused with different request payload", "code": "idempotency"}, 409
        if idem.response_json is not None and idem.response_code is not None:
            return idem.response_json, int(idem.response_code)
        return {"detail": "Request in progress", "code": "idempotency"}, 409

    # Fresh request; execute and persist the response
    try:
        body, code = handler()
    except Exception:
        IdempotencyKey.objects.filter(id=idem.id).delete()
        raise
    if code >= 500:
        IdempotencyKey.objects.filter(id=idem.id).delete()
        return body, code

    IdempotencyKey.objects.filter(id=idem.id).update(response_json=_json_safe(body), response_code=code)
    return body, code


def _json_safe(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value


def compute_request_hash(data: Optional[dict]) -> Optional[str]:
    """Canonical SHA256 of the request body, or None when there is no body."""

    if not data:
        return None
    payload = json.dumps(_json_safe(dict(data)), sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
