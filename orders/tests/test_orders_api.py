from decimal import Decimal

import pytest
from cart.tests.factories import UserFactory
from orders.models import IdempotencyKey, Order
from orders.tests.factories import OrderFactory, OrderItemFactory, place_order
from rest_framework.test import APIClient


def client_for(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def staff():
    return client_for(UserFactory(is_staff=True))


@pytest.mark.django_db
def test_orders_require_authentication():
    resp = APIClient().get("/api/v1/orders/")
    assert resp.status_code == 403


@pytest.mark.django_db
def test_order_list_is_scoped_and_filterable():
    user = UserFactory()
    client = client_for(user)
    o1 = OrderFactory(user=user, status=Order.STATUS_PENDING, number="ORD-001")
    o2 = OrderFactory(user=user, status=Order.STATUS_CONFIRMED, number="ORD-002", payment_status=Order.PAYMENT_PAID)
    o3 = OrderFactory(user=user, status=Order.STATUS_CANCELLED, number="ORD-003")
    foreign = OrderFactory(number="ORD-999")

    r_all = client.get("/api/v1/orders/")
    assert r_all.status_code == 200
    ids = [it["id"] for it in r_all.json()["results"]]
    assert ids == [o3.id, o2.id, o1.id]
    assert foreign.id not in ids

    r_status = client.get("/api/v1/orders/?status=confirmed")
    assert [it["id"] for it in r_status.json()["results"]] == [o2.id]

    r_paid = client.get("/api/v1/orders/?payment_status=paid")
    assert [it["id"] for it in r_paid.json()["results"]] == [o2.id]

    r_num = client.get("/api/v1/orders/?number=ORD-003")
    assert [it["id"] for it in r_num.json()["results"]] == [o3.id]


@pytest.mark.django_db
def test_order_detail_exposes_snapshot():
    user = UserFactory()
    order = OrderFactory(user=user)
    OrderItemFactory(order=order, snapshot={"name": "Lamp", "sku": "LMP-1"}, quantity=2, line_total=Decimal("200.00"))

    resp = client_for(user).get(f"/api/v1/orders/{order.id}/")
    assert resp.status_code == 200
    body = resp.json()
    assert body["number"] == order.number
    assert body["total"] == "100.00"
    assert body["items"][0]["snapshot"]["name"] == "Lamp"
    assert body["items"][0]["line_total"] == "200.00"

    other = client_for(UserFactory()).get(f"/api/v1/orders/{order.id}/")
    assert other.status_code == 404


@pytest.mark.django_db
def test_owner_pays_and_cannot_cancel_paid_order():
    user = UserFactory()
    order = place_order(user=user)
    client = client_for(user)

    r_pay = client.post(f"/api/v1/orders/{order.id}/pay/", {"payment_method": "manual"}, format="json")
    assert r_pay.status_code == 200
    assert r_pay.json()["status"] == "confirmed"
    assert r_pay.json()["payment_status"] == "paid"

    r_cancel = client.post(f"/api/v1/orders/{order.id}/cancel/")
    assert r_cancel.status_code == 409
    assert r_cancel.json()["code"] == "invalid_transition"
    order.refresh_from_db()
    assert order.status == Order.STATUS_CONFIRMED


@pytest.mark.django_db
def test_owner_cancels_unpaid_order():
    user = UserFactory()
    order = place_order(user=user)

    resp = client_for(user).post(f"/api/v1/orders/{order.id}/cancel/", {"reason": "Ordered twice"}, format="json")

    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"
    order.refresh_from_db()
    assert order.notes == "Cancelled: Ordered twice"


@pytest.mark.django_db
def test_other_users_cannot_pay_or_cancel():
    order = place_order()
    intruder = client_for(UserFactory())

    assert intruder.post(f"/api/v1/orders/{order.id}/pay/").status_code == 404
    assert intruder.post(f"/api/v1/orders/{order.id}/cancel/").status_code == 404


@pytest.mark.django_db
def test_payment_failure_is_503_and_not_stored(settings):
    user = UserFactory()
    order = place_order(user=user)
    client = client_for(user)
    settings.PAYMENT_GATEWAY = "orders.tests.test_order_services.TimeoutGateway"

    r1 = client.post(f"/api/v1/orders/{order.id}/pay/", HTTP_IDEMPOTENCY_KEY="pay-1")
    assert r1.status_code == 503
    assert r1.json()["code"] == "payment_failed"
    assert not IdempotencyKey.objects.filter(key="pay-1").exists()

    # The same key can be retried once the gateway recovers
    settings.PAYMENT_GATEWAY = "orders.payments.ManualPaymentGateway"
    r2 = client.post(f"/api/v1/orders/{order.id}/pay/", HTTP_IDEMPOTENCY_KEY="pay-1")
    assert r2.status_code == 200
    assert r2.json()["payment_status"] == "paid"


@pytest.mark.django_db
def test_transition_and_refund_are_staff_only(staff):
    user = UserFactory()
    order = place_order(user=user)
    owner = client_for(user)

    assert owner.post(f"/api/v1/orders/{order.id}/transition/", {"status": "confirmed"}, format="json").status_code == 403
    assert owner.post(f"/api/v1/orders/{order.id}/refund/", {}, format="json").status_code == 403

    r_confirm = staff.post(f"/api/v1/orders/{order.id}/transition/", {"status": "confirmed"}, format="json")
    assert r_confirm.status_code == 200
    assert r_confirm.json()["status"] == "confirmed"


@pytest.mark.django_db
def test_staff_ship_with_tracking(staff):
    order = place_order()
    staff.post(f"/api/v1/orders/{order.id}/transition/", {"status": "confirmed"}, format="json")

    resp = staff.post(
        f"/api/v1/orders/{order.id}/transition/",
        {"status": "shipped", "carrier": "UPS", "tracking_number": "1Z999"},
        format="json",
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["fulfillment_status"] == "shipped"
    assert body["tracking_numbers"] == [{"carrier": "UPS", "tracking_number": "1Z999"}]

    r_back = staff.post(f"/api/v1/orders/{order.id}/transition/", {"status": "confirmed"}, format="json")
    assert r_back.status_code == 409


@pytest.mark.django_db
def test_staff_partial_refund_is_idempotent(staff):
    order = place_order()
    pay = client_for(order.user).post(f"/api/v1/orders/{order.id}/pay/")
    assert pay.status_code == 200

    r1 = staff.post(f"/api/v1/orders/{order.id}/refund/", {"amount": "30.00"}, format="json", HTTP_IDEMPOTENCY_KEY="rf-1")
    r2 = staff.post(f"/api/v1/orders/{order.id}/refund/", {"amount": "30.00"}, format="json", HTTP_IDEMPOTENCY_KEY="rf-1")

    assert r1.status_code == 200
    assert r2.json() == r1.json()
    assert r1.json()["refunded_amount"] == "30.00"
    order.refresh_from_db()
    assert order.refunded_amount == Decimal("30.00")
    assert order.payment_status == Order.PAYMENT_PARTIALLY_REFUNDED

    r_over = staff.post(f"/api/v1/orders/{order.id}/refund/", {"amount": "80.00"}, format="json")
    assert r_over.status_code == 409
    assert r_over.json()["code"] == "policy"
