import datetime as dt
from io import StringIO

import pytest
from django.core.management import call_command
from django.utils import timezone
from orders.models import IdempotencyKey, Order
from orders.services import pay_order
from orders.tests.factories import place_order


@pytest.mark.django_db
def test_cancel_unpaid_orders_releases_stale_reservations():
    stale = place_order()
    fresh = place_order()
    paid = place_order()
    pay_order(paid.id)
    old = timezone.now() - dt.timedelta(hours=3)
    Order.objects.filter(id__in=[stale.id, paid.id]).update(placed_at=old)

    out = StringIO()
    call_command("cancel_unpaid_orders", "--minutes", "60", stdout=out)

    assert "Cancelled 1 unpaid orders." in out.getvalue()
    statuses = dict(Order.objects.values_list("id", "status"))
    assert statuses[stale.id] == Order.STATUS_CANCELLED
    assert statuses[fresh.id] == Order.STATUS_PENDING
    assert statuses[paid.id] == Order.STATUS_CONFIRMED
    assert Order.objects.get(id=stale.id).notes == "Cancelled: payment not received in time"


@pytest.mark.django_db
def test_cleanup_idempotency_keys():
    now = timezone.now()
    IdempotencyKey.objects.create(key="old", scope="anon", path="/x/", method="POST", expires_at=now - dt.timedelta(hours=1))
    IdempotencyKey.objects.create(key="new", scope="anon", path="/x/", method="POST", expires_at=now + dt.timedelta(hours=1))

    out = StringIO()
    call_command("cleanup_idempotency", "--dry-run", stdout=out)
    assert "1 expired idempotency keys would be deleted." in out.getvalue()
    assert IdempotencyKey.objects.count() == 2

    call_command("cleanup_idempotency", stdout=StringIO())
    assert list(IdempotencyKey.objects.values_list("key", flat=True)) == ["new"]
