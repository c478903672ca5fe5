import datetime as dt
from decimal import Decimal

import pytest
from cart.tests.factories import UserFactory
from common.choices import FulfillmentStatus, LineFulfillmentStatus
from common.exceptions import InvalidTransition, NotFoundError, PolicyError, ValidationError
from django.utils import timezone
from orders.models import DigitalDownload
from orders.services import add_download_link, can_download, pay_order, record_download, refund_order
from orders.tests.factories import place_order
from rest_framework.test import APIClient

EBOOK_URL = "https://files.example.com/ebook.pdf"


@pytest.fixture
def paid_order(db):
    order = place_order(lines=((Decimal("20.00"), 1, None),))
    return pay_order(order.id)


@pytest.mark.django_db
def test_adding_link_fulfills_line_and_order(paid_order):
    item = paid_order.items.get()

    download = add_download_link(order_item_id=item.id, name="E-book", url=EBOOK_URL, download_limit=2)

    item.refresh_from_db()
    paid_order.refresh_from_db()
    assert download.download_count == 0
    assert item.is_digital is True
    assert item.fulfillment_status == LineFulfillmentStatus.FULFILLED
    assert paid_order.fulfillment_status == FulfillmentStatus.FULFILLED


@pytest.mark.django_db
def test_links_require_a_paid_order_and_valid_input(paid_order):
    unpaid = place_order()
    with pytest.raises(InvalidTransition):
        add_download_link(order_item_id=unpaid.items.get().id, name="E-book", url=EBOOK_URL)
    with pytest.raises(NotFoundError):
        add_download_link(order_item_id=999999, name="E-book", url=EBOOK_URL)
    with pytest.raises(ValidationError):
        add_download_link(order_item_id=paid_order.items.get().id, name="E-book", url=EBOOK_URL, download_limit=0)
    assert not DigitalDownload.objects.exists()


@pytest.mark.django_db
def test_download_limit_is_enforced(paid_order):
    item = paid_order.items.get()
    download = add_download_link(order_item_id=item.id, name="E-book", url=EBOOK_URL, download_limit=2)

    record_download(download_id=download.id)
    assert record_download(download_id=download.id).download_count == 2

    assert can_download(download.id) == (False, "Download limit exceeded.")
    with pytest.raises(PolicyError):
        record_download(download_id=download.id)
    download.refresh_from_db()
    assert download.download_count == 2


@pytest.mark.django_db
def test_expired_link_cannot_be_used(paid_order):
    download = add_download_link(
        order_item_id=paid_order.items.get().id,
        name="E-book",
        url=EBOOK_URL,
        expires_at=timezone.now() - dt.timedelta(hours=1),
    )

    assert can_download(download.id) == (False, "Download link has expired.")
    with pytest.raises(PolicyError):
        record_download(download_id=download.id)


@pytest.mark.django_db
def test_unlimited_link_until_refunded(paid_order):
    download = add_download_link(order_item_id=paid_order.items.get().id, name="E-book", url=EBOOK_URL)
    for _ in range(5):
        record_download(download_id=download.id)
    assert can_download(download.id) == (True, None)
    assert can_download(123456) == (False, "Invalid download link.")

    refund_order(paid_order.id)

    assert can_download(download.id)[0] is False
    with pytest.raises(PolicyError):
        record_download(download_id=download.id)


@pytest.mark.django_db
def test_download_endpoints(paid_order):
    staff = APIClient()
    staff.force_authenticate(user=UserFactory(is_staff=True))
    owner = APIClient()
    owner.force_authenticate(user=paid_order.user)
    item = paid_order.items.get()

    r_add = staff.post(
        f"/api/v1/orders/{paid_order.id}/items/{item.id}/downloads/",
        {"name": "E-book", "url": EBOOK_URL, "download_limit": 1},
        format="json",
    )
    assert r_add.status_code == 201
    link = r_add.json()["items"][0]["downloads"][0]
    assert "url" not in link
    assert r_add.json()["fulfillment_status"] == "fulfilled"

    assert owner.post(f"/api/v1/orders/{paid_order.id}/items/{item.id}/downloads/", {}).status_code == 403

    r_get = owner.post(f"/api/v1/orders/{paid_order.id}/downloads/{link['id']}/")
    assert r_get.status_code == 200
    assert r_get.json()["url"] == EBOOK_URL
    assert r_get.json()["download_count"] == 1

    r_again = owner.post(f"/api/v1/orders/{paid_order.id}/downloads/{link['id']}/")
    assert r_again.status_code == 409
    assert r_again.json()["detail"] == "Download limit exceeded."

    stranger = APIClient()
    stranger.force_authenticate(user=UserFactory())
    assert stranger.post(f"/api/v1/orders/{paid_order.id}/downloads/{link['id']}/").status_code == 404
