import logging
from datetime import timedelta

from common.exceptions import CommerceError
from django.conf import settings
from django.core.management.base import BaseCommand
from django.utils import timezone
from orders.models import Order
from orders.services import transition_order

logger = logging.getLogger("shopcore.orders")


class Command(BaseCommand):
    help = "Cancel pending unpaid orders older than ORDER_RESERVATION_TTL_MINUTES, releasing their stock."

    def add_arguments(self, parser):
        parser.add_argument("--minutes", type=int, default=None, help="Override the reservation TTL")

    def handle(self, *args, **options):
        ttl_minutes = options["minutes"] or settings.ORDER_RESERVATION_TTL_MINUTES
        cutoff = timezone.now() - timedelta(minutes=int(ttl_minutes))
        qs = Order.objects.filter(
            status=Order.STATUS_PENDING,
            payment_status__in=[Order.PAYMENT_PENDING, Order.PAYMENT_FAILED],
            placed_at__lt=cutoff,
        )
        count = 0
        for order_id in list(qs.values_list("id", flat=True)):
            try:
                transition_order(order_id, Order.STATUS_CANCELLED, {"reason": "payment not received in time"})
            except CommerceError as exc:
                # Paid or moved on since the query ran
                logger.warning(
                    "unpaid_order_cancel_skipped",
                    extra={"event": "unpaid_order_cancel_skipped", "order_id": order_id, "code": exc.code},
                )
                continue
            count += 1
        self.stdout.write(self.style.SUCCESS(f"Cancelled {count} unpaid orders."))
