import logging
from datetime import timedelta

from cart.models import Cart
from cart.services import abandon_cart
from common.exceptions import CommerceError
from django.conf import settings
from django.core.management.base import BaseCommand
from django.db.models import Q
from django.utils import timezone

logger = logging.getLogger("shopcore.cart")


class Command(BaseCommand):
    help = "Abandon active carts idle for longer than CART_ABANDON_TTL_MINUTES"

    def handle(self, *args, **options):
        cutoff = timezone.now() - timedelta(minutes=int(settings.CART_ABANDON_TTL_MINUTES))
        qs = Cart.objects.filter(status=Cart.STATUS_ACTIVE).filter(
            Q(last_activity_at__lt=cutoff) | Q(last_activity_at__isnull=True, updated_at__lt=cutoff)
        )
        count = 0
        for cart_id in list(qs.values_list("id", flat=True)):
            try:
                abandon_cart(cart_id=cart_id)
            except CommerceError as exc:
                logger.info(
                    "cart.abandon_skipped",
                    extra={"event": "cart.abandon_skipped", "cart_id": cart_id, "code": exc.code},
                )
                continue
            count += 1
        self.stdout.write(self.style.SUCCESS(f"Abandoned {count} stale carts."))
