from cart.models import Cart
from django.core.management.base import BaseCommand
from django.utils import timezone


class Command(BaseCommand):
    help = "Mark active guest carts past their expires_at as expired."

    def handle(self, *args, **options):
        now = timezone.now()
        count = Cart.objects.filter(
            user=None, status=Cart.STATUS_ACTIVE, expires_at__isnull=False, expires_at__lte=now
        ).update(status=Cart.STATUS_EXPIRED, updated_at=now)
        self.stdout.write(self.style.SUCCESS(f"Expired {count} guest carts."))
