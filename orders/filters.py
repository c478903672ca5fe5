from django_filters import rest_framework as filters

from .models import Order


class OrderFilterSet(filters.FilterSet):
    """Filters for the order list.

    - `status` / `payment_status`: exact values
    - `number`: exact order number
    - `start` / `end`: ISO date/time bounds on `created_at`
    """

    status = filters.ChoiceFilter(choices=Order.STATUS_CHOICES)
    payment_status = filters.CharFilter(field_name="payment_status")
    number = filters.CharFilter(field_name="number")
    start = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="gte")
    end = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="lte")

    class Meta:
        model = Order
        fields = ["status", "payment_status", "number", "start", "end"]
