from decimal import Decimal

import factory
from factory.django import DjangoModelFactory
from shipping.models import ShippingMethod, ShippingRateTier, ShippingZone


class ShippingZoneFactory(DjangoModelFactory):
    class Meta:
        model = ShippingZone

    name = factory.Sequence(lambda n: f"Zone {n}")
    countries = factory.LazyFunction(lambda: [{"code": "US", "states": [], "postal_codes": []}])
    status = ShippingZone.STATUS_ACTIVE
    priority = 0
    is_default = False


class ShippingMethodFactory(DjangoModelFactory):
    class Meta:
        model = ShippingMethod

    name = factory.Sequence(lambda n: f"Method {n}")
    carrier = "UPS"
    strategy = ShippingMethod.STRATEGY_FLAT_RATE
    cost = Decimal("5.00")
    estimated_days_min = 2
    estimated_days_max = 5
    status = ShippingMethod.STATUS_ACTIVE

    @factory.post_generation
    def zones(self, create, extracted, **kwargs):
        if not create:
            return
        for zone in extracted or []:
            self.zones.add(zone)


class ShippingRateTierFactory(DjangoModelFactory):
    class Meta:
        model = ShippingRateTier

    method = factory.SubFactory(ShippingMethodFactory, strategy=ShippingMethod.STRATEGY_WEIGHT_BASED)
    minimum = Decimal("0")
    maximum = None
    rate = Decimal("5.00")
