import factory
from factory.django import DjangoModelFactory
from inventory.models import StockItem


class StockItemFactory(DjangoModelFactory):
    class Meta:
        model = StockItem

    product = factory.SubFactory("catalog.tests.factories.ProductFactory")
    variant = None
    quantity = 10
    reserved = 0
    track_inventory = True
    allow_backorders = False
