from decimal import Decimal

import factory
from catalog.models import Attribute, Category, Media, Product, ProductAttributeValue, ProductVariant
from factory import Faker
from factory.django import DjangoModelFactory


class CategoryFactory(DjangoModelFactory):
    class Meta:
        model = Category

    name = Faker("word")
    slug = factory.Sequence(lambda n: f"category-{n}")
    description = Faker("sentence")
    is_active = True
    sort_order = 0


class ProductFactory(DjangoModelFactory):
    class Meta:
        model = Product

    title = Faker("sentence", nb_words=3)
    slug = factory.Sequence(lambda n: f"product-{n}")
    sku = factory.Sequence(lambda n: f"PRD-{n:05d}")
    description = Faker("paragraph")
    status = Product.STATUS_PUBLISHED
    price = Decimal("10.00")
    weight = Decimal("1.000")

    @factory.post_generation
    def categories(self, create, extracted, **kwargs):
        if not create:
            return
        if extracted:
            for cat in extracted:
                self.categories.add(cat)


class ProductVariantFactory(DjangoModelFactory):
    class Meta:
        model = ProductVariant

    product = factory.SubFactory(ProductFactory)
    sku = factory.Sequence(lambda n: f"SKU-{n:05d}")
    price = Decimal("25.00")
    weight = None
    status = ProductVariant.STATUS_ACTIVE


class MediaFactory(DjangoModelFactory):
    class Meta:
        model = Media

    product = factory.SubFactory(ProductFactory)
    url = Faker("image_url")
    alt_text = Faker("sentence")
    is_primary = False
    sort_order = 0


class AttributeFactory(DjangoModelFactory):
    class Meta:
        model = Attribute

    name = Faker("word")
    code = factory.Sequence(lambda n: f"attr-{n}")
    sort_order = 0


class ProductAttributeValueFactory(DjangoModelFactory):
    class Meta:
        model = ProductAttributeValue

    attribute = factory.SubFactory(AttributeFactory)
    value = "Black"
