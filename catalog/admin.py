"""Admin registration for catalog models."""

from django.contrib import admin

from .models import Attribute, Category, Media, Product, ProductAttributeValue, ProductVariant


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ("name", "slug", "parent", "is_active", "sort_order")
    search_fields = ("name", "slug")
    list_filter = ("is_active",)
    prepopulated_fields = {"slug": ("name",)}


class MediaInline(admin.TabularInline):
    model = Media
    extra = 0


class VariantInline(admin.TabularInline):
    model = ProductVariant
    extra = 0
    fields = ("sku", "price", "weight", "status")


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("title", "sku", "price", "status", "is_digital", "tax_class")
    search_fields = ("title", "slug", "sku")
    list_filter = ("status", "is_digital", "tax_class", "categories")
    prepopulated_fields = {"slug": ("title",)}
    inlines = [VariantInline, MediaInline]


@admin.register(ProductVariant)
class ProductVariantAdmin(admin.ModelAdmin):
    list_display = ("product", "sku", "status", "price", "weight")
    search_fields = ("sku",)
    list_filter = ("status",)


@admin.register(Attribute)
class AttributeAdmin(admin.ModelAdmin):
    list_display = ("name", "code", "sort_order")
    search_fields = ("name", "code")


@admin.register(ProductAttributeValue)
class ProductAttributeValueAdmin(admin.ModelAdmin):
    list_display = ("attribute", "product", "variant", "value")
    raw_id_fields = ("product", "variant")
