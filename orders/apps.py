"""Django app configuration for the orders app."""

from django.apps import AppConfig


class OrdersConfig(AppConfig):
    """Orders, payments and idempotent request records."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "orders"
