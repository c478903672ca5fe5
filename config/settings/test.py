from .base import *  # noqa
from .base import BASE_DIR
from .base import REST_FRAMEWORK as BASE_REST_FRAMEWORK

# Test settings: SQLite for reliability and speed in tests
DEBUG = False

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": BASE_DIR / "test_db.sqlite3",
    }
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

STORAGES = {
    "default": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
    "staticfiles": {"BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage"},
}

# Deterministic engine settings for tests
STORE_CURRENCY = "USD"
GUEST_CART_TTL_DAYS = 30
ORDER_RESERVATION_TTL_MINUTES = 60
PAYMENT_GATEWAY = "orders.payments.ManualPaymentGateway"
PAYMENT_TIMEOUT_SECONDS = 5.0
SHIPPING_RATE_PROVIDER = "shipping.providers.NullRateQuoteProvider"
RATE_QUOTE_TIMEOUT_SECONDS = 3.0

# Relax throttling for tests to reduce flakiness
REST_FRAMEWORK = {**BASE_REST_FRAMEWORK}
REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {
    **BASE_REST_FRAMEWORK.get("DEFAULT_THROTTLE_RATES", {}),
    "user": "10000/min",
    "anon": "10000/min",
    "cart": "10000/min",
    "cart_write": "10000/min",
    "orders": "10000/min",
    "orders_write": "10000/min",
}
