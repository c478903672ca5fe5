"""Error taxonomy shared by the pricing and order services.

Services raise these; views translate them into API responses via
`common.api.error_response`. Every service runs inside a transaction, so a
raised error leaves previously persisted state untouched.
"""


class CommerceError(Exception):
    """Base class for all engine errors."""

    code = "error"
    status_code = 400
    default_message = "Request could not be processed."

    def __init__(self, message: str | None = None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)


class ValidationError(CommerceError):
    """Malformed input, rejected before any mutation."""

    code = "invalid"
    default_message = "Invalid input."


class NotFoundError(CommerceError):
    code = "not_found"
    status_code = 404
    default_message = "Not found."


class PolicyError(CommerceError):
    """Business-rule rejection; recoverable by choosing different input."""

    code = "policy"
    status_code = 409
    default_message = "Request rejected by store policy."


class InvalidCoupon(PolicyError):
    code = "invalid_coupon"
    default_message = "Invalid coupon code."


class DuplicateCoupon(PolicyError):
    code = "duplicate_coupon"
    default_message = "Coupon already applied."


class BelowMinimum(PolicyError):
    code = "below_minimum"
    default_message = "Order does not meet the coupon minimum amount."


class CouponNotEligible(PolicyError):
    code = "coupon_not_eligible"
    default_message = "Cart is not eligible for this coupon."


class InvalidTransition(PolicyError):
    code = "invalid_transition"
    default_message = "Order cannot move to the requested status."


class InsufficientStock(PolicyError):
    code = "insufficient_stock"
    default_message = "Insufficient stock."


class CartExpired(PolicyError):
    code = "cart_expired"
    default_message = "Cart has expired."


class EmptyCart(PolicyError):
    code = "empty_cart"
    default_message = "Cart is empty."


class DependencyError(CommerceError):
    """An external collaborator failed or timed out. Reads may be retried."""

    code = "dependency_unavailable"
    status_code = 503
    default_message = "A dependency is unavailable; try again later."


class RateQuoteUnavailable(DependencyError):
    code = "rate_quote_unavailable"
    default_message = "Shipping rate quote unavailable."


class PaymentFailed(DependencyError):
    code = "payment_failed"
    default_message = "Payment provider call failed."


class InvariantViolation(CommerceError):
    """Internal state is inconsistent. Never corrected by guessing."""

    code = "invariant_violation"
    status_code = 500
    default_message = "Internal consistency check failed."
