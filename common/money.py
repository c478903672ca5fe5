"""Fixed-precision money arithmetic.

Values are held as a `Decimal` count of minor units. Intermediate results may
carry a fractional minor unit; `rounded()` applies ROUND_HALF_UP once, at the
point a value becomes a stored total or a displayed price.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .exceptions import ValidationError

# ISO 4217 currencies without a minor unit; everything else uses cents.
ZERO_DECIMAL_CURRENCIES = frozenset({"JPY", "KRW", "VND", "CLP", "ISK", "UGX"})

ONE = Decimal("1")
HUNDRED = Decimal("100")


class CurrencyMismatch(ValidationError):
    code = "currency_mismatch"
    default_message = "Money values must share a currency."


def currency_exponent(currency: str) -> int:
    return 0 if currency.upper() in ZERO_DECIMAL_CURRENCIES else 2


def _to_decimal(value) -> Decimal:
    if isinstance(value, float):
        raise ValidationError("Money cannot be built from a float; pass a Decimal or str.")
    if isinstance(value, bool):
        raise ValidationError("Money cannot be built from a bool.")
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Not a monetary value: {value!r}")


@dataclass(frozen=True)
class Money:
    minor: Decimal
    currency: str

    def __post_init__(self):
        object.__setattr__(self, "minor", _to_decimal(self.minor))
        object.__setattr__(self, "currency", str(self.currency).upper())

    # Constructors

    @classmethod
    def of(cls, amount, currency: str) -> "Money":
        """Build from a major-unit amount such as `Decimal("19.99")`."""
        scale = Decimal(10) ** currency_exponent(currency)
        return cls(_to_decimal(amount) * scale, currency)

    @classmethod
    def from_minor(cls, minor: int, currency: str) -> "Money":
        return cls(Decimal(int(minor)), currency)

    @classmethod
    def zero(cls, currency: str) -> "Money":
        return cls(Decimal(0), currency)

    # Arithmetic

    def _check(self, other: "Money") -> None:
        if not isinstance(other, Money):
            raise ValidationError(f"Expected Money, got {type(other).__name__}")
        if other.currency != self.currency:
            raise CurrencyMismatch(f"{self.currency} vs {other.currency}")

    def add(self, other: "Money") -> "Money":
        self._check(other)
        return Money(self.minor + other.minor, self.currency)

    def subtract(self, other: "Money") -> "Money":
        self._check(other)
        return Money(self.minor - other.minor, self.currency)

    def multiply(self, quantity) -> "Money":
        return Money(self.minor * _to_decimal(quantity), self.currency)

    def percentage_of(self, rate) -> "Money":
        """Return `rate` percent of this value, unrounded."""
        return Money(self.minor * _to_decimal(rate) / HUNDRED, self.currency)

    def compare(self, other: "Money") -> int:
        self._check(other)
        if self.minor < other.minor:
            return -1
        if self.minor > other.minor:
            return 1
        return 0

    def min(self, other: "Money") -> "Money":
        return self if self.compare(other) <= 0 else other

    def max(self, other: "Money") -> "Money":
        return self if self.compare(other) >= 0 else other

    def __add__(self, other):
        return self.add(other)

    def __sub__(self, other):
        return self.subtract(other)

    def __mul__(self, quantity):
        return self.multiply(quantity)

    __rmul__ = __mul__

    def __neg__(self):
        return Money(-self.minor, self.currency)

    def __lt__(self, other):
        return self.compare(other) < 0

    def __le__(self, other):
        return self.compare(other) <= 0

    def __gt__(self, other):
        return self.compare(other) > 0

    def __ge__(self, other):
        return self.compare(other) >= 0

    # Rounding boundary

    def rounded(self) -> "Money":
        return Money(self.minor.quantize(ONE, rounding=ROUND_HALF_UP), self.currency)

    @property
    def minor_units(self) -> int:
        return int(self.rounded().minor)

    @property
    def amount(self) -> Decimal:
        """Rounded major-unit value, e.g. `Decimal("13.40")`."""
        exponent = currency_exponent(self.currency)
        quantum = Decimal(1).scaleb(-exponent)
        return (Decimal(self.minor_units) / (Decimal(10) ** exponent)).quantize(quantum)

    @property
    def exact_amount(self) -> Decimal:
        """Unrounded major-unit value, for audit breakdowns."""
        return self.minor / (Decimal(10) ** currency_exponent(self.currency))

    def is_zero(self) -> bool:
        return self.minor == 0

    def is_negative(self) -> bool:
        return self.minor < 0

    def __str__(self) -> str:
        return f"{self.currency} {self.amount}"


def sum_money(values, currency: str) -> Money:
    total = Money.zero(currency)
    for value in values:
        total = total.add(value)
    return total
