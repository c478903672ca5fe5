"""Destination address used for tax and shipping resolution."""

from dataclasses import asdict, dataclass

from .exceptions import ValidationError
from .postal import normalize_postal_code


@dataclass(frozen=True)
class Address:
    """Normalized destination.

    `country` and `state` are stored upper-case; `city` keeps its casing and
    is compared case-insensitively by the resolvers.
    """

    country: str
    state: str = ""
    city: str = ""
    postal_code: str = ""
    line1: str = ""
    line2: str = ""
    name: str = ""

    def __post_init__(self):
        country = (self.country or "").strip().upper()
        if len(country) != 2 or not country.isalpha():
            raise ValidationError("Country must be an ISO 3166-1 alpha-2 code.", country=self.country)
        object.__setattr__(self, "country", country)
        object.__setattr__(self, "state", (self.state or "").strip().upper())
        object.__setattr__(self, "city", (self.city or "").strip())
        object.__setattr__(self, "postal_code", normalize_postal_code(self.postal_code))

    @classmethod
    def from_mapping(cls, data) -> "Address":
        if isinstance(data, Address):
            return data
        if not isinstance(data, dict) or not data.get("country"):
            raise ValidationError("Address requires a country.")
        fields = {k: data.get(k) or "" for k in ("country", "state", "city", "postal_code", "line1", "line2", "name")}
        return cls(**fields)

    def to_dict(self) -> dict:
        return asdict(self)
