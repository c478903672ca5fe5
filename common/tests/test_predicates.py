import pytest
from common.address import Address
from common.exceptions import ValidationError
from common.predicates import evaluate_conditions, validate_conditions

FIELDS = ("subtotal", "country", "category_ids", "is_guest")


def test_conditions_all_must_hold():
    conditions = [
        {"field": "subtotal", "op": "gte", "value": "50"},
        {"field": "country", "op": "in", "value": ["us", "CA"]},
    ]
    assert evaluate_conditions(conditions, {"subtotal": "75.00", "country": "US"})
    assert not evaluate_conditions(conditions, {"subtotal": "75.00", "country": "MX"})
    assert not evaluate_conditions(conditions, {"subtotal": "10.00", "country": "US"})
    assert evaluate_conditions([], {})


def test_list_membership_and_booleans():
    assert evaluate_conditions([{"field": "category_ids", "op": "in", "value": [3]}], {"category_ids": [1, 3]})
    assert evaluate_conditions([{"field": "category_ids", "op": "not_in", "value": [9]}], {"category_ids": [1, 3]})
    assert evaluate_conditions([{"field": "is_guest", "op": "eq", "value": False}], {"is_guest": False})
    # Ordering against a missing or non-numeric value never matches
    assert not evaluate_conditions([{"field": "subtotal", "op": "lt", "value": "10"}], {})


@pytest.mark.parametrize(
    "conditions",
    [
        {"field": "subtotal"},
        [{"field": "subtotal", "op": "gte"}],
        [{"field": "nope", "op": "eq", "value": 1}],
        [{"field": "subtotal", "op": "matches", "value": 1}],
        [{"field": "country", "op": "in", "value": "US"}],
    ],
)
def test_malformed_conditions_are_rejected(conditions):
    with pytest.raises(ValidationError):
        validate_conditions(conditions, FIELDS)


def test_address_normalizes_and_validates_country():
    addr = Address.from_mapping({"country": " us ", "state": "ca", "city": "Los Angeles", "postal_code": "90210"})
    assert addr.country == "US"
    assert addr.state == "CA"
    assert addr.to_dict()["city"] == "Los Angeles"

    with pytest.raises(ValidationError):
        Address.from_mapping({"country": "USA"})
    with pytest.raises(ValidationError):
        Address.from_mapping({"state": "CA"})
