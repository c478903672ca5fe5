"""A small closed predicate language for eligibility rules.

A condition is a mapping `{"field": ..., "op": ..., "value": ...}`; a list of
conditions is satisfied when every condition holds. Evaluation only reads the
supplied variable bag, it never calls into user-provided code.
"""

from decimal import Decimal, InvalidOperation

from .exceptions import ValidationError

OPERATORS = ("eq", "ne", "gt", "gte", "lt", "lte", "in", "not_in")
NUMERIC_OPERATORS = {"gt", "gte", "lt", "lte"}


def _coerce(value):
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, (int, Decimal)):
        return Decimal(value)
    if isinstance(value, str):
        try:
            return Decimal(value)
        except InvalidOperation:
            return value.upper()
    return value


def validate_conditions(conditions, fields) -> None:
    """Raise ValidationError unless every condition is well formed."""
    if conditions in (None, []):
        return
    if not isinstance(conditions, list):
        raise ValidationError("Conditions must be a list.")
    for cond in conditions:
        if not isinstance(cond, dict) or set(cond) != {"field", "op", "value"}:
            raise ValidationError("Each condition needs exactly field, op and value.")
        if cond["field"] not in fields:
            raise ValidationError(f"Unknown condition field: {cond['field']}")
        if cond["op"] not in OPERATORS:
            raise ValidationError(f"Unknown condition operator: {cond['op']}")
        if cond["op"] in ("in", "not_in") and not isinstance(cond["value"], list):
            raise ValidationError(f"Operator {cond['op']} needs a list value.")


def _evaluate(cond: dict, bag: dict) -> bool:
    actual = bag.get(cond["field"])
    op = cond["op"]
    expected = cond["value"]

    if op in ("in", "not_in"):
        options = {_coerce(v) for v in expected}
        if isinstance(actual, (list, tuple, set, frozenset)):
            hit = any(_coerce(v) in options for v in actual)
        else:
            hit = _coerce(actual) in options
        return hit if op == "in" else not hit

    left, right = _coerce(actual), _coerce(expected)
    if op == "eq":
        return left == right
    if op == "ne":
        return left != right
    if not isinstance(left, Decimal) or not isinstance(right, Decimal):
        return False
    if op == "gt":
        return left > right
    if op == "gte":
        return left >= right
    if op == "lt":
        return left < right
    return left <= right


def evaluate_conditions(conditions, bag: dict) -> bool:
    return all(_evaluate(cond, bag) for cond in conditions or [])
