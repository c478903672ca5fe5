"""Postal code pattern matching shared by tax rates and shipping zones.

A pattern is a literal code with an optional `*` wildcard token standing
for any run of characters, e.g. `902*` or `SW1*`.
"""

import re
from functools import lru_cache


def normalize_postal_code(code: str | None) -> str:
    return re.sub(r"\s+", "", code or "").upper()


@lru_cache(maxsize=512)
def _compile(pattern: str) -> re.Pattern:
    escaped = re.escape(normalize_postal_code(pattern)).replace(r"\*", ".*")
    return re.compile(f"^{escaped}$")


def matches_postal_code(code: str | None, patterns) -> bool:
    """Return True when `code` matches any pattern.

    No patterns, or no code to test, means no postal restriction applies.
    """
    if not patterns or not code:
        return True
    normalized = normalize_postal_code(code)
    return any(_compile(str(pattern)).match(normalized) for pattern in patterns if pattern)


def invalid_postal_patterns(patterns) -> list[str]:
    """Patterns carrying more than the single allowed `*` token."""
    return [str(pattern) for pattern in patterns or [] if str(pattern).count("*") > 1]
