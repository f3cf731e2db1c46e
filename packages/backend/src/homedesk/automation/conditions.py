"""Condition matching for automation rules.

Learn: Conditions are a flat {field: expected_value} map. A rule matches
when EVERY field is present in the event context with a strictly equal
value. No partial matches: one missing or different field and the whole
rule is skipped.

"Strict" means no type coercion:
    True  != 1      (bool is not an int here)
    "5"   != 5
    1     == 1.0    (both are JSON numbers)

The engine only depends on the ConditionMatcher protocol, so a richer
matcher (ranges, contains, negation) can be swapped in without touching
the evaluation loop.
"""

from collections.abc import Mapping
from typing import Any, Protocol

_MISSING = object()


class ConditionMatcher(Protocol):
    def matches(self, conditions: Mapping[str, Any], context: Mapping[str, Any]) -> bool: ...


def strict_equal(expected: Any, actual: Any) -> bool:
    """Equality without Python's bool/int and container coercions."""
    if isinstance(expected, bool) or isinstance(actual, bool):
        return isinstance(expected, bool) and isinstance(actual, bool) and expected == actual

    if isinstance(expected, (int, float)) and isinstance(actual, (int, float)):
        return expected == actual

    if isinstance(expected, str) or isinstance(actual, str):
        return isinstance(expected, str) and isinstance(actual, str) and expected == actual

    if isinstance(expected, Mapping) and isinstance(actual, Mapping):
        if expected.keys() != actual.keys():
            return False
        return all(strict_equal(expected[k], actual[k]) for k in expected)

    if isinstance(expected, (list, tuple)) and isinstance(actual, (list, tuple)):
        if len(expected) != len(actual):
            return False
        return all(strict_equal(e, a) for e, a in zip(expected, actual))

    if expected is None or actual is None:
        return expected is None and actual is None

    return type(expected) is type(actual) and expected == actual


class ExactMatcher:
    """All keys required, strict equality per key. Empty conditions match."""

    def matches(self, conditions: Mapping[str, Any], context: Mapping[str, Any]) -> bool:
        for key, expected in conditions.items():
            actual = context.get(key, _MISSING)
            if actual is _MISSING or not strict_equal(expected, actual):
                return False
        return True
