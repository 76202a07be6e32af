"""Deterministic rule evaluation for transaction categorization.

Pure functions: no database access, no mutation of the inputs. Rules and
transactions may be ORM objects, dataclasses or plain mappings, as long as
they expose the attributes used below.

A rule is ``transaction[rule.field] <rule.operator> rule.value``. Active rules
are tried by ascending ``(priority, id)`` and the first one that holds wins.
Rules that cannot be evaluated (unknown field or operator, an operator that
does not apply to the field, a broken regex, a non-numeric amount) are skipped
rather than failing the whole match.
"""
from __future__ import annotations

import logging
import math
import re
from functools import lru_cache
from typing import Any, Iterable, Mapping, Optional

logger = logging.getLogger(__name__)

TEXT_FIELDS = frozenset({"description", "merchant", "notes"})
NUMERIC_FIELDS = frozenset({"amount"})
RULE_FIELDS = TEXT_FIELDS | NUMERIC_FIELDS

TEXT_OPERATORS = frozenset({"contains", "notContains", "startsWith", "endsWith", "equals", "regex"})
NUMERIC_OPERATORS = frozenset({"equals", "greaterThan", "lessThan"})
RULE_OPERATORS = TEXT_OPERATORS | NUMERIC_OPERATORS

AMOUNT_TOLERANCE = 0.005

_WHITESPACE = re.compile(r"\s+")


def is_supported(field: str, operator: str) -> bool:
    """Return True when ``operator`` can be applied to ``field``."""
    if field in TEXT_FIELDS:
        return operator in TEXT_OPERATORS
    if field in NUMERIC_FIELDS:
        return operator in NUMERIC_OPERATORS
    return False


def normalize_text(value: Any) -> str:
    """Lowercase, strip and collapse internal whitespace."""
    if value is None:
        return ""
    return _WHITESPACE.sub(" ", str(value).strip()).lower()


def _get(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


@lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


def _to_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip())
    except ValueError:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _evaluate_text(operator: str, actual: Any, expected: str) -> bool:
    if operator == "regex":
        if actual is None or str(actual).strip() == "":
            return False
        return _compile(expected).search(str(actual)) is not None

    haystack = normalize_text(actual)
    needle = normalize_text(expected)
    if not haystack or not needle:
        return False

    if operator == "contains":
        return needle in haystack
    if operator == "notContains":
        return needle not in haystack
    if operator == "startsWith":
        return haystack.startswith(needle)
    if operator == "endsWith":
        return haystack.endswith(needle)
    if operator == "equals":
        return haystack == needle
    return False


def _evaluate_numeric(operator: str, actual: Any, expected: str) -> bool:
    actual_number = _to_number(actual)
    expected_number = _to_number(expected)
    if actual_number is None or expected_number is None:
        return False

    if operator == "equals":
        return math.isclose(actual_number, expected_number, abs_tol=AMOUNT_TOLERANCE)
    if operator == "greaterThan":
        return actual_number > expected_number
    if operator == "lessThan":
        return actual_number < expected_number
    return False


def evaluate_rule(rule: Any, transaction: Any) -> bool:
    """Return True when ``rule`` holds for ``transaction``. Never raises."""
    field = _get(rule, "field")
    operator = _get(rule, "operator")
    value = _get(rule, "value")

    if not is_supported(field, operator):
        logger.debug(
            "Skipping rule %s: unsupported field/operator %r/%r",
            _get(rule, "id"),
            field,
            operator,
        )
        return False
    if value is None or str(value).strip() == "":
        return False

    actual = _get(transaction, field)
    try:
        if field in NUMERIC_FIELDS:
            return _evaluate_numeric(operator, actual, str(value))
        return _evaluate_text(operator, actual, str(value))
    except re.error as exc:
        logger.debug("Skipping rule %s: invalid pattern %r (%s)", _get(rule, "id"), value, exc)
        return False


def _sort_key(rule: Any) -> tuple[int, int]:
    priority = _get(rule, "priority")
    rule_id = _get(rule, "id")
    return (
        priority if isinstance(priority, int) else 0,
        rule_id if isinstance(rule_id, int) else 0,
    )


def order_rules(rules: Iterable[Any]) -> list[Any]:
    """Return the active rules in evaluation order."""
    active = [rule for rule in rules if _get(rule, "is_active", True)]
    return sorted(active, key=_sort_key)


def find_matching_rule(transaction: Any, rules: Iterable[Any]) -> Optional[Any]:
    """Return the first active rule matching ``transaction``, or None."""
    for rule in order_rules(rules):
        if evaluate_rule(rule, transaction):
            return rule
    return None


def match_category(transaction: Any, rules: Iterable[Any]) -> Optional[int]:
    """Return the category id of the winning rule, or None."""
    rule = find_matching_rule(transaction, rules)
    if rule is None:
        return None
    return _get(rule, "category_id")


__all__ = [
    "NUMERIC_FIELDS",
    "NUMERIC_OPERATORS",
    "RULE_FIELDS",
    "RULE_OPERATORS",
    "TEXT_FIELDS",
    "TEXT_OPERATORS",
    "evaluate_rule",
    "find_matching_rule",
    "is_supported",
    "match_category",
    "normalize_text",
    "order_rules",
]
