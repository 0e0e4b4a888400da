"""Reusable ``validate`` hooks for two-way bindings.

A validator returns True when the value is acceptable, or a message (or
False) when it is not.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from typing import Any

Validator = Callable[[Any], "bool | str"]


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def required(value: Any) -> bool | str:
    if value is None or value == "":
        return "Value is required"
    return True


def min_length(minimum: int) -> Validator:
    def check(value: Any) -> bool | str:
        if value is None or len(value) < minimum:
            return f"Must be at least {minimum} characters"
        return True

    return check


def max_length(maximum: int) -> Validator:
    def check(value: Any) -> bool | str:
        if value is not None and len(value) > maximum:
            return f"Must be at most {maximum} characters"
        return True

    return check


def pattern(regex: str | re.Pattern[str]) -> Validator:
    compiled = re.compile(regex) if isinstance(regex, str) else regex

    def check(value: Any) -> bool | str:
        if value and not compiled.search(str(value)):
            return f"Does not match {compiled.pattern}"
        return True

    return check


def value_range(minimum: float | None = None, maximum: float | None = None) -> Validator:
    def check(value: Any) -> bool | str:
        if not _is_number(value):
            return "Must be a number"
        if minimum is not None and value < minimum:
            return f"Must be >= {minimum}"
        if maximum is not None and value > maximum:
            return f"Must be <= {maximum}"
        return True

    return check


def is_number(value: Any) -> bool | str:
    return True if _is_number(value) else "Must be a number"


def is_integer(value: Any) -> bool | str:
    if isinstance(value, int) and not isinstance(value, bool):
        return True
    return "Must be an integer"


def is_boolean(value: Any) -> bool | str:
    return True if isinstance(value, bool) else "Must be true or false"


def all_of(*validators: Validator) -> Validator:
    """Combine validators; the first rejection wins."""

    def check(value: Any) -> bool | str:
        for validator in validators:
            verdict = validator(value)
            if verdict is not True:
                return verdict
        return True

    return check
