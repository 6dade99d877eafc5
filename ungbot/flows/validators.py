"""
Input validators for flow steps.

Each validator takes the raw text the user sent and returns the value to
store, or raises ``ValidationError`` with the message to show before the
step's prompt is repeated.
"""
from __future__ import annotations

import math
from typing import Callable, List, Optional, Tuple, Union

Number = Union[int, float]


class ValidationError(ValueError):
    pass


def non_empty(field_name: str) -> Callable[[str], str]:
    def validate(raw: str) -> str:
        value = raw.strip()
        if not value:
            raise ValidationError(f"{field_name} cannot be empty. Please try again:")
        return value
    return validate


def email(raw: str) -> str:
    value = raw.strip()
    if "@" not in value or "." not in value.split("@")[-1]:
        raise ValidationError("❌ Invalid email format. Please try again:")
    return value


def positive_number(
    field_name: str = "Amount",
    max_value: Optional[Number] = None,
    example: str = "",
) -> Callable[[str], float]:
    """Parse a float > 0 (and <= max_value when given)."""

    def validate(raw: str) -> float:
        text = raw.strip().lstrip("$").replace(",", "")
        try:
            value = float(text)
        except ValueError:
            value = math.nan
        if not math.isfinite(value):
            hint = f" Example: {example}" if example else ""
            raise ValidationError(f"❌ Invalid {field_name.lower()}. Please enter a positive number.{hint}")
        if value <= 0:
            raise ValidationError(f"❌ {field_name} must be greater than 0.")
        if max_value is not None and value > max_value:
            raise ValidationError(f"❌ {field_name} must be at most {max_value}.")
        return value

    return validate


def positive_int(raw: str) -> int:
    try:
        value = int(raw.strip())
    except ValueError:
        raise ValidationError("❌ Invalid selection.")
    if value <= 0:
        raise ValidationError("❌ Invalid selection.")
    return value


def id_pair(raw: str) -> Tuple[int, int]:
    """
    ``"12_7"`` -> ``(12, 7)``, e.g. a contract id and its client id.
    The second id may be ``0`` when the record has no parent.
    """
    first, sep, second = raw.strip().partition("_")
    if not sep or not second.isdigit():
        raise ValidationError("❌ Invalid selection.")
    return positive_int(first), int(second)


def comma_list(field_name: str) -> Callable[[str], List[str]]:
    def validate(raw: str) -> List[str]:
        items = [part.strip() for part in raw.split(",")]
        items = [item for item in items if item]
        if not items:
            raise ValidationError(f"Please send at least one {field_name}, separated by commas:")
        return items
    return validate
