import re
from typing import Any, Dict, List

REQUIRED_STR_FIELDS = ["identifying_number"]
OPTIONAL_STR_FIELDS = [
    "full_name",
    "group",
    "neighborhood",
    "gender",
    "coordinator",
    "leader",
    "address",
]

_DIGITS = re.compile(r"^[0-9]+$")

MIN_NAME_FRAGMENT = 2


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def is_identifying_number(v: Any) -> bool:
    """True for a non-empty string made only of digits (after trimming)."""
    return isinstance(v, str) and bool(_DIGITS.match(v.strip()))


def validate_person(data: Any) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.
    Numbers stored as JSON integers are accepted for identifying_number.
    """
    if not isinstance(data, dict):
        return ["Record must be an object"]

    errors: List[str] = []

    for f in REQUIRED_STR_FIELDS:
        value = data.get(f)
        if isinstance(value, int) and not isinstance(value, bool):
            value = str(value)
        if f not in data or value is None:
            errors.append(f"Missing required field: {f}")
        elif not _is_non_empty_str(value):
            errors.append(f"Field '{f}' must be a non-empty string")
        elif not is_identifying_number(value):
            errors.append(f"Field '{f}' must contain only digits")

    for f in OPTIONAL_STR_FIELDS:
        if f in data and data[f] is not None and not isinstance(data[f], str):
            errors.append(f"Field '{f}' must be a string if provided")

    return errors


def validate_name_fragment(fragment: Any) -> List[str]:
    if not isinstance(fragment, str):
        return ["Search text must be a string"]
    if len(fragment.strip()) < MIN_NAME_FRAGMENT:
        return [f"Search text must have at least {MIN_NAME_FRAGMENT} characters"]
    return []
