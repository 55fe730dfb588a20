"""Field-level validation for wizard steps."""

from typing import Any, Dict, Iterable

from podforge.flow.config import FIELD_RULES


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


def validate_fields(form_data: Dict[str, Any], fields: Iterable[str]) -> Dict[str, str]:
    """
    Check each named field against its rule.

    Returns a {field: message} map; an empty map means every field passed.
    """
    errors: Dict[str, str] = {}
    for name in fields:
        rule = FIELD_RULES.get(name)
        label = rule.label if rule else name
        value = form_data.get(name)

        if is_empty(value):
            errors[name] = f"{label} is required."
            continue
        if rule is None:
            continue
        if rule.min_length and isinstance(value, str) and len(value.strip()) < rule.min_length:
            errors[name] = f"{label} must be at least {rule.min_length} characters."
        elif rule.choices is not None and value not in rule.choices:
            errors[name] = f"{label} must be one of: {', '.join(rule.choices)}."
    return errors
