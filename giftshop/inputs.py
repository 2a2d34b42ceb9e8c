import re

# C0/C1 controls except \t and \n; \r is folded by the validator
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")


def read_gift_message(form, field: str = "gift_message") -> str:
    """Decode the gift message field; anything missing or malformed is ''."""
    value = form.get(field) if form is not None else None
    if not isinstance(value, str):
        return ""
    return _CONTROL_RE.sub("", value)


def read_quantity(form, field: str = "quantity") -> int:
    try:
        return max(1, int(form.get(field) or 1))
    except (TypeError, ValueError):
        return 1
