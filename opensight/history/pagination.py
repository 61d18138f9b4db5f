"""
History pagination: coerce optional, possibly string-encoded limit/offset.
"""

from typing import Any, Optional, Tuple

from ..errors import ValidationError

DEFAULT_LIMIT = 10
MAX_LIMIT = 50


def _to_int(name: str, value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer", [{"field": name, "message": "not an integer"}])
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        raise ValidationError(
            f"{name} must be an integer",
            [{"field": name, "message": f"invalid integer: {text!r}"}],
        )


def coerce_page(
    limit: Any = None,
    offset: Any = None,
    default_limit: int = DEFAULT_LIMIT,
    max_limit: int = MAX_LIMIT,
) -> Tuple[int, int]:
    """
    Bound a history page request.

    Missing limit -> default_limit; limit clamped to [1, max_limit];
    missing or negative offset -> 0.

    Raises:
        ValidationError: limit/offset is not an integer
    """
    parsed_limit = _to_int("limit", limit)
    parsed_offset = _to_int("offset", offset)

    if parsed_limit is None:
        parsed_limit = default_limit
    parsed_limit = max(1, min(max_limit, parsed_limit))
    parsed_offset = max(0, parsed_offset or 0)
    return parsed_limit, parsed_offset
