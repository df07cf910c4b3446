from __future__ import annotations

import json
from typing import Any

from musterai.core.errors import InvalidArgumentError


def require_text(value: Any, *, max_chars: int, message: str) -> str:
    # Non-blank strings within the boundary limit; anything else is rejected before any cost.
    if not isinstance(value, str) or not value.strip() or len(value) > max_chars:
        raise InvalidArgumentError(message)
    return value


def optional_text(value: Any, *, max_chars: int, message: str) -> str | None:
    if value is None or value == "":
        return None
    return require_text(value, max_chars=max_chars, message=message)


def require_count(value: Any, *, minimum: int, maximum: int, message: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not minimum <= value <= maximum:
        raise InvalidArgumentError(message)
    return value


def text_items(values: Any, *, max_items: int, max_chars: int, message: str) -> list[str]:
    # Optional lists of short labels; every element is bounded like any other text field.
    if values is None:
        return []
    if not isinstance(values, (list, tuple)) or len(values) > max_items:
        raise InvalidArgumentError(message)
    return [require_text(value, max_chars=max_chars, message=message) for value in values]


def bounded_json(value: Any, *, max_chars: int, message: str) -> dict[str, Any]:
    # Free-form objects are measured in their rendered form.
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise InvalidArgumentError(message)
    try:
        rendered = json.dumps(value, sort_keys=True)
    except (TypeError, ValueError) as exc:
        raise InvalidArgumentError(message) from exc
    if len(rendered) > max_chars:
        raise InvalidArgumentError(message)
    return value
