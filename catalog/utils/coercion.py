"""Permissive coercion of query-string and payload values.

The read path never rejects a request because of a malformed number or flag:
anything that does not parse is treated as if the parameter were absent (or
falls back to its default). This is a deliberate API policy, so callers get a
result for ``?limit=abc`` rather than a 400.
"""

import json
import math
from typing import Any

TRUE_VALUES = {"true", "1", "yes", "on"}
FALSE_VALUES = {"false", "0", "no", "off"}


def parse_int(value: Any, default: int) -> int:
    """Coerce to int, returning ``default`` when the value does not parse."""
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else default
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
        number = parse_float(value)
        return int(number) if number is not None else default
    return default


def parse_float(value: Any) -> float | None:
    """Coerce to a finite float, or None when absent/unparseable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        if not value.strip():
            return None
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def parse_bool(value: Any) -> bool | None:
    """Coerce to bool, or None when absent/unrecognised."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_VALUES:
            return True
        if lowered in FALSE_VALUES:
            return False
    return None


def parse_str(value: Any) -> str | None:
    """Strip a string value; empty strings count as absent."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_list(value: Any) -> list[Any] | None:
    """Accept a list, a JSON-encoded list, or a comma-separated string."""
    if value is None:
        return None
    if isinstance(value, (list, tuple, set)):
        return list(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.startswith("["):
            try:
                decoded = json.loads(text)
            except json.JSONDecodeError:
                decoded = None
            if isinstance(decoded, list):
                return decoded
        return [part.strip() for part in text.split(",") if part.strip()]
    return None


def parse_json_object(value: Any) -> Any:
    """Decode a JSON-encoded string; non-JSON values pass through unchanged."""
    if isinstance(value, str):
        text = value.strip()
        if text.startswith(("{", "[")):
            try:
                return json.loads(text)
            except json.JSONDecodeError:
                return value
    return value
