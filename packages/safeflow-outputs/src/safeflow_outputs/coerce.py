"""Loose-typed value coercion for frontmatter configuration.

Frontmatter arrives as whatever ``yaml.safe_load`` produced. Each coercer
takes that raw value and returns the typed value, or ``None`` when the
shape does not match. Callers treat ``None`` as "keep the default", which
is how malformed optional fields are silently ignored.

Capability config dataclasses declare their frontmatter key and coercer
per field through :func:`setting`; :func:`apply_settings` walks that table.
"""
from __future__ import annotations

import dataclasses
import re
from typing import TYPE_CHECKING, Any

from safeflow_core.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

logger = get_logger("outputs.coerce")

_MISSING = dataclasses.MISSING
_DURATION = re.compile(r"^\s*(\d+)\s*([hdw])\s*$", re.IGNORECASE)
_HOURS_PER_UNIT = {"h": 1, "d": 24, "w": 24 * 7}


# ── Scalar coercers ──────────────────────────────────────────────────

def as_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def as_bool(value: Any) -> bool | None:
    return value if isinstance(value, bool) else None


def as_int(value: Any) -> int | None:
    """Integers pass through; floats are truncated. Booleans are rejected."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        truncated = int(value)
        if truncated != value:
            logger.debug("Float value %.2f truncated to integer %d", value, truncated)
        return truncated
    return None


def as_positive_int(value: Any) -> int | None:
    number = as_int(value)
    return number if number is not None and number >= 1 else None


def as_flag(value: Any) -> bool | None:
    """Bool-valued field where an explicit ``null`` means enabled."""
    if value is None:
        return True
    return as_bool(value)


def as_present(value: Any) -> bool | None:
    """Key-existence field: any value (even ``null``) enables it, ``false`` disables."""
    return value is not False


# ── Collection coercers ──────────────────────────────────────────────

def as_str_list(value: Any) -> list[str] | None:
    """A string becomes a one-item list; non-string list items are dropped."""
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [item for item in value if isinstance(item, str)]
    return None


def as_str_map(value: Any) -> dict[str, str] | None:
    """Mapping with non-string values dropped."""
    if not isinstance(value, dict):
        return None
    return {str(k): v for k, v in value.items() if isinstance(v, str)}


def as_map(value: Any) -> dict[str, Any] | None:
    return dict(value) if isinstance(value, dict) else None


def as_list(value: Any) -> list[Any] | None:
    return list(value) if isinstance(value, list) else None


# ── Domain coercers ──────────────────────────────────────────────────

def as_hours(value: Any) -> int | None:
    """Expiry in hours: an int, a ``"<n>h|d|w"`` string, or ``false`` (0)."""
    if value is False:
        return 0
    number = as_int(value)
    if number is not None:
        return max(number, 0)
    if isinstance(value, str):
        match = _DURATION.match(value)
        if match:
            return int(match.group(1)) * _HOURS_PER_UNIT[match.group(2).lower()]
        logger.warning("Ignoring unparseable expires value: %r", value)
    return None


# ── Declarative field table ──────────────────────────────────────────

def setting(
    key: str | None = None,
    coerce: Callable[[Any], Any] = as_str,
    *,
    default: Any = _MISSING,
    factory: Callable[[], Any] | None = None,
) -> Any:
    """Declare a dataclass field bound to a frontmatter key and coercer.

    When *key* is omitted the field name is used with ``_`` replaced by
    ``-``.
    """
    metadata = {"key": key, "coerce": coerce}
    if factory is not None:
        return dataclasses.field(default_factory=factory, metadata=metadata)
    return dataclasses.field(default=default, metadata=metadata)


def frontmatter_key(f: dataclasses.Field) -> str:
    return f.metadata.get("key") or f.name.replace("_", "-")


def apply_settings(cls: type, raw: dict[str, Any]) -> dict[str, Any]:
    """Coerce every declared field of *cls* found in *raw*.

    Returns constructor keyword arguments; fields that are absent or whose
    values fail coercion are left out so the dataclass default applies.
    """
    kwargs: dict[str, Any] = {}
    for f in dataclasses.fields(cls):
        coerce = f.metadata.get("coerce")
        if coerce is None:
            continue
        key = frontmatter_key(f)
        if key not in raw:
            continue
        value = coerce(raw[key])
        if value is None:
            logger.debug("Ignoring %s=%r for %s (wrong type)", key, raw[key], cls.__name__)
            continue
        kwargs[f.name] = value
    return kwargs
