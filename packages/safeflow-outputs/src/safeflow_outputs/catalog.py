"""Packaged catalog of static safe-output tool definitions."""
from __future__ import annotations

import copy
import functools
import json
from importlib import resources
from typing import Any

from safeflow_core.errors import CompilerError
from safeflow_core.logging import get_logger

logger = get_logger("outputs.catalog")

CATALOG_RESOURCE = "safe_output_tools.json"


@functools.cache
def _load() -> tuple[dict[str, Any], ...]:
    text = (
        resources.files("safeflow_outputs")
        .joinpath("data", CATALOG_RESOURCE)
        .read_text(encoding="utf-8")
    )
    try:
        entries = json.loads(text)
    except json.JSONDecodeError as exc:
        msg = f"failed to parse safe outputs tools JSON: {exc}"
        raise CompilerError(msg) from exc
    logger.debug("Loaded %d static tool definitions", len(entries))
    return tuple(entries)


def load_catalog() -> list[dict[str, Any]]:
    """All static tool definitions, as fresh copies safe to mutate."""
    return copy.deepcopy(list(_load()))


def catalog_names() -> list[str]:
    return [entry["name"] for entry in _load()]


def get_tool(name: str) -> dict[str, Any] | None:
    """A copy of the catalog entry called *name*, or None."""
    for entry in _load():
        if entry["name"] == name:
            return copy.deepcopy(entry)
    return None
