"""Minimal permission computation for enabled safe-output kinds."""
from __future__ import annotations

from typing import TYPE_CHECKING

from safeflow_core.logging import get_logger

from safeflow_outputs.permissions import Permissions
from safeflow_outputs.registry import get_kind

if TYPE_CHECKING:
    from safeflow_outputs.types import SafeOutputsConfig

logger = get_logger("outputs.calculator")


def compute_permissions_for_safe_outputs(config: SafeOutputsConfig | None) -> Permissions:
    """Union of each enabled kind's minimal permission set.

    Write beats read per scope, so the result does not depend on the
    order kinds are visited in. Returns empty permissions for None.
    """
    permissions = Permissions()
    if config is None:
        return permissions

    for key, kind_config in config.capabilities.items():
        kind = get_kind(key)
        permissions.merge(kind.permissions(kind_config))

    logger.debug(
        "Computed safe-outputs permissions for %d kind(s): %s",
        len(config.capabilities),
        permissions.to_yaml_value(),
    )
    return permissions


def compute_kind_permissions(config: SafeOutputsConfig, key: str) -> Permissions:
    """Minimal permissions for a single enabled kind."""
    kind = get_kind(key)
    kind_config = config.get(kind.key)
    if kind_config is None:
        return Permissions()
    return kind.permissions(kind_config)
