"""Job permission model: scope→level maps, shorthands and deterministic rendering."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any

from safeflow_core.logging import get_logger

logger = get_logger("outputs.permissions")


class PermissionLevel(enum.Enum):
    READ = "read"
    WRITE = "write"
    NONE = "none"


class PermissionScope(enum.Enum):
    ACTIONS = "actions"
    ATTESTATIONS = "attestations"
    CHECKS = "checks"
    CONTENTS = "contents"
    DEPLOYMENTS = "deployments"
    DISCUSSIONS = "discussions"
    ID_TOKEN = "id-token"
    ISSUES = "issues"
    METADATA = "metadata"
    MODELS = "models"
    ORGANIZATION_PROJECTS = "organization-projects"
    PACKAGES = "packages"
    PAGES = "pages"
    PULL_REQUESTS = "pull-requests"
    SECURITY_EVENTS = "security-events"
    STATUSES = "statuses"


SHORTHANDS: dict[str, PermissionLevel] = {
    "read-all": PermissionLevel.READ,
    "write-all": PermissionLevel.WRITE,
    "none": PermissionLevel.NONE,
}

# Scopes that exist for installation tokens only, or are implicitly granted.
_NEVER_RENDERED = frozenset({
    PermissionScope.METADATA,
    PermissionScope.ORGANIZATION_PROJECTS,
})

_RANK = {
    PermissionLevel.NONE: 0,
    PermissionLevel.READ: 1,
    PermissionLevel.WRITE: 2,
}


def higher_level(a: PermissionLevel, b: PermissionLevel) -> PermissionLevel:
    """Return the stronger of two levels (write > read > none)."""
    return a if _RANK[a] >= _RANK[b] else b


def _unsupported(scope: PermissionScope, level: PermissionLevel) -> bool:
    """id-token only takes write or none."""
    if scope is PermissionScope.ID_TOKEN and level is PermissionLevel.READ:
        logger.warning("Ignoring unsupported level 'read' for id-token (use write or none)")
        return True
    return False


def _expand(level: PermissionLevel) -> dict[PermissionScope, PermissionLevel]:
    """Expand a blanket level over every scope, skipping id-token for read."""
    return {
        scope: level
        for scope in PermissionScope
        if not (scope is PermissionScope.ID_TOKEN and level is PermissionLevel.READ)
    }


@dataclass(slots=True)
class Permissions:
    """Execution rights for a single job.

    Exactly one representation is active: a shorthand (``read-all``,
    ``write-all``, ``none``), an ``all: <level>`` expansion with optional
    explicit overrides, or a plain scope map. An empty map renders to
    nothing unless ``explicit_empty`` is set, in which case it renders
    ``permissions: {}``.
    """

    scopes: dict[PermissionScope, PermissionLevel] = field(default_factory=dict)
    shorthand: str = ""
    all_level: PermissionLevel | None = None
    explicit_empty: bool = False

    # ── Construction ──────────────────────────────────────────────────

    @classmethod
    def from_map(
        cls, perms: dict[PermissionScope, PermissionLevel] | None = None
    ) -> Permissions:
        return cls(scopes=dict(perms or {}))

    @classmethod
    def from_shorthand(cls, shorthand: str) -> Permissions:
        if shorthand not in SHORTHANDS:
            msg = f"Unknown permissions shorthand: '{shorthand}'"
            raise ValueError(msg)
        return cls(shorthand=shorthand)

    @classmethod
    def empty(cls) -> Permissions:
        """Permissions that render as an explicit ``permissions: {}``."""
        return cls(explicit_empty=True)

    @classmethod
    def all(
        cls,
        level: PermissionLevel,
        overrides: dict[PermissionScope, PermissionLevel] | None = None,
    ) -> Permissions:
        return cls(scopes=dict(overrides or {}), all_level=level)

    @classmethod
    def parse(cls, raw: Any) -> Permissions:
        """Build Permissions from a frontmatter ``permissions`` value.

        Accepts a shorthand string, ``{}`` or a scope map that may contain
        an ``all`` key. Unknown scopes and levels are dropped.
        """
        if isinstance(raw, str):
            return cls.from_shorthand(raw)
        if not isinstance(raw, dict):
            return cls()
        if not raw:
            return cls.empty()

        perms = cls()
        for key, value in raw.items():
            try:
                level = PermissionLevel(str(value))
            except ValueError:
                logger.warning("Ignoring invalid permission level %r for %s", value, key)
                continue
            if key == "all":
                perms.all_level = level
                continue
            try:
                scope = PermissionScope(str(key))
            except ValueError:
                logger.warning("Ignoring unknown permission scope %r", key)
                continue
            if _unsupported(scope, level):
                continue
            perms.scopes[scope] = level
        return perms

    # ── Operations ────────────────────────────────────────────────────

    def is_empty(self) -> bool:
        return not self.shorthand and self.all_level is None and not self.scopes

    def set(self, scope: PermissionScope, level: PermissionLevel) -> None:
        """Set one scope, converting shorthand/all forms to an explicit map."""
        if _unsupported(scope, level):
            return
        if self.shorthand:
            logger.debug("Converting shorthand %s to explicit map", self.shorthand)
            self.shorthand = ""
        if self.all_level is not None:
            expanded = _expand(self.all_level)
            expanded.update(self.scopes)
            self.scopes = expanded
            self.all_level = None
        self.scopes[scope] = level

    def get(self, scope: PermissionScope) -> PermissionLevel | None:
        """Effective level for *scope*, or None when not granted at all."""
        if self.shorthand:
            return SHORTHANDS[self.shorthand]
        if scope in self.scopes:
            return self.scopes[scope]
        if self.all_level is not None:
            if scope is PermissionScope.ID_TOKEN and self.all_level is PermissionLevel.READ:
                return None
            return self.all_level
        return None

    def merge(self, other: Permissions | None) -> None:
        """Union *other* into this value in place; write beats read beats none."""
        if other is None:
            return

        if other.shorthand and self.shorthand:
            level = higher_level(SHORTHANDS[self.shorthand], SHORTHANDS[other.shorthand])
            self.shorthand = next(k for k, v in SHORTHANDS.items() if v is level)
            return

        # Both sides become plain scope maps before the union.
        if self.shorthand:
            baseline = SHORTHANDS[self.shorthand]
            self.shorthand = ""
            if baseline is not PermissionLevel.NONE:
                self.scopes = _expand(baseline)
        if self.all_level is not None:
            expanded = _expand(self.all_level)
            expanded.update(self.scopes)
            self.scopes = expanded
            self.all_level = None

        if other.shorthand:
            baseline = SHORTHANDS[other.shorthand]
            incoming = {} if baseline is PermissionLevel.NONE else _expand(baseline)
        elif other.all_level is not None:
            incoming = _expand(other.all_level)
            incoming.update(other.scopes)
        else:
            incoming = other.scopes
        self._merge_map(incoming)

    def _merge_map(self, other: dict[PermissionScope, PermissionLevel]) -> None:
        for scope, level in other.items():
            current = self.scopes.get(scope)
            self.scopes[scope] = level if current is None else higher_level(current, level)

    def copy(self) -> Permissions:
        return Permissions(
            scopes=dict(self.scopes),
            shorthand=self.shorthand,
            all_level=self.all_level,
            explicit_empty=self.explicit_empty,
        )

    # ── Rendering ─────────────────────────────────────────────────────

    def effective_scopes(self) -> dict[PermissionScope, PermissionLevel]:
        """Flatten to a scope map as it would be rendered (before filtering)."""
        if self.shorthand:
            return {}
        flat: dict[PermissionScope, PermissionLevel] = {}
        if self.all_level is not None:
            for scope, level in _expand(self.all_level).items():
                if (
                    scope is PermissionScope.DISCUSSIONS
                    and self.all_level is PermissionLevel.READ
                    and scope not in self.scopes
                ):
                    continue
                flat[scope] = level
        flat.update(self.scopes)
        return flat

    def to_yaml_value(self) -> str | dict[str, str] | None:
        """Value for the ``permissions`` key of a job, or None to omit it."""
        if self.shorthand:
            return self.shorthand
        rendered = {
            scope.value: level.value
            for scope, level in sorted(
                self.effective_scopes().items(), key=lambda item: item[0].value
            )
            if scope not in _NEVER_RENDERED
        }
        if rendered:
            return rendered
        return {} if self.explicit_empty else None

    def render(self) -> str:
        """Render as a standalone YAML ``permissions:`` block."""
        value = self.to_yaml_value()
        if value is None:
            return ""
        if isinstance(value, str):
            return f"permissions: {value}"
        if not value:
            return "permissions: {}"
        lines = ["permissions:"]
        lines.extend(f"  {scope}: {level}" for scope, level in value.items())
        return "\n".join(lines)


# ── Factories ────────────────────────────────────────────────────────

R = PermissionLevel.READ
W = PermissionLevel.WRITE


def permissions_of(**levels: PermissionLevel) -> Permissions:
    """Build a scope map from keyword arguments (underscores become hyphens).

    ``permissions_of(contents=R, pull_requests=W)``
    """
    return Permissions.from_map({
        PermissionScope(name.replace("_", "-")): level
        for name, level in levels.items()
    })
