"""Aggregate types for the safe-outputs package."""
from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import TYPE_CHECKING, Any

from safeflow_outputs.coerce import as_bool, as_int, as_str, as_str_list, setting

if TYPE_CHECKING:
    from safeflow_outputs.capabilities import CapabilityConfig
    from safeflow_outputs.permissions import Permissions

DEFAULT_MAX_PATCH_SIZE_KB = 1024
DEFAULT_RUNS_ON = "ubuntu-slim"


@dataclass(frozen=True, slots=True)
class GitHubAppConfig:
    """Installation-credential minting configuration.

    ``repositories == ["*"]`` leaves the token unscoped (org-wide); an
    empty list scopes it to the current repository.
    """

    app_id: str
    private_key: str
    owner: str = ""
    repositories: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return bool(self.app_id) and bool(self.private_key)


@dataclass(frozen=True, slots=True)
class ThreatDetectionConfig:
    prompt: str = ""
    steps: list[dict[str, Any]] = field(default_factory=list)
    engine: str = ""
    engine_disabled: bool = False


@dataclass(frozen=True, slots=True)
class MessagesConfig:
    """Message template overrides, serialized to camelCase JSON for the scripts."""

    footer: str = setting(coerce=as_str, default="")
    footer_install: str = setting(coerce=as_str, default="")
    footer_workflow_recompile: str = setting(coerce=as_str, default="")
    staged_title: str = setting(coerce=as_str, default="")
    staged_description: str = setting(coerce=as_str, default="")
    append_only_comments: bool = setting(coerce=as_bool, default=False)
    run_started: str = setting(coerce=as_str, default="")
    run_success: str = setting(coerce=as_str, default="")
    run_failure: str = setting(coerce=as_str, default="")
    detection_failure: str = setting(coerce=as_str, default="")

    def to_json(self) -> str:
        """Compact JSON with only the non-empty templates; ``""`` when all are empty."""
        payload: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value:
                head, *rest = f.name.split("_")
                payload[head + "".join(part.title() for part in rest)] = value
        return json.dumps(payload, separators=(",", ":")) if payload else ""


@dataclass(frozen=True, slots=True)
class MentionsConfig:
    enabled: bool | None = setting(coerce=as_bool, default=None)
    allow_team_members: bool | None = setting(coerce=as_bool, default=None)
    allow_context: bool | None = setting(coerce=as_bool, default=None)
    allowed: list[str] = setting(coerce=as_str_list, factory=list)
    max: int = setting(coerce=as_int, default=50)


# ── Custom jobs ──────────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class SafeJobInput:
    """One declared input of a custom safe-output job."""

    description: str = ""
    required: bool = False
    default: Any = None
    type: str = "string"  # string | boolean | number | choice
    options: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class SafeJobConfig:
    """A user-defined job under ``safe-outputs.jobs``."""

    name: str
    description: str = ""
    runs_on: Any = None
    if_condition: str = ""
    needs: list[str] = field(default_factory=list)
    steps: list[dict[str, Any]] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    permissions: Permissions | None = None
    github_token: str = ""
    output: str = ""
    inputs: dict[str, SafeJobInput] = field(default_factory=dict)


# ── Aggregate root ───────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class SafeOutputsConfig:
    """Canonical safe-outputs configuration for one compiled workflow.

    ``capabilities`` maps a frontmatter key (``create-issue``) to its
    config record; a kind is enabled iff it has an entry. ``disabled``
    records keys that were explicitly set to ``false`` so that defaults
    and inherited fragments never re-enable them.
    """

    capabilities: dict[str, CapabilityConfig] = field(default_factory=dict)
    allowed_domains: list[str] = field(default_factory=list)
    allowed_github_references: list[str] = field(default_factory=list)
    staged: bool = False
    env: dict[str, str] = field(default_factory=dict)
    github_token: str = ""
    max_patch_size: int = 0
    runs_on: str = ""
    messages: MessagesConfig | None = None
    mentions: MentionsConfig | None = None
    footer: bool | None = None
    group_reports: bool = False
    jobs: dict[str, SafeJobConfig] = field(default_factory=dict)
    app: GitHubAppConfig | None = None
    threat_detection: ThreatDetectionConfig | None = None
    disabled: frozenset[str] = frozenset()

    def get(self, key: str) -> CapabilityConfig | None:
        """Config record for a kind, by frontmatter key or job name."""
        return self.capabilities.get(key) or self.capabilities.get(key.replace("_", "-"))

    def is_enabled(self, key: str) -> bool:
        return self.get(key) is not None

    def enabled_keys(self) -> list[str]:
        return list(self.capabilities)

    def has_any(self) -> bool:
        """True when any capability kind or custom job is configured."""
        return bool(self.capabilities) or bool(self.jobs)

    @property
    def effective_runs_on(self) -> str:
        return self.runs_on or DEFAULT_RUNS_ON


# ── Workflow and job documents ───────────────────────────────────────

@dataclass(frozen=True, slots=True)
class WorkflowData:
    """A parsed workflow markdown file and everything it imported."""

    name: str
    path: Path = field(default_factory=lambda: Path("."))
    source: str = ""
    tracker_id: str = ""
    engine_id: str = ""
    engine_version: str = ""
    engine_model: str = ""
    frontmatter: dict[str, Any] = field(default_factory=dict)
    body: str = ""
    safe_outputs_raw: dict[str, Any] | None = None
    # raw safe-outputs maps from imports, then includes, in declaration order
    inherited_safe_outputs: list[dict[str, Any]] = field(default_factory=list)

    @property
    def workflow_id(self) -> str:
        """The file stem, used to name the workflow and detect self-dispatch."""
        return self.path.name.removesuffix(".md")


@dataclass(frozen=True, slots=True)
class Job:
    """One rendered job of the output workflow."""

    name: str
    condition: str = ""
    runs_on: Any = DEFAULT_RUNS_ON
    permissions: Permissions | None = None
    timeout_minutes: int = 10
    steps: list[dict[str, Any]] = field(default_factory=list)
    outputs: dict[str, str] = field(default_factory=dict)
    needs: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Mapping for the ``jobs.<name>`` entry; empty fields are omitted."""
        doc: dict[str, Any] = {}
        if self.needs:
            doc["needs"] = self.needs[0] if len(self.needs) == 1 else list(self.needs)
        if self.condition:
            doc["if"] = self.condition
        doc["runs-on"] = self.runs_on
        if self.permissions is not None:
            rendered = self.permissions.to_yaml_value()
            if rendered is not None:
                doc["permissions"] = rendered
        doc["timeout-minutes"] = self.timeout_minutes
        if self.env:
            doc["env"] = dict(self.env)
        if self.outputs:
            doc["outputs"] = dict(self.outputs)
        doc["steps"] = list(self.steps)
        return doc


@dataclass(frozen=True, slots=True)
class ToolDefinition:
    """An agent-facing tool entry (MCP ``tools/list`` shape)."""

    name: str
    description: str
    input_schema: dict[str, Any] = field(default_factory=dict)
    workflow_name: str = ""

    def to_dict(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }
        if self.workflow_name:
            doc["_workflow_name"] = self.workflow_name
        return doc
