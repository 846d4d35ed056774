"""Agent-facing tool catalog generation.

The catalog handed to the agent is built from three sources:

- the packaged static catalog, filtered to the enabled kinds, with each
  description extended by a ``CONSTRAINTS:`` sentence list derived from the
  live configuration and a ``repo`` input injected for cross-repo kinds
- one tool per custom job under ``safe-outputs.jobs``
- one tool per ``dispatch-workflow`` target, its inputs read from the
  target's compiled workflow file
"""
from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from safeflow_core.errors import CompilerError
from safeflow_core.logging import get_logger

from safeflow_outputs import capabilities as caps
from safeflow_outputs.catalog import load_catalog
from safeflow_outputs.dispatch import extract_dispatch_inputs, find_workflow_file
from safeflow_outputs.jobs import normalize_job_name
from safeflow_outputs.registry import get_kind
from safeflow_outputs.types import ToolDefinition

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from safeflow_outputs.capabilities import CapabilityConfig
    from safeflow_outputs.types import SafeJobConfig, SafeOutputsConfig

logger = get_logger("outputs.tools")

_DISPATCH_KEY = "dispatch-workflow"


# ── Description constraints ──────────────────────────────────────────

_CONSTRAINTS: dict[str, Callable[[Any], list[str]]] = {}


def _constraints(*names: str):
    def register(fn):
        for name in names:
            _CONSTRAINTS[name] = fn
        return fn
    return register


def _items(values: list[str]) -> str:
    return "[" + ", ".join(values) + "]"


def _max(config: CapabilityConfig, phrase: str) -> list[str]:
    return [f"Maximum {config.max} {phrase}."] if config.max > 0 else []


def _target(config: Any) -> list[str]:
    return [f"Target: {config.target}."] if getattr(config, "target", "") else []


@_constraints("create_issue")
def _create_issue(config: caps.CreateIssueConfig) -> list[str]:
    out = _max(config, "issue(s) can be created")
    if config.title_prefix:
        out.append(f'Title will be prefixed with "{config.title_prefix}".')
    if config.labels:
        out.append(f"Labels {_items(config.labels)} will be automatically added.")
    if config.allowed_labels:
        out.append(f"Only these labels are allowed: {_items(config.allowed_labels)}.")
    if config.assignees:
        out.append(f"Assignees {_items(config.assignees)} will be automatically assigned.")
    if config.target_repo:
        out.append(f'Issues will be created in repository "{config.target_repo}".')
    return out


@_constraints("create_agent_session")
def _create_agent_session(config: caps.CreateAgentSessionConfig) -> list[str]:
    out = _max(config, "agent task(s) can be created")
    if config.base:
        out.append(f'Base branch for tasks: "{config.base}".')
    if config.target_repo:
        out.append(f'Tasks will be created in repository "{config.target_repo}".')
    return out


@_constraints("create_discussion")
def _create_discussion(config: caps.CreateDiscussionConfig) -> list[str]:
    out = _max(config, "discussion(s) can be created")
    if config.title_prefix:
        out.append(f'Title will be prefixed with "{config.title_prefix}".')
    if config.category:
        out.append(f'Discussions will be created in category "{config.category}".')
    if config.allowed_labels:
        out.append(f"Only these labels are allowed: {_items(config.allowed_labels)}.")
    if config.target_repo:
        out.append(f'Discussions will be created in repository "{config.target_repo}".')
    return out


@_constraints("close_discussion")
def _close_discussion(config: caps.CloseDiscussionConfig) -> list[str]:
    return _max(config, "discussion(s) can be closed") + _target(config)


@_constraints("close_issue")
def _close_issue(config: caps.CloseIssueConfig) -> list[str]:
    return _max(config, "issue(s) can be closed") + _target(config)


@_constraints("close_pull_request")
def _close_pull_request(config: caps.ClosePullRequestConfig) -> list[str]:
    out = _max(config, "pull request(s) can be closed") + _target(config)
    if config.required_labels:
        out.append(f"Only PRs with labels {_items(config.required_labels)} can be closed.")
    if config.required_title_prefix:
        out.append(
            f'Only PRs with title prefix "{config.required_title_prefix}" can be closed.'
        )
    return out


@_constraints("add_comment")
def _add_comment(config: caps.AddCommentConfig) -> list[str]:
    out = _max(config, "comment(s) can be added") + _target(config)
    if config.target_repo:
        out.append(f'Comments will be added in repository "{config.target_repo}".')
    return out


@_constraints("create_pull_request")
def _create_pull_request(config: caps.CreatePullRequestConfig) -> list[str]:
    out = _max(config, "pull request(s) can be created")
    if config.title_prefix:
        out.append(f'Title will be prefixed with "{config.title_prefix}".')
    if config.labels:
        out.append(f"Labels {_items(config.labels)} will be automatically added.")
    if config.allowed_labels:
        out.append(f"Only these labels are allowed: {_items(config.allowed_labels)}.")
    if config.draft:
        out.append("PRs will be created as drafts.")
    if config.reviewers:
        out.append(f"Reviewers {_items(config.reviewers)} will be assigned.")
    return out


@_constraints("create_pull_request_review_comment")
def _review_comment(config: caps.CreatePullRequestReviewCommentConfig) -> list[str]:
    out = _max(config, "review comment(s) can be created")
    if config.side:
        out.append(f"Comments will be on the {config.side} side of the diff.")
    return out


@_constraints("add_labels", "remove_labels")
def _labels(config: caps.ListConfig) -> list[str]:
    if isinstance(config, caps.RemoveLabelsConfig):
        out = _max(config, "label(s) can be removed")
        if config.allowed:
            out.append(f"Only these labels can be removed: {_items(config.allowed)}.")
    else:
        out = _max(config, "label(s) can be added")
        if config.allowed:
            out.append(f"Only these labels are allowed: {_items(config.allowed)}.")
    return out + _target(config)


@_constraints("update_issue")
def _update_issue(config: caps.UpdateIssueConfig) -> list[str]:
    out = _max(config, "issue(s) can be updated") + _target(config)
    if config.title:
        out.append("Title updates are allowed.")
    if config.body:
        out.append("Body updates are allowed.")
    if config.status:
        out.append("Status updates (open/closed) are allowed.")
    return out


@_constraints("update_pull_request")
def _update_pull_request(config: caps.UpdatePullRequestConfig) -> list[str]:
    return _max(config, "pull request(s) can be updated") + _target(config)


@_constraints("upload_asset")
def _upload_asset(config: caps.UploadAssetConfig) -> list[str]:
    out = _max(config, "asset(s) can be uploaded")
    if config.max_size_kb > 0:
        out.append(f"Maximum file size: {config.max_size_kb}KB.")
    if config.allowed_exts:
        out.append(f"Allowed file extensions: {_items(config.allowed_exts)}.")
    return out


@_constraints("assign_to_agent")
def _assign_to_agent(config: caps.AssignToAgentConfig) -> list[str]:
    out = _max(config, "issue(s) can be assigned to agent")
    if config.base_branch:
        out.append(f'Pull requests will target the "{config.base_branch}" branch.')
    return out


@_constraints("update_project", "create_project_status_update")
def _project(config: Any) -> list[str]:
    if isinstance(config, caps.UpdateProjectConfig):
        out = _max(config, "project operation(s) can be performed")
    else:
        out = _max(config, "status update(s) can be created")
    if config.project:
        out.append(f'Default project URL: "{config.project}".')
    return out


# Kinds whose only constraint is the max count.
_MAX_PHRASES = {
    "submit_pull_request_review": "review(s) can be submitted",
    "reply_to_pull_request_review_comment": "reply/replies can be created",
    "resolve_pull_request_review_thread": "review thread(s) can be resolved",
    "create_code_scanning_alert": "alert(s) can be created",
    "add_reviewer": "reviewer(s) can be added",
    "push_to_pull_request_branch": "push(es) can be made",
    "update_release": "release(s) can be updated",
    "missing_tool": "missing tool report(s) can be created",
    "link_sub_issue": "sub-issue link(s) can be created",
    "assign_milestone": "milestone assignment(s) can be made",
}


def describe_constraints(name: str, config: CapabilityConfig) -> list[str]:
    """Constraint sentences for the tool *name* under *config*."""
    fn = _CONSTRAINTS.get(name)
    if fn is not None:
        return fn(config)
    phrase = _MAX_PHRASES.get(name)
    if phrase is not None:
        return _max(config, phrase)
    return []


def enhance_description(name: str, description: str, config: CapabilityConfig | None) -> str:
    """Append a ``CONSTRAINTS:`` paragraph reflecting *config* to *description*."""
    if config is None:
        return description
    constraints = describe_constraints(name, config)
    if not constraints:
        logger.debug("No constraints found for tool: %s", name)
        return description
    logger.debug("Added %d constraints to tool description: tool=%s", len(constraints), name)
    return description + " CONSTRAINTS: " + " ".join(constraints)


# ── repo input ───────────────────────────────────────────────────────

def add_repo_parameter(schema: dict[str, Any], config: CapabilityConfig) -> bool:
    """Inject a ``repo`` property when *config* allows cross-repo targets.

    Returns True when the property was added.
    """
    allowed_repos = getattr(config, "allowed_repos", None) or []
    target_repo = getattr(config, "target_repo", "")
    if not allowed_repos and target_repo != "*":
        return False
    properties = schema.get("properties")
    if not isinstance(properties, dict):
        return False

    base = "Target repository for this operation in 'owner/repo' format."
    if target_repo == "*":
        description = f"{base} Any repository can be targeted."
    elif target_repo:
        description = (
            f'{base} Default is "{target_repo}". '
            "Must be the target-repo or in the allowed-repos list."
        )
    else:
        description = f"{base} Must be the target-repo or in the allowed-repos list."
    properties["repo"] = {"type": "string", "description": description}
    return True


# ── Custom job and dispatch tools ────────────────────────────────────

def custom_job_tool(name: str, job: SafeJobConfig) -> ToolDefinition:
    """Tool definition for a custom job; required inputs are sorted."""
    properties: dict[str, Any] = {}
    required: list[str] = []
    for input_name, spec in job.inputs.items():
        prop: dict[str, Any] = {}
        if spec.description:
            prop["description"] = spec.description
        if spec.type == "choice":
            prop["type"] = "string"
            if spec.options:
                prop["enum"] = list(spec.options)
        elif spec.type in ("boolean", "number"):
            prop["type"] = spec.type
        else:
            prop["type"] = "string"
        if spec.default is not None:
            prop["default"] = spec.default
        if spec.required:
            required.append(input_name)
        properties[input_name] = prop

    schema: dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = sorted(required)
    schema["additionalProperties"] = False

    logger.debug(
        "Generated tool definition for %s with %d inputs, %d required",
        name, len(job.inputs), len(required),
    )
    return ToolDefinition(
        name=name,
        description=job.description or f"Execute the {name} custom job",
        input_schema=schema,
    )


def dispatch_tool(workflow_name: str, inputs: dict[str, Any]) -> ToolDefinition:
    """Tool definition for dispatching *workflow_name* with its ``workflow_dispatch`` inputs."""
    properties: dict[str, Any] = {}
    required: list[str] = []
    for input_name in sorted(inputs):
        spec = inputs[input_name]
        if not isinstance(spec, dict):
            continue
        description = spec.get("description")
        if not isinstance(description, str) or not description:
            description = f"Input parameter '{input_name}' for workflow {workflow_name}"
        prop: dict[str, Any] = {"type": "string", "description": description}

        input_type = spec.get("type")
        if input_type in ("number", "boolean"):
            prop["type"] = input_type
        elif input_type == "choice":
            options = spec.get("options")
            if isinstance(options, list) and options:
                prop["enum"] = list(options)
        if "default" in spec and "enum" not in prop:
            prop["default"] = spec["default"]
        if spec.get("required") is True:
            required.append(input_name)
        properties[input_name] = prop

    schema: dict[str, Any] = {
        "type": "object",
        "properties": properties,
        "additionalProperties": False,
    }
    if required:
        schema["required"] = required

    return ToolDefinition(
        name=normalize_job_name(workflow_name),
        description=(
            f"Dispatch the '{workflow_name}' workflow with workflow_dispatch trigger. "
            "This workflow must support workflow_dispatch and be in .github/workflows/ "
            "directory in the same repository."
        ),
        input_schema=schema,
        workflow_name=workflow_name,
    )


# ── Catalog ──────────────────────────────────────────────────────────

def check_tools_present(enabled: set[str], present: set[str]) -> None:
    """Raise when an enabled static kind has no catalog entry.

    Raises:
        CompilerError: Listing the missing tool names.
    """
    missing = sorted(enabled - present)
    if missing:
        msg = (
            f"compiler error: safe-output tool(s) {missing} are registered but "
            "missing from safe-output-tools.json; please report this issue to the developer"
        )
        raise CompilerError(msg)


class ToolCatalogGenerator:
    """Derives the agent's tool list from a compiled safe-outputs config."""

    def __init__(
        self,
        config: SafeOutputsConfig | None,
        workflow_path: Path | None = None,
    ) -> None:
        self.config = config
        self.workflow_path = workflow_path
        # target -> file extension actually found, filled while generating
        self.dispatch_files: dict[str, str] = {}

    def generate(self) -> list[ToolDefinition]:
        if self.config is None:
            return []
        tools = self.static_tools()
        names = {tool.name for tool in tools}
        for tool in [*self.custom_job_tools(), *self.dispatch_tools()]:
            if tool.name in names:
                logger.warning("Skipping duplicate tool name %s", tool.name)
                continue
            names.add(tool.name)
            tools.append(tool)
        logger.info("Generated %d safe-output tools", len(tools))
        return tools

    def static_tools(self) -> list[ToolDefinition]:
        """Catalog entries for the enabled kinds, in catalog order."""
        if self.config is None:
            return []
        enabled: dict[str, CapabilityConfig] = {}
        for key, kind_config in self.config.capabilities.items():
            kind = get_kind(key)
            if kind.static_tool:
                enabled[kind.name] = kind_config

        tools: list[ToolDefinition] = []
        for entry in load_catalog():
            name = entry.get("name")
            if name not in enabled:
                continue
            kind_config = enabled[name]
            schema = entry.get("inputSchema") or {"type": "object", "properties": {}}
            if add_repo_parameter(schema, kind_config):
                logger.debug("Added repo parameter to tool: %s", name)
            tools.append(ToolDefinition(
                name=name,
                description=enhance_description(name, entry.get("description", ""), kind_config),
                input_schema=schema,
            ))

        check_tools_present(set(enabled), {tool.name for tool in tools})
        return tools

    def custom_job_tools(self) -> list[ToolDefinition]:
        if self.config is None:
            return []
        return [
            custom_job_tool(normalize_job_name(name), self.config.jobs[name])
            for name in sorted(self.config.jobs)
        ]

    def dispatch_tools(self) -> list[ToolDefinition]:
        """One tool per dispatch target; unreadable targets get an empty schema."""
        if self.config is None:
            return []
        config = self.config.get(_DISPATCH_KEY)
        if not isinstance(config, caps.DispatchWorkflowConfig) or not config.workflows:
            return []
        logger.debug("Adding %d dispatch_workflow tools", len(config.workflows))

        tools: list[ToolDefinition] = []
        for workflow_name in config.workflows:
            inputs: dict[str, Any] = {}
            if self.workflow_path is not None:
                inputs = self._dispatch_inputs(workflow_name)
            tools.append(dispatch_tool(workflow_name, inputs))
        return tools

    def _dispatch_inputs(self, workflow_name: str) -> dict[str, Any]:
        if self.workflow_path is None:
            return {}
        try:
            found = find_workflow_file(workflow_name, self.workflow_path)
        except ValueError as exc:
            logger.warning("Error finding workflow %s: %s", workflow_name, exc)
            return {}
        compiled = found.compiled_path
        if compiled is None:
            logger.warning(
                "Workflow file not found for %s (only .md exists, needs compilation)",
                workflow_name,
            )
            return {}
        self.dispatch_files[workflow_name] = found.compiled_extension
        try:
            return extract_dispatch_inputs(compiled)
        except (OSError, ValueError) as exc:
            logger.warning(
                "Failed to extract inputs for workflow %s from %s: %s",
                workflow_name, compiled, exc,
            )
            return {}


def generate_tools(
    config: SafeOutputsConfig | None, workflow_path: Path | None = None
) -> list[ToolDefinition]:
    """Tool definitions for *config*; dispatch inputs are read relative to *workflow_path*."""
    return ToolCatalogGenerator(config, workflow_path).generate()


def tools_to_json(tools: list[ToolDefinition]) -> str:
    return json.dumps([tool.to_dict() for tool in tools], indent=2)
