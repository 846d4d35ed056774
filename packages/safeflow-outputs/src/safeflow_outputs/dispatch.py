"""Validation of ``dispatch-workflow`` targets.

Each declared target moves from ``UNCHECKED`` to exactly one terminal
state. A target is ``VALID`` only when a compiled file for it exists in
``.github/workflows`` and that file's ``on:`` section carries a
``workflow_dispatch`` trigger.
"""
from __future__ import annotations

import enum
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from safeflow_core.errors import DispatchValidationError
from safeflow_core.logging import get_logger

if TYPE_CHECKING:
    from safeflow_outputs.types import SafeOutputsConfig

logger = get_logger("outputs.dispatch")

DISPATCH_KEY = "dispatch-workflow"
DISPATCH_TRIGGER = "workflow_dispatch"
LOCK_SUFFIX = ".lock.yml"


class TargetState(enum.Enum):
    UNCHECKED = "unchecked"
    SELF_REFERENCE = "self-reference-rejected"
    NOT_FOUND = "not-found"
    UNCOMPILED = "uncompiled"
    UNREADABLE = "unreadable"
    MISSING_TRIGGER = "missing-trigger"
    VALID = "valid"


@dataclass(frozen=True, slots=True)
class TargetCheck:
    """Outcome of validating one dispatch target."""

    name: str
    state: TargetState
    message: str = ""
    path: Path | None = None

    @property
    def ok(self) -> bool:
        return self.state is TargetState.VALID


@dataclass(frozen=True, slots=True)
class WorkflowFiles:
    """Candidate files for a workflow name in ``.github/workflows``."""

    md_path: Path
    lock_path: Path
    yml_path: Path

    @property
    def md_exists(self) -> bool:
        return self.md_path.is_file()

    @property
    def lock_exists(self) -> bool:
        return self.lock_path.is_file()

    @property
    def yml_exists(self) -> bool:
        return self.yml_path.is_file()

    @property
    def compiled_path(self) -> Path | None:
        """The compiled file to read: ``.lock.yml`` first, then ``.yml``."""
        if self.lock_exists:
            return self.lock_path
        if self.yml_exists:
            return self.yml_path
        return None

    @property
    def compiled_extension(self) -> str:
        if self.lock_exists:
            return LOCK_SUFFIX
        if self.yml_exists:
            return ".yml"
        return ""


class ErrorCollector:
    """Accumulates validation errors, or stops at the first in fail-fast mode."""

    def __init__(self, fail_fast: bool = False) -> None:
        self.fail_fast = fail_fast
        self.errors: list[str] = []

    def add(self, message: str) -> bool:
        """Record *message*; returns True when validation should stop."""
        self.errors.append(message)
        return self.fail_fast

    def __len__(self) -> int:
        return len(self.errors)

    def formatted(self, category: str) -> str:
        return format_errors(self.errors, category)


def format_errors(errors: list[str], category: str) -> str:
    """One message for *errors*: the error itself, or a numbered list."""
    if len(errors) == 1:
        return errors[0]
    lines = [f"Found {len(errors)} {category} errors:"]
    lines.extend(f"  {i}. {error}" for i, error in enumerate(errors, 1))
    return "\n".join(lines)


# ── File lookup ──────────────────────────────────────────────────────

def current_workflow_name(workflow_path: Path) -> str:
    name = workflow_path.name
    for suffix in (".md", LOCK_SUFFIX):
        if name.endswith(suffix):
            return name[: -len(suffix)]
    return name


def workflows_dir(workflow_path: Path) -> Path:
    """``<repo>/.github/workflows`` for a workflow at ``<repo>/.github/<dir>/x.md``."""
    return workflow_path.resolve().parent.parent.parent / ".github" / "workflows"


def _within(path: Path, directory: Path) -> bool:
    rel = os.path.relpath(os.path.normpath(path), os.path.normpath(directory))
    return rel != ".." and not rel.startswith(".." + os.sep)


def find_workflow_file(workflow_name: str, workflow_path: Path) -> WorkflowFiles:
    """Candidate files for *workflow_name* next to the compiling workflow.

    Raises:
        ValueError: If the name would resolve outside ``.github/workflows``.
    """
    search_dir = workflows_dir(workflow_path)
    files = WorkflowFiles(
        md_path=search_dir / f"{workflow_name}.md",
        lock_path=search_dir / f"{workflow_name}{LOCK_SUFFIX}",
        yml_path=search_dir / f"{workflow_name}.yml",
    )
    if not all(_within(p, search_dir) for p in (files.md_path, files.lock_path, files.yml_path)):
        msg = f"invalid workflow name '{workflow_name}' (path traversal not allowed)"
        raise ValueError(msg)
    return files


def load_workflow_yaml(path: Path) -> dict[str, Any]:
    """Parse a compiled workflow file.

    Raises:
        OSError: If the file cannot be read.
        ValueError: If the YAML is malformed or not a mapping.
    """
    text = path.read_text(encoding="utf-8")
    try:
        doc = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        msg = f"failed to parse workflow file {path}: {exc}"
        raise ValueError(msg) from exc
    if doc is None:
        return {}
    if not isinstance(doc, dict):
        msg = f"failed to parse workflow file {path}: top level is not a mapping"
        raise ValueError(msg)
    return doc


def trigger_section(workflow: dict[str, Any]) -> Any:
    """The ``on:`` value; YAML 1.1 loads the bare key as boolean True."""
    if "on" in workflow:
        return workflow["on"]
    return workflow.get(True)


def has_dispatch_trigger(on: Any) -> bool:
    if isinstance(on, str):
        return on == DISPATCH_TRIGGER
    if isinstance(on, list):
        return DISPATCH_TRIGGER in on
    if isinstance(on, dict):
        return DISPATCH_TRIGGER in on
    return False


def extract_dispatch_inputs(path: Path) -> dict[str, Any]:
    """``on.workflow_dispatch.inputs`` of the compiled workflow at *path*, or ``{}``."""
    on = trigger_section(load_workflow_yaml(path))
    if not isinstance(on, dict):
        return {}
    dispatch = on.get(DISPATCH_TRIGGER)
    if not isinstance(dispatch, dict):
        return {}
    inputs = dispatch.get("inputs")
    return inputs if isinstance(inputs, dict) else {}


def resolve_dispatch_workflow_files(
    config: SafeOutputsConfig | None, workflow_path: Path
) -> dict[str, str]:
    """Map each dispatch target to the compiled extension found for it."""
    files: dict[str, str] = {}
    if config is None:
        return files
    dispatch = config.get(DISPATCH_KEY)
    for name in getattr(dispatch, "workflows", []):
        try:
            found = find_workflow_file(name, workflow_path)
        except ValueError:
            continue
        if found.compiled_extension:
            files[name] = found.compiled_extension
    return files


# ── Validation ───────────────────────────────────────────────────────

def check_target(workflow_name: str, workflow_path: Path) -> TargetCheck:
    """Run one target through the validation states."""
    if workflow_name == current_workflow_name(workflow_path):
        return TargetCheck(workflow_name, TargetState.SELF_REFERENCE, (
            f"dispatch-workflow: self-reference not allowed (workflow '{workflow_name}' "
            "cannot dispatch itself)\n\n"
            "A workflow cannot trigger itself to prevent infinite loops.\n"
            "If you need recurring execution, use a schedule trigger or "
            "workflow_dispatch instead"
        ))

    try:
        found = find_workflow_file(workflow_name, workflow_path)
    except ValueError as exc:
        return TargetCheck(workflow_name, TargetState.NOT_FOUND, (
            f"dispatch-workflow: error finding workflow '{workflow_name}': {exc}"
        ))

    if not (found.md_exists or found.lock_exists or found.yml_exists):
        search_dir = workflows_dir(workflow_path)
        return TargetCheck(workflow_name, TargetState.NOT_FOUND, (
            f"dispatch-workflow: workflow '{workflow_name}' not found in {search_dir}\n\n"
            f"Checked for: {workflow_name}.md, {workflow_name}.lock.yml, "
            f"{workflow_name}.yml\n\n"
            "To fix:\n"
            "1. Verify the workflow file exists in .github/workflows/\n"
            "2. Ensure the filename matches exactly (case-sensitive)\n"
            "3. Use the filename without extension in your configuration"
        ))

    compiled = found.compiled_path
    if compiled is None:
        return TargetCheck(workflow_name, TargetState.UNCOMPILED, (
            f"dispatch-workflow: workflow '{workflow_name}' must be compiled first\n\n"
            f"The workflow source file exists at: {found.md_path}\n"
            "But the compiled .lock.yml file is missing.\n\n"
            "To fix:\n"
            f"1. Compile the workflow: safeflow compile {found.md_path.name}\n"
            "2. Commit the generated .lock.yml file\n"
            "3. Ensure .lock.yml files are not in .gitignore"
        ), path=found.md_path)

    try:
        workflow = load_workflow_yaml(compiled)
    except OSError as exc:
        return TargetCheck(workflow_name, TargetState.UNREADABLE, (
            f"dispatch-workflow: failed to read workflow file {compiled}: {exc}"
        ), path=compiled)
    except ValueError as exc:
        return TargetCheck(
            workflow_name, TargetState.UNREADABLE, f"dispatch-workflow: {exc}", path=compiled
        )

    on = trigger_section(workflow)
    if on is None:
        return TargetCheck(workflow_name, TargetState.MISSING_TRIGGER, (
            f"dispatch-workflow: workflow '{workflow_name}' does not have an "
            "'on' trigger section"
        ), path=compiled)
    if not has_dispatch_trigger(on):
        return TargetCheck(workflow_name, TargetState.MISSING_TRIGGER, (
            f"dispatch-workflow: workflow '{workflow_name}' does not support "
            "workflow_dispatch trigger (must include 'workflow_dispatch' in the 'on' section)"
        ), path=compiled)

    logger.debug("Workflow '%s' is valid for dispatch (found in %s)", workflow_name, compiled)
    return TargetCheck(workflow_name, TargetState.VALID, path=compiled)


class DispatchValidator:
    """Validates every ``dispatch-workflow`` target of a compiled workflow."""

    def __init__(self, fail_fast: bool = False) -> None:
        self.fail_fast = fail_fast

    def check_all(self, config: SafeOutputsConfig | None, workflow_path: Path) -> list[TargetCheck]:
        """Per-target outcomes; stops after the first failure in fail-fast mode."""
        dispatch = config.get(DISPATCH_KEY) if config is not None else None
        if dispatch is None:
            return []
        checks: list[TargetCheck] = []
        for name in dispatch.workflows:
            check = check_target(name, workflow_path)
            checks.append(check)
            if not check.ok and self.fail_fast:
                break
        return checks

    def validate(self, config: SafeOutputsConfig | None, workflow_path: Path) -> list[str]:
        """Return the validation error messages; empty means valid."""
        dispatch = config.get(DISPATCH_KEY) if config is not None else None
        if dispatch is None:
            logger.debug("No dispatch-workflow configuration found")
            return []
        if not dispatch.workflows:
            return [
                "dispatch-workflow: must specify at least one workflow in the list\n\n"
                "Example configuration in workflow frontmatter:\n"
                "safe-outputs:\n"
                "  dispatch-workflow:\n"
                "    workflows: [workflow-name-1, workflow-name-2]\n\n"
                "Workflow names should match the filename without the .md extension"
            ]

        collector = ErrorCollector(self.fail_fast)
        for check in self.check_all(config, workflow_path):
            if not check.ok and collector.add(check.message):
                break
        logger.debug(
            "Dispatch workflow validation completed: error_count=%d, total_workflows=%d",
            len(collector), len(dispatch.workflows),
        )
        return collector.errors

    def validate_strict(self, config: SafeOutputsConfig | None, workflow_path: Path) -> None:
        """Validate and raise if any target is invalid.

        Raises:
            DispatchValidationError: Carrying every collected message.
        """
        errors = self.validate(config, workflow_path)
        if errors:
            raise DispatchValidationError(format_errors(errors, DISPATCH_KEY), errors)
