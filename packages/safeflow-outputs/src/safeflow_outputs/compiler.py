"""Compile the safe-outputs part of a workflow file into jobs and tools."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from safeflow_core.config import SafeflowConfig
from safeflow_core.logging import get_logger

from safeflow_outputs.calculator import compute_permissions_for_safe_outputs
from safeflow_outputs.dispatch import DispatchValidator, resolve_dispatch_workflow_files
from safeflow_outputs.jobs import ConfiguredActions, SafeOutputJobBuilder
from safeflow_outputs.merge import merge_safe_outputs
from safeflow_outputs.parser import apply_defaults, parse_safe_outputs, parse_workflow_file
from safeflow_outputs.permissions import Permissions
from safeflow_outputs.tools import ToolCatalogGenerator

if TYPE_CHECKING:
    from safeflow_outputs.jobs import ActionResolver
    from safeflow_outputs.types import Job, SafeOutputsConfig, ToolDefinition, WorkflowData

logger = get_logger("outputs.compiler")


@dataclass(frozen=True, slots=True)
class CompilationResult:
    """Everything the safe-outputs subsystem contributes to one workflow."""

    workflow: WorkflowData
    config: SafeOutputsConfig | None
    permissions: Permissions = field(default_factory=Permissions)
    jobs: list[Job] = field(default_factory=list)
    tools: list[ToolDefinition] = field(default_factory=list)
    dispatch_files: dict[str, str] = field(default_factory=dict)

    @property
    def enabled(self) -> bool:
        return self.config is not None and self.config.has_any()

    def jobs_mapping(self) -> dict[str, Any]:
        return {job.name: job.to_dict() for job in self.jobs}

    def to_yaml(self) -> str:
        """The ``jobs:`` mapping as YAML, in build order."""
        if not self.jobs:
            return ""
        return yaml.safe_dump(
            {"jobs": self.jobs_mapping()},
            sort_keys=False,
            default_flow_style=False,
            width=1000,
        )

    def to_json(self) -> str:
        """The agent tool catalog as a JSON array."""
        return json.dumps([tool.to_dict() for tool in self.tools], indent=2)


class SafeOutputsCompiler:
    """Runs parse, merge, validation, permission, job and tool generation."""

    def __init__(
        self,
        config: SafeflowConfig | None = None,
        actions: ActionResolver | None = None,
    ) -> None:
        self.config = config or SafeflowConfig()
        self.settings = self.config.compiler
        self.actions = actions or ConfiguredActions(self.config.actions)

    def compile(self, path: Path | str) -> CompilationResult:
        """Compile the workflow at *path*.

        Raises:
            FileNotFoundError: If the workflow file does not exist.
            WorkflowParseError: If its frontmatter or imports are invalid.
            DispatchValidationError: If a dispatch-workflow target is invalid.
        """
        path = Path(path)
        logger.info("Compiling safe outputs for %s", path)
        data = parse_workflow_file(path)
        config = self.resolve_config(data)
        return self.compile_data(data, config)

    def resolve_config(self, data: WorkflowData) -> SafeOutputsConfig | None:
        """Merged safe-outputs configuration with defaults, or None."""
        main = None
        if data.safe_outputs_raw is not None:
            main = parse_safe_outputs(data.safe_outputs_raw)
        merged = merge_safe_outputs(main, data.inherited_safe_outputs)
        if merged is None:
            logger.debug("No safe-outputs configured in %s", data.path)
            return None
        return apply_defaults(merged)

    def compile_data(
        self, data: WorkflowData, config: SafeOutputsConfig | None
    ) -> CompilationResult:
        if config is None:
            return CompilationResult(workflow=data, config=None)

        DispatchValidator(self.settings.fail_fast).validate_strict(config, data.path)

        permissions = compute_permissions_for_safe_outputs(config)
        generator = ToolCatalogGenerator(config, data.path)
        tools = generator.generate()
        dispatch_files = generator.dispatch_files or resolve_dispatch_workflow_files(
            config, data.path
        )

        builder = SafeOutputJobBuilder(
            data,
            config,
            settings=self.settings,
            actions=self.actions,
            dispatch_files=dispatch_files,
        )
        jobs = builder.build_all()
        logger.info(
            "Compiled %d safe-output job(s) and %d tool(s) for %s",
            len(jobs), len(tools), data.name,
        )
        return CompilationResult(
            workflow=data,
            config=config,
            permissions=permissions,
            jobs=jobs,
            tools=tools,
            dispatch_files=dispatch_files,
        )
