"""Safeflow Outputs: safe-output permissions, jobs, and agent tool catalog."""
from __future__ import annotations

from safeflow_outputs.calculator import (
    compute_kind_permissions,
    compute_permissions_for_safe_outputs,
)
from safeflow_outputs.compiler import CompilationResult, SafeOutputsCompiler
from safeflow_outputs.dispatch import DispatchValidator, TargetState, check_target
from safeflow_outputs.jobs import JobSpec, SafeOutputJobBuilder, TokenMode
from safeflow_outputs.merge import merge_safe_outputs
from safeflow_outputs.parser import (
    apply_defaults,
    extract_safe_outputs_config,
    parse_safe_outputs,
    parse_workflow_file,
)
from safeflow_outputs.permissions import PermissionLevel, Permissions, PermissionScope
from safeflow_outputs.registry import KINDS, CapabilityKind, get_kind
from safeflow_outputs.tools import generate_tools
from safeflow_outputs.types import (
    GitHubAppConfig,
    Job,
    SafeJobConfig,
    SafeOutputsConfig,
    ToolDefinition,
    WorkflowData,
)

__all__ = [
    "KINDS",
    "CapabilityKind",
    "CompilationResult",
    "DispatchValidator",
    "GitHubAppConfig",
    "Job",
    "JobSpec",
    "PermissionLevel",
    "PermissionScope",
    "Permissions",
    "SafeJobConfig",
    "SafeOutputJobBuilder",
    "SafeOutputsCompiler",
    "SafeOutputsConfig",
    "TargetState",
    "TokenMode",
    "ToolDefinition",
    "WorkflowData",
    "apply_defaults",
    "check_target",
    "compute_kind_permissions",
    "compute_permissions_for_safe_outputs",
    "extract_safe_outputs_config",
    "generate_tools",
    "get_kind",
    "merge_safe_outputs",
    "parse_safe_outputs",
    "parse_workflow_file",
]
