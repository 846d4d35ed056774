from __future__ import annotations


class SafeflowError(Exception):
    """Base exception for all Safeflow errors."""


# ── Config Errors ────────────────────────────────────────────────────

class ConfigError(SafeflowError):
    """Invalid or missing configuration."""


# ── Workflow Errors ──────────────────────────────────────────────────

class WorkflowParseError(SafeflowError):
    """Workflow markdown or its frontmatter cannot be parsed."""


class CompilerError(SafeflowError):
    """Internal inconsistency detected while compiling a workflow."""


# ── Safe Output Errors ───────────────────────────────────────────────

class SafeOutputsError(SafeflowError):
    """Base for safe-outputs errors."""


class JobPreconditionError(SafeOutputsError):
    """A job builder was invoked without the configuration it requires."""

    def __init__(self, kind: str) -> None:
        self.kind = kind
        super().__init__(f"safe-outputs.{kind} configuration is required")


class DispatchValidationError(SafeOutputsError):
    """One or more dispatch-workflow targets are invalid."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        self.errors = list(errors or [message])
        super().__init__(message)
