"""Safeflow Core: shared config, errors, and logging."""
from __future__ import annotations

from safeflow_core._version import __version__
from safeflow_core.config import CompilerSettings, LoggingSettings, SafeflowConfig
from safeflow_core.errors import (
    CompilerError,
    ConfigError,
    DispatchValidationError,
    JobPreconditionError,
    SafeflowError,
    SafeOutputsError,
    WorkflowParseError,
)
from safeflow_core.logging import get_logger, setup_logging

__all__ = [
    # Config
    "CompilerSettings",
    # Errors
    "CompilerError",
    "ConfigError",
    "DispatchValidationError",
    "JobPreconditionError",
    "LoggingSettings",
    "SafeOutputsError",
    "SafeflowConfig",
    "SafeflowError",
    "WorkflowParseError",
    # Version
    "__version__",
    # Logging
    "get_logger",
    "setup_logging",
]
