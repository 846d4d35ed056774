from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from safeflow_core.errors import ConfigError

ACTION_MODES = ("inline", "action")


def _load_toml(path: Path) -> dict:
    """Load a TOML file, returning empty dict if missing."""
    if not path.exists():
        return {}
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as exc:
        msg = f"Invalid TOML in {path}: {exc}"
        raise ConfigError(msg) from exc


def _deep_merge(base: dict, override: dict) -> dict:
    """Merge override into base (1 level deep for TOML sections)."""
    merged = dict(base)
    for key, val in override.items():
        if (
            key in merged
            and isinstance(merged[key], dict)
            and isinstance(val, dict)
        ):
            merged[key] = {**merged[key], **val}
        else:
            merged[key] = val
    return merged


@dataclass(frozen=True, slots=True)
class CompilerSettings:
    action_mode: str = "inline"  # inline | action
    fail_fast: bool = False
    main_job_name: str = "agent"
    trial_mode: bool = False
    trial_repo: str = ""
    consolidated: bool = False


@dataclass(frozen=True, slots=True)
class LoggingSettings:
    level: str = "WARNING"
    json: bool = False


@dataclass(frozen=True, slots=True)
class SafeflowConfig:
    """Top-level configuration, parsed from safeflow.toml."""
    compiler: CompilerSettings = field(default_factory=CompilerSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    # capability name (e.g. "create_issue") -> action reference
    actions: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_toml(
        cls, path: Path | str = "safeflow.toml"
    ) -> SafeflowConfig:
        path = Path(path)
        raw = _load_toml(path)
        return cls._from_raw(raw)

    @classmethod
    def load(
        cls, project_dir: Path | str | None = None
    ) -> SafeflowConfig:
        """Load config with global → project layering.

        Resolution order (later wins):
        1. Built-in defaults
        2. ~/.safeflow/config.toml (global)
        3. safeflow.toml in the project directory
        """
        global_path = Path.home() / ".safeflow" / "config.toml"

        project_dir = (
            Path.cwd() if project_dir is None else Path(project_dir)
        )
        project_path = project_dir / "safeflow.toml"

        merged = _deep_merge(_load_toml(global_path), _load_toml(project_path))
        return cls._from_raw(merged)

    @classmethod
    def _from_raw(cls, raw: dict) -> SafeflowConfig:
        """Build SafeflowConfig from a raw TOML dict."""
        compiler_raw = raw.get("compiler", {})
        logging_raw = raw.get("logging", {})
        actions_raw = raw.get("actions", {})

        def _pick(section: dict, dc: type) -> dict:
            fields = dc.__dataclass_fields__
            return {
                k.replace("-", "_"): v
                for k, v in section.items()
                if k.replace("-", "_") in fields
            }

        compiler = CompilerSettings(**_pick(compiler_raw, CompilerSettings))
        if compiler.action_mode not in ACTION_MODES:
            msg = (
                f"compiler.action_mode must be one of {', '.join(ACTION_MODES)}, "
                f"got '{compiler.action_mode}'"
            )
            raise ConfigError(msg)

        return cls(
            compiler=compiler,
            logging=LoggingSettings(**_pick(logging_raw, LoggingSettings)),
            actions={
                str(k).replace("-", "_"): str(v)
                for k, v in actions_raw.items()
                if isinstance(v, str)
            },
        )
