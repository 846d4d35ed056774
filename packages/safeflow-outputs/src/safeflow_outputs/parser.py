"""Workflow markdown parser: frontmatter, imports/includes and safe-outputs config."""
from __future__ import annotations

import re
from dataclasses import replace
from pathlib import Path
from typing import Any

import yaml
from safeflow_core.errors import WorkflowParseError
from safeflow_core.logging import get_logger

from safeflow_outputs.coerce import (
    apply_settings,
    as_bool,
    as_positive_int,
    as_str,
    as_str_list,
    as_str_map,
)
from safeflow_outputs.permissions import Permissions
from safeflow_outputs.registry import KINDS, auto_enabled_kinds, iter_kinds
from safeflow_outputs.types import (
    DEFAULT_MAX_PATCH_SIZE_KB,
    GitHubAppConfig,
    MentionsConfig,
    MessagesConfig,
    SafeJobConfig,
    SafeJobInput,
    SafeOutputsConfig,
    ThreatDetectionConfig,
    WorkflowData,
)

logger = get_logger("outputs.parser")

SAFE_OUTPUTS_KEY = "safe-outputs"
THREAT_DETECTION_KEY = "threat-detection"

# @include path, @include? path, {{#import path}}, {{#import? path}}
_INCLUDE_RE = re.compile(
    r"^\s*(?:@include(\?)?\s+(\S+)|\{\{#import(\?)?\s+([^}\s]+)\s*\}\})\s*$"
)

_CROSS_CUTTING_KEYS = frozenset({
    "allowed-domains",
    "allowed-github-references",
    "staged",
    "env",
    "github-token",
    "max-patch-size",
    "runs-on",
    "messages",
    "mentions",
    "footer",
    "group-reports",
    "jobs",
    "app",
    THREAT_DETECTION_KEY,
})

_INPUT_TYPES = ("string", "boolean", "number", "choice", "environment")


# ── Workflow files ───────────────────────────────────────────────────

def parse_workflow_file(path: Path) -> WorkflowData:
    """Parse a workflow markdown file and resolve its imports and includes.

    Raises:
        WorkflowParseError: If the frontmatter is malformed or a required
            import/include cannot be found.
        FileNotFoundError: If *path* does not exist.
    """
    if not path.exists():
        msg = f"Workflow file not found: {path}"
        raise FileNotFoundError(msg)

    text = path.read_text(encoding="utf-8")
    meta, body = split_frontmatter(text, path)

    engine_id, engine_version, engine_model = _parse_engine(meta.get("engine"))
    raw_outputs = None
    if SAFE_OUTPUTS_KEY in meta:
        raw_outputs = meta[SAFE_OUTPUTS_KEY]
        if not isinstance(raw_outputs, dict):
            raw_outputs = {}

    return WorkflowData(
        name=_workflow_name(meta, body, path),
        path=path,
        source=as_str(meta.get("source")) or "",
        tracker_id=as_str(meta.get("tracker-id")) or "",
        engine_id=engine_id,
        engine_version=engine_version,
        engine_model=engine_model,
        frontmatter=meta,
        body=body,
        safe_outputs_raw=raw_outputs,
        inherited_safe_outputs=resolve_inherited_safe_outputs(meta, body, path),
    )


def split_frontmatter(text: str, path: Path) -> tuple[dict[str, Any], str]:
    """Split *text* into parsed YAML frontmatter and the markdown body.

    A file without an opening ``---`` has empty frontmatter.
    """
    stripped = text.lstrip("\n")
    if not stripped.startswith("---"):
        return {}, text

    first_newline = stripped.find("\n")
    if first_newline == -1:
        msg = f"Workflow frontmatter is not closed: {path}"
        raise WorkflowParseError(msg)
    rest = stripped[first_newline + 1 :]
    if rest.startswith("---"):
        return {}, rest[3:]
    closing_idx = rest.find("\n---")
    if closing_idx == -1:
        msg = f"Workflow missing closing '---' for frontmatter: {path}"
        raise WorkflowParseError(msg)

    return _parse_yaml(rest[:closing_idx], path), rest[closing_idx + 4 :]


def _parse_yaml(frontmatter: str, path: Path) -> dict[str, Any]:
    try:
        result = yaml.safe_load(frontmatter)
    except yaml.YAMLError as exc:
        msg = f"Invalid YAML frontmatter in {path}: {exc}"
        raise WorkflowParseError(msg) from exc

    if result is None:
        return {}
    if not isinstance(result, dict):
        msg = f"YAML frontmatter must be a mapping, got {type(result).__name__}: {path}"
        raise WorkflowParseError(msg)
    return result


def _workflow_name(meta: dict[str, Any], body: str, path: Path) -> str:
    name = as_str(meta.get("name"))
    if name:
        return name
    for line in body.splitlines():
        if line.startswith("# "):
            return line[2:].strip()
    return path.name.removesuffix(".md")


def _parse_engine(raw: Any) -> tuple[str, str, str]:
    if isinstance(raw, str):
        return raw, "", ""
    if isinstance(raw, dict):
        return (
            as_str(raw.get("id")) or "",
            str(raw["version"]) if raw.get("version") is not None else "",
            as_str(raw.get("model")) or "",
        )
    return "", "", ""


# ── Imports and includes ─────────────────────────────────────────────

def resolve_inherited_safe_outputs(
    meta: dict[str, Any], body: str, path: Path
) -> list[dict[str, Any]]:
    """Collect ``safe-outputs`` maps from imported and included files.

    Frontmatter ``imports`` come first, then body include directives, each
    in declaration order. Nested imports are followed depth-first and every
    file is visited at most once.
    """
    fragments: list[dict[str, Any]] = []
    _collect(meta, body, path, fragments, visited={path.resolve()})
    return fragments


def _collect(
    meta: dict[str, Any],
    body: str,
    path: Path,
    fragments: list[dict[str, Any]],
    visited: set[Path],
) -> None:
    for target, optional in _references(meta, body):
        resolved = (path.parent / target.split("#", 1)[0]).resolve()
        if resolved in visited:
            continue
        if not resolved.is_file():
            if optional:
                logger.debug("Skipping missing optional include %s", target)
                continue
            msg = f"Import '{target}' not found (referenced from {path})"
            raise WorkflowParseError(msg)
        visited.add(resolved)

        child_meta, child_body = split_frontmatter(
            resolved.read_text(encoding="utf-8"), resolved
        )
        fragment = child_meta.get(SAFE_OUTPUTS_KEY)
        if isinstance(fragment, dict):
            logger.debug("Inherited safe-outputs from %s", resolved)
            fragments.append(fragment)
        _collect(child_meta, child_body, resolved, fragments, visited)


def _references(meta: dict[str, Any], body: str) -> list[tuple[str, bool]]:
    refs = [(item, False) for item in as_str_list(meta.get("imports")) or []]
    for line in body.splitlines():
        match = _INCLUDE_RE.match(line)
        if match is None:
            continue
        if match.group(2):
            refs.append((match.group(2), bool(match.group(1))))
        else:
            refs.append((match.group(4), bool(match.group(3))))
    return refs


# ── safe-outputs ─────────────────────────────────────────────────────

def extract_safe_outputs_config(frontmatter: dict[str, Any]) -> SafeOutputsConfig | None:
    """Parse the frontmatter ``safe-outputs`` block with defaults applied.

    Returns None when the key is absent.
    """
    if SAFE_OUTPUTS_KEY not in frontmatter:
        return None
    return apply_defaults(parse_safe_outputs(frontmatter[SAFE_OUTPUTS_KEY]))


def parse_safe_outputs(raw: Any) -> SafeOutputsConfig:
    """Parse a raw ``safe-outputs`` value without applying defaults.

    Wrong-typed optional fields are ignored. A null or non-mapping value
    yields an empty configuration.
    """
    if not isinstance(raw, dict):
        return SafeOutputsConfig()

    capabilities = {}
    disabled: set[str] = set()
    for kind in iter_kinds():
        if kind.key not in raw:
            continue
        value = raw[kind.key]
        if value is False:
            logger.debug("%s explicitly disabled", kind.key)
            disabled.add(kind.key)
            continue
        config = kind.parse(value)
        if config is None:
            logger.info("%s configuration rejected; kind not enabled", kind.key)
            continue
        capabilities[kind.key] = config

    for key in raw:
        if key not in _CROSS_CUTTING_KEYS and key not in KINDS:
            logger.warning("Ignoring unknown safe-outputs key: %s", key)

    threat_detection = None
    if THREAT_DETECTION_KEY in raw:
        threat_detection = parse_threat_detection(raw[THREAT_DETECTION_KEY])
        if threat_detection is None:
            disabled.add(THREAT_DETECTION_KEY)

    max_patch_size = 0
    if "max-patch-size" in raw:
        max_patch_size = as_positive_int(raw["max-patch-size"]) or 0

    messages = raw.get("messages")
    mentions = raw.get("mentions")
    app = raw.get("app")
    jobs = raw.get("jobs")

    return SafeOutputsConfig(
        capabilities=capabilities,
        allowed_domains=as_str_list(raw.get("allowed-domains")) or [],
        allowed_github_references=as_str_list(raw.get("allowed-github-references")) or [],
        staged=as_bool(raw.get("staged")) or False,
        env=as_str_map(raw.get("env")) or {},
        github_token=as_str(raw.get("github-token")) or "",
        max_patch_size=max_patch_size,
        runs_on=as_str(raw.get("runs-on")) or "",
        messages=MessagesConfig(**apply_settings(MessagesConfig, messages))
        if isinstance(messages, dict)
        else None,
        mentions=parse_mentions(mentions) if "mentions" in raw else None,
        footer=as_bool(raw.get("footer")),
        group_reports=as_bool(raw.get("group-reports")) or False,
        jobs=parse_safe_jobs(jobs) if isinstance(jobs, dict) else {},
        app=parse_app(app) if isinstance(app, dict) else None,
        threat_detection=threat_detection,
        disabled=frozenset(disabled),
    )


def apply_defaults(config: SafeOutputsConfig) -> SafeOutputsConfig:
    """Fill in values that apply when a setting is absent.

    * ``max-patch-size`` defaults to 1024 KB.
    * ``missing-tool``, ``missing-data`` and ``noop`` are enabled unless
      explicitly disabled.
    * Threat detection is enabled when any kind is enabled and the key was
      not present at all.
    """
    capabilities = dict(config.capabilities)
    for kind in auto_enabled_kinds():
        if kind.key not in capabilities and kind.key not in config.disabled:
            logger.debug("Auto-enabling %s", kind.key)
            capabilities[kind.key] = kind.parse({})

    threat_detection = config.threat_detection
    if (
        threat_detection is None
        and capabilities
        and THREAT_DETECTION_KEY not in config.disabled
    ):
        logger.debug("Applying default threat-detection configuration")
        threat_detection = ThreatDetectionConfig()

    return replace(
        config,
        capabilities=capabilities,
        max_patch_size=config.max_patch_size or DEFAULT_MAX_PATCH_SIZE_KB,
        threat_detection=threat_detection,
    )


def parse_threat_detection(raw: Any) -> ThreatDetectionConfig | None:
    """``false`` or ``{enabled: false}`` disable detection; anything else enables it."""
    if raw is False:
        return None
    if not isinstance(raw, dict):
        return ThreatDetectionConfig()
    if raw.get("enabled") is False:
        return None
    steps = raw.get("steps")
    engine = raw.get("engine")
    return ThreatDetectionConfig(
        prompt=as_str(raw.get("prompt")) or "",
        steps=[s for s in steps if isinstance(s, dict)] if isinstance(steps, list) else [],
        engine=as_str(engine) or "",
        engine_disabled=engine is False,
    )


def parse_mentions(raw: Any) -> MentionsConfig:
    if isinstance(raw, bool):
        return MentionsConfig(enabled=raw)
    if isinstance(raw, dict):
        return MentionsConfig(**apply_settings(MentionsConfig, raw))
    return MentionsConfig()


def parse_app(raw: dict[str, Any]) -> GitHubAppConfig:
    repositories = raw.get("repositories")
    return GitHubAppConfig(
        app_id=as_str(raw.get("app-id")) or "",
        private_key=as_str(raw.get("private-key")) or "",
        owner=as_str(raw.get("owner")) or "",
        repositories=[r for r in repositories if isinstance(r, str)]
        if isinstance(repositories, list)
        else [],
    )


def parse_safe_jobs(raw: dict[str, Any]) -> dict[str, SafeJobConfig]:
    """Parse ``safe-outputs.jobs``; non-mapping entries are skipped."""
    jobs: dict[str, SafeJobConfig] = {}
    for name, spec in raw.items():
        if not isinstance(spec, dict):
            logger.warning("Ignoring safe-outputs job '%s': not a mapping", name)
            continue

        permissions = None
        if "permissions" in spec:
            try:
                permissions = Permissions.parse(spec["permissions"])
            except ValueError:
                logger.warning("Ignoring invalid permissions for safe-outputs job '%s'", name)

        steps = spec.get("steps")
        inputs = spec.get("inputs")
        jobs[str(name)] = SafeJobConfig(
            name=str(name),
            description=as_str(spec.get("description")) or "",
            runs_on=spec.get("runs-on"),
            if_condition=as_str(spec.get("if")) or "",
            needs=as_str_list(spec.get("needs")) or [],
            steps=[s for s in steps if isinstance(s, dict)] if isinstance(steps, list) else [],
            env=as_str_map(spec.get("env")) or {},
            permissions=permissions,
            github_token=as_str(spec.get("github-token")) or "",
            output=as_str(spec.get("output")) or "",
            inputs=_parse_job_inputs(inputs) if isinstance(inputs, dict) else {},
        )
    return jobs


def _parse_job_inputs(raw: dict[str, Any]) -> dict[str, SafeJobInput]:
    inputs: dict[str, SafeJobInput] = {}
    for name, spec in raw.items():
        if not isinstance(spec, dict):
            inputs[str(name)] = SafeJobInput()
            continue
        input_type = as_str(spec.get("type")) or "string"
        if input_type not in _INPUT_TYPES:
            logger.warning("Unknown input type '%s' for '%s', using string", input_type, name)
            input_type = "string"
        inputs[str(name)] = SafeJobInput(
            description=as_str(spec.get("description")) or "",
            required=as_bool(spec.get("required")) or False,
            default=spec.get("default"),
            type=input_type,
            options=as_str_list(spec.get("options")) or [],
        )
    return inputs
