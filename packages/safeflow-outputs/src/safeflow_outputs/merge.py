"""Merge a main safe-outputs config with configs inherited from imports.

The main workflow's declaration of a kind is final, even when empty;
otherwise the first inherited fragment declaring that kind wins. Merging
never raises and performs no I/O.
"""
from __future__ import annotations

from dataclasses import fields, replace
from typing import TYPE_CHECKING, Any

from safeflow_core.logging import get_logger

from safeflow_outputs.parser import THREAT_DETECTION_KEY, parse_safe_outputs
from safeflow_outputs.registry import iter_kinds
from safeflow_outputs.types import MessagesConfig, SafeOutputsConfig

if TYPE_CHECKING:
    from collections.abc import Iterable

    from safeflow_outputs.types import (
        GitHubAppConfig,
        SafeJobConfig,
        ThreatDetectionConfig,
    )

logger = get_logger("outputs.merge")


def merge_safe_outputs(
    main: SafeOutputsConfig | None,
    inherited: Iterable[SafeOutputsConfig | dict[str, Any]],
) -> SafeOutputsConfig | None:
    """Combine *main* with *inherited* fragments (already in inheritance order).

    Fragments may be raw ``safe-outputs`` maps or parsed configs. Returns
    None only when neither side configures anything.
    """
    fragments = [
        f if isinstance(f, SafeOutputsConfig) else parse_safe_outputs(f)
        for f in inherited
    ]
    if not fragments:
        return main

    result = main if main is not None else SafeOutputsConfig()
    capabilities = dict(result.capabilities)
    declared = set(capabilities) | set(result.disabled)
    disabled = set(result.disabled)

    for fragment in fragments:
        for key, config in fragment.capabilities.items():
            if key in declared:
                continue
            logger.debug("Inheriting %s from imported workflow", key)
            capabilities[key] = config
            declared.add(key)
        for key in fragment.disabled - {THREAT_DETECTION_KEY}:
            if key not in declared:
                disabled.add(key)
                declared.add(key)

    # capabilities stay in registry order
    capabilities = {
        kind.key: capabilities[kind.key] for kind in iter_kinds() if kind.key in capabilities
    }

    threat_detection, detection_disabled = _merge_threat_detection(result, fragments)
    if detection_disabled:
        disabled.add(THREAT_DETECTION_KEY)

    merged = replace(
        result,
        capabilities=capabilities,
        disabled=frozenset(disabled),
        allowed_domains=_first_list(result.allowed_domains, fragments, "allowed_domains"),
        allowed_github_references=_first_list(
            result.allowed_github_references, fragments, "allowed_github_references"
        ),
        env=_merge_env(result.env, fragments),
        github_token=result.github_token or _first(fragments, "github_token", ""),
        max_patch_size=result.max_patch_size or _first(fragments, "max_patch_size", 0),
        runs_on=result.runs_on or _first(fragments, "runs_on", ""),
        messages=_merge_messages(result.messages, fragments),
        mentions=result.mentions or _first(fragments, "mentions", None),
        footer=result.footer if result.footer is not None else _first(fragments, "footer", None),
        jobs=_merge_jobs(result.jobs, fragments),
        app=_merge_app(result.app, fragments),
        threat_detection=threat_detection,
    )
    if main is None and not merged.has_any():
        return None
    return merged


def _first(fragments: list[SafeOutputsConfig], attr: str, empty: Any) -> Any:
    for fragment in fragments:
        value = getattr(fragment, attr)
        if value is not None and value != empty:
            return value
    return empty


def _first_list(
    current: list[str], fragments: list[SafeOutputsConfig], attr: str
) -> list[str]:
    if current:
        return current
    return list(_first(fragments, attr, []))


def _merge_env(
    current: dict[str, str], fragments: list[SafeOutputsConfig]
) -> dict[str, str]:
    env: dict[str, str] = {}
    for fragment in reversed(fragments):
        env.update(fragment.env)
    env.update(current)
    return env


def _merge_messages(
    current: MessagesConfig | None, fragments: list[SafeOutputsConfig]
) -> MessagesConfig | None:
    """Field-level merge: a field set in *current* beats inherited values."""
    candidates = [current] + [f.messages for f in fragments]
    candidates = [c for c in candidates if c is not None]
    if not candidates:
        return None
    values = {}
    for f in fields(MessagesConfig):
        for candidate in candidates:
            value = getattr(candidate, f.name)
            if value:
                values[f.name] = value
                break
    return MessagesConfig(**values)


def _merge_jobs(
    current: dict[str, SafeJobConfig], fragments: list[SafeOutputsConfig]
) -> dict[str, SafeJobConfig]:
    jobs = dict(current)
    for fragment in fragments:
        for name, job in fragment.jobs.items():
            if name in jobs:
                logger.debug("Job '%s' already defined, keeping the main definition", name)
                continue
            jobs[name] = job
    return jobs


def _merge_app(
    current: GitHubAppConfig | None, fragments: list[SafeOutputsConfig]
) -> GitHubAppConfig | None:
    if current is not None:
        return current
    for fragment in fragments:
        if fragment.app is not None and fragment.app.is_valid:
            logger.debug("Using GitHub App configuration from imported workflow")
            return fragment.app
    return None


def _merge_threat_detection(
    current: SafeOutputsConfig, fragments: list[SafeOutputsConfig]
) -> tuple[ThreatDetectionConfig | None, bool]:
    """Return the winning detection config and whether it was disabled."""
    for candidate in [current, *fragments]:
        if candidate.threat_detection is not None:
            return candidate.threat_detection, False
        if THREAT_DETECTION_KEY in candidate.disabled:
            return None, True
    return None, False
