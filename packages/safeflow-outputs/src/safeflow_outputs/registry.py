"""Capability kind registry.

One :class:`CapabilityKind` descriptor per frontmatter key. The descriptor
is the single source of truth for a kind's config record, default ``max``,
minimal permissions and job condition; the parser, permission calculator,
job builder and tool generator all read from :data:`KINDS`.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from safeflow_core.logging import get_logger

from safeflow_outputs import capabilities as caps
from safeflow_outputs.coerce import apply_settings, as_int
from safeflow_outputs.permissions import R, W, Permissions, permissions_of

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from safeflow_outputs.capabilities import CapabilityConfig
    from safeflow_outputs.permissions import PermissionLevel

logger = get_logger("outputs.registry")


@dataclass(frozen=True, slots=True)
class CapabilityKind:
    """Static description of one capability kind."""

    key: str
    config_type: type[CapabilityConfig]
    default_max: int
    permissions_fn: Callable[[CapabilityConfig], Permissions]
    step_name: str = ""
    unlimited_max: bool = False
    max_cap: int | None = None
    auto_enable: bool = False
    # dispatch-workflow has one generated tool per target instead
    static_tool: bool = True

    @property
    def name(self) -> str:
        """Job and tool name: the key with hyphens replaced by underscores."""
        return self.key.replace("-", "_")

    @property
    def title(self) -> str:
        return self.step_name or self.key.replace("-", " ").title()

    def permissions(self, config: CapabilityConfig) -> Permissions:
        """Minimal permissions this kind needs for *config*."""
        return self.permissions_fn(config)

    def condition(self, main_job_name: str) -> str:
        """Job condition that is true when the agent emitted this kind."""
        return (
            f"!cancelled() && needs.{main_job_name}.result != 'skipped' && "
            f"contains(needs.{main_job_name}.outputs.output_types, '{self.name}')"
        )

    # ── Parsing ───────────────────────────────────────────────────────

    def parse(self, raw: Any) -> CapabilityConfig | None:
        """Build the config record from a frontmatter value.

        ``false`` disables the kind; ``null`` or a non-mapping enables it
        with defaults. Returns None when the kind is disabled or the
        configuration is rejected.
        """
        if raw is False:
            return None
        shorthand = getattr(self.config_type, "shorthand", None)
        if shorthand is not None:
            expanded = shorthand(raw)
            if expanded is not None:
                raw = expanded
        if not isinstance(raw, dict):
            raw = {}

        kwargs = apply_settings(self.config_type, raw)
        kwargs["max"] = self.resolve_max(raw.get("max"))
        config = self.config_type(**kwargs)
        return self.config_type.normalize(config, raw)

    def resolve_max(self, value: Any) -> int:
        """Apply the per-kind ``max`` rules, falling back to the default."""
        if value is None:
            return self.default_max
        number = as_int(value)
        if number is None:
            logger.debug("%s: ignoring non-integer max %r", self.key, value)
            return self.default_max
        if number == 0 and self.unlimited_max:
            return 0
        if number < 1:
            logger.debug("%s: ignoring out-of-range max %d", self.key, number)
            return self.default_max
        if self.max_cap is not None and number > self.max_cap:
            logger.warning(
                "%s: max %d exceeds the limit of %d, capping", self.key, number, self.max_cap
            )
            return self.max_cap
        return number


# ── Permission table ─────────────────────────────────────────────────

def _static(**levels: PermissionLevel) -> Callable[[CapabilityConfig], Permissions]:
    def build(_config: CapabilityConfig) -> Permissions:
        return permissions_of(**levels)
    return build


def _comment_permissions(config: CapabilityConfig) -> Permissions:
    if getattr(config, "discussions", None) is False:
        return permissions_of(contents=R, issues=W, pull_requests=W)
    return permissions_of(contents=R, issues=W, pull_requests=W, discussions=W)


def _pull_request_permissions(config: CapabilityConfig) -> Permissions:
    if getattr(config, "fallback_as_issue", None) is False:
        return permissions_of(contents=W, pull_requests=W)
    return permissions_of(contents=W, issues=W, pull_requests=W)


def _no_permissions(_config: CapabilityConfig) -> Permissions:
    return Permissions.empty()


_ISSUES = _static(contents=R, issues=W)
_PULLS = _static(contents=R, pull_requests=W)
_ISSUES_AND_PULLS = _static(contents=R, issues=W, pull_requests=W)
_DISCUSSIONS = _static(contents=R, discussions=W)
_PROJECTS = _static(contents=R, organization_projects=W)
_CONTENTS_WRITE = _static(contents=W)


def _kind(key, config_type, default_max, permissions_fn, **extra) -> CapabilityKind:
    return CapabilityKind(
        key=key,
        config_type=config_type,
        default_max=default_max,
        permissions_fn=permissions_fn,
        **extra,
    )


_ALL = (
    _kind("create-issue", caps.CreateIssueConfig, 1, _ISSUES,
          step_name="Create Output Issue"),
    _kind("create-agent-session", caps.CreateAgentSessionConfig, 1, _ISSUES),
    _kind("create-discussion", caps.CreateDiscussionConfig, 1,
          _static(contents=R, issues=W, discussions=W),
          step_name="Create Output Discussion"),
    _kind("update-discussion", caps.UpdateDiscussionConfig, 1, _DISCUSSIONS),
    _kind("close-discussion", caps.CloseDiscussionConfig, 1, _DISCUSSIONS),
    _kind("close-issue", caps.CloseIssueConfig, 1, _ISSUES),
    _kind("close-pull-request", caps.ClosePullRequestConfig, 1, _PULLS),
    _kind("mark-pull-request-as-ready-for-review", caps.MarkPullRequestReadyConfig, 1,
          _PULLS, step_name="Mark Pull Request as Ready for Review"),
    _kind("add-comment", caps.AddCommentConfig, 1, _comment_permissions,
          step_name="Add Issue Comment"),
    _kind("hide-comment", caps.HideCommentConfig, 5, _comment_permissions),
    _kind("create-pull-request", caps.CreatePullRequestConfig, 1,
          _pull_request_permissions, step_name="Create Pull Request"),
    _kind("create-pull-request-review-comment",
          caps.CreatePullRequestReviewCommentConfig, 1, _PULLS,
          step_name="Create PR Review Comment"),
    _kind("submit-pull-request-review", caps.SubmitPullRequestReviewConfig, 1, _PULLS,
          step_name="Submit PR Review"),
    _kind("reply-to-pull-request-review-comment",
          caps.ReplyToPullRequestReviewCommentConfig, 10, _PULLS,
          step_name="Reply to PR Review Comment"),
    _kind("resolve-pull-request-review-thread",
          caps.ResolvePullRequestReviewThreadConfig, 10, _PULLS,
          step_name="Resolve PR Review Thread"),
    _kind("create-code-scanning-alert", caps.CreateCodeScanningAlertConfig, 40,
          _static(contents=R, security_events=W), unlimited_max=True),
    _kind("autofix-code-scanning-alert", caps.AutofixCodeScanningAlertConfig, 10,
          _static(contents=R, security_events=W, actions=R)),
    _kind("add-labels", caps.AddLabelsConfig, 5, _ISSUES_AND_PULLS),
    _kind("remove-labels", caps.RemoveLabelsConfig, 5, _ISSUES_AND_PULLS),
    _kind("add-reviewer", caps.AddReviewerConfig, 3, _PULLS),
    _kind("assign-milestone", caps.AssignMilestoneConfig, 1, _ISSUES),
    _kind("assign-to-agent", caps.AssignToAgentConfig, 1,
          _static(actions=W, contents=W, issues=W, pull_requests=W)),
    _kind("assign-to-user", caps.AssignToUserConfig, 1, _ISSUES_AND_PULLS),
    _kind("unassign-from-user", caps.UnassignFromUserConfig, 1, _ISSUES_AND_PULLS),
    _kind("update-issue", caps.UpdateIssueConfig, 1, _ISSUES),
    _kind("update-pull-request", caps.UpdatePullRequestConfig, 1, _PULLS),
    _kind("push-to-pull-request-branch", caps.PushToPullRequestBranchConfig, 1,
          _static(contents=W, pull_requests=W)),
    _kind("upload-asset", caps.UploadAssetConfig, 10, _CONTENTS_WRITE,
          step_name="Upload Assets"),
    _kind("update-release", caps.UpdateReleaseConfig, 1, _CONTENTS_WRITE),
    _kind("link-sub-issue", caps.LinkSubIssueConfig, 5, _ISSUES),
    _kind("update-project", caps.UpdateProjectConfig, 10, _PROJECTS),
    _kind("create-project", caps.CreateProjectConfig, 1, _PROJECTS),
    _kind("create-project-status-update", caps.CreateProjectStatusUpdateConfig, 10,
          _PROJECTS),
    _kind("dispatch-workflow", caps.DispatchWorkflowConfig, 1, _static(actions=W),
          max_cap=50, static_tool=False),
    _kind("missing-tool", caps.MissingToolConfig, 20, _no_permissions,
          unlimited_max=True, auto_enable=True, step_name="Record Missing Tool"),
    _kind("missing-data", caps.MissingDataConfig, 20, _no_permissions,
          unlimited_max=True, auto_enable=True, step_name="Record Missing Data"),
    _kind("noop", caps.NoOpConfig, 1, _no_permissions,
          auto_enable=True, step_name="Process No-Op Messages"),
)

KINDS: dict[str, CapabilityKind] = {kind.key: kind for kind in _ALL}

_BY_NAME: dict[str, CapabilityKind] = {kind.name: kind for kind in _ALL}


def get_kind(key_or_name: str) -> CapabilityKind:
    """Look up a kind by frontmatter key (``create-issue``) or name (``create_issue``)."""
    kind = KINDS.get(key_or_name) or _BY_NAME.get(key_or_name)
    if kind is None:
        msg = f"Unknown safe-output kind: '{key_or_name}'"
        raise KeyError(msg)
    return kind


def iter_kinds() -> Iterator[CapabilityKind]:
    """All kinds in registry order."""
    return iter(_ALL)


def auto_enabled_kinds() -> list[CapabilityKind]:
    return [kind for kind in _ALL if kind.auto_enable]
