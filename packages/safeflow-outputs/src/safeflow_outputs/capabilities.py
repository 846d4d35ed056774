"""Per-kind capability configuration records.

Every record shares ``max``/``github-token``/``staged``; most also carry
the cross-repository routing fields. Kind-specific fields are declared
with :func:`~safeflow_outputs.coerce.setting`, which binds each field to
its frontmatter key and coercer.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

from safeflow_core.logging import get_logger

from safeflow_outputs.coerce import (
    as_bool,
    as_flag,
    as_hours,
    as_positive_int,
    as_present,
    as_str,
    as_str_list,
    setting,
)

if TYPE_CHECKING:
    from typing import Self

logger = get_logger("outputs.capabilities")

DEFAULT_PR_BASE_BRANCH = "${{ github.base_ref || github.ref_name }}"
DEFAULT_DISCUSSION_EXPIRES_HOURS = 168
DEFAULT_ASSETS_BRANCH = "assets/${{ github.workflow }}"


# ── Shared shapes ────────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class CapabilityConfig:
    """Fields common to every capability kind."""

    max: int = 0
    github_token: str = setting("github-token", as_str, default="")
    staged: bool = setting("staged", as_bool, default=False)

    @classmethod
    def normalize(cls, config: Self, raw: dict[str, Any]) -> Self | None:
        """Kind-specific fixups after field coercion.

        Returning None marks the configuration invalid; the kind is then
        treated as not configured.
        """
        return config


@dataclass(frozen=True, slots=True)
class TargetedConfig(CapabilityConfig):
    """Capability that can be routed to another issue/PR or repository."""

    target: str = setting("target", as_str, default="")
    target_repo: str = setting("target-repo", as_str, default="")
    allowed_repos: list[str] = setting("allowed-repos", as_str_list, factory=list)


@dataclass(frozen=True, slots=True)
class CloseConfig(TargetedConfig):
    """Close-style operations filtered by labels or title prefix."""

    required_labels: list[str] = setting("required-labels", as_str_list, factory=list)
    required_title_prefix: str = setting("required-title-prefix", as_str, default="")


@dataclass(frozen=True, slots=True)
class ListConfig(TargetedConfig):
    """Operations that apply a list of values, restricted by allow/block lists."""

    allowed: list[str] = setting("allowed", as_str_list, factory=list)
    blocked: list[str] = setting("blocked", as_str_list, factory=list)


def _reject_wildcard_repo(config: TargetedConfig, kind: str) -> bool:
    if config.target_repo == "*":
        logger.warning(
            "%s: target-repo wildcard '*' is not allowed; ignoring configuration", kind
        )
        return True
    return False


# ── Issues ───────────────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class CreateIssueConfig(TargetedConfig):
    title_prefix: str = setting(coerce=as_str, default="")
    labels: list[str] = setting(coerce=as_str_list, factory=list)
    allowed_labels: list[str] = setting(coerce=as_str_list, factory=list)
    assignees: list[str] = setting(coerce=as_str_list, factory=list)
    close_older_issues: bool = setting(coerce=as_bool, default=False)
    expires: int = setting(coerce=as_hours, default=0)
    group: bool = setting(coerce=as_bool, default=False)
    footer: bool | None = setting(coerce=as_bool, default=None)

    @classmethod
    def normalize(cls, config, raw):
        if _reject_wildcard_repo(config, "create-issue"):
            return None
        return config


@dataclass(frozen=True, slots=True)
class CreateAgentSessionConfig(TargetedConfig):
    base: str = setting(coerce=as_str, default="")


@dataclass(frozen=True, slots=True)
class UpdateIssueConfig(TargetedConfig):
    status: bool = setting(coerce=as_present, default=False)
    title: bool = setting(coerce=as_present, default=False)
    body: bool = setting(coerce=as_flag, default=False)
    footer: bool | None = setting(coerce=as_bool, default=None)


@dataclass(frozen=True, slots=True)
class CloseIssueConfig(CloseConfig):
    pass


@dataclass(frozen=True, slots=True)
class LinkSubIssueConfig(TargetedConfig):
    parent_required_labels: list[str] = setting(coerce=as_str_list, factory=list)
    parent_title_prefix: str = setting(coerce=as_str, default="")
    sub_required_labels: list[str] = setting(coerce=as_str_list, factory=list)
    sub_title_prefix: str = setting(coerce=as_str, default="")


# ── Discussions ──────────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class CreateDiscussionConfig(TargetedConfig):
    title_prefix: str = setting(coerce=as_str, default="")
    category: str = setting(coerce=as_str, default="")
    labels: list[str] = setting(coerce=as_str_list, factory=list)
    allowed_labels: list[str] = setting(coerce=as_str_list, factory=list)
    close_older_discussions: bool = setting(coerce=as_bool, default=False)
    expires: int = setting(coerce=as_hours, default=DEFAULT_DISCUSSION_EXPIRES_HOURS)
    fallback_to_issue: bool = setting(coerce=as_bool, default=True)
    footer: bool | None = setting(coerce=as_bool, default=None)

    @classmethod
    def normalize(cls, config, raw):
        if _reject_wildcard_repo(config, "create-discussion"):
            return None
        return replace(config, category=config.category.strip())


@dataclass(frozen=True, slots=True)
class UpdateDiscussionConfig(TargetedConfig):
    title: bool = setting(coerce=as_present, default=False)
    body: bool = setting(coerce=as_present, default=False)
    labels: bool = setting(coerce=as_present, default=False)
    allowed_labels: list[str] = setting(coerce=as_str_list, factory=list)
    footer: bool | None = setting(coerce=as_bool, default=None)


@dataclass(frozen=True, slots=True)
class CloseDiscussionConfig(CloseConfig):
    required_category: str = setting(coerce=as_str, default="")


# ── Comments ─────────────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class AddCommentConfig(TargetedConfig):
    hide_older_comments: bool = setting(coerce=as_bool, default=False)
    discussions: bool | None = setting(coerce=as_bool, default=None)
    footer: bool | None = setting(coerce=as_bool, default=None)


@dataclass(frozen=True, slots=True)
class HideCommentConfig(TargetedConfig):
    allowed_reasons: list[str] = setting(coerce=as_str_list, factory=list)
    discussions: bool | None = setting(coerce=as_bool, default=None)


# ── Pull requests ────────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class CreatePullRequestConfig(TargetedConfig):
    title_prefix: str = setting(coerce=as_str, default="")
    labels: list[str] = setting(coerce=as_str_list, factory=list)
    allowed_labels: list[str] = setting(coerce=as_str_list, factory=list)
    reviewers: list[str] = setting(coerce=as_str_list, factory=list)
    draft: bool = setting(coerce=as_bool, default=True)
    if_no_changes: str = setting(coerce=as_str, default="warn")
    allow_empty: bool = setting(coerce=as_bool, default=False)
    auto_merge: bool = setting(coerce=as_bool, default=False)
    fallback_as_issue: bool | None = setting(coerce=as_bool, default=None)
    base_branch: str = setting("base-branch", as_str, default=DEFAULT_PR_BASE_BRANCH)
    expires: int = setting(coerce=as_hours, default=0)
    footer: bool | None = setting(coerce=as_bool, default=None)

    @property
    def falls_back_to_issue(self) -> bool:
        """Whether a failed PR creation opens an issue instead (default on)."""
        return self.fallback_as_issue is not False

    @classmethod
    def normalize(cls, config, raw):
        if _reject_wildcard_repo(config, "create-pull-request"):
            return None
        if config.if_no_changes not in ("warn", "error", "ignore"):
            logger.warning(
                "create-pull-request: invalid if-no-changes %r, using 'warn'",
                config.if_no_changes,
            )
            config = replace(config, if_no_changes="warn")
        return config


@dataclass(frozen=True, slots=True)
class UpdatePullRequestConfig(TargetedConfig):
    title: bool = setting(coerce=as_flag, default=True)
    body: bool = setting(coerce=as_flag, default=True)
    footer: bool | None = setting(coerce=as_bool, default=None)


@dataclass(frozen=True, slots=True)
class ClosePullRequestConfig(CloseConfig):
    pass


@dataclass(frozen=True, slots=True)
class MarkPullRequestReadyConfig(CloseConfig):
    pass


@dataclass(frozen=True, slots=True)
class PushToPullRequestBranchConfig(TargetedConfig):
    title_prefix: str = setting(coerce=as_str, default="")
    labels: list[str] = setting(coerce=as_str_list, factory=list)
    if_no_changes: str = setting(coerce=as_str, default="warn")
    commit_title_suffix: str = setting(coerce=as_str, default="")


@dataclass(frozen=True, slots=True)
class CreatePullRequestReviewCommentConfig(TargetedConfig):
    side: str = setting(coerce=as_str, default="RIGHT")

    @classmethod
    def normalize(cls, config, raw):
        if config.side not in ("LEFT", "RIGHT"):
            logger.warning("Invalid review comment side %r, using RIGHT", config.side)
            config = replace(config, side="RIGHT")
        return config


@dataclass(frozen=True, slots=True)
class SubmitPullRequestReviewConfig(CapabilityConfig):
    footer: bool | None = setting(coerce=as_bool, default=None)


@dataclass(frozen=True, slots=True)
class ReplyToPullRequestReviewCommentConfig(TargetedConfig):
    pass


@dataclass(frozen=True, slots=True)
class ResolvePullRequestReviewThreadConfig(CapabilityConfig):
    pass


@dataclass(frozen=True, slots=True)
class AddReviewerConfig(ListConfig):
    allowed: list[str] = setting("reviewers", as_str_list, factory=list)


# ── Labels, assignment, milestones ───────────────────────────────────

@dataclass(frozen=True, slots=True)
class AddLabelsConfig(ListConfig):
    pass


@dataclass(frozen=True, slots=True)
class RemoveLabelsConfig(ListConfig):
    pass


@dataclass(frozen=True, slots=True)
class AssignMilestoneConfig(ListConfig):
    pass


@dataclass(frozen=True, slots=True)
class AssignToUserConfig(ListConfig):
    pass


@dataclass(frozen=True, slots=True)
class UnassignFromUserConfig(ListConfig):
    pass


@dataclass(frozen=True, slots=True)
class AssignToAgentConfig(TargetedConfig):
    name: str = setting(coerce=as_str, default="copilot")
    allowed: list[str] = setting(coerce=as_str_list, factory=list)
    base_branch: str = setting(coerce=as_str, default="")


# ── Security ─────────────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class CreateCodeScanningAlertConfig(CapabilityConfig):
    driver: str = setting(coerce=as_str, default="")


@dataclass(frozen=True, slots=True)
class AutofixCodeScanningAlertConfig(CapabilityConfig):
    pass


# ── Repository content ───────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class UploadAssetConfig(CapabilityConfig):
    branch: str = setting(coerce=as_str, default=DEFAULT_ASSETS_BRANCH)
    max_size_kb: int = setting("max-size", as_positive_int, default=10240)
    allowed_exts: list[str] = setting(
        coerce=as_str_list, factory=lambda: [".png", ".jpg", ".jpeg"]
    )


@dataclass(frozen=True, slots=True)
class UpdateReleaseConfig(TargetedConfig):
    pass


# ── Projects ─────────────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class UpdateProjectConfig(CapabilityConfig):
    project: str = setting(coerce=as_str, default="")


@dataclass(frozen=True, slots=True)
class CreateProjectConfig(CapabilityConfig):
    target_owner: str = setting(coerce=as_str, default="")
    title_prefix: str = setting(coerce=as_str, default="")


@dataclass(frozen=True, slots=True)
class CreateProjectStatusUpdateConfig(CapabilityConfig):
    project: str = setting(coerce=as_str, default="")


# ── Workflow dispatch ────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class DispatchWorkflowConfig(CapabilityConfig):
    workflows: list[str] = setting(coerce=as_str_list, factory=list)

    @classmethod
    def shorthand(cls, raw: Any) -> dict[str, Any] | None:
        """``dispatch-workflow: [a, b]`` is shorthand for ``workflows: [a, b]``."""
        if isinstance(raw, list):
            return {"workflows": raw}
        return None


# ── Reporting ────────────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class MissingToolConfig(CapabilityConfig):
    create_issue: bool = setting(coerce=as_bool, default=False)
    title_prefix: str = setting(coerce=as_str, default="")
    labels: list[str] = setting(coerce=as_str_list, factory=list)


@dataclass(frozen=True, slots=True)
class MissingDataConfig(CapabilityConfig):
    create_issue: bool = setting(coerce=as_bool, default=False)
    title_prefix: str = setting(coerce=as_str, default="")
    labels: list[str] = setting(coerce=as_str_list, factory=list)


@dataclass(frozen=True, slots=True)
class NoOpConfig(CapabilityConfig):
    report_as_issue: bool = setting(coerce=as_bool, default=True)


__all__ = [
    "AddCommentConfig",
    "AddLabelsConfig",
    "AddReviewerConfig",
    "AssignMilestoneConfig",
    "AssignToAgentConfig",
    "AssignToUserConfig",
    "AutofixCodeScanningAlertConfig",
    "CapabilityConfig",
    "CloseConfig",
    "CloseDiscussionConfig",
    "CloseIssueConfig",
    "ClosePullRequestConfig",
    "CreateAgentSessionConfig",
    "CreateCodeScanningAlertConfig",
    "CreateDiscussionConfig",
    "CreateIssueConfig",
    "CreateProjectConfig",
    "CreateProjectStatusUpdateConfig",
    "CreatePullRequestConfig",
    "CreatePullRequestReviewCommentConfig",
    "DispatchWorkflowConfig",
    "HideCommentConfig",
    "LinkSubIssueConfig",
    "ListConfig",
    "MarkPullRequestReadyConfig",
    "MissingDataConfig",
    "MissingToolConfig",
    "NoOpConfig",
    "PushToPullRequestBranchConfig",
    "RemoveLabelsConfig",
    "ReplyToPullRequestReviewCommentConfig",
    "ResolvePullRequestReviewThreadConfig",
    "SubmitPullRequestReviewConfig",
    "TargetedConfig",
    "UnassignFromUserConfig",
    "UpdateDiscussionConfig",
    "UpdateIssueConfig",
    "UpdateProjectConfig",
    "UpdatePullRequestConfig",
    "UpdateReleaseConfig",
    "UploadAssetConfig",
]
