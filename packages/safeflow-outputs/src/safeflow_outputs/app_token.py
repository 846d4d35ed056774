"""GitHub App installation token mint and revoke steps.

A job that mints a token gets exactly one mint step before its other
steps and one revoke step after them. The revoke step always runs, but
only calls the API when a token was actually minted, and a failed revoke
never fails the job.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any

from safeflow_core.logging import get_logger

from safeflow_outputs.permissions import PermissionLevel, PermissionScope

if TYPE_CHECKING:
    from safeflow_outputs.permissions import Permissions
    from safeflow_outputs.types import GitHubAppConfig

logger = get_logger("outputs.app_token")

APP_TOKEN_STEP_ID = "safe-outputs-app-token"
APP_TOKEN_EXPR = "${{ steps.safe-outputs-app-token.outputs.token }}"
CREATE_APP_TOKEN_ACTION = "actions/create-github-app-token@v2"

# Actions permission scopes that have an app-token ``permission-*`` input.
APP_TOKEN_SCOPES = (
    PermissionScope.ACTIONS,
    PermissionScope.CHECKS,
    PermissionScope.CONTENTS,
    PermissionScope.DEPLOYMENTS,
    PermissionScope.ISSUES,
    PermissionScope.PACKAGES,
    PermissionScope.PAGES,
    PermissionScope.PULL_REQUESTS,
    PermissionScope.SECURITY_EVENTS,
    PermissionScope.STATUSES,
    PermissionScope.ORGANIZATION_PROJECTS,
    PermissionScope.DISCUSSIONS,
)


def app_token_permission_fields(permissions: Permissions | None) -> dict[str, str]:
    """``permission-<scope>`` inputs for the scopes granted by *permissions*, sorted."""
    if permissions is None:
        return {}
    fields: dict[str, str] = {}
    for scope in APP_TOKEN_SCOPES:
        level = permissions.get(scope)
        if level is None or level is PermissionLevel.NONE:
            continue
        fields[f"permission-{scope.value}"] = level.value
    return dict(sorted(fields.items()))


def build_mint_step(app: GitHubAppConfig, permissions: Permissions | None) -> dict[str, Any]:
    """Step that mints a token scoped to the consuming job's *permissions*."""
    logger.debug(
        "Building app token mint step: owner=%s repos=%d", app.owner, len(app.repositories)
    )
    with_: dict[str, Any] = {
        "app-id": app.app_id,
        "private-key": app.private_key,
        "owner": app.owner or "${{ github.repository_owner }}",
    }
    if app.repositories == ["*"]:
        logger.debug("Using org-wide app token (repositories: *)")
    elif app.repositories:
        with_["repositories"] = ",".join(app.repositories)
    else:
        with_["repositories"] = "${{ github.event.repository.name }}"
    with_["github-api-url"] = "${{ github.api_url }}"
    with_.update(app_token_permission_fields(permissions))

    return {
        "name": "Generate GitHub App token",
        "id": APP_TOKEN_STEP_ID,
        "uses": CREATE_APP_TOKEN_ACTION,
        "with": with_,
    }


def build_revoke_step() -> dict[str, Any]:
    """Step that invalidates the minted token at job end, on every exit path."""
    return {
        "name": "Invalidate GitHub App token",
        "if": f"always() && steps.{APP_TOKEN_STEP_ID}.outputs.token != ''",
        "env": {"TOKEN": APP_TOKEN_EXPR},
        "run": (
            'echo "Revoking GitHub App installation token..."\n'
            'gh api --method DELETE -H "Authorization: token $TOKEN" '
            '/installation/token || echo "Token revoke may already be expired."\n'
            'echo "Token invalidation step complete."\n'
        ),
    }


def app_token_scoped(app: GitHubAppConfig | None, permissions: Permissions | None) -> bool:
    """Whether a job gets a minted token: an app is set and the job grants a scope.

    An app token minted without ``permission-*`` inputs carries every
    permission of the installation, so such jobs keep the default token.
    """
    return app is not None and bool(app_token_permission_fields(permissions))


def wrap_with_app_token(
    app: GitHubAppConfig | None,
    permissions: Permissions | None,
    steps: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    """Surround *steps* with the mint/revoke pair when a scoped token is minted."""
    if app is None:
        return list(steps)
    if not app_token_scoped(app, permissions):
        logger.debug("Job grants no app token scopes, skipping mint")
        return list(steps)
    return [build_mint_step(app, permissions), *steps, build_revoke_step()]
