"""Tests for GitHub App token mint and revoke steps."""
from __future__ import annotations

from safeflow_outputs.app_token import (
    APP_TOKEN_EXPR,
    APP_TOKEN_STEP_ID,
    CREATE_APP_TOKEN_ACTION,
    app_token_permission_fields,
    app_token_scoped,
    build_mint_step,
    build_revoke_step,
    wrap_with_app_token,
)
from safeflow_outputs.permissions import PermissionLevel, Permissions, R, W, permissions_of
from safeflow_outputs.types import GitHubAppConfig


def _app(**overrides) -> GitHubAppConfig:
    fields = {"app_id": "${{ vars.APP_ID }}", "private_key": "${{ secrets.APP_KEY }}"}
    fields.update(overrides)
    return GitHubAppConfig(**fields)


class TestPermissionFields:
    def test_sorted_fields(self) -> None:
        perms = permissions_of(pull_requests=W, contents=R, issues=W)
        assert list(app_token_permission_fields(perms).items()) == [
            ("permission-contents", "read"),
            ("permission-issues", "write"),
            ("permission-pull-requests", "write"),
        ]

    def test_organization_projects_included(self) -> None:
        perms = permissions_of(contents=R, organization_projects=W)
        assert app_token_permission_fields(perms)["permission-organization-projects"] == "write"

    def test_none(self) -> None:
        assert app_token_permission_fields(None) == {}


class TestMintStep:
    def test_defaults_to_current_repository(self) -> None:
        step = build_mint_step(_app(), permissions_of(contents=R))
        assert step["id"] == APP_TOKEN_STEP_ID
        assert step["uses"] == CREATE_APP_TOKEN_ACTION
        assert step["with"]["owner"] == "${{ github.repository_owner }}"
        assert step["with"]["repositories"] == "${{ github.event.repository.name }}"
        assert step["with"]["permission-contents"] == "read"

    def test_explicit_repositories(self) -> None:
        step = build_mint_step(_app(owner="octo", repositories=["a", "b"]), None)
        assert step["with"]["owner"] == "octo"
        assert step["with"]["repositories"] == "a,b"

    def test_wildcard_is_org_wide(self) -> None:
        step = build_mint_step(_app(repositories=["*"]), None)
        assert "repositories" not in step["with"]


class TestRevokeStep:
    def test_always_runs_when_minted(self) -> None:
        step = build_revoke_step()
        assert step["if"] == f"always() && steps.{APP_TOKEN_STEP_ID}.outputs.token != ''"
        assert step["env"] == {"TOKEN": APP_TOKEN_EXPR}
        assert "|| echo" in step["run"]


class TestWrap:
    def test_without_app(self) -> None:
        steps = [{"run": "true"}]
        assert wrap_with_app_token(None, None, steps) == steps

    def test_mint_first_revoke_last(self) -> None:
        wrapped = wrap_with_app_token(_app(), permissions_of(contents=W), [{"run": "a"}, {"run": "b"}])
        assert [step.get("id") for step in wrapped][0] == APP_TOKEN_STEP_ID
        assert wrapped[1:3] == [{"run": "a"}, {"run": "b"}]
        assert wrapped[-1]["name"] == "Invalidate GitHub App token"
        assert len(wrapped) == 4

    def test_no_scopes_no_mint(self) -> None:
        steps = [{"run": "true"}]
        assert wrap_with_app_token(_app(), Permissions.empty(), steps) == steps
        assert wrap_with_app_token(_app(), None, steps) == steps

    def test_scoped(self) -> None:
        assert app_token_scoped(_app(), permissions_of(issues=W))
        assert not app_token_scoped(_app(), permissions_of(issues=PermissionLevel.NONE))
        assert not app_token_scoped(None, permissions_of(issues=W))
