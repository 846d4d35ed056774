"""Tests for the job permission model."""
from __future__ import annotations

import logging

import pytest
from safeflow_outputs.permissions import (
    PermissionLevel,
    Permissions,
    PermissionScope,
    R,
    W,
    higher_level,
    permissions_of,
)


class TestHigherLevel:
    def test_write_beats_read(self) -> None:
        assert higher_level(R, W) is W
        assert higher_level(W, R) is W

    def test_read_beats_none(self) -> None:
        assert higher_level(PermissionLevel.NONE, R) is R


class TestParse:
    def test_shorthand(self) -> None:
        perms = Permissions.parse("read-all")
        assert perms.shorthand == "read-all"
        assert perms.to_yaml_value() == "read-all"

    def test_unknown_shorthand_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown permissions shorthand"):
            Permissions.parse("admin-all")

    def test_empty_mapping_is_explicit_empty(self) -> None:
        perms = Permissions.parse({})
        assert perms.explicit_empty is True
        assert perms.render() == "permissions: {}"

    def test_scope_map(self) -> None:
        perms = Permissions.parse({"issues": "write", "contents": "read"})
        assert perms.get(PermissionScope.ISSUES) is W
        assert perms.get(PermissionScope.CONTENTS) is R
        assert perms.get(PermissionScope.DISCUSSIONS) is None

    def test_unknown_scope_and_level_dropped(self) -> None:
        perms = Permissions.parse({"bogus": "write", "issues": "admin", "contents": "read"})
        assert perms.to_yaml_value() == {"contents": "read"}

    def test_all_with_override(self) -> None:
        """Explicit scopes take precedence over the all expansion."""
        perms = Permissions.parse({"all": "read", "issues": "write"})
        rendered = perms.to_yaml_value()
        assert rendered["issues"] == "write"
        assert rendered["contents"] == "read"

    def test_all_read_skips_id_token(self) -> None:
        perms = Permissions.parse({"all": "read"})
        assert "id-token" not in perms.to_yaml_value()
        assert perms.get(PermissionScope.ID_TOKEN) is None

    def test_all_write_includes_id_token(self) -> None:
        perms = Permissions.parse({"all": "write"})
        assert perms.to_yaml_value()["id-token"] == "write"

    def test_id_token_read_dropped(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            perms = Permissions.parse({"id-token": "read", "contents": "read"})
        assert perms.to_yaml_value() == {"contents": "read"}
        assert "id-token" in caplog.text

    def test_id_token_write_and_none_kept(self) -> None:
        assert Permissions.parse({"id-token": "write"}).to_yaml_value() == {"id-token": "write"}
        assert Permissions.parse({"id-token": "none"}).to_yaml_value() == {"id-token": "none"}


class TestRendering:
    def test_sorted_alphabetically(self) -> None:
        perms = permissions_of(pull_requests=W, contents=R, issues=W)
        assert list(perms.to_yaml_value()) == ["contents", "issues", "pull-requests"]

    def test_render_block(self) -> None:
        perms = permissions_of(issues=W, contents=R)
        assert perms.render() == "permissions:\n  contents: read\n  issues: write"

    def test_metadata_never_rendered(self) -> None:
        perms = permissions_of(metadata=R, contents=R)
        assert perms.to_yaml_value() == {"contents": "read"}

    def test_empty_renders_nothing(self) -> None:
        perms = Permissions()
        assert perms.is_empty()
        assert perms.to_yaml_value() is None
        assert perms.render() == ""


class TestSetAndMerge:
    def test_set_converts_shorthand(self) -> None:
        perms = Permissions.from_shorthand("read-all")
        perms.set(PermissionScope.ISSUES, W)
        assert perms.shorthand == ""
        assert perms.to_yaml_value() == {"issues": "write"}

    def test_set_id_token_read_ignored(self) -> None:
        perms = permissions_of(contents=R)
        perms.set(PermissionScope.ID_TOKEN, R)
        assert perms.get(PermissionScope.ID_TOKEN) is None
        perms.set(PermissionScope.ID_TOKEN, W)
        assert perms.get(PermissionScope.ID_TOKEN) is W

    def test_set_expands_all(self) -> None:
        perms = Permissions.all(R)
        perms.set(PermissionScope.ISSUES, W)
        assert perms.all_level is None
        assert perms.get(PermissionScope.ISSUES) is W
        assert perms.get(PermissionScope.CONTENTS) is R

    def test_merge_union_write_wins(self) -> None:
        perms = permissions_of(contents=R, issues=R)
        perms.merge(permissions_of(contents=W, discussions=W))
        assert perms.to_yaml_value() == {
            "contents": "write",
            "discussions": "write",
            "issues": "read",
        }

    def test_merge_never_downgrades(self) -> None:
        perms = permissions_of(contents=W)
        perms.merge(permissions_of(contents=R))
        assert perms.get(PermissionScope.CONTENTS) is W

    def test_merge_map_into_write_all_keeps_write(self) -> None:
        perms = Permissions.from_shorthand("write-all")
        perms.merge(permissions_of(contents=R))
        assert perms.get(PermissionScope.CONTENTS) is W
        assert perms.get(PermissionScope.ISSUES) is W

    def test_merge_write_all_into_map_upgrades(self) -> None:
        perms = permissions_of(contents=R)
        perms.merge(Permissions.from_shorthand("write-all"))
        assert perms.get(PermissionScope.CONTENTS) is W
        assert perms.get(PermissionScope.PULL_REQUESTS) is W

    def test_merge_read_all_keeps_existing_write(self) -> None:
        perms = permissions_of(issues=W)
        perms.merge(Permissions.from_shorthand("read-all"))
        assert perms.get(PermissionScope.ISSUES) is W
        assert perms.get(PermissionScope.CONTENTS) is R
        assert perms.get(PermissionScope.ID_TOKEN) is None

    def test_merge_shorthands_pick_higher(self) -> None:
        perms = Permissions.from_shorthand("read-all")
        perms.merge(Permissions.from_shorthand("write-all"))
        assert perms.to_yaml_value() == "write-all"

    def test_merge_all_into_shorthand(self) -> None:
        perms = Permissions.from_shorthand("read-all")
        perms.merge(Permissions.all(R, {PermissionScope.ISSUES: W}))
        assert perms.shorthand == ""
        assert perms.get(PermissionScope.ISSUES) is W
        assert perms.get(PermissionScope.CONTENTS) is R

    def test_merge_none_is_noop(self) -> None:
        perms = permissions_of(contents=R)
        perms.merge(None)
        assert perms.to_yaml_value() == {"contents": "read"}

    def test_merge_order_independent(self) -> None:
        a = permissions_of(contents=R, issues=W)
        b = permissions_of(contents=W, pull_requests=W)

        left = Permissions()
        left.merge(a)
        left.merge(b)
        right = Permissions()
        right.merge(b)
        right.merge(a)

        assert left.to_yaml_value() == right.to_yaml_value()

    def test_copy_is_independent(self) -> None:
        perms = permissions_of(contents=R)
        clone = perms.copy()
        clone.set(PermissionScope.ISSUES, W)
        assert perms.get(PermissionScope.ISSUES) is None
