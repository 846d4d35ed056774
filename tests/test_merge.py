"""Tests for merging main and imported safe-outputs configurations."""
from __future__ import annotations

from safeflow_outputs.merge import merge_safe_outputs
from safeflow_outputs.parser import parse_safe_outputs
from safeflow_outputs.types import ThreatDetectionConfig


class TestMergeKinds:
    def test_no_fragments_returns_main(self) -> None:
        main = parse_safe_outputs({"create-issue": None})
        assert merge_safe_outputs(main, []) is main

    def test_nothing_configured(self) -> None:
        assert merge_safe_outputs(None, []) is None
        assert merge_safe_outputs(None, [{}]) is None

    def test_imported_kind_added(self) -> None:
        main = parse_safe_outputs({"create-issue": None})
        merged = merge_safe_outputs(main, [{"add-comment": {"max": 3}}])
        assert merged.enabled_keys() == ["create-issue", "add-comment"]
        assert merged.get("add-comment").max == 3

    def test_main_declaration_wins(self) -> None:
        """An empty main declaration still beats a fully configured import."""
        main = parse_safe_outputs({"create-issue": None})
        merged = merge_safe_outputs(
            main, [{"create-issue": {"title-prefix": "[imported] ", "max": 5}}]
        )
        assert merged.get("create-issue").title_prefix == ""
        assert merged.get("create-issue").max == 1

    def test_first_import_wins(self) -> None:
        merged = merge_safe_outputs(None, [
            {"add-labels": {"allowed": ["first"]}},
            {"add-labels": {"allowed": ["second"]}},
        ])
        assert merged.get("add-labels").allowed == ["first"]

    def test_main_disable_blocks_import(self) -> None:
        main = parse_safe_outputs({"create-issue": None, "noop": False})
        merged = merge_safe_outputs(main, [{"noop": {"max": 2}}])
        assert not merged.is_enabled("noop")
        assert "noop" in merged.disabled

    def test_same_fragment_twice_is_idempotent(self) -> None:
        main = parse_safe_outputs({"create-issue": None})
        fragment = {"add-comment": {"max": 2}, "env": {"A": "1"}, "jobs": {"notify": {}}}
        assert merge_safe_outputs(main, [fragment, fragment]) == merge_safe_outputs(
            main, [fragment]
        )

    def test_registry_order_regardless_of_import_order(self) -> None:
        merged = merge_safe_outputs(parse_safe_outputs({"noop": None}), [{"create-issue": None}])
        assert merged.enabled_keys() == ["create-issue", "noop"]

    def test_parsed_fragments_accepted(self) -> None:
        fragment = parse_safe_outputs({"add-comment": None})
        merged = merge_safe_outputs(None, [fragment])
        assert merged.is_enabled("add-comment")

    def test_does_not_mutate_inputs(self) -> None:
        main = parse_safe_outputs({"create-issue": None})
        merge_safe_outputs(main, [{"add-comment": None}])
        assert main.enabled_keys() == ["create-issue"]


class TestMergeSettings:
    def test_scalars_main_first(self) -> None:
        main = parse_safe_outputs({"github-token": "${{ secrets.MAIN }}"})
        merged = merge_safe_outputs(main, [
            {"github-token": "${{ secrets.IMPORTED }}", "runs-on": "self-hosted",
             "max-patch-size": 256},
        ])
        assert merged.github_token == "${{ secrets.MAIN }}"
        assert merged.runs_on == "self-hosted"
        assert merged.max_patch_size == 256

    def test_env_main_overrides(self) -> None:
        main = parse_safe_outputs({"env": {"A": "main"}})
        merged = merge_safe_outputs(main, [
            {"env": {"A": "first", "B": "first"}},
            {"env": {"B": "second", "C": "second"}},
        ])
        assert merged.env == {"A": "main", "B": "first", "C": "second"}

    def test_messages_field_level(self) -> None:
        main = parse_safe_outputs({"messages": {"footer": "main footer"}})
        merged = merge_safe_outputs(main, [
            {"messages": {"footer": "imported", "run-failure": "failed"}},
        ])
        assert merged.messages.footer == "main footer"
        assert merged.messages.run_failure == "failed"

    def test_jobs_union(self) -> None:
        main = parse_safe_outputs({"jobs": {"notify": {"description": "main"}}})
        merged = merge_safe_outputs(main, [
            {"jobs": {"notify": {"description": "imported"}, "archive": {}}},
        ])
        assert set(merged.jobs) == {"notify", "archive"}
        assert merged.jobs["notify"].description == "main"

    def test_app_from_import_when_valid(self) -> None:
        merged = merge_safe_outputs(parse_safe_outputs({"create-issue": None}), [
            {"app": {"app-id": "1"}},
            {"app": {"app-id": "2", "private-key": "${{ secrets.KEY }}"}},
        ])
        assert merged.app.app_id == "2"

    def test_threat_detection_disable_in_main(self) -> None:
        main = parse_safe_outputs({"create-issue": None, "threat-detection": False})
        merged = merge_safe_outputs(main, [{"threat-detection": {"prompt": "x"}}])
        assert merged.threat_detection is None
        assert "threat-detection" in merged.disabled

    def test_threat_detection_from_import(self) -> None:
        main = parse_safe_outputs({"create-issue": None})
        merged = merge_safe_outputs(main, [{"threat-detection": {"prompt": "careful"}}])
        assert merged.threat_detection == ThreatDetectionConfig(prompt="careful")
