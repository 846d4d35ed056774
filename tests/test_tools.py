"""Tests for the agent-facing tool catalog."""
from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

import pytest
from safeflow_core.errors import CompilerError
from safeflow_outputs.catalog import catalog_names, get_tool, load_catalog
from safeflow_outputs.parser import parse_safe_outputs, parse_safe_jobs
from safeflow_outputs.registry import KINDS
from safeflow_outputs.tools import (
    ToolCatalogGenerator,
    add_repo_parameter,
    check_tools_present,
    custom_job_tool,
    dispatch_tool,
    enhance_description,
    generate_tools,
    tools_to_json,
)

if TYPE_CHECKING:
    from pathlib import Path

_DEPLOY_LOCK = """\
    name: Deploy
    on:
      workflow_dispatch:
        inputs:
          environment:
            description: Where to deploy
            type: choice
            options: [staging, production]
            default: staging
            required: true
          dry_run:
            type: boolean
            default: false
    jobs: {}
    """


def _tools(raw: dict, workflow_path: Path | None = None) -> dict:
    return {tool.name: tool for tool in generate_tools(parse_safe_outputs(raw), workflow_path)}


class TestCatalog:
    def test_every_static_kind_has_an_entry(self) -> None:
        names = set(catalog_names())
        for kind in KINDS.values():
            assert (kind.name in names) == kind.static_tool, kind.key

    def test_copies_are_independent(self) -> None:
        load_catalog()[0]["description"] = "changed"
        assert load_catalog()[0]["description"] != "changed"

    def test_get_tool(self) -> None:
        assert get_tool("noop")["inputSchema"]["required"] == ["message"]
        assert get_tool("launch_rocket") is None


class TestStaticTools:
    def test_none_config(self) -> None:
        assert generate_tools(None) == []

    def test_none_config_parts(self) -> None:
        generator = ToolCatalogGenerator(None)
        assert generator.static_tools() == []
        assert generator.custom_job_tools() == []
        assert generator.dispatch_tools() == []

    def test_only_enabled_kinds_in_catalog_order(self) -> None:
        tools = generate_tools(parse_safe_outputs({"noop": None, "create-issue": None}))
        assert [tool.name for tool in tools] == ["create_issue", "noop"]

    def test_constraints_appended(self) -> None:
        tool = _tools({"create-issue": {"title-prefix": "[bot] ", "labels": ["a", "b"], "max": 2}})[
            "create_issue"
        ]
        assert tool.description.endswith(
            ' CONSTRAINTS: Maximum 2 issue(s) can be created. Title will be prefixed with "[bot] ".'
            " Labels [a, b] will be automatically added."
        )
        assert tool.input_schema["required"] == ["title", "body"]

    def test_no_constraints_keeps_description(self) -> None:
        tool = _tools({"noop": None})["noop"]
        assert tool.description == get_tool("noop")["description"]

    def test_label_constraints(self) -> None:
        tool = _tools({"add-labels": {"allowed": ["bug", "docs"]}})["add_labels"]
        assert "Maximum 5 label(s) can be added." in tool.description
        assert "Only these labels are allowed: [bug, docs]." in tool.description

    def test_unlimited_max_has_no_max_sentence(self) -> None:
        tool = _tools({"create-code-scanning-alert": {"max": 0}})["create_code_scanning_alert"]
        assert "Maximum" not in tool.description

    def test_dispatch_has_no_static_tool(self) -> None:
        assert "dispatch_workflow" not in _tools({"dispatch-workflow": ["deploy"]})


class TestEnhanceDescription:
    def test_without_config(self) -> None:
        assert enhance_description("create_issue", "Create.", None) == "Create."

    def test_update_issue(self) -> None:
        config = KINDS["update-issue"].parse({"status": None, "target": "*"})
        assert enhance_description("update_issue", "Update.", config) == (
            "Update. CONSTRAINTS: Maximum 1 issue(s) can be updated. Target: *. "
            "Status updates (open/closed) are allowed."
        )


class TestRepoParameter:
    def test_not_added_without_cross_repo(self) -> None:
        tool = _tools({"create-issue": None})["create_issue"]
        assert "repo" not in tool.input_schema["properties"]

    def test_allowed_repos(self) -> None:
        tool = _tools({"create-issue": {"allowed-repos": ["octo/other"]}})["create_issue"]
        assert tool.input_schema["properties"]["repo"] == {
            "type": "string",
            "description": "Target repository for this operation in 'owner/repo' format. "
            "Must be the target-repo or in the allowed-repos list.",
        }

    def test_default_target_repo_mentioned(self) -> None:
        tool = _tools({
            "create-issue": {"target-repo": "octo/main", "allowed-repos": ["octo/other"]},
        })["create_issue"]
        assert 'Default is "octo/main".' in tool.input_schema["properties"]["repo"]["description"]

    def test_wildcard(self) -> None:
        tool = _tools({"add-comment": {"target-repo": "*"}})["add_comment"]
        assert tool.input_schema["properties"]["repo"]["description"].endswith(
            "Any repository can be targeted."
        )

    def test_schema_without_properties(self) -> None:
        schema = {"type": "object"}
        config = KINDS["add-comment"].parse({"target-repo": "*"})
        assert add_repo_parameter(schema, config) is False


class TestCustomJobTools:
    def test_schema(self) -> None:
        job = parse_safe_jobs({
            "notify": {
                "description": "Send a notification",
                "inputs": {
                    "message": {"required": True, "description": "Text"},
                    "level": {"type": "choice", "options": ["low", "high"], "required": True},
                    "urgent": {"type": "boolean", "default": False},
                    "count": {"type": "number"},
                },
            },
        })["notify"]
        tool = custom_job_tool("notify", job)
        assert tool.description == "Send a notification"
        schema = tool.input_schema
        assert schema["required"] == ["level", "message"]
        assert schema["additionalProperties"] is False
        assert schema["properties"]["level"] == {"type": "string", "enum": ["low", "high"]}
        assert schema["properties"]["urgent"] == {"type": "boolean", "default": False}
        assert schema["properties"]["count"] == {"type": "number"}

    def test_default_description_and_no_required(self) -> None:
        job = parse_safe_jobs({"archive": {}})["archive"]
        tool = custom_job_tool("archive", job)
        assert tool.description == "Execute the archive custom job"
        assert "required" not in tool.input_schema

    def test_sorted_after_static_tools(self) -> None:
        tools = generate_tools(parse_safe_outputs({
            "noop": None,
            "jobs": {"zeta": {}, "alpha-job": {}},
        }))
        assert [tool.name for tool in tools] == ["noop", "alpha_job", "zeta"]

    def test_duplicate_name_skipped(self, caplog: pytest.LogCaptureFixture) -> None:
        config = parse_safe_outputs({
            "create-issue": None,
            "jobs": {"create-issue": {"description": "shadow"}},
        })
        with caplog.at_level(logging.WARNING):
            tools = generate_tools(config)
        assert [tool.name for tool in tools] == ["create_issue"]
        assert "Skipping duplicate tool name create_issue" in caplog.text


class TestDispatchTools:
    def test_inputs_from_compiled_workflow(self, write_workflow) -> None:
        write_workflow("deploy.lock.yml", _DEPLOY_LOCK)
        main = write_workflow("main.md", "# Main\n")

        generator = ToolCatalogGenerator(
            parse_safe_outputs({"dispatch-workflow": ["deploy"]}), main
        )
        tools = generator.generate()

        assert generator.dispatch_files == {"deploy": ".lock.yml"}
        tool = tools[0]
        assert tool.name == "deploy"
        assert tool.workflow_name == "deploy"
        assert tool.description.startswith(
            "Dispatch the 'deploy' workflow with workflow_dispatch trigger."
        )
        schema = tool.input_schema
        assert list(schema["properties"]) == ["dry_run", "environment"]
        assert schema["required"] == ["environment"]
        assert schema["properties"]["environment"] == {
            "type": "string",
            "description": "Where to deploy",
            "enum": ["staging", "production"],
        }
        assert schema["properties"]["dry_run"] == {
            "type": "boolean",
            "description": "Input parameter 'dry_run' for workflow deploy",
            "default": False,
        }

    def test_uncompiled_target_gets_empty_schema(self, write_workflow) -> None:
        write_workflow("deploy.md", "# Deploy\n")
        main = write_workflow("main.md", "# Main\n")
        tools = _tools({"dispatch-workflow": ["deploy"]}, main)
        assert tools["deploy"].input_schema == {
            "type": "object", "properties": {}, "additionalProperties": False,
        }

    def test_hyphenated_name_normalized(self) -> None:
        tool = dispatch_tool("nightly-build", {})
        assert tool.name == "nightly_build"
        assert tool.to_dict()["_workflow_name"] == "nightly-build"

    def test_without_workflow_path(self) -> None:
        tools = _tools({"dispatch-workflow": ["deploy", "notify"]})
        assert set(tools) == {"deploy", "notify"}


class TestHelpers:
    def test_check_tools_present(self) -> None:
        with pytest.raises(CompilerError, match="missing from safe-output-tools.json"):
            check_tools_present({"create_issue", "launch_rocket"}, {"create_issue"})

    def test_tools_to_json(self) -> None:
        doc = json.loads(tools_to_json(generate_tools(parse_safe_outputs({"noop": None}))))
        assert doc[0]["name"] == "noop"
        assert doc[0]["inputSchema"]["type"] == "object"
        assert "_workflow_name" not in doc[0]
