"""End-to-end tests for compiling a workflow's safe-outputs."""
from __future__ import annotations

import json

import pytest
import yaml
from safeflow_core.config import CompilerSettings, SafeflowConfig
from safeflow_core.errors import DispatchValidationError, WorkflowParseError
from safeflow_outputs import SafeOutputsCompiler

_TRIAGE = """\
    ---
    name: Issue Triage
    on: issues
    imports:
      - shared/reporting.md
    safe-outputs:
      add-labels:
        allowed: [bug, enhancement]
      add-comment:
        discussions: false
      dispatch-workflow: [deploy]
    ---
    Label and comment on new issues.
    """

_REPORTING = """\
    ---
    safe-outputs:
      create-issue:
        title-prefix: "[report] "
      add-labels:
        allowed: [ignored]
    ---
    """

_DEPLOY_LOCK = """\
    name: Deploy
    on:
      workflow_dispatch:
        inputs:
          environment:
            type: string
            required: true
    jobs: {}
    """


@pytest.fixture
def triage(write_workflow, workflows_dir):
    (workflows_dir / "shared").mkdir()
    write_workflow("shared/reporting.md", _REPORTING)
    write_workflow("deploy.lock.yml", _DEPLOY_LOCK)
    return write_workflow("triage.md", _TRIAGE)


class TestCompile:
    def test_full_pipeline(self, triage) -> None:
        result = SafeOutputsCompiler().compile(triage)

        assert result.enabled
        assert result.workflow.name == "Issue Triage"
        assert result.config.get("add-labels").allowed == ["bug", "enhancement"]
        assert result.config.get("create-issue").title_prefix == "[report] "
        assert result.dispatch_files == {"deploy": ".lock.yml"}

        assert [job.name for job in result.jobs] == [
            "create_issue",
            "add_comment",
            "add_labels",
            "dispatch_workflow",
            "missing_tool",
            "missing_data",
            "noop",
        ]
        assert result.permissions.to_yaml_value() == {
            "actions": "write",
            "contents": "read",
            "issues": "write",
            "pull-requests": "write",
        }

        tool_names = [tool.name for tool in result.tools]
        assert tool_names[-1] == "deploy"
        assert "dispatch_workflow" not in tool_names
        assert result.tools[-1].input_schema["required"] == ["environment"]

    def test_yaml_output(self, triage) -> None:
        doc = yaml.safe_load(SafeOutputsCompiler().compile(triage).to_yaml())
        create_issue = doc["jobs"]["create_issue"]
        assert create_issue["needs"] == "agent"
        assert create_issue["runs-on"] == "ubuntu-slim"
        assert create_issue["timeout-minutes"] == 10
        assert create_issue["permissions"] == {"contents": "read", "issues": "write"}

    def test_json_output(self, triage) -> None:
        tools = json.loads(SafeOutputsCompiler().compile(triage).to_json())
        deploy = next(tool for tool in tools if tool["name"] == "deploy")
        assert deploy["_workflow_name"] == "deploy"

    def test_no_safe_outputs(self, write_workflow) -> None:
        path = write_workflow("plain.md", "---\non: push\n---\nHello\n")
        result = SafeOutputsCompiler().compile(path)
        assert not result.enabled
        assert result.jobs == []
        assert result.to_yaml() == ""

    def test_consolidated_setting(self, triage) -> None:
        config = SafeflowConfig(compiler=CompilerSettings(consolidated=True))
        result = SafeOutputsCompiler(config).compile(triage)
        assert [job.name for job in result.jobs] == ["safe_outputs"]

    def test_custom_main_job_name(self, triage) -> None:
        config = SafeflowConfig(compiler=CompilerSettings(main_job_name="run_agent"))
        result = SafeOutputsCompiler(config).compile(triage)
        assert all(job.needs[0] == "run_agent" for job in result.jobs)


class TestCompileErrors:
    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            SafeOutputsCompiler().compile(tmp_path / "nope.md")

    def test_missing_import(self, write_workflow) -> None:
        path = write_workflow("w.md", "---\nimports: [gone.md]\nsafe-outputs:\n  noop:\n---\n")
        with pytest.raises(WorkflowParseError, match="not found"):
            SafeOutputsCompiler().compile(path)

    def test_invalid_dispatch_target(self, write_workflow) -> None:
        path = write_workflow("w.md", "---\nsafe-outputs:\n  dispatch-workflow: [ghost]\n---\n")
        with pytest.raises(DispatchValidationError, match="'ghost' not found"):
            SafeOutputsCompiler().compile(path)

    def test_fail_fast_reports_one_error(self, write_workflow) -> None:
        path = write_workflow(
            "w.md", "---\nsafe-outputs:\n  dispatch-workflow: [ghost, phantom]\n---\n"
        )
        config = SafeflowConfig(compiler=CompilerSettings(fail_fast=True))
        with pytest.raises(DispatchValidationError) as exc_info:
            SafeOutputsCompiler(config).compile(path)
        assert len(exc_info.value.errors) == 1
