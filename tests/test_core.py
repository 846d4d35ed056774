"""Tests for safeflow-core: configuration, errors and logging helpers."""
from __future__ import annotations

import logging
import textwrap

import pytest
from safeflow_core.config import SafeflowConfig
from safeflow_core.errors import (
    ConfigError,
    DispatchValidationError,
    JobPreconditionError,
    SafeflowError,
    SafeOutputsError,
)
from safeflow_core.logging import debug_patterns, enable_debug, get_logger


class TestConfig:
    def test_default_config(self) -> None:
        config = SafeflowConfig()
        assert config.compiler.action_mode == "inline"
        assert config.compiler.main_job_name == "agent"
        assert config.compiler.fail_fast is False
        assert config.logging.level == "WARNING"
        assert config.actions == {}

    def test_from_toml_missing_file(self, tmp_path) -> None:
        config = SafeflowConfig.from_toml(tmp_path / "safeflow.toml")
        assert config.compiler.action_mode == "inline"

    def test_from_toml(self, tmp_path) -> None:
        path = tmp_path / "safeflow.toml"
        path.write_text(textwrap.dedent("""\
            [compiler]
            action-mode = "action"
            fail-fast = true
            main-job-name = "run_agent"
            unknown-key = 1

            [logging]
            level = "DEBUG"
            json = true

            [actions]
            create-issue = "octo/safe-actions/create-issue@v1"
            noop = 3
            """))
        config = SafeflowConfig.from_toml(path)
        assert config.compiler.action_mode == "action"
        assert config.compiler.fail_fast is True
        assert config.compiler.main_job_name == "run_agent"
        assert config.logging.level == "DEBUG"
        assert config.logging.json is True
        assert config.actions == {"create_issue": "octo/safe-actions/create-issue@v1"}

    def test_invalid_action_mode(self, tmp_path) -> None:
        path = tmp_path / "safeflow.toml"
        path.write_text('[compiler]\naction-mode = "docker"\n')
        with pytest.raises(ConfigError, match="action_mode must be one of"):
            SafeflowConfig.from_toml(path)

    def test_invalid_toml(self, tmp_path) -> None:
        path = tmp_path / "safeflow.toml"
        path.write_text("[compiler\n")
        with pytest.raises(ConfigError, match="Invalid TOML"):
            SafeflowConfig.from_toml(path)

    def test_load_layers_project_over_global(self, tmp_path, monkeypatch) -> None:
        home = tmp_path / "home"
        (home / ".safeflow").mkdir(parents=True)
        (home / ".safeflow" / "config.toml").write_text(
            '[compiler]\nmain-job-name = "global_agent"\nfail-fast = true\n'
        )
        project = tmp_path / "project"
        project.mkdir()
        (project / "safeflow.toml").write_text('[compiler]\nfail-fast = false\n')
        monkeypatch.setenv("HOME", str(home))

        config = SafeflowConfig.load(project)
        assert config.compiler.main_job_name == "global_agent"
        assert config.compiler.fail_fast is False


class TestErrors:
    def test_hierarchy(self) -> None:
        assert issubclass(SafeOutputsError, SafeflowError)
        assert issubclass(JobPreconditionError, SafeOutputsError)
        assert issubclass(DispatchValidationError, SafeOutputsError)

    def test_precondition_message(self) -> None:
        exc = JobPreconditionError("create-issue")
        assert str(exc) == "safe-outputs.create-issue configuration is required"
        assert exc.kind == "create-issue"

    def test_dispatch_errors_default_to_message(self) -> None:
        assert DispatchValidationError("bad").errors == ["bad"]
        assert DispatchValidationError("two", ["a", "b"]).errors == ["a", "b"]


class TestLogging:
    def test_get_logger_namespace(self) -> None:
        assert get_logger("outputs.jobs").name == "safeflow.outputs.jobs"

    def test_debug_patterns(self) -> None:
        assert debug_patterns(" outputs.*, ,jobs ") == ["outputs.*", "jobs"]
        assert debug_patterns("") == []

    def test_enable_debug_matches_children(self) -> None:
        target = get_logger("testing.alpha")
        other = get_logger("elsewhere.beta")
        try:
            switched = enable_debug("testing.*")
            assert "safeflow.testing.alpha" in switched
            assert "safeflow.elsewhere.beta" not in switched
            assert target.level == logging.DEBUG
        finally:
            target.setLevel(logging.NOTSET)
            other.setLevel(logging.NOTSET)
