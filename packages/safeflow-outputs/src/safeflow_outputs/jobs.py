"""Job graph builder for safe-output kinds.

Every enabled kind becomes one job assembled from a :class:`JobSpec`:

1. GitHub App token mint step (when ``safe-outputs.app`` is set), scoped
   to the job's own permissions
2. the JobSpec pre-steps
3. the agent output download and the execution step, either an inline
   ``github-script`` invocation or a packaged action in action mode
4. the JobSpec post-steps
5. the token revoke step

Per-kind specs live in :mod:`safeflow_outputs.job_specs`.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from safeflow_core.config import CompilerSettings
from safeflow_core.errors import JobPreconditionError
from safeflow_core.logging import get_logger

from safeflow_outputs.app_token import APP_TOKEN_EXPR, app_token_scoped, wrap_with_app_token
from safeflow_outputs.permissions import Permissions
from safeflow_outputs.registry import get_kind
from safeflow_outputs.types import Job

if TYPE_CHECKING:
    from safeflow_outputs.types import SafeJobConfig, SafeOutputsConfig, WorkflowData

logger = get_logger("outputs.jobs")

GITHUB_SCRIPT_ACTION = "actions/github-script@v8"
DOWNLOAD_ARTIFACT_ACTION = "actions/download-artifact@v6"
CHECKOUT_ACTION = "actions/checkout@v5"

SCRIPTS_DIR = "/opt/safeflow/actions"
AGENT_OUTPUT_DIR = "/tmp/gh-aw/safeoutputs/"
AGENT_OUTPUT_FILE = "agent_output.json"

DEFAULT_TOKEN = "${{ secrets.GH_AW_GITHUB_TOKEN || secrets.GITHUB_TOKEN }}"
AGENT_TOKEN = "${{ secrets.GH_AW_AGENT_TOKEN || secrets.GH_AW_GITHUB_TOKEN || secrets.GITHUB_TOKEN }}"
COPILOT_TOKEN = "${{ secrets.COPILOT_GITHUB_TOKEN }}"

JOB_TIMEOUT_MINUTES = 10
CONSOLIDATED_JOB_NAME = "safe_outputs"
CONSOLIDATED_TIMEOUT_MINUTES = 15
DETECTION_JOB_NAME = "detection"


class TokenMode(enum.Enum):
    """Which secret chain backs the execution step's token."""

    DEFAULT = "default"
    AGENT = "agent"
    COPILOT = "copilot"


_TOKEN_CHAINS = {
    TokenMode.DEFAULT: DEFAULT_TOKEN,
    TokenMode.AGENT: AGENT_TOKEN,
    TokenMode.COPILOT: COPILOT_TOKEN,
}


class ActionResolver(Protocol):
    """Maps a capability name to a packaged action reference."""

    def resolve(self, name: str) -> str | None: ...


class ConfiguredActions:
    """ActionResolver backed by the ``[actions]`` table of safeflow.toml."""

    def __init__(self, actions: dict[str, str] | None = None) -> None:
        self._actions = dict(actions or {})

    def resolve(self, name: str) -> str | None:
        return self._actions.get(name) or self._actions.get(name.replace("_", "-"))


@dataclass(frozen=True, slots=True)
class JobSpec:
    """Everything that varies between capability jobs."""

    name: str
    step_name: str
    step_id: str = ""
    script_name: str = ""
    custom_env: dict[str, str] = field(default_factory=dict)
    permissions: Permissions | None = None
    outputs: dict[str, str] = field(default_factory=dict)
    condition: str = ""
    needs: list[str] = field(default_factory=list)
    pre_steps: list[dict[str, Any]] = field(default_factory=list)
    post_steps: list[dict[str, Any]] = field(default_factory=list)
    token: str = ""
    token_mode: TokenMode = TokenMode.DEFAULT
    target_repo_slug: str = ""
    staged: bool = False

    @property
    def effective_step_id(self) -> str:
        return self.step_id or self.name

    @property
    def effective_script(self) -> str:
        return self.script_name or self.name


def resolve_token(
    config: SafeOutputsConfig | None,
    kind_token: str = "",
    mode: TokenMode = TokenMode.DEFAULT,
    *,
    minted: bool = True,
) -> str:
    """Token for an execution step.

    Precedence: minted app token, then the kind's ``github-token``, then
    ``safe-outputs.github-token``, then the mode's secret chain. Pass
    ``minted=False`` for jobs that skip the app token mint.
    """
    if minted and config is not None and config.app is not None:
        return APP_TOKEN_EXPR
    custom = kind_token or (config.github_token if config is not None else "")
    return custom or _TOKEN_CHAINS[mode]


def step_output(step_id: str, output: str) -> str:
    return f"${{{{ steps.{step_id}.outputs.{output} }}}}"


def agent_output_download_steps() -> list[dict[str, Any]]:
    """Download the agent output artifact and export ``GH_AW_AGENT_OUTPUT``."""
    path = AGENT_OUTPUT_DIR + AGENT_OUTPUT_FILE
    return [
        {
            "name": "Download agent output artifact",
            "continue-on-error": True,
            "uses": DOWNLOAD_ARTIFACT_ACTION,
            "with": {"name": "agent-output", "path": AGENT_OUTPUT_DIR},
        },
        {
            "name": "Setup agent output environment variable",
            "run": (
                f"mkdir -p {AGENT_OUTPUT_DIR}\n"
                f'find "{AGENT_OUTPUT_DIR}" -type f -print\n'
                f'echo "GH_AW_AGENT_OUTPUT={path}" >> "$GITHUB_ENV"\n'
            ),
        },
    ]


def inline_script(script_name: str) -> str:
    return (
        f"const {{ setupGlobals }} = require('{SCRIPTS_DIR}/setup_globals.cjs');\n"
        "setupGlobals(core, github, context, exec, io);\n"
        f"const {{ main }} = require('{SCRIPTS_DIR}/{script_name}.cjs');\n"
        "await main();\n"
    )


class SafeOutputJobBuilder:
    """Builds the jobs that carry out the agent's requested safe outputs."""

    def __init__(
        self,
        data: WorkflowData,
        config: SafeOutputsConfig | None,
        settings: CompilerSettings | None = None,
        actions: ActionResolver | None = None,
        dispatch_files: dict[str, str] | None = None,
    ) -> None:
        self.data = data
        self.config = config
        self.settings = settings or CompilerSettings()
        self.actions = actions or ConfiguredActions()
        self.dispatch_files = dict(dispatch_files or {})

    @property
    def main_job_name(self) -> str:
        return self.settings.main_job_name

    # ── Public API ────────────────────────────────────────────────────

    def build_all(self) -> list[Job]:
        """One job per enabled kind (or the consolidated job), then custom jobs."""
        if self.config is None:
            return []
        if self.settings.consolidated:
            jobs = [self.build_consolidated_job()] if self.config.capabilities else []
        else:
            jobs = [self.build_kind_job(key) for key in self.config.capabilities]
        jobs.extend(self.build_custom_jobs())
        return jobs

    def build_kind_job(self, key: str) -> Job:
        """Build the job for one kind.

        Raises:
            JobPreconditionError: If the kind is unknown, or safe-outputs or the
                kind's config is missing.
        """
        from safeflow_outputs.job_specs import build_spec

        try:
            kind = get_kind(key)
        except KeyError:
            raise JobPreconditionError(key) from None
        if self.config is None or self.config.get(kind.key) is None:
            raise JobPreconditionError(kind.key)
        return self.build_job(build_spec(self, kind, self.config.get(kind.key)))

    def build_job(self, spec: JobSpec) -> Job:
        """Assemble a job from *spec*."""
        if self.config is None:
            raise JobPreconditionError(spec.name.replace("_", "-"))
        logger.debug("Building safe-output job %s", spec.name)

        steps = [*spec.pre_steps, *self.execution_steps(spec), *spec.post_steps]
        return Job(
            name=spec.name,
            condition=spec.condition or self._default_condition(spec.name),
            runs_on=self.config.effective_runs_on,
            permissions=spec.permissions,
            timeout_minutes=JOB_TIMEOUT_MINUTES,
            steps=wrap_with_app_token(self.config.app, spec.permissions, steps),
            outputs=dict(spec.outputs),
            needs=list(spec.needs) or [self.main_job_name],
        )

    def build_consolidated_job(self) -> Job:
        """Fold every enabled kind into a single ``safe_outputs`` job."""
        from safeflow_outputs.job_specs import build_spec

        if self.config is None:
            raise JobPreconditionError("safe-outputs")

        main = self.main_job_name
        specs = []
        for key, kind_config in self.config.capabilities.items():
            kind = get_kind(key)
            specs.append((kind, build_spec(self, kind, kind_config, consolidated=True)))
        permissions = Permissions.empty()
        for _, spec in specs:
            permissions.merge(spec.permissions)
        minted = app_token_scoped(self.config.app, permissions)

        steps: list[dict[str, Any]] = agent_output_download_steps()
        outputs: dict[str, str] = {}
        for kind, spec in specs:
            step_if = f"contains(needs.{main}.outputs.output_types, '{kind.name}')"
            steps.extend({**step, "if": step_if} for step in spec.pre_steps)
            step = self.script_step(spec, minted)
            step["if"] = step_if
            steps.append(step)
            steps.extend({**step, "if": step_if} for step in spec.post_steps)
            for output_name, expr in spec.outputs.items():
                outputs[f"{kind.name}_{output_name}"] = expr

        needs = [main]
        condition = f"!cancelled() && needs.{main}.result != 'skipped'"
        if self.config.threat_detection is not None:
            needs.append(DETECTION_JOB_NAME)
            condition += f" && needs.{DETECTION_JOB_NAME}.outputs.success == 'true'"

        return Job(
            name=CONSOLIDATED_JOB_NAME,
            condition=condition,
            runs_on=self.config.effective_runs_on,
            permissions=permissions,
            timeout_minutes=CONSOLIDATED_TIMEOUT_MINUTES,
            steps=wrap_with_app_token(self.config.app, permissions, steps),
            outputs=outputs,
            needs=needs,
            env=self.metadata_env(),
        )

    def build_custom_jobs(self) -> list[Job]:
        if self.config is None:
            return []
        return [self.build_custom_job(job) for job in self.config.jobs.values()]

    def build_custom_job(self, job: SafeJobConfig) -> Job:
        """Job for a user-defined ``safe-outputs.jobs`` entry."""
        if self.config is None:
            raise JobPreconditionError(f"jobs.{job.name}")

        name = normalize_job_name(job.name)
        permissions = job.permissions if job.permissions is not None else Permissions.empty()
        minted = app_token_scoped(self.config.app, permissions)
        env = {
            "GH_AW_AGENT_OUTPUT": "${{ env.GH_AW_AGENT_OUTPUT }}",
            "GITHUB_TOKEN": resolve_token(self.config, job.github_token, minted=minted),
        }
        if self.config.staged or self.settings.trial_mode:
            env["GH_AW_SAFE_OUTPUTS_STAGED"] = "true"
        env.update(self.config.env)
        env.update(job.env)

        needs = [self.main_job_name]
        needs.extend(n for n in job.needs if n not in needs)
        steps = [*agent_output_download_steps(), *job.steps]
        outputs = {}
        if job.output:
            outputs["output"] = job.output
        return Job(
            name=name,
            condition=job.if_condition or self._default_condition(name),
            runs_on=job.runs_on or self.config.effective_runs_on,
            permissions=permissions,
            timeout_minutes=JOB_TIMEOUT_MINUTES,
            steps=wrap_with_app_token(self.config.app, permissions, steps),
            outputs=outputs,
            needs=needs,
            env=env,
        )

    # ── Steps ─────────────────────────────────────────────────────────

    def execution_steps(self, spec: JobSpec) -> list[dict[str, Any]]:
        """Agent output download followed by the capability's step."""
        return [*agent_output_download_steps(), self.script_step(spec)]

    def script_step(self, spec: JobSpec, minted: bool | None = None) -> dict[str, Any]:
        """The execution step: packaged action in action mode, inline script otherwise.

        *minted* says whether the job mints an app token; by default that is
        decided from the spec's own permissions.
        """
        app = self.config.app if self.config is not None else None
        if minted is None:
            minted = app_token_scoped(app, spec.permissions)
        env = {"GH_AW_AGENT_OUTPUT": "${{ env.GH_AW_AGENT_OUTPUT }}"}
        env.update(spec.custom_env)
        if self.config is not None:
            env.update(self.config.env)
        token = resolve_token(self.config, spec.token, spec.token_mode, minted=minted)

        if self.settings.action_mode == "action":
            action_ref = self.actions.resolve(spec.effective_script)
            if action_ref:
                return {
                    "name": spec.step_name,
                    "id": spec.effective_step_id,
                    "uses": action_ref,
                    "env": env,
                    "with": {"token": token},
                }
            logger.warning(
                "No action registered for %s, falling back to inline script",
                spec.effective_script,
            )

        return {
            "name": spec.step_name,
            "id": spec.effective_step_id,
            "uses": GITHUB_SCRIPT_ACTION,
            "env": env,
            "with": {
                "github-token": token,
                "script": inline_script(spec.effective_script),
            },
        }

    # ── Environment ───────────────────────────────────────────────────

    def metadata_env(self) -> dict[str, str]:
        """Workflow and engine metadata, trial flags and message templates."""
        data = self.data
        env = {"GH_AW_WORKFLOW_NAME": data.name}
        if data.source:
            env["GH_AW_WORKFLOW_SOURCE"] = data.source
            if source_url := build_source_url(data.source):
                env["GH_AW_WORKFLOW_SOURCE_URL"] = source_url
        if data.tracker_id:
            env["GH_AW_TRACKER_ID"] = data.tracker_id
        if data.engine_id:
            env["GH_AW_ENGINE_ID"] = data.engine_id
        if data.engine_version:
            env["GH_AW_ENGINE_VERSION"] = data.engine_version
        if data.engine_model:
            env["GH_AW_ENGINE_MODEL"] = data.engine_model
        if self.settings.trial_mode:
            env["GH_AW_SAFE_OUTPUTS_STAGED"] = "true"
            if self.settings.trial_repo:
                env["GH_AW_TARGET_REPO_SLUG"] = self.settings.trial_repo
        if self.config is not None and self.config.messages is not None:
            messages = self.config.messages.to_json()
            if messages:
                env["GH_AW_SAFE_OUTPUT_MESSAGES"] = messages
        return env

    def standard_env(self, target_repo_slug: str = "", staged: bool = False) -> dict[str, str]:
        """Env every standalone capability step carries."""
        env = self.metadata_env()
        if staged or (self.config is not None and self.config.staged):
            env["GH_AW_SAFE_OUTPUTS_STAGED"] = "true"
        if target_repo_slug:
            env["GH_AW_TARGET_REPO_SLUG"] = target_repo_slug
        return env

    def step_env(self, target_repo_slug: str = "", staged: bool = False) -> dict[str, str]:
        """Env for a step inside the consolidated job (metadata is job-level)."""
        env: dict[str, str] = {}
        if target_repo_slug:
            env["GH_AW_TARGET_REPO_SLUG"] = target_repo_slug
        elif not self.settings.trial_mode and (
            staged or (self.config is not None and self.config.staged)
        ):
            env["GH_AW_SAFE_OUTPUTS_STAGED"] = "true"
        return env

    def _default_condition(self, name: str) -> str:
        main = self.main_job_name
        return (
            f"!cancelled() && needs.{main}.result != 'skipped' && "
            f"contains(needs.{main}.outputs.output_types, '{name}')"
        )


def normalize_job_name(name: str) -> str:
    return name.replace("-", "_")


def build_source_url(source: str) -> str:
    """``owner/repo/path@ref`` -> a github.com blob URL, or ``""``."""
    path, _, ref = source.partition("@")
    parts = path.split("/", 2)
    if len(parts) < 3 or not ref:
        return ""
    owner, repo, file_path = parts
    return f"${{{{ github.server_url }}}}/{owner}/{repo}/tree/{ref}/{file_path}"
