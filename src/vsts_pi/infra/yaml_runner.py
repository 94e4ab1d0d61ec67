"""YAML pipeline runner: lint, validate and run pipeline files locally.

:class:`YamlRunner` satisfies :class:`~vsts_pi.core.protocols.PipelineRunner`.

Accepted layouts
----------------
* ``steps:`` at the root;
* ``jobs:`` — a list of jobs, each with its own ``steps:``;
* ``phases:`` — the legacy spelling of ``jobs:``.

Every step is a mapping with exactly one of the keys in
:data:`STEP_KINDS`.  ``script`` and ``bash`` steps run in a local shell;
``checkout`` is a no-op (the working directory is used as-is); the
remaining kinds need an agent worker and are skipped when running
locally.

Rules
-----
* PyYAML, ``OSError`` and JSON errors are re-raised as
  :class:`~vsts_pi.exceptions.PipelineError` subclasses.
* Every operation observes the cancellation token.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from vsts_pi.core.cancellation import CancellationToken
from vsts_pi.core.models import CommandSettings
from vsts_pi.core.protocols import Terminal
from vsts_pi.exceptions import (
    OperationCancelledError,
    PipelineError,
    PipelineNotFoundError,
    StepFailedError,
    TaskResolutionError,
    YamlLintError,
)

logger = logging.getLogger(__name__)

STEP_KINDS: tuple[str, ...] = ("task", "script", "bash", "powershell", "checkout", "template")
_CONTAINER_KEYS: tuple[str, ...] = ("steps", "jobs", "phases")
_READ_CHUNK = 64 * 1024
_TASK_REF = re.compile(r"^(?P<name>[A-Za-z0-9_.\-]+)@(?P<major>\d+)$")


# ---------------------------------------------------------------------------
# Parsed pipeline
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class PipelineStep:
    """One step of a pipeline, already shape-checked."""

    kind: str
    """One of :data:`STEP_KINDS`."""

    value: str
    """Script body, task reference, template path, or checkout target."""

    location: str
    """Human-readable position, e.g. ``"ci.yml: job build, step 2"``."""

    display_name: str
    inputs: dict[str, Any] = field(default_factory=dict)
    env: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Pipeline:
    path: Path
    steps: tuple[PipelineStep, ...]


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------

class YamlRunner:
    """Default :class:`PipelineRunner` backed by PyYAML and local shells.

    Parameters
    ----------
    terminal:
        Receives status lines and step output.
    tasks_dir:
        Local task cache laid out as ``<name>/<major>/task.json``.
    cwd:
        Directory searched for a default ``*.yml``; defaults to the
        process working directory at call time.
    """

    def __init__(
        self,
        terminal: Terminal,
        *,
        tasks_dir: Path,
        cwd: Path | None = None,
    ) -> None:
        self._terminal = terminal
        self._tasks_dir = tasks_dir
        self._cwd = cwd

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def lint(self, settings: CommandSettings, token: CancellationToken) -> None:
        pipeline = self.load(settings, token)
        self._terminal.write_line(
            f"{pipeline.path.name}: syntax OK ({len(pipeline.steps)} steps)",
        )

    async def validate_async(
        self, settings: CommandSettings, token: CancellationToken
    ) -> None:
        pipeline = self.load(settings, token)
        await asyncio.to_thread(self._validate_tasks, pipeline, settings.offline, token)
        self._terminal.write_line(f"{pipeline.path.name} is valid.")

    async def run_async(
        self, settings: CommandSettings, token: CancellationToken
    ) -> None:
        pipeline = self.load(settings, token)
        await asyncio.to_thread(self._validate_tasks, pipeline, settings.offline, token)

        workdir = pipeline.path.parent
        for step in pipeline.steps:
            token.raise_if_cancelled()
            self._terminal.write_line(f"##[section]Starting: {step.display_name}")
            await self._run_step(step, workdir, token)
            self._terminal.write_line(f"##[section]Finishing: {step.display_name}")

        self._terminal.write_line(f"Pipeline {pipeline.path.name} succeeded.")

    # ------------------------------------------------------------------
    # Loading and lint
    # ------------------------------------------------------------------

    def resolve_path(self, settings: CommandSettings) -> Path:
        """Return the pipeline file named by *settings* or the first ``*.yml``."""
        cwd = self._cwd or Path.cwd()
        if settings.yaml is not None:
            path = settings.yaml if settings.yaml.is_absolute() else cwd / settings.yaml
            if not path.is_file():
                raise PipelineNotFoundError(f"Pipeline file not found: {path}")
            return path

        candidates = sorted(p for p in cwd.glob("*.yml") if p.is_file())
        if not candidates:
            raise PipelineNotFoundError(
                f"No .yml file found in {cwd}",
                hint="Pass --yaml <path>.",
            )
        return candidates[0]

    def load(self, settings: CommandSettings, token: CancellationToken) -> Pipeline:
        """Resolve, parse and shape-check the pipeline file."""
        token.raise_if_cancelled()
        path = self.resolve_path(settings)
        logger.info("Loading pipeline %s", path)
        document = _read_yaml(path)
        return Pipeline(path=path, steps=tuple(_collect_steps(path.name, document)))

    # ------------------------------------------------------------------
    # Task validation
    # ------------------------------------------------------------------

    def _validate_tasks(
        self, pipeline: Pipeline, offline: bool, token: CancellationToken
    ) -> None:
        for step in pipeline.steps:
            token.raise_if_cancelled()
            if step.kind == "task":
                self._validate_task(step, offline)

    def _validate_task(self, step: PipelineStep, offline: bool) -> None:
        match = _TASK_REF.match(step.value)
        if match is None:
            raise TaskResolutionError(
                f"{step.location}: task reference '{step.value}' must look like Name@MajorVersion",
            )

        manifest_path = self._find_manifest(match["name"], match["major"])
        if manifest_path is None:
            if offline:
                raise TaskResolutionError(
                    f"{step.location}: task {step.value} is not in the local task cache",
                    hint=f"Populate {self._tasks_dir} or run without --offline.",
                )
            logger.info("Task %s not cached; it is resolved by the server", step.value)
            return

        required = _required_inputs(manifest_path)
        missing = [name for name in required if name not in step.inputs]
        if missing:
            raise TaskResolutionError(
                f"{step.location}: task {step.value} is missing required input(s): "
                + ", ".join(missing),
            )

    def _find_manifest(self, name: str, major: str) -> Path | None:
        for candidate_name in dict.fromkeys((name, name.lower())):
            manifest = self._tasks_dir / candidate_name / major / "task.json"
            if manifest.is_file():
                return manifest
        return None

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _run_step(
        self, step: PipelineStep, workdir: Path, token: CancellationToken
    ) -> None:
        if step.kind in ("script", "bash"):
            await self._run_shell(step, workdir, token)
        elif step.kind == "checkout":
            self._terminal.write_line(f"Using working directory {workdir}")
        else:
            self._terminal.write_line(
                f"Skipping {step.kind} step '{step.display_name}': requires an agent worker",
            )

    async def _run_shell(
        self, step: PipelineStep, workdir: Path, token: CancellationToken
    ) -> None:
        env = {**os.environ, **step.env}
        try:
            if step.kind == "bash":
                process = await asyncio.create_subprocess_exec(
                    "bash", "-c", step.value,
                    cwd=workdir, env=env,
                    stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.STDOUT,
                )
            else:
                process = await asyncio.create_subprocess_shell(
                    step.value,
                    cwd=workdir, env=env,
                    stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.STDOUT,
                )
        except OSError as exc:
            raise StepFailedError(
                f"Step '{step.display_name}' could not start: {exc}",
            ) from exc

        pump = asyncio.create_task(self._pump(process.stdout))
        finished = asyncio.create_task(process.wait())
        cancelled = asyncio.create_task(token.wait())
        try:
            await asyncio.wait({finished, cancelled}, return_when=asyncio.FIRST_COMPLETED)
            if not finished.done():
                logger.info("Cancelling step %s", step.display_name)
                try:
                    process.terminate()
                except ProcessLookupError:
                    pass
                await finished
                raise OperationCancelledError(f"Step '{step.display_name}' was cancelled.")
            await pump
        finally:
            if process.returncode is None:
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
            for task in (pump, finished, cancelled):
                if not task.done():
                    task.cancel()
            await asyncio.gather(pump, finished, cancelled, return_exceptions=True)

        if process.returncode != 0:
            raise StepFailedError(
                f"Step '{step.display_name}' failed with exit code {process.returncode}",
                exit_code=process.returncode,
            )

    async def _pump(self, stream: asyncio.StreamReader | None) -> None:
        """Forward child output line by line until EOF.

        Reads fixed-size chunks rather than ``readline`` so a line longer
        than the stream limit cannot stop the pipe from draining.
        """
        if stream is None:
            return
        pending = b""
        while True:
            chunk = await stream.read(_READ_CHUNK)
            if not chunk:
                break
            *lines, pending = (pending + chunk).split(b"\n")
            for line in lines:
                self._write_output(line)
        if pending:
            self._write_output(pending)

    def _write_output(self, raw: bytes) -> None:
        self._terminal.write_line(raw.decode(errors="replace").rstrip("\r"))


# ---------------------------------------------------------------------------
# Parsing helpers (pure)
# ---------------------------------------------------------------------------

def _read_yaml(path: Path) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise PipelineError(f"Could not read {path}: {exc}") from exc
    try:
        return yaml.safe_load(text)
    except yaml.MarkedYAMLError as exc:
        mark = exc.problem_mark
        where = f"line {mark.line + 1}, column {mark.column + 1}" if mark else "unknown position"
        raise YamlLintError(f"{path.name}: {where}: {exc.problem or 'invalid YAML'}") from exc
    except yaml.YAMLError as exc:
        raise YamlLintError(f"{path.name}: {exc}") from exc


def _collect_steps(file_name: str, document: Any) -> list[PipelineStep]:
    if not isinstance(document, dict):
        raise YamlLintError(f"{file_name}: the document root must be a mapping")

    present = [key for key in _CONTAINER_KEYS if key in document]
    if len(present) != 1:
        raise YamlLintError(
            f"{file_name}: the document must define exactly one of: "
            + ", ".join(_CONTAINER_KEYS),
        )

    key = present[0]
    if key == "steps":
        return _parse_steps(document["steps"], file_name)

    jobs = document[key]
    if not isinstance(jobs, list) or not jobs:
        raise YamlLintError(f"{file_name}: '{key}' must be a non-empty list")
    steps: list[PipelineStep] = []
    singular = key[:-1]
    for index, job in enumerate(jobs, start=1):
        if not isinstance(job, dict):
            raise YamlLintError(f"{file_name}: {singular} {index} must be a mapping")
        name = job.get(singular) or job.get("name") or str(index)
        steps.extend(_parse_steps(job.get("steps"), f"{file_name}: {singular} {name}"))
    return steps


def _parse_steps(raw: Any, where: str) -> list[PipelineStep]:
    if not isinstance(raw, list) or not raw:
        raise YamlLintError(f"{where}: 'steps' must be a non-empty list")
    return [_parse_step(entry, f"{where}, step {index}") for index, entry in enumerate(raw, start=1)]


def _parse_step(raw: Any, location: str) -> PipelineStep:
    if not isinstance(raw, dict):
        raise YamlLintError(f"{location}: a step must be a mapping")

    kinds = [kind for kind in STEP_KINDS if kind in raw]
    if len(kinds) != 1:
        raise YamlLintError(
            f"{location}: a step must define exactly one of: " + ", ".join(STEP_KINDS),
        )
    kind = kinds[0]
    value = raw[kind]
    if not isinstance(value, str) or not value.strip():
        raise YamlLintError(f"{location}: '{kind}' must be a non-empty string")

    inputs = raw.get("inputs") or {}
    if not isinstance(inputs, dict):
        raise YamlLintError(f"{location}: 'inputs' must be a mapping")
    env = raw.get("env") or {}
    if not isinstance(env, dict):
        raise YamlLintError(f"{location}: 'env' must be a mapping")

    display_name = raw.get("displayName") or _default_display_name(kind, value)
    return PipelineStep(
        kind=kind,
        value=value.strip() if kind == "task" else value,
        location=location,
        display_name=str(display_name),
        inputs=dict(inputs),
        env={str(k): "" if v is None else str(v) for k, v in env.items()},
    )


def _default_display_name(kind: str, value: str) -> str:
    first_line = value.strip().splitlines()[0]
    if len(first_line) > 50:
        first_line = first_line[:47] + "..."
    return f"{kind.capitalize()} {first_line}"


def _required_inputs(manifest_path: Path) -> list[str]:
    """Return names of required inputs without a default value."""
    try:
        manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise TaskResolutionError(f"Could not read task manifest {manifest_path}: {exc}") from exc
    raw_inputs = manifest.get("inputs") if isinstance(manifest, dict) else None
    if not isinstance(raw_inputs, list):
        return []
    return [
        str(entry["name"])
        for entry in raw_inputs
        if isinstance(entry, dict)
        and entry.get("name")
        and entry.get("required")
        and not entry.get("defaultValue")
    ]
