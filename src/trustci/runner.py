# runner.py
from __future__ import annotations

import os
import subprocess
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from .cache import CacheStore
from .errors import PhaseFailure
from .matrix import admits, expand, select, with_trigger
from .model import JobResult, JobSpec, PhaseResult, Pipeline, TriggerContext
from .release import GateOutcome, ReleaseGate
from .ui.console import get_console

# Fatal phases, in order. after_script is a hook between script and
# before_deploy whose failures never fail the job.
FATAL_PHASES = ("before_install", "install", "script", "before_deploy")

TOOL_HINTS = {
    "sh": "A POSIX shell is required to run phase commands.",
    "bash": "Install bash or change the script phase to use sh.",
    "rustup": "Install rustup (https://rustup.rs) or fix PATH.",
    "cross": "Install cross (cargo install cross).",
}

# exit code `sh -c` reports when the command itself is missing
COMMAND_NOT_FOUND = 127


# ----------------------------------------------------------------------
# Execution primitives
# ----------------------------------------------------------------------

def _phase_env(job: JobSpec) -> Dict[str, str]:
    env = os.environ.copy()
    # the job env is authoritative, including the absence of DISABLE_TESTS
    env.pop("DISABLE_TESTS", None)
    env.update(job.env)
    return env


def _run_command(job: JobSpec, phase: str, cmd: str, repo_root: Path) -> None:
    get_console().print_debug(f"[{job.name}] $ {cmd}")
    proc = subprocess.run(
        cmd,
        shell=True,
        cwd=str(repo_root),
        env=_phase_env(job),
        text=True,
        capture_output=True,   # so we can show output on failure
    )
    if proc.returncode != 0:
        raise PhaseFailure(
            job=job.name,
            phase=phase,
            cmd=cmd,
            exit_code=proc.returncode,
            stdout=proc.stdout[-4000:],
            stderr=proc.stderr[-4000:],
        )


def run_phase(job: JobSpec, phase: str, commands: Sequence[str], repo_root: Path) -> PhaseResult:
    """
    Run every command of one phase in order, stopping at the first
    non-zero exit (`set -e` semantics). Raises PhaseFailure.
    """
    started = time.monotonic()
    for cmd in commands:
        _run_command(job, phase, cmd, repo_root)
    return PhaseResult(phase=phase, exit_code=0, duration=time.monotonic() - started)


def _hint_for(failure: PhaseFailure) -> Optional[str]:
    if failure.exit_code != COMMAND_NOT_FOUND:
        return None
    tool = failure.cmd.split()[0] if failure.cmd.split() else ""
    return TOOL_HINTS.get(tool, f"`{tool}` was not found; install it or fix PATH.")


def run_job(
    job: JobSpec,
    pipeline: Pipeline,
    *,
    repo_root: str | Path = ".",
    cache: Optional[CacheStore] = None,
) -> JobResult:
    """
    Run one matrix job. Never raises for phase failures: the first failing
    phase and its exit code end up on the returned JobResult.
    """
    console = get_console()
    root = Path(repo_root).resolve()
    result = JobResult(job=job)
    by_phase = {
        "before_install": pipeline.phases.before_install,
        "install": pipeline.phases.install,
        "script": pipeline.phases.script,
        "before_deploy": pipeline.phases.before_deploy,
    }

    def _run(phase: str) -> bool:
        commands = by_phase[phase]
        if not commands:
            return True
        console.print_phase(job.name, phase)
        try:
            result.phases.append(run_phase(job, phase, commands, root))
            return True
        except PhaseFailure as e:
            result.phases.append(PhaseResult(phase=phase, exit_code=e.exit_code))
            result.failed_phase = phase
            result.exit_code = e.exit_code
            result.error = str(e)
            console.print_phase_failure(job.name, e, hint=_hint_for(e))
            return False

    def _hook(phase: str, commands: Sequence[str]) -> None:
        for cmd in commands:
            try:
                _run_command(job, phase, cmd, root)
            except PhaseFailure as e:
                console.print_warning(f"[{job.name}] {phase} ignored failure: {e}")

    def _phases() -> None:
        for phase in FATAL_PHASES:
            ok = _run(phase)
            if phase == "script":
                _hook("after_script", pipeline.phases.after_script)
            if not ok:
                return

    if cache is None:
        _phases()
        return result

    with cache.scope(job, pipeline.cache_dirs, repo_root=root) as sc:
        console.print_cache(job.name, sc.restored.reason)
        try:
            _phases()
        finally:
            _hook("before_cache", pipeline.phases.before_cache)
    if sc.save_error:
        console.print_warning(f"[{job.name}] cache: save failed ({sc.save_error})")
    elif sc.saved:
        console.print_cache(job.name, f"saved ({sc.key})")

    return result


# ----------------------------------------------------------------------
# Matrix execution
# ----------------------------------------------------------------------

def run_matrix(
    jobs: Sequence[JobSpec],
    pipeline: Pipeline,
    *,
    repo_root: str | Path = ".",
    cache: Optional[CacheStore] = None,
    max_workers: int | None = None,
    on_result: Optional[Callable[[JobResult], None]] = None,
) -> List[JobResult]:
    """
    Run all jobs independently on a thread pool.

    A failed job never cancels its siblings. `on_result` is called from the
    calling thread as each job finishes. Results come back in job order.
    """
    jobs = list(jobs)
    if not jobs:
        return []

    if max_workers is None:
        c = os.cpu_count() or 2
        max_workers = max(1, c - 1)

    results: Dict[int, JobResult] = {}
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = {
            pool.submit(run_job, job, pipeline, repo_root=repo_root, cache=cache): i
            for i, job in enumerate(jobs)
        }
        for fut in as_completed(futures):
            i = futures[fut]
            try:
                res = fut.result()
            except Exception as e:
                # anything run_job did not turn into a phase failure
                res = JobResult(job=jobs[i], failed_phase="runner", exit_code=1, error=str(e))
                get_console().print_exception(e)
            results[i] = res
            get_console().print_job_done(res)
            if on_result is not None:
                on_result(res)

    return [results[i] for i in range(len(jobs))]


@dataclass
class RunReport:
    results: List[JobResult] = field(default_factory=list)
    deploys: List[GateOutcome] = field(default_factory=list)

    @property
    def build_failed(self) -> bool:
        return any(not r.succeeded for r in self.results)

    @property
    def deploy_failed(self) -> bool:
        return any(d.error for d in self.deploys)


def run_pipeline(
    pipeline: Pipeline,
    trigger: TriggerContext,
    *,
    gate: Optional[ReleaseGate] = None,
    only: Sequence[str] = (),
    repo_root: str | Path = ".",
    cache: Optional[CacheStore] = None,
    max_workers: int | None = None,
) -> RunReport:
    """
    Admission filter -> matrix expansion -> independent jobs -> release gate.

    The gate runs once per finished job, from the calling thread, so
    uploads never overlap. A ref the pipeline does not admit runs nothing.
    """
    console = get_console()
    jobs = expand(pipeline)
    if not admits(pipeline.branches, trigger.ref):
        console.print_info(f"ref {trigger.ref!r} is not in the branch allow-list; nothing to run")
        return RunReport()

    jobs = [with_trigger(j, trigger) for j in select(jobs, only)]
    report = RunReport()

    def _gate(res: JobResult) -> None:
        if gate is None or not res.succeeded:
            return
        outcome = gate.publish(res)
        report.deploys.append(outcome)
        console.print_gate(outcome)

    report.results = run_matrix(
        jobs,
        pipeline,
        repo_root=repo_root,
        cache=cache,
        max_workers=max_workers,
        on_result=_gate,
    )
    return report
