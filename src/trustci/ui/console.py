"""Console output formatting utilities for trustci."""

from __future__ import annotations

import sys
import threading
from typing import TYPE_CHECKING, Iterable, Optional

if TYPE_CHECKING:
    from ..errors import PhaseFailure
    from ..model import JobResult, JobSpec
    from ..release import GateOutcome


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
                and the captured output of failed phases
        """
        self.debug = debug
        # jobs print from worker threads
        self._lock = threading.Lock()

    def _out(self, *lines: str, err: bool = False) -> None:
        stream = sys.stderr if err else sys.stdout
        with self._lock:
            for line in lines:
                print(line, file=stream)

    def print_header(self, title: str) -> None:
        """Print a section header."""
        self._out(f"\n{title}", "-" * len(title))

    def print_run_started(
        self,
        repository: str,
        pipeline: str,
        ref: str,
        job_count: int,
    ) -> None:
        """Print run start information."""
        self._out(
            "\nRUN STARTED",
            f"Repository: {repository}",
            f"Pipeline: {pipeline}",
            f"Ref: {ref or '<unknown>'}",
            f"Jobs: {job_count}",
            "",
        )

    def print_plan(self, jobs: Iterable["JobSpec"]) -> None:
        """Print the expanded matrix, one line per job."""
        for job in jobs:
            tests = "tests" if job.runs_tests else "no tests"
            self._out(f"  {job.name:<45} {job.target.host_os.value:<6} {job.channel.value:<8} {tests}")

    def print_phase(self, job: str, phase: str) -> None:
        self._out(f"[{job}] ▶ {phase}")

    def print_phase_failure(self, job: str, failure: "PhaseFailure", hint: Optional[str] = None) -> None:
        """
        Print a failed phase. Captured output is shown in full only in
        debug mode; otherwise the last line of stderr.
        """
        lines = [f"[{job}] PHASE FAILED: {failure.phase}", f"[{job}] Exit code: {failure.exit_code}"]
        if hint:
            lines.append(f"[{job}] Hint: {hint}")
        if self.debug:
            if failure.stdout:
                lines.append(failure.stdout.rstrip())
            if failure.stderr:
                lines.append(failure.stderr.rstrip())
        else:
            tail = failure.stderr.strip().splitlines()
            if tail:
                lines.append(f"[{job}] Error: {tail[-1]}")
        self._out(*lines)

    def print_cache(self, job: str, message: str) -> None:
        self._out(f"[{job}] cache: {message}")

    def print_job_done(self, result: "JobResult") -> None:
        if result.succeeded:
            self._out(f"✓ {result.job.name}")
        else:
            self._out(f"✗ {result.job.name} ({result.failed_phase}, exit={result.exit_code})")

    def print_gate(self, outcome: "GateOutcome") -> None:
        """Print a release gate decision and, if it fired, the upload outcome."""
        if not outcome.publish:
            self._out(f"[{outcome.job}] deploy: skipped ({outcome.reason})")
            return
        self._out(f"[{outcome.job}] deploy: {outcome.artifact}")
        if outcome.error:
            self._out(f"[{outcome.job}] DEPLOY FAILED: {outcome.error}", err=True)
            return
        for name in outcome.uploaded:
            self._out(f"[{outcome.job}]   uploaded {name}")
        for name in outcome.skipped:
            self._out(f"[{outcome.job}]   already on release, kept {name}")

    def print_results(self, results: Iterable["JobResult"], deploys: Iterable["GateOutcome"] = ()) -> None:
        """Print final results summary."""
        lines = ["", "=" * 40, "RESULTS", "=" * 40]
        for r in results:
            status = "SUCCESS" if r.succeeded else f"FAILED ({r.failed_phase}, exit={r.exit_code})"
            lines.append(f"  {r.job.name}: {status}")
        deploys = list(deploys)
        published = [d for d in deploys if d.publish]
        if published:
            lines.append("DEPLOY")
            for d in published:
                status = f"ERROR ({d.error})" if d.error else f"{len(d.uploaded)} uploaded"
                lines.append(f"  {d.job}: {status}")
        self._out(*lines)

    def print_notify(self, notify: bool, succeeded: bool, previous: Optional[bool] = None) -> None:
        outcome = "success" if succeeded else "failure"
        if previous is None:
            before = "no previous outcome"
        else:
            before = "previously " + ("success" if previous else "failure")
        self._out(f"notify: {'send' if notify else 'suppressed'} ({outcome}, {before})")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        lines = [f"\nERROR: {title}", message]
        for detail in details or []:
            lines.append(f"  {detail}")
        if suggestion:
            lines.append(f"\n{suggestion}")
        self._out(*lines, err=True)

    def print_warning(self, message: str) -> None:
        self._out(f"WARNING: {message}", err=True)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            with self._lock:
                traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            self._out(f"Error: {exc}", err=True)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._out(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            self._out(f"[DEBUG] {message}", err=True)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
