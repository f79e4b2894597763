# errors.py
from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(eq=False)
class CIError(Exception):
    """
    Structured CI error with enough context for:
      - clean CLI output
      - telling "code is broken" apart from "upload plumbing is broken"
      - debugging without full tracebacks
    """
    kind: str
    job: str
    message: str
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}"]
        if self.job:
            lines.append(f"job={self.job}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


class MatrixError(CIError):
    """A target entry is malformed; raised before any job starts."""

    def __init__(self, message: str, **details):
        super().__init__(kind="matrix_invalid", job="", message=message, details=details)


class PipelineLoadError(CIError):
    def __init__(self, message: str, **details):
        super().__init__(kind="pipeline_load", job="", message=message, details=details)


class PublishError(CIError):
    """Deploy-stage failure. Never changes the build result of a job."""

    def __init__(self, job: str, message: str, **details):
        super().__init__(kind="deploy_failed", job=job, message=message, details=details)


@dataclass(eq=False)
class PhaseFailure(Exception):
    job: str
    phase: str
    cmd: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    def __str__(self) -> str:
        return f"[{self.job}] phase '{self.phase}' failed (exit={self.exit_code}): {self.cmd}"
