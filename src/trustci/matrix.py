# matrix.py
from __future__ import annotations

import re
from typing import Dict, List, Sequence

from .errors import MatrixError
from .model import Channel, HostOS, JobSpec, Pipeline, Target, TriggerContext


def _validate(index: int, entry: object, default_channel: Channel) -> Target:
    """Check one declared entry and resolve its defaults."""
    if not isinstance(entry, Target):
        raise MatrixError(
            f"matrix entry #{index} is not a Target: {type(entry).__name__}",
            index=index,
        )
    triple = (entry.triple or "").strip()
    if not triple:
        raise MatrixError(f"matrix entry #{index} has no target triple", index=index)
    if any(c.isspace() for c in triple):
        raise MatrixError(f"matrix entry #{index} triple contains whitespace: {triple!r}", index=index)
    if not isinstance(entry.host_os, HostOS):
        raise MatrixError(f"matrix entry #{index} has unknown host os {entry.host_os!r}", index=index)
    if entry.channel is not None and not isinstance(entry.channel, Channel):
        raise MatrixError(f"matrix entry #{index} has unknown channel {entry.channel!r}", index=index)

    return Target(
        triple=triple,
        host_os=entry.host_os,
        channel=entry.channel or default_channel,
        tests_disabled=bool(entry.tests_disabled),
    )


def job_env(pipeline: Pipeline, target: Target) -> Dict[str, str]:
    env = dict(pipeline.extra_env)
    env["CRATE_NAME"] = pipeline.crate_name
    env["TARGET"] = target.triple
    env["TRAVIS_RUST_VERSION"] = (target.channel or pipeline.default_channel).value
    env["TRAVIS_OS_NAME"] = "osx" if target.host_os is HostOS.MACOS else "linux"
    if target.tests_disabled:
        env["DISABLE_TESTS"] = "1"
    else:
        env.pop("DISABLE_TESTS", None)
    return env


def expand(pipeline: Pipeline) -> List[JobSpec]:
    """
    Turn the declared target list into one JobSpec per entry.

    Every entry is validated before any job is returned, so one bad entry
    fails the whole expansion. Order follows the declaration.
    """
    if not (pipeline.crate_name or "").strip():
        raise MatrixError("pipeline has no crate name")

    resolved = [
        _validate(i, entry, pipeline.default_channel)
        for i, entry in enumerate(pipeline.targets)
    ]

    seen: Dict[tuple, int] = {}
    for i, t in enumerate(resolved):
        key = (t.triple, t.host_os, t.channel)
        if key in seen:
            raise MatrixError(
                f"matrix entry #{i} duplicates entry #{seen[key]}: "
                f"{t.triple} on {t.host_os.value} ({t.channel.value})",
                index=i,
            )
        seen[key] = i

    return [JobSpec(target=t, env=job_env(pipeline, t)) for t in resolved]


# ----------------------------------------------------------------------
# Branch admission
# ----------------------------------------------------------------------

def _is_regex(entry: str) -> bool:
    return len(entry) >= 2 and entry.startswith("/") and entry.endswith("/")


def admits(branches: Sequence[str], ref: str) -> bool:
    """
    True if `ref` may trigger the pipeline.

    `/.../` entries are regular expressions (searched, as Travis does),
    anything else must equal the ref exactly.
    """
    if not ref:
        return False
    for entry in branches:
        if _is_regex(entry):
            if re.search(entry[1:-1], ref):
                return True
        elif entry == ref:
            return True
    return False


def plan_jobs(pipeline: Pipeline, trigger: TriggerContext) -> List[JobSpec]:
    """Jobs a push of `trigger` starts: none at all unless the ref is admitted."""
    jobs = expand(pipeline)
    if not admits(pipeline.branches, trigger.ref):
        return []
    return jobs


def select(jobs: List[JobSpec], only: Sequence[str]) -> List[JobSpec]:
    """Keep jobs whose triple or name is listed in `only` (empty keeps all)."""
    if not only:
        return list(jobs)
    wanted = set(only)
    return [j for j in jobs if j.target.triple in wanted or j.name in wanted]


def with_trigger(job: JobSpec, trigger: TriggerContext) -> JobSpec:
    """Export the trigger to the phase scripts; before_deploy names artifacts after the tag."""
    env = dict(job.env)
    env["TRAVIS_TAG"] = trigger.tag or ""
    env["TRAVIS_BRANCH"] = trigger.ref
    return JobSpec(target=job.target, env=env)
