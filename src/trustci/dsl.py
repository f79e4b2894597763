# src/trustci/dsl.py
from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Optional

from .errors import MatrixError
from .model import (
    DEFAULT_BRANCHES,
    DEFAULT_CRATE_NAME,
    Channel,
    DeploySettings,
    HostOS,
    NotifyPolicy,
    Phases,
    Pipeline,
    Target,
)


# ---------------------------------------------------------------------
# Target helper
# ---------------------------------------------------------------------

def target(
    triple: str,
    *,
    os: str | HostOS | None = None,
    rust: str | Channel | None = None,
    disable_tests: bool = False,
) -> Target:
    """
    Declare one matrix entry.

    Example:
        target("x86_64-apple-darwin", os="osx")
        target("x86_64-unknown-linux-gnu", rust="nightly")
    """
    try:
        host = os if isinstance(os, HostOS) else HostOS.parse(os)
        channel = rust if isinstance(rust, Channel) or rust is None else Channel.parse(rust)
    except ValueError as e:
        raise MatrixError(f"invalid target {triple!r}: {e}", triple=triple) from e
    return Target(triple=triple, host_os=host, channel=channel, tests_disabled=disable_tests)


# ---------------------------------------------------------------------
# Phase helper
# ---------------------------------------------------------------------

def _cmds(value: str | Iterable[str] | None, default: tuple[str, ...]) -> tuple[str, ...]:
    if value is None:
        return default
    if isinstance(value, str):
        return (value,)
    return tuple(value)


def phases(
    *,
    before_install: str | Iterable[str] | None = None,
    install: str | Iterable[str] | None = None,
    script: str | Iterable[str] | None = None,
    after_script: str | Iterable[str] | None = None,
    before_deploy: str | Iterable[str] | None = None,
    before_cache: str | Iterable[str] | None = None,
) -> Phases:
    d = Phases()
    return Phases(
        before_install=_cmds(before_install, d.before_install),
        install=_cmds(install, d.install),
        script=_cmds(script, d.script),
        after_script=_cmds(after_script, d.after_script),
        before_deploy=_cmds(before_deploy, d.before_deploy),
        before_cache=_cmds(before_cache, d.before_cache),
    )


# ---------------------------------------------------------------------
# Matrix
# ---------------------------------------------------------------------

class Matrix:
    """
    Explicit list expander: one target per listed value, nothing implicit.

    Example:
        matrix("rust", ["stable", "nightly"]).targets(
            lambda ch: target("x86_64-unknown-linux-gnu", rust=ch)
        )
    """
    def __init__(self, key: str, values: Iterable[Any]):
        self.key = key
        self.values = list(values)

    def targets(self, builder: Callable[[Any], Target]) -> List[Target]:
        return [builder(v) for v in self.values]


def matrix(key: str, values: Iterable[Any]) -> Matrix:
    return Matrix(key, values)


# ---------------------------------------------------------------------
# Pipeline helper (single-file story)
# ---------------------------------------------------------------------

def pipeline(
    *targets: Target | List[Target],
    crate_name: str = DEFAULT_CRATE_NAME,
    rust: str | Channel | None = None,
    branches: Optional[Iterable[str]] = None,
    steps: Optional[Phases] = None,
    deploy: Optional[DeploySettings] = None,
    cache_dirs: Optional[Iterable[str]] = None,
    notify: Optional[NotifyPolicy] = None,
    env: Optional[Dict[str, str]] = None,
) -> Pipeline:
    """
    Pipeline definition helper.

    Users can write:
        from trustci import pipeline, target

        def pipeline_definition():
            return pipeline(
                target("x86_64-unknown-linux-gnu"),
                # target("x86_64-unknown-netbsd", disable_tests=True),
                crate_name="exclave",
            )

    Lists (e.g. from matrix(...).targets(...)) are flattened in place.
    """
    flat: List[Target] = []
    for t in targets:
        if isinstance(t, list):
            flat.extend(t)
        else:
            flat.append(t)

    try:
        default_channel = rust if isinstance(rust, Channel) else Channel.parse(rust)
    except ValueError as e:
        raise MatrixError(f"invalid default channel: {e}") from e
    return Pipeline(
        targets=tuple(flat),
        crate_name=crate_name,
        default_channel=default_channel,
        branches=tuple(branches) if branches is not None else DEFAULT_BRANCHES,
        phases=steps or Phases(),
        deploy=deploy or DeploySettings(),
        cache_dirs=tuple(cache_dirs) if cache_dirs is not None else ("~/.cargo",),
        notify=notify or NotifyPolicy(),
        extra_env={k: str(v) for k, v in (env or {}).items()},
    )
