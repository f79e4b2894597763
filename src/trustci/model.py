# model.py
from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple


class HostOS(str, Enum):
    """Execution host a target is built on."""
    LINUX = "linux"
    MACOS = "macos"

    @classmethod
    def parse(cls, value: str | None) -> "HostOS":
        if value is None or value == "":
            return cls.LINUX
        v = str(value).strip().lower()
        # travis spells macOS as "osx"
        if v == "osx":
            return cls.MACOS
        return cls(v)


class Channel(str, Enum):
    """Toolchain stability track."""
    STABLE = "stable"
    NIGHTLY = "nightly"

    @classmethod
    def parse(cls, value: str | None, default: "Channel | None" = None) -> "Channel":
        if value is None or value == "":
            return default or cls.STABLE
        return cls(str(value).strip().lower())


RELEASE_CHANNEL = Channel.STABLE
DEFAULT_CRATE_NAME = "exclave"
RELEASE_TAG_PATTERN = r"^v\d+\.\d+\.\d+.*$"
TRUNK_BRANCH = "master"

DEFAULT_BRANCHES: Tuple[str, ...] = (f"/{RELEASE_TAG_PATTERN}/", TRUNK_BRANCH)


@dataclass(frozen=True)
class Target:
    """One build environment: a target triple plus how to build it."""
    triple: str
    host_os: HostOS = HostOS.LINUX
    # None means "the pipeline default channel"
    channel: Optional[Channel] = None
    tests_disabled: bool = False


@dataclass(frozen=True)
class JobSpec:
    """
    A matrix job: exactly one Target plus the environment handed to the
    phase scripts.
    """
    target: Target
    env: Dict[str, str] = field(default_factory=dict)

    @property
    def channel(self) -> Channel:
        return self.target.channel or Channel.STABLE

    @property
    def name(self) -> str:
        if self.channel is RELEASE_CHANNEL:
            return self.target.triple
        return f"{self.target.triple} ({self.channel.value})"

    @property
    def runs_tests(self) -> bool:
        return "DISABLE_TESTS" not in self.env

    @property
    def crate_name(self) -> str:
        return self.env["CRATE_NAME"]


@dataclass(frozen=True)
class Phases:
    """Shell commands for each lifecycle phase, in the order they run."""
    before_install: Tuple[str, ...] = ()
    install: Tuple[str, ...] = ("sh ci/install.sh",)
    script: Tuple[str, ...] = ("bash ci/script.sh",)
    after_script: Tuple[str, ...] = ()
    before_deploy: Tuple[str, ...] = ("sh ci/before_deploy.sh",)
    # runs inside the cache scope before the archive is written; failures only warn
    before_cache: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DeploySettings:
    provider: str = "releases"
    credential_env: str = "GITHUB_TOKEN"
    channel: Channel = RELEASE_CHANNEL


@dataclass(frozen=True)
class NotifyPolicy:
    """When to notify; each field is one of always|never|change."""
    on_success: str = "never"
    on_failure: str = "always"


@dataclass(frozen=True)
class Pipeline:
    """
    The whole pipeline definition, parsed once and treated as data.

    `branches` entries wrapped in slashes are regular expressions,
    anything else is a literal ref name.
    """
    targets: Tuple[Target, ...]
    crate_name: str = DEFAULT_CRATE_NAME
    default_channel: Channel = Channel.STABLE
    branches: Tuple[str, ...] = DEFAULT_BRANCHES
    phases: Phases = field(default_factory=Phases)
    deploy: DeploySettings = field(default_factory=DeploySettings)
    cache_dirs: Tuple[str, ...] = ("~/.cargo",)
    notify: NotifyPolicy = field(default_factory=NotifyPolicy)
    extra_env: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class TriggerContext:
    """What pushed the pipeline: a ref name and, for tag pushes, the tag."""
    ref: str
    tag: Optional[str] = None

    @property
    def is_tagged_release(self) -> bool:
        return bool(self.tag) and re.match(RELEASE_TAG_PATTERN, self.tag or "") is not None


@dataclass(frozen=True)
class ArtifactRef:
    """Glob identifying the packaged output of one job for one tag."""
    crate_name: str
    tag: str
    triple: str

    @property
    def pattern(self) -> str:
        return f"{self.crate_name}-{self.tag}-{self.triple}.*"

    def __str__(self) -> str:
        return self.pattern


@dataclass
class PhaseResult:
    phase: str
    exit_code: int
    duration: float = 0.0


@dataclass
class JobResult:
    """Outcome of one job. `exit_code` is that of the first failing phase."""
    job: JobSpec
    phases: List[PhaseResult] = field(default_factory=list)
    failed_phase: Optional[str] = None
    exit_code: int = 0
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.failed_phase is None and self.exit_code == 0 and self.error is None

    @property
    def status(self) -> str:
        return "ok" if self.succeeded else "failed"
