"""
Pipeline loading.

Two sources produce the same frozen Pipeline:
  - a Python file defining `define_pipeline()` or `PIPELINE` (built with the
    trustci DSL), executed with runpy;
  - a Travis-style YAML file (`.travis.yml` dialect: env.global,
    matrix.include, os, rust, install/script/before_deploy, deploy,
    cache, branches.only, notifications), validated with pydantic.

Anything malformed stops here with PipelineLoadError or MatrixError, before
any job exists.
"""

from __future__ import annotations

import re
import runpy
import shlex
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .dsl import target as make_target
from .errors import MatrixError, PipelineLoadError
from .model import (
    DEFAULT_BRANCHES,
    DEFAULT_CRATE_NAME,
    Channel,
    DeploySettings,
    NotifyPolicy,
    Phases,
    Pipeline,
    Target,
)

DEFAULT_PIPELINE_FILES = ("trustci_pipeline.py", ".travis.yml")

# the only artifact name the publish automation understands
ARTIFACT_FILE_TEMPLATE = "$CRATE_NAME-$TRAVIS_TAG-$TARGET.*"

_CONDITION_RE = re.compile(r"^\s*\$\{?TRAVIS_RUST_VERSION\}?\s*==?\s*\"?(\w+)\"?\s*$")

Commands = Union[str, List[str], None]


# ----------------------------------------------------------------------
# Schema
# ----------------------------------------------------------------------

class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class MatrixEntry(_Section):
    env: Union[str, List[str], Dict[str, Any]]
    os: Optional[str] = None
    rust: Optional[str] = None
    # entries are opt-in; this lets one be kept in the file without a job
    enabled: bool = True


class MatrixSection(_Section):
    include: List[MatrixEntry] = Field(default_factory=list)


class EnvSection(_Section):
    global_: Union[List[str], Dict[str, Any]] = Field(default_factory=list, alias="global")


class DeployOn(_Section):
    tags: bool = True
    condition: Optional[str] = None


class DeploySection(_Section):
    provider: str = "releases"
    api_key: Any = None
    file_glob: bool = True
    file: str = ARTIFACT_FILE_TEMPLATE
    on: DeployOn = Field(default_factory=DeployOn)
    skip_cleanup: bool = True


class BranchesSection(_Section):
    only: List[str] = Field(default_factory=list)


class EmailSection(_Section):
    on_success: str = "change"
    on_failure: str = "always"
    recipients: Any = None

    @field_validator("on_success", "on_failure")
    @classmethod
    def _when(cls, v: str) -> str:
        if v not in ("always", "never", "change"):
            raise ValueError(f"must be always|never|change, got {v!r}")
        return v


class NotificationsSection(_Section):
    email: Union[bool, EmailSection] = True


class CacheSection(_Section):
    directories: List[str] = Field(default_factory=list)
    cargo: bool = False


class TravisDocument(BaseModel):
    """Top level; keys trustci does not model (dist, sudo, services...) are ignored."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    env: Union[EnvSection, List[str], None] = None
    matrix: Optional[MatrixSection] = None
    jobs: Optional[MatrixSection] = None
    os: Optional[str] = None
    rust: Union[str, List[str], None] = None
    before_install: Commands = None
    install: Commands = None
    script: Commands = None
    after_script: Commands = None
    before_deploy: Commands = None
    deploy: Optional[DeploySection] = None
    cache: Union[str, CacheSection, None] = None
    before_cache: Commands = None
    branches: Optional[BranchesSection] = None
    notifications: Optional[NotificationsSection] = None


# ----------------------------------------------------------------------
# YAML -> Pipeline
# ----------------------------------------------------------------------

def _commands(value: Commands, default: Tuple[str, ...]) -> Tuple[str, ...]:
    if value is None:
        return default
    if isinstance(value, str):
        return (value,)
    return tuple(str(v) for v in value)


def _parse_env(value: Union[str, List[str], Dict[str, Any]]) -> Dict[str, str]:
    """`"A=1 B=2"`, `["A=1", "B=2"]` and `{A: 1}` all mean {"A": "1", "B": "2"}."""
    if isinstance(value, dict):
        return {str(k): "" if v is None else str(v) for k, v in value.items()}
    items = [value] if isinstance(value, str) else list(value)
    env: Dict[str, str] = {}
    for item in items:
        for word in shlex.split(str(item)):
            name, sep, val = word.partition("=")
            if not sep or not name:
                raise PipelineLoadError(f"env entry {word!r} is not NAME=value")
            env[name] = val
    return env


def _global_env(doc: TravisDocument) -> Dict[str, str]:
    if doc.env is None:
        return {}
    if isinstance(doc.env, EnvSection):
        return _parse_env(doc.env.global_)
    return _parse_env(doc.env)


def _targets(entries: List[MatrixEntry], default_os: Optional[str]) -> Tuple[Target, ...]:
    out: List[Target] = []
    for i, entry in enumerate(entries):
        if not entry.enabled:
            continue
        env = _parse_env(entry.env)
        triple = env.pop("TARGET", "").strip()
        if not triple:
            raise MatrixError(f"matrix entry #{i} has no TARGET", index=i)
        disable = env.pop("DISABLE_TESTS", None)
        if env:
            raise MatrixError(
                f"matrix entry #{i} ({triple}) sets unsupported variables: {sorted(env)}",
                index=i,
            )
        out.append(
            make_target(
                triple,
                os=entry.os or default_os,
                rust=entry.rust,
                disable_tests=bool(disable),
            )
        )
    return tuple(out)


def _deploy(section: Optional[DeploySection]) -> DeploySettings:
    if section is None:
        return DeploySettings()
    if section.provider != "releases":
        raise PipelineLoadError(f"deploy provider {section.provider!r} is not supported (only 'releases')")
    if not section.file_glob or section.file != ARTIFACT_FILE_TEMPLATE:
        raise PipelineLoadError(
            f"deploy.file must be the glob {ARTIFACT_FILE_TEMPLATE!r}",
            file=section.file,
        )
    if not section.on.tags:
        raise PipelineLoadError("deploy.on.tags must be true; releases are only cut from tags")

    channel = Channel.STABLE
    if section.on.condition:
        m = _CONDITION_RE.match(section.on.condition)
        if not m:
            raise PipelineLoadError(
                f"unsupported deploy condition {section.on.condition!r}",
                supported="$TRAVIS_RUST_VERSION = <channel>",
            )
        try:
            channel = Channel.parse(m.group(1))
        except ValueError as e:
            raise PipelineLoadError(f"deploy condition names unknown channel: {e}") from e

    # `api_key: $SOME_VAR` names the env var holding the credential; an
    # encrypted `secure:` blob is decrypted by the host and exported as GITHUB_TOKEN
    credential_env = "GITHUB_TOKEN"
    if isinstance(section.api_key, str) and section.api_key.startswith("$"):
        credential_env = section.api_key.lstrip("$").strip("{}")

    return DeploySettings(provider=section.provider, credential_env=credential_env, channel=channel)


def _cache_dirs(cache: Union[str, CacheSection, None]) -> Tuple[str, ...]:
    if cache is None:
        return ()
    if isinstance(cache, str):
        if cache == "cargo":
            return ("~/.cargo",)
        raise PipelineLoadError(f"unsupported cache {cache!r}")
    dirs = list(cache.directories)
    if cache.cargo:
        dirs.insert(0, "~/.cargo")
    return tuple(dirs)


def _notify(section: Optional[NotificationsSection]) -> NotifyPolicy:
    if section is None:
        return NotifyPolicy(on_success="change", on_failure="always")
    if section.email is False:
        return NotifyPolicy(on_success="never", on_failure="never")
    if section.email is True:
        return NotifyPolicy(on_success="change", on_failure="always")
    return NotifyPolicy(on_success=section.email.on_success, on_failure=section.email.on_failure)


def _fix_yaml11_keys(raw: Dict[str, Any]) -> Dict[str, Any]:
    """YAML 1.1 reads a bare `on:` key as the boolean True."""
    deploy = raw.get("deploy")
    if isinstance(deploy, dict) and True in deploy:
        deploy = dict(deploy)
        deploy["on"] = deploy.pop(True)
        raw = {**raw, "deploy": deploy}
    return raw


def pipeline_from_dict(raw: Dict[str, Any]) -> Pipeline:
    raw = _fix_yaml11_keys(raw)
    try:
        doc = TravisDocument.model_validate(raw)
    except ValidationError as err:
        raise PipelineLoadError(f"pipeline validation failed:\n{err}") from err

    env = _global_env(doc)
    crate_name = env.pop("CRATE_NAME", DEFAULT_CRATE_NAME)

    if isinstance(doc.rust, list):
        raise PipelineLoadError("top-level rust must name one channel; list other channels as matrix entries")
    try:
        default_channel = Channel.parse(doc.rust)
    except ValueError as e:
        raise PipelineLoadError(f"unknown rust channel: {e}") from e

    section = doc.matrix or doc.jobs or MatrixSection()
    d = Phases()
    return Pipeline(
        targets=_targets(section.include, doc.os),
        crate_name=crate_name,
        default_channel=default_channel,
        branches=tuple(doc.branches.only) if doc.branches and doc.branches.only else DEFAULT_BRANCHES,
        phases=Phases(
            before_install=_commands(doc.before_install, d.before_install),
            install=_commands(doc.install, d.install),
            script=_commands(doc.script, d.script),
            after_script=_commands(doc.after_script, d.after_script),
            before_deploy=_commands(doc.before_deploy, d.before_deploy),
            before_cache=_commands(doc.before_cache, d.before_cache),
        ),
        deploy=_deploy(doc.deploy),
        cache_dirs=_cache_dirs(doc.cache),
        notify=_notify(doc.notifications),
        extra_env=env,
    )


def _read_yaml_file(path: Path) -> Dict[str, Any]:
    try:
        raw_text = path.read_text(encoding="utf-8")
    except OSError as err:
        raise PipelineLoadError(f"Cannot read pipeline file {path}: {err}") from err

    try:
        parsed = yaml.safe_load(raw_text)
    except yaml.YAMLError as err:
        raise PipelineLoadError(f"Invalid YAML in {path}: {err}") from err

    if not isinstance(parsed, dict):
        raise PipelineLoadError(
            f"Pipeline file must contain a YAML mapping, got {type(parsed).__name__}"
        )
    return parsed


# ----------------------------------------------------------------------
# Python file -> Pipeline
# ----------------------------------------------------------------------

def _load_python(path: Path) -> Pipeline:
    module_name = f"trustci_pipeline_{path.stem}"
    globals_dict = runpy.run_path(str(path), run_name=module_name)

    result = None
    if callable(globals_dict.get("define_pipeline")):
        result = globals_dict["define_pipeline"]()
    elif "PIPELINE" in globals_dict:
        result = globals_dict["PIPELINE"]

    if not isinstance(result, Pipeline):
        raise PipelineLoadError(
            "Pipeline file must define define_pipeline() -> Pipeline or PIPELINE = pipeline(...)",
            file=str(path),
        )
    return result


def load_pipeline(path: str | Path) -> Pipeline:
    """
    Load a pipeline from a .py or .yml/.yaml file.

    Raises:
        PipelineLoadError: missing file, unreadable YAML, schema violations
        MatrixError: a matrix entry without a usable target
    """
    p = Path(path).expanduser().resolve()
    if not p.exists():
        raise PipelineLoadError(f"Pipeline file not found: {p}")
    if not p.is_file():
        raise PipelineLoadError(f"Pipeline path is not a file: {p}")

    if p.suffix == ".py":
        return _load_python(p)
    if p.suffix in (".yml", ".yaml"):
        return pipeline_from_dict(_read_yaml_file(p))
    raise PipelineLoadError(f"Pipeline must be a .py or .yml file, got: {p.name}")


def find_pipeline_file(directory: str | Path = ".") -> Optional[Path]:
    root = Path(directory)
    for name in DEFAULT_PIPELINE_FILES:
        candidate = root / name
        if candidate.exists():
            return candidate
    return None
