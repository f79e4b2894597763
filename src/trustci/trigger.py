# trigger.py
from __future__ import annotations

import os
import subprocess
from typing import Mapping, Optional

from .git_facts.git import current_branch, exact_tag
from .model import TriggerContext


def from_env(environ: Optional[Mapping[str, str]] = None) -> Optional[TriggerContext]:
    """
    Build the trigger from CI environment variables.

    Travis: TRAVIS_TAG (empty on branch builds) + TRAVIS_BRANCH, which holds
    the tag name on tag builds.
    GitHub Actions: GITHUB_REF_TYPE (branch|tag) + GITHUB_REF_NAME.
    Returns None when neither is present.
    """
    env = os.environ if environ is None else environ

    tag = env.get("TRAVIS_TAG") or None
    branch = env.get("TRAVIS_BRANCH") or None
    if tag or branch:
        return TriggerContext(ref=tag or branch or "", tag=tag)

    ref_name = env.get("GITHUB_REF_NAME") or None
    if ref_name:
        is_tag = env.get("GITHUB_REF_TYPE") == "tag"
        return TriggerContext(ref=ref_name, tag=ref_name if is_tag else None)

    return None


def from_git(cwd: Optional[str] = None) -> TriggerContext:
    """Fallback for local runs: a tag at HEAD wins over the branch name."""
    try:
        tag = exact_tag(cwd=cwd)
        if tag:
            return TriggerContext(ref=tag, tag=tag)
        return TriggerContext(ref=current_branch(cwd=cwd) or "")
    except (subprocess.CalledProcessError, FileNotFoundError):
        # not a repo / no git binary
        return TriggerContext(ref="")


def detect(
    *,
    ref: Optional[str] = None,
    tag: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    cwd: Optional[str] = None,
) -> TriggerContext:
    """Explicit ref/tag first, then CI env, then local git."""
    if tag:
        return TriggerContext(ref=ref or tag, tag=tag)
    if ref:
        return TriggerContext(ref=ref)
    return from_env(environ) or from_git(cwd=cwd)
