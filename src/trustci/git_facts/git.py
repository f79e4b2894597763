# git.py
# Small, focused wrapper around the Git CLI.
# This module centralizes all Git interactions so the rest of the codebase
# never needs to call subprocess("git ...") directly.

from __future__ import annotations

import subprocess
from typing import Optional


def _git(args: list[str], cwd: Optional[str] = None) -> str:
    """
    Execute a git command and return its stdout as a clean string.

    Args:
        args: List of git arguments (e.g. ["describe", "--tags"])
        cwd: Optional working directory in which to run the git command.

    Returns:
        Stdout from the git command with surrounding whitespace removed.
    """
    # Non-zero exit raises CalledProcessError; callers decide what that means.
    out = subprocess.check_output(
        ["git", *args],
        cwd=cwd,
        text=True,
        stderr=subprocess.DEVNULL,
    )
    return out.strip()


def current_branch(cwd: Optional[str] = None) -> Optional[str]:
    """
    Name of the checked out branch, or None on a detached HEAD.

    `git rev-parse --abbrev-ref HEAD` prints the literal "HEAD" when detached,
    which is what CI checkouts of a tag look like.
    """
    name = _git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=cwd)
    return None if name == "HEAD" else name


def exact_tag(cwd: Optional[str] = None) -> Optional[str]:
    """Tag pointing exactly at HEAD, if any."""
    try:
        tag = _git(["describe", "--tags", "--exact-match", "HEAD"], cwd=cwd)
    except subprocess.CalledProcessError:
        return None
    return tag or None


def get_remote_url(remote: str = "origin", cwd: Optional[str] = None) -> str:
    """URL of a git remote, e.g. git@github.com:owner/repo.git."""
    return _git(["remote", "get-url", remote], cwd=cwd)
