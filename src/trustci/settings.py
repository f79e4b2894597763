from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_CACHE_DIR = ".trustci/cache"
DEFAULT_ARTIFACT_DIR = "."
DEFAULT_API_URL = "https://api.github.com"
DEFAULT_UPLOADS_URL = "https://uploads.github.com"


@dataclass(frozen=True)
class Settings:
    """Runtime knobs that come from the environment, not the pipeline file."""
    cache_dir: str = DEFAULT_CACHE_DIR
    artifact_dir: str = DEFAULT_ARTIFACT_DIR
    release_repo: Optional[str] = None
    api_url: str = DEFAULT_API_URL
    uploads_url: str = DEFAULT_UPLOADS_URL
    workers: Optional[int] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        workers = env.get("TRUSTCI_WORKERS")
        return cls(
            cache_dir=env.get("TRUSTCI_CACHE_DIR", DEFAULT_CACHE_DIR),
            artifact_dir=env.get("TRUSTCI_ARTIFACT_DIR", DEFAULT_ARTIFACT_DIR),
            # TRAVIS_REPO_SLUG / GITHUB_REPOSITORY are both "owner/name"
            release_repo=(
                env.get("TRUSTCI_RELEASE_REPO")
                or env.get("TRAVIS_REPO_SLUG")
                or env.get("GITHUB_REPOSITORY")
            ),
            api_url=env.get("TRUSTCI_API_URL", DEFAULT_API_URL),
            uploads_url=env.get("TRUSTCI_UPLOADS_URL", DEFAULT_UPLOADS_URL),
            workers=int(workers) if workers else None,
        )
