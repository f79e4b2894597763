# cache.py
from __future__ import annotations

import copy
import hashlib
import json
import os
import stat
import tarfile
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence

from .model import HostOS, JobSpec

# ---------------------------------------------------------------------
# Core idea
# ---------------------------------------------------------------------
# Toolchain-level caching (what `cache: cargo` does on Travis):
#   cache_key = "<channel>-<host os>"
#
# Jobs sharing a toolchain share an archive. Two such jobs may race on
# save; the later rename wins. The cache is only ever an optimization.
#
# Cache artifact:
#   root/<key>/cache.tar.gz      one top-level dir per cache dir (by path hash)
#   root/<key>/manifest.json     prefix -> original path, for explainability
#
# Before saving, every cached file is made readable by "others"
# (chmod -R a+r); the archive could not be read back otherwise.
# ---------------------------------------------------------------------

ARCHIVE_NAME = "cache.tar.gz"
MANIFEST_NAME = "manifest.json"


@dataclass(frozen=True)
class CacheHit:
    hit: bool
    key: str
    reason: str  # human readable


@dataclass
class CacheScope:
    """What happened to the cache around one job."""
    key: str
    restored: CacheHit
    saved: bool = False
    save_error: Optional[str] = None


def cache_key(job: JobSpec) -> str:
    os_name = "osx" if job.target.host_os is HostOS.MACOS else "linux"
    return f"{job.channel.value}-{os_name}"


def _prefix_for(path: Path) -> str:
    return hashlib.sha256(str(path).encode("utf-8")).hexdigest()[:16]


def resolve_dirs(dirs: Sequence[str], repo_root: str | Path = ".") -> List[Path]:
    root = Path(repo_root).resolve()
    out: List[Path] = []
    for d in dirs:
        p = Path(d).expanduser()
        if not p.is_absolute():
            p = root / p
        out.append(p.resolve())
    return out


def normalize_permissions(paths: Sequence[Path]) -> int:
    """
    Make everything under `paths` readable by user, group and others.
    Directories also get the search bit so their contents stay reachable.
    Symlinks are left alone. Returns the number of entries changed.
    """
    changed = 0

    def _fix(p: Path, is_dir: bool) -> None:
        nonlocal changed
        st = p.lstat()
        if stat.S_ISLNK(st.st_mode):
            return
        want = st.st_mode | stat.S_IRUSR | stat.S_IRGRP | stat.S_IROTH
        if is_dir:
            want |= stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH
        if stat.S_IMODE(want) != stat.S_IMODE(st.st_mode):
            os.chmod(p, stat.S_IMODE(want))
            changed += 1

    for base in paths:
        if not base.exists() or base.is_symlink():
            continue
        if base.is_file():
            _fix(base, is_dir=False)
            continue
        _fix(base, is_dir=True)
        # top-down so directories are opened up before we descend into them
        for dirpath, dirnames, filenames in os.walk(base):
            for name in dirnames:
                _fix(Path(dirpath) / name, is_dir=True)
            for name in filenames:
                _fix(Path(dirpath) / name, is_dir=False)
    return changed


class CacheStore:
    """
    File-based cache store keyed by toolchain:
      root/
        <key>/
          cache.tar.gz
          manifest.json
    """

    def __init__(self, root: str | Path):
        self.root = Path(root).expanduser().resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _key_dir(self, key: str) -> Path:
        d = self.root / key
        d.mkdir(parents=True, exist_ok=True)
        return d

    def archive_path(self, key: str) -> Path:
        return self._key_dir(key) / ARCHIVE_NAME

    def manifest_path(self, key: str) -> Path:
        return self._key_dir(key) / MANIFEST_NAME

    def restore(self, key: str, dirs: Sequence[Path]) -> CacheHit:
        """
        Extract the archive for `key` back into `dirs`.

        Restore is "overwrite by extraction"; paths not in the archive are
        left untouched.
        """
        if not dirs:
            return CacheHit(hit=False, key=key, reason="no cache dirs")

        art = self.archive_path(key)
        if not art.exists():
            return CacheHit(hit=False, key=key, reason="cache miss")

        by_prefix: Dict[str, Path] = {_prefix_for(d): d for d in dirs}
        restored = 0
        try:
            with tarfile.open(str(art), mode="r:gz") as tar:
                for member in tar.getmembers():
                    head, _, rest = member.name.partition("/")
                    dest = by_prefix.get(head)
                    if dest is None or not rest:
                        continue
                    m = copy.copy(member)
                    m.name = rest
                    dest.mkdir(parents=True, exist_ok=True)
                    tar.extract(m, path=str(dest), filter="data")
                    restored += 1
        except (OSError, tarfile.TarError) as e:
            return CacheHit(hit=False, key=key, reason=f"cache exists but restore failed: {e}")

        return CacheHit(hit=True, key=key, reason=f"restored {restored} entries")

    def save(self, key: str, dirs: Sequence[Path], *, job_name: str = "") -> Path:
        """
        Normalize permissions under `dirs`, then archive them for `key`.

        Build the tar.gz in a tmp file and rename it into place, so a
        concurrent reader sees either the old or the new archive.
        """
        normalize_permissions(dirs)

        art = self.archive_path(key)
        tmp = art.with_name(f"{ARCHIVE_NAME}.{os.getpid()}.{threading.get_ident()}.tmp")
        manifest = {
            "key": key,
            "job": job_name,
            "dirs": {_prefix_for(d): str(d) for d in dirs},
            "saved_at_unix": int(time.time()),
        }
        try:
            with tarfile.open(str(tmp), mode="w:gz") as tar:
                for d in dirs:
                    if not d.exists():
                        continue
                    tar.add(str(d), arcname=_prefix_for(d), recursive=True)
            tmp.replace(art)
            self.manifest_path(key).write_text(
                json.dumps(manifest, sort_keys=True, indent=2), encoding="utf-8"
            )
        finally:
            if tmp.exists():
                tmp.unlink(missing_ok=True)
        return art

    @contextmanager
    def scope(
        self,
        job: JobSpec,
        dirs: Sequence[str],
        *,
        repo_root: str | Path = ".",
    ) -> Iterator[CacheScope]:
        """
        Restore before the job, normalize + persist after it, on every exit
        path. Save errors are recorded on the scope, never raised: a broken
        cache must not fail a build.
        """
        key = cache_key(job)
        paths = resolve_dirs(dirs, repo_root)
        sc = CacheScope(key=key, restored=self.restore(key, paths))
        try:
            yield sc
        finally:
            if paths:
                try:
                    self.save(key, paths, job_name=job.name)
                    sc.saved = True
                except (OSError, tarfile.TarError) as e:
                    sc.save_error = str(e)
