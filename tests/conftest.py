"""Shared fixtures: throwaway repos with phase commands that leave traces."""
from __future__ import annotations

from pathlib import Path

import pytest

from trustci.dsl import phases, pipeline, target
from trustci.errors import PublishError
from trustci.release import UploadReport
from trustci.ui.console import Console, set_console

FIXTURES = Path(__file__).parent / "fixtures"

# Each phase appends "<phase> <TARGET>" to calls.log; script records a
# test run in tests.log unless DISABLE_TESTS is set, like ci/script.sh.
INSTALL = 'echo "install $TARGET" >> calls.log'
SCRIPT = (
    'echo "script $TARGET" >> calls.log && '
    'if [ -z "$DISABLE_TESTS" ]; then echo "test $TARGET" >> tests.log; fi'
)
BEFORE_DEPLOY = (
    'echo "before_deploy $TARGET" >> calls.log && '
    'touch "$CRATE_NAME-$TRAVIS_TAG-$TARGET.tar.gz"'
)


def make_pipeline(*targets, install=INSTALL, script=SCRIPT, before_deploy=BEFORE_DEPLOY, **kw):
    kw.setdefault("cache_dirs", [])
    steps = phases(install=install, script=script, before_deploy=before_deploy, **kw.pop("extra_phases", {}))
    return pipeline(*(targets or (target("x86_64-unknown-linux-gnu"),)), steps=steps, **kw)


def read_lines(path: Path) -> list[str]:
    if not path.exists():
        return []
    return path.read_text(encoding="utf-8").splitlines()


class FakeProvider:
    """Records upload calls instead of talking to a release API."""

    def __init__(self, fail: bool = False, raises: dict | None = None):
        self.fail = fail
        # pattern -> exception to raise for that pattern
        self.raises = raises or {}
        self.calls: list[tuple[str, str, str, list[str]]] = []

    def upload(self, credential, pattern, tag, files):
        self.calls.append((credential, pattern, tag, [f.name for f in files]))
        if pattern in self.raises:
            raise self.raises[pattern]
        if self.fail:
            raise PublishError("", "release API unavailable")
        return UploadReport(uploaded=[f.name for f in files])


@pytest.fixture(autouse=True)
def _console():
    set_console(Console(debug=False))


@pytest.fixture
def repo(tmp_path, monkeypatch) -> Path:
    """An empty working tree; phase commands run here."""
    root = tmp_path / "repo"
    root.mkdir()
    for name in ("TRAVIS_TAG", "TRAVIS_BRANCH", "DISABLE_TESTS", "GITHUB_REF_NAME", "GITHUB_REF_TYPE"):
        monkeypatch.delenv(name, raising=False)
    return root


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def travis_yml() -> Path:
    return FIXTURES / "travis.yml"
