import http.client

from conftest import FakeProvider

from trustci.dsl import pipeline, target
from trustci.matrix import expand
from trustci.model import Channel, JobResult, TriggerContext
from trustci.release import ReleaseGate, artifact_ref, matching_files, should_publish

GNU = "x86_64-unknown-linux-gnu"
RELEASE = TriggerContext(ref="v1.2.3", tag="v1.2.3")


def _result(rust=None, failed_phase=None, triple=GNU):
    (job,) = expand(pipeline(target(triple, rust=rust)))
    return JobResult(job=job, failed_phase=failed_phase, exit_code=1 if failed_phase else 0)


def _artifacts(tmp_path, *names):
    for name in names:
        (tmp_path / name).write_text("archive")
    return tmp_path


class TestShouldPublish:

    def test_stable_success_on_release_tag(self):
        assert should_publish(_result(), RELEASE)

    def test_nightly_never_publishes(self):
        assert not should_publish(_result(rust="nightly"), RELEASE)

    def test_failed_job_never_publishes(self):
        assert not should_publish(_result(failed_phase="script"), RELEASE)

    def test_branch_build_never_publishes(self):
        assert not should_publish(_result(), TriggerContext(ref="master"))

    def test_non_version_tag_never_publishes(self):
        assert not should_publish(_result(), TriggerContext(ref="nightly-build", tag="nightly-build"))

    def test_other_release_channel(self):
        assert should_publish(_result(rust="nightly"), RELEASE, release_channel=Channel.NIGHTLY)


class TestReleaseGate:

    def test_uploads_exact_pattern(self, tmp_path):
        provider = FakeProvider()
        _artifacts(tmp_path, f"exclave-v1.2.3-{GNU}.tar.gz", "exclave-v1.2.3-i686-unknown-linux-gnu.tar.gz")
        gate = ReleaseGate(RELEASE, provider, credential="t0ken", artifact_dir=tmp_path)

        outcome = gate.publish(_result())

        assert outcome.publish and outcome.error is None
        assert provider.calls == [("t0ken", f"exclave-v1.2.3-{GNU}.*", "v1.2.3", [f"exclave-v1.2.3-{GNU}.tar.gz"])]
        assert outcome.uploaded == [f"exclave-v1.2.3-{GNU}.tar.gz"]

    def test_nightly_job_makes_no_call(self, tmp_path):
        provider = FakeProvider()
        gate = ReleaseGate(RELEASE, provider, credential="t0ken", artifact_dir=tmp_path)
        outcome = gate.publish(_result(rust="nightly"))
        assert not outcome.publish
        assert "nightly" in outcome.reason
        assert provider.calls == []

    def test_reasons(self, tmp_path):
        gate = ReleaseGate(TriggerContext(ref="master"), FakeProvider(), credential="t", artifact_dir=tmp_path)
        assert gate.evaluate(_result()).reason == "not a tag build"
        assert gate.evaluate(_result(failed_phase="install")).reason == "job failed in install"

    def test_publish_failure_is_reported_not_raised(self, tmp_path):
        _artifacts(tmp_path, f"exclave-v1.2.3-{GNU}.zip")
        result = _result()
        gate = ReleaseGate(RELEASE, FakeProvider(fail=True), credential="t0ken", artifact_dir=tmp_path)
        outcome = gate.publish(result)
        assert outcome.error
        assert result.succeeded

    def test_unexpected_provider_exception_is_a_publish_error(self, tmp_path):
        _artifacts(tmp_path, f"exclave-v1.2.3-{GNU}.tar.gz")
        provider = FakeProvider(raises={f"exclave-v1.2.3-{GNU}.*": http.client.IncompleteRead(b"par")})
        result = _result()
        outcome = ReleaseGate(RELEASE, provider, credential="t0ken", artifact_dir=tmp_path).publish(result)
        assert "IncompleteRead" in outcome.error
        assert result.succeeded

    def test_no_matching_artifacts(self, tmp_path):
        provider = FakeProvider()
        _artifacts(tmp_path, "exclave-v1.2.2-x86_64-unknown-linux-gnu.tar.gz")
        outcome = ReleaseGate(RELEASE, provider, credential="t0ken", artifact_dir=tmp_path).publish(_result())
        assert "no artifacts match" in outcome.error
        assert provider.calls == []

    def test_missing_credential(self, tmp_path):
        provider = FakeProvider()
        _artifacts(tmp_path, f"exclave-v1.2.3-{GNU}.tar.gz")
        outcome = ReleaseGate(RELEASE, provider, credential=None, artifact_dir=tmp_path).publish(_result())
        assert "GITHUB_TOKEN" in outcome.error
        assert provider.calls == []

    def test_missing_provider(self, tmp_path):
        outcome = ReleaseGate(RELEASE, None, credential="t0ken", artifact_dir=tmp_path).publish(_result())
        assert "no release provider" in outcome.error


class TestMatchingFiles:

    def test_directories_and_other_triples_excluded(self, tmp_path):
        _artifacts(tmp_path, f"exclave-v1.2.3-{GNU}.zip", f"exclave-v1.2.3-{GNU}.tar.gz",
                   f"exclave-v1.2.3-{GNU}-musl.tar.gz")
        (tmp_path / f"exclave-v1.2.3-{GNU}.d").mkdir()
        files = matching_files(tmp_path, artifact_ref("exclave", "v1.2.3", GNU))
        assert [f.name for f in files] == [f"exclave-v1.2.3-{GNU}.tar.gz", f"exclave-v1.2.3-{GNU}.zip"]
