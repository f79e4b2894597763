from trustci.model import ArtifactRef, Channel, HostOS, JobSpec, Target, TriggerContext


class TestTriggerContext:

    def test_semver_tag_is_release(self):
        assert TriggerContext(ref="v1.2.3", tag="v1.2.3").is_tagged_release

    def test_prerelease_suffix_is_release(self):
        assert TriggerContext(ref="v0.10.0-rc.1", tag="v0.10.0-rc.1").is_tagged_release

    def test_branch_build_is_not_release(self):
        assert not TriggerContext(ref="master").is_tagged_release

    def test_non_version_tag_is_not_release(self):
        """Tags outside vX.Y.Z never count as releases."""
        for tag in ("nightly", "1.2.3", "v1.2", "release-v1.2.3"):
            assert not TriggerContext(ref=tag, tag=tag).is_tagged_release, tag


class TestArtifactRef:

    def test_pattern_is_crate_tag_triple(self):
        ref = ArtifactRef(crate_name="exclave", tag="v1.2.3", triple="x86_64-unknown-linux-gnu")
        assert ref.pattern == "exclave-v1.2.3-x86_64-unknown-linux-gnu.*"
        assert str(ref) == ref.pattern


class TestJobSpec:

    def test_tests_run_unless_disabled(self):
        t = Target("x86_64-unknown-linux-gnu")
        assert JobSpec(t, {"CRATE_NAME": "exclave", "TARGET": t.triple}).runs_tests
        assert not JobSpec(t, {"CRATE_NAME": "exclave", "TARGET": t.triple, "DISABLE_TESTS": "1"}).runs_tests

    def test_names_distinguish_channels(self):
        stable = JobSpec(Target("x86_64-unknown-linux-gnu", channel=Channel.STABLE))
        nightly = JobSpec(Target("x86_64-unknown-linux-gnu", channel=Channel.NIGHTLY))
        assert stable.name == "x86_64-unknown-linux-gnu"
        assert nightly.name == "x86_64-unknown-linux-gnu (nightly)"

    def test_unset_channel_reads_as_stable(self):
        assert JobSpec(Target("i686-apple-darwin")).channel is Channel.STABLE


class TestEnums:

    def test_osx_alias(self):
        assert HostOS.parse("osx") is HostOS.MACOS
        assert HostOS.parse(None) is HostOS.LINUX

    def test_channel_default(self):
        assert Channel.parse(None) is Channel.STABLE
        assert Channel.parse("", default=Channel.NIGHTLY) is Channel.NIGHTLY
