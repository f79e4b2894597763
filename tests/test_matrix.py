import pytest

from trustci.dsl import matrix, pipeline, target
from trustci.errors import MatrixError
from trustci.matrix import admits, expand, plan_jobs, select, with_trigger
from trustci.model import DEFAULT_BRANCHES, Channel, HostOS, Target, TriggerContext


class TestExpand:

    def test_one_job_per_entry_in_order(self):
        p = pipeline(
            target("aarch64-unknown-linux-gnu"),
            target("x86_64-apple-darwin", os="osx"),
            target("x86_64-unknown-linux-gnu", rust="nightly"),
        )
        jobs = expand(p)
        assert [j.target.triple for j in jobs] == [
            "aarch64-unknown-linux-gnu",
            "x86_64-apple-darwin",
            "x86_64-unknown-linux-gnu",
        ]
        assert jobs[1].target.host_os is HostOS.MACOS
        assert jobs[2].channel is Channel.NIGHTLY

    def test_job_env(self):
        p = pipeline(
            target("s390x-unknown-linux-gnu", disable_tests=True),
            target("i686-apple-darwin", os="osx"),
            crate_name="exclave",
        )
        s390x, darwin = expand(p)
        assert s390x.env["CRATE_NAME"] == "exclave"
        assert s390x.env["TARGET"] == "s390x-unknown-linux-gnu"
        assert s390x.env["DISABLE_TESTS"] == "1"
        assert s390x.env["TRAVIS_RUST_VERSION"] == "stable"
        assert s390x.env["TRAVIS_OS_NAME"] == "linux"
        assert "DISABLE_TESTS" not in darwin.env
        assert darwin.env["TRAVIS_OS_NAME"] == "osx"

    def test_pipeline_default_channel_applies_to_unset_entries(self):
        p = pipeline(
            target("x86_64-unknown-linux-gnu"),
            target("x86_64-unknown-linux-musl", rust="stable"),
            rust="nightly",
        )
        gnu, musl = expand(p)
        assert gnu.channel is Channel.NIGHTLY
        assert musl.channel is Channel.STABLE

    def test_same_triple_on_two_channels_is_two_jobs(self):
        p = pipeline(
            target("x86_64-unknown-linux-gnu"),
            target("x86_64-unknown-linux-gnu", rust="nightly"),
        )
        jobs = expand(p)
        assert len(jobs) == 2
        assert {j.name for j in jobs} == {"x86_64-unknown-linux-gnu", "x86_64-unknown-linux-gnu (nightly)"}

    def test_duplicate_entry_rejected(self):
        p = pipeline(target("i686-unknown-linux-musl"), target("i686-unknown-linux-musl"))
        with pytest.raises(MatrixError) as exc:
            expand(p)
        assert exc.value.details["index"] == 1

    def test_empty_triple_rejected(self):
        with pytest.raises(MatrixError):
            expand(pipeline(target("")))

    def test_whitespace_in_triple_rejected(self):
        with pytest.raises(MatrixError):
            expand(pipeline(target("x86_64 unknown")))

    def test_non_target_entry_rejected(self):
        """A bad entry fails the whole expansion, not just itself."""
        p = pipeline(target("x86_64-unknown-linux-gnu"), "i686-unknown-linux-gnu")
        with pytest.raises(MatrixError):
            expand(p)

    def test_missing_crate_name_rejected(self):
        with pytest.raises(MatrixError):
            expand(pipeline(target("x86_64-unknown-linux-gnu"), crate_name=" "))

    def test_empty_matrix_expands_to_nothing(self):
        assert expand(pipeline()) == []

    def test_matrix_helper_expands_listed_values(self):
        p = pipeline(
            matrix("rust", ["stable", "nightly"]).targets(
                lambda ch: target("x86_64-unknown-linux-gnu", rust=ch)
            ),
        )
        assert [j.channel for j in expand(p)] == [Channel.STABLE, Channel.NIGHTLY]


class TestDslErrors:

    def test_unknown_os(self):
        with pytest.raises(MatrixError):
            target("x86_64-pc-windows-msvc", os="windows")

    def test_unknown_channel(self):
        with pytest.raises(MatrixError):
            target("x86_64-unknown-linux-gnu", rust="1.30.0")

    def test_unknown_default_channel(self):
        with pytest.raises(MatrixError):
            pipeline(rust="beta-ish")


class TestAdmission:

    def test_master_admitted(self):
        assert admits(DEFAULT_BRANCHES, "master")

    def test_release_tag_admitted(self):
        assert admits(DEFAULT_BRANCHES, "v1.2.3")
        assert admits(DEFAULT_BRANCHES, "v0.1.0-alpha")

    def test_other_branches_rejected(self):
        for ref in ("feature/foo", "main", "master-old", "vNext", ""):
            assert not admits(DEFAULT_BRANCHES, ref), ref

    def test_plan_for_unadmitted_ref_is_empty(self):
        p = pipeline(target("x86_64-unknown-linux-gnu"), target("i686-unknown-linux-gnu"))
        assert plan_jobs(p, TriggerContext(ref="feature/foo")) == []
        assert len(plan_jobs(p, TriggerContext(ref="master"))) == 2

    def test_unadmitted_ref_still_validates(self):
        p = pipeline(target("dup"), target("dup"))
        with pytest.raises(MatrixError):
            plan_jobs(p, TriggerContext(ref="feature/foo"))

    def test_custom_branch_list(self):
        p = pipeline(target("x86_64-unknown-linux-gnu"), branches=["/^release-.*$/", "develop"])
        assert plan_jobs(p, TriggerContext(ref="release-2"))
        assert plan_jobs(p, TriggerContext(ref="develop"))
        assert not plan_jobs(p, TriggerContext(ref="master"))


class TestSelectAndTrigger:

    def test_select_by_triple_or_name(self):
        jobs = expand(pipeline(
            target("x86_64-unknown-linux-gnu"),
            target("x86_64-unknown-linux-gnu", rust="nightly"),
            target("i686-apple-darwin", os="osx"),
        ))
        assert len(select(jobs, ["x86_64-unknown-linux-gnu"])) == 2
        assert [j.name for j in select(jobs, ["x86_64-unknown-linux-gnu (nightly)"])] == [
            "x86_64-unknown-linux-gnu (nightly)"
        ]
        assert select(jobs, []) == jobs

    def test_trigger_exported_to_env(self):
        job = expand(pipeline(target("x86_64-unknown-linux-gnu")))[0]
        tagged = with_trigger(job, TriggerContext(ref="v1.2.3", tag="v1.2.3"))
        assert tagged.env["TRAVIS_TAG"] == "v1.2.3"
        assert tagged.env["TRAVIS_BRANCH"] == "v1.2.3"
        branch = with_trigger(job, TriggerContext(ref="master"))
        assert branch.env["TRAVIS_TAG"] == ""
        assert "TRAVIS_TAG" not in job.env

    def test_target_is_hashable_and_frozen(self):
        t = Target("x86_64-unknown-linux-gnu")
        with pytest.raises(Exception):
            t.triple = "other"
