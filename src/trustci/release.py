# release.py
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

from .errors import PublishError
from .model import RELEASE_CHANNEL, ArtifactRef, Channel, DeploySettings, JobResult, TriggerContext


@dataclass
class UploadReport:
    uploaded: List[str] = field(default_factory=list)
    # already on the release; never replaced or deleted
    skipped: List[str] = field(default_factory=list)


class ReleaseProvider(Protocol):
    """Publishes files to the release named by `tag`. Must not delete existing assets."""

    def upload(self, credential: str, pattern: str, tag: str, files: Sequence[Path]) -> UploadReport:
        ...


@dataclass
class GateOutcome:
    job: str
    publish: bool
    reason: str
    artifact: Optional[ArtifactRef] = None
    uploaded: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    error: Optional[str] = None


def artifact_ref(crate_name: str, tag: str, triple: str) -> ArtifactRef:
    return ArtifactRef(crate_name=crate_name, tag=tag, triple=triple)


def should_publish(
    result: JobResult,
    trigger: TriggerContext,
    release_channel: Channel = RELEASE_CHANNEL,
) -> bool:
    """publish(job) <=> job succeeded, tag is a release tag, job ran on the release channel."""
    return (
        result.succeeded
        and trigger.is_tagged_release
        and result.job.channel is release_channel
    )


def _why_not(result: JobResult, trigger: TriggerContext, release_channel: Channel) -> str:
    if not result.succeeded:
        return f"job failed in {result.failed_phase}"
    if not trigger.is_tagged_release:
        return "not a release tag" if trigger.tag else "not a tag build"
    return f"channel {result.job.channel.value} is not {release_channel.value}"


def matching_files(artifact_dir: str | Path, ref: ArtifactRef) -> List[Path]:
    root = Path(artifact_dir)
    return sorted(p for p in root.glob(ref.pattern) if p.is_file())


class ReleaseGate:
    """
    Decides, per successful job, whether this push is a release and the job
    is the one authoritative build for its triple; if so uploads its
    artifacts once. Upload failures are reported on the outcome and never
    touch the job's own result.
    """

    def __init__(
        self,
        trigger: TriggerContext,
        provider: Optional[ReleaseProvider],
        *,
        credential: Optional[str],
        artifact_dir: str | Path = ".",
        deploy: Optional[DeploySettings] = None,
    ):
        self.trigger = trigger
        self.provider = provider
        self.credential = credential
        self.artifact_dir = Path(artifact_dir)
        self.deploy = deploy or DeploySettings()

    def evaluate(self, result: JobResult) -> GateOutcome:
        channel = self.deploy.channel
        if not should_publish(result, self.trigger, channel):
            return GateOutcome(
                job=result.job.name,
                publish=False,
                reason=_why_not(result, self.trigger, channel),
            )
        ref = artifact_ref(result.job.crate_name, self.trigger.tag or "", result.job.target.triple)
        return GateOutcome(job=result.job.name, publish=True, reason="release tag on release channel", artifact=ref)

    def publish(self, result: JobResult) -> GateOutcome:
        outcome = self.evaluate(result)
        if not outcome.publish:
            return outcome

        try:
            report = self._upload(result, outcome.artifact)
        except PublishError as e:
            outcome.error = str(e)
            return outcome

        outcome.uploaded = list(report.uploaded)
        outcome.skipped = list(report.skipped)
        return outcome

    def _upload(self, result: JobResult, ref: ArtifactRef) -> UploadReport:
        job = result.job.name
        if self.provider is None:
            raise PublishError(job, "no release provider configured")
        if not self.credential:
            raise PublishError(job, f"credential not set (${self.deploy.credential_env})")

        files = matching_files(self.artifact_dir, ref)
        if not files:
            raise PublishError(
                job,
                f"no artifacts match {ref.pattern}",
                artifact_dir=str(self.artifact_dir),
            )
        try:
            return self.provider.upload(self.credential, ref.pattern, self.trigger.tag or "", files)
        except PublishError:
            raise
        except Exception as e:
            # whatever a provider raises is a deploy-stage failure of this job only
            raise PublishError(job, f"upload failed: {type(e).__name__}: {e}", pattern=ref.pattern) from e
