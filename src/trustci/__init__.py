from .dsl import matrix, phases, pipeline, target
from .matrix import admits, expand, plan_jobs
from .model import ArtifactRef, Channel, HostOS, JobSpec, Pipeline, Target, TriggerContext
from .release import ReleaseGate, artifact_ref, should_publish
from .runner import run_job, run_matrix, run_pipeline

__all__ = [
    "target",
    "phases",
    "matrix",
    "pipeline",
    "expand",
    "admits",
    "plan_jobs",
    "run_job",
    "run_matrix",
    "run_pipeline",
    "ReleaseGate",
    "artifact_ref",
    "should_publish",
    "ArtifactRef",
    "Channel",
    "HostOS",
    "JobSpec",
    "Pipeline",
    "Target",
    "TriggerContext",
]
