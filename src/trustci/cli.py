# cli.py
from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

import click

from .cache import CacheStore
from .config import DEFAULT_PIPELINE_FILES, find_pipeline_file, load_pipeline
from .errors import CIError, MatrixError, PipelineLoadError, PublishError
from .git_facts.git import get_remote_url
from .matrix import admits, expand, select
from .model import DEFAULT_CRATE_NAME, Channel, JobResult, JobSpec, Target, TriggerContext
from .notify import HISTORY_FILE, previous_outcome, record_outcome, should_notify
from .publish import GitHubReleases
from .release import ReleaseGate, artifact_ref, should_publish
from .runner import run_pipeline
from .settings import Settings
from .trigger import detect
from .ui.console import Console, get_console, set_console

EXIT_BUILD_FAILED = 1
EXIT_CONFIG = 2
EXIT_DEPLOY_FAILED = 3


def discover_pipeline(pipeline_arg: str | None) -> Path:
    """
    Pipeline file from the argument, or the first default file present.

    Raises:
        SystemExit: If no pipeline file can be found
    """
    console = get_console()

    if pipeline_arg:
        path = Path(pipeline_arg)
        if not path.exists():
            console.print_error(
                "Pipeline file not found",
                f"Could not find pipeline file: {pipeline_arg}",
                suggestion="Specify a different path:\n  trustci run --pipeline .travis.yml",
            )
            sys.exit(EXIT_CONFIG)
        return path

    found = find_pipeline_file(".")
    if found is None:
        console.print_error(
            "No pipeline file found",
            "Could not find a pipeline definition.",
            details=["Looked for:", *(f"  {name}" for name in DEFAULT_PIPELINE_FILES)],
            suggestion="Create trustci_pipeline.py or pass one explicitly:\n  trustci run --pipeline my_pipeline.py",
        )
        sys.exit(EXIT_CONFIG)
    return found


def _repo_name() -> str:
    try:
        repo_url = get_remote_url("origin")
        return repo_url.rstrip("/").split("/")[-1].replace(".git", "")
    except (subprocess.CalledProcessError, FileNotFoundError):
        return Path(".").resolve().name


def _config_error(ctx: click.Context, e: CIError) -> None:
    get_console().print_error(
        "Invalid pipeline",
        e.message,
        details=[f"{k}={v}" for k, v in e.details.items()] or None,
    )
    if ctx.obj.get("debug", False):
        import traceback
        traceback.print_exc()
    sys.exit(EXIT_CONFIG)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and full phase output)",
)
@click.pass_context
def cli(ctx, debug):
    """trustci: build-matrix runner with a release gate."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.option("--pipeline", "pipeline_path", default=None, help="Pipeline file (.py or .yml)")
@click.option("--ref", default=None, help="Branch or tag being built (defaults to CI env / git)")
@click.option("--tag", default=None, help="Tag being built")
@click.pass_context
def plan(ctx, pipeline_path, ref, tag):
    """Show the jobs a push of REF would start."""
    console = get_console()
    path = discover_pipeline(pipeline_path)
    try:
        pipeline = load_pipeline(path)
        jobs = expand(pipeline)
    except (PipelineLoadError, MatrixError) as e:
        _config_error(ctx, e)
        return

    trigger = detect(ref=ref, tag=tag)
    if not admits(pipeline.branches, trigger.ref):
        console.print_info(f"ref {trigger.ref!r} is not admitted; 0 jobs")
        return

    console.print_header(f"{len(jobs)} job(s) for {trigger.ref or '<unknown ref>'}")
    console.print_plan(jobs)
    if trigger.is_tagged_release:
        release = [j for j in jobs if j.channel is pipeline.deploy.channel]
        console.print_info(f"\nrelease {trigger.tag}: {len(release)} job(s) publish on success")


@cli.command()
@click.option("--pipeline", "pipeline_path", default=None, help="Pipeline file (.py or .yml)")
@click.option("--ref", default=None, help="Branch or tag being built (defaults to CI env / git)")
@click.option("--tag", default=None, help="Tag being built")
@click.option("--only", multiple=True, help="Run only this triple or job name (repeatable)")
@click.option("--workers", default=None, type=int, help="Number of parallel jobs")
@click.option("--cache-dir", default=None, help="Cache directory (default $TRUSTCI_CACHE_DIR or .trustci/cache)")
@click.option("--cache/--no-cache", "use_cache", default=True, show_default=True, help="Restore and persist the toolchain cache")
@click.option("--publish/--no-publish", default=True, show_default=True, help="Let the release gate upload artifacts")
@click.option("--artifact-dir", default=None, help="Where before_deploy leaves artifacts")
@click.pass_context
def run(ctx, pipeline_path, ref, tag, only, workers, cache_dir, use_cache, publish, artifact_dir):
    """Run the build matrix and the release gate."""
    console = get_console()
    settings = Settings.from_env()
    path = discover_pipeline(pipeline_path)

    try:
        pipeline = load_pipeline(path)
        jobs = select(expand(pipeline), only)
    except (PipelineLoadError, MatrixError) as e:
        _config_error(ctx, e)
        return

    trigger = detect(ref=ref, tag=tag)
    console.print_run_started(
        repository=_repo_name(),
        pipeline=path.name,
        ref=trigger.ref,
        job_count=len(jobs) if admits(pipeline.branches, trigger.ref) else 0,
    )

    gate = None
    if publish:
        provider = None
        if settings.release_repo:
            try:
                provider = GitHubReleases(
                    settings.release_repo,
                    api_url=settings.api_url,
                    uploads_url=settings.uploads_url,
                )
            except PublishError as e:
                _config_error(ctx, e)
                return
        gate = ReleaseGate(
            trigger,
            provider,
            credential=os.environ.get(pipeline.deploy.credential_env),
            artifact_dir=artifact_dir or settings.artifact_dir,
            deploy=pipeline.deploy,
        )

    cache = CacheStore(cache_dir or settings.cache_dir) if use_cache else None

    try:
        report = run_pipeline(
            pipeline,
            trigger,
            gate=gate,
            only=only,
            repo_root=".",
            cache=cache,
            max_workers=workers or settings.workers,
        )
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)

    if not report.results:
        return

    console.print_results(report.results, report.deploys)
    succeeded = not report.build_failed
    history = Path(cache_dir or settings.cache_dir) / HISTORY_FILE if use_cache else None
    previous = previous_outcome(history, trigger.ref) if history else None
    console.print_notify(should_notify(pipeline.notify, succeeded, previous), succeeded, previous)
    if history:
        try:
            record_outcome(history, trigger.ref, succeeded)
        except OSError as e:
            console.print_warning(f"could not record run outcome: {e}")

    if report.build_failed:
        sys.exit(EXIT_BUILD_FAILED)
    if report.deploy_failed:
        sys.exit(EXIT_DEPLOY_FAILED)


@cli.command()
@click.option("--triple", required=True, help="Target triple of the job")
@click.option("--channel", default="stable", show_default=True, type=click.Choice([c.value for c in Channel]))
@click.option("--tag", default=None, help="Tag being built (defaults to TRAVIS_TAG)")
@click.option("--crate-name", default=None, help="Crate name (defaults to $CRATE_NAME, then exclave)")
def gate(triple, channel, tag, crate_name):
    """Evaluate the release gate for one successful job without uploading."""
    console = get_console()
    tag = tag if tag is not None else os.environ.get("TRAVIS_TAG") or None
    crate = crate_name or os.environ.get("CRATE_NAME") or DEFAULT_CRATE_NAME

    target = Target(triple=triple, channel=Channel(channel))
    job = JobSpec(target=target, env={"CRATE_NAME": crate, "TARGET": triple})
    trigger = TriggerContext(ref=tag or "", tag=tag)

    if should_publish(JobResult(job=job), trigger):
        console.print_info(f"publish: {artifact_ref(crate, tag, triple)}")
    else:
        console.print_info("publish: no")


if __name__ == "__main__":
    cli()
