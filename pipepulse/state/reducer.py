"""State transitions for pipeline- and job-level events.

All functions mutate or build plain model objects and never perform I/O.
Locking is the caller's job (see PipelineRegistry.lock_for).
"""

from typing import Optional

from .models import (
    ACTIVE_STATUSES,
    WAITING_FOR_OUTPUTS,
    Job,
    Pipeline,
    PipelineEvent,
)


def pipeline_title(pipeline_id: int) -> str:
    """Display title derived from the pipeline id."""
    return f"Deployment #{pipeline_id}"


def pipeline_from_event(event: PipelineEvent) -> Pipeline:
    """Build a freshly tracked Pipeline from its first pipeline-level event.

    A new pipeline is never finished, whatever its job statuses say.
    """
    return Pipeline(
        id=event.pipeline_id,
        project_id=event.project_id,
        project_name=event.project_name,
        project_url=event.project_url,
        author=event.author,
        status=event.status,
        title=pipeline_title(event.pipeline_id),
        jobs=[Job.from_snapshot(event.pipeline_id, snapshot) for snapshot in event.jobs],
        log_string=WAITING_FOR_OUTPUTS,
        finished=False,
        url=event.url,
    )


def has_active_jobs(pipeline: Pipeline) -> bool:
    """True while any job is pending or running."""
    return any(job.status in ACTIVE_STATUSES for job in pipeline.jobs)


def merge_pipeline_event(pipeline: Pipeline, event: PipelineEvent) -> Pipeline:
    """Merge a later pipeline-level event into a tracked pipeline.

    Only jobs already known are updated. Jobs that appear for the first
    time in a later snapshot are not added.
    """
    pipeline.status = event.status

    snapshots = {snapshot.id: snapshot for snapshot in event.jobs}
    for job in pipeline.jobs:
        snapshot = snapshots.get(job.id)
        if snapshot is not None:
            job.status = snapshot.status
            job.duration = snapshot.duration

    if not pipeline.finished and not has_active_jobs(pipeline):
        pipeline.finished = True

    return pipeline


def apply_job_update(
    pipeline: Pipeline,
    job_id: int,
    status: str,
    duration: Optional[float] = None
) -> Optional[Job]:
    """Overwrite status and duration of one job.

    Returns the updated job, or None when the id is unknown. Never
    changes ``pipeline.finished``.
    """
    job = pipeline.get_job(job_id)
    if job is None:
        return None
    job.status = status
    job.duration = duration
    return job


def pick_running_job(pipeline: Pipeline) -> Optional[Job]:
    """Oldest running job by id, or None when nothing is running."""
    running = sorted(
        (job for job in pipeline.jobs if job.status == "running"),
        key=lambda job: job.id,
        reverse=True,
    )
    if not running:
        return None
    return running.pop()
