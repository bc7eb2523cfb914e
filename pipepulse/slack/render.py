"""Slack message rendering for tracked pipelines."""

from datetime import datetime
from typing import Optional

from ..state.models import Pipeline


# Status to icon mapping
STATUS_ICONS = {
    'success': '🟢',
    'failed': '🔴',
    'canceled': '⚪️',
    'skipped': '⚪️',
    'running': '🔵️',
}

DEFAULT_STATUS_ICON = '🟡'

TIMESTAMP_FORMAT = '%H:%M - %d/%m/%Y'


def status_icon(status: str) -> str:
    """Get the icon for a job status (case-sensitive)."""
    return STATUS_ICONS.get(status, DEFAULT_STATUS_ICON)


def render_stages(pipeline: Pipeline) -> str:
    """Render one line per job, ordered by job id.

    Args:
        pipeline: Pipeline to render

    Returns:
        Newline-joined ``<icon> <stage>: <name>`` lines
    """
    jobs = sorted(pipeline.jobs, key=lambda job: job.id)
    return '\n'.join(
        f'{status_icon(job.status)} {job.stage}: {job.name}'
        for job in jobs
    )


def render_pipeline_message(pipeline: Pipeline, now: Optional[datetime] = None) -> str:
    """Build the status message body for a pipeline.

    Args:
        pipeline: Pipeline to render
        now: Timestamp to print (defaults to the current wall-clock time)

    Returns:
        Slack mrkdwn text
    """
    now = now or datetime.now()

    message = f'*[{pipeline.status.upper()}] DEPLOYMENT*\n\n'
    message += (
        f'[{now.strftime(TIMESTAMP_FORMAT)}]\n'
        f'{pipeline.author} triggered deployment in '
        f'<{pipeline.project_url}|{pipeline.project_name}>\n\n'
    )
    message += 'Stages:\n'
    message += '```\n' + render_stages(pipeline) + '\n```\n'

    if not pipeline.finished and pipeline.status != 'success':
        message += (
            '```\n-------- BUILD LOG --------\n'
            + pipeline.log_string
            + '\n--------------------------\n```'
        )

    return message


def render_title(pipeline: Pipeline) -> str:
    """Short summary used as the thread title."""
    return f'{pipeline.title} - {pipeline.status}'


def render_thread_opener(pipeline: Pipeline) -> str:
    """Body of the root message that opens a pipeline's thread."""
    if pipeline.url:
        return f'Deployment <{pipeline.url}|#{pipeline.id}>'
    return f'Deployment #{pipeline.id}'
