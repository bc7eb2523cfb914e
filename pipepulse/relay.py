"""Relays CI pipeline events into live Slack status messages.

The relay owns the side effects around the registry: opening a thread
for a new pipeline, editing its status message on every change, starting
the pipeline's log watcher and evicting the pipeline once it finishes.
"""

import logging
import threading
from typing import Dict, Optional

from .config import Config, ProjectBindings
from .slack.client import SlackClient, SlackDeliveryError
from .slack.message import UpdatableMessage
from .slack.render import render_pipeline_message, render_thread_opener, render_title
from .state.models import JobEvent, Pipeline, PipelineEvent
from .state.registry import PipelineRegistry
from .utils.logging_config import log_with_fields
from .watcher import PipelineWatcher


logger = logging.getLogger("pipepulse.relay")


class PipelineRelay:
    """Applies webhook events and keeps each pipeline's message current."""

    def __init__(
        self,
        registry: PipelineRegistry,
        slack_client: SlackClient,
        log_provider,
        bindings: ProjectBindings,
        config: Optional[Config] = None
    ):
        """Initialize the relay.

        Args:
            registry: Registry holding tracked pipelines
            slack_client: Notification channel
            log_provider: Log tail provider (``get_last_job_log_lines``)
            bindings: Project to channel lookup
            config: Service configuration (defaults used if None)
        """
        self.registry = registry
        self.slack_client = slack_client
        self.log_provider = log_provider
        self.bindings = bindings
        self.config = config or Config()

        self._watchers: Dict[int, PipelineWatcher] = {}
        self._watchers_lock = threading.Lock()

    def handle_pipeline_event(self, event: PipelineEvent) -> Pipeline:
        """Apply a pipeline-level event.

        Args:
            event: Validated pipeline event

        Returns:
            The tracked (or just evicted) pipeline
        """
        with self.registry.lock_for(event.pipeline_id):
            pipeline, is_new = self.registry.upsert_from_pipeline_event(event)

            if is_new:
                log_with_fields(
                    logger, 'info', "Tracking new pipeline",
                    pipeline_id=pipeline.id, project_id=pipeline.project_id,
                    status=pipeline.status,
                )
                if self._open_message(pipeline):
                    self._start_watcher(pipeline)
                return pipeline

            self.update_pipeline_message(pipeline)

            if pipeline.finished:
                log_with_fields(
                    logger, 'info', "Pipeline finished",
                    pipeline_id=pipeline.id, status=pipeline.status,
                )
                self.registry.remove(pipeline.id)
                self._stop_watcher(pipeline.id, "pipeline finished")

            return pipeline

    def handle_job_event(self, event: JobEvent) -> Optional[Pipeline]:
        """Apply a job-level event.

        Events for pipelines that are not tracked are ignored.

        Returns:
            The updated pipeline, or None if it is not tracked
        """
        lock = self.registry.existing_lock(event.pipeline_id)
        if lock is None:
            logger.debug(f"Ignoring job {event.job_id} of untracked pipeline {event.pipeline_id}")
            return None

        with lock:
            pipeline = self.registry.apply_job_event(
                event.pipeline_id, event.job_id, event.status, event.duration
            )
            if pipeline is None:
                return None

            log_with_fields(
                logger, 'debug', "Job updated",
                pipeline_id=event.pipeline_id, job_id=event.job_id, status=event.status,
            )
            self.update_pipeline_message(pipeline)
            return pipeline

    def update_pipeline_message(self, pipeline: Pipeline) -> None:
        """Re-render a pipeline and edit its messages.

        Messages are closed once the pipeline is finished. Slack failures are
        logged by the message handles and never raised.
        """
        body = render_pipeline_message(pipeline)
        title = render_title(pipeline)

        for message in pipeline.messages:
            message.edit_text(body, title)

        if pipeline.finished:
            for message in pipeline.messages:
                message.close()

    def _open_message(self, pipeline: Pipeline) -> bool:
        """Open the Slack thread of a new pipeline and post its status message.

        Returns:
            True if a message handle was attached to the pipeline
        """
        channel_id = self.bindings.channel_for(pipeline.project_id)
        if not channel_id:
            log_with_fields(
                logger, 'warning', "No channel bound to project, skipping messages",
                pipeline_id=pipeline.id, project_id=pipeline.project_id,
            )
            return False

        thread_body = render_thread_opener(pipeline)
        try:
            thread_ts = self.slack_client.open_thread(channel_id, pipeline.title, thread_body)
        except SlackDeliveryError as e:
            log_with_fields(
                logger, 'error', f"Failed to open thread: {e}",
                pipeline_id=pipeline.id, channel_id=channel_id,
            )
            thread_ts = None

        message = UpdatableMessage(
            self.slack_client,
            channel_id,
            thread_ts,
            render_pipeline_message(pipeline),
            thread_title=pipeline.title,
            thread_body=thread_body,
            min_update_interval=self.config.slack.min_update_interval_sec,
        )
        pipeline.messages.append(message)

        logger.info(f"Sending status message for pipeline {pipeline.id}")
        message.send()
        return True

    def _start_watcher(self, pipeline: Pipeline) -> None:
        watcher_config = self.config.watcher
        with self._watchers_lock:
            if pipeline.id in self._watchers:
                return
            watcher = PipelineWatcher(
                pipeline.id,
                self.registry,
                self.log_provider,
                on_update=self.update_pipeline_message,
                interval_sec=watcher_config.interval_sec,
                lines_limit=watcher_config.lines_limit,
                keep_alive_when_idle=watcher_config.keep_alive_when_idle,
            )
            self._watchers[pipeline.id] = watcher
        watcher.start()

    def _stop_watcher(self, pipeline_id: int, reason: str) -> None:
        with self._watchers_lock:
            watcher = self._watchers.pop(pipeline_id, None)
        if watcher is not None:
            watcher.stop(reason)

    def watcher_for(self, pipeline_id: int) -> Optional[PipelineWatcher]:
        with self._watchers_lock:
            return self._watchers.get(pipeline_id)

    def shutdown(self) -> None:
        """Stop every watcher and close every live message."""
        with self._watchers_lock:
            watchers = list(self._watchers.items())
            self._watchers.clear()

        for pipeline_id, watcher in watchers:
            watcher.stop("shutdown")

        for pipeline_id in self.registry.ids():
            lock = self.registry.existing_lock(pipeline_id)
            pipeline = self.registry.get(pipeline_id)
            if lock is None or pipeline is None:
                continue
            with lock:
                for message in pipeline.messages:
                    message.close()
