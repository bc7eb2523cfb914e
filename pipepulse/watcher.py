"""Background log tailing for in-flight pipelines.

Each tracked pipeline gets one PipelineWatcher: a chain of daemon timers
that wakes every ``interval_sec``, fetches the tail of the oldest running
job's log and asks for the status message to be re-rendered.
"""

import enum
import logging
import threading
from typing import Callable, Optional

from .state.models import Pipeline
from .state.reducer import pick_running_job
from .state.registry import PipelineRegistry


logger = logging.getLogger("pipepulse.watcher")


class WatcherState(enum.Enum):
    IDLE = "idle"
    ARMED = "armed"
    STOPPED = "stopped"


class PipelineWatcher:
    """Polls the live log of one pipeline until it finishes."""

    def __init__(
        self,
        pipeline_id: int,
        registry: PipelineRegistry,
        log_provider,
        on_update: Callable[[Pipeline], None],
        interval_sec: float = 1.0,
        lines_limit: int = 10,
        keep_alive_when_idle: bool = False
    ):
        """Initialize the watcher (not started).

        Args:
            pipeline_id: Pipeline to watch
            registry: Registry the pipeline lives in
            log_provider: Object with ``get_last_job_log_lines``
            on_update: Called with the pipeline after its log changed,
                while the pipeline lock is held
            interval_sec: Seconds between two wakes
            lines_limit: Log lines requested per wake
            keep_alive_when_idle: Re-arm instead of stopping when no job runs
        """
        self.pipeline_id = pipeline_id
        self.registry = registry
        self.log_provider = log_provider
        self.on_update = on_update
        self.interval_sec = interval_sec
        self.lines_limit = lines_limit
        self.keep_alive_when_idle = keep_alive_when_idle

        self._state = WatcherState.IDLE
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()

    @property
    def state(self) -> WatcherState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is WatcherState.ARMED

    def start(self) -> bool:
        """Arm the first wake. A watcher only ever starts once.

        Returns:
            True if the watcher was started by this call
        """
        with self._lock:
            if self._state is not WatcherState.IDLE:
                return False
            self._state = WatcherState.ARMED
        logger.info(f"Watching pipeline {self.pipeline_id}")
        self._arm()
        return True

    def _arm(self):
        with self._lock:
            if self._state is WatcherState.STOPPED:
                return
            self._timer = threading.Timer(self.interval_sec, self._run)
            self._timer.daemon = True
            self._state = WatcherState.ARMED
            self._timer.start()

    def stop(self, reason: str = "stopped"):
        """Cancel the pending wake, if any. Safe to call repeatedly."""
        with self._lock:
            if self._state is WatcherState.STOPPED:
                return
            self._state = WatcherState.STOPPED
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        logger.info(f"Stopped watching pipeline {self.pipeline_id}: {reason}")

    def _run(self):
        try:
            self.tick()
        except Exception:
            logger.exception(f"Watcher for pipeline {self.pipeline_id} crashed")
            self.stop("error")

    def tick(self) -> bool:
        """Run one watch cycle.

        Returns:
            True if another wake was scheduled
        """
        if self._state is WatcherState.STOPPED:
            return False

        pipeline = self.registry.get(self.pipeline_id)
        if pipeline is None:
            self.stop("pipeline no longer tracked")
            return False

        lock = self.registry.existing_lock(self.pipeline_id)
        if lock is None:
            self.stop("pipeline no longer tracked")
            return False

        with lock:
            job = pick_running_job(pipeline)
            project_id = pipeline.project_id
            finished = pipeline.finished

        if job is None:
            if self.keep_alive_when_idle and not finished:
                self._arm()
                return self.is_active
            self.stop("no running job")
            return False

        # Fetch outside the pipeline lock, it can be slow
        log_string = None
        try:
            log_string = self.log_provider.get_last_job_log_lines(
                project_id, self.pipeline_id, job.id, self.lines_limit
            )
        except Exception as e:
            logger.warning(f"Failed to fetch log of job {job.id} (pipeline {self.pipeline_id}): {e}")

        with lock:
            if self.registry.get(self.pipeline_id) is not pipeline:
                self.stop("pipeline no longer tracked")
                return False

            if log_string is not None:
                pipeline.log_string = log_string
                try:
                    self.on_update(pipeline)
                except Exception:
                    logger.exception(f"Failed to update message of pipeline {self.pipeline_id}")

            finished = pipeline.finished

        if finished:
            logger.info(
                f"Pipeline {self.pipeline_id} is finished, not required to watch anymore, "
                f"status: {pipeline.status}"
            )
            self.stop("finished")
            return False

        self._arm()
        return self.is_active
