"""In-memory pipeline registry for PipePulse.

Holds every pipeline currently being relayed, keyed by pipeline id.
Each pipeline gets its own re-entrant lock so that the webhook handlers
and the pipeline's watcher serialize on that pipeline only; the registry
lock guards the id maps and is never held while waiting on a pipeline lock.
"""

import threading
from typing import Optional, Dict, Any, List, Tuple

from .models import Pipeline, PipelineEvent
from .reducer import apply_job_update, merge_pipeline_event, pipeline_from_event


class PipelineRegistry:
    """Tracks live pipelines from first event until they finish."""

    def __init__(self):
        """Initialize an empty registry."""
        self._pipelines: Dict[int, Pipeline] = {}
        self._locks: Dict[int, threading.RLock] = {}
        self._lock = threading.Lock()

    def lock_for(self, pipeline_id: int) -> threading.RLock:
        """Get (or create) the lock serializing one pipeline.

        Args:
            pipeline_id: Pipeline identifier

        Returns:
            Re-entrant lock shared by everyone touching that pipeline
        """
        with self._lock:
            lock = self._locks.get(pipeline_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[pipeline_id] = lock
            return lock

    def existing_lock(self, pipeline_id: int) -> Optional[threading.RLock]:
        """Get the lock of a tracked pipeline without creating one.

        Returns:
            The pipeline's lock, or None once it is no longer tracked
        """
        with self._lock:
            return self._locks.get(pipeline_id)

    def get(self, pipeline_id: int) -> Optional[Pipeline]:
        """Get a tracked pipeline or None."""
        with self._lock:
            return self._pipelines.get(pipeline_id)

    def upsert_from_pipeline_event(self, event: PipelineEvent) -> Tuple[Pipeline, bool]:
        """Create or merge a pipeline from a pipeline-level event.

        Args:
            event: Validated pipeline event

        Returns:
            Tuple of (pipeline, is_new)
        """
        with self.lock_for(event.pipeline_id):
            with self._lock:
                existing = self._pipelines.get(event.pipeline_id)
                if existing is None:
                    pipeline = pipeline_from_event(event)
                    self._pipelines[event.pipeline_id] = pipeline
                    return pipeline, True

            merge_pipeline_event(existing, event)
            return existing, False

    def apply_job_event(
        self,
        pipeline_id: int,
        job_id: int,
        status: str,
        duration: Optional[float] = None
    ) -> Optional[Pipeline]:
        """Apply a job-level update to a tracked pipeline.

        Events for pipelines that are not tracked are ignored; they are
        expected when a pipeline-level delivery was missed.

        Returns:
            The pipeline, or None if it is not tracked
        """
        lock = self.existing_lock(pipeline_id)
        if lock is None:
            return None

        with lock:
            pipeline = self.get(pipeline_id)
            if pipeline is None:
                return None
            apply_job_update(pipeline, job_id, status, duration)
            return pipeline

    def remove(self, pipeline_id: int) -> Optional[Pipeline]:
        """Stop tracking a pipeline.

        Returns:
            The removed pipeline, or None if it was not tracked
        """
        with self._lock:
            self._locks.pop(pipeline_id, None)
            return self._pipelines.pop(pipeline_id, None)

    def ids(self) -> List[int]:
        with self._lock:
            return sorted(self._pipelines)

    def snapshot(self) -> List[Dict[str, Any]]:
        """Get all tracked pipelines formatted for API response."""
        result = []
        for pipeline_id in self.ids():
            lock = self.existing_lock(pipeline_id)
            pipeline = self.get(pipeline_id)
            if lock is None or pipeline is None:
                continue
            with lock:
                result.append(pipeline.to_dict())
        return result

    def __len__(self) -> int:
        with self._lock:
            return len(self._pipelines)

    def __contains__(self, pipeline_id) -> bool:
        with self._lock:
            return pipeline_id in self._pipelines
