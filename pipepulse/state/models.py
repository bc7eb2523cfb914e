"""Data models for PipePulse pipeline tracking."""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List


# Job statuses that keep a pipeline alive
ACTIVE_STATUSES = {"pending", "running"}

WAITING_FOR_OUTPUTS = "Waiting for outputs..."


@dataclass
class JobSnapshot:
    """Job entry as reported inside a pipeline-level event."""
    id: int
    stage: str
    name: str
    status: str
    duration: Optional[float] = None


@dataclass
class PipelineEvent:
    """Pipeline-level event, already validated."""
    pipeline_id: int
    project_id: int
    project_name: str
    project_url: str
    author: str
    status: str
    jobs: List[JobSnapshot] = field(default_factory=list)
    url: Optional[str] = None


@dataclass
class JobEvent:
    """Job-level progress event, already validated."""
    pipeline_id: int
    job_id: int
    status: str
    duration: Optional[float] = None


@dataclass
class Job:
    """Represents a single job within a pipeline."""
    id: int
    name: str
    stage: str
    pipeline_id: int
    status: str
    duration: Optional[float] = None
    finished: bool = False
    log_string: str = ""

    @classmethod
    def from_snapshot(cls, pipeline_id: int, snapshot: JobSnapshot) -> "Job":
        """Create Job from an event snapshot."""
        return cls(
            id=snapshot.id,
            name=snapshot.name,
            stage=snapshot.stage,
            pipeline_id=pipeline_id,
            status=snapshot.status,
            duration=snapshot.duration,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert Job to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "stage": self.stage,
            "status": self.status,
            "duration": self.duration,
        }


@dataclass
class Pipeline:
    """Represents one tracked CI pipeline and its live messages."""
    id: int
    project_id: int
    project_name: str
    project_url: str
    author: str
    status: str
    title: str
    jobs: List[Job] = field(default_factory=list)
    messages: list = field(default_factory=list)
    log_string: str = WAITING_FOR_OUTPUTS
    finished: bool = False
    url: Optional[str] = None

    def get_job(self, job_id: int) -> Optional[Job]:
        """Find a job by id."""
        for job in self.jobs:
            if job.id == job_id:
                return job
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert Pipeline to dictionary (message handles excluded)."""
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status,
            "finished": self.finished,
            "author": self.author,
            "url": self.url,
            "project": {
                "id": self.project_id,
                "name": self.project_name,
                "url": self.project_url,
            },
            "jobs": [job.to_dict() for job in sorted(self.jobs, key=lambda j: j.id)],
            "log": self.log_string,
            "messages": len(self.messages),
        }
