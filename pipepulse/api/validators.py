"""Pydantic validators for GitLab webhook payloads."""

from pydantic import BaseModel, Field
from typing import Optional, List

from ..state.models import JobEvent, JobSnapshot, PipelineEvent


PIPELINE_HOOK = "Pipeline Hook"
JOB_HOOK = "Job Hook"


class ProjectPayload(BaseModel):
    """Project section of a pipeline hook."""
    id: int
    name: str
    web_url: str = Field(..., description="Project page URL")


class UserPayload(BaseModel):
    """User who triggered the pipeline."""
    name: str
    username: Optional[str] = None


class PipelineAttributes(BaseModel):
    """``object_attributes`` section of a pipeline hook."""
    id: int
    status: str
    url: Optional[str] = None


class BuildPayload(BaseModel):
    """One job entry of a pipeline hook."""
    id: int
    stage: str
    name: str
    status: str
    duration: Optional[float] = None


class PipelineHookPayload(BaseModel):
    """Request model for a GitLab ``Pipeline Hook`` delivery."""
    object_attributes: PipelineAttributes
    project: ProjectPayload
    user: UserPayload
    builds: List[BuildPayload] = Field(default_factory=list)

    def to_event(self) -> PipelineEvent:
        """Convert to the reducer's pipeline event."""
        return PipelineEvent(
            pipeline_id=self.object_attributes.id,
            project_id=self.project.id,
            project_name=self.project.name,
            project_url=self.project.web_url,
            author=self.user.name,
            status=self.object_attributes.status,
            url=self.object_attributes.url,
            jobs=[
                JobSnapshot(
                    id=build.id,
                    stage=build.stage,
                    name=build.name,
                    status=build.status,
                    duration=build.duration,
                )
                for build in self.builds
            ],
        )


class JobHookPayload(BaseModel):
    """Request model for a GitLab ``Job Hook`` delivery."""
    pipeline_id: int
    build_id: int
    build_status: str
    build_duration: Optional[float] = None
    build_name: Optional[str] = None
    project_id: Optional[int] = None

    def to_event(self) -> JobEvent:
        """Convert to the reducer's job event."""
        return JobEvent(
            pipeline_id=self.pipeline_id,
            job_id=self.build_id,
            status=self.build_status,
            duration=self.build_duration,
        )
