# PipePulse State Management
"""Pipeline state tracking for PipePulse."""

from .models import Job, JobEvent, JobSnapshot, Pipeline, PipelineEvent
from .registry import PipelineRegistry

__all__ = ["Job", "JobEvent", "JobSnapshot", "Pipeline", "PipelineEvent", "PipelineRegistry"]
