# PipePulse API Layer
"""Webhook routes and payload validation for PipePulse."""

from .validators import PipelineHookPayload, JobHookPayload
from .errors import error_response, register_error_handlers

__all__ = ["PipelineHookPayload", "JobHookPayload", "error_response", "register_error_handlers"]
