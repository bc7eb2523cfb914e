# PipePulse GitLab Integration
"""GitLab REST API client for PipePulse."""

from .client import GitLabClient, LogFetchError

__all__ = ["GitLabClient", "LogFetchError"]
