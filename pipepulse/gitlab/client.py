"""GitLab REST API client used to tail live job logs.

Only the job trace endpoint is needed: the live log of a running job is
fetched in full and trimmed to its last lines on our side.
"""

import logging
import re
from typing import Optional

import requests

from ..utils.decorators import retry


logger = logging.getLogger("pipepulse.gitlab")


# CSI escape sequences (colours, cursor moves) emitted by CI runners
ANSI_ESCAPE = re.compile(r'\x1b\[[0-9;?]*[A-Za-z]')

# Collapsible section markers, e.g. "section_start:1700000000:build_script\r"
SECTION_MARKER = re.compile(r'section_(?:start|end):\d+:[^\r\n]*?\r')


class LogFetchError(Exception):
    """Raised when a job log cannot be fetched."""
    pass


def clean_trace(trace: str) -> str:
    """Strip terminal escapes and section markers from a raw job trace."""
    trace = SECTION_MARKER.sub('', trace)
    trace = ANSI_ESCAPE.sub('', trace)
    return trace.replace('\r\n', '\n').replace('\r', '\n')


def tail_lines(text: str, lines_limit: int) -> str:
    """Last ``lines_limit`` non-blank lines of ``text``."""
    lines = [line for line in text.split('\n') if line.strip()]
    if lines_limit <= 0:
        return ''
    return '\n'.join(lines[-lines_limit:])


class GitLabClient:
    """GitLab REST API client authenticated with a private/project token."""

    API_PREFIX = "/api/v4"

    def __init__(
        self,
        base_url: str = "https://gitlab.com",
        token: Optional[str] = None,
        timeout: float = 10.0
    ):
        """Initialize GitLab client.

        Args:
            base_url: GitLab instance URL
            token: Access token with ``read_api`` scope
            timeout: Per-request timeout in seconds
        """
        self.base_url = base_url.rstrip('/')
        self.token = token
        self.timeout = timeout

        # Request session for connection pooling
        self._session = requests.Session()
        if token:
            self._session.headers["PRIVATE-TOKEN"] = token

        logger.info(f"GitLab client initialized for {self.base_url}")

    @classmethod
    def from_config(cls, config) -> "GitLabClient":
        """Create client from a GitLabConfig section."""
        return cls(
            base_url=config.base_url,
            token=config.token,
            timeout=config.timeout_sec,
        )

    def is_configured(self) -> bool:
        return bool(self.token)

    def _url(self, path: str) -> str:
        return f"{self.base_url}{self.API_PREFIX}{path}"

    @retry(max_attempts=2, backoff_seconds=[0.5], exceptions=(requests.RequestException,))
    def _get(self, path: str) -> requests.Response:
        response = self._session.get(self._url(path), timeout=self.timeout)
        response.raise_for_status()
        return response

    def get_job_trace(self, project_id, job_id) -> str:
        """Get the raw log of a job.

        Args:
            project_id: GitLab project id
            job_id: Job id

        Returns:
            Raw trace text

        Raises:
            LogFetchError: If the request fails
        """
        logger.debug(f"Fetching trace of job {job_id} in project {project_id}")

        try:
            response = self._get(f"/projects/{project_id}/jobs/{job_id}/trace")
        except requests.RequestException as e:
            raise LogFetchError(f"Failed to fetch log of job {job_id}: {e}") from e

        return response.text

    def get_last_job_log_lines(
        self,
        project_id,
        pipeline_id: int,
        job_id: int,
        lines_limit: int = 10
    ) -> str:
        """Get the last lines of a job's live log.

        Args:
            project_id: GitLab project id
            pipeline_id: Pipeline the job belongs to
            job_id: Job id
            lines_limit: Maximum number of lines returned

        Returns:
            Cleaned log tail joined with newlines

        Raises:
            LogFetchError: If the request fails
        """
        trace = self.get_job_trace(project_id, job_id)
        tail = tail_lines(clean_trace(trace), lines_limit)
        logger.debug(
            f"Fetched {len(tail.splitlines())} log lines for job {job_id} "
            f"of pipeline {pipeline_id}"
        )
        return tail
