"""Shared fixtures and fakes for PipePulse tests."""

import pytest

from pipepulse.config import Config, ProjectBindings, SlackConfig, WatcherConfig
from pipepulse.relay import PipelineRelay
from pipepulse.slack.client import SlackDeliveryError
from pipepulse.state.models import JobSnapshot, PipelineEvent
from pipepulse.state.registry import PipelineRegistry


PROJECT_ID = 7
CHANNEL_ID = 'C0DEPLOYS'


class FakeSlackClient:
    """Records every Slack call instead of talking to Slack."""

    def __init__(self):
        self.calls = []
        self.fail = False
        self._counter = 0

    def is_configured(self):
        return True

    def _next_ts(self):
        self._counter += 1
        return f'1700000000.{self._counter:06d}'

    def _record(self, name, **kwargs):
        if self.fail:
            raise SlackDeliveryError(f'{name} failed')
        self.calls.append((name, kwargs))

    def calls_named(self, name):
        return [kwargs for call_name, kwargs in self.calls if call_name == name]

    def open_thread(self, channel_id, title, body):
        self._record('open_thread', channel_id=channel_id, title=title, body=body)
        return self._next_ts()

    def post_message(self, channel_id, thread_ts, text):
        self._record('post_message', channel_id=channel_id, thread_ts=thread_ts, text=text)
        return self._next_ts()

    def update_message(self, channel_id, ts, text):
        self._record('update_message', channel_id=channel_id, ts=ts, text=text)

    def update_thread_title(self, channel_id, thread_ts, title, body):
        self._record('update_thread_title', channel_id=channel_id, thread_ts=thread_ts, title=title, body=body)


class FakeLogProvider:
    """Returns canned log tails per job id."""

    def __init__(self, logs=None):
        self.logs = logs or {}
        self.calls = []
        self.error = None

    def is_configured(self):
        return True

    def get_last_job_log_lines(self, project_id, pipeline_id, job_id, lines_limit=10):
        self.calls.append((project_id, pipeline_id, job_id, lines_limit))
        if self.error is not None:
            raise self.error
        return self.logs.get(job_id, f'log of job {job_id}')


def pipeline_event(pipeline_id=42, status='running', jobs=None, project_id=PROJECT_ID):
    """Build a PipelineEvent; ``jobs`` is a list of (id, status) pairs."""
    jobs = jobs if jobs is not None else [(1, 'running'), (2, 'pending')]
    return PipelineEvent(
        pipeline_id=pipeline_id,
        project_id=project_id,
        project_name='web-frontend',
        project_url='https://gitlab.example.com/acme/web-frontend',
        author='Ada Lovelace',
        status=status,
        url=f'https://gitlab.example.com/acme/web-frontend/-/pipelines/{pipeline_id}',
        jobs=[
            JobSnapshot(id=job_id, stage=f'stage{job_id}', name=f'job{job_id}', status=job_status, duration=None)
            for job_id, job_status in jobs
        ],
    )


@pytest.fixture
def make_event():
    """Factory for pipeline events."""
    return pipeline_event


@pytest.fixture
def registry():
    return PipelineRegistry()


@pytest.fixture
def slack():
    return FakeSlackClient()


@pytest.fixture
def log_provider():
    return FakeLogProvider()


@pytest.fixture
def bindings():
    return ProjectBindings({str(PROJECT_ID): {'name': 'web-frontend', 'channel_id': CHANNEL_ID}})


@pytest.fixture
def config():
    """Config whose timers never fire during a test."""
    return Config(
        slack=SlackConfig(min_update_interval_sec=0.0),
        watcher=WatcherConfig(interval_sec=60.0, lines_limit=10),
    )


@pytest.fixture
def relay(registry, slack, log_provider, bindings, config):
    """Relay wired to fakes; watchers are stopped on teardown."""
    relay = PipelineRelay(registry, slack, log_provider, bindings, config)
    yield relay
    relay.shutdown()
