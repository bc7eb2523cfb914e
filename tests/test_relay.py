"""Tests for the pipeline relay orchestration."""

import pytest

from pipepulse.config import ProjectBindings
from pipepulse.relay import PipelineRelay
from pipepulse.slack.client import SlackClient
from pipepulse.state.models import JobEvent
from pipepulse.watcher import WatcherState

from conftest import CHANNEL_ID


class TestNewPipeline:
    """Test the first event of a pipeline."""

    def test_opens_thread_and_posts_status(self, relay, slack, make_event):
        """Test a new pipeline opens a thread and posts the rendered status."""
        pipeline = relay.handle_pipeline_event(make_event())

        threads = slack.calls_named('open_thread')
        assert threads == [{
            'channel_id': CHANNEL_ID,
            'title': 'Deployment #42',
            'body': 'Deployment <https://gitlab.example.com/acme/web-frontend/-/pipelines/42|#42>',
        }]

        posts = slack.calls_named('post_message')
        assert len(posts) == 1
        assert posts[0]['channel_id'] == CHANNEL_ID
        assert posts[0]['thread_ts'] is not None
        assert '*[RUNNING] DEPLOYMENT*' in posts[0]['text']
        assert 'Waiting for outputs...' in posts[0]['text']

        assert len(pipeline.messages) == 1
        assert pipeline.messages[0].is_sent

    def test_starts_one_watcher(self, relay, registry, make_event):
        """Test a watcher is armed for the new pipeline."""
        relay.handle_pipeline_event(make_event())

        watcher = relay.watcher_for(42)
        assert watcher is not None
        assert watcher.state is WatcherState.ARMED
        assert 42 in registry

    def test_unbound_project_skips_messages(self, relay, slack, registry, make_event):
        """Test a project without a channel is tracked but not posted."""
        pipeline = relay.handle_pipeline_event(make_event(project_id=404))

        assert slack.calls == []
        assert pipeline.messages == []
        assert relay.watcher_for(42) is None
        assert 42 in registry

    def test_slack_failure_does_not_block_tracking(self, relay, slack, registry, make_event):
        """Test Slack being down still tracks the pipeline."""
        slack.fail = True

        pipeline = relay.handle_pipeline_event(make_event())

        assert 42 in registry
        assert len(pipeline.messages) == 1
        assert not pipeline.messages[0].is_sent


class TestPipelineUpdates:
    """Test later events of a tracked pipeline."""

    def test_update_edits_message(self, relay, slack, make_event):
        """Test a later pipeline event edits the status message."""
        relay.handle_pipeline_event(make_event())

        relay.handle_pipeline_event(make_event(jobs=[(1, 'success'), (2, 'running')]))

        edits = slack.calls_named('update_message')
        assert len(edits) == 1
        assert '🟢 stage1: job1' in edits[0]['text']
        assert '🔵️ stage2: job2' in edits[0]['text']

    def test_finish_closes_and_evicts(self, relay, slack, registry, make_event):
        """Test pipeline 42 finishing gets a final edit, closes and is evicted."""
        pipeline = relay.handle_pipeline_event(make_event())
        watcher = relay.watcher_for(42)

        relay.handle_pipeline_event(make_event(status='success', jobs=[(1, 'success'), (2, 'success')]))

        final = slack.calls_named('update_message')[-1]['text']
        assert '*[SUCCESS] DEPLOYMENT*' in final
        assert 'BUILD LOG' not in final
        assert slack.calls_named('update_thread_title')[-1]['title'] == 'Deployment #42 - success'

        assert pipeline.finished is True
        assert pipeline.messages[0].closed
        assert 42 not in registry
        assert relay.watcher_for(42) is None
        assert watcher.state is WatcherState.STOPPED

    def test_edit_failure_still_advances_state(self, relay, slack, registry, make_event):
        """Test failed edits do not stop the pipeline from finishing."""
        pipeline = relay.handle_pipeline_event(make_event())
        slack.fail = True

        relay.handle_pipeline_event(make_event(status='failed', jobs=[(1, 'failed'), (2, 'skipped')]))

        assert pipeline.finished is True
        assert 42 not in registry

    def test_late_post_catches_up(self, relay, slack, make_event):
        """Test a message whose first post failed is posted on the next update."""
        slack.fail = True
        pipeline = relay.handle_pipeline_event(make_event())
        slack.fail = False

        relay.handle_job_event(JobEvent(pipeline_id=42, job_id=1, status='success', duration=4.0))

        posts = slack.calls_named('post_message')
        assert len(posts) == 1
        assert '🟢 stage1: job1' in posts[0]['text']
        assert pipeline.messages[0].is_sent

    def test_new_jobs_in_later_snapshot_are_dropped(self, relay, make_event):
        """Test later snapshots cannot add jobs."""
        pipeline = relay.handle_pipeline_event(make_event())

        relay.handle_pipeline_event(make_event(jobs=[(1, 'running'), (2, 'pending'), (3, 'pending')]))

        assert [job.id for job in pipeline.jobs] == [1, 2]


class TestJobEvents:
    """Test job-level events."""

    def test_job_event_updates_and_edits(self, relay, slack, make_event):
        """Test a job event updates the job and edits the message."""
        pipeline = relay.handle_pipeline_event(make_event())

        result = relay.handle_job_event(JobEvent(pipeline_id=42, job_id=2, status='running', duration=None))

        assert result is pipeline
        assert pipeline.get_job(2).status == 'running'
        assert len(slack.calls_named('update_message')) == 1

    def test_job_event_never_finishes(self, relay, registry, make_event):
        """Test job events alone never evict a pipeline."""
        pipeline = relay.handle_pipeline_event(make_event())

        relay.handle_job_event(JobEvent(pipeline_id=42, job_id=1, status='success', duration=1.0))
        relay.handle_job_event(JobEvent(pipeline_id=42, job_id=2, status='success', duration=1.0))

        assert pipeline.finished is False
        assert 42 in registry

    def test_untracked_pipeline_is_ignored(self, relay, slack, registry):
        """Test a job event for pipeline 999 creates nothing and raises nothing."""
        result = relay.handle_job_event(JobEvent(pipeline_id=999, job_id=1, status='running'))

        assert result is None
        assert slack.calls == []
        assert len(registry) == 0


class TestWatchCycle:
    """Test a watcher cycle driven through the relay."""

    def test_watch_cycle_edits_with_log_tail(self, relay, slack, log_provider, make_event):
        """Test the watcher's cycle renders the fetched tail."""
        relay.handle_pipeline_event(make_event())
        log_provider.logs[1] = 'Step 3/7 : RUN make'

        relay.watcher_for(42).tick()

        edits = slack.calls_named('update_message')
        assert len(edits) == 1
        assert '-------- BUILD LOG --------\nStep 3/7 : RUN make' in edits[0]['text']

    def test_shutdown_stops_watchers(self, registry, slack, log_provider, bindings, config, make_event):
        """Test shutdown stops watchers and closes messages."""
        relay = PipelineRelay(registry, slack, log_provider, bindings, config)
        pipeline = relay.handle_pipeline_event(make_event())
        watcher = relay.watcher_for(42)

        relay.shutdown()

        assert watcher.state is WatcherState.STOPPED
        assert pipeline.messages[0].closed


class TestRelayWithoutSlackToken:
    """Test a relay whose Slack client has no bot token."""

    @pytest.fixture
    def unconfigured_relay(self, registry, log_provider, bindings, config, monkeypatch):
        monkeypatch.delenv('SLACK_BOT_TOKEN', raising=False)
        relay = PipelineRelay(registry, SlackClient(), log_provider, bindings, config)
        yield relay
        relay.shutdown()

    def test_events_advance_state(self, unconfigured_relay, registry, make_event):
        """Test events are applied and nothing raises when Slack is unconfigured."""
        pipeline = unconfigured_relay.handle_pipeline_event(make_event())

        assert 42 in registry
        assert len(pipeline.messages) == 1
        assert not pipeline.messages[0].is_sent

        result = unconfigured_relay.handle_job_event(
            JobEvent(pipeline_id=42, job_id=2, status='running', duration=None)
        )
        assert result is pipeline
        assert pipeline.get_job(2).status == 'running'

        unconfigured_relay.handle_pipeline_event(
            make_event(status='success', jobs=[(1, 'success'), (2, 'success')])
        )
        assert pipeline.finished is True
        assert pipeline.messages[0].closed
        assert 42 not in registry


class TestRelayWithoutBindings:
    """Test a relay with no configured projects."""

    def test_empty_bindings(self, registry, slack, log_provider, config, make_event):
        """Test every pipeline is tracked silently."""
        relay = PipelineRelay(registry, slack, log_provider, ProjectBindings(), config)

        relay.handle_pipeline_event(make_event())
        relay.handle_pipeline_event(make_event(status='success', jobs=[(1, 'success'), (2, 'success')]))

        assert slack.calls == []
        assert len(registry) == 0


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
