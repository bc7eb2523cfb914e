"""Tests for the per-pipeline log watcher."""

import threading

import pytest

from pipepulse.gitlab.client import LogFetchError
from pipepulse.watcher import PipelineWatcher, WatcherState


class TestPipelineWatcher:
    """Test PipelineWatcher watch cycles.

    Intervals are long so no timer fires on its own; cycles are driven
    by calling ``tick()`` directly.
    """

    @pytest.fixture
    def updates(self):
        return []

    @pytest.fixture
    def make_watcher(self, registry, log_provider, updates):
        watchers = []

        def factory(pipeline_id=42, **kwargs):
            watcher = PipelineWatcher(
                pipeline_id,
                registry,
                log_provider,
                on_update=updates.append,
                interval_sec=60.0,
                lines_limit=10,
                **kwargs
            )
            watchers.append(watcher)
            return watcher

        yield factory
        for watcher in watchers:
            watcher.stop()

    def test_start_arms_once(self, registry, make_event, make_watcher):
        """Test a watcher starts only once."""
        registry.upsert_from_pipeline_event(make_event())
        watcher = make_watcher()

        assert watcher.start() is True
        assert watcher.state is WatcherState.ARMED
        assert watcher.start() is False

    def test_tick_fetches_oldest_running_job(self, registry, log_provider, updates, make_event, make_watcher):
        """Test a cycle tails the lowest running job id and re-renders."""
        pipeline, _ = registry.upsert_from_pipeline_event(
            make_event(jobs=[(5, 'running'), (3, 'running'), (8, 'pending')])
        )
        log_provider.logs[3] = 'compiling...\ndone'
        watcher = make_watcher()

        rescheduled = watcher.tick()

        assert log_provider.calls == [(7, 42, 3, 10)]
        assert pipeline.log_string == 'compiling...\ndone'
        assert updates == [pipeline]
        assert rescheduled is True
        assert watcher.state is WatcherState.ARMED

    def test_no_running_job_stops_without_fetch(self, registry, log_provider, updates, make_event, make_watcher):
        """Test a cycle with no running job neither fetches nor reschedules."""
        registry.upsert_from_pipeline_event(make_event(jobs=[(1, 'pending'), (2, 'pending')]))
        watcher = make_watcher()

        rescheduled = watcher.tick()

        assert rescheduled is False
        assert log_provider.calls == []
        assert updates == []
        assert watcher.state is WatcherState.STOPPED

    def test_keep_alive_when_idle(self, registry, log_provider, make_event, make_watcher):
        """Test the keep-alive option re-arms without fetching."""
        registry.upsert_from_pipeline_event(make_event(jobs=[(1, 'pending')]))
        watcher = make_watcher(keep_alive_when_idle=True)

        rescheduled = watcher.tick()

        assert rescheduled is True
        assert log_provider.calls == []
        assert watcher.state is WatcherState.ARMED

    def test_fetch_failure_keeps_log_and_reschedules(self, registry, log_provider, updates, make_event, make_watcher):
        """Test a failed fetch skips the update but keeps watching."""
        pipeline, _ = registry.upsert_from_pipeline_event(make_event())
        pipeline.log_string = 'previous tail'
        log_provider.error = LogFetchError('timeout')
        watcher = make_watcher()

        rescheduled = watcher.tick()

        assert pipeline.log_string == 'previous tail'
        assert updates == []
        assert rescheduled is True

    def test_removed_pipeline_is_noop(self, registry, log_provider, make_event, make_watcher):
        """Test a wake after eviction does nothing and stops."""
        registry.upsert_from_pipeline_event(make_event())
        watcher = make_watcher()
        registry.remove(42)

        assert watcher.tick() is False
        assert log_provider.calls == []
        assert watcher.state is WatcherState.STOPPED

    def test_removed_during_fetch(self, registry, log_provider, updates, make_event, make_watcher):
        """Test eviction while the log is fetched discards the result."""
        pipeline, _ = registry.upsert_from_pipeline_event(make_event())
        original_log = pipeline.log_string

        def fetch_and_evict(*args):
            registry.remove(42)
            return 'late output'

        log_provider.get_last_job_log_lines = fetch_and_evict
        watcher = make_watcher()

        assert watcher.tick() is False
        assert pipeline.log_string == original_log
        assert updates == []

    def test_removed_between_lookups(self, registry, log_provider, make_event, make_watcher, monkeypatch):
        """Test eviction right after the pipeline lookup creates no stray lock."""
        registry.upsert_from_pipeline_event(make_event())
        lookup = registry.get

        def get_then_evict(pipeline_id):
            pipeline = lookup(pipeline_id)
            registry.remove(pipeline_id)
            return pipeline

        monkeypatch.setattr(registry, 'get', get_then_evict)
        watcher = make_watcher()

        assert watcher.tick() is False
        assert log_provider.calls == []
        assert watcher.state is WatcherState.STOPPED
        assert registry._locks == {}

    def test_finished_pipeline_stops(self, registry, updates, make_event, make_watcher):
        """Test a pipeline marked finished during the cycle stops the loop."""
        pipeline, _ = registry.upsert_from_pipeline_event(make_event())

        def finish(p):
            updates.append(p)
            p.finished = True

        watcher = make_watcher()
        watcher.on_update = finish

        assert watcher.tick() is False
        assert watcher.state is WatcherState.STOPPED
        assert updates == [pipeline]

    def test_update_failure_does_not_stop(self, registry, make_event, make_watcher):
        """Test an exception from the update callback is contained."""
        registry.upsert_from_pipeline_event(make_event())

        def broken(pipeline):
            raise RuntimeError('slack down')

        watcher = make_watcher()
        watcher.on_update = broken

        assert watcher.tick() is True

    def test_stop_is_idempotent(self, registry, make_event, make_watcher):
        """Test stop can be called repeatedly and blocks later cycles."""
        registry.upsert_from_pipeline_event(make_event())
        watcher = make_watcher()
        watcher.start()

        watcher.stop()
        watcher.stop()

        assert watcher.state is WatcherState.STOPPED
        assert watcher.tick() is False
        assert watcher.start() is False


class TestWatcherTimers:
    """Test the real timer chain."""

    def test_started_watcher_wakes_repeatedly(self, registry, log_provider, make_event):
        """Test start arms a timer whose wakes fetch and re-arm on their own."""
        pipeline, _ = registry.upsert_from_pipeline_event(make_event())
        updates = []
        woke_twice = threading.Event()

        def on_update(p):
            updates.append(p)
            if len(updates) >= 2:
                woke_twice.set()

        watcher = PipelineWatcher(42, registry, log_provider, on_update=on_update, interval_sec=0.01)
        try:
            watcher.start()

            assert woke_twice.wait(timeout=5)
        finally:
            watcher.stop()

        assert updates[0] is pipeline
        assert pipeline.log_string == 'log of job 1'
        assert log_provider.calls[0] == (7, 42, 1, 10)
        assert watcher.state is WatcherState.STOPPED


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
