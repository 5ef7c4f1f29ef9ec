"""Tests for the scheduled maintenance jobs."""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

from kwpilot.core.clock import utcnow
from kwpilot.scheduler import jobs
from kwpilot.store import cache_store, queue_store


class TestRunCleanup:
    def test_counts_per_table(self, session):
        entry = cache_store.set_cached_keywords(session, "k", [], "google_ads", "india")
        entry.expires_at = utcnow() - timedelta(hours=1)
        session.add(entry)
        session.commit()
        cache_store.mark_quota_exhausted(session, "google_ads:1", minutes=-1)

        counts = jobs.run_cleanup(session)
        assert counts == {
            "keyword_cache": 1,
            "report_cache": 0,
            "keyword_volumes": 0,
            "rate_limits": 1,
            "request_queue": 0,
        }


class TestProcessRequestQueue:
    async def test_stops_when_queue_empty(self, session):
        outcomes = AsyncMock(side_effect=[(1, "completed"), (2, "pending"), None])
        with patch.object(jobs, "get_session", lambda: iter([session])), patch.object(
            jobs, "process_queued_fetch", outcomes
        ):
            await jobs.process_request_queue()
        assert outcomes.await_count == 3

    async def test_caps_items_per_run(self, session):
        for _ in range(jobs.QUEUE_ITEMS_PER_RUN + 2):
            queue_store.enqueue(session, "fetch_ideas", {"seed_keywords": ["x"]})
        outcomes = AsyncMock(return_value=(1, "completed"))
        with patch.object(jobs, "get_session", lambda: iter([session])), patch.object(
            jobs, "process_queued_fetch", outcomes
        ):
            await jobs.process_request_queue()
        assert outcomes.await_count == jobs.QUEUE_ITEMS_PER_RUN


class TestStartScheduler:
    def test_disabled(self, monkeypatch):
        monkeypatch.setattr(jobs.settings, "scheduler_enabled", False)
        with patch.object(jobs.scheduler, "add_job") as add_job:
            jobs.start_scheduler()
        add_job.assert_not_called()

    def test_registers_jobs(self, monkeypatch):
        monkeypatch.setattr(jobs.settings, "scheduler_enabled", True)
        with patch.object(jobs.scheduler, "add_job") as add_job, patch.object(jobs.scheduler, "start"):
            jobs.start_scheduler()
        ids = [c.kwargs["id"] for c in add_job.call_args_list]
        assert ids == ["daily_cache_cleanup", "process_request_queue"]
        assert add_job.call_args_list[0].kwargs["hour"] == jobs.settings.cleanup_hour
