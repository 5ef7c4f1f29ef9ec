"""Tests for the outbound request queue."""

import json
from datetime import timedelta

import pytest

from kwpilot.core.clock import utcnow
from kwpilot.models.queue_models import QueueStatus
from kwpilot.store import queue_store


class TestQueue:
    def test_priority_then_fifo(self, session):
        low = queue_store.enqueue(session, "keyword_ideas", {"n": 1})
        high = queue_store.enqueue(session, "keyword_ideas", {"n": 2}, priority=5)
        later_low = queue_store.enqueue(session, "keyword_ideas", {"n": 3})

        claimed = [queue_store.process_next(session).id for _ in range(3)]
        assert claimed == [high.id, low.id, later_low.id]
        assert queue_store.process_next(session) is None

    def test_claim_marks_processing(self, session):
        queue_store.enqueue(session, "keyword_ideas", {})
        item = queue_store.process_next(session)
        assert item.status == QueueStatus.PROCESSING.value

    def test_filter_by_type(self, session):
        queue_store.enqueue(session, "other", {})
        assert queue_store.process_next(session, "keyword_ideas") is None

    def test_complete_stores_result(self, session):
        item = queue_store.enqueue(session, "keyword_ideas", {})
        done = queue_store.complete(session, item.id, {"count": 3})
        assert done.status == QueueStatus.COMPLETED.value
        assert json.loads(done.result_json) == {"count": 3}

    def test_fail_backs_off_then_gives_up(self, session):
        item = queue_store.enqueue(session, "keyword_ideas", {}, max_retries=2)
        first = queue_store.fail(session, item.id, "quota")
        assert first.status == QueueStatus.PENDING.value
        assert first.retry_count == 1
        assert first.next_retry_at > utcnow() + timedelta(seconds=3)
        # Not due yet
        assert queue_store.process_next(session) is None

        final = queue_store.fail(session, item.id, "quota again")
        assert final.status == QueueStatus.FAILED.value
        assert final.next_retry_at is None
        assert final.error == "quota again"

    def test_missing_item(self, session):
        with pytest.raises(LookupError):
            queue_store.complete(session, 404)

    def test_status_and_clear_old(self, session):
        old = queue_store.enqueue(session, "keyword_ideas", {})
        queue_store.complete(session, old.id)
        queue_store.enqueue(session, "keyword_ideas", {})

        status = queue_store.get_queue_status(session)
        assert status["pending"] == 1 and status["completed"] == 1 and status["total"] == 2

        old.updated_at = utcnow() - timedelta(days=8)
        session.add(old)
        session.commit()
        assert queue_store.clear_old(session, days=7) == 1
        assert queue_store.get_queue_status(session)["total"] == 1
