"""Tests for UTC timestamps and their round trip through the database."""

from datetime import datetime, timedelta, timezone

from sqlmodel import Session, select

from kwpilot.core.clock import as_utc, utcnow
from kwpilot.models.prompt_models import PromptVersion
from kwpilot.models.queue_models import QueuedRequest
from kwpilot.store import cache_store, prompt_store, queue_store, token_store
from kwpilot.store.token_store import LINKEDIN


class TestClock:
    def test_utcnow_is_aware(self):
        assert utcnow().tzinfo is not None
        assert utcnow().utcoffset() == timedelta(0)

    def test_as_utc(self):
        naive = datetime(2026, 1, 1, 12, 0)
        assert as_utc(naive) == datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        ist = timezone(timedelta(hours=5, minutes=30))
        assert as_utc(datetime(2026, 1, 1, 17, 30, tzinfo=ist)).hour == 12


class TestRoundTrip:
    def test_prompt_row_reads_back_aware(self, engine):
        with Session(engine) as session:
            prompt_store.save_prompt(session, "seed", "generate seeds")

        with Session(engine) as fresh:
            row = fresh.exec(select(PromptVersion)).one()
            assert row.created_at.tzinfo is not None
            assert row.created_at <= utcnow()

    def test_queue_retry_time_compares_after_reload(self, engine):
        with Session(engine) as session:
            item = queue_store.enqueue(session, "fetch_ideas", {"seed_keywords": ["x"]})
            queue_store.fail(session, item.id, "boom")

        with Session(engine) as fresh:
            row = fresh.exec(select(QueuedRequest)).one()
            assert row.next_retry_at > utcnow()
            assert queue_store.process_next(fresh) is None

    def test_expiry_checks_after_reload(self, engine):
        with Session(engine) as session:
            cache_store.set_cached_keywords(session, "k", [{"keyword": "az 104"}], "google_ads", "india")
            token_store.save_token(session, LINKEDIN, "li")

        with Session(engine) as fresh:
            assert cache_store.get_cached_keywords(fresh, "k") is not None
            assert token_store.is_token_valid(fresh).value == "valid"
