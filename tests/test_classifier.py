"""Tests for batched keyword classification."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from helpers import completion, llm_record, llm_response, make_idea
from kwpilot.ai.base_provider import AIProviderError
from kwpilot.models.keyword_models import (
    Action,
    Competition,
    MatchType,
    Priority,
    RelevanceStatus,
    Tier,
)
from kwpilot.research.classifier import (
    KeywordClassifier,
    analyze_keywords,
    chunk,
    dedupe_keywords,
    format_keywords_csv,
    merge_batch,
    merge_record,
    needs_review_keyword,
)

PROMPT = "Course {{COURSE_NAME}}\n{{KEYWORDS_DATA}}"


def _responder(fail_first: int = 0):
    """Chat mock answering every batch with ADD records for the keywords it was sent."""
    calls = {"n": 0}

    async def _reply(messages, **kwargs):
        calls["n"] += 1
        if calls["n"] <= fail_first:
            raise AIProviderError("upstream timeout", 502)
        rows = messages[1]["content"].split("\n")
        keywords = [r.split(",")[0] for r in rows[rows.index("Keyword,Avg Monthly Searches,Competition,Competition Index") + 1 :]]
        return completion(llm_response([llm_record(k) for k in keywords]))

    return AsyncMock(side_effect=_reply)


class TestInputShaping:
    def test_csv_format(self):
        csv = format_keywords_csv([make_idea("aws course", 2400, Competition.HIGH)])
        assert csv.splitlines() == [
            "Keyword,Avg Monthly Searches,Competition,Competition Index",
            "aws course,2400,HIGH,0",
        ]

    def test_dedupe_keeps_first_case_insensitive(self):
        ideas = [make_idea("AWS course", 10), make_idea("aws course", 20), make_idea(" ", 5)]
        assert [(k.keyword, k.avg_monthly_searches) for k in dedupe_keywords(ideas)] == [("AWS course", 10)]

    def test_chunk(self):
        assert chunk(list(range(5)), 2) == [[0, 1], [2, 3], [4]]


class TestMergeRecord:
    def test_input_metrics_win_over_model(self):
        idea = make_idea("aws course", 2400)
        record = {**llm_record("aws course"), "avg_monthly_searches": 1}
        merged = merge_record(idea, record)
        assert merged.avg_monthly_searches == 2400
        assert merged.action == Action.ADD
        assert merged.priority == Priority.HIGH
        assert merged.match_type == MatchType.PHRASE
        assert merged.tier == Tier.TIER_1
        assert merged.relevance_status == RelevanceStatus.DIRECT_RELATED

    def test_scores_clamped(self):
        record = {"keyword": "x", "courseRelevance": 42, "finalScore": -5, "action": "ADD"}
        merged = merge_record(make_idea("x"), record)
        assert merged.course_relevance == 10
        assert merged.final_score == 0

    def test_missing_fields_take_exclusion_defaults(self):
        merged = merge_record(make_idea("x"), {"keyword": "x"})
        assert merged.action == Action.EXCLUDE
        assert merged.tier == Tier.EXCLUDE
        assert merged.negative_signals == 10
        assert merged.priority is None

    def test_unknown_labels_fall_to_review(self):
        merged = merge_record(make_idea("x"), {"keyword": "x", "action": "PURCHASE", "tier": "Gold"})
        assert merged.action == Action.REVIEW
        assert merged.tier == Tier.REVIEW

    def test_priority_without_emoji_still_matches(self):
        merged = merge_record(make_idea("x"), {"keyword": "x", "action": "ADD", "priority": "urgent"})
        assert merged.priority == Priority.URGENT


class TestNeedsReview:
    def test_neutral_scores_and_bonus(self):
        low = needs_review_keyword(make_idea("x", competition=Competition.LOW), "failed")
        high = needs_review_keyword(make_idea("y", competition=Competition.HIGH), "failed")
        assert low.base_score == 45 and low.final_score == 55
        assert high.final_score == 45
        assert low.needs_review and low.action == Action.REVIEW and low.priority == Priority.REVIEW
        assert low.review_reason == "failed"


class TestMergeBatch:
    def test_missing_and_unknown_keywords(self):
        batch = [make_idea("a"), make_idea("b")]
        results, missing = merge_batch(batch, [llm_record("A"), llm_record("zzz")])
        assert missing == 1
        assert [r.keyword for r in results] == ["a", "b"]
        assert results[0].action == Action.ADD
        assert results[1].needs_review


class TestKeywordClassifier:
    @pytest.fixture(autouse=True)
    def _provider(self):
        with patch("kwpilot.research.classifier.select_provider", return_value=("openrouter", None)):
            yield

    async def test_one_result_per_distinct_keyword_in_order(self, no_sleep):
        ideas = [make_idea(f"kw {i}") for i in range(7)] + [make_idea("KW 0")]
        mock = _responder()
        with patch("kwpilot.research.classifier.chat_completion_with_fallback", mock):
            result = await KeywordClassifier(batch_size=3, concurrency=2).classify(PROMPT, ideas, {"COURSE_NAME": "X"})
        assert [k.keyword for k in result.analyzed_keywords] == [f"kw {i}" for i in range(7)]
        assert mock.call_count == 3
        assert [b.status for b in result.batches] == ["ok", "ok", "ok"]
        assert result.summary.to_add == 7
        assert result.provider == "openrouter"

    async def test_concurrency_caps_in_flight_batches(self):
        reply = _responder()
        state = {"active": 0, "peak": 0}

        async def tracked(messages, **kwargs):
            state["active"] += 1
            state["peak"] = max(state["peak"], state["active"])
            try:
                await asyncio.sleep(0.01)
                return await reply(messages, **kwargs)
            finally:
                state["active"] -= 1

        ideas = [make_idea(f"kw {i}") for i in range(6)]
        with patch("kwpilot.research.classifier.chat_completion_with_fallback", AsyncMock(side_effect=tracked)):
            result = await KeywordClassifier(batch_size=1, concurrency=2).classify(PROMPT, ideas, {})
        assert len(result.analyzed_keywords) == 6
        assert state["peak"] == 2

    async def test_retry_then_success(self, no_sleep):
        mock = _responder(fail_first=2)
        with patch("kwpilot.research.classifier.chat_completion_with_fallback", mock):
            result = await KeywordClassifier(batch_size=10, max_retries=2, retry_base_delay=2).classify(
                PROMPT, [make_idea("a")], {}
            )
        assert result.batches[0].attempts == 3
        assert result.batches[0].status == "ok"
        assert [c.args[0] for c in no_sleep.await_args_list] == [2, 4]

    async def test_exhausted_retries_degrade_to_review(self, no_sleep):
        mock = AsyncMock(side_effect=AIProviderError("boom", 502))
        with patch("kwpilot.research.classifier.chat_completion_with_fallback", mock):
            result = await KeywordClassifier(batch_size=2, max_retries=1).classify(
                PROMPT, [make_idea("a"), make_idea("b"), make_idea("c")], {}
            )
        assert mock.call_count == 4
        assert len(result.analyzed_keywords) == 3
        assert all(k.needs_review for k in result.analyzed_keywords)
        assert result.summary.failed_batches == 2
        assert result.summary.needs_review_count == 3

    async def test_unparseable_response_is_retried(self, no_sleep):
        good = completion(llm_response([llm_record("a")]))
        mock = AsyncMock(side_effect=[completion("sorry, no"), good])
        with patch("kwpilot.research.classifier.chat_completion_with_fallback", mock):
            result = await KeywordClassifier(max_retries=2).classify(PROMPT, [make_idea("a")], {})
        assert result.batches[0].attempts == 2
        assert not result.analyzed_keywords[0].needs_review

    async def test_partial_batch(self, no_sleep):
        mock = AsyncMock(return_value=completion(llm_response([llm_record("a")])))
        with patch("kwpilot.research.classifier.chat_completion_with_fallback", mock):
            result = await KeywordClassifier().classify(PROMPT, [make_idea("a"), make_idea("b")], {})
        assert result.batches[0].status == "partial"
        assert result.batches[0].recovered == 1
        assert result.analyzed_keywords[1].needs_review

    async def test_empty_input_raises(self):
        with pytest.raises(ValueError, match="No keywords"):
            await KeywordClassifier().classify(PROMPT, [], {})


class TestAnalyzeKeywords:
    async def test_variables_defaulted(self):
        with patch("kwpilot.research.classifier.KeywordClassifier.classify", new_callable=AsyncMock) as classify:
            await analyze_keywords("prompt", "Power BI", [make_idea("pl 300")])
        variables = classify.call_args.args[2]
        assert variables == {
            "COURSE_NAME": "Power BI",
            "CERTIFICATION_CODE": "N/A",
            "VENDOR": "Not specified",
            "RELATED_TERMS": "Power BI",
        }

    async def test_missing_course_name_raises(self):
        with pytest.raises(ValueError):
            await analyze_keywords("prompt", "", [make_idea("x")])
