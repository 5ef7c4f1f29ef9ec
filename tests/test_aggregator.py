"""Tests for analysis summaries and ordering."""

from kwpilot.models.keyword_models import Action, AnalyzedKeyword, Priority
from kwpilot.research.aggregator import filter_by_action, sort_for_action, summarize


def _kw(keyword, action, priority=None, score=50.0, needs_review=False):
    return AnalyzedKeyword(
        keyword=keyword,
        action=action,
        priority=priority,
        final_score=score,
        needs_review=needs_review,
    )


class TestSummarize:
    def test_counts(self):
        analyzed = [
            _kw("a", Action.ADD, Priority.URGENT),
            _kw("b", Action.ADD, Priority.HIGH),
            _kw("c", Action.REVIEW, Priority.REVIEW, needs_review=True),
            _kw("d", Action.EXCLUDE),
            _kw("e", Action.EXCLUDE_RELEVANCE),
            _kw("f", Action.MONITOR),
        ]
        summary = summarize(analyzed)
        assert summary.total_analyzed == 6
        assert summary.to_add == 2
        assert summary.to_review == 1
        assert summary.excluded == 2
        assert summary.urgent_count == 1
        assert summary.high_priority_count == 1
        assert summary.needs_review_count == 1
        assert summary.failed_batches == 0

    def test_empty(self):
        assert summarize([]).total_analyzed == 0


class TestSortForAction:
    def test_adds_first_by_priority_then_score(self):
        analyzed = [
            _kw("monitor-high", Action.MONITOR, score=95),
            _kw("add-standard", Action.ADD, Priority.STANDARD, score=90),
            _kw("add-urgent-low", Action.ADD, Priority.URGENT, score=60),
            _kw("add-urgent-high", Action.ADD, Priority.URGENT, score=85),
            _kw("exclude", Action.EXCLUDE, score=10),
            _kw("add-none", Action.ADD, None, score=99),
        ]
        assert [k.keyword for k in sort_for_action(analyzed)] == [
            "add-urgent-high",
            "add-urgent-low",
            "add-standard",
            "add-none",
            "monitor-high",
            "exclude",
        ]


class TestFilterByAction:
    def test_accepts_strings_and_enums(self):
        analyzed = [_kw("a", Action.ADD), _kw("b", Action.BOOST), _kw("c", Action.EXCLUDE)]
        assert [k.keyword for k in filter_by_action(analyzed, ["ADD", Action.BOOST])] == ["a", "b"]
