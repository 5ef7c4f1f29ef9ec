"""KWPilot: Analysis Aggregation."""

from typing import Iterable, List, Sequence

from kwpilot.models.keyword_models import Action, AnalysisSummary, AnalyzedKeyword, Priority

PRIORITY_RANK = {
    Priority.URGENT: 0,
    Priority.HIGH: 1,
    Priority.MEDIUM: 2,
    Priority.STANDARD: 3,
    Priority.REVIEW: 4,
}

EXCLUDED_ACTIONS = (Action.EXCLUDE, Action.EXCLUDE_RELEVANCE)


def summarize(analyzed: Sequence[AnalyzedKeyword]) -> AnalysisSummary:
    return AnalysisSummary(
        total_analyzed=len(analyzed),
        to_add=sum(1 for k in analyzed if k.action == Action.ADD),
        to_review=sum(1 for k in analyzed if k.action == Action.REVIEW),
        excluded=sum(1 for k in analyzed if k.action in EXCLUDED_ACTIONS),
        urgent_count=sum(1 for k in analyzed if k.priority == Priority.URGENT),
        high_priority_count=sum(1 for k in analyzed if k.priority == Priority.HIGH),
        needs_review_count=sum(1 for k in analyzed if k.needs_review),
    )


def sort_for_action(analyzed: Iterable[AnalyzedKeyword]) -> List[AnalyzedKeyword]:
    """ADD keywords first by priority, then everything by final score descending."""

    def rank(k: AnalyzedKeyword):
        is_add = k.action == Action.ADD
        priority = PRIORITY_RANK.get(k.priority, len(PRIORITY_RANK)) if is_add else 0
        return (0 if is_add else 1, priority, -k.final_score)

    return sorted(analyzed, key=rank)


def filter_by_action(
    analyzed: Iterable[AnalyzedKeyword], actions: Iterable[Action | str]
) -> List[AnalyzedKeyword]:
    wanted = {Action(a) for a in actions}
    return [k for k in analyzed if k.action in wanted]
