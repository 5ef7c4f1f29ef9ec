"""Builders shared by the test modules."""

import json
from typing import Dict, List

from kwpilot.ai.base_provider import CompletionResult
from kwpilot.models.keyword_models import Competition, KeywordIdea


def make_idea(keyword: str, volume: int = 1000, competition: Competition = Competition.LOW) -> KeywordIdea:
    return KeywordIdea(keyword=keyword, avg_monthly_searches=volume, competition=competition)


def completion(content: str, provider: str = "openrouter") -> CompletionResult:
    return CompletionResult(content=content, tokens_used=100, provider=provider, model="test-model")


def llm_record(keyword: str, action: str = "ADD", priority: str = "🟠 HIGH", score: float = 80) -> Dict:
    """One classification record as the model returns it (camelCase keys)."""
    return {
        "keyword": keyword,
        "courseRelevance": 9,
        "conversionPotential": 8,
        "searchIntent": 8,
        "vendorSpecificity": 7,
        "keywordSpecificity": 7,
        "actionWordStrength": 6,
        "commercialSignals": 7,
        "negativeSignals": 10,
        "koenigFit": 8,
        "relevanceStatus": "DIRECT_RELATED",
        "baseScore": score - 10,
        "competitionBonus": 10,
        "finalScore": score,
        "tier": "Tier 1",
        "matchType": "PHRASE",
        "action": action,
        "priority": priority,
    }


def llm_response(records: List[Dict]) -> str:
    return json.dumps({"analyzedKeywords": records})
