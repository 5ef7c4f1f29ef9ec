"""KWPilot: AI Seed Keyword Generation."""

import re
from typing import List, Optional

from kwpilot.ai.client import chat_completion_with_fallback
from kwpilot.core.logging import get_logger
from kwpilot.models.keyword_models import SeedKeyword
from kwpilot.research.prompts import fill_prompt_variables

logger = get_logger("research.seeds")

MAX_SEEDS = 10

SEED_SYSTEM_PROMPT = (
    "You are a Google Ads keyword research expert. Generate exactly 10 high-intent "
    "seed keywords for the course described. Output only a numbered list (1-10), "
    "one keyword phrase per line, with no explanations or extra text."
)

_NUMBERED = re.compile(r"^\s*\d+[.)]\s*")
_QUOTES = "\"'`“”‘’"


class SeedParseError(ValueError):
    """The model response contained no usable seed keywords."""


def _clean(line: str) -> str:
    return line.strip().strip(_QUOTES).strip().rstrip(",;").strip()


def parse_seed_list(text: str) -> List[SeedKeyword]:
    """Extract seed keywords from a numbered-list response.

    Falls back to the first ten non-empty, non-heading lines when the model
    ignored the numbering instruction.
    """
    lines = [l for l in (text or "").splitlines() if l.strip()]

    candidates = [_clean(_NUMBERED.sub("", l)) for l in lines if _NUMBERED.match(l)]
    if not candidates:
        candidates = [
            _clean(l.lstrip("-*• ")) for l in lines if not l.strip().startswith("#")
        ][:MAX_SEEDS]

    seeds: List[SeedKeyword] = []
    seen = set()
    for kw in candidates:
        key = kw.lower()
        if not kw or key in seen:
            continue
        seen.add(key)
        seeds.append(SeedKeyword(keyword=kw, source="ai_generated"))
        if len(seeds) == MAX_SEEDS:
            break

    if not seeds:
        raise SeedParseError("Failed to parse seed keywords from AI response")
    return seeds


async def generate_seeds(
    prompt: str,
    course_name: str,
    course_url: str,
    vendor: Optional[str] = None,
    provider: str = "auto",
) -> List[SeedKeyword]:
    if not prompt or not course_name or not course_url:
        raise ValueError("Missing required fields: prompt, course_name, course_url")

    filled = fill_prompt_variables(
        prompt,
        {
            "COURSE_NAME": course_name,
            "VENDOR": vendor or "Not specified",
            "COURSE_URL": course_url,
        },
    )

    logger.info(f"🌱 Generating seeds for '{course_name}'")
    result = await chat_completion_with_fallback(
        [
            {"role": "system", "content": SEED_SYSTEM_PROMPT},
            {"role": "user", "content": filled},
        ],
        temperature=0.7,
        max_tokens=500,
        provider=provider,
    )
    seeds = parse_seed_list(result.content)
    logger.info(
        f"✅ Generated {len(seeds)} seeds via {result.provider} ({result.model})",
        extra={"provider": result.provider},
    )
    return seeds
