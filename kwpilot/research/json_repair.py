"""KWPilot: Recovery of JSON from imperfect LLM output.

Models asked for JSON still wrap it in markdown fences, leave trailing commas,
or get cut off mid-array when they hit max_tokens. The helpers here try
progressively looser parses and, as a last resort, salvage every complete
object from the text.
"""

import json
import re
from typing import Any, Dict, List

from kwpilot.core.logging import get_logger

logger = get_logger("research.json_repair")

RECORDS_KEY = "analyzedKeywords"

_FENCE = re.compile(r"^```[a-zA-Z0-9_-]*\s*\n?|\n?```\s*$")
_TRAILING_COMMA = re.compile(r",\s*([\}\]])")


class LLMResponseParseError(ValueError):
    """No usable JSON could be recovered from a model response."""


def strip_fences(text: str) -> str:
    clean = text.strip()
    if clean.startswith("```"):
        clean = _FENCE.sub("", clean).strip()
    return clean


def remove_trailing_commas(text: str) -> str:
    return _TRAILING_COMMA.sub(r"\1", text)


def _try_load(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


def _find_object_end(text: str, start: int) -> int:
    """Index of the brace closing the object opened at text[start], or -1."""
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return -1


def scan_balanced_objects(text: str) -> List[Dict[str, Any]]:
    """Every parseable, balanced {...} object, outermost first.

    When an opening brace never closes (truncated output) the scan moves one
    character on, so complete objects nested inside it are still found.
    """
    objects: List[Dict[str, Any]] = []
    i = 0
    while True:
        start = text.find("{", i)
        if start == -1:
            break
        end = _find_object_end(text, start)
        if end == -1:
            i = start + 1
            continue
        candidate = text[start : end + 1]
        parsed = _try_load(candidate)
        if parsed is None:
            parsed = _try_load(remove_trailing_commas(candidate))
        if isinstance(parsed, dict):
            objects.append(parsed)
            i = end + 1
        else:
            i = start + 1
    return objects


def parse_llm_json(text: str) -> Any:
    """Parse model output as JSON, repairing common defects.

    Order: fences stripped → outermost {...} span → trailing commas removed.
    Raises LLMResponseParseError if none of those yield valid JSON.
    """
    if not text or not text.strip():
        raise LLMResponseParseError("Empty response")

    clean = strip_fences(text)
    parsed = _try_load(clean)
    if parsed is not None:
        return parsed

    start, end = clean.find("{"), clean.rfind("}")
    if start != -1 and end > start:
        span = clean[start : end + 1]
        parsed = _try_load(span)
        if parsed is not None:
            return parsed
        parsed = _try_load(remove_trailing_commas(span))
        if parsed is not None:
            logger.info("🩹 Recovered JSON after removing trailing commas")
            return parsed

    parsed = _try_load(remove_trailing_commas(clean))
    if parsed is not None:
        return parsed

    raise LLMResponseParseError(f"Unparseable JSON response: {clean[:200]}")


def _records_from(parsed: Any) -> List[Dict[str, Any]] | None:
    if isinstance(parsed, dict):
        records = parsed.get(RECORDS_KEY)
        if isinstance(records, list):
            return [r for r in records if isinstance(r, dict)]
        if "keyword" in parsed:
            return [parsed]
    if isinstance(parsed, list):
        return [r for r in parsed if isinstance(r, dict)]
    return None


def extract_keyword_records(text: str) -> List[Dict[str, Any]]:
    """Pull keyword records out of a classification response.

    Accepts {"analyzedKeywords": [...]}, a bare list, or truncated output
    from which individual records can be salvaged.
    """
    try:
        records = _records_from(parse_llm_json(text))
        if records is not None:
            return records
    except LLMResponseParseError:
        pass

    objects = scan_balanced_objects(strip_fences(text or ""))
    for obj in objects:
        records = obj.get(RECORDS_KEY)
        if isinstance(records, list):
            return [r for r in records if isinstance(r, dict)]

    salvaged = [obj for obj in objects if "keyword" in obj]
    if salvaged:
        logger.info(f"🩹 Salvaged {len(salvaged)} keyword records from malformed response")
        return salvaged

    raise LLMResponseParseError("No keyword records found in response")
