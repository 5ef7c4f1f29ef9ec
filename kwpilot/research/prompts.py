"""KWPilot: Default Prompt Templates & Variable Filling."""

import re
from typing import Dict

SEED_VARIABLES = ["COURSE_NAME", "VENDOR", "COURSE_URL"]
ANALYSIS_VARIABLES = [
    "COURSE_NAME",
    "CERTIFICATION_CODE",
    "VENDOR",
    "RELATED_TERMS",
    "KEYWORDS_DATA",
]

DEFAULT_SEED_PROMPT = """I will give you the exact official course name and (if relevant) the main technology or vendor.
Generate exactly 10 high-intent seed keyword combinations that I can paste into Google Ads Keyword Planner → "Discover new keywords → Start with keywords".

Rules:

Prioritize important words from the course name (exam code, technology name, role, and "course / training / certification").

Output only a simple numbered list (1–10), one keyword phrase per line, no extra text.

Include:

pure tech term (e.g., "javascript", "power bi")

tech + course (e.g., "javascript course", "power bi course")

exam code alone (if present, e.g., "pl 300")

exam code + course/training (e.g., "pl 300 course", "pl 300 training")

role + tech + course (e.g., "power bi data analyst course")

one long-tail version close to the full official title.

Avoid duplicates, synonyms that are too close, or very generic stuff like just "course" or "training".

Course name: "{{COURSE_NAME}}"
Main tech/vendor (if applicable): "{{VENDOR}}"
Course URL for context: {{COURSE_URL}}"""

DEFAULT_ANALYSIS_PROMPT = """You are a Google Ads keyword strategist for Koenig Solutions, a B2B IT training company.

Analyze the following keywords for the course: "{{COURSE_NAME}}"
Certification Code: {{CERTIFICATION_CODE}}
Primary Vendor: {{VENDOR}}
Related Terms: {{RELATED_TERMS}}

SCORING CRITERIA (0-10 each):
1. Course Relevance: How directly related to the specified course
2. Conversion Potential: Likelihood of leading to enrollment
3. Search Intent: Transactional (10) vs Informational (0)
4. Vendor Specificity: Contains cert code (10) vs generic (0)
5. Keyword Specificity: Long-tail (10) vs single word (0)
6. Action Word Strength: certification/training/bootcamp (10) vs none (0)
7. Commercial Signals: best/official/authorized (10) vs none (0)
8. Negative Signals (inverse): Clean (10) vs contains negatives (0)
9. Koenig Authority Fit: Matches Koenig's strengths (10) vs poor fit (0)

EXCLUSION RULES:
- Exclude keywords containing: free, salary, jobs, dumps, youtube, udemy, coursera, simplilearn
- Exclude different vendor keywords (e.g., AWS keywords for Microsoft course)
- Exclude different product keywords (e.g., Azure for Power BI course)

For each keyword, provide:
- All 9 scores (0-10)
- Base Score (sum of scores)
- Competition Bonus (+10 Low, +5 Medium, 0 High)
- Final Score (Base + Bonus, max 100)
- Tier (1-4 based on score)
- Match Type ([EXACT], PHRASE, BROAD)
- Action (ADD/REVIEW/EXCLUDE)
- Priority for new keywords (🔴 URGENT, 🟠 HIGH, 🟡 MEDIUM, ⚪ STANDARD, 🔵 REVIEW)

KEYWORDS TO ANALYZE:
{{KEYWORDS_DATA}}"""

DEFAULT_PROMPTS = {
    "seed": {
        "name": "Seed Keyword Generator",
        "description": "Generates 10 high-intent seed keywords from course name and URL",
        "prompt": DEFAULT_SEED_PROMPT,
        "variables": SEED_VARIABLES,
    },
    "analysis": {
        "name": "Keyword Analysis & Rating",
        "description": "Scores keyword ideas and assigns tier, action and priority",
        "prompt": DEFAULT_ANALYSIS_PROMPT,
        "variables": ANALYSIS_VARIABLES,
    },
}

_PLACEHOLDER = re.compile(r"\{\{([A-Z0-9_]+)\}\}")


def fill_prompt_variables(template: str, variables: Dict[str, str]) -> str:
    """Replace every {{KEY}} with its value. Unknown keys stay as-is."""

    def _sub(match: re.Match) -> str:
        key = match.group(1)
        if key in variables:
            return str(variables[key])
        return match.group(0)

    return _PLACEHOLDER.sub(_sub, template)
