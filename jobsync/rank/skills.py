"""
Skill matching.

Resolves each required skill of a job against an applicant's free-text
skill list.  Similarity is the Levenshtein percentage from
``normalize.text.string_similarity`` banded into exact (100), high
(>= 80) and medium (>= 50); below that a token-overlap fallback gives
partial credit of up to 30 points when the required skill's tokens
appear in an applicant skill.  A requirement is matched when its best
score reaches ``MATCH_FLOOR``.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence

from ..normalize.text import is_no_requirement, skill_tokens, string_similarity
from .schema import (
    MATCH_EXACT,
    MATCH_FLOOR,
    MATCH_HIGH,
    MATCH_MEDIUM,
    MATCH_NONE,
    MATCH_TOKEN,
    SkillMatchPair,
    SkillMatchSummary,
)

logger = logging.getLogger(__name__)

HIGH_THRESHOLD = 80.0
MEDIUM_THRESHOLD = 50.0
TOKEN_WEIGHT = 30.0
NEUTRAL_SCORE = 50.0
MAX_SURPLUS_BONUS = 5


def _token_score(required: str, applicant_skill: str) -> float:
    req_tokens = skill_tokens(required)
    if not req_tokens:
        return 0.0
    app_tokens = set(skill_tokens(applicant_skill))
    shared = sum(1 for t in req_tokens if t in app_tokens)
    return shared / len(req_tokens) * TOKEN_WEIGHT


def match_skill(required: str, applicant_skills: Sequence[str]) -> SkillMatchPair:
    """Find the applicant skill that best covers ``required``.

    Args:
        required: One required skill from the job posting.
        applicant_skills: The applicant's skill list.

    Returns:
        A `SkillMatchPair` with the best-scoring applicant skill, or an
        unmatched pair (similarity 0, type ``none``).
    """
    best: Optional[SkillMatchPair] = None
    for skill in applicant_skills:
        if not skill or not skill.strip():
            continue
        similarity = string_similarity(required, skill)
        if similarity >= 100.0:
            return SkillMatchPair(required, skill, 100.0, MATCH_EXACT)
        if similarity >= HIGH_THRESHOLD:
            candidate = SkillMatchPair(required, skill, similarity, MATCH_HIGH)
        elif similarity >= MEDIUM_THRESHOLD:
            candidate = SkillMatchPair(required, skill, similarity, MATCH_MEDIUM)
        else:
            score = _token_score(required, skill)
            if score <= 0:
                continue
            candidate = SkillMatchPair(required, skill, score, MATCH_TOKEN)
        if best is None or candidate.similarity > best.similarity:
            best = candidate
    return best or SkillMatchPair(required, None, 0.0, MATCH_NONE)


def is_skill_matched(required: str, applicant_skills: Sequence[str]) -> bool:
    return match_skill(required, applicant_skills).similarity >= MATCH_FLOOR


def _unique(values: Iterable[str]) -> List[str]:
    seen = set()
    out = []
    for value in values:
        text = (value or "").strip()
        lower = text.lower()
        if not text or lower in seen:
            continue
        seen.add(lower)
        out.append(text)
    return out


def required_skill_list(required_skills: Iterable[str]) -> List[str]:
    """Deduplicated requirements with "no skills required" entries dropped."""
    return [s for s in _unique(required_skills) if not is_no_requirement(s)]


def match_skills(required_skills: Iterable[str], applicant_skills: Iterable[str]) -> SkillMatchSummary:
    required = required_skill_list(required_skills)
    applicant = _unique(applicant_skills)
    return SkillMatchSummary(tuple(match_skill(r, applicant) for r in required))


def skills_score(required_skills: Iterable[str], applicant_skills: Iterable[str]) -> float:
    """Skill sub-score (0-100).

    Mean best similarity over the required skills, plus one point for
    every applicant skill beyond the number required (at most five).
    No requirements is neutral (50); no applicant skills scores 0.
    """
    applicant = _unique(applicant_skills)
    return score_summary(match_skills(required_skills, applicant), len(applicant))


def score_summary(summary: SkillMatchSummary, applicant_skill_count: int) -> float:
    """Turn an existing `SkillMatchSummary` into the skill sub-score."""
    required_count = len(summary.pairs)
    if not required_count:
        return NEUTRAL_SCORE
    if applicant_skill_count <= 0:
        return 0.0
    base = sum(p.similarity for p in summary.pairs) / required_count
    bonus = min(max(0, applicant_skill_count - required_count), MAX_SURPLUS_BONUS)
    return min(100.0, base + bonus)
