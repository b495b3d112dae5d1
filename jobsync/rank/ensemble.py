"""
Composite strategies.

All strategies start from the same four sub-scores; they differ only in
how those are folded into the composite:

* ``weighted_sum`` – the configured `ScoringWeights` (the default);
* ``ensemble`` – two independent models (the weighted sum and a
  skill-experience composite).  When they land within 5 points of each
  other an eligibility/education tie-breaker model decides; otherwise
  the composite is 0.6 x the weighted sum + 0.4 x the skill-experience
  composite.

Each model returns an `AlgorithmResult` carrying a human-readable
``reasoning`` string that ends up on the score record.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .schema import AlgorithmDetails

STRATEGY_WEIGHTED_SUM = "weighted_sum"
STRATEGY_ENSEMBLE = "ensemble"
STRATEGIES = (STRATEGY_WEIGHTED_SUM, STRATEGY_ENSEMBLE)

WEIGHTED_SUM_MODEL = "Weighted Sum Model"
SKILL_EXPERIENCE_MODEL = "Skill-Experience Composite"
TIE_BREAKER_MODEL = "Eligibility-Education Tie-breaker"
ENSEMBLE_TIE_BREAKER = "Ensemble (Tie-breaker)"
ENSEMBLE_WEIGHTED = "Multi-Factor Assessment"

TIE_BREAK_WINDOW = 5.0
ENSEMBLE_WEIGHTS = (0.6, 0.4)
EXPERIENCE_BETA = 0.5


@dataclass(frozen=True)
class ComponentScores:
    """Sub-scores plus the raw facts the alternative models look at."""

    education: float
    experience: float
    skills: float
    eligibility: float
    matched_skills: int = 0
    applicant_years: float = 0.0
    required_years: float = 0.0
    eligibility_required: bool = True    # False for "none"/empty requirement lines


@dataclass(frozen=True)
class AlgorithmResult:
    total: float
    algorithm: str
    reasoning: str


def _pct(weight: float) -> str:
    return f"{weight * 100:.0f}%"


def weighted_sum(components: ComponentScores, weights) -> AlgorithmResult:
    """The configured linear combination of the four sub-scores."""
    c = components
    total = (
        weights.education * c.education
        + weights.experience * c.experience
        + weights.skills * c.skills
        + weights.eligibility * c.eligibility
    )
    reasoning = (
        f"Education ({_pct(weights.education)}): {c.education:.1f}, "
        f"Experience ({_pct(weights.experience)}): {c.experience:.1f}, "
        f"Skills ({_pct(weights.skills)}): {c.skills:.1f}, "
        f"Eligibility ({_pct(weights.eligibility)}): {c.eligibility:.1f}"
    )
    return AlgorithmResult(round(total, 2), WEIGHTED_SUM_MODEL, reasoning)


def skill_experience_composite(components: ComponentScores) -> AlgorithmResult:
    """Skills scaled by an exponential experience factor (capped at 2x the requirement).

    The composite weighs 30%, education and eligibility 35% each.
    """
    c = components
    required = c.required_years or 1.0
    ratio = max(0.0, c.applicant_years) / required
    composite = c.skills * math.exp(EXPERIENCE_BETA * min(ratio, 2.0)) / math.exp(EXPERIENCE_BETA * 2.0)
    total = 0.30 * composite + 0.35 * c.education + 0.35 * c.eligibility
    reasoning = (
        f"Skill-Experience Composite (30%): {composite:.1f}, "
        f"Education (35%): {c.education:.1f}, Eligibility (35%): {c.eligibility:.1f}"
    )
    return AlgorithmResult(round(total, 2), SKILL_EXPERIENCE_MODEL, reasoning)


def eligibility_education_tiebreaker(components: ComponentScores) -> AlgorithmResult:
    """Points model: eligibility 40, degree 30, experience 20, skills 2."""
    c = components
    parts: List[str] = []
    if not c.eligibility_required:
        elig_points = 20.0
        parts.append("No license required (+20)")
    else:
        elig_points = c.eligibility / 100.0 * 40.0
        parts.append(f"Professional license match: {c.eligibility:.1f}% (+{elig_points:.1f})")
    edu_points = c.education / 100.0 * 30.0
    parts.append(f"Degree match: {c.education:.1f}% (+{edu_points:.1f})")
    required = c.required_years or 1.0
    excess = max(0.0, c.applicant_years - required)
    exp_points = min(c.experience / 100.0 * 20.0, 20.0)
    parts.append(f"Experience: {c.experience:.1f}%, {excess:.1f} years over (+{exp_points:.1f})")
    skill_points = min(c.matched_skills * 10.0, 20.0) * 0.10
    parts.append(f"{c.matched_skills} matched skills (+{skill_points:.1f})")
    total = elig_points + edu_points + exp_points + skill_points
    return AlgorithmResult(round(total, 2), TIE_BREAKER_MODEL, "; ".join(parts))


def _profile_summary(c: ComponentScores) -> str:
    strengths: List[str] = []
    gaps: List[str] = []
    if c.education >= 80:
        strengths.append("strong educational background")
    elif c.education < 60:
        gaps.append("education level")
    if c.experience >= 80:
        strengths.append("excellent relevant experience" if c.experience == 100 else "solid work experience")
    elif c.experience < 60:
        gaps.append("years of experience")
    if c.skills >= 60:
        strengths.append("good technical skills")
    elif c.skills < 40:
        gaps.append("required skills")
    if c.eligibility >= 80:
        strengths.append("appropriate certifications")
    elif c.eligibility < 60:
        gaps.append("certifications")

    sentences = []
    if strengths:
        sentences.append(f"Candidate demonstrates {', '.join(strengths)}.")
    if gaps:
        lead = "Areas for development include" if strengths else "Needs improvement in"
        sentences.append(f"{lead} {', '.join(gaps)}.")
    return " ".join(sentences) or "Candidate evaluated across multiple qualification criteria."


def ensemble(components: ComponentScores, weights) -> Tuple[AlgorithmResult, AlgorithmDetails]:
    """Combine the weighted-sum and skill-experience models.

    Returns:
        The final result and the per-model breakdown behind it.
    """
    first = weighted_sum(components, weights)
    second = skill_experience_composite(components)
    difference = round(abs(first.total - second.total), 2)
    if difference <= TIE_BREAK_WINDOW:
        third = eligibility_education_tiebreaker(components)
        reasoning = (
            f"Algorithms 1 & 2 within 5% ({first.total:.1f} vs {second.total:.1f}). "
            f"Tie-breaker: {third.reasoning}"
        )
        details = AlgorithmDetails(
            ensemble_method="tie_breaker",
            is_tie_breaker=True,
            algorithm1_score=first.total,
            algorithm2_score=second.total,
            algorithm3_score=third.total,
            score_difference=difference,
        )
        return AlgorithmResult(third.total, ENSEMBLE_TIE_BREAKER, reasoning), details

    w1, w2 = ENSEMBLE_WEIGHTS
    total = round(w1 * first.total + w2 * second.total, 2)
    details = AlgorithmDetails(
        ensemble_method="weighted_average",
        is_tie_breaker=False,
        algorithm1_score=first.total,
        algorithm2_score=second.total,
        algorithm1_weight=w1,
        algorithm2_weight=w2,
        score_difference=difference,
    )
    return AlgorithmResult(total, ENSEMBLE_WEIGHTED, _profile_summary(components)), details


def combine(
    strategy: str,
    components: ComponentScores,
    weights,
) -> Tuple[AlgorithmResult, Optional[AlgorithmDetails]]:
    """Fold ``components`` into a composite with the named strategy.

    Raises:
        ValueError: for an unknown strategy name.
    """
    if strategy == STRATEGY_WEIGHTED_SUM:
        return weighted_sum(components, weights), None
    if strategy == STRATEGY_ENSEMBLE:
        return ensemble(components, weights)
    raise ValueError(f"Unknown scoring strategy {strategy!r}; expected one of {list(STRATEGIES)}")
