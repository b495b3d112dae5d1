"""
Applicant scoring.

`ScoringEngine` computes four sub-scores on a 0-100 scale for one
applicant against one job and combines them into a weighted composite:

* **education** – canonical degree keys compared per requirement
  option (AND/OR aware), falling back to degree-field string
  similarity, then adjusted for degree level and field group;
* **experience** – total years from merged work intervals against the
  job's minimum (and optional maximum);
* **skills** – see `rank.skills`;
* **eligibility** – every requirement line must be satisfied by an
  applicant eligibility (canonical key or near-identical name).

How the sub-scores become the composite is the policy's ``strategy``:
the configured weighted sum, or the model ensemble in `rank.ensemble`.
The composite is a pure function of the inputs and the scoring date,
so re-scoring the same snapshot always yields the same numbers.
"""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from ..canonical.resolver import Canonicalizer, NormalizationResult
from ..normalize.text import (
    LIST_AND,
    clean_degree_requirement,
    extract_degree_field,
    is_no_requirement,
    parse_list_expression,
    string_similarity,
)
from ..taxonomy.index import AliasIndex
from ..taxonomy.schema import KIND_DEGREES, KIND_ELIGIBILITIES, CanonicalEntity
from .ensemble import STRATEGIES, STRATEGY_WEIGHTED_SUM, ComponentScores, combine
from .ranking import rank
from .schema import (
    ApplicantProfile,
    ApplicantScoreRecord,
    JobRequirements,
    RankedJob,
    WorkExperience,
)
from .skills import match_skills, score_summary

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 50.0
DAYS_PER_YEAR = 365.25

LEVEL_LADDER = ["elementary", "secondary", "vocational", "bachelor", "master", "doctoral"]
_LEVEL_ALIASES = {
    "college": "bachelor",
    "graduate studies": "master",
    "graduate_studies": "master",
    "graduate-studies": "master",
    "postgraduate": "master",
}
_LEVEL_PATTERNS = [
    ("doctoral", re.compile(r"\b(?:doctor\w*|ph\.?\s?d)\b")),
    ("master", re.compile(r"\b(?:master\w*|graduate studies|post-?graduate)\b")),
    ("bachelor", re.compile(r"\b(?:bachelor\w*|college|b\.?s[a-z]{0,4}|b\.?a|a\.?b)\b")),
    ("vocational", re.compile(r"\b(?:vocational|tech-voc|tvet|tesda)\b")),
    ("secondary", re.compile(r"\b(?:high school|secondary|senior high|junior high)\b")),
    ("elementary", re.compile(r"\b(?:elementary|primary)\b")),
]


@dataclass(frozen=True)
class ScoringWeights:
    education: float = 0.30
    experience: float = 0.20
    skills: float = 0.20
    eligibility: float = 0.30

    def __post_init__(self) -> None:
        values = [self.education, self.experience, self.skills, self.eligibility]
        if any(v < 0 for v in values):
            raise ValueError(f"Scoring weights must be non-negative: {values}")
        if abs(sum(values) - 1.0) > 1e-6:
            raise ValueError(f"Scoring weights must sum to 1.0, got {sum(values):.4f}")

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, float]]) -> "ScoringWeights":
        if not data:
            return cls()
        unknown = set(data) - {"education", "experience", "skills", "eligibility"}
        if unknown:
            raise ValueError(f"Unknown scoring weight(s): {sorted(unknown)}")
        merged = {**asdict(cls()), **{k: float(v) for k, v in data.items()}}
        return cls(**merged)


@dataclass(frozen=True)
class ScoringPolicy:
    strong_confidence: float = 0.9     # canonical match counted as certain
    weak_match_credit: float = 0.85    # eligibility credit below strong confidence
    degree_field_threshold: float = 85.0
    eligibility_similarity: float = 92.0
    experience_weight: float = 0.7     # years vs relevance split
    strategy: str = STRATEGY_WEIGHTED_SUM

    def __post_init__(self) -> None:
        if self.strategy not in STRATEGIES:
            raise ValueError(f"Unknown scoring strategy {self.strategy!r}; expected one of {list(STRATEGIES)}")


@dataclass
class _Known:
    """Pre-resolved canonicalisation results, keyed by raw text."""

    degrees: Dict[str, NormalizationResult] = field(default_factory=dict)
    eligibilities: Dict[str, NormalizationResult] = field(default_factory=dict)


def normalize_level(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    v = value.lower().strip()
    v = _LEVEL_ALIASES.get(v, v)
    return v if v in LEVEL_LADDER else None


def detect_level(text: Optional[str]) -> Optional[str]:
    """Guess a degree level from free text ("BS Nursing" -> bachelor)."""
    lower = (text or "").lower()
    for level, pattern in _LEVEL_PATTERNS:
        if pattern.search(lower):
            return level
    return None


def merge_intervals(intervals: Iterable[Tuple[datetime, datetime]]) -> List[Tuple[datetime, datetime]]:
    ordered = sorted((s, e) for s, e in intervals if e > s)
    merged: List[Tuple[datetime, datetime]] = []
    for start, end in ordered:
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def total_years(
    work_experience: Sequence[WorkExperience],
    as_of: datetime,
    fallback: Optional[float] = None,
) -> float:
    """Years of experience with overlapping jobs counted once.

    Open-ended entries run until ``as_of``.  When no entry has a start
    date, ``fallback`` (an explicit total) is used instead.
    """
    intervals = [(w.start, w.end or as_of) for w in work_experience if w.start is not None]
    if not intervals:
        return max(0.0, float(fallback or 0.0))
    days = sum((end - start).total_seconds() / 86400.0 for start, end in merge_intervals(intervals))
    return max(0.0, days / DAYS_PER_YEAR)


def years_score(required_years: float, applicant_years: float, max_years: Optional[float] = None) -> float:
    """0 years -> 0; under the minimum 40..80; meeting it 80..100 (3x caps)."""
    required = required_years if required_years and required_years > 0 else 1.0
    years = max(0.0, applicant_years or 0.0)
    if max_years is not None and max_years > 0:
        years = min(years, max(max_years, required))
    if years == 0:
        return 0.0
    ratio = years / required
    if ratio < 1:
        return max(0.0, min(80.0, 40.0 + 40.0 * ratio))
    extra = min(ratio - 1.0, 2.0)
    return max(80.0, min(100.0, 80.0 + extra / 2.0 * 20.0))


class ScoringEngine:
    """Score applicants against jobs.

    Args:
        degree_canonicalizer: Canonicalizer over the degree taxonomy.
            Without one, degrees are compared by text only.
        eligibility_canonicalizer: Canonicalizer over the eligibility
            taxonomy.
        weights: Composite weights (default 0.30/0.20/0.20/0.30).
        policy: Thresholds used by the sub-scores.
        timeout: Per-batch canonicalisation timeout used by `score_job`.
        max_workers: Thread pool size for `score_job` canonicalisation.
    """

    def __init__(
        self,
        degree_canonicalizer: Optional[Canonicalizer] = None,
        eligibility_canonicalizer: Optional[Canonicalizer] = None,
        weights: Optional[ScoringWeights] = None,
        policy: Optional[ScoringPolicy] = None,
        timeout: Optional[float] = None,
        max_workers: int = 4,
    ) -> None:
        self.degrees = degree_canonicalizer or Canonicalizer(AliasIndex(KIND_DEGREES))
        self.eligibilities = eligibility_canonicalizer or Canonicalizer(AliasIndex(KIND_ELIGIBILITIES))
        self.weights = weights or ScoringWeights()
        self.policy = policy or ScoringPolicy()
        self.timeout = timeout
        self.max_workers = max_workers

    # -- education ----------------------------------------------------

    def _degree_pair_score(
        self,
        job_opt: NormalizationResult,
        app_opt: NormalizationResult,
    ) -> float:
        strong = self.policy.strong_confidence
        if job_opt.matched and job_opt.canonical_key == app_opt.canonical_key:
            if job_opt.confidence >= strong and app_opt.confidence >= strong:
                return 100.0
            return 85.0
        job_name = self.degrees.canonical_name(job_opt) or job_opt.raw_input
        app_name = self.degrees.canonical_name(app_opt) or app_opt.raw_input
        similarity = max(
            string_similarity(extract_degree_field(job_opt.raw_input), extract_degree_field(app_opt.raw_input)),
            string_similarity(extract_degree_field(job_name), extract_degree_field(app_name)),
        )
        if similarity >= self.policy.degree_field_threshold:
            return 100.0
        return similarity

    def _level_of(self, option: NormalizationResult) -> Optional[str]:
        entity = self.degrees.entity_for(option)
        level = normalize_level(entity.level) if entity else None
        return level or detect_level(option.raw_input)

    def _field_group_of(self, option: NormalizationResult) -> Optional[str]:
        entity: Optional[CanonicalEntity] = self.degrees.entity_for(option)
        return entity.field_group if entity else None

    def education_score(self, applicant: ApplicantProfile, job: JobRequirements) -> float:
        return self._education_score(applicant, job, {})

    def _education_score(
        self,
        applicant: ApplicantProfile,
        job: JobRequirements,
        known: Mapping[str, NormalizationResult],
    ) -> float:
        requirement = clean_degree_requirement(job.degree_requirement or "")
        if is_no_requirement(requirement):
            return NEUTRAL_SCORE
        job_expr = self.degrees.canonicalize_expression(requirement, known)
        app_options: List[NormalizationResult] = []
        for degree in applicant.education:
            app_options.extend(self.degrees.canonicalize_expression(degree, known).options)
        if not job_expr.options or not app_options:
            return 0.0

        threshold = self.policy.degree_field_threshold
        best_score = 0.0
        best_pair: Optional[Tuple[NormalizationResult, NormalizationResult]] = None
        hits = 0
        for job_opt in job_expr.options:
            best_for_req = 0.0
            for app_opt in app_options:
                score = self._degree_pair_score(job_opt, app_opt)
                if score > best_for_req:
                    best_for_req = score
                if best_pair is None or score > best_score:
                    best_score, best_pair = score, (job_opt, app_opt)
            if best_for_req >= threshold:
                hits += 1

        if job_expr.mode == LIST_AND:
            if hits < len(job_expr.options):
                logger.debug(
                    "Degree AND requirement %r not met by %s (%d/%d)",
                    requirement,
                    applicant.applicant_id,
                    hits,
                    len(job_expr.options),
                )
                return 0.0
            base = hits / len(job_expr.options) * 100.0
        else:
            base = best_score
        if best_pair is None:
            return base
        return self._adjust_for_level_and_field(base, *best_pair)

    def _adjust_for_level_and_field(
        self,
        base: float,
        job_opt: NormalizationResult,
        app_opt: NormalizationResult,
    ) -> float:
        score = base
        job_level = self._level_of(job_opt)
        app_level = self._level_of(app_opt)
        if job_level and app_level:
            job_idx = LEVEL_LADDER.index(job_level)
            app_idx = LEVEL_LADDER.index(app_level)
            if app_idx > job_idx:
                score += min(app_idx - job_idx, 3) * 4
            elif app_idx < job_idx:
                score -= min(job_idx - app_idx, 3) * 6
        job_group = self._field_group_of(job_opt)
        if job_group and job_group == self._field_group_of(app_opt):
            score = max(score, 70.0) + 5.0
        if base > 0:
            score = max(score, 20.0)
        return max(0.0, min(100.0, score))

    # -- experience ---------------------------------------------------

    def experience_score(self, applicant: ApplicantProfile, job: JobRequirements, as_of: Optional[datetime] = None) -> float:
        return self._experience(applicant, job, as_of or datetime.now(timezone.utc))[0]

    def _experience(self, applicant: ApplicantProfile, job: JobRequirements, as_of: datetime) -> Tuple[float, float]:
        """Return (score, applicant years)."""
        years = total_years(applicant.work_experience, as_of, applicant.total_years_experience)
        ys = years_score(job.years_of_experience, years, job.max_years_of_experience)
        relevance = 100.0 if years > 0 else 0.0
        w = self.policy.experience_weight
        return ys * w + relevance * (1.0 - w), years

    # -- eligibility --------------------------------------------------

    def _eligibility_credit(
        self,
        token: NormalizationResult,
        applicant: Sequence[NormalizationResult],
    ) -> Tuple[float, Set[int]]:
        best = 0.0
        satisfied: Set[int] = set()
        token_name = self.eligibilities.canonical_name(token)
        for idx, elig in enumerate(applicant):
            credit = 0.0
            if token.matched and token.canonical_key == elig.canonical_key:
                strong = self.policy.strong_confidence
                credit = 1.0 if token.confidence >= strong and elig.confidence >= strong else self.policy.weak_match_credit
            else:
                elig_name = self.eligibilities.canonical_name(elig)
                sims = [string_similarity(token.raw_input, elig.raw_input)]
                if token_name and elig_name:
                    sims.append(string_similarity(token_name, elig_name))
                if max(sims) >= self.policy.eligibility_similarity:
                    credit = 1.0
            if credit > 0:
                satisfied.add(idx)
                best = max(best, credit)
        return best, satisfied

    def eligibility_score(self, applicant: ApplicantProfile, job: JobRequirements) -> Tuple[float, int]:
        """Return (score, matched_eligibilities_count)."""
        return self._eligibility_score(applicant, job, {})

    def _eligibility_score(
        self,
        applicant: ApplicantProfile,
        job: JobRequirements,
        known: Mapping[str, NormalizationResult],
    ) -> Tuple[float, int]:
        lines = [line.strip() for line in job.eligibilities if line and line.strip()]
        if not lines or any(is_no_requirement(line) for line in lines):
            return NEUTRAL_SCORE, 0
        held = [known.get(e.strip()) or self.eligibilities.resolve(e) for e in applicant.eligibilities if e.strip()]
        line_credits: List[float] = []
        satisfied: Set[int] = set()
        for line in lines:
            expr = self.eligibilities.canonicalize_expression(line, known)
            if not expr.options:
                continue
            credits = []
            for token in expr.options:
                credit, hit = self._eligibility_credit(token, held)
                credits.append(credit)
                satisfied |= hit
            if expr.mode == LIST_AND:
                line_credits.append(min(credits))
            else:
                line_credits.append(max(credits))
        if not line_credits:
            return NEUTRAL_SCORE, len(satisfied)
        weakest = min(line_credits)
        score = 100.0 * weakest if weakest > 0 else 0.0
        return score, len(satisfied)

    # -- composite ----------------------------------------------------

    def score(
        self,
        applicant: ApplicantProfile,
        job: JobRequirements,
        as_of: Optional[datetime] = None,
    ) -> ApplicantScoreRecord:
        """Score one applicant for one job (unranked record)."""
        return self._score(applicant, job, as_of or datetime.now(timezone.utc), _Known())

    def _score(
        self,
        applicant: ApplicantProfile,
        job: JobRequirements,
        as_of: datetime,
        known: _Known,
    ) -> ApplicantScoreRecord:
        education = self._education_score(applicant, job, known.degrees)
        experience, years = self._experience(applicant, job, as_of)
        summary = match_skills(job.skills, applicant.skills)
        applicant_skill_count = len({s.strip().lower() for s in applicant.skills if s and s.strip()})
        skills = score_summary(summary, applicant_skill_count)
        eligibility, elig_count = self._eligibility_score(applicant, job, known.eligibilities)
        lines = [line for line in job.eligibilities if line and line.strip()]
        components = ComponentScores(
            education=education,
            experience=experience,
            skills=skills,
            eligibility=eligibility,
            matched_skills=summary.matched_count,
            applicant_years=years,
            required_years=job.years_of_experience,
            eligibility_required=bool(lines) and not any(is_no_requirement(line) for line in lines),
        )
        result, details = combine(self.policy.strategy, components, self.weights)
        composite = result.total
        logger.debug(
            "Scored %s for job %s: edu=%.1f exp=%.1f skills=%.1f elig=%.1f -> %.2f (%s)",
            applicant.applicant_id,
            job.job_id,
            education,
            experience,
            skills,
            eligibility,
            composite,
            result.algorithm,
        )
        return ApplicantScoreRecord(
            applicant_id=applicant.applicant_id,
            job_id=job.job_id,
            education_score=round(education, 2),
            experience_score=round(experience, 2),
            skills_score=round(skills, 2),
            eligibility_score=round(eligibility, 2),
            composite_score=composite,
            raw_composite_score=composite,
            matched_skills_count=summary.matched_count,
            matched_eligibilities_count=elig_count,
            rank=None,
            submitted_at=applicant.submitted_at,
            skill_matches=summary.pairs,
            algorithm_used=result.algorithm,
            reasoning=result.reasoning,
            algorithm_details=details,
        )

    def _prefetch(self, job: JobRequirements, applicants: Sequence[ApplicantProfile]) -> _Known:
        """Resolve every degree/eligibility string of a job concurrently."""
        degree_texts: List[str] = []
        requirement = clean_degree_requirement(job.degree_requirement or "")
        if not is_no_requirement(requirement):
            degree_texts.extend(_expression_texts(requirement))
        elig_texts: List[str] = []
        for line in job.eligibilities:
            elig_texts.extend(_expression_texts(line))
        for applicant in applicants:
            for degree in applicant.education:
                degree_texts.extend(_expression_texts(degree))
            elig_texts.extend(e.strip() for e in applicant.eligibilities if e.strip())
        known = _Known()
        for canon, texts, target in (
            (self.degrees, degree_texts, known.degrees),
            (self.eligibilities, elig_texts, known.eligibilities),
        ):
            unique = list(dict.fromkeys(t for t in texts if t.strip()))
            results = canon.resolve_many(unique, timeout=self.timeout, max_workers=self.max_workers)
            target.update(zip(unique, results))
        return known

    def score_job(
        self,
        job: JobRequirements,
        applicants: Sequence[ApplicantProfile],
        as_of: Optional[datetime] = None,
    ) -> RankedJob:
        """Score and rank every applicant of ``job``.

        The full ranked set is returned as one value; callers replace
        the stored ranking with it wholesale.
        """
        as_of = as_of or datetime.now(timezone.utc)
        known = self._prefetch(job, applicants) if self.timeout is not None else _Known()
        records = [self._score(a, job, as_of, known) for a in applicants]
        ranked = rank(records, job_id=job.job_id)
        logger.info("Ranked %d applicants for job %s", len(ranked), job.job_id)
        return RankedJob(job_id=job.job_id, records=tuple(ranked), scored_at=as_of)


def _expression_texts(text: str) -> List[str]:
    stripped = (text or "").strip()
    if not stripped:
        return []
    return [stripped] + parse_list_expression(stripped)
