"""
Re-routing.

When an application is denied (or the position is filled) the applicant
may be offered another open job.  `ReRouter` scores the applicant
against every other job with the same `ScoringEngine` used for
ranking, drops jobs below a minimum match (30 by default) and proposes
the best remaining one together with a short explanation.

The explanation comes from an LLM when one is configured; without one,
or when the call fails, a fixed template naming the strongest area is
used.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from ..canonical.llm_providers import LLMProvider
from .schema import ApplicantProfile, ApplicantScoreRecord, JobRequirements
from .scoring import ScoringEngine

logger = logging.getLogger(__name__)

MIN_MATCH_SCORE = 30.0
NO_ACTIVE_JOBS = "No active job postings available"
NO_SUITABLE_JOB = (
    "No suitable alternative positions found matching your qualifications (minimum 30% match required)"
)


@dataclass(frozen=True)
class AlternativeJobMatch:
    job_id: str
    match_score: float
    reason: str
    education_score: float
    experience_score: float
    skills_score: float
    eligibility_score: float
    matched_skills_count: int = 0
    matched_eligibilities_count: int = 0
    job_title: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ReRoutingResult:
    applicant_id: str
    original_job_id: str
    best_alternative: Optional[AlternativeJobMatch] = None
    no_alternative_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "applicant_id": self.applicant_id,
            "original_job_id": self.original_job_id,
            "best_alternative": self.best_alternative.to_dict() if self.best_alternative else None,
            "no_alternative_reason": self.no_alternative_reason,
        }


def fallback_reason(record: ApplicantScoreRecord) -> str:
    """Template explanation naming the strongest area above 70."""
    if record.skills_score > 70:
        area = "skills"
    elif record.education_score > 70:
        area = "education"
    elif record.experience_score > 70:
        area = "experience"
    else:
        area = "multiple areas"
    return (
        f"Based on your qualifications, this position offers a {record.composite_score:.0f}% match "
        f"to your profile, with strong alignment in {area}."
    )


def build_reason_prompt(record: ApplicantScoreRecord, job: JobRequirements, original_job_id: str) -> str:
    return (
        "You are an HR assistant explaining why an applicant is being re-routed from one job to another.\n\n"
        f"Original job: {original_job_id}\n"
        f"Alternative job: {job.title or job.job_id}\n\n"
        "Match scores:\n"
        f"- Overall: {record.composite_score:.1f}%\n"
        f"- Education: {record.education_score:.1f}%\n"
        f"- Experience: {record.experience_score:.1f}%\n"
        f"- Skills: {record.skills_score:.1f}%\n"
        f"- Eligibility: {record.eligibility_score:.1f}%\n\n"
        "Write a brief, professional explanation (2-3 sentences) of why the alternative position "
        "matches the applicant's qualifications, focusing on the strongest areas. Keep the tone "
        "encouraging and do not mention the original job being filled or closed."
    )


class ReRouter:
    """Find the best alternative job for applicants of one job.

    Args:
        engine: Scoring engine; its strategy and taxonomies apply.
        llm: Optional provider used to word the explanation.
        min_score: Lowest composite a job may have to be proposed.
    """

    def __init__(
        self,
        engine: ScoringEngine,
        llm: Optional[LLMProvider] = None,
        min_score: float = MIN_MATCH_SCORE,
    ) -> None:
        self.engine = engine
        self.llm = llm
        self.min_score = min_score

    def _reason(self, record: ApplicantScoreRecord, job: JobRequirements, original_job_id: str) -> str:
        if self.llm is None:
            return fallback_reason(record)
        try:
            text = self.llm.generate(build_reason_prompt(record, job, original_job_id)).strip()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Re-routing explanation failed for %s: %s", record.applicant_id, exc)
            return fallback_reason(record)
        return text or fallback_reason(record)

    def find_best_alternative(
        self,
        applicant: ApplicantProfile,
        current_job_id: str,
        jobs: Sequence[JobRequirements],
        as_of: Optional[datetime] = None,
    ) -> Optional[AlternativeJobMatch]:
        """Best-scoring job other than ``current_job_id``, or None.

        Jobs scoring below ``min_score`` are never proposed.  Equal
        scores keep the order of ``jobs``.
        """
        as_of = as_of or datetime.now(timezone.utc)
        scored = []
        for job in jobs:
            if job.job_id == current_job_id:
                continue
            record = self.engine.score(applicant, job, as_of=as_of)
            if record.composite_score >= self.min_score:
                scored.append((record, job))
        if not scored:
            return None
        record, job = max(scored, key=lambda pair: pair[0].composite_score)
        logger.debug(
            "Best alternative for %s: job %s at %.2f", applicant.applicant_id, job.job_id, record.composite_score
        )
        return AlternativeJobMatch(
            job_id=job.job_id,
            job_title=job.title,
            match_score=record.composite_score,
            reason=self._reason(record, job, current_job_id),
            education_score=record.education_score,
            experience_score=record.experience_score,
            skills_score=record.skills_score,
            eligibility_score=record.eligibility_score,
            matched_skills_count=record.matched_skills_count,
            matched_eligibilities_count=record.matched_eligibilities_count,
        )

    def reroute(
        self,
        applicants: Sequence[ApplicantProfile],
        current_job_id: str,
        jobs: Sequence[JobRequirements],
        as_of: Optional[datetime] = None,
    ) -> List[ReRoutingResult]:
        """One `ReRoutingResult` per applicant, in input order."""
        as_of = as_of or datetime.now(timezone.utc)
        has_alternatives = any(job.job_id != current_job_id for job in jobs)
        results = []
        for applicant in applicants:
            best = self.find_best_alternative(applicant, current_job_id, jobs, as_of) if has_alternatives else None
            reason = None
            if best is None:
                reason = NO_SUITABLE_JOB if has_alternatives else NO_ACTIVE_JOBS
            results.append(ReRoutingResult(applicant.applicant_id, current_job_id, best, reason))
        placed = sum(1 for r in results if r.best_alternative is not None)
        logger.info("Re-routed %d of %d applicants from job %s", placed, len(results), current_job_id)
        return results
