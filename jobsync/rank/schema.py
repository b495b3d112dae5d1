# rank/schema.py
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..normalize.dates import is_open_ended, parse_timestamp

MATCH_EXACT = "exact"
MATCH_HIGH = "high"
MATCH_MEDIUM = "medium"
MATCH_TOKEN = "token"
MATCH_NONE = "none"

# fixed policy floor for "skill matched"
MATCH_FLOOR = 30.0

RANKED_HEADERS = [
    "rank", "applicant_id", "job_id", "composite_score", "raw_composite_score",
    "education_score", "experience_score", "skills_score", "eligibility_score",
    "matched_skills_count", "matched_eligibilities_count", "submitted_at",
    "algorithm_used", "reasoning",
]


def _str_list(value: Any, attr: Optional[str] = None) -> List[str]:
    """Coerce a list of strings or of mappings (read via ``attr``) to strings."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    out: List[str] = []
    for item in value:
        if isinstance(item, Mapping):
            item = item.get(attr) if attr else None
        if item is None:
            continue
        text = str(item).strip()
        if text:
            out.append(text)
    return out


@dataclass
class JobRequirements:
    job_id: str
    degree_requirement: Optional[str] = None
    eligibilities: List[str] = field(default_factory=list)   # one requirement line each
    skills: List[str] = field(default_factory=list)
    years_of_experience: float = 0.0
    max_years_of_experience: Optional[float] = None
    title: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "JobRequirements":
        job_id = data.get("job_id") or data.get("id")
        if job_id is None:
            raise ValueError("job record has no job_id")
        years = data.get("years_of_experience", data.get("yearsOfExperience")) or 0
        max_years = data.get("max_years_of_experience", data.get("maxYearsOfExperience"))
        try:
            years = float(years)
            max_years = float(max_years) if max_years is not None else None
        except (TypeError, ValueError) as exc:
            raise ValueError(f"job {job_id}: invalid years of experience") from exc
        return cls(
            job_id=str(job_id),
            degree_requirement=data.get("degree_requirement", data.get("degreeRequirement")),
            eligibilities=_str_list(data.get("eligibilities")),
            skills=_str_list(data.get("skills")),
            years_of_experience=years,
            max_years_of_experience=max_years,
            title=data.get("title"),
        )


@dataclass
class WorkExperience:
    start: Optional[datetime]
    end: Optional[datetime]       # None means "present"
    title: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "WorkExperience":
        period = data.get("period_of_service") or data.get("periodOfService") or {}
        raw_start = data.get("start_date", data.get("start", period.get("from")))
        raw_end = data.get("end_date", data.get("end", period.get("to")))
        if is_open_ended(raw_end):
            raw_end = None
        return cls(
            start=parse_timestamp(raw_start),
            end=parse_timestamp(raw_end),
            title=data.get("title") or data.get("position"),
        )


@dataclass
class ApplicantProfile:
    applicant_id: str
    education: List[str] = field(default_factory=list)        # degree names
    work_experience: List[WorkExperience] = field(default_factory=list)
    skills: List[str] = field(default_factory=list)
    eligibilities: List[str] = field(default_factory=list)
    total_years_experience: Optional[float] = None
    submitted_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ApplicantProfile":
        applicant_id = data.get("applicant_id") or data.get("id")
        if applicant_id is None:
            raise ValueError("applicant record has no applicant_id")
        education = data.get("education")
        if education is None and data.get("highest_educational_attainment"):
            education = [data["highest_educational_attainment"]]
        total = data.get("total_years_experience", data.get("totalYearsExperience"))
        return cls(
            applicant_id=str(applicant_id),
            education=_str_list(education, "degree"),
            work_experience=[WorkExperience.from_dict(w) for w in data.get("work_experience") or []],
            skills=_str_list(data.get("skills")),
            eligibilities=_str_list(data.get("eligibilities"), "title"),
            total_years_experience=float(total) if total is not None else None,
            submitted_at=parse_timestamp(data.get("submitted_at")),
        )


@dataclass(frozen=True)
class SkillMatchPair:
    required_skill: str
    matched_applicant_skill: Optional[str]
    similarity: float             # 0..100
    match_type: str               # exact | high | medium | token | none

    @property
    def matched(self) -> bool:
        return self.similarity >= MATCH_FLOOR


@dataclass(frozen=True)
class SkillMatchSummary:
    pairs: Tuple[SkillMatchPair, ...]

    @property
    def matched_flags(self) -> List[bool]:
        return [p.matched for p in self.pairs]

    @property
    def matched_count(self) -> int:
        return sum(1 for p in self.pairs if p.matched)


@dataclass(frozen=True)
class AlgorithmDetails:
    """How the ensemble strategy arrived at a composite."""

    ensemble_method: str                      # weighted_average | tie_breaker
    is_tie_breaker: bool
    algorithm1_score: float
    algorithm2_score: float
    score_difference: float
    algorithm3_score: Optional[float] = None
    algorithm1_weight: Optional[float] = None
    algorithm2_weight: Optional[float] = None


@dataclass(frozen=True)
class ApplicantScoreRecord:
    applicant_id: str
    job_id: str
    education_score: float
    experience_score: float
    skills_score: float
    eligibility_score: float
    composite_score: float        # displayed, unique within a ranked job
    raw_composite_score: float    # before tie-breaking
    matched_skills_count: int = 0
    matched_eligibilities_count: int = 0
    rank: Optional[int] = None
    submitted_at: Optional[datetime] = None
    skill_matches: Tuple[SkillMatchPair, ...] = field(default_factory=tuple, compare=False)
    algorithm_used: str = ""
    reasoning: str = ""
    algorithm_details: Optional[AlgorithmDetails] = field(default=None, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["submitted_at"] = self.submitted_at.isoformat() if self.submitted_at else None
        d["skill_matches"] = [asdict(p) for p in self.skill_matches]
        return d

    def to_csv_row(self) -> list:
        d = self.to_dict()
        d["submitted_at"] = d["submitted_at"] or ""
        d["rank"] = "" if self.rank is None else self.rank
        return [d[h] for h in RANKED_HEADERS]

    @classmethod
    def from_csv_row(cls, row: Mapping[str, str]) -> "ApplicantScoreRecord":
        rank = row.get("rank")
        composite = float(row["composite_score"])
        return cls(
            applicant_id=row["applicant_id"],
            job_id=row["job_id"],
            education_score=float(row.get("education_score") or 0),
            experience_score=float(row.get("experience_score") or 0),
            skills_score=float(row.get("skills_score") or 0),
            eligibility_score=float(row.get("eligibility_score") or 0),
            composite_score=composite,
            raw_composite_score=float(row.get("raw_composite_score") or composite),
            matched_skills_count=int(row.get("matched_skills_count") or 0),
            matched_eligibilities_count=int(row.get("matched_eligibilities_count") or 0),
            rank=int(rank) if rank else None,
            submitted_at=parse_timestamp(row.get("submitted_at")),
            algorithm_used=row.get("algorithm_used") or "",
            reasoning=row.get("reasoning") or "",
        )


@dataclass(frozen=True)
class RankedJob:
    job_id: str
    records: Tuple[ApplicantScoreRecord, ...]
    scored_at: datetime

    def __len__(self) -> int:
        return len(self.records)

    def top(self, n: int = 1) -> Sequence[ApplicantScoreRecord]:
        return self.records[:n]
