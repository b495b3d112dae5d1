"""
Score statistics for ranking reports.

Pure helpers over a job's composite scores: summary statistics,
percentiles, histogram buckets and the human-readable phrases used on
applicant and HR reports.  Every function is total: empty input (or
input containing only ``None``/NaN) yields zeroed results instead of
raising.
"""

from __future__ import annotations

import math
import statistics
from dataclasses import asdict, dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from .schema import ApplicantScoreRecord


@dataclass(frozen=True)
class ScoreStatistics:
    min: float = 0.0
    max: float = 0.0
    mean: float = 0.0
    median: float = 0.0
    std_dev: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class Bucket:
    start: float
    end: float
    count: int

    @property
    def label(self) -> str:
        return f"{round(self.start)}-{round(self.end)}"


@dataclass(frozen=True)
class Distribution:
    buckets: List[Bucket] = field(default_factory=list)
    total: int = 0


@dataclass(frozen=True)
class GapFromTop:
    absolute: float = 0.0
    percentage: float = 0.0


def _valid(values: Iterable[Optional[float]]) -> List[float]:
    out = []
    for v in values:
        if v is None:
            continue
        f = float(v)
        if not math.isnan(f):
            out.append(f)
    return out


def calculate_statistics(values: Iterable[Optional[float]]) -> ScoreStatistics:
    """Min, max, mean, median and population standard deviation (1 decimal)."""
    data = _valid(values)
    if not data:
        return ScoreStatistics()
    return ScoreStatistics(
        min=round(min(data), 1),
        max=round(max(data), 1),
        mean=round(statistics.fmean(data), 1),
        median=round(statistics.median(data), 1),
        std_dev=round(statistics.pstdev(data), 1),
    )


def calculate_percentile(value: Optional[float], all_values: Iterable[Optional[float]]) -> int:
    """Share of values strictly below ``value``, as a whole percentage."""
    data = _valid(all_values)
    if not data or value is None or math.isnan(value):
        return 0
    below = sum(1 for v in data if v < value)
    return round(below / len(data) * 100)


def distribution(values: Iterable[Optional[float]], bucket_count: int = 5) -> Distribution:
    """Equal-width histogram over [min, max].

    Buckets are half-open except the last, which also holds ``max``, so
    every value lands in exactly one bucket.  When all values are equal
    the buckets have zero width and everything goes into the first one.
    """
    data = _valid(values)
    if not data or bucket_count <= 0:
        return Distribution([], len(data))
    low, high = min(data), max(data)
    if high == low:
        buckets = [Bucket(low, high, len(data) if i == 0 else 0) for i in range(bucket_count)]
        return Distribution(buckets, len(data))
    width = (high - low) / bucket_count
    buckets = []
    for i in range(bucket_count):
        start = low + i * width
        last = i == bucket_count - 1
        end = high if last else start + width
        count = sum(1 for v in data if start <= v < end or (last and start <= v <= end))
        buckets.append(Bucket(start, end, count))
    return Distribution(buckets, len(data))


def gap_from_top(score: float, top_score: float) -> GapFromTop:
    if not top_score:
        return GapFromTop()
    diff = top_score - score
    return GapFromTop(round(diff, 1), round(diff / top_score * 100, 1))


def performance_label(percentile: float) -> str:
    if percentile >= 90:
        return "Exceptional"
    if percentile >= 75:
        return "Above Average"
    if percentile >= 50:
        return "Average"
    if percentile >= 25:
        return "Below Average"
    return "Needs Improvement"


def percentile_text(percentile: int, total_applicants: int) -> str:
    """E.g. "Better than 75% of applicants"."""
    if total_applicants <= 1:
        return "Only applicant"
    if percentile >= 100:
        return f"Best among all {total_applicants} applicants"
    if percentile <= 0:
        return f"Lowest among all {total_applicants} applicants"
    return f"Better than {percentile}% of applicants"


def ordinal(n: int) -> str:
    """1 -> "1st", 12 -> "12th", 23 -> "23rd"."""
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def is_top_tier(rank: int, total_applicants: int) -> bool:
    """Rank 1 for tiny pools, otherwise the top third (at least three)."""
    if total_applicants <= 3:
        return rank == 1
    return rank <= max(3, math.ceil(total_applicants * 0.33))


def relative_position(rank: int, total_applicants: int) -> str:
    if total_applicants <= 1:
        return "Only applicant for this position"
    if rank == 1:
        return "Top-ranked candidate"
    if rank == 2:
        return "Second highest-ranked candidate"
    if rank == 3:
        return "Third highest-ranked candidate"
    from_top = (rank - 1) / (total_applicants - 1) * 100
    if from_top <= 25:
        return "Among top quarter of applicants"
    if from_top <= 50:
        return "In upper half of applicants"
    if from_top <= 75:
        return "In lower half of applicants"
    return "Among bottom quarter of applicants"


def summarize_job(records: Sequence[ApplicantScoreRecord], bucket_count: int = 5) -> Dict[str, object]:
    """Statistics, histogram and per-applicant standing for one ranked job."""
    scores = [r.composite_score for r in records]
    stats = calculate_statistics(scores)
    top = max(_valid(scores), default=0.0)
    total = len(records)
    applicants = []
    for r in sorted(records, key=lambda rec: (rec.rank is None, rec.rank or 0)):
        pct = calculate_percentile(r.composite_score, scores)
        gap = gap_from_top(r.composite_score, top)
        applicants.append(
            {
                "applicant_id": r.applicant_id,
                "rank": r.rank,
                "ordinal": ordinal(r.rank) if r.rank else None,
                "composite_score": r.composite_score,
                "percentile": pct,
                "percentile_text": percentile_text(pct, total),
                "performance": performance_label(pct),
                "gap_from_top": asdict(gap),
                "top_tier": bool(r.rank) and is_top_tier(r.rank, total),
                "position": relative_position(r.rank, total) if r.rank else None,
            }
        )
    dist = distribution(scores, bucket_count)
    return {
        "total": total,
        "statistics": stats.to_dict(),
        "distribution": [{"range": b.label, "count": b.count} for b in dist.buckets],
        "applicants": applicants,
    }
