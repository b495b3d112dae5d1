"""Tests for ranking statistics and report phrases."""

from __future__ import annotations

import math

import pytest  # type: ignore

from jobsync.rank.schema import ApplicantScoreRecord
from jobsync.rank.statistics import (
    calculate_percentile,
    calculate_statistics,
    distribution,
    gap_from_top,
    is_top_tier,
    ordinal,
    percentile_text,
    performance_label,
    relative_position,
    summarize_job,
)


def test_statistics_on_empty_input_are_zero() -> None:
    stats = calculate_statistics([])
    assert stats.to_dict() == {"min": 0.0, "max": 0.0, "mean": 0.0, "median": 0.0, "std_dev": 0.0}
    assert calculate_statistics([None, math.nan]).mean == 0.0
    assert calculate_percentile(50.0, []) == 0
    assert distribution([]).buckets == []
    assert gap_from_top(10.0, 0.0).absolute == 0.0


def test_statistics_values() -> None:
    stats = calculate_statistics([60.0, 70.0, 80.0, 90.0])
    assert stats.min == 60.0
    assert stats.max == 90.0
    assert stats.mean == 75.0
    assert stats.median == 75.0
    # population standard deviation
    assert stats.std_dev == pytest.approx(11.2)


def test_percentile_counts_strictly_lower_values() -> None:
    values = [60.0, 70.0, 80.0, 90.0]
    assert calculate_percentile(90.0, values) == 75
    assert calculate_percentile(60.0, values) == 0
    assert calculate_percentile(None, values) == 0


def test_distribution_places_every_value_once() -> None:
    values = [0.0, 10.0, 20.0, 50.0, 100.0]
    dist = distribution(values, bucket_count=5)
    assert dist.total == 5
    assert [b.count for b in dist.buckets] == [2, 1, 1, 0, 1]
    assert sum(b.count for b in dist.buckets) == len(values)
    assert dist.buckets[0].label == "0-20"
    assert dist.buckets[-1].label == "80-100"


def test_distribution_with_identical_scores() -> None:
    dist = distribution([75.0, 75.0, 75.0], bucket_count=3)
    assert sum(b.count for b in dist.buckets) == 3
    assert [b.count for b in dist.buckets] == [3, 0, 0]
    assert dist.buckets[0].start == dist.buckets[0].end == 75.0


def test_gap_from_top() -> None:
    gap = gap_from_top(80.0, 100.0)
    assert gap.absolute == 20.0
    assert gap.percentage == 20.0


@pytest.mark.parametrize(
    "percentile, label",
    [(95, "Exceptional"), (75, "Above Average"), (50, "Average"), (30, "Below Average"), (10, "Needs Improvement")],
)
def test_performance_label(percentile: int, label: str) -> None:
    assert performance_label(percentile) == label


def test_phrases() -> None:
    assert percentile_text(80, 1) == "Only applicant"
    assert percentile_text(100, 10) == "Best among all 10 applicants"
    assert percentile_text(0, 10) == "Lowest among all 10 applicants"
    assert percentile_text(75, 10) == "Better than 75% of applicants"
    assert [ordinal(n) for n in (1, 2, 3, 4, 11, 12, 13, 21, 22, 101, 111)] == [
        "1st", "2nd", "3rd", "4th", "11th", "12th", "13th", "21st", "22nd", "101st", "111th",
    ]
    assert relative_position(1, 1) == "Only applicant for this position"
    assert relative_position(1, 10) == "Top-ranked candidate"
    assert relative_position(3, 10) == "Third highest-ranked candidate"
    assert relative_position(4, 10) == "In upper half of applicants"
    assert relative_position(10, 10) == "Among bottom quarter of applicants"


def test_top_tier() -> None:
    assert is_top_tier(1, 3)
    assert not is_top_tier(2, 3)
    assert is_top_tier(3, 5)
    assert is_top_tier(4, 12)
    assert not is_top_tier(5, 12)


def test_summarize_job() -> None:
    records = [
        ApplicantScoreRecord("A", "J1", 0, 0, 0, 0, composite_score=90.0, raw_composite_score=90.0, rank=1),
        ApplicantScoreRecord("B", "J1", 0, 0, 0, 0, composite_score=70.0, raw_composite_score=70.0, rank=2),
    ]
    summary = summarize_job(records)
    assert summary["total"] == 2
    assert summary["statistics"]["mean"] == 80.0
    first, second = summary["applicants"]
    assert first["ordinal"] == "1st"
    assert first["percentile"] == 50
    assert first["gap_from_top"] == {"absolute": 0.0, "percentage": 0.0}
    assert second["gap_from_top"]["absolute"] == 20.0
    assert second["position"] == "Second highest-ranked candidate"
    assert summarize_job([])["applicants"] == []
