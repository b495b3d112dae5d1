"""Tests for required-skill matching and the skill sub-score."""

from __future__ import annotations

import pytest  # type: ignore

from jobsync.rank.schema import MATCH_EXACT, MATCH_HIGH, MATCH_MEDIUM, MATCH_NONE, MATCH_TOKEN
from jobsync.rank.skills import (
    is_skill_matched,
    match_skill,
    match_skills,
    required_skill_list,
    skills_score,
)


def test_exact_match_is_case_insensitive() -> None:
    pair = match_skill("Python", ["Excel", "python"])
    assert pair.match_type == MATCH_EXACT
    assert pair.similarity == 100.0
    assert pair.matched_applicant_skill == "python"


def test_high_and_medium_bands() -> None:
    # one edit in ten characters
    high = match_skill("Accounting", ["Acounting"])
    assert high.match_type == MATCH_HIGH
    assert high.similarity == pytest.approx(90.0)

    medium = match_skill("Bookkeeping", ["Bookkeeper"])
    assert medium.match_type == MATCH_MEDIUM
    assert 50.0 <= medium.similarity < 80.0


def test_token_fallback_gives_partial_credit() -> None:
    pair = match_skill("Data Analysis", ["Statistical data modelling and analysis work"])
    assert pair.match_type == MATCH_TOKEN
    assert pair.similarity == pytest.approx(30.0)
    assert pair.matched


def test_no_match() -> None:
    pair = match_skill("Welding", ["Python", ""])
    assert pair.match_type == MATCH_NONE
    assert pair.matched_applicant_skill is None
    assert not pair.matched
    assert not is_skill_matched("Welding", [])


def test_required_skill_list_dedupes_and_drops_placeholders() -> None:
    assert required_skill_list(["Python", "python ", "No skills required", "", "Excel"]) == ["Python", "Excel"]


def test_skills_score_neutral_and_empty() -> None:
    assert skills_score([], ["Python"]) == 50.0
    assert skills_score(["No specific skills required"], []) == 50.0
    assert skills_score(["Python"], []) == 0.0


def test_skills_score_mean_plus_surplus_bonus() -> None:
    required = ["Python", "Excel"]
    applicant = ["python", "excel", "SQL", "Git", "Docker"]
    # both exact (100) capped at 100 even with a bonus of three
    assert skills_score(required, applicant) == 100.0

    summary = match_skills(["Python", "Welding"], ["Python", "Excel", "SQL"])
    assert summary.matched_flags == [True, False]
    assert summary.matched_count == 1
    # mean (100 + 0) / 2 plus one surplus skill
    assert skills_score(["Python", "Welding"], ["Python", "Excel", "SQL"]) == pytest.approx(51.0)


def test_surplus_bonus_is_capped() -> None:
    applicant = ["Welding"] + [f"Skill {i}" for i in range(10)]
    # Welding exact, Carpentry nothing -> mean 50, bonus capped at 5
    assert skills_score(["Welding", "Carpentry"], applicant) == pytest.approx(55.0)
