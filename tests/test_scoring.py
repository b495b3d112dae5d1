"""
Unittest suite for the scoring engine.

Taxonomies are built in memory and only the dictionary tier is used,
so every canonicalisation is exact and the expected sub-scores can be
worked out by hand.
"""

from __future__ import annotations

import unittest
from datetime import datetime, timezone

from jobsync.canonical.resolver import Canonicalizer
from jobsync.rank.schema import ApplicantProfile, JobRequirements, WorkExperience
from jobsync.rank.scoring import (
    ScoringEngine,
    ScoringPolicy,
    ScoringWeights,
    detect_level,
    merge_intervals,
    normalize_level,
    total_years,
    years_score,
)
from jobsync.taxonomy import KIND_DEGREES, KIND_ELIGIBILITIES, build

AS_OF = datetime(2024, 1, 1, tzinfo=timezone.utc)

DEGREES = [
    {"key": "BSIT", "canonical": "Bachelor of Science in Information Technology", "level": "bachelor",
     "field_group": "computing", "aliases": ["BSIT", "BS IT"]},
    {"key": "BSCS", "canonical": "Bachelor of Science in Computer Science", "level": "bachelor",
     "field_group": "computing", "aliases": ["BSCS", "BS CS"]},
    {"key": "BSA", "canonical": "Bachelor of Science in Accountancy", "level": "bachelor",
     "field_group": "accounting_finance", "aliases": ["BSA"]},
]

ELIGIBILITIES = [
    {"key": "CSC_PROF", "canonical": "Career Service Professional Eligibility (Second Level)",
     "category": "csc", "aliases": ["Career Service Professional", "CS Professional"]},
    {"key": "CPA", "canonical": "Certified Public Accountant (CPA)", "category": "prc",
     "aliases": ["CPA", "Certified Public Accountant"]},
    {"key": "RA_1080", "canonical": "RA 1080 (Board/Bar Passer)", "category": "prc",
     "aliases": ["RA 1080", "Republic Act 1080"]},
]


def _dt(year: int, month: int = 1, day: int = 1) -> datetime:
    return datetime(year, month, day, tzinfo=timezone.utc)


def _engine(**kwargs) -> ScoringEngine:
    return ScoringEngine(
        degree_canonicalizer=Canonicalizer(build(DEGREES, KIND_DEGREES)),
        eligibility_canonicalizer=Canonicalizer(build(ELIGIBILITIES, KIND_ELIGIBILITIES)),
        **kwargs,
    )


class TestWeightsAndHelpers(unittest.TestCase):

    def test_weights_validation(self) -> None:
        self.assertEqual(ScoringWeights(), ScoringWeights(0.30, 0.20, 0.20, 0.30))
        with self.assertRaises(ValueError):
            ScoringWeights(0.5, 0.5, 0.5, 0.5)
        with self.assertRaises(ValueError):
            ScoringWeights(-0.1, 0.4, 0.4, 0.3)
        weights = ScoringWeights.from_dict({"education": 0.4, "eligibility": 0.2})
        self.assertAlmostEqual(weights.education, 0.4)
        with self.assertRaises(ValueError):
            ScoringWeights.from_dict({"education": 0.3, "salary": 0.1})

    def test_years_score(self) -> None:
        self.assertEqual(years_score(2, 0), 0.0)
        self.assertAlmostEqual(years_score(2, 1), 60.0)
        self.assertAlmostEqual(years_score(2, 2), 80.0)
        self.assertAlmostEqual(years_score(2, 4), 90.0)
        self.assertAlmostEqual(years_score(2, 6), 100.0)
        self.assertAlmostEqual(years_score(2, 20), 100.0)
        # no minimum is treated as one year
        self.assertAlmostEqual(years_score(0, 1), 80.0)
        # experience beyond the maximum does not count
        self.assertAlmostEqual(years_score(2, 10, max_years=3), 85.0)

    def test_overlapping_jobs_count_once(self) -> None:
        work = [
            WorkExperience(_dt(2020), _dt(2021)),
            WorkExperience(_dt(2020, 7), _dt(2022)),
            WorkExperience(None, _dt(2019)),
        ]
        self.assertAlmostEqual(total_years(work, AS_OF), 731 / 365.25, places=4)
        self.assertEqual(len(merge_intervals([(w.start, w.end) for w in work[:2]])), 1)

    def test_open_ended_job_runs_until_scoring_date(self) -> None:
        work = [WorkExperience(_dt(2022), None)]
        self.assertAlmostEqual(total_years(work, AS_OF), 730 / 365.25, places=4)

    def test_total_years_fallback(self) -> None:
        self.assertEqual(total_years([], AS_OF, fallback=3.5), 3.5)
        self.assertEqual(total_years([], AS_OF), 0.0)

    def test_levels(self) -> None:
        self.assertEqual(detect_level("BS Nursing"), "bachelor")
        self.assertEqual(detect_level("Master of Arts in Education"), "master")
        self.assertEqual(detect_level("PhD in Economics"), "doctoral")
        self.assertEqual(detect_level("Senior High School"), "secondary")
        self.assertIsNone(detect_level("Nursing"))
        self.assertEqual(normalize_level("Graduate Studies"), "master")
        self.assertEqual(normalize_level("College"), "bachelor")
        self.assertIsNone(normalize_level("kindergarten"))


class TestEducationScore(unittest.TestCase):

    def setUp(self) -> None:
        self.engine = _engine()

    def _score(self, requirement, education) -> float:
        job = JobRequirements("J1", degree_requirement=requirement)
        return self.engine.education_score(ApplicantProfile("A1", education=education), job)

    def test_no_requirement_is_neutral(self) -> None:
        self.assertEqual(self._score(None, ["BSIT"]), 50.0)
        self.assertEqual(self._score("Not Required", []), 50.0)

    def test_no_education_scores_zero(self) -> None:
        self.assertEqual(self._score("BSIT", []), 0.0)

    def test_same_canonical_degree(self) -> None:
        self.assertEqual(self._score("BSIT", ["BS IT"]), 100.0)

    def test_or_requirement_takes_best_option(self) -> None:
        self.assertEqual(self._score("BSCS, BSIT, or BSA", ["BS IT"]), 100.0)

    def test_and_requirement_gate(self) -> None:
        self.assertEqual(self._score("BSIT and BSA", ["BSIT"]), 0.0)
        self.assertEqual(self._score("BSIT and BSA", ["BSIT", "BSA"]), 100.0)

    def test_related_field_group(self) -> None:
        # 50 from text similarity, lifted by the shared computing group
        self.assertEqual(self._score("BSIT", ["BSCS"]), 75.0)

    def test_lower_level_penalised(self) -> None:
        self.assertEqual(
            self._score("Master of Science in Nursing", ["Bachelor of Science in Nursing"]),
            94.0,
        )

    def test_requirement_text_after_degree_is_ignored(self) -> None:
        self.assertEqual(self._score("BSIT Eligibilities: CSC Professional", ["BSIT"]), 100.0)


class TestEligibilityScore(unittest.TestCase):

    def setUp(self) -> None:
        self.engine = _engine()

    def _score(self, lines, held):
        job = JobRequirements("J1", eligibilities=lines)
        return self.engine.eligibility_score(ApplicantProfile("A1", eligibilities=held), job)

    def test_no_requirement_is_neutral(self) -> None:
        self.assertEqual(self._score([], ["CPA"]), (50.0, 0))
        self.assertEqual(self._score(["CPA", "None"], []), (50.0, 0))

    def test_canonical_match(self) -> None:
        self.assertEqual(self._score(["Career Service Professional"], ["CS Professional"]), (100.0, 1))

    def test_missing_eligibility(self) -> None:
        self.assertEqual(self._score(["Career Service Professional"], []), (0.0, 0))

    def test_and_line_needs_every_option(self) -> None:
        self.assertEqual(self._score(["CPA and Career Service Professional"], ["CPA"]), (0.0, 1))
        self.assertEqual(
            self._score(["CPA and Career Service Professional"], ["CPA", "CS Professional"]),
            (100.0, 2),
        )

    def test_or_line_needs_one_option(self) -> None:
        self.assertEqual(self._score(["CPA or RA 1080"], ["Republic Act 1080"]), (100.0, 1))

    def test_every_line_must_be_met(self) -> None:
        self.assertEqual(self._score(["CPA", "Career Service Professional"], ["CPA"]), (0.0, 1))

    def test_near_identical_name_counts(self) -> None:
        self.assertEqual(
            self._score(["Career Service Professional"], ["Career Service Professionals"]),
            (100.0, 1),
        )


class TestComposite(unittest.TestCase):

    def setUp(self) -> None:
        self.job = JobRequirements(
            "J1",
            degree_requirement="BSIT",
            eligibilities=["Career Service Professional"],
            skills=["Python", "Excel"],
            years_of_experience=2,
        )
        self.strong = ApplicantProfile(
            "A1",
            education=["BS IT"],
            skills=["Python", "Excel"],
            eligibilities=["CS Professional"],
            total_years_experience=1,
            submitted_at=_dt(2023, 12, 1),
        )
        self.weak = ApplicantProfile(
            "A2",
            education=["BSA"],
            skills=["Excel"],
            eligibilities=[],
            submitted_at=_dt(2023, 11, 1),
        )

    def test_composite_is_weighted_sum(self) -> None:
        record = _engine().score(self.strong, self.job, as_of=AS_OF)
        self.assertEqual(record.education_score, 100.0)
        # years 60 * 0.7 + relevance 100 * 0.3
        self.assertAlmostEqual(record.experience_score, 72.0)
        self.assertEqual(record.skills_score, 100.0)
        self.assertEqual(record.eligibility_score, 100.0)
        self.assertAlmostEqual(record.composite_score, 94.4)
        self.assertEqual(record.raw_composite_score, record.composite_score)
        self.assertEqual(record.matched_skills_count, 2)
        self.assertEqual(record.matched_eligibilities_count, 1)
        self.assertIsNone(record.rank)

    def test_ensemble_strategy_feeds_the_composite(self) -> None:
        engine = _engine(policy=ScoringPolicy(strategy="ensemble"))
        record = engine.score(self.strong, self.job, as_of=AS_OF)
        # sub-scores do not depend on the strategy
        self.assertAlmostEqual(record.experience_score, 72.0)
        # 0.6 * 94.4 + 0.4 * (0.3 * 100 * e^-0.75 + 70)
        self.assertAlmostEqual(record.composite_score, 90.31)
        self.assertEqual(record.raw_composite_score, record.composite_score)
        self.assertEqual(record.algorithm_used, "Multi-Factor Assessment")
        self.assertIn("strong educational background", record.reasoning)
        self.assertEqual(record.algorithm_details.ensemble_method, "weighted_average")
        self.assertAlmostEqual(record.algorithm_details.algorithm1_score, 94.4)

        ranked = engine.score_job(self.job, [self.weak, self.strong], as_of=AS_OF)
        self.assertEqual(ranked.records[0].applicant_id, "A1")
        self.assertTrue(all(r.algorithm_used.startswith(("Multi-Factor", "Ensemble")) for r in ranked.records))

    def test_default_strategy_records_weighted_sum_reasoning(self) -> None:
        record = _engine().score(self.strong, self.job, as_of=AS_OF)
        self.assertEqual(record.algorithm_used, "Weighted Sum Model")
        self.assertEqual(
            record.reasoning,
            "Education (30%): 100.0, Experience (20%): 72.0, Skills (20%): 100.0, Eligibility (30%): 100.0",
        )
        self.assertIsNone(record.algorithm_details)
        self.assertEqual(record.to_dict()["algorithm_used"], "Weighted Sum Model")

    def test_custom_weights(self) -> None:
        engine = _engine(weights=ScoringWeights(education=1.0, experience=0.0, skills=0.0, eligibility=0.0))
        self.assertEqual(engine.score(self.weak, self.job, as_of=AS_OF).composite_score,
                         engine.score(self.weak, self.job, as_of=AS_OF).education_score)

    def test_score_job_ranks_and_is_repeatable(self) -> None:
        engine = _engine()
        first = engine.score_job(self.job, [self.weak, self.strong], as_of=AS_OF)
        second = engine.score_job(self.job, [self.strong, self.weak], as_of=AS_OF)
        self.assertEqual([r.applicant_id for r in first.records], ["A1", "A2"])
        self.assertEqual([r.rank for r in first.records], [1, 2])
        self.assertEqual(first.records, second.records)
        self.assertEqual(first.scored_at, AS_OF)

    def test_prefetch_path_gives_same_scores(self) -> None:
        plain = _engine().score_job(self.job, [self.strong, self.weak], as_of=AS_OF)
        pooled = _engine(timeout=5.0, max_workers=2).score_job(self.job, [self.strong, self.weak], as_of=AS_OF)
        self.assertEqual(plain.records, pooled.records)

    def test_engine_without_taxonomies(self) -> None:
        engine = ScoringEngine()
        job = JobRequirements("J2", degree_requirement="Bachelor of Science in Nursing")
        applicant = ApplicantProfile("A9", education=["BS Nursing"])
        self.assertAlmostEqual(engine.education_score(applicant, job), 70.0)


class TestRecordParsing(unittest.TestCase):

    def test_applicant_from_dict(self) -> None:
        applicant = ApplicantProfile.from_dict(
            {
                "id": 7,
                "education": [{"degree": "BSIT", "school": "PLM"}],
                "work_experience": [{"start_date": "2021-06-01", "end_date": "Present", "position": "IT Aide"}],
                "eligibilities": [{"title": "CS Professional"}],
                "skills": ["Python", " "],
                "submitted_at": "2023-12-01T00:00:00Z",
            }
        )
        self.assertEqual(applicant.applicant_id, "7")
        self.assertEqual(applicant.education, ["BSIT"])
        self.assertIsNone(applicant.work_experience[0].end)
        self.assertEqual(applicant.work_experience[0].title, "IT Aide")
        self.assertEqual(applicant.eligibilities, ["CS Professional"])
        self.assertEqual(applicant.skills, ["Python"])

    def test_applicant_with_pds_dates(self) -> None:
        applicant = ApplicantProfile.from_dict(
            {
                "applicant_id": "a1",
                "work_experience": [
                    {"start_date": "15-01-2020", "end_date": "Present"},
                    {"periodOfService": {"from": "01/06/2017", "to": "Dec 31, 2019"}},
                ],
            }
        )
        self.assertEqual(applicant.work_experience[0].start, _dt(2020, 1, 15))
        self.assertIsNone(applicant.work_experience[0].end)
        self.assertEqual(applicant.work_experience[1].start, _dt(2017, 6, 1))
        self.assertEqual(applicant.work_experience[1].end, _dt(2019, 12, 31))

    def test_job_from_dict_rejects_bad_years(self) -> None:
        job = JobRequirements.from_dict({"id": "J5", "yearsOfExperience": "3", "skills": "Python"})
        self.assertEqual(job.years_of_experience, 3.0)
        self.assertEqual(job.skills, ["Python"])
        with self.assertRaises(ValueError):
            JobRequirements.from_dict({"job_id": "J6", "years_of_experience": "several"})
        with self.assertRaises(ValueError):
            JobRequirements.from_dict({"title": "Clerk"})


if __name__ == "__main__":
    unittest.main()
