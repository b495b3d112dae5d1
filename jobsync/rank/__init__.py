"""
Ranking subsystem for JobSync.

This package exposes the stages that turn applicant profiles into a
ranked list for one job:

* `skills` – required-skill matching against free-text skill lists
* `scoring` – education/experience/skills/eligibility sub-scores and the
  weighted composite
* `ranking` – deterministic tie-breaking, unique displayed scores and
  dense ranks
* `ensemble` – alternative composite strategies (model ensemble)
* `statistics` – reporting helpers over a job's score set
* `reroute` – best alternative job for applicants leaving a job

Each module can be used independently; see the docstrings of each
module for usage details.
"""

from .ensemble import STRATEGIES, ComponentScores, combine  # noqa: F401
from .ranking import find_tie_groups, rank  # noqa: F401
from .reroute import AlternativeJobMatch, ReRouter, ReRoutingResult  # noqa: F401
from .schema import (  # noqa: F401
    AlgorithmDetails,
    ApplicantProfile,
    ApplicantScoreRecord,
    JobRequirements,
    RankedJob,
    SkillMatchPair,
    WorkExperience,
)
from .scoring import ScoringEngine, ScoringPolicy, ScoringWeights  # noqa: F401
from .skills import is_skill_matched, match_skill, match_skills, skills_score  # noqa: F401
