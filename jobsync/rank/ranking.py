"""
Ranking and tie-breaking.

Orders the score records of one job and gives every applicant a
distinct rank and a distinct displayed composite score.  Raw ties are
broken by matched skills, then matched eligibilities (both more is
better), then earlier submission, then applicant id.  The displayed
score of a record that would equal or exceed the one above it is
pushed 0.01 below its predecessor.  Displayed scores never go below
0: when the cascade would, the bottom of the list is lifted to 0.00,
0.01, ... instead.

Ranking always starts from ``raw_composite_score``, so feeding ranked
output back in gives the same result.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from itertools import groupby
from typing import Iterable, List, Optional, Tuple

from .schema import ApplicantScoreRecord

logger = logging.getLogger(__name__)

DISPLAY_STEP = 0.01

_FAR_FUTURE = datetime.max.replace(tzinfo=timezone.utc)


def sort_key(record: ApplicantScoreRecord) -> Tuple:
    submitted = record.submitted_at
    return (
        -record.raw_composite_score,
        -record.matched_skills_count,
        -record.matched_eligibilities_count,
        submitted is None,
        submitted or _FAR_FUTURE,
        str(record.applicant_id),
    )


def rank(records: Iterable[ApplicantScoreRecord], job_id: Optional[str] = None) -> List[ApplicantScoreRecord]:
    """Return new records for one job, ordered, with ranks 1..N.

    Args:
        records: Score records of a single job (ranked or not).
        job_id: Expected job id; when omitted the first record's job id
            is used.

    Raises:
        ValueError: if the records belong to more than one job.
    """
    items = list(records)
    if not items:
        return []
    expected = job_id if job_id is not None else items[0].job_id
    stray = sorted({r.job_id for r in items if r.job_id != expected})
    if stray:
        raise ValueError(f"Cannot rank records of job {expected} together with job(s) {stray}")

    ordered = sorted(items, key=sort_key)
    displays: List[float] = []
    adjusted = 0
    for record in ordered:
        display = round(record.raw_composite_score, 2)
        if displays and display >= displays[-1]:
            display = round(displays[-1] - DISPLAY_STEP, 2)
            adjusted += 1
        displays.append(display)
    if displays[-1] < 0:
        # lift the tail back to 0.00, 0.01, ... from the bottom up
        floor = 0.0
        for i in range(len(displays) - 1, -1, -1):
            if displays[i] >= floor:
                break
            displays[i] = floor
            floor = round(floor + DISPLAY_STEP, 2)
    ranked = [
        replace(record, composite_score=display, rank=position)
        for position, (record, display) in enumerate(zip(ordered, displays), start=1)
    ]
    if adjusted:
        logger.debug("Tie-breaker adjusted %d displayed score(s) for job %s", adjusted, expected)
    return ranked


def find_tie_groups(records: Iterable[ApplicantScoreRecord]) -> List[List[ApplicantScoreRecord]]:
    """Groups of records that share a raw composite score.

    Only groups of two or more are returned, highest score first, each
    in tie-break order.
    """
    ordered = sorted(records, key=sort_key)
    groups = []
    for _, group in groupby(ordered, key=lambda r: round(r.raw_composite_score, 2)):
        members = list(group)
        if len(members) > 1:
            groups.append(members)
    return groups
