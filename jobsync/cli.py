"""
Command line interface for JobSync.

Subcommands:

* ``taxonomy check`` – load a degree or eligibility dictionary and
  report alias collisions and duplicate keys;
* ``canonicalize`` – resolve raw strings against a dictionary and print
  the results as JSON;
* ``rank`` – score and rank the applicants of one job and write the
  ranked CSV;
* ``stats`` – print statistics for a ranked CSV;
* ``reroute`` – propose the best other open job for each applicant of
  a job, as JSON;
* ``transition`` – validate one status change and print the outcome.

The CLI only wires files to the library; every rule lives in the
``normalize``, ``taxonomy``, ``canonical``, ``rank`` and ``status``
packages.
"""

from __future__ import annotations

import argparse
import csv
import json
import logging
import sys
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional

from .canonical.llm_providers import PlaceholderProvider, get_default_provider
from .config import build_engine, canonicalizer_from_config, load_config
from .normalize.dates import parse_timestamp
from .rank.ensemble import STRATEGIES
from .rank.reroute import MIN_MATCH_SCORE, ReRouter
from .rank.schema import RANKED_HEADERS, ApplicantProfile, ApplicantScoreRecord, JobRequirements
from .rank.statistics import summarize_job
from .status.history import StatusRecord, TransitionRequest, apply_transition
from .status.machine import lifecycles
from .taxonomy.index import load_taxonomy
from .taxonomy.schema import KIND_DEGREES, KIND_ELIGIBILITIES

logger = logging.getLogger("jobsync.cli")


def _load_json(path: str) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def _load_applicants(path: str) -> List[ApplicantProfile]:
    doc = _load_json(path)
    if isinstance(doc, dict):
        doc = doc.get("applicants", [])
    applicants = []
    for item in doc:
        try:
            applicants.append(ApplicantProfile.from_dict(item))
        except ValueError as exc:
            logger.warning("Skipping applicant record: %s", exc)
    return applicants


def cmd_taxonomy_check(args: argparse.Namespace) -> int:
    """Report alias collisions; non-zero exit when any exist."""
    if not Path(args.file).exists():
        logger.error("Dictionary file not found: %s", args.file)
        return 2
    index = load_taxonomy(args.file, args.kind)
    collisions = index.collisions()
    print(f"{args.kind}: {len(index)} entities, {index.alias_count} aliases, {index.skipped_rows} skipped rows")
    for key in index.duplicate_keys:
        print(f"  duplicate key: {key}")
    for collision in collisions:
        winner, *others = collision.keys
        print(f"  alias '{collision.alias}' -> {winner} (also claimed by {', '.join(others)})")
    if collisions:
        logger.warning("%d alias collision(s) found in %s", len(collisions), args.file)
        return 1
    print("No alias collisions found.")
    return 0


def cmd_canonicalize(args: argparse.Namespace) -> int:
    """Resolve raw strings and print JSON results."""
    config = load_config(args.config)
    index = load_taxonomy(args.taxonomy, args.kind)
    canonicalizer = canonicalizer_from_config(index, config)
    if args.expression:
        output = []
        for text in args.text:
            expr = canonicalizer.canonicalize_expression(text)
            output.append(
                {
                    "raw_input": expr.raw_input,
                    "mode": expr.mode,
                    "options": [o.to_dict() for o in expr.options],
                }
            )
        _print_json(output)
        return 0
    results = canonicalizer.resolve_many(
        args.text,
        timeout=config.tiers.timeout,
        max_workers=config.tiers.max_workers,
    )
    _print_json([r.to_dict() for r in results])
    return 0


def cmd_rank(args: argparse.Namespace) -> int:
    """Score and rank the applicants of one job and write CSV."""
    config = load_config(args.config)
    job = JobRequirements.from_dict(_load_json(args.job))
    applicants = _load_applicants(args.applicants)
    as_of = parse_timestamp(args.as_of) if args.as_of else datetime.now(timezone.utc)
    if args.strategy:
        config.policy = replace(config.policy, strategy=args.strategy)
    engine = build_engine(config)
    ranked = engine.score_job(job, applicants, as_of=as_of)
    with open(args.out, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(RANKED_HEADERS)
        for record in ranked.records:
            writer.writerow(record.to_csv_row())
    logger.info("Wrote %d ranked applicants for job %s to %s", len(ranked), job.job_id, args.out)
    for record in ranked.top(args.limit):
        print(f"{record.rank:02d}. {record.applicant_id} – {record.composite_score:.2f}")
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    """Print statistics for a ranked CSV."""
    with open(args.ranked, "r", encoding="utf-8") as f:
        records = [ApplicantScoreRecord.from_csv_row(row) for row in csv.DictReader(f)]
    if args.job:
        records = [r for r in records if r.job_id == args.job]
    summary = summarize_job(records, bucket_count=args.buckets)
    if args.json:
        _print_json(summary)
        return 0
    stats = summary["statistics"]
    print(f"Applicants: {summary['total']}")
    print(
        f"Min {stats['min']}  Max {stats['max']}  Mean {stats['mean']}  "
        f"Median {stats['median']}  Std dev {stats['std_dev']}"
    )
    for bucket in summary["distribution"]:
        print(f"  {bucket['range']:>9}: {bucket['count']}")
    for entry in summary["applicants"][: args.limit]:
        print(f"{entry['ordinal'] or '-':>5} {entry['applicant_id']} – {entry['composite_score']:.2f} ({entry['performance']})")
        print(f"      {entry['percentile_text']}; {entry['position']}")
    return 0


def cmd_reroute(args: argparse.Namespace) -> int:
    """Propose an alternative job for every applicant and print JSON."""
    config = load_config(args.config)
    doc = _load_json(args.jobs)
    if isinstance(doc, dict):
        doc = doc.get("jobs", [])
    jobs = [JobRequirements.from_dict(item) for item in doc]
    applicants = _load_applicants(args.applicants)
    as_of = parse_timestamp(args.as_of) if args.as_of else datetime.now(timezone.utc)
    llm = get_default_provider(timeout=config.tiers.timeout or 30.0) if config.tiers.llm_enabled else None
    if isinstance(llm, PlaceholderProvider):
        llm = None
    router = ReRouter(build_engine(config), llm=llm, min_score=args.min_score)
    results = router.reroute(applicants, args.current_job, jobs, as_of=as_of)
    _print_json([r.to_dict() for r in results])
    return 0


def cmd_transition(args: argparse.Namespace) -> int:
    """Validate one status change and print the outcome as JSON."""
    record = StatusRecord.from_dict({"id": args.record_id, "status": args.current}, lifecycle=args.lifecycle)
    outcome = apply_transition(record, TransitionRequest(args.requested, actor=args.actor, notes=args.notes))
    _print_json(outcome.to_dict())
    return 0 if outcome.accepted else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="jobsync", description="JobSync matching engine CLI")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # Taxonomy
    taxonomy_parser = subparsers.add_parser("taxonomy", help="Dictionary maintenance commands")
    taxonomy_sub = taxonomy_parser.add_subparsers(dest="subcommand", required=True)
    check_cmd = taxonomy_sub.add_parser("check", help="Report alias collisions in a dictionary")
    check_cmd.add_argument("--file", required=True, help="Path to the YAML dictionary")
    check_cmd.add_argument("--kind", choices=[KIND_DEGREES, KIND_ELIGIBILITIES], default=KIND_DEGREES)
    check_cmd.set_defaults(func=cmd_taxonomy_check)

    # Canonicalize
    canon_cmd = subparsers.add_parser("canonicalize", help="Resolve raw strings to canonical keys")
    canon_cmd.add_argument("--taxonomy", required=True, help="Path to the YAML dictionary")
    canon_cmd.add_argument("--kind", choices=[KIND_DEGREES, KIND_ELIGIBILITIES], default=KIND_DEGREES)
    canon_cmd.add_argument("--config", help="Engine YAML config")
    canon_cmd.add_argument(
        "--expression",
        action="store_true",
        help='Treat each TEXT as a requirement line ("A, B, or C")',
    )
    canon_cmd.add_argument("text", nargs="+", help="Raw strings to resolve")
    canon_cmd.set_defaults(func=cmd_canonicalize)

    # Rank
    rank_cmd = subparsers.add_parser("rank", help="Score and rank applicants for one job")
    rank_cmd.add_argument("--job", required=True, help="Path to job JSON")
    rank_cmd.add_argument("--applicants", required=True, help="Path to applicants JSON")
    rank_cmd.add_argument("--config", help="Engine YAML config")
    rank_cmd.add_argument("--as-of", dest="as_of", help="Scoring date (ISO-8601); defaults to now")
    rank_cmd.add_argument("--out", default="ranked.csv", help="Output CSV path")
    rank_cmd.add_argument("--strategy", choices=STRATEGIES, help="Composite strategy (overrides the config)")
    rank_cmd.add_argument("--limit", type=int, default=10, help="Number of top applicants to print")
    rank_cmd.set_defaults(func=cmd_rank)

    # Stats
    stats_cmd = subparsers.add_parser("stats", help="Print statistics for a ranked CSV")
    stats_cmd.add_argument("--ranked", required=True, help="Path to ranked CSV")
    stats_cmd.add_argument("--job", help="Only include rows of this job id")
    stats_cmd.add_argument("--buckets", type=int, default=5, help="Histogram bucket count")
    stats_cmd.add_argument("--limit", type=int, default=20, help="Number of applicants to display")
    stats_cmd.add_argument("--json", action="store_true", help="Print the summary as JSON")
    stats_cmd.set_defaults(func=cmd_stats)

    # Reroute
    reroute_cmd = subparsers.add_parser("reroute", help="Propose alternative jobs for a job's applicants")
    reroute_cmd.add_argument("--jobs", required=True, help="Path to JSON list of open jobs")
    reroute_cmd.add_argument("--applicants", required=True, help="Path to applicants JSON")
    reroute_cmd.add_argument("--current-job", dest="current_job", required=True, help="Job id being left")
    reroute_cmd.add_argument("--config", help="Engine YAML config")
    reroute_cmd.add_argument("--as-of", dest="as_of", help="Scoring date (ISO-8601); defaults to now")
    reroute_cmd.add_argument(
        "--min-score", dest="min_score", type=float, default=MIN_MATCH_SCORE, help="Lowest match to propose"
    )
    reroute_cmd.set_defaults(func=cmd_reroute)

    # Transition
    trans_cmd = subparsers.add_parser("transition", help="Validate a status change")
    trans_cmd.add_argument("--lifecycle", required=True, choices=lifecycles())
    trans_cmd.add_argument("--current", required=True, help="Current status")
    trans_cmd.add_argument("--requested", required=True, help="Requested status")
    trans_cmd.add_argument("--actor", help="Who is making the change")
    trans_cmd.add_argument("--notes", help="Reason for the change")
    trans_cmd.add_argument("--record-id", dest="record_id", default="cli", help="Record identifier")
    trans_cmd.set_defaults(func=cmd_transition)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )
    try:
        return args.func(args) or 0
    except (OSError, ValueError) as exc:
        logger.error("%s", exc)
        return 2


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
