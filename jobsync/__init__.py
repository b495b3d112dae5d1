"""
JobSync matching engine.

This package contains the pieces of the recruitment portal that turn
free-text applicant data into canonical, comparable values and rank
applicants per job.  Each subpackage implements one stage:

1. **normalize** – Shared text normalisation: casing, punctuation
   stripping, tokenisation, Levenshtein similarity and parsing of
   "A, B, or C" requirement expressions.
2. **taxonomy** – Load the degree and eligibility dictionaries (YAML)
   into an alias index and report alias collisions.
3. **canonical** – Resolve raw degree/eligibility text to a canonical
   key through a chain of tiers: dictionary lookup, embedding nearest
   neighbour and LLM classification.  Embedding and LLM backends are
   pluggable providers.
4. **rank** – Match skills, score applicants against a job, rank them
   with a deterministic tie-breaker and compute reporting statistics.
5. **status** – Validate lifecycle transitions for training programs
   and applications and keep an append-only status history.
6. **config** – YAML settings with `.env`/`JOBSYNC_*` overrides and
   assembly of the scoring engine from them.
7. **cli** – Command line entry point wiring the above together.

The engine performs no persistence of its own; callers hand in plain
records and store whatever comes back.
"""

from importlib import metadata  # noqa: F401 (expose package version)

try:
    __version__ = metadata.version("jobsync")
except metadata.PackageNotFoundError:  # running from a source checkout
    __version__ = "0.0.0"
