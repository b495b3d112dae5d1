"""
Taxonomy subsystem for JobSync.

Canonical degree and eligibility dictionaries are loaded from YAML
into an `AliasIndex` (normalised alias -> `CanonicalEntity`).  The
index is built once per dictionary version and shared read-only by
the canonicaliser and the scoring engine.
"""

from .schema import AliasCollision, CanonicalEntity, KIND_DEGREES, KIND_ELIGIBILITIES  # noqa: F401
from .index import AliasIndex, build, find_alias_collisions, load_taxonomy  # noqa: F401
