"""
Taxonomy alias index.

Loads a canonical-entity dictionary (degrees or eligibilities) into
an index mapping normalised alias strings to `CanonicalEntity`
objects.  Two document shapes are accepted, optionally wrapped in a
top-level ``degrees:`` or ``eligibilities:`` key:

* a list of entity mappings, each with ``key`` (or ``id``),
  ``canonical`` and optional ``level``/``category``/``field_group``/
  ``aliases``;
* a mapping of entity id to entity mapping (``key`` inside the value
  overrides the map key).

Rows without a key or canonical name are skipped.  When two entities
claim the same normalised alias the first one keeps it; the clash is
recorded and can be listed with `AliasIndex.collisions` but never
aborts loading.
"""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

import yaml  # type: ignore

from ..normalize.text import alias_key
from .schema import KIND_DEGREES, KIND_ELIGIBILITIES, AliasCollision, CanonicalEntity

logger = logging.getLogger(__name__)


class AliasIndex:
    """Immutable snapshot of one taxonomy."""

    def __init__(self, kind: str = KIND_DEGREES) -> None:
        self.kind = kind
        self._by_key: Dict[str, CanonicalEntity] = {}
        self._by_alias: Dict[str, CanonicalEntity] = {}
        self._claims: Dict[str, List[str]] = {}
        self._duplicate_keys: List[str] = []
        self.skipped_rows = 0
        self._version: Optional[str] = None

    def _add(self, entity: CanonicalEntity) -> None:
        if entity.key in self._by_key:
            logger.warning("Duplicate %s key %s; keeping first definition", self.kind, entity.key)
            self._duplicate_keys.append(entity.key)
            return
        self._by_key[entity.key] = entity
        seen = set()
        for name in entity.all_names():
            alias = alias_key(name)
            if not alias or alias in seen:
                continue
            seen.add(alias)
            claimants = self._claims.setdefault(alias, [])
            claimants.append(entity.key)
            if alias in self._by_alias:
                # ambiguous alias, keep first
                logger.debug(
                    "Alias %r already claimed by %s; dropped for %s",
                    alias,
                    self._by_alias[alias].key,
                    entity.key,
                )
                continue
            self._by_alias[alias] = entity

    def lookup(self, raw_text: Optional[str]) -> Optional[CanonicalEntity]:
        """Find the entity registered for ``raw_text`` (case/punctuation-insensitive)."""
        return self._by_alias.get(alias_key(raw_text))

    def get(self, key: Optional[str]) -> Optional[CanonicalEntity]:
        if key is None:
            return None
        return self._by_key.get(key)

    @property
    def entities(self) -> List[CanonicalEntity]:
        return list(self._by_key.values())

    @property
    def alias_count(self) -> int:
        return len(self._by_alias)

    @property
    def duplicate_keys(self) -> List[str]:
        return list(self._duplicate_keys)

    def collisions(self) -> List[AliasCollision]:
        """Aliases claimed by more than one distinct entity."""
        return [
            AliasCollision(alias=alias, keys=tuple(keys))
            for alias, keys in self._claims.items()
            if len(keys) > 1
        ]

    @property
    def version(self) -> str:
        """Content hash of the taxonomy, used to key embedding caches."""
        if self._version is None:
            payload = [
                [e.key, e.canonical_name, list(e.aliases)]
                for e in sorted(self._by_key.values(), key=lambda e: e.key)
            ]
            digest = hashlib.sha256(json.dumps([self.kind, payload]).encode("utf-8"))
            self._version = digest.hexdigest()[:16]
        return self._version

    def __len__(self) -> int:
        return len(self._by_key)

    def __iter__(self) -> Iterator[CanonicalEntity]:
        return iter(self._by_key.values())

    def __contains__(self, key: object) -> bool:
        return key in self._by_key


def _entity_from_mapping(value: Mapping[str, object], key: object, kind: str) -> Optional[CanonicalEntity]:
    canonical = value.get("canonical")
    if not key or not canonical:
        return None
    raw_aliases = value.get("aliases")
    aliases: Tuple[str, ...] = ()
    if isinstance(raw_aliases, (list, tuple)):
        aliases = tuple(str(a) for a in raw_aliases if a is not None and str(a).strip())
    level = value.get("level")
    category = value.get("category")
    field_group = value.get("field_group") or value.get("fieldGroup")
    return CanonicalEntity(
        key=str(key),
        canonical_name=str(canonical),
        kind=kind,
        level=str(level) if level else None,
        category=str(category) if category else None,
        field_group=str(field_group) if field_group else None,
        aliases=aliases,
    )


def parse_entities(doc: object, kind: str = KIND_DEGREES) -> Tuple[List[CanonicalEntity], int]:
    """Flatten a taxonomy document into entities.

    Args:
        doc: Parsed YAML/JSON document (list, mapping, or a mapping with
            a top-level ``degrees``/``eligibilities`` key).
        kind: ``degrees`` or ``eligibilities``.

    Returns:
        Tuple of (entities, number of skipped rows).
    """
    if not doc:
        return [], 0
    source = doc
    if isinstance(doc, Mapping) and kind in doc:
        source = doc[kind]
    entities: List[CanonicalEntity] = []
    skipped = 0
    if isinstance(source, list):
        for item in source:
            if not isinstance(item, Mapping):
                skipped += 1
                continue
            entity = _entity_from_mapping(item, item.get("key") or item.get("id"), kind)
            if entity is None:
                skipped += 1
                continue
            entities.append(entity)
    elif isinstance(source, Mapping):
        for raw_key, value in source.items():
            if not isinstance(value, Mapping):
                skipped += 1
                continue
            entity = _entity_from_mapping(value, value.get("key") or raw_key, kind)
            if entity is None:
                skipped += 1
                continue
            entities.append(entity)
    else:
        logger.warning("Unsupported %s document type %s", kind, type(source).__name__)
    if skipped:
        logger.debug("Skipped %d malformed %s rows", skipped, kind)
    return entities, skipped


def build(raw_entries: object, kind: str = KIND_DEGREES) -> AliasIndex:
    """Build an `AliasIndex` from a raw taxonomy document."""
    entities, skipped = parse_entities(raw_entries, kind)
    return build_from_entities(entities, kind, skipped=skipped)


def build_from_entities(entities: Iterable[CanonicalEntity], kind: str = KIND_DEGREES, skipped: int = 0) -> AliasIndex:
    index = AliasIndex(kind)
    for entity in entities:
        index._add(entity)
    index.skipped_rows = skipped
    logger.debug(
        "Built %s index: %d entities, %d aliases, %d collisions",
        kind,
        len(index),
        index.alias_count,
        len(index.collisions()),
    )
    return index


def find_alias_collisions(entities: Iterable[CanonicalEntity]) -> List[AliasCollision]:
    """Diagnostic scan: every normalised alias shared by distinct entities."""
    return build_from_entities(entities).collisions()


def load_taxonomy(path: str | Path, kind: str = KIND_DEGREES) -> AliasIndex:
    """Load a YAML (or JSON) taxonomy file.

    A missing or unparsable file is logged and yields an empty index so
    that the other dictionary can still be used.
    """
    file_path = Path(path)
    if not file_path.exists():
        logger.warning("%s dictionary %s not found, running without it", kind, file_path)
        return AliasIndex(kind)
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            doc = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        logger.error("Failed to load %s, continuing without %s dictionary: %s", file_path, kind, exc)
        return AliasIndex(kind)
    index = build(doc, kind)
    logger.info("Loaded %d %s (%d aliases) from %s", len(index), kind, index.alias_count, file_path)
    return index


__all__ = [
    "AliasIndex",
    "build",
    "build_from_entities",
    "find_alias_collisions",
    "load_taxonomy",
    "parse_entities",
    "KIND_DEGREES",
    "KIND_ELIGIBILITIES",
]
