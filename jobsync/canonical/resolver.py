"""
Canonicaliser: free text -> canonical taxonomy key.

A `Canonicalizer` runs a raw degree or eligibility string through an
ordered chain of tiers and returns the first match:

1. `DictionaryTier` – exact alias lookup in the `AliasIndex`
   (confidence 1.0).
2. `EmbeddingTier` – nearest canonical name by cosine similarity of
   provider embeddings.  Canonical-name vectors are computed once per
   taxonomy version.
3. `LLMTier` – a text-classification prompt over a token-overlap
   shortlist of candidates, with an explicit ``UNKNOWN`` option.

The embedding and LLM tiers are optional.  Provider failures never
escape a tier; they degrade to a no-match result.  Results are memoised
per normalised input, and `Canonicalizer.resolve_many` resolves a batch
concurrently with a per-batch timeout so that one hung provider call
does not hold up the rest.
"""

from __future__ import annotations

import json
import logging
import math
import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from ..normalize.text import (
    LIST_SINGLE,
    detect_list_mode,
    normalize_key,
    parse_list_expression,
    token_overlap,
)
from ..taxonomy.index import AliasIndex
from ..taxonomy.schema import CanonicalEntity
from .embeddings import EmbeddingProvider
from .llm_providers import LLMProvider
from .llm_schema import parse_classification_json

logger = logging.getLogger(__name__)

METHOD_DICTIONARY = "dictionary"
METHOD_EMBEDDING = "embedding"
METHOD_LLM = "llm"

UNKNOWN_CONFIDENCE = 0.3
INVALID_KEY_CONFIDENCE = 0.2
DEFAULT_LLM_CONFIDENCE = 0.8


def _clamp01(value: float) -> float:
    if value is None or math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, float(value)))


@dataclass(frozen=True)
class NormalizationResult:
    """Outcome of canonicalising one raw string."""

    canonical_key: Optional[str]
    method: str
    confidence: float
    raw_input: str
    # provider failure or timeout; such misses are not memoised
    transient: bool = field(default=False, compare=False, repr=False)

    @property
    def matched(self) -> bool:
        return self.canonical_key is not None

    def to_dict(self) -> Dict[str, object]:
        return {
            "raw_input": self.raw_input,
            "canonical_key": self.canonical_key,
            "method": self.method,
            "confidence": round(self.confidence, 4),
        }


@dataclass(frozen=True)
class CanonicalExpression:
    """A requirement line ("A, B, or C") with every option canonicalised."""

    raw_input: str
    mode: str
    options: Tuple[NormalizationResult, ...] = field(default_factory=tuple)


class Tier(ABC):
    """One step of the canonicalisation chain."""

    method = "base"

    @abstractmethod
    def resolve(self, raw_text: str, taxonomy: AliasIndex) -> NormalizationResult:
        """Return a match, or a no-match result carrying this tier's method."""

    def _miss(self, raw_text: str, confidence: float = 0.0, transient: bool = False) -> NormalizationResult:
        return NormalizationResult(None, self.method, _clamp01(confidence), raw_text, transient=transient)


class DictionaryTier(Tier):
    method = METHOD_DICTIONARY

    def resolve(self, raw_text: str, taxonomy: AliasIndex) -> NormalizationResult:
        entity = taxonomy.lookup(raw_text)
        if entity is None:
            return self._miss(raw_text)
        return NormalizationResult(entity.key, self.method, 1.0, raw_text)


class EmbeddingTier(Tier):
    """Nearest-neighbour match over canonical names.

    Args:
        provider: Embedding backend.
        min_similarity: A candidate is accepted only when its cosine
            similarity is strictly greater than this value.
    """

    method = METHOD_EMBEDDING

    def __init__(self, provider: EmbeddingProvider, min_similarity: float = 0.75) -> None:
        self.provider = provider
        self.min_similarity = min_similarity
        self._cache: Dict[str, Tuple[List[str], np.ndarray]] = {}
        self._lock = threading.Lock()

    def _canonical_matrix(self, taxonomy: AliasIndex) -> Tuple[List[str], np.ndarray]:
        version = taxonomy.version
        with self._lock:
            cached = self._cache.get(version)
            if cached is not None:
                return cached
            entities = taxonomy.entities
            vectors = self.provider.embed([e.canonical_name for e in entities])
            keys: List[str] = []
            rows: List[np.ndarray] = []
            for entity, vector in zip(entities, vectors):
                if vector is None:
                    continue
                arr = np.asarray(vector, dtype=float)
                norm = float(np.linalg.norm(arr))
                if norm == 0.0:
                    continue
                keys.append(entity.key)
                rows.append(arr / norm)
            matrix = np.vstack(rows) if rows else np.zeros((0, 0))
            self._cache = {version: (keys, matrix)}
            logger.debug("Cached %d canonical embeddings for taxonomy %s", len(keys), version)
            return keys, matrix

    def resolve(self, raw_text: str, taxonomy: AliasIndex) -> NormalizationResult:
        if len(taxonomy) == 0:
            return self._miss(raw_text)
        try:
            keys, matrix = self._canonical_matrix(taxonomy)
            query = self.provider.embed([raw_text])[0]
        except Exception as exc:  # noqa: BLE001
            logger.warning("Embedding lookup failed for %r: %s", raw_text, exc)
            return self._miss(raw_text, transient=True)
        if query is None:
            return self._miss(raw_text, transient=True)
        if not keys:
            return self._miss(raw_text)
        q = np.asarray(query, dtype=float)
        q_norm = float(np.linalg.norm(q))
        if q_norm == 0.0 or q.shape[0] != matrix.shape[1]:
            return self._miss(raw_text)
        sims = matrix @ (q / q_norm)
        best = int(np.argmax(sims))
        similarity = float(sims[best])
        if similarity <= self.min_similarity:
            logger.debug("Best embedding match for %r below threshold (%.3f)", raw_text, similarity)
            return self._miss(raw_text)
        return NormalizationResult(keys[best], self.method, _clamp01(similarity), raw_text)


class LLMTier(Tier):
    """Ask an LLM to pick among a shortlist of canonical entities.

    Args:
        provider: Text generation backend.
        candidate_limit: Maximum number of candidates put in the prompt.
        subject: Human-readable noun used in the prompt ("degree",
            "eligibility or license").
    """

    method = METHOD_LLM

    def __init__(self, provider: LLMProvider, candidate_limit: int = 20, subject: Optional[str] = None) -> None:
        self.provider = provider
        self.candidate_limit = candidate_limit
        self.subject = subject

    def candidates(self, raw_text: str, taxonomy: AliasIndex) -> List[CanonicalEntity]:
        """Top entities by token overlap with their canonical names."""
        scored = []
        for entity in taxonomy:
            score = token_overlap(raw_text, entity.canonical_name)
            if score > 0:
                scored.append((score, entity))
        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [entity for _, entity in scored[: self.candidate_limit]]

    def build_prompt(self, raw_text: str, candidates: Sequence[CanonicalEntity], kind: str) -> str:
        subject = self.subject or ("eligibility or license" if kind == "eligibilities" else "degree")
        options = []
        for c in candidates:
            option: Dict[str, object] = {"key": c.key, "canonical": c.canonical_name}
            if c.level:
                option["level"] = c.level
            if c.field_group:
                option["field_group"] = c.field_group
            if c.category:
                option["category"] = c.category
            options.append(option)
        return (
            "You are part of an HR system for local government jobs.\n"
            f"Normalize an applicant's {subject} name to one of the canonical options below.\n\n"
            f"Canonical options (JSON):\n{json.dumps(options, indent=2)}\n\n"
            f'Raw applicant {subject}: "{raw_text}"\n\n'
            'Choose the single best key from the list. If you are not reasonably sure, choose "UNKNOWN".\n'
            "Respond ONLY with JSON of the form:\n"
            '{"canonical_key": "<key from the list or UNKNOWN>", '
            '"confidence": <number between 0 and 1>, '
            '"reasoning": "<one or two sentences>"}'
        )

    def resolve(self, raw_text: str, taxonomy: AliasIndex) -> NormalizationResult:
        candidates = self.candidates(raw_text, taxonomy)
        if not candidates:
            return self._miss(raw_text)
        prompt = self.build_prompt(raw_text, candidates, taxonomy.kind)
        try:
            content = self.provider.generate(prompt)
            response = parse_classification_json(content)
        except Exception as exc:  # noqa: BLE001
            logger.warning("LLM classification failed for %r: %s", raw_text, exc)
            return self._miss(raw_text, transient=True)
        if response.is_unknown:
            return self._miss(raw_text, self._capped(response.confidence, UNKNOWN_CONFIDENCE))
        if response.canonical_key not in taxonomy:
            logger.info("LLM returned key %r not present in taxonomy", response.canonical_key)
            return self._miss(raw_text, self._capped(response.confidence, INVALID_KEY_CONFIDENCE))
        confidence = DEFAULT_LLM_CONFIDENCE if response.confidence is None else _clamp01(response.confidence)
        return NormalizationResult(response.canonical_key, self.method, confidence, raw_text)

    @staticmethod
    def _capped(reported: Optional[float], default: float) -> float:
        if reported is None or math.isnan(reported):
            return default
        return min(_clamp01(reported), default)


class Canonicalizer:
    """Resolve raw strings against one taxonomy through a chain of tiers."""

    def __init__(self, taxonomy: AliasIndex, tiers: Optional[Sequence[Tier]] = None) -> None:
        self.taxonomy = taxonomy
        self.tiers: List[Tier] = list(tiers) if tiers else [DictionaryTier()]
        self._memo: Dict[str, NormalizationResult] = {}
        self._memo_lock = threading.Lock()

    @property
    def last_method(self) -> str:
        return self.tiers[-1].method

    def resolve(self, raw_text: Optional[str]) -> NormalizationResult:
        """Canonicalise ``raw_text``.

        Returns the first matching tier's result, or the last tier's
        no-match result when nothing matched.
        """
        raw = raw_text or ""
        key = normalize_key(raw)
        if not key:
            return NormalizationResult(None, METHOD_DICTIONARY, 0.0, raw)
        with self._memo_lock:
            cached = self._memo.get(key)
        if cached is not None:
            return NormalizationResult(cached.canonical_key, cached.method, cached.confidence, raw)

        result = NormalizationResult(None, self.last_method, 0.0, raw)
        transient = False
        for tier in self.tiers:
            result = tier.resolve(raw, self.taxonomy)
            transient = transient or result.transient
            if result.matched:
                break
        if result.matched or not transient:
            with self._memo_lock:
                self._memo[key] = result
        logger.debug("Resolved %r -> %s via %s (%.2f)", raw, result.canonical_key, result.method, result.confidence)
        return result

    def _resolve_local(self, raw: str) -> Optional[NormalizationResult]:
        """Answer ``raw`` without a provider call, or return None.

        Empty input, memoised results and dictionary hits are final.
        When the chain has no provider tiers a dictionary miss is final too.
        """
        key = normalize_key(raw)
        if not key:
            return NormalizationResult(None, METHOD_DICTIONARY, 0.0, raw)
        with self._memo_lock:
            cached = self._memo.get(key)
        if cached is not None:
            return NormalizationResult(cached.canonical_key, cached.method, cached.confidence, raw)
        if all(isinstance(tier, DictionaryTier) for tier in self.tiers):
            return self.resolve(raw)
        result = self._dictionary_only(raw)
        if not result.matched:
            return None
        with self._memo_lock:
            self._memo[key] = result
        return result

    def _dictionary_only(self, raw: str) -> NormalizationResult:
        for tier in self.tiers:
            if isinstance(tier, DictionaryTier):
                return tier.resolve(raw, self.taxonomy)
        return NormalizationResult(None, METHOD_DICTIONARY, 0.0, raw)

    def resolve_many(
        self,
        texts: Iterable[Optional[str]],
        timeout: Optional[float] = None,
        max_workers: int = 4,
    ) -> List[NormalizationResult]:
        """Resolve a batch, sending only dictionary misses to the thread pool.

        Dictionary hits are answered before any provider call is made, so
        a slow or hung provider never costs a text that is in the taxonomy.

        Args:
            texts: Raw strings; the output keeps their order.
            timeout: Seconds, measured from submission, after which a
                still-running request falls back to its dictionary
                result (a transient no-match).
            max_workers: Thread pool size.

        Returns:
            One `NormalizationResult` per input.
        """
        items = [t or "" for t in texts]
        local = [self._resolve_local(text) for text in items]
        remote = list(dict.fromkeys(text for text, result in zip(items, local) if result is None))
        if not remote:
            return [result for result in local if result is not None]

        executor = ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix="canonicalize")
        futures: Dict[str, Future] = {text: executor.submit(self.resolve, text) for text in remote}
        deadline = None if timeout is None else time.monotonic() + timeout
        pending = set(futures.values())
        try:
            while pending:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    break
                _, pending = wait(pending, timeout=remaining, return_when=FIRST_COMPLETED)
        finally:
            # do not block on hung provider calls
            executor.shutdown(wait=False, cancel_futures=True)

        resolved: Dict[str, NormalizationResult] = {}
        for text, future in futures.items():
            if future.done() and not future.cancelled():
                try:
                    resolved[text] = future.result()
                    continue
                except Exception as exc:  # noqa: BLE001
                    logger.exception("Canonicalisation of %r raised: %s", text, exc)
            else:
                logger.warning("Canonicalisation of %r timed out after %ss", text, timeout)
            fallback = self._dictionary_only(text)
            resolved[text] = NormalizationResult(
                fallback.canonical_key, fallback.method, fallback.confidence, text, transient=True
            )
        return [result if result is not None else resolved[text] for text, result in zip(items, local)]

    def entity_for(self, result: NormalizationResult) -> Optional[CanonicalEntity]:
        return self.taxonomy.get(result.canonical_key)

    def canonical_name(self, result: NormalizationResult) -> Optional[str]:
        entity = self.entity_for(result)
        return entity.canonical_name if entity else None

    def canonicalize_expression(
        self,
        raw: Optional[str],
        known: Optional[Mapping[str, NormalizationResult]] = None,
    ) -> CanonicalExpression:
        """Canonicalise every option of a requirement line, keeping AND/OR.

        A line that is itself a dictionary entry ("Library and
        Information Science") is treated as a single option.

        Args:
            raw: Requirement line such as "BS IT, BS IS, or BS CS".
            known: Results already obtained (e.g. by `resolve_many`),
                keyed by stripped text; used instead of resolving again.
        """
        known = known or {}

        def lookup(part: str) -> NormalizationResult:
            hit = known.get(part)
            return hit if hit is not None else self.resolve(part)

        text = (raw or "").strip()
        if not text:
            return CanonicalExpression(text, LIST_SINGLE, ())
        if self.taxonomy.lookup(text) is not None:
            return CanonicalExpression(text, LIST_SINGLE, (lookup(text),))
        mode = detect_list_mode(text)
        parts = parse_list_expression(text) if mode != LIST_SINGLE else [text]
        if len(parts) <= 1:
            mode = LIST_SINGLE
        return CanonicalExpression(text, mode, tuple(lookup(p) for p in parts))

    def clear_cache(self) -> None:
        with self._memo_lock:
            self._memo.clear()


def build_canonicalizer(
    taxonomy: AliasIndex,
    embedder: Optional[EmbeddingProvider] = None,
    llm: Optional[LLMProvider] = None,
    min_similarity: float = 0.75,
    candidate_limit: int = 20,
) -> Canonicalizer:
    """Assemble the standard dictionary -> embedding -> LLM chain."""
    tiers: List[Tier] = [DictionaryTier()]
    if embedder is not None:
        tiers.append(EmbeddingTier(embedder, min_similarity=min_similarity))
    if llm is not None:
        tiers.append(LLMTier(llm, candidate_limit=candidate_limit))
    return Canonicalizer(taxonomy, tiers)
