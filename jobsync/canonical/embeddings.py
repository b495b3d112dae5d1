"""
Embedding providers for the canonicalisation embedding tier.

An ``EmbeddingProvider`` turns a batch of strings into vectors.  A
vector slot may be ``None`` when the provider could not embed that
particular string; callers treat such slots as "no match".

Three implementations exist:

* ``HashingEmbeddingProvider`` – deterministic token hashing, needs no
  network and no API key.  Good enough for typo-level variants and
  used by default and in tests.
* ``GeminiEmbeddingProvider`` – ``google-generativeai`` ``embed_content``
  with the ``semantic_similarity`` task type.
* ``OpenAIEmbeddingProvider`` – ``openai`` ``embeddings.create``.

``get_default_embedder`` chooses one from ``EMBEDDING_PROVIDER`` and
the API keys available in the environment.
"""

from __future__ import annotations

import hashlib
import logging
import os
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

import numpy as np

from ..normalize.text import normalize_key

logger = logging.getLogger(__name__)

Vector = List[float]


class EmbeddingProvider(ABC):
    """Abstract base class for text embedding backends."""

    name = "base"

    @abstractmethod
    def embed(self, texts: Sequence[str]) -> List[Optional[Vector]]:
        """Embed ``texts``; the result has one slot per input."""
        raise NotImplementedError


class HashingEmbeddingProvider(EmbeddingProvider):
    """Offline embedding built from hashed character trigrams and tokens.

    The vector is wide so that slot collisions stay rare; with few slots
    unrelated names sharing "bachelor of science in" drift upwards.
    """

    name = "hashing"

    def __init__(self, dim: int = 4096) -> None:
        if dim <= 0:
            raise ValueError("dim must be positive")
        self.dim = dim

    def _features(self, text: str) -> List[str]:
        key = normalize_key(text)
        tokens = key.split()
        padded = f" {key} "
        trigrams = [padded[i:i + 3] for i in range(max(len(padded) - 2, 0))]
        return tokens + trigrams

    def _embed_one(self, text: str) -> Optional[Vector]:
        features = self._features(text)
        if not features:
            return None
        vector = np.zeros(self.dim)
        for feature in features:
            h = hashlib.md5(feature.encode("utf-8")).hexdigest()
            slot = int(h[:8], 16) % self.dim
            sign = 1.0 if int(h[8:10], 16) % 2 == 0 else -1.0
            vector[slot] += sign
        norm = float(np.linalg.norm(vector)) or 1.0
        return (vector / norm).tolist()

    def embed(self, texts: Sequence[str]) -> List[Optional[Vector]]:
        return [self._embed_one(text) for text in texts]


class GeminiEmbeddingProvider(EmbeddingProvider):
    """Embeddings from Google Generative AI."""

    name = "gemini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gemini-embedding-001",
        timeout: float = 30.0,
    ) -> None:
        try:
            import google.generativeai as genai  # type: ignore
        except ImportError as exc:
            raise RuntimeError(
                "google-generativeai package is required for GeminiEmbeddingProvider. Install it via pip."
            ) from exc
        self.genai = genai
        self.api_key = api_key or os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
        if not self.api_key:
            raise ValueError("GEMINI_API_KEY/GOOGLE_API_KEY not provided")
        self.model = os.getenv("GEMINI_EMBEDDING_MODEL") or model
        self.timeout = timeout
        self.genai.configure(api_key=self.api_key)

    def embed(self, texts: Sequence[str]) -> List[Optional[Vector]]:
        vectors: List[Optional[Vector]] = []
        for text in texts:
            if not text or not text.strip():
                vectors.append(None)
                continue
            try:
                result = self.genai.embed_content(
                    model=self.model,
                    content=text,
                    task_type="semantic_similarity",
                    request_options={"timeout": self.timeout},
                )
                vectors.append(list(result["embedding"]))
            except Exception as exc:  # noqa: BLE001
                logger.warning("Gemini embedding failed for %r: %s", text[:60], exc)
                vectors.append(None)
        return vectors


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """Embeddings from the OpenAI embeddings endpoint."""

    name = "openai"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "text-embedding-3-small",
        timeout: float = 30.0,
    ) -> None:
        try:
            from openai import OpenAI  # type: ignore
        except ImportError as exc:
            raise RuntimeError(
                "openai package is required for OpenAIEmbeddingProvider. Install it via pip."
            ) from exc
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not self.api_key:
            raise ValueError("OPENAI_API_KEY not provided")
        self.model = os.getenv("OPENAI_EMBEDDING_MODEL") or model
        self.client = OpenAI(api_key=self.api_key, timeout=timeout)

    def embed(self, texts: Sequence[str]) -> List[Optional[Vector]]:
        vectors: List[Optional[Vector]] = [None] * len(texts)
        wanted = [(i, t) for i, t in enumerate(texts) if t and t.strip()]
        if not wanted:
            return vectors
        # one batched request; the API preserves input order via `index`
        response = self.client.embeddings.create(model=self.model, input=[t for _, t in wanted])
        for item in response.data:
            vectors[wanted[item.index][0]] = list(item.embedding)
        return vectors


def cosine_similarity(a: Optional[Sequence[float]], b: Optional[Sequence[float]]) -> float:
    """Cosine similarity of two vectors, 0.0 when either is missing or zero."""
    if a is None or b is None:
        return 0.0
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    if va.shape != vb.shape or va.size == 0:
        return 0.0
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denom)


def get_default_embedder(timeout: float = 30.0) -> EmbeddingProvider:
    """Pick an embedding backend.

    ``EMBEDDING_PROVIDER`` may name ``gemini``, ``openai`` or ``hashing``.
    Without it, Gemini is used when a Gemini/Google key is present, then
    OpenAI, and the hashing provider otherwise.
    """
    candidates = []
    preferred = (os.getenv("EMBEDDING_PROVIDER") or "").strip().lower()
    if preferred:
        candidates.append(preferred)
    if os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY"):
        candidates.append("gemini")
    if os.getenv("OPENAI_API_KEY"):
        candidates.append("openai")
    for name in candidates:
        try:
            if name == "hashing":
                return HashingEmbeddingProvider()
            if name == "gemini":
                return GeminiEmbeddingProvider(timeout=timeout)
            if name == "openai":
                return OpenAIEmbeddingProvider(timeout=timeout)
            logger.warning("Unknown EMBEDDING_PROVIDER value '%s'", name)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not initialise %s embedding provider: %s", name, exc)
    logger.info("Using offline hashing embeddings")
    return HashingEmbeddingProvider()
