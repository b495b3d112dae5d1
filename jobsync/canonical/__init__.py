"""
Canonicalisation subsystem for JobSync.

Maps free-text degree and eligibility strings onto taxonomy keys via
a dictionary -> embedding -> LLM tier chain.  Providers for the
embedding and LLM tiers are pluggable; see `embeddings.py` and
`llm_providers.py`.
"""

from .resolver import (  # noqa: F401
    CanonicalExpression,
    Canonicalizer,
    DictionaryTier,
    EmbeddingTier,
    LLMTier,
    NormalizationResult,
    build_canonicalizer,
)
