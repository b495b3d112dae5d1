"""
Engine configuration.

Settings are read from a YAML file (see ``jobsync/config.yaml`` for a
commented sample) and then overridden by environment variables, which
may themselves come from a ``.env`` file loaded with python-dotenv.

Recognised environment overrides:

* ``JOBSYNC_DEGREES_PATH`` / ``JOBSYNC_ELIGIBILITIES_PATH`` – taxonomy files
* ``JOBSYNC_EMBEDDING_ENABLED`` / ``JOBSYNC_LLM_ENABLED`` – ``true``/``false``
* ``JOBSYNC_MIN_SIMILARITY``, ``JOBSYNC_CANDIDATE_LIMIT``,
  ``JOBSYNC_TIMEOUT``, ``JOBSYNC_MAX_WORKERS`` – tier tuning
* ``JOBSYNC_SCORING_STRATEGY`` – ``weighted_sum`` or ``ensemble``

Provider selection itself (``LLM_PROVIDER``, ``EMBEDDING_PROVIDER`` and
the API keys) is left to the provider modules.
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml  # type: ignore
from dotenv import load_dotenv

from .canonical.embeddings import get_default_embedder
from .canonical.llm_providers import PlaceholderProvider, get_default_provider
from .canonical.resolver import Canonicalizer, build_canonicalizer
from .rank.scoring import ScoringEngine, ScoringPolicy, ScoringWeights
from .taxonomy.index import AliasIndex, load_taxonomy
from .taxonomy.schema import KIND_DEGREES, KIND_ELIGIBILITIES

logger = logging.getLogger(__name__)

PACKAGE_DIR = Path(__file__).resolve().parent
DEFAULT_CONFIG_PATH = PACKAGE_DIR / "config.yaml"
DEFAULT_DEGREES_PATH = PACKAGE_DIR / "dictionaries" / "degrees.yaml"
DEFAULT_ELIGIBILITIES_PATH = PACKAGE_DIR / "dictionaries" / "eligibilities.yaml"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass
class TierSettings:
    embedding_enabled: bool = True
    llm_enabled: bool = False
    min_similarity: float = 0.75
    candidate_limit: int = 20
    timeout: Optional[float] = 30.0
    max_workers: int = 4


@dataclass
class TaxonomyPaths:
    degrees: str = str(DEFAULT_DEGREES_PATH)
    eligibilities: str = str(DEFAULT_ELIGIBILITIES_PATH)


@dataclass
class EngineConfig:
    weights: ScoringWeights = field(default_factory=ScoringWeights)
    tiers: TierSettings = field(default_factory=TierSettings)
    taxonomy: TaxonomyPaths = field(default_factory=TaxonomyPaths)
    policy: ScoringPolicy = field(default_factory=ScoringPolicy)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]], base_dir: Optional[Path] = None) -> "EngineConfig":
        """Build a config from a parsed YAML document.

        Relative taxonomy paths are resolved against ``base_dir`` (the
        directory of the config file).

        Raises:
            ValueError: for unknown keys or invalid values.
        """
        data = data or {}
        unknown = set(data) - {"weights", "tiers", "taxonomy", "policy"}
        if unknown:
            raise ValueError(f"Unknown configuration section(s): {sorted(unknown)}")
        taxonomy = _section(TaxonomyPaths, data.get("taxonomy"), "taxonomy")
        if base_dir is not None:
            taxonomy.degrees = _resolve_path(taxonomy.degrees, base_dir)
            taxonomy.eligibilities = _resolve_path(taxonomy.eligibilities, base_dir)
        return cls(
            weights=ScoringWeights.from_dict(data.get("weights")),
            tiers=_section(TierSettings, data.get("tiers"), "tiers"),
            taxonomy=taxonomy,
            policy=_section(ScoringPolicy, data.get("policy"), "policy"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "weights": asdict(self.weights),
            "tiers": asdict(self.tiers),
            "taxonomy": asdict(self.taxonomy),
            "policy": asdict(self.policy),
        }


def _section(cls, data: Optional[Mapping[str, Any]], name: str):
    if not data:
        return cls()
    if not isinstance(data, Mapping):
        raise ValueError(f"Configuration section '{name}' must be a mapping")
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown key(s) in '{name}': {sorted(unknown)}")
    return cls(**dict(data))


def _resolve_path(value: str, base_dir: Path) -> str:
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = base_dir / path
    return str(path)


def _env_bool(name: str) -> Optional[bool]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{name} must be true or false, got {raw!r}")


def _env_number(name: str, cast):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    try:
        return cast(raw.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


def apply_env_overrides(config: EngineConfig) -> EngineConfig:
    """Overlay ``JOBSYNC_*`` environment variables onto ``config`` in place."""
    tiers = config.tiers
    if os.getenv("JOBSYNC_DEGREES_PATH"):
        config.taxonomy.degrees = os.environ["JOBSYNC_DEGREES_PATH"]
    if os.getenv("JOBSYNC_ELIGIBILITIES_PATH"):
        config.taxonomy.eligibilities = os.environ["JOBSYNC_ELIGIBILITIES_PATH"]
    for attr, env in (("embedding_enabled", "JOBSYNC_EMBEDDING_ENABLED"), ("llm_enabled", "JOBSYNC_LLM_ENABLED")):
        value = _env_bool(env)
        if value is not None:
            setattr(tiers, attr, value)
    for attr, env, cast in (
        ("min_similarity", "JOBSYNC_MIN_SIMILARITY", float),
        ("candidate_limit", "JOBSYNC_CANDIDATE_LIMIT", int),
        ("timeout", "JOBSYNC_TIMEOUT", float),
        ("max_workers", "JOBSYNC_MAX_WORKERS", int),
    ):
        value = _env_number(env, cast)
        if value is not None:
            setattr(tiers, attr, value)
    strategy = os.getenv("JOBSYNC_SCORING_STRATEGY", "").strip()
    if strategy:
        config.policy = replace(config.policy, strategy=strategy)
    return config


def load_config(path: Optional[str | Path] = None, use_env: bool = True) -> EngineConfig:
    """Load the engine configuration.

    Args:
        path: YAML file to read.  When omitted the bundled sample is
            used if present, otherwise built-in defaults.
        use_env: Load ``.env`` and apply ``JOBSYNC_*`` overrides.

    Raises:
        FileNotFoundError: if an explicit ``path`` does not exist.
        ValueError: if the file is not valid YAML or has invalid values.
    """
    if use_env:
        load_dotenv()
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    if not config_path.exists():
        if path:
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        logger.debug("No configuration file at %s; using defaults", config_path)
        config = EngineConfig()
    else:
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                doc = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ValueError(f"Failed to parse YAML configuration {config_path}: {exc}") from exc
        config = EngineConfig.from_dict(doc, base_dir=config_path.parent)
        logger.info("Loaded configuration from %s", config_path)
    if use_env:
        apply_env_overrides(config)
    return config


def canonicalizer_from_config(index: AliasIndex, config: EngineConfig) -> Canonicalizer:
    """Build the tier chain for one taxonomy as configured in ``config.tiers``."""
    tiers = config.tiers
    embedder = get_default_embedder(timeout=tiers.timeout or 30.0) if tiers.embedding_enabled else None
    llm = get_default_provider(timeout=tiers.timeout or 30.0) if tiers.llm_enabled else None
    if isinstance(llm, PlaceholderProvider):
        logger.info("LLM tier enabled but no provider is configured; skipping it for %s", index.kind)
        llm = None
    return build_canonicalizer(
        index,
        embedder=embedder,
        llm=llm,
        min_similarity=tiers.min_similarity,
        candidate_limit=tiers.candidate_limit,
    )


def build_engine(config: Optional[EngineConfig] = None) -> ScoringEngine:
    """Load both taxonomies and assemble a `ScoringEngine` from ``config``."""
    config = config or load_config()
    degrees = load_taxonomy(config.taxonomy.degrees, KIND_DEGREES)
    eligibilities = load_taxonomy(config.taxonomy.eligibilities, KIND_ELIGIBILITIES)
    return ScoringEngine(
        degree_canonicalizer=canonicalizer_from_config(degrees, config),
        eligibility_canonicalizer=canonicalizer_from_config(eligibilities, config),
        weights=config.weights,
        policy=config.policy,
        timeout=config.tiers.timeout,
        max_workers=config.tiers.max_workers,
    )
