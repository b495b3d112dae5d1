"""Tests for YAML/environment configuration and engine assembly."""

from __future__ import annotations

from pathlib import Path

import pytest  # type: ignore

from jobsync.canonical.resolver import DictionaryTier, EmbeddingTier
from jobsync.config import (
    DEFAULT_DEGREES_PATH,
    EngineConfig,
    apply_env_overrides,
    build_engine,
    load_config,
)

PROVIDER_VARS = ("LLM_PROVIDER", "EMBEDDING_PROVIDER", "OPENAI_API_KEY", "GEMINI_API_KEY", "GOOGLE_API_KEY")


@pytest.fixture(autouse=True)
def _no_provider_keys(monkeypatch):
    for var in PROVIDER_VARS:
        monkeypatch.delenv(var, raising=False)


def test_bundled_config_loads() -> None:
    config = load_config(use_env=False)
    assert config.weights.education == pytest.approx(0.30)
    assert config.tiers.candidate_limit == 20
    assert Path(config.taxonomy.degrees) == DEFAULT_DEGREES_PATH


def test_yaml_values_and_relative_paths(tmp_path: Path) -> None:
    path = tmp_path / "engine.yaml"
    path.write_text(
        "weights:\n"
        "  education: 0.4\n"
        "  eligibility: 0.2\n"
        "tiers:\n"
        "  embedding_enabled: false\n"
        "  timeout: 5\n"
        "taxonomy:\n"
        "  degrees: dicts/degrees.yaml\n"
        "policy:\n"
        "  eligibility_similarity: 95\n",
        encoding="utf-8",
    )
    config = load_config(path, use_env=False)
    assert config.weights.education == pytest.approx(0.4)
    assert config.tiers.embedding_enabled is False
    assert config.tiers.timeout == 5
    assert config.taxonomy.degrees == str(tmp_path / "dicts" / "degrees.yaml")
    assert config.policy.eligibility_similarity == 95
    assert config.to_dict()["weights"]["skills"] == pytest.approx(0.2)


def test_invalid_documents_raise(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        EngineConfig.from_dict({"weights": {"education": 0.9}})
    with pytest.raises(ValueError):
        EngineConfig.from_dict({"tiers": {"warp_speed": True}})
    with pytest.raises(ValueError):
        EngineConfig.from_dict({"logging": {}})
    bad = tmp_path / "bad.yaml"
    bad.write_text("weights: [", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(bad, use_env=False)
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml", use_env=False)


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("JOBSYNC_LLM_ENABLED", "yes")
    monkeypatch.setenv("JOBSYNC_MIN_SIMILARITY", "0.4")
    monkeypatch.setenv("JOBSYNC_MAX_WORKERS", "8")
    monkeypatch.setenv("JOBSYNC_DEGREES_PATH", "/srv/degrees.yaml")
    config = apply_env_overrides(EngineConfig())
    assert config.tiers.llm_enabled is True
    assert config.tiers.min_similarity == pytest.approx(0.4)
    assert config.tiers.max_workers == 8
    assert config.taxonomy.degrees == "/srv/degrees.yaml"

    monkeypatch.setenv("JOBSYNC_TIMEOUT", "soon")
    with pytest.raises(ValueError):
        apply_env_overrides(EngineConfig())


def test_build_engine_from_config() -> None:
    config = EngineConfig()
    config.tiers.llm_enabled = True
    engine = build_engine(config)
    assert len(engine.degrees.taxonomy) > 0
    assert len(engine.eligibilities.taxonomy) > 0
    # no API keys: hashing embeddings, and the placeholder LLM is left out
    assert [type(t) for t in engine.degrees.tiers] == [DictionaryTier, EmbeddingTier]
    assert engine.timeout == config.tiers.timeout

    config.tiers.embedding_enabled = False
    engine = build_engine(config)
    assert [type(t) for t in engine.eligibilities.tiers] == [DictionaryTier]


def test_bundled_config_rejects_unrelated_degrees() -> None:
    engine = build_engine(load_config(use_env=False))
    assert engine.degrees.tiers[1].min_similarity == pytest.approx(0.75)
    result = engine.degrees.resolve("Bachelor of Science in Criminology")
    assert result.canonical_key is None
    assert engine.degrees.resolve("Bachelor of Science in Nursing").canonical_key == "BSN"
    # a misspelt alias still lands on its entity
    assert engine.degrees.resolve("Bachelor of Science in Informaton Technology").canonical_key == "BSIT"


def test_scoring_strategy_from_yaml_and_environment(tmp_path: Path, monkeypatch) -> None:
    assert load_config(use_env=False).policy.strategy == "weighted_sum"
    path = tmp_path / "engine.yaml"
    path.write_text("policy:\n  strategy: ensemble\n", encoding="utf-8")
    config = load_config(path, use_env=False)
    assert config.policy.strategy == "ensemble"
    assert build_engine(config).policy.strategy == "ensemble"

    monkeypatch.setenv("JOBSYNC_SCORING_STRATEGY", "weighted_sum")
    assert apply_env_overrides(config).policy.strategy == "weighted_sum"
    monkeypatch.setenv("JOBSYNC_SCORING_STRATEGY", "coin_flip")
    with pytest.raises(ValueError):
        apply_env_overrides(EngineConfig())
    with pytest.raises(ValueError):
        EngineConfig.from_dict({"policy": {"strategy": "coin_flip"}})
