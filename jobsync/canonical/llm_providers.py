"""
LLM provider abstractions.

This module defines a common interface for large language model (LLM)
providers used by JobSync to classify free-text degree and
eligibility strings that neither the dictionary nor the embedding
tier could resolve.  Concrete implementations are provided for the
OpenAI and Gemini (Google Generative AI) APIs.  A placeholder
implementation is used when no API keys are configured or the
optional dependencies are not installed; it always answers
``UNKNOWN`` so the engine keeps running offline.

Applications can select the provider via environment variables or
pass an instance of ``LLMProvider`` directly.  Set ``GEMINI_MODEL``
or ``OPENAI_MODEL`` to override the default model names.
"""

from __future__ import annotations

import json
import logging
import os
from abc import ABC, abstractmethod
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    name = "base"

    @abstractmethod
    def generate(self, prompt: str) -> str:
        """Send ``prompt`` to the model and return its raw text answer.

        Implementations raise on transport or API errors; the calling
        tier is responsible for catching and degrading.
        """
        raise NotImplementedError


class PlaceholderProvider(LLMProvider):
    """Fallback provider that does not call any external API."""

    name = "placeholder"

    def generate(self, prompt: str) -> str:
        return json.dumps(
            {
                "canonical_key": "UNKNOWN",
                "confidence": 0.0,
                "reasoning": "No LLM provider configured",
            }
        )


class OpenAIProvider(LLMProvider):
    """Provider that uses the OpenAI chat completions API."""

    name = "openai"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-4o-mini",
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        try:
            from openai import OpenAI  # type: ignore
        except ImportError as exc:
            raise RuntimeError(
                "openai package is required for OpenAIProvider. Install it via pip."
            ) from exc
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.model = os.getenv("OPENAI_MODEL") or model
        self.timeout = timeout
        if not self.api_key:
            raise ValueError("OPENAI_API_KEY not provided")
        self.client = OpenAI(api_key=self.api_key, timeout=timeout)

    def generate(self, prompt: str) -> str:
        logger.debug("Sending prompt to OpenAI: %s", prompt[:200])
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=0.0,
            response_format={"type": "json_object"},
        )
        return response.choices[0].message.content or ""


class GeminiProvider(LLMProvider):
    """Provider that uses Google Generative AI (Gemini) via google-generativeai."""

    name = "gemini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gemini-1.5-flash",
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        try:
            import google.generativeai as genai  # type: ignore
        except ImportError as exc:
            raise RuntimeError(
                "google-generativeai package is required for GeminiProvider. Install it via pip."
            ) from exc
        self.genai = genai
        # API key resolution: explicit argument > env variables
        self.api_key = api_key or os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
        env_model = os.getenv("GEMINI_MODEL") or os.getenv("GOOGLE_MODEL")
        self.model_name = env_model or model
        self.timeout = timeout
        if not self.api_key:
            raise ValueError("GEMINI_API_KEY/GOOGLE_API_KEY not provided")
        self.genai.configure(api_key=self.api_key)
        try:
            self.model = self.genai.GenerativeModel(
                self.model_name,
                generation_config={"temperature": 0.0, "response_mime_type": "application/json"},
            )
        except Exception as exc:
            raise RuntimeError(f"Failed to load Gemini model {self.model_name}: {exc}") from exc

    def generate(self, prompt: str) -> str:
        logger.debug("Sending prompt to Gemini: %s", prompt[:200])
        response = self.model.generate_content(prompt, request_options={"timeout": self.timeout})
        return response.text


def _build(name: str, timeout: float) -> LLMProvider:
    if name == "openai":
        return OpenAIProvider(timeout=timeout)
    if name == "gemini":
        return GeminiProvider(timeout=timeout)
    if name == "placeholder":
        return PlaceholderProvider()
    raise ValueError(f"Unknown LLM provider '{name}'")


def get_default_provider(timeout: float = DEFAULT_TIMEOUT) -> LLMProvider:
    """Return an LLMProvider instance based on configuration and API keys.

    ``LLM_PROVIDER`` (``openai``, ``gemini`` or ``placeholder``) is tried
    first.  Otherwise the first provider whose API key is present wins
    (``OPENAI_API_KEY``, then ``GEMINI_API_KEY``/``GOOGLE_API_KEY``).
    A provider that cannot be initialised is logged and skipped, and
    the placeholder is the last resort.

    Args:
        timeout: Per-request timeout in seconds passed to the client.
    """
    candidates = []
    preferred = (os.getenv("LLM_PROVIDER") or "").strip().lower()
    if preferred:
        candidates.append(preferred)
    if os.getenv("OPENAI_API_KEY"):
        candidates.append("openai")
    if os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY"):
        candidates.append("gemini")
    for name in candidates:
        try:
            provider = _build(name, timeout)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not initialise %s LLM provider: %s", name, exc)
            continue
        logger.info("Using %s LLM provider", provider.name)
        return provider
    logger.info("No LLM API keys found; using placeholder provider")
    return PlaceholderProvider()
