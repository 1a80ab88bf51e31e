"""Embedding and generation capabilities.

The core only depends on the two Protocols below. `OpenAICapability` is the
production adapter; it talks to any OpenAI-compatible endpoint, which by
default is a local Ollama server.
"""

from __future__ import annotations

import logging
import numbers
from typing import List, Protocol

from openai import OpenAI

from .config import Settings
from .errors import UpstreamServiceError

log = logging.getLogger("tarot_rag.llm")


class EmbeddingCapability(Protocol):
    def embed(self, model: str, text: str) -> List[float]: ...


class GenerationCapability(Protocol):
    def generate(self, model: str, system_text: str, prompt_text: str) -> str: ...


def ensure_vector(value, what: str) -> List[float]:
    """Reject anything that is not a non-empty list of numbers."""
    if not isinstance(value, (list, tuple)) or not value:
        preview = repr(value)[:400]
        raise UpstreamServiceError(f"Unexpected embedding response for {what}: expected a list of numbers, got {preview}")
    for x in value:
        if isinstance(x, bool) or not isinstance(x, numbers.Real):
            raise UpstreamServiceError(f"Unexpected embedding response for {what}: non-numeric component {x!r}")
    return [float(x) for x in value]


class OpenAICapability:
    def __init__(self, settings: Settings, client: OpenAI | None = None):
        self.settings = settings
        self.client = client or OpenAI(base_url=settings.llm_base_url, api_key=settings.api_key)

    def embed(self, model: str, text: str) -> List[float]:
        try:
            response = self.client.embeddings.create(model=model, input=text)
        except Exception as e:
            raise UpstreamServiceError(f"Embedding request failed (model={model}): {e}") from e

        data = getattr(response, "data", None) or []
        if not data:
            raise UpstreamServiceError(f"Embedding response for model={model} contained no vectors")
        return ensure_vector(getattr(data[0], "embedding", None), f"model={model}")

    def generate(self, model: str, system_text: str, prompt_text: str) -> str:
        try:
            response = self.client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": system_text},
                    {"role": "user", "content": prompt_text},
                ],
                temperature=self.settings.temperature,
                top_p=self.settings.top_p,
            )
        except Exception as e:
            raise UpstreamServiceError(f"Generation request failed (model={model}): {e}") from e

        choices = getattr(response, "choices", None) or []
        content = choices[0].message.content if choices else None
        if not content:
            raise UpstreamServiceError(f"Generation response for model={model} was empty")
        return content
