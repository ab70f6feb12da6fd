"""Base interfaces for generation providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class GenerationOptions:
  """Sampling options passed through to a provider."""

  temperature: float = 0.7
  max_tokens: int = 2000
  system_prompt: str | None = None


@dataclass
class GenerationResult:
  """Content returned by one successful provider call."""

  content: str
  tokens: int | None = None
  cost: float | None = None
  model: str | None = None


class GenerationProvider(ABC):
  """Abstract base class for text generation providers."""

  name: str
  model: str
  cost_per_1k_tokens: float

  @abstractmethod
  async def generate(self, prompt: str, options: GenerationOptions) -> GenerationResult:
    """Generate content for the prompt or raise ProviderError."""

  async def aclose(self) -> None:
    """Release network resources held by the provider."""
