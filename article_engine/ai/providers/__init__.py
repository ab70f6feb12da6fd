"""Provider implementations."""

from __future__ import annotations

import logging

from article_engine.ai.providers.anthropic import AnthropicProvider
from article_engine.ai.providers.base import GenerationOptions, GenerationProvider, GenerationResult
from article_engine.ai.providers.gemini import GeminiProvider
from article_engine.ai.providers.openai_compatible import OpenAIProvider
from article_engine.config import Settings

logger = logging.getLogger(__name__)


def build_providers(settings: Settings) -> dict[str, GenerationProvider]:
  """Instantiate every provider that has credentials configured."""
  providers: dict[str, GenerationProvider] = {}
  timeout = settings.provider_timeout_seconds
  for name in settings.provider_priority:
    config = settings.providers[name]
    if not config.api_key:
      logger.info("Provider %s skipped: no API key configured.", name)
      continue
    if name == "anthropic":
      providers[name] = AnthropicProvider(api_key=config.api_key, model=config.model, cost_per_1k_tokens=config.cost_per_1k_tokens, base_url=config.base_url, timeout_seconds=timeout)
    elif name == "openai":
      providers[name] = OpenAIProvider(api_key=config.api_key, model=config.model, cost_per_1k_tokens=config.cost_per_1k_tokens, base_url=config.base_url, timeout_seconds=timeout)
    elif name == "google":
      providers[name] = GeminiProvider(api_key=config.api_key, model=config.model, cost_per_1k_tokens=config.cost_per_1k_tokens, timeout_seconds=timeout)
  return providers


__all__ = ["AnthropicProvider", "GeminiProvider", "GenerationOptions", "GenerationProvider", "GenerationResult", "OpenAIProvider", "build_providers"]
