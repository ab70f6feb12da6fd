"""Gemini provider implementation using the google-genai SDK."""

from __future__ import annotations

import logging

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from article_engine.ai.errors import ProviderError, classify_exception, classify_status_code
from article_engine.ai.providers.base import GenerationOptions, GenerationProvider, GenerationResult
from article_engine.ai.utils.cost import calculate_cost

logger = logging.getLogger(__name__)


class GeminiProvider(GenerationProvider):
  """Gemini text generation client."""

  def __init__(self, *, api_key: str, model: str, cost_per_1k_tokens: float, timeout_seconds: float = 30.0) -> None:
    self.name = "google"
    self.model = model
    self.cost_per_1k_tokens = cost_per_1k_tokens
    self._client = genai.Client(api_key=api_key, http_options=types.HttpOptions(timeout=int(timeout_seconds * 1000)))

  async def generate(self, prompt: str, options: GenerationOptions) -> GenerationResult:
    config = types.GenerateContentConfig(temperature=options.temperature, max_output_tokens=options.max_tokens, system_instruction=options.system_prompt)

    try:
      # Use the async client to avoid blocking the asyncio event loop.
      response = await self._client.aio.models.generate_content(model=self.model, contents=prompt, config=config)
    except genai_errors.APIError as exc:
      raise ProviderError(str(exc.message or exc), provider=self.name, error_class=classify_status_code(exc.code), status_code=exc.code) from exc
    except Exception as exc:
      raise ProviderError(str(exc) or type(exc).__name__, provider=self.name, error_class=classify_exception(exc)) from exc

    tokens = response.usage_metadata.total_token_count if response.usage_metadata else None
    cost = calculate_cost(tokens, self.cost_per_1k_tokens)
    content = response.text or ""
    if not content.strip():
      raise ProviderError("Provider returned empty content", provider=self.name, error_class="transient", tokens=tokens, cost=cost)

    logger.info("Gemini response received: model=%s, tokens=%s", self.model, tokens)
    return GenerationResult(content=content, tokens=tokens, cost=cost, model=self.model)
