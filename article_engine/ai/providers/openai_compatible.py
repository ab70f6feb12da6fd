"""OpenAI provider implementation using the openai SDK."""

from __future__ import annotations

import logging

import openai
from openai import AsyncOpenAI

from article_engine.ai.errors import ProviderError, classify_message, classify_status_code
from article_engine.ai.providers.base import GenerationOptions, GenerationProvider, GenerationResult
from article_engine.ai.utils.cost import calculate_cost

logger = logging.getLogger(__name__)


class OpenAIProvider(GenerationProvider):
  """Chat-completions client for OpenAI and OpenAI-compatible endpoints."""

  def __init__(self, *, api_key: str, model: str, cost_per_1k_tokens: float, base_url: str | None = None, timeout_seconds: float = 30.0, name: str = "openai") -> None:
    self.name = name
    self.model = model
    self.cost_per_1k_tokens = cost_per_1k_tokens
    # Retries are owned by ResilientCaller, so the SDK must not retry on its own.
    self._client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout_seconds, max_retries=0)

  async def generate(self, prompt: str, options: GenerationOptions) -> GenerationResult:
    messages = []
    if options.system_prompt:
      messages.append({"role": "system", "content": options.system_prompt})
    messages.append({"role": "user", "content": prompt})

    try:
      response = await self._client.chat.completions.create(model=self.model, messages=messages, temperature=options.temperature, max_tokens=options.max_tokens)
    except openai.APIStatusError as exc:
      raise ProviderError(exc.message, provider=self.name, error_class=classify_status_code(exc.status_code), status_code=exc.status_code) from exc
    except openai.APIError as exc:
      # Connection and timeout errors carry no status code.
      error_class = "transient" if isinstance(exc, (openai.APIConnectionError, openai.APITimeoutError)) else classify_message(exc.message)
      raise ProviderError(exc.message, provider=self.name, error_class=error_class) from exc

    content = (response.choices[0].message.content or "") if response.choices else ""
    tokens = response.usage.total_tokens if response.usage else None
    cost = calculate_cost(tokens, self.cost_per_1k_tokens)
    if not content.strip():
      # Billed but empty; report usage so the attempt still counts toward cost.
      raise ProviderError("Provider returned empty content", provider=self.name, error_class="transient", tokens=tokens, cost=cost)

    logger.info("OpenAI response received: model=%s, tokens=%s", self.model, tokens)
    return GenerationResult(content=content, tokens=tokens, cost=cost, model=self.model)

  async def aclose(self) -> None:
    await self._client.close()
