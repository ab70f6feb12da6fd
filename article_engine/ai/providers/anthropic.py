"""Anthropic provider implementation calling the Messages API over httpx."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from article_engine.ai.errors import ProviderError, classify_status_code
from article_engine.ai.providers.base import GenerationOptions, GenerationProvider, GenerationResult
from article_engine.ai.utils.cost import calculate_cost

logger = logging.getLogger(__name__)

_DEFAULT_BASE_URL = "https://api.anthropic.com"
_API_VERSION = "2023-06-01"


class AnthropicProvider(GenerationProvider):
  """Claude text generation client."""

  def __init__(self, *, api_key: str, model: str, cost_per_1k_tokens: float, base_url: str | None = None, timeout_seconds: float = 30.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
    self.name = "anthropic"
    self.model = model
    self.cost_per_1k_tokens = cost_per_1k_tokens
    headers = {"x-api-key": api_key, "anthropic-version": _API_VERSION, "content-type": "application/json"}
    self._client = httpx.AsyncClient(base_url=base_url or _DEFAULT_BASE_URL, headers=headers, timeout=timeout_seconds, transport=transport)

  async def generate(self, prompt: str, options: GenerationOptions) -> GenerationResult:
    payload: dict[str, Any] = {"model": self.model, "max_tokens": options.max_tokens, "temperature": options.temperature, "messages": [{"role": "user", "content": prompt}]}
    if options.system_prompt:
      payload["system"] = options.system_prompt

    try:
      response = await self._client.post("/v1/messages", json=payload)
    except httpx.TransportError as exc:
      raise ProviderError(f"Transport error: {exc}", provider=self.name, error_class="transient") from exc

    if response.status_code >= 400:
      raise ProviderError(_error_message(response), provider=self.name, error_class=classify_status_code(response.status_code), status_code=response.status_code)

    body = response.json()
    usage = body.get("usage") or {}
    tokens = None
    if usage:
      tokens = int(usage.get("input_tokens") or 0) + int(usage.get("output_tokens") or 0)
    cost = calculate_cost(tokens, self.cost_per_1k_tokens)

    content = "".join(block.get("text", "") for block in body.get("content") or [] if block.get("type") == "text")
    if not content.strip():
      raise ProviderError("Provider returned empty content", provider=self.name, error_class="transient", tokens=tokens, cost=cost)

    logger.info("Anthropic response received: model=%s, tokens=%s", self.model, tokens)
    return GenerationResult(content=content, tokens=tokens, cost=cost, model=self.model)

  async def aclose(self) -> None:
    await self._client.aclose()


def _error_message(response: httpx.Response) -> str:
  """Pull the API error message out of a failed response body."""
  try:
    body = response.json()
  except ValueError:
    return f"HTTP {response.status_code}"
  error = body.get("error") if isinstance(body, dict) else None
  if isinstance(error, dict) and error.get("message"):
    return f"HTTP {response.status_code}: {error['message']}"
  return f"HTTP {response.status_code}"
