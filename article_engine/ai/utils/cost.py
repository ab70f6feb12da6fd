from __future__ import annotations

from collections.abc import Iterable


def calculate_cost(total_tokens: int | None, cost_per_1k_tokens: float) -> float | None:
  """Estimate the billed cost of one call from its total token usage."""
  if total_tokens is None:
    return None
  return round((total_tokens / 1000) * cost_per_1k_tokens, 6)


def sum_tokens(values: Iterable[int | None]) -> int | None:
  """Sum token counts, ignoring unreported values; None when nothing was reported."""
  reported = [value for value in values if value is not None]
  if not reported:
    return None
  return sum(reported)


def sum_cost(values: Iterable[float | None]) -> float | None:
  """Sum costs, ignoring unreported values; None when nothing was reported."""
  reported = [value for value in values if value is not None]
  if not reported:
    return None
  return round(sum(reported), 6)
