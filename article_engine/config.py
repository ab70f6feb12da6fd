"""Application configuration loaded from environment variables."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

from dotenv import load_dotenv

load_dotenv(override=False)

KNOWN_PROVIDERS: tuple[str, ...] = ("anthropic", "openai", "google")
SKIPPABLE_PHASES: frozenset[str] = frozenset({"structuring", "optimizing"})

# Preferred provider per article template; anything not listed uses the default provider.
DEFAULT_TEMPLATE_PROVIDERS: dict[str, str] = {
  "Product Showcase": "openai",
  "How-to Guide": "anthropic",
  "Artist Showcase": "openai",
  "Buying Guide": "anthropic",
  "Review Article": "anthropic",
  "Industry Trends": "google",
}


@dataclass(frozen=True)
class ProviderSettings:
  """Credentials and pricing for one generation provider."""

  name: str
  api_key: str | None
  model: str
  cost_per_1k_tokens: float
  base_url: str | None = None


@dataclass(frozen=True)
class Settings:
  """Typed settings for the article generation service."""

  environment: str
  allowed_origins: tuple[str, ...]
  debug: bool
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  job_store_backend: str
  pg_dsn: str | None
  pg_connect_timeout: int
  provider_priority: tuple[str, ...]
  default_provider: str
  template_providers: dict[str, str] = field(hash=False)
  providers: dict[str, ProviderSettings] = field(hash=False)
  provider_timeout_seconds: float
  max_retries: int
  backoff_base_seconds: float
  backoff_max_delay_seconds: float
  rate_limit_window_seconds: float
  rate_limit_limit: int
  job_max_attempts: int
  job_retention_seconds: int
  skippable_phases: frozenset[str]
  persist_max_attempts: int
  jobs_auto_process: bool
  resume_on_startup: bool
  poll_interval_seconds: float
  task_secret: str | None


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    raise ValueError("ARTICLE_ENGINE_ALLOWED_ORIGINS must be set to one or more origins.")

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("ARTICLE_ENGINE_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("ARTICLE_ENGINE_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_json_dict(raw: str | None, default: dict[str, Any]) -> dict[str, Any]:
  if not raw:
    return default
  try:
    parsed = json.loads(raw)
  except json.JSONDecodeError:
    return default
  if not isinstance(parsed, dict):
    return default
  return parsed


def _parse_bool(raw: str | None, default: bool = False) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return default

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _parse_csv(raw: str | None) -> list[str]:
  if not raw:
    return []
  return [item.strip().lower() for item in raw.split(",") if item.strip()]


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _positive_float(name: str, default: str) -> float:
  value = float(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive number.")
  return value


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _parse_provider_priority(raw: str | None) -> tuple[str, ...]:
  """Normalize the provider priority list, dropping duplicates while keeping order."""
  names = _parse_csv(raw) or list(KNOWN_PROVIDERS)
  unknown = [name for name in names if name not in KNOWN_PROVIDERS]
  if unknown:
    raise ValueError(f"ARTICLE_ENGINE_PROVIDER_PRIORITY contains unknown providers: {', '.join(unknown)}.")
  return tuple(dict.fromkeys(names))


def _load_providers() -> dict[str, ProviderSettings]:
  """Read per-provider credentials, models and pricing."""
  return {
    "anthropic": ProviderSettings(
      name="anthropic",
      api_key=_optional_str(os.getenv("ANTHROPIC_API_KEY")),
      model=os.getenv("ARTICLE_ENGINE_ANTHROPIC_MODEL", "claude-3-sonnet-20240229"),
      cost_per_1k_tokens=float(os.getenv("ARTICLE_ENGINE_ANTHROPIC_COST_PER_1K", "0.015")),
      base_url=_optional_str(os.getenv("ARTICLE_ENGINE_ANTHROPIC_BASE_URL")),
    ),
    "openai": ProviderSettings(
      name="openai",
      api_key=_optional_str(os.getenv("OPENAI_API_KEY")),
      model=os.getenv("ARTICLE_ENGINE_OPENAI_MODEL", "gpt-4-turbo-preview"),
      cost_per_1k_tokens=float(os.getenv("ARTICLE_ENGINE_OPENAI_COST_PER_1K", "0.03")),
      base_url=_optional_str(os.getenv("ARTICLE_ENGINE_OPENAI_BASE_URL")),
    ),
    "google": ProviderSettings(
      name="google",
      api_key=_optional_str(os.getenv("GEMINI_API_KEY")),
      model=os.getenv("ARTICLE_ENGINE_GOOGLE_MODEL", "gemini-pro"),
      cost_per_1k_tokens=float(os.getenv("ARTICLE_ENGINE_GOOGLE_COST_PER_1K", "0.0005")),
    ),
  }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("ARTICLE_ENGINE_ENV", "development").lower()
  debug = _parse_bool(os.getenv("ARTICLE_ENGINE_DEBUG"))

  log_max_bytes = _positive_int("ARTICLE_ENGINE_LOG_MAX_BYTES", "5242880")
  log_backup_count = int(os.getenv("ARTICLE_ENGINE_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("ARTICLE_ENGINE_LOG_BACKUP_COUNT must be zero or a positive integer.")

  # In-process job tracking loses progress on restart, so production must persist to Postgres.
  job_store_backend = os.getenv("ARTICLE_ENGINE_JOB_STORE", "postgres").strip().lower()
  if job_store_backend not in {"postgres", "memory"}:
    raise ValueError("ARTICLE_ENGINE_JOB_STORE must be 'postgres' or 'memory'.")
  if job_store_backend == "memory" and environment in {"production", "prod"}:
    raise ValueError("ARTICLE_ENGINE_JOB_STORE=memory is not allowed in production.")

  pg_dsn = os.getenv("ARTICLE_ENGINE_PG_DSN") or os.getenv("DATABASE_URL")
  if job_store_backend == "postgres" and not pg_dsn:
    raise ValueError("ARTICLE_ENGINE_PG_DSN must be set when the postgres job store is selected.")

  provider_priority = _parse_provider_priority(os.getenv("ARTICLE_ENGINE_PROVIDER_PRIORITY"))
  default_provider = os.getenv("ARTICLE_ENGINE_DEFAULT_PROVIDER", provider_priority[0]).strip().lower()
  if default_provider not in KNOWN_PROVIDERS:
    raise ValueError("ARTICLE_ENGINE_DEFAULT_PROVIDER must name a known provider.")

  template_providers = {str(key): str(value).lower() for key, value in _parse_json_dict(os.getenv("ARTICLE_ENGINE_TEMPLATE_PROVIDERS"), DEFAULT_TEMPLATE_PROVIDERS).items()}

  max_retries = int(os.getenv("ARTICLE_ENGINE_MAX_RETRIES", "3"))
  if max_retries < 0:
    raise ValueError("ARTICLE_ENGINE_MAX_RETRIES must be zero or a positive integer.")

  backoff_base_seconds = _positive_float("ARTICLE_ENGINE_BACKOFF_BASE_SECONDS", "1.0")
  backoff_max_delay_seconds = _positive_float("ARTICLE_ENGINE_BACKOFF_MAX_DELAY_SECONDS", "30.0")
  if backoff_max_delay_seconds < backoff_base_seconds:
    raise ValueError("ARTICLE_ENGINE_BACKOFF_MAX_DELAY_SECONDS must not be smaller than the backoff base.")

  skippable_phases = frozenset(_parse_csv(os.getenv("ARTICLE_ENGINE_SKIPPABLE_PHASES")))
  if not skippable_phases <= SKIPPABLE_PHASES:
    raise ValueError(f"ARTICLE_ENGINE_SKIPPABLE_PHASES may only contain: {', '.join(sorted(SKIPPABLE_PHASES))}.")

  return Settings(
    environment=environment,
    allowed_origins=_parse_origins(os.getenv("ARTICLE_ENGINE_ALLOWED_ORIGINS")),
    debug=debug,
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("ARTICLE_ENGINE_LOG_HTTP_4XX")),
    job_store_backend=job_store_backend,
    pg_dsn=pg_dsn,
    pg_connect_timeout=_positive_int("ARTICLE_ENGINE_PG_CONNECT_TIMEOUT", "5"),
    provider_priority=provider_priority,
    default_provider=default_provider,
    template_providers=template_providers,
    providers=_load_providers(),
    provider_timeout_seconds=_positive_float("ARTICLE_ENGINE_PROVIDER_TIMEOUT_SECONDS", "30"),
    max_retries=max_retries,
    backoff_base_seconds=backoff_base_seconds,
    backoff_max_delay_seconds=backoff_max_delay_seconds,
    rate_limit_window_seconds=_positive_float("ARTICLE_ENGINE_RATE_LIMIT_WINDOW_SECONDS", "60"),
    rate_limit_limit=_positive_int("ARTICLE_ENGINE_RATE_LIMIT_LIMIT", "10"),
    job_max_attempts=_positive_int("ARTICLE_ENGINE_JOB_MAX_ATTEMPTS", "3"),
    job_retention_seconds=_positive_int("ARTICLE_ENGINE_JOB_RETENTION_SECONDS", "86400"),
    skippable_phases=skippable_phases,
    persist_max_attempts=_positive_int("ARTICLE_ENGINE_PERSIST_MAX_ATTEMPTS", "3"),
    jobs_auto_process=_parse_bool(os.getenv("ARTICLE_ENGINE_JOBS_AUTO_PROCESS"), default=True),
    resume_on_startup=_parse_bool(os.getenv("ARTICLE_ENGINE_RESUME_ON_STARTUP"), default=True),
    poll_interval_seconds=_positive_float("ARTICLE_ENGINE_POLL_INTERVAL_SECONDS", "2.0"),
    task_secret=_optional_str(os.getenv("ARTICLE_ENGINE_TASK_SECRET")),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration like CORS."""
  # Keep database configuration isolated so migrations don't require unrelated env vars.
  debug = _parse_bool(os.getenv("ARTICLE_ENGINE_DEBUG"))
  pg_connect_timeout = _positive_int("ARTICLE_ENGINE_PG_CONNECT_TIMEOUT", "5")
  pg_dsn = os.getenv("ARTICLE_ENGINE_PG_DSN") or os.getenv("DATABASE_URL")
  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)
