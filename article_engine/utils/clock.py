"""Timestamp helpers shared by stores and workers."""

from __future__ import annotations

from datetime import UTC, datetime

ISO_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def now_iso() -> str:
  """Return the current UTC time in the persisted timestamp format."""
  return datetime.now(UTC).strftime(ISO_FORMAT)


def to_iso(value: datetime) -> str:
  return value.astimezone(UTC).strftime(ISO_FORMAT)


def parse_iso(value: str | None) -> datetime | None:
  """Parse a persisted timestamp, tolerating fractional seconds and offsets."""
  if not value:
    return None
  try:
    return datetime.strptime(value, ISO_FORMAT).replace(tzinfo=UTC)
  except ValueError:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
      parsed = parsed.replace(tzinfo=UTC)
    return parsed
