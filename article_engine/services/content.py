"""Parsing and scoring of generated article text."""

from __future__ import annotations

import math
import re
import unicodedata
from collections.abc import Iterable
from dataclasses import dataclass, field

WORDS_PER_MINUTE = 200
OPTIMAL_DENSITY_MIN = 0.5
OPTIMAL_DENSITY_MAX = 2.5
SEO_SCORE_OPTIMAL = 85
SEO_SCORE_DEFAULT = 70

_TITLE_RE = re.compile(r"TITLE:\s*(.+?)(?:\n|$)", re.IGNORECASE)
_META_RE = re.compile(r"META_DESCRIPTION:\s*(.+?)(?:\n|$)", re.IGNORECASE)
_CONTENT_RE = re.compile(r"CONTENT:\s*([\s\S]+?)(?:\n\n---|\n\n\[|\n\nNote:|$)", re.IGNORECASE)
_HEADING_RE = re.compile(r"^#+\s+(.+)$", re.MULTILINE)


@dataclass(frozen=True)
class ParsedArticle:
  title: str
  meta_description: str
  content: str
  headings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ContentMetadata:
  word_count: int
  reading_time_minutes: int
  headings: list[str]
  sections: int


def parse_generated_content(raw: str) -> ParsedArticle:
  """Split provider output into title, meta description and body; unmarked text is all body."""
  title_match = _TITLE_RE.search(raw)
  meta_match = _META_RE.search(raw)
  content_match = _CONTENT_RE.search(raw)

  body = content_match.group(1).strip() if content_match else raw.strip()
  return ParsedArticle(
    title=title_match.group(1).strip() if title_match else "Generated Article",
    meta_description=meta_match.group(1).strip() if meta_match else "",
    content=body,
    headings=extract_headings(body),
  )


def extract_headings(content: str) -> list[str]:
  return [match.strip() for match in _HEADING_RE.findall(content)]


def count_words(content: str) -> int:
  return len(content.split())


def content_metadata(content: str) -> ContentMetadata:
  words = count_words(content)
  headings = extract_headings(content)
  return ContentMetadata(word_count=words, reading_time_minutes=math.ceil(words / WORDS_PER_MINUTE), headings=headings, sections=len(headings) or 1)


def keyword_density(content: str, keywords: Iterable[str]) -> dict[str, float]:
  """Occurrences of each keyword per hundred words."""
  lowered = content.lower()
  words = count_words(content) or 1
  density: dict[str, float] = {}
  for keyword in keywords:
    occurrences = len(re.findall(re.escape(keyword.lower()), lowered))
    density[keyword] = occurrences / words * 100
  return density


def seo_score(content: str, keywords: Iterable[str]) -> int:
  """Score 85 when the average keyword density sits in the optimal band, otherwise 70."""
  density = keyword_density(content, keywords)
  if not density:
    return SEO_SCORE_DEFAULT
  average = sum(density.values()) / len(density)
  if OPTIMAL_DENSITY_MIN <= average <= OPTIMAL_DENSITY_MAX:
    return SEO_SCORE_OPTIMAL
  return SEO_SCORE_DEFAULT


def slugify(value: str, max_length: int = 80) -> str:
  normalized = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
  slug = re.sub(r"[^a-z0-9]+", "-", normalized.lower()).strip("-")
  return slug[:max_length].rstrip("-") or "article"
