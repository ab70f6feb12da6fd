"""Prompt assembly for article generation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

LENGTH_WORD_COUNTS: dict[str, int] = {"short": 500, "medium": 1000, "long": 1500, "comprehensive": 2000}

TEMPLATE_TEMPERATURES: dict[str, float] = {
  "Artist Showcase": 0.8,
  "Product Showcase": 0.7,
  "How-to Guide": 0.5,
  "Buying Guide": 0.6,
  "Review Article": 0.7,
  "Industry Trends": 0.6,
}

DEFAULT_SECTIONS: tuple[str, ...] = ("Introduction", "Background", "Key Points", "Practical Examples", "Conclusion")

# Rough tokens-per-word ratio used to size the completion budget.
TOKENS_PER_WORD = 1.5


@dataclass(frozen=True)
class ArticleBrief:
  """Normalized view of a generation request, derived during the analyzing phase."""

  title: str
  keywords: tuple[str, ...]
  tone: str
  template: str
  target_word_count: int
  optimize_for_seo: bool
  temperature: float
  max_tokens: int
  preferred_provider: str | None = None
  topic_id: str | None = None
  outline: tuple[str, ...] = field(default_factory=tuple)

  @property
  def primary_keyword(self) -> str:
    return self.keywords[0] if self.keywords else self.title


def extract_keywords(title: str, raw_keywords: str | list[str] | None) -> tuple[str, ...]:
  """Title first, then the comma-separated keywords, without duplicates."""
  if isinstance(raw_keywords, list):
    parsed = [str(item).strip() for item in raw_keywords]
  else:
    parsed = [item.strip() for item in (raw_keywords or "").split(",")]
  return tuple(dict.fromkeys([title.strip(), *[item for item in parsed if item]]))


def build_brief(request_data: dict[str, Any]) -> ArticleBrief:
  """Derive the brief for a stored job request; pure, so it can be recomputed after a restart."""
  topic = request_data.get("topic") or {}
  options = request_data.get("options") or {}
  title = str(topic.get("title") or "").strip()
  template = str(topic.get("template") or "article")

  target_word_count = request_data.get("targetWordCount") or LENGTH_WORD_COUNTS.get(str(topic.get("length") or "medium"), 1000)
  temperature = options.get("temperature")
  if temperature is None:
    temperature = TEMPLATE_TEMPERATURES.get(template, 0.7)
  max_tokens = options.get("maxTokens") or int(target_word_count * TOKENS_PER_WORD) + 500

  outline = tuple(str(item).strip() for item in request_data.get("outline") or [] if str(item).strip())
  return ArticleBrief(
    title=title,
    keywords=extract_keywords(title, topic.get("keywords")),
    tone=str(topic.get("tone") or "professional"),
    template=template,
    target_word_count=int(target_word_count),
    optimize_for_seo=bool(request_data.get("optimizeForSEO", True)),
    temperature=float(temperature),
    max_tokens=int(max_tokens),
    preferred_provider=request_data.get("preferredProvider"),
    topic_id=topic.get("id"),
    outline=outline,
  )


def build_outline(brief: ArticleBrief) -> tuple[str, ...]:
  """Return section headings for the article, keeping a caller-supplied outline as is."""
  if brief.outline:
    return brief.outline
  sections = list(DEFAULT_SECTIONS)
  # Give each secondary keyword its own section between the background and the examples.
  for keyword in brief.keywords[1:4]:
    sections.insert(-2, keyword.title())
  return tuple(sections)


def build_prompt(brief: ArticleBrief, outline: tuple[str, ...]) -> str:
  """Assemble the writing prompt, with the response markers the content parser expects."""
  sections = "\n".join(f"{index}. {heading}" for index, heading in enumerate(outline, start=1))
  prompt = f"""Create a comprehensive {brief.target_word_count}-word article about "{brief.title}".

Content requirements:
- Target keywords: {", ".join(brief.keywords)}
- Tone: {brief.tone}
- Template style: {brief.template}

Sections:
{sections}

Respond in this exact format:

TITLE: <engaging title, 30-60 characters, including the main keyword>

META_DESCRIPTION: <meta description, 150-160 characters, including the primary keyword>

CONTENT:
<the article body in Markdown, using ## headings for each section>"""

  if brief.optimize_for_seo:
    prompt += f"""

SEO requirements:
- Primary keyword "{brief.primary_keyword}" appears in the title, the first paragraph and at least one heading
- Keep keyword density between 0.5% and 2.5%
- Distribute secondary keywords naturally: {", ".join(brief.keywords[1:5]) or "none"}"""

  return prompt
