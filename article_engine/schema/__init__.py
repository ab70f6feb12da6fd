"""Schema package exports."""

from .articles import Article
from .jobs import GenerationJobRow

__all__ = ["Article", "GenerationJobRow"]
