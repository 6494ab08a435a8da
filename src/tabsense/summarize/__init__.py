"""Capacity-aware summarization pipeline."""

from .capacity import CapacityProbe
from .pipeline import (
    DEFAULT_CONTEXT,
    SummarizationJob,
    SummarizationPipeline,
    SummarizeOptions,
    resolve_output_language,
)

__all__ = [
    "DEFAULT_CONTEXT",
    "CapacityProbe",
    "SummarizationJob",
    "SummarizationPipeline",
    "SummarizeOptions",
    "resolve_output_language",
]
