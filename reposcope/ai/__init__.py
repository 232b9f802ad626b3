"""AI collaborator contract and its chat-completions implementation."""

from .base import DirectorySummary, FinalSummary, SourceFile, Summarizer, UnitSummary
from .cost import calculate_cost
from .runner import LLMRequest, LLMResponse, LLMRunner
from .summarizer import LLMSummarizer

__all__ = [
    "DirectorySummary",
    "FinalSummary",
    "LLMRequest",
    "LLMResponse",
    "LLMRunner",
    "LLMSummarizer",
    "SourceFile",
    "Summarizer",
    "UnitSummary",
    "calculate_cost",
]
