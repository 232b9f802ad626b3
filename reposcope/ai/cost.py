"""Token usage to cost conversion."""

from __future__ import annotations

from ..config import PricingSettings
from ..models import TokenUsage


def calculate_cost(usage: TokenUsage, pricing: PricingSettings | None = None) -> float:
    pricing = pricing or PricingSettings()
    return usage.input_tokens * pricing.input_price + usage.output_tokens * pricing.output_price


__all__ = ["calculate_cost"]
