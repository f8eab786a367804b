"""Token cost estimates. Informational only."""

from __future__ import annotations

from ..config import PricingConfig
from ..core.types import TokenUsage


def estimate_cost(usage: TokenUsage, pricing: PricingConfig | None = None) -> float:
    """Return the USD cost of ``usage`` at the configured per-million rates."""
    pricing = pricing or PricingConfig()
    return (
        usage.input_tokens * pricing.input_per_million / 1_000_000.0
        + usage.output_tokens * pricing.output_per_million / 1_000_000.0
    )


def format_cost(cost: float) -> str:
    return f"${cost:.5f}"
