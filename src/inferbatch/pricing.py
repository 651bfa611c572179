"""Token cost estimation for the running usage summary."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from inferbatch.core.models import UsageCounters


@dataclass(frozen=True)
class ModelPricing:
    """Input/output pricing in USD per 1K tokens."""

    input_per_1k: float = 0.0015
    output_per_1k: float = 0.002


@dataclass(frozen=True)
class CostSummary:
    input_cost: float
    output_cost: float

    @property
    def total_cost(self) -> float:
        return self.input_cost + self.output_cost


def estimate_cost(counters: UsageCounters, pricing: ModelPricing | None = None) -> CostSummary:
    """Estimate the accumulated cost of *counters* in USD."""
    pricing = pricing or ModelPricing()
    return CostSummary(
        input_cost=(counters.total_prompt_tokens / 1000) * pricing.input_per_1k,
        output_cost=(counters.total_completion_tokens / 1000) * pricing.output_per_1k,
    )
