"""
Pricing calculations and rate management.

Handles cost computations for text, embedding and image models.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Mapping, Optional

from .usage import OperationKind, UsageCounts

logger = logging.getLogger(__name__)

_THOUSAND = Decimal("1000")


@dataclass(frozen=True)
class ModelPricing:
    """Pricing for a specific model.

    Token models carry per-1K rates, image models a per-image rate.
    """
    input_cost_per_1k: Decimal = Decimal("0")
    output_cost_per_1k: Decimal = Decimal("0")
    per_image: Optional[Decimal] = None


@dataclass(frozen=True)
class PricingTable:
    """Pricing table for supported models."""
    prices: Mapping[str, ModelPricing]

    def get_pricing(self, model_id: str) -> Optional[ModelPricing]:
        """Get pricing for a specific model, or None if the model is unknown."""
        return self.prices.get(model_id)

    def merged(self, overrides: Mapping[str, ModelPricing]) -> "PricingTable":
        """Return a new table with ``overrides`` replacing or adding entries."""
        prices: Dict[str, ModelPricing] = dict(self.prices)
        prices.update(overrides)
        return PricingTable(prices)


def _tokens(input_rate: str, output_rate: str) -> ModelPricing:
    return ModelPricing(
        input_cost_per_1k=Decimal(input_rate),
        output_cost_per_1k=Decimal(output_rate),
    )


# Approximate USD rates; update as provider pricing changes
DEFAULT_PRICING_TABLE = PricingTable({
    # Claude
    "anthropic.claude-3-sonnet-20240229-v1:0": _tokens("0.003", "0.015"),
    "anthropic.claude-3-haiku-20240307-v1:0": _tokens("0.00025", "0.00125"),
    "anthropic.claude-3-opus-20240229-v1:0": _tokens("0.015", "0.075"),
    # Titan
    "amazon.titan-text-express-v1": _tokens("0.0008", "0.0016"),
    "amazon.titan-text-lite-v1": _tokens("0.0003", "0.0004"),
    "amazon.titan-embed-text-v1": _tokens("0.0001", "0"),
    # Stable Diffusion (per image)
    "stability.stable-diffusion-xl-v1": ModelPricing(per_image=Decimal("0.04")),
    # Cohere
    "cohere.command-text-v14": _tokens("0.0015", "0.002"),
    "cohere.command-light-text-v14": _tokens("0.0003", "0.0006"),
    "cohere.embed-english-v3": _tokens("0.0001", "0"),
    # OpenAI
    "gpt-4o": _tokens("0.0025", "0.01"),
    "gpt-4o-mini": _tokens("0.00015", "0.0006"),
    "text-embedding-3-small": _tokens("0.00002", "0"),
    "dall-e-3": ModelPricing(per_image=Decimal("0.04")),
})


def calculate_cost(
    pricing_table: PricingTable,
    model_id: str,
    operation: OperationKind,
    usage: UsageCounts,
) -> float:
    """Calculate the estimated cost of one operation.

    Text and embedding operations are priced per 1K input and output units;
    image operations are priced per generated image. Unknown models cost 0
    and are logged as a warning.

    Args:
        pricing_table: Table to look rates up in
        model_id: Model identifier
        operation: Kind of operation being priced
        usage: Unit counts reported for the operation

    Returns:
        Estimated cost in USD
    """
    pricing = pricing_table.get_pricing(model_id)
    if pricing is None:
        logger.warning("Unknown model for cost calculation: %s", model_id)
        return 0.0

    if operation == OperationKind.IMAGE:
        if pricing.per_image is None:
            logger.warning("Model %s has no per-image rate", model_id)
            return 0.0
        return float(Decimal(usage.image_count) * pricing.per_image)

    input_cost = (Decimal(usage.input_units) / _THOUSAND) * pricing.input_cost_per_1k
    output_cost = (Decimal(usage.output_units) / _THOUSAND) * pricing.output_cost_per_1k
    return float(input_cost + output_cost)
