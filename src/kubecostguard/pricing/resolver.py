# src/kubecostguard/pricing/resolver.py
"""
Per-node price resolution.

For each resource type the instance-type override wins over the default,
and the result is scaled by the node's region multiplier (1.0 when the
region is unknown). Resolution is pure and total: gaps in the pricing
table lower precision but never raise.
"""

import logging

from kubecostguard.models.cost import ResolvedPrices
from kubecostguard.models.snapshot import NodeInfo
from kubecostguard.pricing.config import RESOURCE_TYPES, PricingConfig

logger = logging.getLogger(__name__)


class PricingResolver:
    """Resolves concrete hourly unit prices for nodes against a PricingConfig."""

    def __init__(self, pricing: PricingConfig):
        self.pricing = pricing

    def resolve(self, node: NodeInfo) -> ResolvedPrices:
        return resolve_price(node, self.pricing)


def resolve_price(node: NodeInfo, pricing: PricingConfig) -> ResolvedPrices:
    overrides = pricing.instance_types.get(node.instance_type) if node.instance_type else None
    multiplier = pricing.region_multipliers.get(node.region, 1.0) if node.region else 1.0

    prices = {}
    for resource_type in RESOURCE_TYPES:
        price = getattr(overrides, resource_type) if overrides is not None else None
        if price is None:
            price = getattr(pricing.defaults, resource_type)
        prices[resource_type] = price * multiplier

    gpu_price = 0.0
    gpu_unpriced = False
    if node.gpu_count > 0:
        model_price = pricing.defaults.gpu_pricing.get(node.gpu_model) if node.gpu_model else None
        if model_price is None:
            gpu_unpriced = True
            logger.debug("GPU model '%s' on node '%s' has no price; pricing it at zero.", node.gpu_model, node.name)
        else:
            gpu_price = model_price * multiplier

    return ResolvedPrices(
        **prices,
        gpu=gpu_price,
        gpu_model=node.gpu_model,
        gpu_unpriced=gpu_unpriced,
        region_multiplier=multiplier,
        instance_type_matched=overrides is not None,
    )
