# src/kubecostguard/pricing/config.py
"""
The pricing document: per-resource-type default prices, instance-type
overrides and region multipliers. Loaded once per process and immutable
afterwards.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from kubecostguard.core.exceptions import PricingConfigError
from kubecostguard.data.default_pricing import DEFAULT_PRICING

logger = logging.getLogger(__name__)

RESOURCE_TYPES = ("cpu", "memory", "storage", "network")


class DefaultPrices(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    cpu: float = Field(0.0, ge=0.0, description="Price per core-hour.")
    memory: float = Field(0.0, ge=0.0, description="Price per GiB-hour.")
    storage: float = Field(0.0, ge=0.0, description="Price per GiB-hour.")
    network: float = Field(0.0, ge=0.0, description="Price per node-hour.")
    gpu_pricing: Dict[str, float] = Field(default_factory=dict, alias="gpuPricing")


class InstanceTypePrices(BaseModel):
    """Overrides for one instance type; unset fields fall back to the defaults."""

    model_config = ConfigDict(frozen=True)

    cpu: Optional[float] = Field(None, ge=0.0)
    memory: Optional[float] = Field(None, ge=0.0)
    storage: Optional[float] = Field(None, ge=0.0)
    network: Optional[float] = Field(None, ge=0.0)


class PricingConfig(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    defaults: DefaultPrices = Field(default_factory=DefaultPrices)
    instance_types: Dict[str, InstanceTypePrices] = Field(default_factory=dict, alias="instanceTypes")
    region_multipliers: Dict[str, float] = Field(default_factory=dict, alias="regionMultipliers")


def default_pricing() -> PricingConfig:
    return PricingConfig.model_validate(DEFAULT_PRICING)


def load_pricing_config(path: Optional[Union[str, Path]] = None) -> PricingConfig:
    """
    Loads a pricing document from a JSON or YAML file.

    Without a path the built-in default table is returned.

    Raises:
        PricingConfigError: If the file cannot be read, parsed or validated.
    """
    if not path:
        logger.info("No pricing document configured; using built-in default prices.")
        return default_pricing()

    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise PricingConfigError(f"Cannot read pricing document '{path}': {e}") from e

    try:
        if path.suffix.lower() == ".json":
            data = json.loads(raw)
        else:
            data = yaml.safe_load(raw)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise PricingConfigError(f"Cannot parse pricing document '{path}': {e}") from e

    if not isinstance(data, dict):
        raise PricingConfigError(f"Pricing document '{path}' must be a mapping.")

    try:
        pricing = PricingConfig.model_validate(data)
    except ValidationError as e:
        raise PricingConfigError(f"Invalid pricing document '{path}': {e}") from e

    logger.info(
        "Loaded pricing document '%s': %d instance type(s), %d region multiplier(s).",
        path,
        len(pricing.instance_types),
        len(pricing.region_multipliers),
    )
    return pricing
