# tests/pricing/test_pricing_config.py

import json

import pytest

from kubecostguard.core.exceptions import PricingConfigError
from kubecostguard.pricing.config import load_pricing_config


def test_load_json_document(tmp_path):
    path = tmp_path / "pricing.json"
    path.write_text(
        json.dumps(
            {
                "defaults": {"cpu": 0.04, "memory": 0.005, "gpuPricing": {"nvidia-l4": 0.7}},
                "instanceTypes": {"m5.large": {"cpu": 0.048}},
                "regionMultipliers": {"eu-west-1": 1.1},
            }
        )
    )

    pricing = load_pricing_config(path)

    assert pricing.defaults.cpu == 0.04
    assert pricing.defaults.gpu_pricing == {"nvidia-l4": 0.7}
    assert pricing.instance_types["m5.large"].cpu == 0.048
    assert pricing.instance_types["m5.large"].memory is None
    assert pricing.region_multipliers == {"eu-west-1": 1.1}


def test_load_yaml_document(tmp_path):
    path = tmp_path / "pricing.yaml"
    path.write_text(
        """
defaults:
  cpu: 0.031
  memory: 0.004
  gpuPricing:
    nvidia-tesla-t4: 0.35
instanceTypes:
  c5.xlarge:
    cpu: 0.0425
regionMultipliers:
  ap-south-1: 0.9
"""
    )

    pricing = load_pricing_config(str(path))

    assert pricing.defaults.memory == 0.004
    assert pricing.instance_types["c5.xlarge"].cpu == 0.0425
    assert pricing.region_multipliers["ap-south-1"] == 0.9


def test_no_path_returns_builtin_defaults():
    pricing = load_pricing_config(None)
    assert pricing.defaults.cpu > 0
    assert "nvidia-tesla-t4" in pricing.defaults.gpu_pricing


def test_missing_file_raises(tmp_path):
    with pytest.raises(PricingConfigError, match="Cannot read"):
        load_pricing_config(tmp_path / "absent.yaml")


def test_unparseable_document_raises(tmp_path):
    path = tmp_path / "pricing.json"
    path.write_text("{not json")
    with pytest.raises(PricingConfigError, match="Cannot parse"):
        load_pricing_config(path)


def test_non_mapping_document_raises(tmp_path):
    path = tmp_path / "pricing.yaml"
    path.write_text("- cpu\n- memory\n")
    with pytest.raises(PricingConfigError, match="must be a mapping"):
        load_pricing_config(path)


def test_negative_price_is_rejected(tmp_path):
    path = tmp_path / "pricing.json"
    path.write_text(json.dumps({"defaults": {"cpu": -1}}))
    with pytest.raises(PricingConfigError, match="Invalid pricing document"):
        load_pricing_config(path)
