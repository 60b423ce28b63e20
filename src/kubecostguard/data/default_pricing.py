# src/kubecostguard/data/default_pricing.py

"""
Built-in pricing table used when no pricing document is configured.

Prices are on-demand list-price averages across the major cloud providers:
CPU per core-hour, memory and storage per GiB-hour, network per node-hour
and GPUs per GPU-hour.
"""

DEFAULT_PRICING = {
    "defaults": {
        "cpu": 0.031611,
        "memory": 0.004237,
        "storage": 0.000055,
        "network": 0.0,
        "gpuPricing": {
            "nvidia-tesla-t4": 0.35,
            "nvidia-tesla-p4": 0.60,
            "nvidia-tesla-v100": 2.48,
            "nvidia-tesla-a100": 2.93,
            "nvidia-l4": 0.71,
            "nvidia-h100-80gb": 9.80,
        },
    },
    "instanceTypes": {},
    "regionMultipliers": {},
}
