# src/kubecostguard/collectors/base_collector.py
"""
Abstract base class for cluster data collectors, so the evaluation cycle can
be driven by the live Kubernetes collector or by a fake in tests.
"""

from abc import ABC, abstractmethod
from typing import Any


class BaseCollector(ABC):
    @abstractmethod
    async def collect(self) -> Any:
        """Fetch data from the source and return it as pydantic models."""
        pass

    async def close(self):
        """
        Clean up resources (e.g., close API clients).
        """
        pass
