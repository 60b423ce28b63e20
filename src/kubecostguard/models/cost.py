# src/kubecostguard/models/cost.py
"""
Cost attribution models. A fresh set is computed on every evaluation cycle;
instances are never patched in place.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ResolvedPrices(BaseModel):
    """
    Concrete per-unit hourly prices for one node, region multiplier applied.

    cpu is per core-hour, memory and storage per GiB-hour, network per
    node-hour and gpu per GPU-hour.
    """

    model_config = ConfigDict(frozen=True)

    cpu: float = 0.0
    memory: float = 0.0
    storage: float = 0.0
    network: float = 0.0
    gpu: float = 0.0
    gpu_model: Optional[str] = None
    gpu_unpriced: bool = Field(False, description="The node advertises a GPU model missing from the pricing table.")
    region_multiplier: float = 1.0
    instance_type_matched: bool = False


class AttributionBasis(str, Enum):
    REQUEST = "request"
    USAGE = "usage"
    NEIGHBOUR_MEAN = "neighbour_mean"
    EQUAL = "equal"


class Utilization(BaseModel):
    """Observed usage divided by allocatable, per resource type. None means unknown."""

    cpu: Optional[float] = None
    memory: Optional[float] = None
    storage: Optional[float] = None


class NodeCost(BaseModel):
    node_name: str
    instance_type: Optional[str] = None
    region: Optional[str] = None
    hourly_cost: Optional[float] = Field(None, description="None when allocatable data is missing.")
    monthly_cost: Optional[float] = None
    cpu_cost: float = 0.0
    memory_cost: float = 0.0
    storage_cost: float = 0.0
    network_cost: float = 0.0
    gpu_cost: float = 0.0
    unallocated_hourly_cost: float = 0.0
    utilization: Utilization = Field(default_factory=Utilization)
    prices: Optional[ResolvedPrices] = None
    flags: List[str] = Field(default_factory=list)

    @property
    def is_known(self) -> bool:
        return self.hourly_cost is not None


class PodCost(BaseModel):
    namespace: str
    pod_name: str
    node_name: str
    hourly_cost: float
    monthly_cost: float
    share: float = Field(..., description="Fraction of the node cost attributed to this pod.")
    basis: AttributionBasis

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.pod_name}"


class NamespaceCost(BaseModel):
    namespace: str
    hourly_cost: float = 0.0
    monthly_cost: float = 0.0
    pod_count: int = 0
    cpu_efficiency: Optional[float] = Field(None, description="CPU usage divided by CPU requests.")


class UtilizationSample(BaseModel):
    timestamp: datetime
    cpu: float
    memory: float

    @property
    def combined(self) -> float:
        return max(self.cpu, self.memory)


class ForecastStatus(str, Enum):
    OK = "ok"
    INSUFFICIENT_HISTORY = "insufficient_history"


class CostForecast(BaseModel):
    """Advisory linear-trend projection of monthly cost."""

    status: ForecastStatus
    sample_count: int = 0
    horizon_hours: float = 0.0
    current_monthly_cost: Optional[float] = None
    low_monthly_cost: Optional[float] = None
    expected_monthly_cost: Optional[float] = None
    high_monthly_cost: Optional[float] = None
    utilization_trend_per_hour: Optional[float] = None
    message: str = ""


class CostReport(BaseModel):
    timestamp: datetime
    node_costs: List[NodeCost] = Field(default_factory=list)
    pod_costs: List[PodCost] = Field(default_factory=list)
    namespace_costs: List[NamespaceCost] = Field(default_factory=list)
    total_hourly_cost: float = 0.0
    total_monthly_cost: float = 0.0
    unknown_nodes: List[str] = Field(default_factory=list)
    unattributed_pods: List[str] = Field(default_factory=list)
    cluster_utilization: Optional[Utilization] = None
    forecast: Optional[CostForecast] = None

    def node_cost(self, node_name: str) -> Optional[NodeCost]:
        return next((n for n in self.node_costs if n.node_name == node_name), None)

    def namespace_cost(self, namespace: str) -> Optional[NamespaceCost]:
        return next((n for n in self.namespace_costs if n.namespace == namespace), None)
