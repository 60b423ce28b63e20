# src/kubecostguard/models/health.py
"""
Models produced by the health evaluator. They are regenerated on every
evaluation cycle and never persisted.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class Severity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"

    @property
    def rank(self) -> int:
        return {"critical": 0, "warning": 1, "info": 2}[self.value]


class HealthCategory(str, Enum):
    NODE = "node"
    POD = "pod"
    CONTROL_PLANE = "control_plane"
    NETWORK = "network"
    RESOURCE = "resource"


CATEGORY_WEIGHTS: Dict[HealthCategory, float] = {
    HealthCategory.NODE: 0.30,
    HealthCategory.POD: 0.25,
    HealthCategory.CONTROL_PLANE: 0.25,
    HealthCategory.NETWORK: 0.10,
    HealthCategory.RESOURCE: 0.10,
}


class NodeHealthStatus(BaseModel):
    total_nodes: int = 0
    ready_nodes: int = 0
    memory_pressure_nodes: int = 0
    disk_pressure_nodes: int = 0
    pid_pressure_nodes: int = 0
    network_unavailable_nodes: int = 0
    not_ready: List[str] = Field(default_factory=list)
    node_conditions: Dict[str, List[str]] = Field(default_factory=dict, description="Node name -> true conditions.")
    pressured_nodes: Dict[str, List[str]] = Field(default_factory=dict)
    score: float = 100.0


class PodHealthStatus(BaseModel):
    total_pods: int = 0
    running_pods: int = 0
    pending_pods: int = 0
    succeeded_pods: int = 0
    failed_pods: int = 0
    unknown_pods: int = 0
    restarting_pods: List[str] = Field(default_factory=list)
    crash_looping_pods: List[str] = Field(default_factory=list)
    failed_pod_keys: List[str] = Field(default_factory=list)
    score: float = 100.0


class ControlPlaneStatus(BaseModel):
    api_server_reachable: bool = False
    api_server_healthy: bool = False
    api_server_latency_ms: float = 0.0
    controller_healthy: bool = True
    scheduler_healthy: bool = True
    etcd_healthy: bool = True
    coredns_healthy: bool = True
    healthy_components: int = 0
    overall_healthy: bool = False
    score: float = 100.0


class NetworkStatus(BaseModel):
    cni_healthy: bool = False
    dns_resolution_ok: bool = False
    service_endpoints_healthy: bool = False
    ingress_healthy: bool = False
    services_without_endpoints: List[str] = Field(default_factory=list)
    unready_ingress_controllers: List[str] = Field(default_factory=list)
    unavailable_inputs: List[str] = Field(default_factory=list)
    network_policies_count: Optional[int] = None
    score: float = 100.0


class ResourceUsageStatus(BaseModel):
    """
    Observed usage relative to capacity (cluster) or to requests (namespace).
    A percentage is None when there is nothing to measure it against.
    """

    cpu_usage_percent: Optional[float] = None
    memory_usage_percent: Optional[float] = None
    high_cpu_nodes: List[str] = Field(default_factory=list)
    high_memory_nodes: List[str] = Field(default_factory=list)
    high_usage_namespaces: List[str] = Field(default_factory=list)
    unrequested_usage: Dict[str, List[str]] = Field(
        default_factory=dict, description="Namespace -> resources it consumes without requesting any."
    )
    score: float = 100.0


class ServiceStatus(BaseModel):
    total_services: int = 0
    services_with_endpoints: int = 0
    services_without_endpoints: int = 0


class NamespaceHealth(BaseModel):
    pod_status: PodHealthStatus
    service_status: Optional[ServiceStatus] = None
    resource_usage: Optional[ResourceUsageStatus] = None
    health_score: int = 100


class HealthIssue(BaseModel):
    """A detected health issue; lives for one evaluation cycle."""

    severity: Severity
    resource: str = Field(..., description="Kind of the affected resource (Node, Pod, Service, ...).")
    namespace: Optional[str] = None
    name: Optional[str] = None
    message: str
    suggestion: Optional[str] = None


class ClusterHealth(BaseModel):
    """
    Overall cluster health. A category status is None when its check could
    not be evaluated; such categories are excluded from the composite score.
    """

    timestamp: datetime
    node_status: NodeHealthStatus
    pod_status: PodHealthStatus
    control_plane_status: Optional[ControlPlaneStatus] = None
    network_status: Optional[NetworkStatus] = None
    resource_usage: Optional[ResourceUsageStatus] = None
    namespace_health: Dict[str, NamespaceHealth] = Field(default_factory=dict)
    unknown_categories: List[HealthCategory] = Field(default_factory=list)
    namespace_health_available: bool = True
    health_score: int = 100
    issues: List[HealthIssue] = Field(default_factory=list)

    def sub_scores(self) -> Dict[HealthCategory, Optional[float]]:
        """Return each category's sub-score, None for unknown categories."""
        return {
            HealthCategory.NODE: self.node_status.score,
            HealthCategory.POD: self.pod_status.score,
            HealthCategory.CONTROL_PLANE: self.control_plane_status.score if self.control_plane_status else None,
            HealthCategory.NETWORK: self.network_status.score if self.network_status else None,
            HealthCategory.RESOURCE: self.resource_usage.score if self.resource_usage else None,
        }
