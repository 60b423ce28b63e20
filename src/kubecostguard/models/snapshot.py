# src/kubecostguard/models/snapshot.py
"""
Pydantic models describing a point-in-time snapshot of a Kubernetes cluster.

A ClusterSnapshot is the only input of an evaluation cycle. It is frozen: the
health evaluator, the cost aggregator and the advisor all read the same
instance and none of them may modify it.

Secondary sources (control-plane pods, services, metrics, ...) are Optional:
``None`` means the source could not be read and the checks depending on it
are reported as unknown. ``nodes`` and ``pods`` are Optional only so that a
failed enumeration can be represented; consumers treat ``None`` there as fatal.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

PRESSURE_CONDITIONS = ("MemoryPressure", "DiskPressure", "PIDPressure", "NetworkUnavailable")


class PodPhase(str, Enum):
    """Enumeration of Kubernetes pod phases."""

    RUNNING = "Running"
    PENDING = "Pending"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    UNKNOWN = "Unknown"


TERMINAL_PHASES = (PodPhase.SUCCEEDED, PodPhase.FAILED)


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class ResourceQuantities(_Frozen):
    """An amount of CPU, memory, storage and GPUs."""

    cpu_millicores: int = Field(0, ge=0, description="CPU in millicores.")
    memory_bytes: int = Field(0, ge=0, description="Memory in bytes.")
    storage_bytes: int = Field(0, ge=0, description="Ephemeral storage in bytes.")
    gpu_count: int = Field(0, ge=0, description="Whole GPUs (nvidia.com/gpu).")

    def is_empty(self) -> bool:
        return self.cpu_millicores == 0 and self.memory_bytes == 0 and self.storage_bytes == 0 and self.gpu_count == 0


class NodeInfo(_Frozen):
    """
    A cluster node.

    Attributes:
        name: Node name
        instance_type: Value of the instance-type label
        region: Value of the region label
        zone: Value of the zone label
        allocatable: Allocatable resources, None when the node does not report them
        gpu_count: Number of allocatable GPUs
        gpu_model: GPU model key used for pricing
        conditions: Condition types whose status is True (Ready, MemoryPressure, ...)
        usage: Observed usage from the metrics API, None when unknown
    """

    name: str
    instance_type: Optional[str] = None
    region: Optional[str] = None
    zone: Optional[str] = None
    allocatable: Optional[ResourceQuantities] = None
    gpu_count: int = Field(0, ge=0)
    gpu_model: Optional[str] = None
    conditions: Tuple[str, ...] = ()
    usage: Optional[ResourceQuantities] = None

    @property
    def is_ready(self) -> bool:
        return "Ready" in self.conditions

    @property
    def pressure_conditions(self) -> Tuple[str, ...]:
        return tuple(c for c in self.conditions if c in PRESSURE_CONDITIONS)


class ContainerState(_Frozen):
    """Restart count and waiting reason of a single container."""

    name: str
    restart_count: int = Field(0, ge=0)
    waiting_reason: Optional[str] = None


class PodInfo(_Frozen):
    """A pod with the fields needed for health, cost and cleanup analysis."""

    namespace: str
    name: str
    node_name: Optional[str] = None
    phase: PodPhase = PodPhase.UNKNOWN
    labels: Dict[str, str] = Field(default_factory=dict)
    containers: Tuple[ContainerState, ...] = ()
    requests: ResourceQuantities = Field(default_factory=ResourceQuantities)
    usage: Optional[ResourceQuantities] = None
    config_map_refs: Tuple[str, ...] = Field((), description="Names of ConfigMaps referenced by volumes or env.")
    creation_timestamp: Optional[datetime] = None

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    @property
    def is_crash_looping(self) -> bool:
        return any(c.waiting_reason == "CrashLoopBackOff" for c in self.containers)

    def max_restart_count(self) -> int:
        return max((c.restart_count for c in self.containers), default=0)


class ServiceInfo(_Frozen):
    namespace: str
    name: str
    selector: Dict[str, str] = Field(default_factory=dict)

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"


class EndpointsInfo(_Frozen):
    namespace: str
    name: str
    subset_count: int = Field(0, ge=0)

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"


class DeploymentInfo(_Frozen):
    """An ingress-controller deployment with its replica readiness."""

    namespace: str
    name: str
    desired_replicas: int = Field(1, ge=0)
    ready_replicas: int = Field(0, ge=0)


class ConfigMapInfo(_Frozen):
    namespace: str
    name: str
    creation_timestamp: Optional[datetime] = None

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"


class ApiServerProbe(_Frozen):
    """Outcome of a single timed request against the API server."""

    reachable: bool
    latency_ms: float = Field(0.0, ge=0.0)


class ClusterSnapshot(_Frozen):
    """Read-only view of the cluster for one evaluation cycle."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    nodes: Optional[Tuple[NodeInfo, ...]] = None
    pods: Optional[Tuple[PodInfo, ...]] = None
    control_plane_pods: Optional[Tuple[PodInfo, ...]] = Field(None, description="Pods in kube-system.")
    api_server_probe: Optional[ApiServerProbe] = None
    services: Optional[Tuple[ServiceInfo, ...]] = None
    endpoints: Optional[Tuple[EndpointsInfo, ...]] = None
    network_policy_count: Optional[int] = None
    ingress_controllers: Optional[Tuple[DeploymentInfo, ...]] = None
    config_maps: Optional[Tuple[ConfigMapInfo, ...]] = None
    metrics_available: bool = Field(False, description="Whether node/pod usage came from the metrics API.")
