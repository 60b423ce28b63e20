# tests/conftest.py

from datetime import datetime, timedelta, timezone

import pytest

from kubecostguard.models.snapshot import (
    ApiServerProbe,
    ClusterSnapshot,
    ContainerState,
    DeploymentInfo,
    EndpointsInfo,
    NodeInfo,
    PodInfo,
    PodPhase,
    ResourceQuantities,
    ServiceInfo,
)
from kubecostguard.pricing.config import PricingConfig

GIB = 1024**3
MIB = 1024**2
NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


def _make_node(
    name="node-1",
    cpu=4000,
    memory=16 * GIB,
    storage=0,
    ready=True,
    pressure=(),
    cpu_used=None,
    memory_used=None,
    instance_type="m5.xlarge",
    region="us-east-1",
    allocatable=True,
    gpu_count=0,
    gpu_model=None,
):
    """Builds a NodeInfo; usage is set only when cpu_used/memory_used are given."""
    conditions = (("Ready",) if ready else ()) + tuple(pressure)
    usage = None
    if cpu_used is not None or memory_used is not None:
        usage = ResourceQuantities(cpu_millicores=cpu_used or 0, memory_bytes=memory_used or 0)
    return NodeInfo(
        name=name,
        instance_type=instance_type,
        region=region,
        allocatable=(
            ResourceQuantities(cpu_millicores=cpu, memory_bytes=memory, storage_bytes=storage) if allocatable else None
        ),
        gpu_count=gpu_count,
        gpu_model=gpu_model,
        conditions=conditions,
        usage=usage,
    )


def _make_pod(
    name="pod-1",
    namespace="default",
    node="node-1",
    phase=PodPhase.RUNNING,
    cpu_request=100,
    memory_request=256 * MIB,
    gpu_request=0,
    cpu_used=None,
    memory_used=None,
    restarts=0,
    waiting_reason=None,
    labels=None,
    config_maps=(),
    age=timedelta(days=1),
):
    usage = None
    if cpu_used is not None or memory_used is not None:
        usage = ResourceQuantities(cpu_millicores=cpu_used or 0, memory_bytes=memory_used or 0)
    return PodInfo(
        namespace=namespace,
        name=name,
        node_name=node,
        phase=phase,
        labels=labels or {},
        containers=(ContainerState(name="app", restart_count=restarts, waiting_reason=waiting_reason),),
        requests=ResourceQuantities(cpu_millicores=cpu_request, memory_bytes=memory_request, gpu_count=gpu_request),
        usage=usage,
        config_map_refs=tuple(config_maps),
        creation_timestamp=NOW - age,
    )


def _control_plane_pods(phase=PodPhase.RUNNING):
    return (
        _make_pod("kube-apiserver-cp", "kube-system", "cp", labels={"component": "kube-apiserver"}),
        _make_pod("kube-controller-manager-cp", "kube-system", "cp", phase=phase),
        _make_pod("kube-scheduler-cp", "kube-system", "cp"),
        _make_pod("etcd-cp", "kube-system", "cp"),
        _make_pod("coredns-5d78c9869d-abcde", "kube-system", "cp", labels={"k8s-app": "kube-dns"}),
        _make_pod("calico-node-xyz", "kube-system", "cp", labels={"k8s-app": "calico-node"}),
    )


def _healthy_snapshot(nodes=None, pods=None, **overrides):
    """
    Scenario A: three Ready nodes at 65% CPU / 72% memory, 48 Running pods,
    a fully healthy control plane and network.
    """
    if nodes is None:
        nodes = tuple(
            _make_node(f"node-{i}", cpu_used=2600, memory_used=int(0.72 * 16 * GIB)) for i in range(1, 4)
        )
    if pods is None:
        pods = tuple(
            _make_pod(
                f"web-{i}",
                namespace=("web", "api", "batch")[i % 3],
                node=f"node-{i % 3 + 1}",
                cpu_used=50,
                memory_used=128 * MIB,
            )
            for i in range(48)
        )
    fields = dict(
        timestamp=NOW,
        nodes=tuple(nodes),
        pods=tuple(pods),
        control_plane_pods=_control_plane_pods(),
        api_server_probe=ApiServerProbe(reachable=True, latency_ms=20.0),
        services=(ServiceInfo(namespace="web", name="frontend", selector={"app": "frontend"}),),
        endpoints=(EndpointsInfo(namespace="web", name="frontend", subset_count=1),),
        network_policy_count=2,
        ingress_controllers=(
            DeploymentInfo(
                namespace="ingress-nginx", name="ingress-nginx-controller", desired_replicas=2, ready_replicas=2
            ),
        ),
        config_maps=(),
        metrics_available=True,
    )
    fields.update(overrides)
    return ClusterSnapshot(**fields)


@pytest.fixture
def make_node():
    return _make_node


@pytest.fixture
def make_pod():
    return _make_pod


@pytest.fixture
def control_plane_pods():
    return _control_plane_pods


@pytest.fixture
def healthy_snapshot():
    return _healthy_snapshot


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def simple_pricing():
    """Defaults only: $0.05/core-hour, $0.01/GiB-hour memory, $0.02/node-hour network."""
    return PricingConfig.model_validate(
        {
            "defaults": {
                "cpu": 0.05,
                "memory": 0.01,
                "storage": 0.0,
                "network": 0.02,
                "gpuPricing": {"nvidia-tesla-t4": 0.35},
            }
        }
    )


@pytest.fixture(autouse=True)
def no_kube_config(monkeypatch):
    """
    Autouse fixture that keeps tests away from any real cluster: loading the
    kube config always fails unless a test injects its own API objects.
    """

    async def _no_config() -> bool:
        return False

    monkeypatch.setattr("kubecostguard.core.k8s_client.ensure_k8s_config", _no_config)
