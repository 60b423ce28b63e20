# src/kubecostguard/health/evaluator.py
"""
Health evaluation of a ClusterSnapshot.

Each category check receives only the read-only snapshot and returns a fresh
status object, so the checks have no dependency on one another. Node and pod
checks are mandatory: a snapshot without nodes or pods raises SnapshotError.
Every other check is degraded on failure: it yields None, the category is
reported as unknown and the composite score is renormalized over the
categories that could be evaluated.
"""

import logging
import math
from collections import defaultdict
from typing import Callable, Dict, Iterable, List, Optional, TypeVar

from kubecostguard.core.config import config
from kubecostguard.core.exceptions import SnapshotError
from kubecostguard.health.issues import identify_issues
from kubecostguard.models.health import (
    CATEGORY_WEIGHTS,
    ClusterHealth,
    ControlPlaneStatus,
    HealthCategory,
    NamespaceHealth,
    NetworkStatus,
    NodeHealthStatus,
    PodHealthStatus,
    ResourceUsageStatus,
    ServiceStatus,
)
from kubecostguard.models.snapshot import ClusterSnapshot, PodInfo, PodPhase

logger = logging.getLogger(__name__)

T = TypeVar("T")

CONTROL_PLANE_COMPONENTS = {
    "controller_healthy": "kube-controller-manager",
    "scheduler_healthy": "kube-scheduler",
    "etcd_healthy": "etcd",
    "coredns_healthy": "coredns",
}
CNI_APPS = ("calico-node", "flannel", "weave-net", "cilium")
DNS_APP = "kube-dns"


def _floor_score(value: float) -> float:
    return max(0.0, min(100.0, value))


def composite_score(sub_scores: Dict[HealthCategory, Optional[float]]) -> int:
    """
    Weighted composite of the category sub-scores, rounded half up and
    clamped to [0, 100]. Unknown (None) categories are dropped and the
    remaining weights renormalized.
    """
    available = {category: score for category, score in sub_scores.items() if score is not None}
    total_weight = sum(CATEGORY_WEIGHTS[category] for category in available)
    if total_weight <= 0:
        return 0
    weighted = sum(CATEGORY_WEIGHTS[category] * score for category, score in available.items()) / total_weight
    return int(max(0, min(100, math.floor(weighted + 0.5))))


def _percent(used: int, total: int) -> Optional[float]:
    """Usage as a percentage of total; None when there is no total to measure against."""
    return 100.0 * used / total if total > 0 else None


def _above(percent: Optional[float], threshold: float) -> bool:
    return percent is not None and percent > threshold


def _unrequested_resources(pods: Iterable[PodInfo]) -> List[str]:
    """Resources the measured pods consume while none of them requests any."""
    measured = [p for p in pods if p.usage is not None]
    found = []
    if sum(p.requests.cpu_millicores for p in measured) == 0 and sum(p.usage.cpu_millicores for p in measured) > 0:
        found.append("CPU")
    if sum(p.requests.memory_bytes for p in measured) == 0 and sum(p.usage.memory_bytes for p in measured) > 0:
        found.append("Memory")
    return found


class HealthEvaluator:
    """Reduces a ClusterSnapshot into category statuses, a composite score and issues."""

    def __init__(
        self,
        api_latency_threshold_ms: Optional[float] = None,
        high_usage_threshold: Optional[float] = None,
        critical_usage_threshold: Optional[float] = None,
        restart_threshold: Optional[int] = None,
    ):
        self.api_latency_threshold_ms = (
            api_latency_threshold_ms if api_latency_threshold_ms is not None else config.API_LATENCY_THRESHOLD_MS
        )
        self.high_usage_threshold = (
            high_usage_threshold if high_usage_threshold is not None else config.HIGH_USAGE_THRESHOLD
        )
        self.critical_usage_threshold = (
            critical_usage_threshold if critical_usage_threshold is not None else config.CRITICAL_USAGE_THRESHOLD
        )
        self.restart_threshold = restart_threshold if restart_threshold is not None else config.RESTART_THRESHOLD

    def evaluate(self, snapshot: ClusterSnapshot) -> ClusterHealth:
        """
        Performs a comprehensive health evaluation of the snapshot.

        Raises:
            SnapshotError: If the snapshot holds no node or pod enumeration.
        """
        if snapshot.nodes is None:
            raise SnapshotError("node health check failed: nodes could not be enumerated")
        if snapshot.pods is None:
            raise SnapshotError("pod health check failed: pods could not be enumerated")

        node_status = self.check_nodes(snapshot)
        pod_status = self.check_pods(snapshot.pods)
        control_plane = self._degraded("control plane", self.check_control_plane, snapshot)
        network = self._degraded("network", self.check_network, snapshot)
        resource_usage = self._degraded("resource usage", self.check_resource_usage, snapshot)
        namespace_health = self._degraded("namespace", self.check_namespaces, snapshot)

        health = ClusterHealth(
            timestamp=snapshot.timestamp,
            node_status=node_status,
            pod_status=pod_status,
            control_plane_status=control_plane,
            network_status=network,
            resource_usage=resource_usage,
            namespace_health=namespace_health or {},
            namespace_health_available=namespace_health is not None,
        )
        health.unknown_categories = [category for category, score in health.sub_scores().items() if score is None]
        health.issues = identify_issues(
            health,
            high_usage_threshold=self.high_usage_threshold,
            critical_usage_threshold=self.critical_usage_threshold,
            api_latency_threshold_ms=self.api_latency_threshold_ms,
        )
        health.health_score = composite_score(health.sub_scores())
        logger.info(
            "Cluster health evaluated: score=%s issues=%s unknown=%s",
            health.health_score,
            len(health.issues),
            [c.value for c in health.unknown_categories],
        )
        return health

    @staticmethod
    def _degraded(name: str, check: Callable[[ClusterSnapshot], Optional[T]], snapshot: ClusterSnapshot) -> Optional[T]:
        try:
            result = check(snapshot)
        except Exception as e:
            logger.warning("%s health check failed: %s", name.capitalize(), e, exc_info=True)
            return None
        if result is None:
            logger.warning("%s health check skipped: required data is unavailable.", name.capitalize())
        return result

    # --- Node ---

    def check_nodes(self, snapshot: ClusterSnapshot) -> NodeHealthStatus:
        status = NodeHealthStatus(total_nodes=len(snapshot.nodes))
        pressure_counters = {
            "MemoryPressure": "memory_pressure_nodes",
            "DiskPressure": "disk_pressure_nodes",
            "PIDPressure": "pid_pressure_nodes",
            "NetworkUnavailable": "network_unavailable_nodes",
        }
        for node in snapshot.nodes:
            status.node_conditions[node.name] = list(node.conditions)
            if node.is_ready:
                status.ready_nodes += 1
            else:
                status.not_ready.append(node.name)
            pressures = node.pressure_conditions
            for condition in pressures:
                attr = pressure_counters[condition]
                setattr(status, attr, getattr(status, attr) + 1)
            if pressures:
                status.pressured_nodes[node.name] = list(pressures)

        if status.total_nodes == 0:
            status.score = 100.0
        else:
            score = 100.0 * status.ready_nodes / status.total_nodes
            score -= 5 * len(status.pressured_nodes)
            status.score = _floor_score(score)
        return status

    # --- Pod ---

    def check_pods(self, pods: Iterable[PodInfo]) -> PodHealthStatus:
        status = PodHealthStatus()
        phase_counters = {
            PodPhase.RUNNING: "running_pods",
            PodPhase.PENDING: "pending_pods",
            PodPhase.SUCCEEDED: "succeeded_pods",
            PodPhase.FAILED: "failed_pods",
            PodPhase.UNKNOWN: "unknown_pods",
        }
        for pod in pods:
            status.total_pods += 1
            attr = phase_counters[pod.phase]
            setattr(status, attr, getattr(status, attr) + 1)
            if pod.phase == PodPhase.FAILED:
                status.failed_pod_keys.append(pod.key)

            if pod.max_restart_count() > self.restart_threshold:
                status.restarting_pods.append(pod.key)
            if pod.is_crash_looping:
                status.crash_looping_pods.append(pod.key)

        if status.total_pods == 0:
            status.score = 100.0
        else:
            score = 100.0 * status.running_pods / status.total_pods
            score -= 2 * len(status.crash_looping_pods)
            score -= 1 * len(status.restarting_pods)
            status.score = _floor_score(score)
        return status

    # --- Control plane ---

    def check_control_plane(self, snapshot: ClusterSnapshot) -> Optional[ControlPlaneStatus]:
        if snapshot.control_plane_pods is None:
            return None

        status = ControlPlaneStatus()
        probe = snapshot.api_server_probe
        if probe is not None:
            status.api_server_reachable = probe.reachable
            status.api_server_latency_ms = probe.latency_ms
            status.api_server_healthy = probe.reachable and probe.latency_ms < self.api_latency_threshold_ms

        for pod in snapshot.control_plane_pods:
            for attr, name_fragment in CONTROL_PLANE_COMPONENTS.items():
                if name_fragment in pod.name and pod.phase != PodPhase.RUNNING:
                    setattr(status, attr, False)

        status.healthy_components = sum(
            [status.api_server_healthy] + [getattr(status, attr) for attr in CONTROL_PLANE_COMPONENTS]
        )
        status.overall_healthy = status.healthy_components == len(CONTROL_PLANE_COMPONENTS) + 1

        if status.overall_healthy:
            status.score = 100.0
        else:
            score = 100.0 * status.healthy_components / (len(CONTROL_PLANE_COMPONENTS) + 1)
            if status.api_server_reachable and not status.api_server_healthy:
                score -= min(20.0, status.api_server_latency_ms / 50.0)
            status.score = _floor_score(score)
        return status

    # --- Network ---

    def check_network(self, snapshot: ClusterSnapshot) -> Optional[NetworkStatus]:
        system_pods = snapshot.control_plane_pods
        services_known = snapshot.services is not None and snapshot.endpoints is not None
        if system_pods is None and not services_known and snapshot.ingress_controllers is None:
            return None

        status = NetworkStatus(network_policies_count=snapshot.network_policy_count)

        if system_pods is None:
            status.unavailable_inputs.extend(["cni", "dns"])
        else:
            cni_pods = [p for p in system_pods if p.labels.get("k8s-app") in CNI_APPS]
            dns_pods = [p for p in system_pods if p.labels.get("k8s-app") == DNS_APP]
            status.cni_healthy = all(p.phase == PodPhase.RUNNING for p in cni_pods)
            status.dns_resolution_ok = all(p.phase == PodPhase.RUNNING for p in dns_pods)

        if not services_known:
            status.unavailable_inputs.append("service_endpoints")
        else:
            subsets = {ep.key: ep.subset_count for ep in snapshot.endpoints}
            for svc in snapshot.services:
                # Services without selectors (e.g. ExternalName) manage their own endpoints
                if not svc.selector:
                    continue
                if subsets.get(svc.key, 0) == 0:
                    status.services_without_endpoints.append(svc.key)
            status.service_endpoints_healthy = not status.services_without_endpoints

        if snapshot.ingress_controllers is None:
            status.unavailable_inputs.append("ingress")
        else:
            for deployment in snapshot.ingress_controllers:
                if deployment.ready_replicas < deployment.desired_replicas:
                    status.unready_ingress_controllers.append(f"{deployment.namespace}/{deployment.name}")
            status.ingress_healthy = not status.unready_ingress_controllers

        checks = [
            status.cni_healthy,
            status.dns_resolution_ok,
            status.service_endpoints_healthy,
            status.ingress_healthy,
        ]
        status.score = 100.0 * sum(checks) / len(checks)
        return status

    # --- Resource usage ---

    def check_resource_usage(self, snapshot: ClusterSnapshot) -> Optional[ResourceUsageStatus]:
        measured = [n for n in snapshot.nodes if n.usage is not None and n.allocatable is not None]
        if not snapshot.metrics_available or not measured:
            return None

        status = ResourceUsageStatus(
            cpu_usage_percent=_percent(
                sum(n.usage.cpu_millicores for n in measured), sum(n.allocatable.cpu_millicores for n in measured)
            ),
            memory_usage_percent=_percent(
                sum(n.usage.memory_bytes for n in measured), sum(n.allocatable.memory_bytes for n in measured)
            ),
        )
        if status.cpu_usage_percent is None and status.memory_usage_percent is None:
            return None

        for node in measured:
            if _above(_percent(node.usage.cpu_millicores, node.allocatable.cpu_millicores), self.high_usage_threshold):
                status.high_cpu_nodes.append(node.name)
            if _above(_percent(node.usage.memory_bytes, node.allocatable.memory_bytes), self.high_usage_threshold):
                status.high_memory_nodes.append(node.name)

        namespaces: Dict[str, List[PodInfo]] = defaultdict(list)
        for pod in snapshot.pods:
            namespaces[pod.namespace].append(pod)
        for namespace, pods in sorted(namespaces.items()):
            unrequested = _unrequested_resources(pods)
            if unrequested:
                status.unrequested_usage[namespace] = unrequested
            ns_usage = self._namespace_usage(pods)
            if ns_usage is None:
                continue
            if _above(ns_usage.cpu_usage_percent, self.high_usage_threshold) or _above(
                ns_usage.memory_usage_percent, self.high_usage_threshold
            ):
                status.high_usage_namespaces.append(namespace)

        status.score = self._usage_score(status.cpu_usage_percent, status.memory_usage_percent)
        return status

    def _usage_score(self, cpu_percent: Optional[float], memory_percent: Optional[float]) -> float:
        score = 100.0
        for percent in (cpu_percent, memory_percent):
            if percent is not None:
                score -= max(0.0, percent - self.high_usage_threshold) * 2
        return _floor_score(score)

    def _namespace_usage(self, pods: List[PodInfo]) -> Optional[ResourceUsageStatus]:
        """Usage of a namespace relative to its requests; None when unmeasurable."""
        measured = [p for p in pods if p.usage is not None]
        if not measured:
            return None
        cpu_requested = sum(p.requests.cpu_millicores for p in measured)
        mem_requested = sum(p.requests.memory_bytes for p in measured)
        if cpu_requested == 0 and mem_requested == 0:
            return None
        status = ResourceUsageStatus(
            cpu_usage_percent=_percent(sum(p.usage.cpu_millicores for p in measured), cpu_requested),
            memory_usage_percent=_percent(sum(p.usage.memory_bytes for p in measured), mem_requested),
        )
        status.score = self._usage_score(status.cpu_usage_percent, status.memory_usage_percent)
        return status

    # --- Namespaces ---

    def check_namespaces(self, snapshot: ClusterSnapshot) -> Dict[str, NamespaceHealth]:
        pods_by_namespace: Dict[str, List[PodInfo]] = defaultdict(list)
        for pod in snapshot.pods:
            pods_by_namespace[pod.namespace].append(pod)

        service_status = self._service_status_by_namespace(snapshot)

        result: Dict[str, NamespaceHealth] = {}
        for namespace in sorted(set(pods_by_namespace) | set(service_status or {})):
            pods = pods_by_namespace.get(namespace, [])
            pod_status = self.check_pods(pods)
            resource_usage = self._namespace_usage(pods) if snapshot.metrics_available else None
            score = composite_score(
                {
                    HealthCategory.POD: pod_status.score,
                    HealthCategory.RESOURCE: resource_usage.score if resource_usage else None,
                }
            )
            result[namespace] = NamespaceHealth(
                pod_status=pod_status,
                service_status=service_status.get(namespace, ServiceStatus()) if service_status is not None else None,
                resource_usage=resource_usage,
                health_score=score,
            )
        return result

    @staticmethod
    def _service_status_by_namespace(snapshot: ClusterSnapshot) -> Optional[Dict[str, ServiceStatus]]:
        if snapshot.services is None or snapshot.endpoints is None:
            return None
        subsets = {ep.key: ep.subset_count for ep in snapshot.endpoints}
        statuses: Dict[str, ServiceStatus] = {}
        for svc in snapshot.services:
            status = statuses.setdefault(svc.namespace, ServiceStatus())
            status.total_services += 1
            if not svc.selector or subsets.get(svc.key, 0) > 0:
                status.services_with_endpoints += 1
            else:
                status.services_without_endpoints += 1
        return statuses
