# src/kubecostguard/health/issues.py
"""
Deterministic issue identification over computed health statuses.

Runs after all category checks and only reads their results. Any category
whose contribution is below its maximum yields at least one issue: when none
of the specific rules below matches, a generic issue names the category and
its score.
"""

import logging
from typing import Dict, List, Optional

from kubecostguard.models.health import (
    ClusterHealth,
    ControlPlaneStatus,
    HealthCategory,
    HealthIssue,
    NetworkStatus,
    NodeHealthStatus,
    PodHealthStatus,
    ResourceUsageStatus,
    Severity,
)

logger = logging.getLogger(__name__)

PRESSURE_SUGGESTIONS = {
    "MemoryPressure": "Evict or rightsize memory-heavy pods, or add memory capacity.",
    "DiskPressure": "Free disk space (images, logs, emptyDir volumes) or enlarge the node disk.",
    "PIDPressure": "Look for pods spawning excessive processes and set pod PID limits.",
    "NetworkUnavailable": "Check the CNI plugin and the node's network configuration.",
}


def _sort_key(issue: HealthIssue):
    return (issue.severity.rank, issue.resource, issue.namespace or "", issue.name or "", issue.message)


def _split_key(key: str):
    namespace, _, name = key.partition("/")
    return namespace, name


def _node_issues(node_status: NodeHealthStatus) -> List[HealthIssue]:
    issues = []
    for node_name in node_status.not_ready:
        issues.append(
            HealthIssue(
                severity=Severity.CRITICAL,
                resource="Node",
                name=node_name,
                message=f"Node {node_name} is not Ready",
                suggestion="Check kubelet logs and node connectivity.",
            )
        )
    for node_name, conditions in node_status.pressured_nodes.items():
        for condition in conditions:
            issues.append(
                HealthIssue(
                    severity=Severity.CRITICAL,
                    resource="Node",
                    name=node_name,
                    message=f"Node {node_name} reports {condition}",
                    suggestion=PRESSURE_SUGGESTIONS.get(condition),
                )
            )
    return issues


def _pod_issues(pod_status: PodHealthStatus) -> List[HealthIssue]:
    issues = []
    for key in pod_status.crash_looping_pods:
        namespace, name = _split_key(key)
        issues.append(
            HealthIssue(
                severity=Severity.CRITICAL,
                resource="Pod",
                namespace=namespace,
                name=name,
                message=f"Pod {key} is in CrashLoopBackOff",
                suggestion="Inspect the container logs (kubectl logs --previous) for the crash cause.",
            )
        )
    for key in pod_status.restarting_pods:
        namespace, name = _split_key(key)
        issues.append(
            HealthIssue(
                severity=Severity.WARNING,
                resource="Pod",
                namespace=namespace,
                name=name,
                message=f"Pod {key} has containers with elevated restart counts",
                suggestion="Check liveness probes and memory limits for OOM kills.",
            )
        )
    for key in pod_status.failed_pod_keys:
        namespace, name = _split_key(key)
        issues.append(
            HealthIssue(
                severity=Severity.WARNING,
                resource="Pod",
                namespace=namespace,
                name=name,
                message=f"Pod {key} is in Failed phase",
                suggestion="Review the pod events, then delete it once diagnosed.",
            )
        )
    if pod_status.pending_pods:
        issues.append(
            HealthIssue(
                severity=Severity.WARNING,
                resource="Pod",
                message=f"{pod_status.pending_pods} pod(s) are Pending",
                suggestion="Check for unschedulable pods due to insufficient capacity or unbound volumes.",
            )
        )
    if pod_status.unknown_pods:
        issues.append(
            HealthIssue(
                severity=Severity.WARNING,
                resource="Pod",
                message=f"{pod_status.unknown_pods} pod(s) are in Unknown phase",
                suggestion="Pods in Unknown phase usually sit on unreachable nodes.",
            )
        )
    if pod_status.succeeded_pods:
        issues.append(
            HealthIssue(
                severity=Severity.INFO,
                resource="Pod",
                message=f"{pod_status.succeeded_pods} pod(s) have completed (Succeeded) and are no longer running",
                suggestion="Delete finished Job pods, or set ttlSecondsAfterFinished on their Jobs.",
            )
        )
    return issues


def _control_plane_issues(cp: Optional[ControlPlaneStatus], api_latency_threshold_ms: float) -> List[HealthIssue]:
    issues = []
    if cp is None or cp.overall_healthy:
        return issues
    if not cp.api_server_reachable:
        issues.append(
            HealthIssue(
                severity=Severity.CRITICAL,
                resource="ControlPlane",
                name="kube-apiserver",
                message="API server is unreachable",
                suggestion="Check the API server pods and the load balancer in front of them.",
            )
        )
    elif not cp.api_server_healthy:
        issues.append(
            HealthIssue(
                severity=Severity.WARNING,
                resource="ControlPlane",
                name="kube-apiserver",
                message=(
                    f"API server latency {cp.api_server_latency_ms:.0f}ms exceeds {api_latency_threshold_ms:.0f}ms"
                ),
                suggestion="Check API server load, etcd latency and admission webhooks.",
            )
        )
    for attr, component in (
        ("controller_healthy", "kube-controller-manager"),
        ("scheduler_healthy", "kube-scheduler"),
        ("etcd_healthy", "etcd"),
        ("coredns_healthy", "coredns"),
    ):
        if not getattr(cp, attr):
            issues.append(
                HealthIssue(
                    severity=Severity.WARNING,
                    resource="ControlPlane",
                    namespace="kube-system",
                    name=component,
                    message=f"{component} pods are not Running",
                    suggestion=f"Inspect the {component} pods in kube-system.",
                )
            )
    return issues


def _network_issues(net: Optional[NetworkStatus]) -> List[HealthIssue]:
    issues = []
    if net is None:
        return issues
    unavailable = set(net.unavailable_inputs)
    for item in net.unavailable_inputs:
        issues.append(
            HealthIssue(
                severity=Severity.INFO,
                resource="Network",
                name=item,
                message=f"Network check '{item}' could not be evaluated",
            )
        )
    if "cni" not in unavailable and not net.cni_healthy:
        issues.append(
            HealthIssue(
                severity=Severity.WARNING,
                resource="Network",
                name="cni",
                message="CNI pods are not all Running",
                suggestion="Inspect the CNI daemonset pods in kube-system.",
            )
        )
    if "dns" not in unavailable and not net.dns_resolution_ok:
        issues.append(
            HealthIssue(
                severity=Severity.WARNING,
                resource="Network",
                name="dns",
                message="Cluster DNS pods are not all Running",
                suggestion="Inspect the kube-dns/coredns pods in kube-system.",
            )
        )
    for key in net.services_without_endpoints:
        namespace, name = _split_key(key)
        issues.append(
            HealthIssue(
                severity=Severity.WARNING,
                resource="Service",
                namespace=namespace,
                name=name,
                message=f"Service {key} has no endpoints",
                suggestion="Verify the service selector matches Ready pods.",
            )
        )
    for key in net.unready_ingress_controllers:
        namespace, name = _split_key(key)
        issues.append(
            HealthIssue(
                severity=Severity.WARNING,
                resource="Deployment",
                namespace=namespace,
                name=name,
                message=f"Ingress controller {key} has fewer ready replicas than desired",
                suggestion="Check the ingress controller pods and their events.",
            )
        )
    return issues


def _resource_issues(
    usage: Optional[ResourceUsageStatus], high_usage_threshold: float, critical_usage_threshold: float
) -> List[HealthIssue]:
    issues = []
    if usage is None:
        return issues
    for label, percent in (("CPU", usage.cpu_usage_percent), ("Memory", usage.memory_usage_percent)):
        if percent is None:
            issues.append(
                HealthIssue(
                    severity=Severity.INFO,
                    resource="Cluster",
                    message=f"Cluster {label} utilization is unknown: measured nodes report no allocatable {label}",
                )
            )
            continue
        if percent > critical_usage_threshold:
            severity = Severity.WARNING
        elif percent > high_usage_threshold:
            severity = Severity.INFO
        else:
            continue
        issues.append(
            HealthIssue(
                severity=severity,
                resource="Cluster",
                message=f"Cluster {label} usage is {percent:.1f}%",
                suggestion="Add capacity or enable the cluster autoscaler.",
            )
        )
    for node_name in usage.high_cpu_nodes:
        issues.append(
            HealthIssue(
                severity=Severity.INFO,
                resource="Node",
                name=node_name,
                message=f"Node {node_name} CPU usage above {high_usage_threshold:.0f}%",
            )
        )
    for node_name in usage.high_memory_nodes:
        issues.append(
            HealthIssue(
                severity=Severity.INFO,
                resource="Node",
                name=node_name,
                message=f"Node {node_name} memory usage above {high_usage_threshold:.0f}%",
            )
        )
    for namespace in usage.high_usage_namespaces:
        issues.append(
            HealthIssue(
                severity=Severity.INFO,
                resource="Namespace",
                name=namespace,
                message=f"Namespace {namespace} uses more than {high_usage_threshold:.0f}% of its requests",
                suggestion="Raise the requests of its workloads to match real usage.",
            )
        )
    for namespace, resources in usage.unrequested_usage.items():
        issues.append(
            HealthIssue(
                severity=Severity.INFO,
                resource="Namespace",
                name=namespace,
                message=(
                    f"Namespace {namespace} consumes {' and '.join(resources)} without requesting any; "
                    "its utilization is unknown"
                ),
                suggestion="Set resource requests on its workloads.",
            )
        )
    return issues


def _degraded_check_issues(health: ClusterHealth) -> List[HealthIssue]:
    issues = [
        HealthIssue(
            severity=Severity.INFO,
            resource="HealthCheck",
            name=category.value,
            message=f"{category.value} health is unknown: the check could not be evaluated",
            suggestion="The next evaluation cycle will retry this check.",
        )
        for category in health.unknown_categories
    ]
    if not health.namespace_health_available:
        issues.append(
            HealthIssue(
                severity=Severity.INFO,
                resource="HealthCheck",
                name="namespace",
                message="Per-namespace health could not be evaluated",
            )
        )
    return issues


def identify_issues(
    health: ClusterHealth,
    high_usage_threshold: float = 80.0,
    critical_usage_threshold: float = 95.0,
    api_latency_threshold_ms: float = 1000.0,
) -> List[HealthIssue]:
    """Builds the severity-ranked issue list for a ClusterHealth."""
    by_category: Dict[HealthCategory, List[HealthIssue]] = {
        HealthCategory.NODE: _node_issues(health.node_status),
        HealthCategory.POD: _pod_issues(health.pod_status),
        HealthCategory.CONTROL_PLANE: _control_plane_issues(health.control_plane_status, api_latency_threshold_ms),
        HealthCategory.NETWORK: _network_issues(health.network_status),
        HealthCategory.RESOURCE: _resource_issues(
            health.resource_usage, high_usage_threshold, critical_usage_threshold
        ),
    }
    for category, score in health.sub_scores().items():
        if score is not None and score < 100.0 and not by_category[category]:
            by_category[category].append(
                HealthIssue(
                    severity=Severity.INFO,
                    resource="HealthCheck",
                    name=category.value,
                    message=f"{category.value} health score is {score:.1f}/100",
                )
            )

    issues = [issue for category_issues in by_category.values() for issue in category_issues]
    issues.extend(_degraded_check_issues(health))
    issues.sort(key=_sort_key)
    logger.debug("Identified %d health issues.", len(issues))
    return issues
