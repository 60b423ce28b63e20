# src/kubecostguard/advisor/optimizer.py

import logging
import math
from typing import List, Optional, Set

from kubecostguard.core.config import config
from kubecostguard.core.history import UsageHistory, peak_usage
from kubecostguard.cost.aggregator import resource_value
from kubecostguard.models.cost import CostReport
from kubecostguard.models.health import ClusterHealth
from kubecostguard.models.recommendations import OptimizationReport, Recommendation, RecommendationType
from kubecostguard.models.snapshot import TERMINAL_PHASES, ClusterSnapshot, ResourceQuantities

logger = logging.getLogger(__name__)


def _fraction(used: int, total: int) -> Optional[float]:
    return used / total if total > 0 else None


class ResourceOptimizer:
    """
    Derives rightsizing and idle-resource recommendations from the health
    and cost outputs of a cycle.
    """

    def __init__(
        self,
        low_utilization_threshold: Optional[float] = None,
        idle_threshold: Optional[float] = None,
        headroom: Optional[float] = None,
        hours_per_month: Optional[float] = None,
    ):
        """
        Initializes the optimizer with specific thresholds.

        :param low_utilization_threshold: Peak utilization (0.0 to 1.0) below
                                          which a node or pod is oversized.
        :param idle_threshold: Peak utilization below which a node or pod is
                               considered idle.
        :param headroom: Fraction added on top of peak usage when sizing the
                         recommended allocation.
        """
        self.low_utilization_threshold = (
            low_utilization_threshold if low_utilization_threshold is not None else config.LOW_UTILIZATION_THRESHOLD
        )
        self.idle_threshold = idle_threshold if idle_threshold is not None else config.IDLE_UTILIZATION_THRESHOLD
        self.headroom = headroom if headroom is not None else config.RIGHTSIZING_HEADROOM
        self.hours_per_month = hours_per_month if hours_per_month is not None else config.HOURS_PER_MONTH
        logger.debug(
            "ResourceOptimizer initialized with thresholds: Low=%s Idle=%s Headroom=%s",
            self.low_utilization_threshold,
            self.idle_threshold,
            self.headroom,
        )

    def generate_optimization_report(
        self,
        snapshot: ClusterSnapshot,
        health: ClusterHealth,
        costs: CostReport,
        history: Optional[UsageHistory] = None,
    ) -> OptimizationReport:
        node_recs = self.generate_node_recommendations(snapshot, health, costs, history)
        covered_nodes = {rec.name for rec in node_recs}
        pod_recs = self.generate_pod_recommendations(snapshot, costs, history, skip_nodes=covered_nodes)

        recommendations = sorted(
            node_recs + pod_recs,
            key=lambda r: (-r.potential_saving, r.resource_kind, r.namespace or "", r.name),
        )
        report = OptimizationReport(
            potential_savings=sum(r.potential_saving for r in recommendations),
            recommendations=recommendations,
        )
        logger.info(
            "Generated %d optimization recommendation(s), potential savings %.2f/month",
            len(recommendations),
            report.potential_savings,
        )
        return report

    def generate_node_recommendations(
        self,
        snapshot: ClusterSnapshot,
        health: ClusterHealth,
        costs: CostReport,
        history: Optional[UsageHistory] = None,
    ) -> List[Recommendation]:
        """Identifies nodes that are idle or significantly underutilized."""
        recommendations: List[Recommendation] = []
        not_ready = set(health.node_status.not_ready)

        for node in snapshot.nodes or ():
            node_cost = costs.node_cost(node.name)
            if node_cost is None or not node_cost.is_known or node.allocatable is None:
                continue
            # A NotReady node is idle because it is broken, not because it is oversized
            if node.name in not_ready:
                continue

            peak = peak_usage(node.usage, history.node_usage(node.name) if history else ())
            if peak is None:
                continue

            cpu = _fraction(peak.cpu_millicores, node.allocatable.cpu_millicores)
            memory = _fraction(peak.memory_bytes, node.allocatable.memory_bytes)
            known = [u for u in (cpu, memory) if u is not None]
            if not known:
                continue

            monthly = node_cost.monthly_cost
            if max(known) < self.idle_threshold:
                recommendations.append(
                    Recommendation(
                        type=RecommendationType.IDLE_NODE,
                        resource_kind="Node",
                        name=node.name,
                        description=(
                            f"Node peak utilization is {max(known):.1%}; "
                            "drain and remove it or scale the node pool down."
                        ),
                        current_monthly_cost=monthly,
                        potential_saving=monthly,
                    )
                )
                logger.debug("Generated %s recommendation for %s", RecommendationType.IDLE_NODE.value, node.name)
                continue

            if max(known) >= self.low_utilization_threshold:
                continue

            cpu_factor = min(1.0, cpu * (1 + self.headroom)) if cpu is not None else 1.0
            memory_factor = min(1.0, memory * (1 + self.headroom)) if memory is not None else 1.0
            resized_hourly = (
                node_cost.cpu_cost * cpu_factor
                + node_cost.memory_cost * memory_factor
                + node_cost.storage_cost
                + node_cost.network_cost
                + node_cost.gpu_cost
            )
            saving = (node_cost.hourly_cost - resized_hourly) * self.hours_per_month
            if saving <= 0:
                continue
            recommendations.append(
                Recommendation(
                    type=RecommendationType.RIGHTSIZE_NODE,
                    resource_kind="Node",
                    name=node.name,
                    description=(
                        f"Node peak usage is {cpu or 0.0:.1%} CPU and {memory or 0.0:.1%} memory of allocatable; "
                        f"a node sized to peak plus {self.headroom:.0%} headroom would suffice."
                    ),
                    current_monthly_cost=monthly,
                    potential_saving=saving,
                )
            )
            logger.debug("Generated %s recommendation for %s", RecommendationType.RIGHTSIZE_NODE.value, node.name)

        return recommendations

    def generate_pod_recommendations(
        self,
        snapshot: ClusterSnapshot,
        costs: CostReport,
        history: Optional[UsageHistory] = None,
        skip_nodes: Optional[Set[str]] = None,
    ) -> List[Recommendation]:
        """Identifies pods whose requests are far above their peak usage."""
        recommendations: List[Recommendation] = []
        skip_nodes = skip_nodes or set()
        pod_costs = {pc.key: pc for pc in costs.pod_costs}

        for pod in snapshot.pods or ():
            if pod.phase in TERMINAL_PHASES or pod.node_name in skip_nodes:
                continue
            pod_cost = pod_costs.get(pod.key)
            # We can only rightsize pods that declare requests
            if pod_cost is None or pod.requests.is_empty():
                continue
            node_cost = costs.node_cost(pod_cost.node_name)
            if node_cost is None or node_cost.prices is None:
                continue

            peak = peak_usage(pod.usage, history.pod_usage(pod.key) if history else ())
            if peak is None:
                continue

            cpu = _fraction(peak.cpu_millicores, pod.requests.cpu_millicores)
            memory = _fraction(peak.memory_bytes, pod.requests.memory_bytes)
            known = [u for u in (cpu, memory) if u is not None]
            if not known:
                continue

            if max(known) < self.idle_threshold:
                recommendations.append(
                    Recommendation(
                        type=RecommendationType.IDLE_POD,
                        resource_kind="Pod",
                        namespace=pod.namespace,
                        name=pod.name,
                        description=(
                            f"Pod peak usage is {max(known):.1%} of its requests. "
                            "This may be an idle or 'zombie' workload."
                        ),
                        current_monthly_cost=pod_cost.monthly_cost,
                        potential_saving=pod_cost.monthly_cost,
                    )
                )
                logger.debug("Generated %s recommendation for %s", RecommendationType.IDLE_POD.value, pod.key)
                continue

            if max(known) >= self.low_utilization_threshold:
                continue

            resized = self._resized_requests(pod.requests, peak)
            current_value = resource_value(pod.requests, node_cost.prices)
            if current_value <= 0:
                continue
            saving = pod_cost.monthly_cost * (1 - resource_value(resized, node_cost.prices) / current_value)
            if saving <= 0:
                continue
            recommendations.append(
                Recommendation(
                    type=RecommendationType.RIGHTSIZE_POD,
                    resource_kind="Pod",
                    namespace=pod.namespace,
                    name=pod.name,
                    description=(
                        f"Pod is only using {cpu or 0.0:.1%} of its requested {pod.requests.cpu_millicores}m CPU "
                        f"and {memory or 0.0:.1%} of its requested memory; reduce requests to "
                        f"{resized.cpu_millicores}m CPU and {resized.memory_bytes // (1024 * 1024)}Mi memory."
                    ),
                    current_monthly_cost=pod_cost.monthly_cost,
                    potential_saving=saving,
                )
            )
            logger.debug("Generated %s recommendation for %s", RecommendationType.RIGHTSIZE_POD.value, pod.key)

        return recommendations

    def _resized_requests(self, requests: ResourceQuantities, peak: ResourceQuantities) -> ResourceQuantities:
        factor = 1 + self.headroom
        return ResourceQuantities(
            cpu_millicores=min(requests.cpu_millicores, math.ceil(peak.cpu_millicores * factor)),
            memory_bytes=min(requests.memory_bytes, math.ceil(peak.memory_bytes * factor)),
            storage_bytes=requests.storage_bytes,
            gpu_count=requests.gpu_count,
        )
