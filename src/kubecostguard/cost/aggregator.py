# src/kubecostguard/cost/aggregator.py
"""
Computes node costs from resolved prices and attributes them to pods and
namespaces.

Each node's cost is split across its resident pods by share weights that
sum to one, so the pods on a node add up to the node's cost by construction.
"""

import logging
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Tuple

from kubecostguard.core.config import config
from kubecostguard.core.exceptions import SnapshotError
from kubecostguard.cost.forecast import forecast_monthly_cost
from kubecostguard.models.cost import (
    AttributionBasis,
    CostReport,
    NamespaceCost,
    NodeCost,
    PodCost,
    ResolvedPrices,
    Utilization,
    UtilizationSample,
)
from kubecostguard.models.snapshot import TERMINAL_PHASES, ClusterSnapshot, NodeInfo, PodInfo, ResourceQuantities
from kubecostguard.pricing.config import PricingConfig
from kubecostguard.pricing.resolver import PricingResolver

logger = logging.getLogger(__name__)

GIB = 1024**3


def resource_value(quantities: ResourceQuantities, prices: ResolvedPrices) -> float:
    """Hourly dollar value of an amount of CPU, memory, storage and GPUs."""
    return (
        quantities.cpu_millicores / 1000.0 * prices.cpu
        + quantities.memory_bytes / GIB * prices.memory
        + quantities.storage_bytes / GIB * prices.storage
        + quantities.gpu_count * prices.gpu
    )


def _ratio(used: int, total: int) -> Optional[float]:
    return used / total if total > 0 else None


def node_utilization(node: NodeInfo) -> Utilization:
    if node.usage is None or node.allocatable is None:
        return Utilization()
    return Utilization(
        cpu=_ratio(node.usage.cpu_millicores, node.allocatable.cpu_millicores),
        memory=_ratio(node.usage.memory_bytes, node.allocatable.memory_bytes),
        storage=_ratio(node.usage.storage_bytes, node.allocatable.storage_bytes),
    )


def attribution_weights(pods: Sequence[PodInfo], prices: ResolvedPrices) -> List[Tuple[float, AttributionBasis]]:
    """
    Share of the node cost for each resident pod, in input order.

    A pod is weighted by the value of its requests, else of its observed
    usage. Pods with neither take the mean weight of the others. When no pod
    carries a usable weight the node cost is split equally.
    """
    if not pods:
        return []

    weights: List[Optional[float]] = []
    bases: List[AttributionBasis] = []
    for pod in pods:
        if not pod.requests.is_empty():
            weights.append(resource_value(pod.requests, prices))
            bases.append(AttributionBasis.REQUEST)
        elif pod.usage is not None and not pod.usage.is_empty():
            weights.append(resource_value(pod.usage, prices))
            bases.append(AttributionBasis.USAGE)
        else:
            weights.append(None)
            bases.append(AttributionBasis.NEIGHBOUR_MEAN)

    known = [w for w in weights if w is not None]
    if not known or sum(known) <= 0:
        share = 1.0 / len(pods)
        return [(share, AttributionBasis.EQUAL) for _ in pods]

    mean = sum(known) / len(known)
    filled = [w if w is not None else mean for w in weights]
    total = sum(filled)
    return [(w / total, basis) for w, basis in zip(filled, bases)]


class CostAggregator:
    """Computes NodeCost, PodCost and NamespaceCost collections for a snapshot."""

    def __init__(
        self,
        pricing: PricingConfig,
        hours_per_month: Optional[float] = None,
        forecast_horizon_hours: Optional[float] = None,
    ):
        self.resolver = PricingResolver(pricing)
        self.hours_per_month = hours_per_month if hours_per_month is not None else config.HOURS_PER_MONTH
        self.forecast_horizon_hours = (
            forecast_horizon_hours if forecast_horizon_hours is not None else config.FORECAST_HORIZON_HOURS
        )

    def compute_costs(
        self, snapshot: ClusterSnapshot, history: Optional[Sequence[UtilizationSample]] = None
    ) -> CostReport:
        """
        Computes a fresh cost report.

        ``history`` is the recent cluster utilization window used for the
        trend forecast; the current snapshot's sample is appended to it.

        Raises:
            SnapshotError: If the snapshot holds no node or pod enumeration.
        """
        if snapshot.nodes is None:
            raise SnapshotError("cost computation failed: nodes could not be enumerated")
        if snapshot.pods is None:
            raise SnapshotError("cost computation failed: pods could not be enumerated")

        resident: Dict[str, List[PodInfo]] = defaultdict(list)
        for pod in snapshot.pods:
            if pod.node_name and pod.phase not in TERMINAL_PHASES:
                resident[pod.node_name].append(pod)

        report = CostReport(timestamp=snapshot.timestamp)
        attributed_nodes = set()

        for node in snapshot.nodes:
            node_cost = self.compute_node_cost(node)
            if not node_cost.is_known:
                report.unknown_nodes.append(node.name)
                report.node_costs.append(node_cost)
                continue

            pods = resident.get(node.name, [])
            pod_costs = self.attribute(node_cost, pods)
            if not pods:
                node_cost.unallocated_hourly_cost = node_cost.hourly_cost
            report.node_costs.append(node_cost)
            report.pod_costs.extend(pod_costs)
            report.total_hourly_cost += node_cost.hourly_cost
            attributed_nodes.add(node.name)

        report.total_monthly_cost = report.total_hourly_cost * self.hours_per_month
        report.unattributed_pods = [
            pod.key
            for pod in snapshot.pods
            if pod.phase not in TERMINAL_PHASES and pod.node_name not in attributed_nodes
        ]
        report.namespace_costs = self._namespace_costs(report.pod_costs, snapshot.pods)
        report.cluster_utilization = self._cluster_utilization(snapshot.nodes)

        if report.unknown_nodes:
            logger.warning("Cost unknown for %d node(s): %s", len(report.unknown_nodes), report.unknown_nodes)

        samples = list(history or [])
        current = self.utilization_sample(report)
        if current is not None:
            samples.append(current)
        report.forecast = forecast_monthly_cost(samples, report.total_monthly_cost, self.forecast_horizon_hours)

        logger.info(
            "Computed costs: %d node(s), %d pod(s), %d namespace(s), %.4f/hour",
            len(report.node_costs),
            len(report.pod_costs),
            len(report.namespace_costs),
            report.total_hourly_cost,
        )
        return report

    def compute_node_cost(self, node: NodeInfo) -> NodeCost:
        prices = self.resolver.resolve(node)
        node_cost = NodeCost(
            node_name=node.name,
            instance_type=node.instance_type,
            region=node.region,
            prices=prices,
            utilization=node_utilization(node),
        )
        if prices.gpu_unpriced:
            node_cost.flags.append(f"GPU model '{node.gpu_model}' has no price; GPU cost counted as zero")

        if node.allocatable is None:
            node_cost.flags.append("allocatable resources unavailable; cost unknown")
            return node_cost

        node_cost.cpu_cost = node.allocatable.cpu_millicores / 1000.0 * prices.cpu
        node_cost.memory_cost = node.allocatable.memory_bytes / GIB * prices.memory
        node_cost.storage_cost = node.allocatable.storage_bytes / GIB * prices.storage
        node_cost.network_cost = prices.network
        node_cost.gpu_cost = node.gpu_count * prices.gpu
        node_cost.hourly_cost = (
            node_cost.cpu_cost
            + node_cost.memory_cost
            + node_cost.storage_cost
            + node_cost.network_cost
            + node_cost.gpu_cost
        )
        node_cost.monthly_cost = node_cost.hourly_cost * self.hours_per_month
        return node_cost

    def attribute(self, node_cost: NodeCost, pods: Sequence[PodInfo]) -> List[PodCost]:
        """Distributes a known node cost over its resident pods."""
        pod_costs = []
        for pod, (share, basis) in zip(pods, attribution_weights(pods, node_cost.prices)):
            hourly = node_cost.hourly_cost * share
            pod_costs.append(
                PodCost(
                    namespace=pod.namespace,
                    pod_name=pod.name,
                    node_name=node_cost.node_name,
                    hourly_cost=hourly,
                    monthly_cost=hourly * self.hours_per_month,
                    share=share,
                    basis=basis,
                )
            )
        return pod_costs

    @staticmethod
    def _namespace_costs(pod_costs: Sequence[PodCost], pods: Sequence[PodInfo]) -> List[NamespaceCost]:
        by_namespace: Dict[str, List[PodCost]] = defaultdict(list)
        for pod_cost in pod_costs:
            by_namespace[pod_cost.namespace].append(pod_cost)

        pods_by_key = {pod.key: pod for pod in pods}
        result = []
        for namespace in sorted(by_namespace):
            items = by_namespace[namespace]
            cpu_used = 0
            cpu_requested = 0
            measured = False
            for item in items:
                pod = pods_by_key.get(item.key)
                if pod is None or pod.usage is None:
                    continue
                measured = True
                cpu_used += pod.usage.cpu_millicores
                cpu_requested += pod.requests.cpu_millicores
            result.append(
                NamespaceCost(
                    namespace=namespace,
                    hourly_cost=sum(i.hourly_cost for i in items),
                    monthly_cost=sum(i.monthly_cost for i in items),
                    pod_count=len(items),
                    cpu_efficiency=(cpu_used / cpu_requested) if measured and cpu_requested > 0 else None,
                )
            )
        return result

    @staticmethod
    def _cluster_utilization(nodes: Sequence[NodeInfo]) -> Optional[Utilization]:
        measured = [n for n in nodes if n.usage is not None and n.allocatable is not None]
        if not measured:
            return None
        used = ResourceQuantities(
            cpu_millicores=sum(n.usage.cpu_millicores for n in measured),
            memory_bytes=sum(n.usage.memory_bytes for n in measured),
            storage_bytes=sum(n.usage.storage_bytes for n in measured),
        )
        total = ResourceQuantities(
            cpu_millicores=sum(n.allocatable.cpu_millicores for n in measured),
            memory_bytes=sum(n.allocatable.memory_bytes for n in measured),
            storage_bytes=sum(n.allocatable.storage_bytes for n in measured),
        )
        return Utilization(
            cpu=_ratio(used.cpu_millicores, total.cpu_millicores),
            memory=_ratio(used.memory_bytes, total.memory_bytes),
            storage=_ratio(used.storage_bytes, total.storage_bytes),
        )

    @staticmethod
    def utilization_sample(report: CostReport) -> Optional[UtilizationSample]:
        utilization = report.cluster_utilization
        if utilization is None or utilization.cpu is None or utilization.memory is None:
            return None
        return UtilizationSample(timestamp=report.timestamp, cpu=utilization.cpu, memory=utilization.memory)
