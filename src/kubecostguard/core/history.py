# src/kubecostguard/core/history.py
"""
In-process rolling window of observed usage.

The monitoring loop records each finished cycle here; the next cycle reads
it for the cost trend forecast and for peak-usage rightsizing. Nothing is
persisted across process restarts.
"""

import logging
from collections import deque
from typing import Deque, Dict, List, Optional, Sequence

from kubecostguard.core.config import config
from kubecostguard.models.cost import CostReport, UtilizationSample
from kubecostguard.models.snapshot import ClusterSnapshot, ResourceQuantities

logger = logging.getLogger(__name__)


def peak_usage(
    current: Optional[ResourceQuantities], past: Sequence[ResourceQuantities] = ()
) -> Optional[ResourceQuantities]:
    """Element-wise maximum of the current and past observations; None if nothing was observed."""
    observations = list(past)
    if current is not None:
        observations.append(current)
    if not observations:
        return None
    return ResourceQuantities(
        cpu_millicores=max(o.cpu_millicores for o in observations),
        memory_bytes=max(o.memory_bytes for o in observations),
        storage_bytes=max(o.storage_bytes for o in observations),
    )


class UsageHistory:
    """Bounded per-cluster, per-node and per-pod usage observations."""

    def __init__(self, window_size: Optional[int] = None):
        self.window_size = window_size if window_size is not None else config.HISTORY_WINDOW_SIZE
        self._cluster: Deque[UtilizationSample] = deque(maxlen=self.window_size)
        self._nodes: Dict[str, Deque[ResourceQuantities]] = {}
        self._pods: Dict[str, Deque[ResourceQuantities]] = {}

    def record(self, snapshot: ClusterSnapshot, costs: Optional[CostReport] = None):
        """Adds the observations of a completed cycle. Objects no longer in the snapshot are forgotten."""
        if costs is not None and costs.cluster_utilization is not None:
            utilization = costs.cluster_utilization
            if utilization.cpu is not None and utilization.memory is not None:
                self._cluster.append(
                    UtilizationSample(timestamp=snapshot.timestamp, cpu=utilization.cpu, memory=utilization.memory)
                )

        self._nodes = self._merge(self._nodes, {n.name: n.usage for n in snapshot.nodes or ()})
        self._pods = self._merge(self._pods, {p.key: p.usage for p in snapshot.pods or ()})
        logger.debug(
            "Usage history: %d cluster sample(s), %d node(s), %d pod(s)",
            len(self._cluster),
            len(self._nodes),
            len(self._pods),
        )

    def _merge(
        self, existing: Dict[str, Deque[ResourceQuantities]], observed: Dict[str, Optional[ResourceQuantities]]
    ) -> Dict[str, Deque[ResourceQuantities]]:
        merged = {}
        for key, usage in observed.items():
            window = existing.get(key) or deque(maxlen=self.window_size)
            if usage is not None:
                window.append(usage)
            merged[key] = window
        return merged

    def cluster_samples(self) -> List[UtilizationSample]:
        return list(self._cluster)

    def node_usage(self, node_name: str) -> List[ResourceQuantities]:
        return list(self._nodes.get(node_name, ()))

    def pod_usage(self, pod_key: str) -> List[ResourceQuantities]:
        return list(self._pods.get(pod_key, ()))
