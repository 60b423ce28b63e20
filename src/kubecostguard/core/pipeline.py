# src/kubecostguard/core/pipeline.py
"""
One evaluation cycle.

The snapshot is collected once, then the health evaluator and the cost
aggregator run concurrently over it. Both must finish before the advisor
runs. Results of a finished cycle are exported and recorded in the usage
history that the next cycle uses for forecasting and rightsizing.
"""

import asyncio
import logging
from typing import Optional

from pydantic import BaseModel

from kubecostguard.advisor.cleanup import CleanupAdvisor
from kubecostguard.advisor.optimizer import ResourceOptimizer
from kubecostguard.collectors.base_collector import BaseCollector
from kubecostguard.core.history import UsageHistory
from kubecostguard.core.telemetry import MetricsExporter, tracer
from kubecostguard.cost.aggregator import CostAggregator
from kubecostguard.health.evaluator import HealthEvaluator
from kubecostguard.models.cost import CostReport
from kubecostguard.models.health import ClusterHealth
from kubecostguard.models.recommendations import CleanupResult, OptimizationReport
from kubecostguard.models.snapshot import ClusterSnapshot

logger = logging.getLogger(__name__)


class CycleResult(BaseModel):
    snapshot: ClusterSnapshot
    health: ClusterHealth
    costs: CostReport
    optimization: OptimizationReport
    cleanup: CleanupResult


class EvaluationCycle:
    """Wires the collector, the evaluators and the advisor into a single run."""

    def __init__(
        self,
        collector: Optional[BaseCollector],
        health_evaluator: HealthEvaluator,
        cost_aggregator: CostAggregator,
        optimizer: Optional[ResourceOptimizer] = None,
        cleanup_advisor: Optional[CleanupAdvisor] = None,
        history: Optional[UsageHistory] = None,
        metrics_exporter: Optional[MetricsExporter] = None,
    ):
        self.collector = collector
        self.health_evaluator = health_evaluator
        self.cost_aggregator = cost_aggregator
        self.optimizer = optimizer or ResourceOptimizer()
        self.cleanup_advisor = cleanup_advisor or CleanupAdvisor()
        self.history = history if history is not None else UsageHistory()
        self.metrics_exporter = metrics_exporter

    async def evaluate(self, snapshot: ClusterSnapshot) -> CycleResult:
        """
        Runs health, cost, optimization and dry-run cleanup over a snapshot.

        Raises:
            SnapshotError: If nodes or pods are missing from the snapshot.
        """
        health, costs = await asyncio.gather(
            asyncio.to_thread(self.health_evaluator.evaluate, snapshot),
            asyncio.to_thread(self.cost_aggregator.compute_costs, snapshot, self.history.cluster_samples()),
        )
        optimization = self.optimizer.generate_optimization_report(snapshot, health, costs, self.history)
        cleanup = await self.cleanup_advisor.run(snapshot, dry_run=True)
        return CycleResult(
            snapshot=snapshot, health=health, costs=costs, optimization=optimization, cleanup=cleanup
        )

    async def run(self) -> CycleResult:
        """Collects a fresh snapshot and evaluates it. SnapshotError aborts the cycle."""
        with tracer.start_as_current_span("evaluation_cycle"):
            logger.info("Starting evaluation cycle.")
            snapshot = await self.collector.collect()
            result = await self.evaluate(snapshot)

            if self.metrics_exporter is not None:
                self.metrics_exporter.record(result.health, result.costs)
            self.history.record(snapshot, result.costs)

            logger.info(
                "Evaluation cycle finished: health=%s cost=%.2f/month savings=%.2f/month cleanup=%d",
                result.health.health_score,
                result.costs.total_monthly_cost,
                result.optimization.potential_savings,
                len(result.cleanup.recommendations),
            )
            return result
