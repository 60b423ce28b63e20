# src/kubecostguard/core/telemetry.py
"""OpenTelemetry setup and the per-cycle gauges of KubeCostGuard."""

import logging
from typing import Optional

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from kubecostguard.core.config import config
from kubecostguard.models.cost import CostReport
from kubecostguard.models.health import ClusterHealth

logger = logging.getLogger(__name__)


def initialize_telemetry(endpoint: Optional[str] = None):
    """
    Configures the TracerProvider and MeterProvider.
    Data is exported via OTLP/HTTP to ``endpoint`` (OTEL_EXPORTER_OTLP_ENDPOINT by default).
    """
    endpoint = endpoint or config.OTEL_EXPORTER_OTLP_ENDPOINT
    resource = Resource(attributes={SERVICE_NAME: "kubecostguard"})

    tracer_provider = TracerProvider(resource=resource)
    tracer_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=f"{endpoint}/v1/traces")))
    trace.set_tracer_provider(tracer_provider)

    metric_reader = PeriodicExportingMetricReader(OTLPMetricExporter(endpoint=f"{endpoint}/v1/metrics"))
    metrics.set_meter_provider(MeterProvider(resource=resource, metric_readers=[metric_reader]))
    logger.info("OpenTelemetry initialized. Exporting to: %s", endpoint)


# Proxies: they start recording once initialize_telemetry installs the providers
tracer = trace.get_tracer("kubecostguard.tracer")
meter = metrics.get_meter("kubecostguard.meter")


class MetricsExporter:
    """Publishes the health and cost results of a cycle as gauges."""

    def __init__(self, otel_meter=None):
        source = otel_meter if otel_meter is not None else meter
        self.node_ready = source.create_gauge(
            "kubecostguard_node_ready", description="1 if the node is Ready, 0 otherwise."
        )
        self.pod_status = source.create_gauge(
            "kubecostguard_pod_status", description="Number of pods per namespace and phase."
        )
        self.namespace_resource_usage = source.create_gauge(
            "kubecostguard_namespace_resource_usage",
            unit="%",
            description="Namespace usage relative to its requests.",
        )
        self.namespace_cost_per_hour = source.create_gauge(
            "kubecostguard_namespace_cost_per_hour", description="Hourly cost attributed to the namespace."
        )
        self.resource_efficiency_ratio = source.create_gauge(
            "kubecostguard_resource_efficiency_ratio", description="Namespace CPU usage divided by CPU requests."
        )
        self.cluster_health_score = source.create_gauge(
            "kubecostguard_cluster_health_score", description="Composite cluster health score (0-100)."
        )

    def record(self, health: Optional[ClusterHealth], costs: Optional[CostReport]):
        if health is not None:
            self._record_health(health)
        if costs is not None:
            self._record_costs(costs)

    def _record_health(self, health: ClusterHealth):
        for node, conditions in health.node_status.node_conditions.items():
            self.node_ready.set(1 if "Ready" in conditions else 0, {"node": node})

        for namespace, ns_health in health.namespace_health.items():
            pods = ns_health.pod_status
            phases = {
                "Running": pods.running_pods,
                "Pending": pods.pending_pods,
                "Succeeded": pods.succeeded_pods,
                "Failed": pods.failed_pods,
                "Unknown": pods.unknown_pods,
            }
            for phase, count in phases.items():
                self.pod_status.set(count, {"namespace": namespace, "phase": phase})
            usage = ns_health.resource_usage
            if usage is None:
                continue
            # unknown percentages are skipped, never exported as 0
            for resource, percent in (("cpu", usage.cpu_usage_percent), ("memory", usage.memory_usage_percent)):
                if percent is not None:
                    self.namespace_resource_usage.set(percent, {"namespace": namespace, "resource": resource})

        self.cluster_health_score.set(health.health_score)

    def _record_costs(self, costs: CostReport):
        for ns_cost in costs.namespace_costs:
            self.namespace_cost_per_hour.set(ns_cost.hourly_cost, {"namespace": ns_cost.namespace})
            if ns_cost.cpu_efficiency is not None:
                self.resource_efficiency_ratio.set(ns_cost.cpu_efficiency, {"namespace": ns_cost.namespace})
