# src/kubecostguard/collectors/snapshot_collector.py
"""
Builds a ClusterSnapshot from the Kubernetes API.

Nodes and pods are mandatory: if either cannot be listed the snapshot is
unusable and SnapshotError is raised. Every other source is optional; a
failure there is logged and the corresponding snapshot field is left as None
so that the dependent checks report "unknown".
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from kubernetes_asyncio.client.rest import ApiException

from kubecostguard.core.exceptions import SnapshotError
from kubecostguard.core.k8s_client import (
    get_apps_v1_api,
    get_core_v1_api,
    get_custom_objects_api,
    get_networking_v1_api,
)
from kubecostguard.models.snapshot import (
    ApiServerProbe,
    ClusterSnapshot,
    ConfigMapInfo,
    ContainerState,
    DeploymentInfo,
    EndpointsInfo,
    NodeInfo,
    PodInfo,
    PodPhase,
    ResourceQuantities,
    ServiceInfo,
)
from kubecostguard.utils.k8s_utils import (
    parse_cpu_request,
    parse_memory_request,
    parse_quantity,
    parse_storage_request,
)

from .base_collector import BaseCollector

logger = logging.getLogger(__name__)

INGRESS_SELECTOR = "app in (ingress-nginx,traefik,istio-ingressgateway)"
GPU_RESOURCE = "nvidia.com/gpu"
GPU_MODEL_LABELS = ("nvidia.com/gpu.product", "cloud.google.com/gke-accelerator")
METRICS_GROUP = "metrics.k8s.io"
METRICS_VERSION = "v1beta1"


def _first_label(labels: Dict[str, str], *keys: str) -> Optional[str]:
    for key in keys:
        if labels.get(key):
            return labels[key]
    return None


def _quantities(resources: Optional[dict]) -> ResourceQuantities:
    resources = resources or {}
    return ResourceQuantities(
        cpu_millicores=max(0, parse_cpu_request(resources.get("cpu"))),
        memory_bytes=max(0, parse_memory_request(resources.get("memory"))),
        storage_bytes=max(0, parse_storage_request(resources.get("ephemeral-storage"))),
        gpu_count=max(0, int(parse_quantity(resources.get(GPU_RESOURCE)))),
    )


def _sum_quantities(items: Iterable[ResourceQuantities]) -> ResourceQuantities:
    cpu = memory = storage = gpus = 0
    for q in items:
        cpu += q.cpu_millicores
        memory += q.memory_bytes
        storage += q.storage_bytes
        gpus += q.gpu_count
    return ResourceQuantities(cpu_millicores=cpu, memory_bytes=memory, storage_bytes=storage, gpu_count=gpus)


def _to_phase(value: Optional[str]) -> PodPhase:
    try:
        return PodPhase(value)
    except ValueError:
        return PodPhase.UNKNOWN


def config_map_references(pod) -> Tuple[str, ...]:
    """Names of the ConfigMaps a pod references through volumes, env or envFrom."""
    spec = pod.spec
    if spec is None:
        return ()

    refs = set()
    for volume in spec.volumes or []:
        if volume.config_map is not None and volume.config_map.name:
            refs.add(volume.config_map.name)
        if volume.projected is not None:
            for source in volume.projected.sources or []:
                if source.config_map is not None and source.config_map.name:
                    refs.add(source.config_map.name)

    for container in list(spec.init_containers or []) + list(spec.containers or []):
        for env in container.env or []:
            ref = env.value_from.config_map_key_ref if env.value_from is not None else None
            if ref is not None and ref.name:
                refs.add(ref.name)
        for env_from in container.env_from or []:
            if env_from.config_map_ref is not None and env_from.config_map_ref.name:
                refs.add(env_from.config_map_ref.name)

    return tuple(sorted(refs))


class SnapshotCollector(BaseCollector):
    """Collects everything one evaluation cycle needs into a ClusterSnapshot."""

    def __init__(self, core_api=None, apps_api=None, networking_api=None, custom_api=None):
        self._core = core_api
        self._apps = apps_api
        self._networking = networking_api
        self._custom = custom_api

    async def _ensure_clients(self):
        """Lazily initialize the Kubernetes API clients using the centralized loader."""
        if self._core is None:
            self._core = await get_core_v1_api()
        if self._core is None:
            raise SnapshotError("Kubernetes client could not be initialized; cannot enumerate nodes and pods.")
        if self._apps is None:
            self._apps = await get_apps_v1_api()
        if self._networking is None:
            self._networking = await get_networking_v1_api()
        if self._custom is None:
            self._custom = await get_custom_objects_api()

    async def collect(self) -> ClusterSnapshot:
        """
        Reads the cluster and returns a frozen snapshot.

        Raises:
            SnapshotError: If nodes or pods cannot be listed.
        """
        await self._ensure_clients()
        timestamp = datetime.now(timezone.utc)

        try:
            node_list, pod_list = await asyncio.gather(
                self._core.list_node(watch=False),
                self._core.list_pod_for_all_namespaces(watch=False),
            )
        except ApiException as e:
            raise SnapshotError(f"Kubernetes API error while listing nodes and pods: {e}") from e
        except Exception as e:
            raise SnapshotError(f"Failed to list nodes and pods: {e}") from e

        # Timed alone so that concurrent list calls do not inflate the measured latency
        probe = await self._probe_api_server()

        (
            control_plane_pods,
            services,
            endpoints,
            network_policy_count,
            ingress_controllers,
            config_maps,
            metrics,
        ) = await asyncio.gather(
            self._optional("control-plane pods", self._collect_control_plane_pods()),
            self._optional("services", self._collect_services()),
            self._optional("endpoints", self._collect_endpoints()),
            self._optional("network policies", self._collect_network_policy_count()),
            self._optional("ingress controllers", self._collect_ingress_controllers()),
            self._optional("config maps", self._collect_config_maps()),
            self._optional("resource metrics", self._collect_usage()),
        )

        node_usage, pod_usage = metrics if metrics is not None else ({}, {})
        nodes = tuple(self._to_node(n, node_usage.get(n.metadata.name)) for n in node_list.items)
        pods = tuple(
            self._to_pod(p, pod_usage.get(f"{p.metadata.namespace}/{p.metadata.name}")) for p in pod_list.items
        )

        snapshot = ClusterSnapshot(
            timestamp=timestamp,
            nodes=nodes,
            pods=pods,
            control_plane_pods=control_plane_pods,
            api_server_probe=probe,
            services=services,
            endpoints=endpoints,
            network_policy_count=network_policy_count,
            ingress_controllers=ingress_controllers,
            config_maps=config_maps,
            metrics_available=metrics is not None,
        )
        logger.info("Collected snapshot: %d node(s), %d pod(s)", len(nodes), len(pods))
        return snapshot

    async def _optional(self, source: str, coro):
        """Awaits a secondary source; a failure leaves it unknown instead of failing the snapshot."""
        try:
            return await coro
        except Exception as e:
            logger.warning("Could not collect %s; treating them as unknown: %s", source, e)
            return None

    async def _probe_api_server(self) -> ApiServerProbe:
        start = time.perf_counter()
        try:
            await self._core.list_namespace(limit=1)
        except Exception as e:
            logger.warning("API server probe failed: %s", e)
            return ApiServerProbe(reachable=False)
        return ApiServerProbe(reachable=True, latency_ms=(time.perf_counter() - start) * 1000)

    async def _collect_control_plane_pods(self) -> Tuple[PodInfo, ...]:
        pod_list = await self._core.list_namespaced_pod(namespace="kube-system", watch=False)
        return tuple(self._to_pod(p, None) for p in pod_list.items)

    async def _collect_services(self) -> Tuple[ServiceInfo, ...]:
        service_list = await self._core.list_service_for_all_namespaces(watch=False)
        return tuple(
            ServiceInfo(
                namespace=s.metadata.namespace,
                name=s.metadata.name,
                selector=(s.spec.selector or {}) if s.spec else {},
            )
            for s in service_list.items
        )

    async def _collect_endpoints(self) -> Tuple[EndpointsInfo, ...]:
        endpoints_list = await self._core.list_endpoints_for_all_namespaces(watch=False)
        return tuple(
            EndpointsInfo(namespace=e.metadata.namespace, name=e.metadata.name, subset_count=len(e.subsets or []))
            for e in endpoints_list.items
        )

    async def _collect_network_policy_count(self) -> int:
        if self._networking is None:
            raise SnapshotError("networking API client unavailable")
        policies = await self._networking.list_network_policy_for_all_namespaces(watch=False)
        return len(policies.items)

    async def _collect_ingress_controllers(self) -> Tuple[DeploymentInfo, ...]:
        if self._apps is None:
            raise SnapshotError("apps API client unavailable")
        deployments = await self._apps.list_deployment_for_all_namespaces(label_selector=INGRESS_SELECTOR)
        return tuple(
            DeploymentInfo(
                namespace=d.metadata.namespace,
                name=d.metadata.name,
                desired_replicas=d.spec.replicas if d.spec and d.spec.replicas is not None else 1,
                ready_replicas=(d.status.ready_replicas or 0) if d.status else 0,
            )
            for d in deployments.items
        )

    async def _collect_config_maps(self) -> Tuple[ConfigMapInfo, ...]:
        cm_list = await self._core.list_config_map_for_all_namespaces(watch=False)
        return tuple(
            ConfigMapInfo(
                namespace=cm.metadata.namespace,
                name=cm.metadata.name,
                creation_timestamp=cm.metadata.creation_timestamp,
            )
            for cm in cm_list.items
        )

    async def _collect_usage(self) -> Tuple[Dict[str, ResourceQuantities], Dict[str, ResourceQuantities]]:
        """Node and pod usage from the metrics.k8s.io API, keyed by node name and "namespace/pod"."""
        if self._custom is None:
            raise SnapshotError("custom objects API client unavailable")
        node_metrics, pod_metrics = await asyncio.gather(
            self._custom.list_cluster_custom_object(group=METRICS_GROUP, version=METRICS_VERSION, plural="nodes"),
            self._custom.list_cluster_custom_object(group=METRICS_GROUP, version=METRICS_VERSION, plural="pods"),
        )

        node_usage = {
            item["metadata"]["name"]: _quantities(item.get("usage")) for item in node_metrics.get("items", [])
        }
        pod_usage = {}
        for item in pod_metrics.get("items", []):
            meta = item["metadata"]
            containers: List[dict] = item.get("containers", [])
            pod_usage[f"{meta['namespace']}/{meta['name']}"] = _sum_quantities(
                _quantities(c.get("usage")) for c in containers
            )
        return node_usage, pod_usage

    def _to_node(self, node, usage: Optional[ResourceQuantities]) -> NodeInfo:
        labels = node.metadata.labels or {}
        status = node.status
        allocatable = status.allocatable if status and status.allocatable else None
        conditions = tuple(
            c.type for c in (status.conditions or [] if status else []) if c.status == "True"
        )

        gpu_count = 0
        if allocatable and allocatable.get(GPU_RESOURCE):
            gpu_count = int(parse_quantity(allocatable[GPU_RESOURCE]))

        return NodeInfo(
            name=node.metadata.name,
            instance_type=_first_label(labels, "node.kubernetes.io/instance-type", "beta.kubernetes.io/instance-type"),
            region=_first_label(labels, "topology.kubernetes.io/region", "failure-domain.beta.kubernetes.io/region"),
            zone=_first_label(labels, "topology.kubernetes.io/zone", "failure-domain.beta.kubernetes.io/zone"),
            allocatable=_quantities(allocatable) if allocatable else None,
            gpu_count=max(0, gpu_count),
            gpu_model=_first_label(labels, *GPU_MODEL_LABELS) if gpu_count else None,
            conditions=conditions,
            usage=usage,
        )

    def _to_pod(self, pod, usage: Optional[ResourceQuantities]) -> PodInfo:
        spec = pod.spec
        status = pod.status
        requests = _sum_quantities(
            _quantities(c.resources.requests if c.resources else None) for c in (spec.containers or [] if spec else [])
        )
        containers = tuple(
            ContainerState(
                name=cs.name,
                restart_count=cs.restart_count or 0,
                waiting_reason=(cs.state.waiting.reason if cs.state and cs.state.waiting else None),
            )
            for cs in ((status.container_statuses or []) if status else [])
        )
        return PodInfo(
            namespace=pod.metadata.namespace,
            name=pod.metadata.name,
            node_name=spec.node_name if spec else None,
            phase=_to_phase(status.phase if status else None),
            labels=pod.metadata.labels or {},
            containers=containers,
            requests=requests,
            usage=usage,
            config_map_refs=config_map_references(pod),
            creation_timestamp=pod.metadata.creation_timestamp,
        )

    async def close(self):
        """Close the Kubernetes API clients if they exist."""
        for api in (self._core, self._apps, self._networking, self._custom):
            if api is not None:
                await api.api_client.close()
        self._core = self._apps = self._networking = self._custom = None
        logger.debug("SnapshotCollector Kubernetes clients closed.")
