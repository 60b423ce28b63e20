# tests/collectors/test_snapshot_collector.py

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from kubernetes_asyncio.client import models as k8s
from kubernetes_asyncio.client.rest import ApiException

from kubecostguard.collectors.snapshot_collector import SnapshotCollector, config_map_references
from kubecostguard.core.exceptions import SnapshotError
from kubecostguard.models.snapshot import PodPhase

CREATED = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _node(name, ready="True", labels=None, allocatable=None):
    return k8s.V1Node(
        metadata=k8s.V1ObjectMeta(name=name, labels=labels or {}),
        status=k8s.V1NodeStatus(
            allocatable=allocatable or {"cpu": "4", "memory": "16Gi", "ephemeral-storage": "100Gi"},
            conditions=[
                k8s.V1NodeCondition(type="Ready", status=ready),
                k8s.V1NodeCondition(type="MemoryPressure", status="False"),
            ],
        ),
    )


def _pod(name, namespace="default", phase="Running", node="node-a", containers=None, volumes=None, statuses=None):
    return k8s.V1Pod(
        metadata=k8s.V1ObjectMeta(name=name, namespace=namespace, labels={"app": name}, creation_timestamp=CREATED),
        spec=k8s.V1PodSpec(
            node_name=node,
            containers=containers
            or [
                k8s.V1Container(
                    name="app", resources=k8s.V1ResourceRequirements(requests={"cpu": "250m", "memory": "512Mi"})
                )
            ],
            volumes=volumes,
        ),
        status=k8s.V1PodStatus(phase=phase, container_statuses=statuses),
    )


def _container_status(name, restarts=0, waiting=None):
    state = k8s.V1ContainerState(waiting=k8s.V1ContainerStateWaiting(reason=waiting)) if waiting else None
    return k8s.V1ContainerStatus(
        name=name, image="nginx", image_id="sha256:abc", ready=waiting is None, restart_count=restarts, state=state
    )


@pytest.fixture
def core_api():
    """Mock of the Kubernetes CoreV1Api with a two-node cluster."""
    api = MagicMock()
    gpu_node = _node(
        "node-b",
        labels={
            "node.kubernetes.io/instance-type": "g4dn.xlarge",
            "topology.kubernetes.io/region": "us-west-2",
            "nvidia.com/gpu.product": "nvidia-tesla-t4",
        },
        allocatable={"cpu": "3920m", "memory": "15Gi", "nvidia.com/gpu": "1"},
    )
    api.list_node = AsyncMock(return_value=k8s.V1NodeList(items=[_node("node-a"), gpu_node]))
    api.list_pod_for_all_namespaces = AsyncMock(
        return_value=k8s.V1PodList(
            items=[
                _pod("web", statuses=[_container_status("app", restarts=7, waiting="CrashLoopBackOff")]),
                _pod(
                    "job",
                    namespace="batch",
                    phase="Succeeded",
                    node="node-b",
                    containers=[
                        k8s.V1Container(
                            name="trainer",
                            resources=k8s.V1ResourceRequirements(requests={"cpu": "1", "nvidia.com/gpu": "1"}),
                        ),
                        k8s.V1Container(
                            name="logger", resources=k8s.V1ResourceRequirements(requests={"cpu": "100m"})
                        ),
                    ],
                ),
            ]
        )
    )
    api.list_namespaced_pod = AsyncMock(
        return_value=k8s.V1PodList(items=[_pod("kube-apiserver-cp", namespace="kube-system", node="cp")])
    )
    api.list_namespace = AsyncMock(return_value=k8s.V1NamespaceList(items=[]))
    api.list_service_for_all_namespaces = AsyncMock(
        return_value=k8s.V1ServiceList(
            items=[
                k8s.V1Service(
                    metadata=k8s.V1ObjectMeta(name="web", namespace="default"),
                    spec=k8s.V1ServiceSpec(selector={"app": "web"}),
                )
            ]
        )
    )
    api.list_endpoints_for_all_namespaces = AsyncMock(
        return_value=k8s.V1EndpointsList(
            items=[
                k8s.V1Endpoints(
                    metadata=k8s.V1ObjectMeta(name="web", namespace="default"), subsets=[k8s.V1EndpointSubset()]
                )
            ]
        )
    )
    api.list_config_map_for_all_namespaces = AsyncMock(
        return_value=k8s.V1ConfigMapList(
            items=[
                k8s.V1ConfigMap(
                    metadata=k8s.V1ObjectMeta(name="settings", namespace="default", creation_timestamp=CREATED)
                )
            ]
        )
    )
    api.api_client.close = AsyncMock()
    return api


@pytest.fixture
def apps_api():
    api = MagicMock()
    deployment = MagicMock()
    deployment.metadata.namespace = "ingress-nginx"
    deployment.metadata.name = "ingress-nginx-controller"
    deployment.spec.replicas = 2
    deployment.status.ready_replicas = 1
    api.list_deployment_for_all_namespaces = AsyncMock(return_value=MagicMock(items=[deployment]))
    api.api_client.close = AsyncMock()
    return api


@pytest.fixture
def networking_api():
    api = MagicMock()
    api.list_network_policy_for_all_namespaces = AsyncMock(return_value=MagicMock(items=[MagicMock(), MagicMock()]))
    api.api_client.close = AsyncMock()
    return api


@pytest.fixture
def custom_api():
    api = MagicMock()

    async def _metrics(group, version, plural):
        if plural == "nodes":
            return {"items": [{"metadata": {"name": "node-a"}, "usage": {"cpu": "1500m", "memory": "8Gi"}}]}
        return {
            "items": [
                {
                    "metadata": {"name": "web", "namespace": "default"},
                    "containers": [
                        {"name": "app", "usage": {"cpu": "120m", "memory": "300Mi"}},
                        {"name": "sidecar", "usage": {"cpu": "5m", "memory": "20Mi"}},
                    ],
                }
            ]
        }

    api.list_cluster_custom_object = AsyncMock(side_effect=_metrics)
    api.api_client.close = AsyncMock()
    return api


@pytest.fixture
def collector(core_api, apps_api, networking_api, custom_api):
    return SnapshotCollector(core_api=core_api, apps_api=apps_api, networking_api=networking_api, custom_api=custom_api)


async def test_collect_builds_complete_snapshot(collector):
    snapshot = await collector.collect()

    assert snapshot.metrics_available
    assert [n.name for n in snapshot.nodes] == ["node-a", "node-b"]
    node_a, node_b = snapshot.nodes
    assert node_a.is_ready
    assert node_a.conditions == ("Ready",)
    assert node_a.allocatable.cpu_millicores == 4000
    assert node_a.allocatable.memory_bytes == 16 * 1024**3
    assert node_a.usage.cpu_millicores == 1500
    assert node_b.instance_type == "g4dn.xlarge"
    assert node_b.region == "us-west-2"
    assert node_b.gpu_count == 1
    assert node_b.gpu_model == "nvidia-tesla-t4"
    assert node_b.usage is None

    web = snapshot.pods[0]
    assert web.key == "default/web"
    assert web.requests.cpu_millicores == 250
    assert web.usage.cpu_millicores == 125
    assert web.usage.memory_bytes == 320 * 1024**2
    assert web.is_crash_looping
    assert web.max_restart_count() == 7
    assert web.requests.gpu_count == 0
    job = snapshot.pods[1]
    assert job.phase == PodPhase.SUCCEEDED
    assert job.requests.cpu_millicores == 1100
    assert job.requests.gpu_count == 1

    assert [p.name for p in snapshot.control_plane_pods] == ["kube-apiserver-cp"]
    assert snapshot.api_server_probe.reachable
    assert snapshot.services[0].selector == {"app": "web"}
    assert snapshot.endpoints[0].subset_count == 1
    assert snapshot.network_policy_count == 2
    assert snapshot.ingress_controllers[0].ready_replicas == 1
    assert snapshot.config_maps[0].key == "default/settings"


async def test_failing_secondary_sources_become_unknown(collector, core_api, apps_api):
    core_api.list_service_for_all_namespaces.side_effect = ApiException(status=403, reason="Forbidden")
    core_api.list_namespaced_pod.side_effect = RuntimeError("boom")
    apps_api.list_deployment_for_all_namespaces.side_effect = ApiException(status=500)

    snapshot = await collector.collect()

    assert snapshot.services is None
    assert snapshot.control_plane_pods is None
    assert snapshot.ingress_controllers is None
    assert snapshot.endpoints is not None
    assert len(snapshot.pods) == 2


async def test_metrics_failure_leaves_usage_unknown(collector, custom_api):
    custom_api.list_cluster_custom_object.side_effect = ApiException(status=404, reason="Not Found")

    snapshot = await collector.collect()

    assert not snapshot.metrics_available
    assert all(n.usage is None for n in snapshot.nodes)
    assert all(p.usage is None for p in snapshot.pods)


async def test_unreachable_api_server_probe(collector, core_api):
    core_api.list_namespace.side_effect = ApiException(status=503)

    snapshot = await collector.collect()

    assert not snapshot.api_server_probe.reachable


async def test_node_listing_failure_is_fatal(collector, core_api):
    core_api.list_node.side_effect = ApiException(status=500, reason="Internal Server Error")

    with pytest.raises(SnapshotError):
        await collector.collect()


async def test_pod_listing_failure_is_fatal(collector, core_api):
    core_api.list_pod_for_all_namespaces.side_effect = RuntimeError("connection reset")

    with pytest.raises(SnapshotError, match="connection reset"):
        await collector.collect()


async def test_no_kube_config_is_fatal():
    with pytest.raises(SnapshotError):
        await SnapshotCollector().collect()


async def test_missing_optional_clients_are_tolerated(core_api):
    snapshot = await SnapshotCollector(core_api=core_api).collect()

    assert snapshot.ingress_controllers is None
    assert snapshot.network_policy_count is None
    assert not snapshot.metrics_available
    assert snapshot.services is not None


async def test_close_closes_every_client(collector, core_api, apps_api, networking_api, custom_api):
    await collector.close()

    for api in (core_api, apps_api, networking_api, custom_api):
        api.api_client.close.assert_awaited_once()


def test_config_map_references_cover_volumes_and_env():
    container = k8s.V1Container(
        name="app",
        env=[
            k8s.V1EnvVar(
                name="LEVEL",
                value_from=k8s.V1EnvVarSource(
                    config_map_key_ref=k8s.V1ConfigMapKeySelector(name="env-cm", key="level")
                ),
            ),
            k8s.V1EnvVar(name="PLAIN", value="1"),
        ],
        env_from=[k8s.V1EnvFromSource(config_map_ref=k8s.V1ConfigMapEnvSource(name="bulk-cm"))],
    )
    init = k8s.V1Container(
        name="init", env_from=[k8s.V1EnvFromSource(config_map_ref=k8s.V1ConfigMapEnvSource(name="init-cm"))]
    )
    volumes = [
        k8s.V1Volume(name="conf", config_map=k8s.V1ConfigMapVolumeSource(name="volume-cm")),
        k8s.V1Volume(
            name="bundle",
            projected=k8s.V1ProjectedVolumeSource(
                sources=[k8s.V1VolumeProjection(config_map=k8s.V1ConfigMapProjection(name="projected-cm"))]
            ),
        ),
        k8s.V1Volume(name="scratch", empty_dir=k8s.V1EmptyDirVolumeSource()),
    ]
    pod = k8s.V1Pod(
        metadata=k8s.V1ObjectMeta(name="p", namespace="default"),
        spec=k8s.V1PodSpec(containers=[container], init_containers=[init], volumes=volumes),
    )

    assert config_map_references(pod) == ("bulk-cm", "env-cm", "init-cm", "projected-cm", "volume-cm")


def test_config_map_references_without_spec():
    assert config_map_references(k8s.V1Pod(metadata=k8s.V1ObjectMeta(name="p"))) == ()


async def test_api_server_probe_runs_alone(collector, core_api, custom_api):
    in_flight_at_probe = []

    async def _list_namespace(limit):
        in_flight_at_probe.append(
            core_api.list_service_for_all_namespaces.await_count + custom_api.list_cluster_custom_object.await_count
        )
        return k8s.V1NamespaceList(items=[])

    core_api.list_namespace = AsyncMock(side_effect=_list_namespace)

    snapshot = await collector.collect()

    assert in_flight_at_probe == [0]
    assert snapshot.api_server_probe.reachable
