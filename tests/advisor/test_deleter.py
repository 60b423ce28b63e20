# tests/advisor/test_deleter.py

from unittest.mock import AsyncMock, MagicMock

import pytest

from kubecostguard.advisor.deleter import KubernetesResourceDeleter
from kubecostguard.core.exceptions import CleanupError
from kubecostguard.models.recommendations import CleanupRecommendation, CleanupResourceType


@pytest.fixture
def mock_api():
    api = MagicMock()
    api.delete_namespaced_config_map = AsyncMock()
    api.delete_namespaced_pod = AsyncMock()
    api.api_client.close = AsyncMock()
    return api


def _rec(resource_type, name="target"):
    return CleanupRecommendation(resource_type=resource_type, namespace="apps", name=name, reason="test")


async def test_deletes_config_map(mock_api):
    deleter = KubernetesResourceDeleter(api=mock_api)

    await deleter.delete(_rec(CleanupResourceType.CONFIG_MAP))

    mock_api.delete_namespaced_config_map.assert_awaited_once_with(name="target", namespace="apps")
    mock_api.delete_namespaced_pod.assert_not_awaited()


async def test_deletes_pod(mock_api):
    deleter = KubernetesResourceDeleter(api=mock_api)

    await deleter.delete(_rec(CleanupResourceType.POD, "old-job"))

    mock_api.delete_namespaced_pod.assert_awaited_once_with(name="old-job", namespace="apps")


async def test_api_errors_propagate(mock_api):
    mock_api.delete_namespaced_pod.side_effect = RuntimeError("403 Forbidden")
    deleter = KubernetesResourceDeleter(api=mock_api)

    with pytest.raises(RuntimeError, match="Forbidden"):
        await deleter.delete(_rec(CleanupResourceType.POD))


async def test_no_kube_config_raises_cleanup_error():
    deleter = KubernetesResourceDeleter()
    with pytest.raises(CleanupError):
        await deleter.delete(_rec(CleanupResourceType.POD))


async def test_close_releases_client(mock_api):
    deleter = KubernetesResourceDeleter(api=mock_api)

    await deleter.close()
    await deleter.close()

    mock_api.api_client.close.assert_awaited_once()
