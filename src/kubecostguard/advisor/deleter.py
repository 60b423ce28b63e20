# src/kubecostguard/advisor/deleter.py

import logging

from kubecostguard.advisor.cleanup import ResourceDeleter
from kubecostguard.core.exceptions import CleanupError
from kubecostguard.core.k8s_client import get_core_v1_api
from kubecostguard.models.recommendations import CleanupRecommendation, CleanupResourceType

logger = logging.getLogger(__name__)


class KubernetesResourceDeleter(ResourceDeleter):
    """Deletes ConfigMaps and pods through the Kubernetes API."""

    def __init__(self, api=None):
        self._api = api

    async def _ensure_client(self):
        """Lazily initialize the Kubernetes Client."""
        if self._api:
            return self._api
        self._api = await get_core_v1_api()
        if not self._api:
            raise CleanupError("Kubernetes client could not be initialized; nothing can be deleted.")
        return self._api

    async def delete(self, recommendation: CleanupRecommendation) -> None:
        api = await self._ensure_client()
        if recommendation.resource_type == CleanupResourceType.CONFIG_MAP:
            await api.delete_namespaced_config_map(name=recommendation.name, namespace=recommendation.namespace)
        elif recommendation.resource_type == CleanupResourceType.POD:
            await api.delete_namespaced_pod(name=recommendation.name, namespace=recommendation.namespace)
        else:
            raise CleanupError(f"Unsupported cleanup resource type: {recommendation.resource_type}")
        logger.debug("Delete request accepted for %s", recommendation.key)

    async def close(self):
        """Close the Kubernetes API client if it exists."""
        if self._api:
            await self._api.api_client.close()
            logger.debug("KubernetesResourceDeleter Kubernetes client closed.")
            self._api = None
