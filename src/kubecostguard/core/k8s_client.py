# src/kubecostguard/core/k8s_client.py
"""
Shared access to the Kubernetes API.

Cluster credentials are resolved once per process and every caller gets a
fresh API group object bound to them.
"""

import asyncio
import logging
import typing

from kubernetes_asyncio import client, config as kube_config

from kubecostguard.core.config import config

logger = logging.getLogger(__name__)

_LOAD_LOCK = asyncio.Lock()
_loaded_from: typing.Optional[str] = None

ApiT = typing.TypeVar("ApiT")


async def _load_local(context: typing.Optional[str]) -> str:
    await kube_config.load_kube_config(context=context)
    return f"kubeconfig (context={context or 'current'})"


def _load_in_cluster() -> str:
    kube_config.load_incluster_config()
    return "in-cluster service account"


async def ensure_k8s_config() -> bool:
    """
    Resolves cluster credentials exactly once.

    The in-cluster service account is used when present, otherwise the local
    kubeconfig with ``KUBE_CONTEXT``. Returns False when neither is usable.
    """
    global _loaded_from

    if _loaded_from is not None:
        return True

    async with _LOAD_LOCK:
        if _loaded_from is not None:
            return True

        attempts = (
            ("in-cluster", lambda: asyncio.to_thread(_load_in_cluster)),
            ("kubeconfig", lambda: _load_local(config.KUBE_CONTEXT)),
        )
        for label, attempt in attempts:
            try:
                _loaded_from = await attempt()
            except kube_config.ConfigException as e:
                logger.debug("No %s Kubernetes configuration: %s", label, e)
                continue
            except Exception as e:
                logger.warning("Unexpected error loading %s Kubernetes configuration: %s", label, e)
                continue
            logger.info("Kubernetes configuration loaded from %s.", _loaded_from)
            return True

    logger.warning("No usable Kubernetes configuration was found.")
    return False


async def api_for(api_class: typing.Callable[[], ApiT]) -> typing.Optional[ApiT]:
    """Returns an instance of ``api_class`` or None when no cluster is reachable."""
    if not await ensure_k8s_config():
        return None
    return api_class()


async def get_core_v1_api() -> typing.Optional[client.CoreV1Api]:
    return await api_for(client.CoreV1Api)


async def get_apps_v1_api() -> typing.Optional[client.AppsV1Api]:
    return await api_for(client.AppsV1Api)


async def get_networking_v1_api() -> typing.Optional[client.NetworkingV1Api]:
    return await api_for(client.NetworkingV1Api)


async def get_custom_objects_api() -> typing.Optional[client.CustomObjectsApi]:
    """The metrics.k8s.io aggregated API is read through CustomObjectsApi."""
    return await api_for(client.CustomObjectsApi)
