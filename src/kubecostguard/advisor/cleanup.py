# src/kubecostguard/advisor/cleanup.py
"""
Cleanup analysis for unused ConfigMaps and stale terminal pods.

Dry-run mode only computes recommendations and never touches the cluster.
Apply mode deletes exactly the recommendations it returns, one at a time:
runs are serialized process-wide, cancellation is checked before each
deletion, and a failed deletion is logged and does not stop the others.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from kubecostguard.core.config import config
from kubecostguard.core.exceptions import CleanupError, SnapshotError
from kubecostguard.models.recommendations import CleanupRecommendation, CleanupResourceType, CleanupResult
from kubecostguard.models.snapshot import TERMINAL_PHASES, ClusterSnapshot

logger = logging.getLogger(__name__)

# Serializes apply-mode runs so two runs never race on the same resource
_APPLY_LOCK = asyncio.Lock()

UNUSED_CONFIG_MAP_REASON = "not referenced by any pod"


class ResourceDeleter(ABC):
    """Deletes the resource named by a cleanup recommendation."""

    @abstractmethod
    async def delete(self, recommendation: CleanupRecommendation) -> None:
        pass


class CleanupAdvisor:
    def __init__(
        self,
        deleter: Optional[ResourceDeleter] = None,
        retention_days: Optional[int] = None,
        protected_config_maps: Optional[Iterable[str]] = None,
    ):
        self.deleter = deleter
        self.retention = timedelta(
            days=retention_days if retention_days is not None else config.STALE_POD_RETENTION_DAYS
        )
        self.protected_config_maps = set(
            protected_config_maps if protected_config_maps is not None else config.CLEANUP_PROTECTED_CONFIGMAPS
        )

    def analyze(self, snapshot: ClusterSnapshot, now: Optional[datetime] = None) -> List[CleanupRecommendation]:
        """
        Computes cleanup recommendations without side effects.

        ``now`` defaults to the snapshot timestamp so that repeated runs over
        the same snapshot return identical results.
        """
        if snapshot.pods is None:
            raise SnapshotError("cleanup analysis failed: pods could not be enumerated")
        now = now or snapshot.timestamp

        recommendations = self._unused_config_maps(snapshot, now) + self._stale_pods(snapshot, now)
        logger.info("Cleanup analysis found %d candidate(s).", len(recommendations))
        return recommendations

    def _unused_config_maps(self, snapshot: ClusterSnapshot, now: datetime) -> List[CleanupRecommendation]:
        if snapshot.config_maps is None:
            logger.warning("ConfigMaps unavailable; skipping unused ConfigMap analysis.")
            return []

        in_use = {f"{pod.namespace}/{ref}" for pod in snapshot.pods for ref in pod.config_map_refs}
        recommendations = []
        for cm in sorted(snapshot.config_maps, key=lambda c: (c.namespace, c.name)):
            if cm.key in in_use or cm.name in self.protected_config_maps:
                continue
            recommendations.append(
                CleanupRecommendation(
                    resource_type=CleanupResourceType.CONFIG_MAP,
                    namespace=cm.namespace,
                    name=cm.name,
                    reason=UNUSED_CONFIG_MAP_REASON,
                    age=(now - cm.creation_timestamp) if cm.creation_timestamp else None,
                )
            )
        return recommendations

    def _stale_pods(self, snapshot: ClusterSnapshot, now: datetime) -> List[CleanupRecommendation]:
        recommendations = []
        for pod in sorted(snapshot.pods, key=lambda p: (p.namespace, p.name)):
            if pod.phase not in TERMINAL_PHASES or pod.creation_timestamp is None:
                continue
            age = now - pod.creation_timestamp
            if age <= self.retention:
                continue
            recommendations.append(
                CleanupRecommendation(
                    resource_type=CleanupResourceType.POD,
                    namespace=pod.namespace,
                    name=pod.name,
                    reason=(
                        f"Failed/Completed pod older than {self.retention.days} days (status: {pod.phase.value})"
                    ),
                    age=age,
                )
            )
        return recommendations

    async def run(
        self,
        snapshot: ClusterSnapshot,
        dry_run: bool = True,
        cancel_event: Optional[asyncio.Event] = None,
        now: Optional[datetime] = None,
    ) -> CleanupResult:
        """
        Analyzes the snapshot and, unless ``dry_run``, deletes every recommendation.

        Raises:
            CleanupError: If apply mode is requested without a deleter.
        """
        if not dry_run and self.deleter is None:
            raise CleanupError("cleanup apply mode requires a resource deleter")

        recommendations = self.analyze(snapshot, now=now)
        result = CleanupResult(dry_run=dry_run, recommendations=recommendations)
        if dry_run:
            return result

        async with _APPLY_LOCK:
            for rec in recommendations:
                if cancel_event is not None and cancel_event.is_set():
                    result.cancelled = True
                    result.skipped.append(rec)
                    continue
                try:
                    await self.deleter.delete(rec)
                except Exception as e:
                    logger.error(
                        "Failed to delete %s %s/%s: %s", rec.resource_type.value, rec.namespace, rec.name, e
                    )
                    result.failed.append(rec)
                else:
                    logger.info("Deleted %s %s/%s (%s)", rec.resource_type.value, rec.namespace, rec.name, rec.reason)
                    result.deleted.append(rec)

        if result.cancelled:
            logger.warning("Cleanup cancelled; %d deletion(s) skipped.", len(result.skipped))
        logger.info(
            "Cleanup finished: %d deleted, %d failed, %d skipped.",
            len(result.deleted),
            len(result.failed),
            len(result.skipped),
        )
        return result
