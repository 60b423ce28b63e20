# src/kubecostguard/models/recommendations.py

from datetime import timedelta
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field


class RecommendationType(str, Enum):
    """Enumeration of possible recommendation types."""

    RIGHTSIZE_NODE = "RIGHTSIZE_NODE"
    RIGHTSIZE_POD = "RIGHTSIZE_POD"
    IDLE_NODE = "IDLE_NODE"
    IDLE_POD = "IDLE_POD"


class Recommendation(BaseModel):
    """Represents a single advisory optimization recommendation."""

    type: RecommendationType
    resource_kind: str = Field(..., description="Node or Pod.")
    namespace: Optional[str] = None
    name: str
    description: str
    current_monthly_cost: float = 0.0
    potential_saving: float = Field(0.0, description="Monthly saving if the recommendation is applied.")


class OptimizationReport(BaseModel):
    potential_savings: float = 0.0
    recommendations: List[Recommendation] = Field(default_factory=list)


class CleanupResourceType(str, Enum):
    CONFIG_MAP = "ConfigMap"
    POD = "Pod"


class CleanupRecommendation(BaseModel):
    model_config = ConfigDict(frozen=True)

    resource_type: CleanupResourceType
    namespace: str
    name: str
    reason: str
    age: Optional[timedelta] = None

    @property
    def key(self) -> str:
        return f"{self.resource_type.value}:{self.namespace}/{self.name}"


class CleanupResult(BaseModel):
    """
    Outcome of a cleanup run. In dry-run mode only ``recommendations`` is
    populated. In apply mode every recommendation ends up in exactly one of
    ``deleted``, ``failed`` or ``skipped``.
    """

    dry_run: bool
    recommendations: List[CleanupRecommendation] = Field(default_factory=list)
    deleted: List[CleanupRecommendation] = Field(default_factory=list)
    failed: List[CleanupRecommendation] = Field(default_factory=list)
    skipped: List[CleanupRecommendation] = Field(default_factory=list)
    cancelled: bool = False

    @computed_field
    @property
    def partial(self) -> bool:
        return bool(self.failed or self.skipped)
