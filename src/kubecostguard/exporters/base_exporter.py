from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel


class BaseExporter(ABC):
    """Abstract base class for file exporters.

    Subclasses provide a DEFAULT_FILENAME and implement `export`.
    """

    DEFAULT_FILENAME: str = "kubecostguard-report"

    @abstractmethod
    async def export(self, report: BaseModel, path: str | None = None) -> str:
        """Write the report to disk. Return the written path."""
        raise NotImplementedError()
