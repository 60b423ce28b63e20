import os

import aiofiles
from pydantic import BaseModel

from .base_exporter import BaseExporter


class JSONExporter(BaseExporter):
    """Writes any result model (health, costs, a full cycle) as indented JSON."""

    DEFAULT_FILENAME = "kubecostguard-report.json"

    async def export(self, report: BaseModel, path: str | None = None) -> str:
        out_path = path or self.DEFAULT_FILENAME
        os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)

        async with aiofiles.open(out_path, "w", encoding="utf-8") as fh:
            await fh.write(report.model_dump_json(indent=2))
        return out_path
