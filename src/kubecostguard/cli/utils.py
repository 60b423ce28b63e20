# src/kubecostguard/cli/utils.py
"""
Helpers shared by the CLI commands.
"""

import logging
import sys
import traceback
from pathlib import Path
from typing import Optional

import typer
from pydantic import BaseModel

from ..collectors.snapshot_collector import SnapshotCollector
from ..core.config import config
from ..core.exceptions import PricingConfigError
from ..exporters.json_exporter import JSONExporter
from ..models.snapshot import ClusterSnapshot
from ..pricing.config import PricingConfig, load_pricing_config

logger = logging.getLogger(__name__)


def load_pricing(path: Optional[Path]) -> PricingConfig:
    """Loads the pricing document, exiting with an error if it is invalid."""
    try:
        return load_pricing_config(path or config.PRICING_CONFIG_PATH or None)
    except PricingConfigError as e:
        logger.error(f"Invalid pricing configuration: {e}")
        raise typer.Exit(code=1)


async def collect_snapshot() -> ClusterSnapshot:
    """Collects one snapshot and releases the API clients."""
    collector = SnapshotCollector()
    try:
        return await collector.collect()
    finally:
        await collector.close()


async def handle_export(report: BaseModel, output_path: Path):
    """Writes the report to a JSON file."""
    try:
        written_path = await JSONExporter().export(report, str(output_path))
    except Exception as e:
        logger.error(f"Failed to export report to {output_path}: {e}")
        logger.error(traceback.format_exc())
        raise typer.Exit(code=1)
    logger.info(f"Successfully exported report to {written_path}")
    print(f"Report exported to: {written_path}", file=sys.stderr)
