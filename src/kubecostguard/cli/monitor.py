# src/kubecostguard/cli/monitor.py
"""
Continuous monitoring: runs an evaluation cycle on a fixed interval and
publishes the results as OpenTelemetry gauges until SIGINT or SIGTERM.
"""

import asyncio
import logging
import signal
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from ..collectors.snapshot_collector import SnapshotCollector
from ..core.config import config, parse_interval
from ..core.history import UsageHistory
from ..core.pipeline import EvaluationCycle
from ..core.scheduler import Scheduler
from ..core.telemetry import MetricsExporter, initialize_telemetry
from ..cost.aggregator import CostAggregator
from ..health.evaluator import HealthEvaluator
from .utils import handle_export, load_pricing

logger = logging.getLogger(__name__)

app = typer.Typer(name="monitor", help="Continuously evaluate the cluster and export metrics.")


async def _async_monitor(cycle: EvaluationCycle, interval: str, output: Optional[Path]):
    scheduler = Scheduler()

    async def evaluation_cycle():
        result = await cycle.run()
        if output:
            await handle_export(result, output)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda: asyncio.ensure_future(scheduler.stop()))

    scheduler.add_job_from_string(evaluation_cycle, interval, timeout_seconds=config.CYCLE_TIMEOUT_SECONDS)
    logger.info("KubeCostGuard is monitoring every %s. Press CTRL+C to exit.", interval)
    try:
        await scheduler.wait()
    finally:
        await cycle.collector.close()
    logger.info("Monitoring stopped.")


@app.callback(invoke_without_command=True)
def monitor(
    ctx: typer.Context,
    interval: Annotated[
        Optional[str], typer.Option("--interval", help="Cycle interval, e.g. '30s', '5m', '1h'.")
    ] = None,
    pricing: Annotated[Optional[Path], typer.Option("--pricing", help="Pricing document (JSON or YAML).")] = None,
    output: Annotated[
        Optional[Path], typer.Option("--output", help="Overwrite this JSON file with each cycle's result.")
    ] = None,
):
    """
    Start the monitoring loop.
    """
    if ctx.invoked_subcommand is not None:
        return

    interval = interval or config.MONITOR_INTERVAL
    try:
        parse_interval(interval)
    except ValueError as e:
        logger.error(f"{e}")
        raise typer.Exit(code=1)

    initialize_telemetry()
    cycle = EvaluationCycle(
        collector=SnapshotCollector(),
        health_evaluator=HealthEvaluator(),
        cost_aggregator=CostAggregator(load_pricing(pricing)),
        history=UsageHistory(),
        metrics_exporter=MetricsExporter(),
    )

    try:
        asyncio.run(_async_monitor(cycle, interval, output))
    except Exception as e:
        logger.error(f"Monitoring failed: {e}", exc_info=True)
        raise typer.Exit(code=1)
