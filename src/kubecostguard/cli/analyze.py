# src/kubecostguard/cli/analyze.py
"""
One-shot analysis commands: health, cost, optimize and cleanup.

Each command takes a fresh snapshot of the cluster, runs the relevant part
of the evaluation and prints the result. A snapshot that cannot enumerate
nodes or pods makes the command exit with code 1.
"""

import asyncio
import logging
import signal
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from ..advisor.cleanup import CleanupAdvisor
from ..advisor.deleter import KubernetesResourceDeleter
from ..core.exceptions import KubeCostGuardError
from ..core.pipeline import EvaluationCycle
from ..cost.aggregator import CostAggregator
from ..health.evaluator import HealthEvaluator
from ..reporters.console_reporter import ConsoleReporter
from .utils import collect_snapshot, handle_export, load_pricing

logger = logging.getLogger(__name__)

PricingOption = Annotated[
    Optional[Path],
    typer.Option("--pricing", help="Pricing document (JSON or YAML). Default: PRICING_CONFIG_PATH or built-in."),
]
OutputOption = Annotated[
    Optional[Path],
    typer.Option("--output", help="Also write the result as JSON to this path.", dir_okay=False, writable=True),
]


def _run(coro_factory):
    """Runs an async command body, mapping failures to exit code 1."""
    try:
        asyncio.run(coro_factory())
    except typer.Exit:
        raise
    except KubeCostGuardError as e:
        logger.error(f"{e}")
        raise typer.Exit(code=1)
    except Exception as e:
        logger.error(f"An unexpected error occurred: {e}", exc_info=True)
        raise typer.Exit(code=1)


def health(output: OutputOption = None):
    """
    Evaluate cluster health and list issues.
    """

    async def _health_async():
        snapshot = await collect_snapshot()
        result = HealthEvaluator().evaluate(snapshot)
        ConsoleReporter().report_health(result)
        if output:
            await handle_export(result, output)

    _run(_health_async)


def cost(pricing: PricingOption = None, output: OutputOption = None):
    """
    Compute node, pod and namespace costs.
    """
    pricing_config = load_pricing(pricing)

    async def _cost_async():
        snapshot = await collect_snapshot()
        report = CostAggregator(pricing_config).compute_costs(snapshot)
        ConsoleReporter().report_costs(report)
        if output:
            await handle_export(report, output)

    _run(_cost_async)


def optimize(pricing: PricingOption = None, output: OutputOption = None):
    """
    Recommend rightsizing and idle-resource savings.
    """
    pricing_config = load_pricing(pricing)

    async def _optimize_async():
        snapshot = await collect_snapshot()
        cycle = EvaluationCycle(
            collector=None,
            health_evaluator=HealthEvaluator(),
            cost_aggregator=CostAggregator(pricing_config),
        )
        result = await cycle.evaluate(snapshot)
        ConsoleReporter().report_optimization(result.optimization)
        if output:
            await handle_export(result.optimization, output)

    _run(_optimize_async)


def cleanup(
    apply: Annotated[bool, typer.Option("--apply", help="Delete the listed resources instead of a dry run.")] = False,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not ask for confirmation with --apply.")] = False,
    output: OutputOption = None,
):
    """
    List unused ConfigMaps and stale pods; delete them with --apply.
    """

    async def _cleanup_async():
        snapshot = await collect_snapshot()
        if not apply:
            result = await CleanupAdvisor().run(snapshot, dry_run=True)
        else:
            candidates = CleanupAdvisor().analyze(snapshot)
            if candidates and not yes and not typer.confirm(f"Delete {len(candidates)} resource(s)?"):
                raise typer.Exit()

            # Ctrl+C stops before the next deletion, never in the middle of one
            cancel_event = asyncio.Event()
            loop = asyncio.get_running_loop()
            loop.add_signal_handler(signal.SIGINT, cancel_event.set)
            deleter = KubernetesResourceDeleter()
            try:
                result = await CleanupAdvisor(deleter=deleter).run(snapshot, dry_run=False, cancel_event=cancel_event)
            finally:
                loop.remove_signal_handler(signal.SIGINT)
                await deleter.close()

        ConsoleReporter().report_cleanup(result)
        if output:
            await handle_export(result, output)

    _run(_cleanup_async)
