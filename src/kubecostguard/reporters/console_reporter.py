# src/kubecostguard/reporters/console_reporter.py
"""
Renders health, cost, optimization and cleanup results in the console.
"""

import logging
from typing import Optional

from rich.console import Console
from rich.table import Table

from ..models.cost import CostReport, ForecastStatus
from ..models.health import ClusterHealth, Severity
from ..models.recommendations import CleanupResult, OptimizationReport, RecommendationType

logger = logging.getLogger(__name__)

SEVERITY_STYLES = {
    Severity.CRITICAL: "bold red",
    Severity.WARNING: "yellow",
    Severity.INFO: "dim",
}


def _score_style(score: float) -> str:
    if score >= 80:
        return "green"
    if score >= 50:
        return "yellow"
    return "red"


def _fmt_percent(value: Optional[float]) -> str:
    return "unknown" if value is None else f"{value:.1%}"


class ConsoleReporter:
    """
    Renders KubeCostGuard results to the console using the 'rich' library.
    """

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def report_health(self, health: ClusterHealth):
        style = _score_style(health.health_score)
        self.console.print(f"\nCluster health score: [{style}]{health.health_score}/100[/]")

        table = Table(title="Health by Category", header_style="bold magenta", show_lines=True)
        table.add_column("Category", style="cyan")
        table.add_column("Score", justify="right")
        for category, score in health.sub_scores().items():
            if score is None:
                table.add_row(category.value, "[dim]unknown[/]")
            else:
                table.add_row(category.value, f"[{_score_style(score)}]{score:.1f}[/]")
        self.console.print(table)

        if health.namespace_health:
            ns_table = Table(title="Namespace Health", header_style="bold magenta")
            ns_table.add_column("Namespace", style="cyan")
            ns_table.add_column("Pods", justify="right")
            ns_table.add_column("Running", justify="right")
            ns_table.add_column("Services w/o Endpoints", justify="right")
            ns_table.add_column("Score", justify="right")
            for namespace, ns_health in health.namespace_health.items():
                svc = ns_health.service_status
                ns_table.add_row(
                    namespace,
                    str(ns_health.pod_status.total_pods),
                    str(ns_health.pod_status.running_pods),
                    str(svc.services_without_endpoints) if svc else "unknown",
                    f"[{_score_style(ns_health.health_score)}]{ns_health.health_score}[/]",
                )
            self.console.print(ns_table)

        if not health.issues:
            self.console.print("\n✅ No health issues found.", style="green")
            return

        issues = Table(title="Health Issues", header_style="bold magenta", show_lines=True)
        issues.add_column("Severity", style="bold")
        issues.add_column("Resource", style="cyan")
        issues.add_column("Namespace", style="cyan")
        issues.add_column("Name", style="cyan")
        issues.add_column("Message", style="white")
        issues.add_column("Suggestion", style="dim")
        for issue in health.issues:
            issues.add_row(
                f"[{SEVERITY_STYLES[issue.severity]}]{issue.severity.value}[/]",
                issue.resource,
                issue.namespace or "",
                issue.name or "",
                issue.message,
                issue.suggestion or "",
            )
        self.console.print(issues)

    def report_costs(self, costs: CostReport):
        table = Table(title="Node Costs", header_style="bold magenta", show_lines=True)
        table.add_column("Node", style="cyan")
        table.add_column("Instance Type", style="cyan")
        table.add_column("Hourly ($)", style="green", justify="right")
        table.add_column("Monthly ($)", style="green", justify="right")
        table.add_column("CPU Util", style="blue", justify="right")
        table.add_column("Mem Util", style="blue", justify="right")
        table.add_column("Flags", style="dim")
        for node_cost in costs.node_costs:
            table.add_row(
                node_cost.node_name,
                node_cost.instance_type or "",
                "unknown" if node_cost.hourly_cost is None else f"{node_cost.hourly_cost:.4f}",
                "unknown" if node_cost.monthly_cost is None else f"{node_cost.monthly_cost:.2f}",
                _fmt_percent(node_cost.utilization.cpu),
                _fmt_percent(node_cost.utilization.memory),
                ", ".join(node_cost.flags),
            )
        self.console.print(table)

        ns_table = Table(title="Namespace Costs", header_style="bold magenta")
        ns_table.add_column("Namespace", style="cyan")
        ns_table.add_column("Pods", justify="right")
        ns_table.add_column("Hourly ($)", style="green", justify="right")
        ns_table.add_column("Monthly ($)", style="green", justify="right")
        ns_table.add_column("CPU Efficiency", style="blue", justify="right")
        for ns_cost in sorted(costs.namespace_costs, key=lambda c: c.monthly_cost, reverse=True):
            ns_table.add_row(
                ns_cost.namespace,
                str(ns_cost.pod_count),
                f"{ns_cost.hourly_cost:.4f}",
                f"{ns_cost.monthly_cost:.2f}",
                _fmt_percent(ns_cost.cpu_efficiency),
            )
        self.console.print(ns_table)

        self.console.print(
            f"Total: [green]${costs.total_hourly_cost:.4f}/hour[/], [green]${costs.total_monthly_cost:.2f}/month[/]"
        )
        if costs.unknown_nodes:
            self.console.print(f"Cost unknown for nodes: {', '.join(costs.unknown_nodes)}", style="yellow")

        forecast = costs.forecast
        if forecast is None:
            return
        if forecast.status == ForecastStatus.OK:
            self.console.print(
                f"Forecast ({forecast.horizon_hours:.0f}h): expected ${forecast.expected_monthly_cost:.2f}/month "
                f"(range ${forecast.low_monthly_cost:.2f} - ${forecast.high_monthly_cost:.2f})"
            )
        else:
            self.console.print(f"Forecast unavailable: {forecast.message}", style="dim")

    def report_optimization(self, report: OptimizationReport):
        if not report.recommendations:
            self.console.print("\n✅ All systems look optimized! No recommendations to display.", style="green")
            return

        table = Table(title="Optimization Recommendations", header_style="bold magenta", show_lines=True)
        table.add_column("Type", style="bold")
        table.add_column("Kind", style="cyan")
        table.add_column("Namespace", style="cyan")
        table.add_column("Name", style="cyan")
        table.add_column("Monthly Saving ($)", style="green", justify="right")
        table.add_column("Recommendation", style="white")
        for rec in report.recommendations:
            idle = rec.type in (RecommendationType.IDLE_NODE, RecommendationType.IDLE_POD)
            style = "bold yellow" if idle else "bold cyan"
            table.add_row(
                f"[{style}]{rec.type.value}[/]",
                rec.resource_kind,
                rec.namespace or "",
                rec.name,
                f"{rec.potential_saving:.2f}",
                rec.description,
            )
        self.console.print(table)
        self.console.print(f"Potential savings: [green]${report.potential_savings:.2f}/month[/]")

    def report_cleanup(self, result: CleanupResult):
        if not result.recommendations:
            self.console.print("\n✅ Nothing to clean up.", style="green")
            return

        deleted = {rec.key for rec in result.deleted}
        failed = {rec.key for rec in result.failed}
        table = Table(
            title="Cleanup Candidates (dry run)" if result.dry_run else "Cleanup Results",
            header_style="bold magenta",
        )
        table.add_column("Type", style="bold")
        table.add_column("Namespace", style="cyan")
        table.add_column("Name", style="cyan")
        table.add_column("Age", justify="right")
        table.add_column("Reason", style="white")
        if not result.dry_run:
            table.add_column("Outcome")
        for rec in result.recommendations:
            row = [
                rec.resource_type.value,
                rec.namespace,
                rec.name,
                f"{rec.age.days}d" if rec.age is not None else "",
                rec.reason,
            ]
            if not result.dry_run:
                if rec.key in deleted:
                    row.append("[green]deleted[/]")
                elif rec.key in failed:
                    row.append("[red]failed[/]")
                else:
                    row.append("[dim]skipped[/]")
            table.add_row(*row)
        self.console.print(table)
        if result.partial:
            self.console.print("Cleanup completed partially; see the log for failures.", style="yellow")
