# tests/advisor/test_optimizer.py

import pytest

from kubecostguard.advisor.optimizer import ResourceOptimizer
from kubecostguard.core.history import UsageHistory
from kubecostguard.cost.aggregator import CostAggregator
from kubecostguard.health.evaluator import HealthEvaluator
from kubecostguard.models.recommendations import RecommendationType

GIB = 1024**3
MIB = 1024**2


@pytest.fixture
def optimizer():
    return ResourceOptimizer(low_utilization_threshold=0.2, idle_threshold=0.02, headroom=0.2, hours_per_month=720)


@pytest.fixture
def analyze(simple_pricing, optimizer):
    """Runs health, cost and optimization over a snapshot like one evaluation cycle would."""
    evaluator = HealthEvaluator()
    aggregator = CostAggregator(simple_pricing, hours_per_month=720)

    def _analyze(snapshot, history=None):
        health = evaluator.evaluate(snapshot)
        costs = aggregator.compute_costs(snapshot)
        return optimizer.generate_optimization_report(snapshot, health, costs, history), costs

    return _analyze


@pytest.fixture
def mixed_snapshot(healthy_snapshot, make_node, make_pod):
    nodes = [
        make_node("idle", cpu_used=10, memory_used=100 * MIB),
        make_node("quiet", cpu_used=400, memory_used=int(0.1 * 16 * GIB)),
        make_node("busy", cpu_used=3000, memory_used=int(0.6 * 16 * GIB)),
    ]
    on_busy = dict(namespace="shop", node="busy")
    pods = [
        make_pod("sleeper", node="idle", cpu_used=0, memory_used=0),
        # 10% of requests: rightsized to peak plus headroom
        make_pod("oversized", cpu_request=1000, memory_request=GIB, cpu_used=100, memory_used=100 * MIB, **on_busy),
        # 0.2% of requests: idle
        make_pod("zombie", cpu_request=500, memory_request=512 * MIB, cpu_used=1, memory_used=MIB, **on_busy),
        make_pod("working", cpu_request=100, memory_request=256 * MIB, cpu_used=90, memory_used=200 * MIB, **on_busy),
    ]
    return healthy_snapshot(nodes=nodes, pods=pods)


def _by_name(report):
    return {rec.name: rec for rec in report.recommendations}


def test_idle_node_saves_its_whole_cost(analyze, mixed_snapshot):
    report, costs = analyze(mixed_snapshot)

    rec = _by_name(report)["idle"]
    assert rec.type == RecommendationType.IDLE_NODE
    assert rec.resource_kind == "Node"
    assert rec.potential_saving == pytest.approx(costs.node_cost("idle").monthly_cost)


def test_underutilized_node_is_rightsized(analyze, mixed_snapshot):
    report, costs = analyze(mixed_snapshot)

    rec = _by_name(report)["quiet"]
    monthly = costs.node_cost("quiet").monthly_cost
    assert rec.type == RecommendationType.RIGHTSIZE_NODE
    assert 0 < rec.potential_saving < monthly
    # CPU and memory shrink to 12% of allocatable; storage, network and GPU stay
    assert rec.potential_saving == pytest.approx((0.38 - (0.20 * 0.12 + 0.16 * 0.12 + 0.02)) * 720)


def test_busy_node_gets_pod_recommendations(analyze, mixed_snapshot):
    report, _ = analyze(mixed_snapshot)
    recs = _by_name(report)

    assert "busy" not in recs
    assert recs["oversized"].type == RecommendationType.RIGHTSIZE_POD
    assert recs["oversized"].namespace == "shop"
    assert 0 < recs["oversized"].potential_saving < recs["oversized"].current_monthly_cost
    assert "120m CPU" in recs["oversized"].description
    assert recs["zombie"].type == RecommendationType.IDLE_POD
    assert recs["zombie"].potential_saving == pytest.approx(recs["zombie"].current_monthly_cost)
    assert "working" not in recs


def test_pods_on_recommended_nodes_are_skipped(analyze, mixed_snapshot):
    report, _ = analyze(mixed_snapshot)
    assert "sleeper" not in _by_name(report)


def test_not_ready_nodes_are_skipped(analyze, healthy_snapshot, make_node):
    snapshot = healthy_snapshot(nodes=[make_node("broken", ready=False, cpu_used=0, memory_used=0)], pods=[])

    report, _ = analyze(snapshot)

    assert report.recommendations == []
    assert report.potential_savings == 0.0


def test_recommendations_sorted_by_saving(analyze, mixed_snapshot):
    report, _ = analyze(mixed_snapshot)

    savings = [rec.potential_saving for rec in report.recommendations]
    assert savings == sorted(savings, reverse=True)
    assert report.potential_savings == pytest.approx(sum(savings))
    assert report.recommendations[0].name == "idle"


def test_nodes_without_usage_are_not_judged(analyze, healthy_snapshot, make_node):
    report, _ = analyze(healthy_snapshot(nodes=[make_node("unmeasured")], pods=[], metrics_available=False))
    assert report.recommendations == []


def test_past_peak_prevents_rightsizing(analyze, healthy_snapshot, make_node):
    history = UsageHistory(window_size=5)
    history.record(healthy_snapshot(nodes=[make_node("quiet", cpu_used=3000, memory_used=8 * GIB)], pods=[]))

    current = healthy_snapshot(nodes=[make_node("quiet", cpu_used=400, memory_used=GIB)], pods=[])
    with_history, _ = analyze(current, history)
    without_history, _ = analyze(current)

    assert with_history.recommendations == []
    assert [rec.type for rec in without_history.recommendations] == [RecommendationType.RIGHTSIZE_NODE]
