# src/kubecostguard/cost/forecast.py
"""
Advisory cost forecast.

Fits a least-squares line through the recent cluster utilization window,
projects it ``horizon_hours`` ahead and scales the current monthly cost by
the projected change in utilization. Bands are the projection plus or minus
one residual standard deviation. Fewer than two samples yields an
``insufficient_history`` forecast instead of an error.
"""

import logging
import math
import statistics
from typing import Optional, Sequence

from kubecostguard.models.cost import CostForecast, ForecastStatus, UtilizationSample

logger = logging.getLogger(__name__)


def _insufficient(sample_count: int, horizon_hours: float, current: Optional[float], message: str) -> CostForecast:
    return CostForecast(
        status=ForecastStatus.INSUFFICIENT_HISTORY,
        sample_count=sample_count,
        horizon_hours=horizon_hours,
        current_monthly_cost=current,
        message=message,
    )


def forecast_monthly_cost(
    samples: Sequence[UtilizationSample],
    current_monthly_cost: Optional[float],
    horizon_hours: float,
) -> CostForecast:
    samples = sorted(samples, key=lambda s: s.timestamp)
    count = len(samples)
    if count < 2:
        return _insufficient(count, horizon_hours, current_monthly_cost, "insufficient history")
    if current_monthly_cost is None:
        return _insufficient(count, horizon_hours, None, "current cost unknown")

    start = samples[0].timestamp
    xs = [(s.timestamp - start).total_seconds() / 3600.0 for s in samples]
    ys = [s.combined for s in samples]
    if xs[-1] == xs[0]:
        return _insufficient(
            count, horizon_hours, current_monthly_cost, "insufficient history: samples share one timestamp"
        )

    slope, intercept = statistics.linear_regression(xs, ys)
    residuals = [y - (intercept + slope * x) for x, y in zip(xs, ys)]
    spread = math.sqrt(sum(r * r for r in residuals) / (count - 2)) if count > 2 else 0.0

    latest = ys[-1]
    projected = max(0.0, intercept + slope * (xs[-1] + horizon_hours))
    if latest <= 0:
        # No utilization baseline to scale from; the current cost is the best estimate.
        expected = low = high = current_monthly_cost
    else:
        expected = current_monthly_cost * projected / latest
        low = current_monthly_cost * max(0.0, projected - spread) / latest
        high = current_monthly_cost * (projected + spread) / latest

    logger.debug(
        "Cost forecast: %d samples, slope=%.6f/h, projected utilization=%.3f", count, slope, projected
    )
    return CostForecast(
        status=ForecastStatus.OK,
        sample_count=count,
        horizon_hours=horizon_hours,
        current_monthly_cost=current_monthly_cost,
        low_monthly_cost=low,
        expected_monthly_cost=expected,
        high_monthly_cost=high,
        utilization_trend_per_hour=slope,
        message=f"linear trend over {count} samples",
    )
