"""Linear-trend forecasting for operational metrics."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta

from ..core.datetime_utils import utc_now
from ..core.interfaces import MetricsRepository
from ..core.models import ForecastPoint, MetricSample

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.85
DEFAULT_MIN_LOOKBACK_DAYS = 30


def fit_linear_trend(values: Sequence[float]) -> tuple[float, float]:
    """Return ``(intercept, slope)`` of an OLS fit over indexes ``0..n-1``.

    A single point (or any series with no spread in the index) yields a flat
    line through the mean.
    """
    count = len(values)
    if count == 0:
        raise ValueError("Cannot fit a trend to an empty series")
    mean_x = (count - 1) / 2
    mean_y = sum(values) / count
    sxx = sum((index - mean_x) ** 2 for index in range(count))
    if sxx == 0:
        return mean_y, 0.0
    sxy = sum((index - mean_x) * (value - mean_y) for index, value in enumerate(values))
    slope = sxy / sxx
    return mean_y - slope * mean_x, slope


def project(
    samples: Sequence[MetricSample],
    horizon_days: int,
    *,
    confidence: float = DEFAULT_CONFIDENCE,
) -> list[ForecastPoint]:
    """Extend the trend of ``samples`` (ascending) by ``horizon_days`` days.

    Bounds are ``value * confidence`` and ``value * (2 - confidence)``; for a
    negative value the lower bound ends up above the upper bound.
    """
    if horizon_days <= 0 or not samples:
        return []
    intercept, slope = fit_linear_trend([sample.value for sample in samples])
    last_index = len(samples) - 1
    last_date = samples[-1].timestamp
    points: list[ForecastPoint] = []
    for step in range(1, horizon_days + 1):
        value = intercept + slope * (last_index + step)
        points.append(
            ForecastPoint(
                date=last_date + timedelta(days=step),
                value=value,
                lower_bound=value * confidence,
                upper_bound=value * (2 - confidence),
            )
        )
    return points


class ForecastEngine:
    """Project future values of a metric from its recent history."""

    def __init__(
        self,
        metrics: MetricsRepository,
        *,
        confidence: float = DEFAULT_CONFIDENCE,
        min_lookback_days: int = DEFAULT_MIN_LOOKBACK_DAYS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._metrics = metrics
        self._confidence = confidence
        self._min_lookback_days = min_lookback_days
        self._clock = clock

    async def forecast(self, metric_name: str, horizon_days: int) -> list[ForecastPoint]:
        if not metric_name or not metric_name.strip():
            raise ValueError("Metric name is required")
        if horizon_days <= 0:
            return []

        end = self._clock()
        lookback = max(self._min_lookback_days, 2 * horizon_days)
        start = end - timedelta(days=lookback)
        samples = sorted(
            await self._metrics.get_series(metric_name, start, end),
            key=lambda sample: sample.timestamp,
        )
        if not samples:
            LOGGER.info("No history for metric %s; returning empty forecast", metric_name)
            return []

        LOGGER.debug(
            "Forecasting %s for %s day(s) from %s sample(s)",
            metric_name,
            horizon_days,
            len(samples),
        )
        return project(samples, horizon_days, confidence=self._confidence)


__all__ = ["ForecastEngine", "fit_linear_trend", "project"]
