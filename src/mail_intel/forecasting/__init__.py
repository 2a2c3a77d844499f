"""Metric forecasting."""

from .engine import ForecastEngine, fit_linear_trend, project

__all__ = ["ForecastEngine", "fit_linear_trend", "project"]
