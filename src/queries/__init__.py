"""Budget metrics package."""

from src.queries.metrics import (
    HEALTH_TARGETS,
    MetricsError,
    classify_health_component,
    filter_month,
    financial_health,
    monthly_summary,
    monthly_trends,
)

__all__ = [
    "HEALTH_TARGETS",
    "MetricsError",
    "classify_health_component",
    "filter_month",
    "financial_health",
    "monthly_summary",
    "monthly_trends",
]
