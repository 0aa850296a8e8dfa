"""Security analytics for TrustGate."""

from .service import SecurityAnalytics, daily_trend, score_stats

__all__ = ["SecurityAnalytics", "daily_trend", "score_stats"]
