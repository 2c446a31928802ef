# Application Stats Package
from .metrics_calculator import StudyMetricsCalculator, StudySummary
from .service import StudyStatsService

__all__ = ["StudyMetricsCalculator", "StudySummary", "StudyStatsService"]
