"""MarketLearn - outcome tracking and lightweight learning for marketing outreach."""

from .analytics import (
    best_send_time,
    churn_risk,
    detect_anomalies,
    estimate_conversion,
    rank_subject_words,
    score_next_actions,
)
from .learning import LearningEngine
from .metric_store import MetricStore
from .predictive import PredictiveEngine
from .service import MarketLearnService, build_service
from .tracking import TrackingService
from .training import ABTestLedger, TrainingPipeline

__all__ = [
    "ABTestLedger",
    "LearningEngine",
    "MarketLearnService",
    "MetricStore",
    "PredictiveEngine",
    "TrackingService",
    "TrainingPipeline",
    "build_service",
    "best_send_time",
    "churn_risk",
    "detect_anomalies",
    "estimate_conversion",
    "rank_subject_words",
    "score_next_actions",
]

__version__ = "0.1.0"
