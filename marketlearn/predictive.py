"""Predictive engine: stateless answers to forward-looking questions."""

from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from loguru import logger

from .analytics import (
    MIN_CONVERSIONS_FOR_PREDICTION,
    best_send_time,
    churn_risk,
    detect_anomalies,
    estimate_conversion,
    lifetime_value,
    next_action_reasoning,
    score_next_actions,
)
from .errors import CollaboratorUnavailable
from .metric_store import MetricStore
from .models import CONVERSIONS, EMAIL_PERFORMANCE, utcnow
from .providers import ProviderChain


class PredictiveEngine:
    """Reads metric history and answers conversion, value, churn and timing questions."""

    def __init__(
        self,
        store: MetricStore,
        lead_scorer: Optional[ProviderChain] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.lead_scorer = lead_scorer or ProviderChain(name="lead scorer")
        self.clock = clock

    def predict_conversion(self, lead_data: Optional[Mapping[str, Any]] = None) -> Dict:
        lead_data = lead_data or {}
        conversions = self.store.load(CONVERSIONS)

        external_score = None
        if len(conversions) >= MIN_CONVERSIONS_FOR_PREDICTION:
            external_score = self._external_score(lead_data)

        return estimate_conversion(
            conversions,
            touchpoints=lead_data.get("touchpoints"),
            external_score=external_score,
        )

    def predict_clv(self, lead_data: Optional[Mapping[str, Any]] = None) -> Dict:
        return lifetime_value(self.predict_conversion(lead_data))

    def predict_churn(self, customer_id: str, engagement_metrics: Mapping[str, Any]) -> Dict:
        result = churn_risk(engagement_metrics or {}, now=self.clock())
        logger.debug(f"Churn risk for {customer_id}: {result['risk_score']}")
        return {"customer_id": customer_id, **result}

    def predict_best_send_time(self) -> Dict:
        return best_send_time(self.store.load(EMAIL_PERFORMANCE))

    def recommend_next_action(self, lead_id: str, history: Optional[Mapping[str, Any]] = None) -> Dict:
        history = history or {}
        ranked = score_next_actions(history)
        return {
            "lead_id": lead_id,
            "recommended": ranked[0],
            "alternatives": ranked[1:],
            "reasoning": next_action_reasoning(history),
        }

    def detect_anomalies(self, metrics: Mapping[str, Any]) -> List[Dict]:
        return detect_anomalies(metrics or {})

    def _external_score(self, lead_data: Mapping[str, Any]) -> Optional[float]:
        try:
            scored = self.lead_scorer.invoke("score_lead", lead_data)
            return float(scored.score)
        except (CollaboratorUnavailable, AttributeError, TypeError, ValueError) as exc:
            logger.debug(f"Skipping external lead score: {exc}")
            return None
