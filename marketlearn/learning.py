"""Learning engine: adaptive weights, subject line selection and pricing summaries."""

import random
import threading
from typing import Any, Dict, Mapping, Optional

from loguru import logger

from .analytics import (
    MIN_CONVERTED_FOR_WEIGHTS,
    MIN_EMAILS_FOR_WEIGHTS,
    build_recommendations,
    compute_email_overview,
    optimal_price,
    rank_subject_words,
)
from .errors import CollaboratorUnavailable
from .metric_store import MetricStore
from .models import CONVERSIONS, EMAIL_PERFORMANCE, PRICING, Weights
from .providers import ProviderChain

LEARNING_RATE = 0.1
SUBJECT_RATE_THRESHOLD = 0.3
MAX_WEIGHT = 0.5

SUBJECT_EXAMPLES_WINDOW = 50
MIN_SUBJECT_EXAMPLES = 10

SUBJECT_TEMPLATES = {
    "seo-audit": ["Quick SEO question", "SEO improvement idea", "Saw your site..."],
    "leads": ["Lead generation help?", "Fresh leads for you", "Helping with leads"],
    "general": ["Quick question", "Thought you should know", "Ideas for you"],
}


class LearningEngine:
    """Owns the weight set and the best-known summaries derived from email history.

    Construct one per process and hand it to every consumer; tests build a fresh
    instance each time.
    """

    def __init__(
        self,
        store: MetricStore,
        text_generator: Optional[ProviderChain] = None,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.text_generator = text_generator or ProviderChain(name="text generator")
        self.rng = rng or random.Random()
        self.weights = Weights()
        self.best_subject_word: Optional[str] = None
        self.best_subject_rate = 0.0
        self._lock = threading.Lock()

    def update_weights(self) -> Dict[str, float]:
        """Reinforce the subject line weight when one opening word converts well.

        Needs at least 50 emails with 5 conversions; otherwise the weights are
        returned unchanged.
        """
        emails = self.store.load(EMAIL_PERFORMANCE)
        if len(emails) < MIN_EMAILS_FOR_WEIGHTS:
            return self.current_weights()
        if sum(1 for event in emails if event.converted) < MIN_CONVERTED_FOR_WEIGHTS:
            return self.current_weights()

        ranking = rank_subject_words(emails)

        with self._lock:
            self.best_subject_word = ranking["best_word"]
            self.best_subject_rate = ranking["best_rate"]
            if ranking["best_rate"] > SUBJECT_RATE_THRESHOLD:
                self.weights.subject_line = min(MAX_WEIGHT, self.weights.subject_line + LEARNING_RATE)
            weights = self.weights.as_dict()

        logger.info(f"Weights updated: {weights} (best opening word {ranking['best_word']!r})")
        return weights

    def current_weights(self) -> Dict[str, float]:
        with self._lock:
            return self.weights.as_dict()

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "weights": self.weights.as_dict(),
                "best_subject_word": self.best_subject_word,
                "best_subject_rate": self.best_subject_rate,
            }

    def get_optimized_subject(self, business_type: str, lead_data: Optional[Mapping[str, Any]] = None) -> str:
        emails = self.store.load(EMAIL_PERFORMANCE)
        examples = [event.subject for event in emails if event.converted][-SUBJECT_EXAMPLES_WINDOW:]

        if len(examples) < MIN_SUBJECT_EXAMPLES:
            return self.get_best_subject(business_type)

        try:
            proposals = self.text_generator.invoke("generate_subjects", examples, business_type, lead_data)
        except CollaboratorUnavailable as exc:
            logger.debug(f"Using subject templates: {exc}")
            return self.get_best_subject(business_type)

        proposals = [subject for subject in (proposals or []) if subject]
        if not proposals:
            logger.warning("Text generator returned no subjects, using templates")
            return self.get_best_subject(business_type)
        return self.rng.choice(proposals)

    def get_best_subject(self, business_type: str) -> str:
        options = SUBJECT_TEMPLATES.get(business_type, SUBJECT_TEMPLATES["general"])
        return self.rng.choice(options)

    def get_optimal_price(self, business_type: str) -> int:
        return optimal_price(self.store.load(PRICING), business_type)

    def get_insights(self) -> Dict[str, Any]:
        overview = compute_email_overview(self.store.load(EMAIL_PERFORMANCE), self.store.load(CONVERSIONS))
        provider_available = self.text_generator.is_available()
        snapshot = self.snapshot()
        return {
            "metrics": overview,
            "weights": snapshot["weights"],
            "best_subject_word": snapshot["best_subject_word"],
            "recommendations": build_recommendations(overview, provider_available=provider_available),
            "ai_status": "active" if provider_available else "template_mode",
        }
