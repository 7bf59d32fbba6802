"""Training pipeline and A/B test ledger."""

from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from .analytics import fit_content_model, fit_lead_scoring_model, fit_pricing_model, fit_subject_line_model
from .errors import PersistenceError
from .metric_store import MetricStore
from .models import CONTENT_PERFORMANCE, CONVERSIONS, EMAIL_PERFORMANCE, PRICING, parse_timestamp, utcnow

MODELS_DOCUMENT = "trained_models"
STATE_DOCUMENT = "training_state"
AB_TESTS_DOCUMENT = "ab_tests"

# (model name, metric category, minimum samples, fitter)
TRAINERS = (
    ("subject_line", EMAIL_PERFORMANCE, 50, fit_subject_line_model),
    ("pricing", PRICING, 30, fit_pricing_model),
    ("content", CONTENT_PERFORMANCE, 20, fit_content_model),
    ("lead_scoring", CONVERSIONS, 50, fit_lead_scoring_model),
)


class TrainingPipeline:
    """
    Batch job that fits summary models from the metric store.

    The last-run timestamp is written only after every model has been saved, so
    an interrupted run is simply repeated on the next ``should_train`` check.
    """

    def __init__(
        self,
        store: MetricStore,
        interval: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.interval = interval
        self.clock = clock

    @property
    def last_trained_at(self) -> Optional[datetime]:
        return parse_timestamp(self.store.load_document(STATE_DOCUMENT).get("last_trained_at"))

    def should_train(self) -> bool:
        last = self.last_trained_at
        if last is None:
            return True
        return self.clock() - last > self.interval

    def train(self) -> Dict[str, Any]:
        """Run every sub-trainer, persist the models, then record the run time.

        Raises:
            PersistenceError: models or the run timestamp could not be written.
        """
        started = self.clock()
        logger.info("Starting training pipeline")

        models: List[Dict[str, Any]] = [
            self._train_one(name, category, min_samples, fitter, started)
            for name, category, min_samples, fitter in TRAINERS
        ]

        self._save_models(models)
        self.store.save_document(STATE_DOCUMENT, {"last_trained_at": started.isoformat()})

        trained = [model["name"] for model in models if model["status"] == "trained"]
        logger.info(f"Training complete, fitted {trained or 'no models'}")
        return {"timestamp": started.isoformat(), "models": models}

    def run_if_due(self) -> Optional[Dict[str, Any]]:
        """Train when the interval has elapsed; failed persistence is logged and yields None."""
        if not self.should_train():
            return None
        try:
            return self.train()
        except PersistenceError as exc:
            logger.error(f"Training run not recorded: {exc}")
            return None

    def load_models(self) -> Dict[str, Dict[str, Any]]:
        return self.store.load_document(MODELS_DOCUMENT)

    def get_model(self, name: str) -> Optional[Dict[str, Any]]:
        return self.load_models().get(name)

    def _train_one(self, name, category, min_samples, fitter, trained_at: datetime) -> Dict[str, Any]:
        events = self.store.load(category)
        if len(events) < min_samples:
            logger.debug(f"{name}: {len(events)} samples, need {min_samples}")
            return {"name": name, "status": "insufficient_data", "samples": len(events)}

        return {
            "name": name,
            "type": name,
            "status": "trained",
            "samples": len(events),
            **fitter(events),
            "trained_at": trained_at.isoformat(),
        }

    def _save_models(self, models: List[Dict[str, Any]]) -> None:
        existing = self.store.load_document(MODELS_DOCUMENT, for_update=True)
        for model in models:
            existing[model["name"]] = model
        self.store.save_document(MODELS_DOCUMENT, existing)


class ABTestLedger:
    """Exposure and conversion counters for two-variant tests."""

    def __init__(self, store: MetricStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    def run_ab_test(self, test_id: str, variant_a: Any, variant_b: Any) -> Dict[str, Any]:
        tests = self.store.load_document(AB_TESTS_DOCUMENT, for_update=True)
        tests[test_id] = {
            "id": test_id,
            "variant_a": variant_a,
            "variant_b": variant_b,
            "started": self.clock().isoformat(),
            "status": "running",
            "results": {"a": 0, "b": 0, "a_conversions": 0, "b_conversions": 0},
        }
        self.store.save_document(AB_TESTS_DOCUMENT, tests)
        logger.info(f"Started A/B test {test_id}")
        return {"test_id": test_id, "status": "running", "variant_a": variant_a, "variant_b": variant_b}

    def record_ab_result(self, test_id: str, variant: str, converted: bool) -> None:
        tests = self.store.load_document(AB_TESTS_DOCUMENT, for_update=True)
        test = tests.get(test_id)
        if test is None:
            logger.debug(f"Ignoring result for unknown A/B test {test_id}")
            return

        key = str(variant).strip().lower()
        if key not in ("a", "b"):
            logger.debug(f"Ignoring unknown variant {variant!r} for A/B test {test_id}")
            return

        results = test["results"]
        results[key] += 1
        if converted:
            results[f"{key}_conversions"] += 1
        self.store.save_document(AB_TESTS_DOCUMENT, tests)

    def get_ab_test(self, test_id: str) -> Optional[Dict[str, Any]]:
        return self.store.load_document(AB_TESTS_DOCUMENT).get(test_id)

    def ab_test_report(self, test_id: str) -> Optional[Dict[str, Any]]:
        test = self.get_ab_test(test_id)
        if test is None:
            return None

        results = test["results"]
        rate_a = results["a_conversions"] / results["a"] if results["a"] else 0.0
        rate_b = results["b_conversions"] / results["b"] if results["b"] else 0.0
        if rate_a == rate_b:
            leader = None
        else:
            leader = "A" if rate_a > rate_b else "B"

        return {
            "test_id": test_id,
            "status": test.get("status", "running"),
            "exposures": {"A": results["a"], "B": results["b"]},
            "conversion_rates": {"A": rate_a, "B": rate_b},
            "leader": leader,
        }
