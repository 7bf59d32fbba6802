import random
from datetime import datetime, timezone

import pytest

from marketlearn.adapters import InMemoryCollectionStore
from marketlearn.learning import SUBJECT_TEMPLATES, LearningEngine
from marketlearn.metric_store import MetricStore
from marketlearn.models import EMAIL_PERFORMANCE, PRICING, EmailEvent, PricingEvent
from marketlearn.providers import ProviderChain

NOW = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


class StaticSubjects:
    def __init__(self, subjects, available=True):
        self.subjects = subjects
        self.available = available
        self.calls = []

    def is_available(self):
        return self.available

    def generate_subjects(self, examples, business_type, lead_data=None):
        self.calls.append((list(examples), business_type))
        return self.subjects


class ExplodingSubjects(StaticSubjects):
    def generate_subjects(self, examples, business_type, lead_data=None):
        raise RuntimeError("quota exceeded")


def _add_emails(store, subject, count, converted_count):
    for idx in range(count):
        store.append(
            EMAIL_PERFORMANCE,
            EmailEvent(
                email_id=f"{subject}-{idx}",
                lead_id="lead",
                subject=subject,
                sent_at=NOW,
                opened=True,
                clicked=False,
                replied=False,
                converted=idx < converted_count,
                recorded_at=NOW,
            ),
        )


def _engine(provider=None):
    store = MetricStore(InMemoryCollectionStore())
    chain = ProviderChain([provider] if provider else [], name="text generator")
    return store, LearningEngine(store, chain, rng=random.Random(3))


def test_update_weights_needs_fifty_emails():
    store, engine = _engine()
    _add_emails(store, "Idea for you", 49, 49)

    assert engine.update_weights() == pytest.approx(
        {"subject_line": 0.3, "send_time": 0.2, "offer_price": 0.25, "content_quality": 0.25}
    )
    assert engine.best_subject_word is None


def test_update_weights_needs_five_conversions():
    store, engine = _engine()
    _add_emails(store, "Idea for you", 60, 4)

    assert engine.update_weights()["subject_line"] == pytest.approx(0.3)


def test_update_weights_reinforces_strong_opening_word_up_to_cap():
    store, engine = _engine()
    _add_emails(store, "Hello there", 40, 0)
    _add_emails(store, "Idea for you", 10, 6)

    first = engine.update_weights()
    second = engine.update_weights()
    third = engine.update_weights()

    assert engine.best_subject_word == "idea"
    assert engine.best_subject_rate == pytest.approx(0.6)
    assert first["subject_line"] == pytest.approx(0.4)
    assert second["subject_line"] == pytest.approx(0.5)
    assert third["subject_line"] == pytest.approx(0.5)
    assert third["send_time"] == pytest.approx(0.2)


def test_small_groups_do_not_compete():
    store, engine = _engine()
    _add_emails(store, "hello friend", 48, 5)
    _add_emails(store, "Wow look", 2, 2)

    weights = engine.update_weights()

    assert engine.best_subject_word == "hello"
    assert weights["subject_line"] == pytest.approx(0.3)


def test_equal_rates_keep_first_seen_word():
    store, engine = _engine()
    _add_emails(store, "Alpha offer", 10, 5)
    _add_emails(store, "Beta offer", 10, 5)
    _add_emails(store, "Gamma offer", 30, 0)

    engine.update_weights()

    assert engine.best_subject_word == "alpha"
    assert engine.current_weights()["subject_line"] == pytest.approx(0.4)


def test_optimized_subject_uses_templates_with_few_examples():
    provider = StaticSubjects(["Generated subject"])
    store, engine = _engine(provider)
    _add_emails(store, "Idea for you", 9, 9)

    subject = engine.get_optimized_subject("leads", {"company": "Acme"})

    assert subject in SUBJECT_TEMPLATES["leads"]
    assert provider.calls == []


def test_optimized_subject_delegates_to_provider():
    provider = StaticSubjects(["Generated one", "Generated two"])
    store, engine = _engine(provider)
    _add_emails(store, "Idea for you", 60, 60)

    subject = engine.get_optimized_subject("seo-audit")

    assert subject in ("Generated one", "Generated two")
    examples, business_type = provider.calls[0]
    assert len(examples) == 50
    assert business_type == "seo-audit"


def test_optimized_subject_falls_back_when_provider_fails():
    store, engine = _engine(ExplodingSubjects([]))
    _add_emails(store, "Idea for you", 12, 12)

    assert engine.get_optimized_subject("seo-audit") in SUBJECT_TEMPLATES["seo-audit"]


def test_optimized_subject_falls_back_when_provider_returns_nothing():
    store, engine = _engine(StaticSubjects([]))
    _add_emails(store, "Idea for you", 12, 12)

    assert engine.get_optimized_subject("unknown-type") in SUBJECT_TEMPLATES["general"]


def test_optimized_subject_without_provider_uses_templates():
    store, engine = _engine(StaticSubjects(["never"], available=False))
    _add_emails(store, "Idea for you", 12, 12)

    assert engine.get_optimized_subject("general") in SUBJECT_TEMPLATES["general"]


def test_optimal_price_defaults_then_learns():
    store, engine = _engine()

    assert engine.get_optimal_price("competeai") == 197
    assert engine.get_optimal_price("something-new") == 99

    for price in (80, 90, 100, 110, 121):
        store.append(PRICING, PricingEvent(price=price, outcome="accepted", recorded_at=NOW))
    store.append(PRICING, PricingEvent(price=500, outcome="rejected", recorded_at=NOW))

    assert engine.get_optimal_price("competeai") == 100


def test_insights_report_rates_and_template_mode():
    store, engine = _engine()
    _add_emails(store, "Hello there", 10, 1)

    insights = engine.get_insights()

    assert insights["metrics"]["emails"]["total"] == 10
    assert insights["metrics"]["emails"]["open_rate"] == 100.0
    assert insights["metrics"]["emails"]["conversion_rate"] == 10.0
    assert insights["ai_status"] == "template_mode"
    assert insights["weights"]["subject_line"] == pytest.approx(0.3)
    assert insights["recommendations"] == []
