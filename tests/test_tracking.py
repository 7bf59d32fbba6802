from datetime import datetime, timezone

from loguru import logger

from marketlearn.adapters import InMemoryCollectionStore
from marketlearn.errors import StoreReadError, StoreWriteError
from marketlearn.metric_store import MetricStore
from marketlearn.models import CONTENT_PERFORMANCE, CONVERSIONS, EMAIL_PERFORMANCE, PRICING
from marketlearn.tracking import TrackingService

NOW = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


class SpyLearning:
    def __init__(self, fail=False):
        self.calls = 0
        self.fail = fail

    def update_weights(self):
        self.calls += 1
        if self.fail:
            raise RuntimeError("weights exploded")
        return {}


class ReadOnlyBackend(InMemoryCollectionStore):
    def save(self, name, value):
        raise StoreWriteError("read-only")


def _service(learning=None, backend=None):
    store = MetricStore(backend or InMemoryCollectionStore())
    return store, TrackingService(store, learning or SpyLearning(), clock=lambda: NOW)


def test_track_email_applies_defaults_and_recorded_at():
    store, tracking = _service()

    result = tracking.track_email("e1", "l1", "Quick question", sent_at="2026-10-14T14:00:00+00:00")
    tracking.wait_for_background()

    assert result.tracked is True
    assert result.category == EMAIL_PERFORMANCE
    event = store.load(EMAIL_PERFORMANCE)[0]
    assert (event.opened, event.clicked, event.replied, event.converted) == (False, False, False, False)
    assert event.recorded_at == NOW
    assert event.sent_at.hour == 14


def test_unparseable_sent_at_is_stored_as_none_and_logged():
    store, tracking = _service()
    messages = []
    sink_id = logger.add(messages.append, level="DEBUG", format="{message}")
    try:
        result = tracking.track_email("e1", "l1", "Quick question", sent_at="next tuesday")
        tracking.wait_for_background()
    finally:
        logger.remove(sink_id)

    assert result.tracked is True
    assert store.load(EMAIL_PERFORMANCE)[0].sent_at is None
    assert any("next tuesday" in message for message in messages)


def test_track_email_schedules_weight_update():
    learning = SpyLearning()
    _, tracking = _service(learning)

    tracking.track_email("e1", "l1", "Hello", opened=True)
    tracking.track_email("e2", "l1", "Hello", converted=True)
    tracking.wait_for_background()

    assert learning.calls == 2
    tracking.close()


def test_weight_update_failure_does_not_fail_tracking():
    learning = SpyLearning(fail=True)
    store, tracking = _service(learning)

    result = tracking.track_email("e1", "l1", "Hello")
    tracking.wait_for_background()

    assert result.tracked is True
    assert learning.calls == 1
    assert len(store.load(EMAIL_PERFORMANCE)) == 1


def test_failed_persistence_is_reported_not_raised():
    _, tracking = _service(backend=ReadOnlyBackend())

    result = tracking.track_pricing(99, "accepted")

    assert result.tracked is False
    assert result.category == PRICING
    assert "pricing" in result.error


def test_track_conversion_accepts_negative_revenue_and_coerces():
    store, tracking = _service()

    result = tracking.track_conversion("l1", touchpoints="4", outcome="sale", revenue=-25)

    event = store.load(CONVERSIONS)[0]
    assert result.tracked is True
    assert event.touchpoints == 4
    assert event.revenue == -25.0
    assert event.outcome == "sale"


def test_track_content_defaults_numeric_fields():
    store, tracking = _service()

    tracking.track_content("c1", "blog-post", views=120)

    event = store.load(CONTENT_PERFORMANCE)[0]
    assert event.type == "blog-post"
    assert (event.views, event.engagement, event.conversions) == (120, 0.0, 0)


class LockedReadBackend(InMemoryCollectionStore):
    def __init__(self):
        super().__init__()
        self.locked = False

    def load(self, name):
        if self.locked:
            raise StoreReadError("database is locked")
        return super().load(name)


def test_unreadable_collection_is_reported_and_not_overwritten():
    backend = LockedReadBackend()
    store, tracking = _service(backend=backend)
    tracking.track_conversion("l1", outcome="sale", revenue=99)

    backend.locked = True
    result = tracking.track_conversion("l2", outcome="no_response")
    backend.locked = False

    assert result.tracked is False
    assert [event.lead_id for event in store.load(CONVERSIONS)] == ["l1"]
