"""Tracking API: turns caller-supplied outcomes into metric events."""

from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import datetime
from typing import Callable, List, Optional

from loguru import logger

from .errors import PersistenceError
from .learning import LearningEngine
from .metric_store import MetricStore
from .models import (
    CONTENT_PERFORMANCE,
    CONVERSIONS,
    EMAIL_PERFORMANCE,
    PRICING,
    ContentEvent,
    ConversionEvent,
    EmailEvent,
    MetricEvent,
    PricingEvent,
    TrackingResult,
    parse_timestamp,
    utcnow,
)


class TrackingService:
    """Appends events to the metric store.

    Values are coerced to their field types but otherwise accepted as given.
    A write that fails is reported through ``TrackingResult.tracked``.
    """

    def __init__(
        self,
        store: MetricStore,
        learning: LearningEngine,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.learning = learning
        self.clock = clock
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="weight-update")
        self._pending: List[Future] = []

    def track_email(
        self,
        email_id: str,
        lead_id: str,
        subject: str,
        sent_at=None,
        opened: bool = False,
        clicked: bool = False,
        replied: bool = False,
        converted: bool = False,
    ) -> TrackingResult:
        parsed_sent_at = parse_timestamp(sent_at)
        if parsed_sent_at is None and sent_at is not None:
            logger.debug(f"Storing email {email_id} without sent_at, unparseable value {sent_at!r}")
        event = EmailEvent(
            email_id=str(email_id),
            lead_id=str(lead_id),
            subject=str(subject or ""),
            sent_at=parsed_sent_at,
            opened=bool(opened),
            clicked=bool(clicked),
            replied=bool(replied),
            converted=bool(converted),
            recorded_at=self.clock(),
        )
        result = self._append(EMAIL_PERFORMANCE, event)
        self._schedule_weight_update()
        return result

    def track_conversion(
        self,
        lead_id: str,
        touchpoints: int = 0,
        outcome: str = "no_response",
        revenue: float = 0,
    ) -> TrackingResult:
        event = ConversionEvent(
            lead_id=str(lead_id),
            touchpoints=int(touchpoints or 0),
            outcome=str(outcome),
            revenue=float(revenue or 0),
            recorded_at=self.clock(),
        )
        return self._append(CONVERSIONS, event)

    def track_pricing(self, price: float, outcome: str) -> TrackingResult:
        event = PricingEvent(price=float(price), outcome=str(outcome), recorded_at=self.clock())
        return self._append(PRICING, event)

    def track_content(
        self,
        content_id: str,
        content_type: str,
        views: int = 0,
        engagement: float = 0,
        conversions: int = 0,
    ) -> TrackingResult:
        event = ContentEvent(
            content_id=str(content_id),
            type=str(content_type),
            views=int(views or 0),
            engagement=float(engagement or 0),
            conversions=int(conversions or 0),
            recorded_at=self.clock(),
        )
        return self._append(CONTENT_PERFORMANCE, event)

    def wait_for_background(self, timeout: Optional[float] = None) -> None:
        """Block until every scheduled weight update has finished."""
        pending, self._pending = self._pending, []
        wait(pending, timeout=timeout)

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def _append(self, category: str, event: MetricEvent) -> TrackingResult:
        try:
            self.store.append(category, event)
        except PersistenceError as exc:
            return TrackingResult(tracked=False, category=category, error=str(exc))
        return TrackingResult(tracked=True, category=category)

    def _schedule_weight_update(self) -> None:
        self._pending = [future for future in self._pending if not future.done()]
        future = self._executor.submit(self.learning.update_weights)
        future.add_done_callback(_log_update_failure)
        self._pending.append(future)


def _log_update_failure(future: Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.opt(exception=exc).error(f"Background weight update failed: {exc}")
