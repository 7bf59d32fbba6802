"""Core domain models used by the learning and prediction engines."""

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Dict, Optional, Union

EMAIL_PERFORMANCE = "email_performance"
CONVERSIONS = "conversions"
PRICING = "pricing"
CONTENT_PERFORMANCE = "content_performance"

# Maximum number of records kept per metric collection, oldest evicted first.
RETENTION_LIMITS: Dict[str, int] = {
    EMAIL_PERFORMANCE: 10_000,
    CONVERSIONS: 5_000,
    PRICING: 2_000,
    CONTENT_PERFORMANCE: 5_000,
}

CONVERSION_OUTCOMES = ("sale", "no_response", "not_interested")
PRICING_OUTCOMES = ("accepted", "rejected", "countered")


@dataclass(frozen=True)
class EmailEvent:
    """Outcome of a single outreach email."""

    email_id: str
    lead_id: str
    subject: str
    sent_at: Optional[datetime]
    opened: bool
    clicked: bool
    replied: bool
    converted: bool
    recorded_at: datetime


@dataclass(frozen=True)
class ConversionEvent:
    """Final outcome for a lead after a number of touchpoints."""

    lead_id: str
    touchpoints: int
    outcome: str
    revenue: float
    recorded_at: datetime


@dataclass(frozen=True)
class PricingEvent:
    """A quoted price and how the prospect responded to it."""

    price: float
    outcome: str
    recorded_at: datetime


@dataclass(frozen=True)
class ContentEvent:
    """Performance snapshot for a content piece."""

    content_id: str
    type: str
    views: int
    engagement: float
    conversions: int
    recorded_at: datetime


MetricEvent = Union[EmailEvent, ConversionEvent, PricingEvent, ContentEvent]

EVENT_TYPES = {
    EMAIL_PERFORMANCE: EmailEvent,
    CONVERSIONS: ConversionEvent,
    PRICING: PricingEvent,
    CONTENT_PERFORMANCE: ContentEvent,
}


@dataclass
class Weights:
    """Advisory importance of each decision factor."""

    subject_line: float = 0.3
    send_time: float = 0.2
    offer_price: float = 0.25
    content_quality: float = 0.25

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class LeadScore:
    """Score returned by an external lead-scoring provider."""

    score: float
    confidence: str


@dataclass(frozen=True)
class TrackingResult:
    """Acknowledgement returned by every tracking call."""

    tracked: bool
    category: str
    error: Optional[str] = None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value) -> Optional[datetime]:
    """Accept a datetime or an ISO-8601 string; anything else yields None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None
