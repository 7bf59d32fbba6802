"""Pure analytics functions over metric events.

Nothing in this module touches storage, clocks or external providers; the
engine classes feed it events and collaborator results.
"""

from datetime import datetime, timedelta, timezone
from math import floor, isnan
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .models import ContentEvent, ConversionEvent, EmailEvent, PricingEvent, parse_timestamp

MIN_EMAILS_FOR_WEIGHTS = 50
MIN_CONVERTED_FOR_WEIGHTS = 5
MIN_SUBJECT_GROUP_SIZE = 3

MIN_CONVERSIONS_FOR_PREDICTION = 10
MIN_EMAILS_FOR_SEND_TIME = 100
AVG_ORDER_VALUE = 99
CLV_HIGH_PRIORITY = 50

DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
DEFAULT_SEND_HOUR = 10
DEFAULT_SEND_DAY = 1  # Tuesday

DEFAULT_PRICES = {
    "auditiqs": 99,
    "leadvaults": 97,
    "competeai": 197,
    "contentais": 25,
    "socialpulses": 49,
}
FALLBACK_PRICE = 99
MIN_ACCEPTED_FOR_PRICE = 5

NEXT_ACTIONS = (
    {"type": "email", "subject": "Follow up", "expected_conversion": 0.15},
    {"type": "call", "subject": "Personal call", "expected_conversion": 0.25},
    {"type": "discount", "subject": "Special offer", "expected_conversion": 0.35},
    {"type": "wait", "reason": "Not ready", "expected_conversion": 0.05},
)


def round_half_up(value: float, digits: int = 0) -> float:
    """Round like a spreadsheet would (0.5 goes up), unlike the built-in round."""
    factor = 10 ** digits
    result = floor(value * factor + 0.5) / factor
    return int(result) if digits == 0 else result


def confidence_for(sample_size: int, medium_at: int = 50, high_at: int = 100) -> str:
    if sample_size >= high_at:
        return "high"
    if sample_size >= medium_at:
        return "medium"
    return "low"


def first_subject_word(subject: str) -> str:
    return (subject or "").split(" ")[0].lower()


def rank_subject_words(events: Iterable[EmailEvent]) -> Dict:
    """
    Group emails by the first word of the subject and find the best converting one.

    Only groups with at least three emails compete; on equal rates the group
    seen first wins.
    """
    groups: Dict[str, Dict[str, int]] = {}
    for event in events:
        word = first_subject_word(event.subject)
        if word not in groups:
            groups[word] = {"total": 0, "converted": 0}
        groups[word]["total"] += 1
        if event.converted:
            groups[word]["converted"] += 1

    best_word: Optional[str] = None
    best_rate = 0.0
    for word, stats in groups.items():
        if stats["total"] < MIN_SUBJECT_GROUP_SIZE:
            continue
        rate = stats["converted"] / stats["total"]
        if rate > best_rate:
            best_rate = rate
            best_word = word

    return {"best_word": best_word, "best_rate": best_rate, "groups": groups}


def compute_email_overview(emails: Iterable[EmailEvent], conversions: Iterable[ConversionEvent]) -> Dict:
    """Headline rates in percent plus revenue attributed to sales."""
    emails_list = list(emails)
    conversions_list = list(conversions)
    total = len(emails_list)

    opened = sum(1 for event in emails_list if event.opened)
    clicked = sum(1 for event in emails_list if event.clicked)
    converted = sum(1 for event in emails_list if event.converted)
    revenue = sum(event.revenue or 0 for event in conversions_list if event.outcome == "sale")

    return {
        "emails": {
            "total": total,
            "open_rate": round(opened / total * 100, 1) if total else 0.0,
            "click_rate": round(clicked / total * 100, 1) if total else 0.0,
            "conversion_rate": round(converted / total * 100, 1) if total else 0.0,
        },
        "revenue": {
            "total": revenue,
            "per_email": round(revenue / total, 2) if total else 0.0,
        },
        "leads": {"total": len(conversions_list)},
    }


def build_recommendations(overview: Mapping[str, Any], provider_available: bool = False) -> List[Dict]:
    emails = overview["emails"]
    revenue = overview["revenue"]["total"]
    recommendations = []

    if emails["open_rate"] < 20:
        recommendations.append(
            {
                "priority": "high",
                "area": "subject_lines",
                "recommendation": "Open rate is low. Try more personalized subject lines.",
                "action": "Use AI to generate subject lines",
            }
        )
    if emails["conversion_rate"] < 3:
        recommendations.append(
            {
                "priority": "high",
                "area": "offer",
                "recommendation": "Conversion rate needs improvement. Consider testing different offers.",
                "action": "A/B test pricing and offers",
            }
        )
    if revenue < 100 and emails["total"] > 100:
        recommendations.append(
            {
                "priority": "medium",
                "area": "pricing",
                "recommendation": "Revenue per email is low. Consider upsells or higher-priced services.",
                "action": "Review pricing strategy",
            }
        )
    if provider_available and emails["total"] > 20:
        recommendations.append(
            {
                "priority": "low",
                "area": "ai_optimization",
                "recommendation": "AI analysis available. Enable AI-generated content for better results.",
                "action": "Generate subject lines with the text provider",
            }
        )
    return recommendations


def optimal_price(events: Iterable[PricingEvent], business_type: str) -> int:
    accepted = [event.price for event in events if event.outcome == "accepted"]
    if len(accepted) < MIN_ACCEPTED_FOR_PRICE:
        return DEFAULT_PRICES.get(business_type, FALLBACK_PRICE)
    return round_half_up(sum(accepted) / len(accepted))


def estimate_conversion(
    conversions: Iterable[ConversionEvent],
    touchpoints: Optional[float] = None,
    external_score: Optional[float] = None,
) -> Dict:
    """Base conversion rate adjusted for touchpoints and optionally blended with an external score."""
    conversions_list = list(conversions)
    total = len(conversions_list)
    if total < MIN_CONVERSIONS_FOR_PREDICTION:
        return {"probability": 0.1, "confidence": "low", "total_data_points": total}

    sales = sum(1 for event in conversions_list if event.outcome == "sale")
    base_rate = sales / total

    probability = base_rate
    touchpoints = _as_number(touchpoints)
    if touchpoints:
        probability = min(0.9, base_rate * (1 + touchpoints * 0.1))
    if external_score is not None:
        probability = (probability + external_score / 100) / 2

    return {
        "probability": round_half_up(probability, 2),
        "confidence": confidence_for(total),
        "base_rate": base_rate,
        "total_data_points": total,
    }


def lifetime_value(conversion: Mapping[str, Any]) -> Dict:
    probability = conversion["probability"]
    predicted_purchases = probability * 12
    clv = probability * AVG_ORDER_VALUE * predicted_purchases
    return {
        "predicted_clv": round_half_up(clv, 2),
        "confidence": conversion["confidence"],
        "factors": {
            "conversion_probability": probability,
            "avg_order_value": AVG_ORDER_VALUE,
            "predicted_purchases": predicted_purchases,
        },
        "recommendation": "high_priority" if clv > CLV_HIGH_PRIORITY else "standard",
    }


def churn_risk(engagement_metrics: Mapping[str, Any], now: datetime) -> Dict:
    """Additive churn score from recency of activity, open rate and recency of purchase."""
    risk_score = 0
    factors = []

    if _older_than(engagement_metrics.get("last_active"), now, timedelta(days=30)):
        risk_score += 30
        factors.append("No activity in 30 days")

    open_rate = _as_number(engagement_metrics.get("open_rate"))
    if open_rate is not None and open_rate < 20:
        risk_score += 20
        factors.append("Low email engagement")

    if _older_than(engagement_metrics.get("last_purchase"), now, timedelta(days=60)):
        risk_score += 40
        factors.append("No recent purchases")

    risk_score = max(0, min(100, risk_score))
    if risk_score > 60:
        level, action = "high", "immediate_outreach"
    elif risk_score > 30:
        level, action = "medium", "send_reengagement"
    else:
        level, action = "low", "continue_normal"

    return {
        "risk_score": risk_score,
        "level": level,
        "factors": factors,
        "recommended_action": action,
    }


def best_send_time(events: Iterable[EmailEvent]) -> Dict:
    events_list = list(events)
    total = len(events_list)
    if total < MIN_EMAILS_FOR_SEND_TIME:
        return {"best_time": f"{DEFAULT_SEND_HOUR}:00", "day": DAY_NAMES[DEFAULT_SEND_DAY], "confidence": "low"}

    by_hour: Dict[int, int] = {}
    by_day: Dict[int, int] = {}
    for event in events_list:
        if not event.opened or event.sent_at is None:
            continue
        by_hour[event.sent_at.hour] = by_hour.get(event.sent_at.hour, 0) + 1
        weekday = event.sent_at.weekday()
        by_day[weekday] = by_day.get(weekday, 0) + 1

    best_hour = _first_max(by_hour, DEFAULT_SEND_HOUR)
    best_day = _first_max(by_day, DEFAULT_SEND_DAY)

    return {
        "best_time": f"{best_hour}:00",
        "day": DAY_NAMES[best_day],
        "confidence": "high" if total >= 500 else "medium",
    }


def score_next_actions(history: Mapping[str, Any]) -> List[Dict]:
    """Score the action catalogue for a lead, highest first, stable on ties."""
    emails_sent = history.get("emails_sent")
    last_action = history.get("last_action")

    scored = []
    for action in NEXT_ACTIONS:
        score = action["expected_conversion"] * 100
        if emails_sent is not None and emails_sent > 3 and action["type"] == "email":
            score *= 0.5
        if last_action == "discount" and action["type"] == "discount":
            score *= 0.3
        scored.append({**action, "score": round_half_up(score, 2)})

    return sorted(scored, key=lambda item: item["score"], reverse=True)


def next_action_reasoning(history: Mapping[str, Any]) -> str:
    emails_sent = history.get("emails_sent")
    if emails_sent == 0:
        return "Start with initial outreach email"
    if emails_sent is not None and emails_sent < 3:
        return "Continue nurturing with follow-ups"
    if history.get("last_action") == "email" and history.get("last_response") == "none":
        return "Try a different approach - call or offer"
    return "Standard nurturing sequence"


def detect_anomalies(metrics: Mapping[str, Any]) -> List[Dict]:
    anomalies = []

    revenue_change = metrics.get("revenue_change")
    if revenue_change is not None and revenue_change < -50:
        anomalies.append(
            {
                "type": "revenue_drop",
                "severity": "high",
                "message": "Revenue dropped more than 50% vs average",
                "recommendation": "Review recent changes to pricing or marketing",
            }
        )

    bounce_rate = metrics.get("bounce_rate")
    if bounce_rate is not None and bounce_rate > 10:
        anomalies.append(
            {
                "type": "high_bounce",
                "severity": "medium",
                "message": "Email bounce rate is high",
                "recommendation": "Review email list quality",
            }
        )

    traffic_change = metrics.get("traffic_change")
    if traffic_change is not None and traffic_change > 200:
        anomalies.append(
            {
                "type": "traffic_spike",
                "severity": "low",
                "message": "Unusual traffic increase detected",
                "recommendation": "Investigate source - could be bot traffic",
            }
        )

    return anomalies


def fit_subject_line_model(events: Iterable[EmailEvent]) -> Dict:
    events_list = list(events)
    if not events_list:
        return {"best_length": 0, "best_patterns": [], "avoid_patterns": [], "accuracy": 0.0}

    converted = [event for event in events_list if event.converted]
    avg_length = sum(len(event.subject) for event in events_list) / len(events_list)

    word_counts: Dict[str, int] = {}
    for event in converted:
        for word in event.subject.lower().split(" "):
            if len(word) > 2:
                word_counts[word] = word_counts.get(word, 0) + 1

    ranked = [word for word, _ in sorted(word_counts.items(), key=lambda item: item[1], reverse=True)]

    return {
        "best_length": round_half_up(avg_length),
        "best_patterns": ranked[:10],
        "avoid_patterns": ranked[-5:],
        "question_share": _share(converted, lambda event: "?" in event.subject),
        "accuracy": len(converted) / len(events_list),
    }


def fit_pricing_model(events: Iterable[PricingEvent]) -> Dict:
    events_list = list(events)
    accepted = [event.price for event in events_list if event.outcome == "accepted"]
    rejected = [event.price for event in events_list if event.outcome == "rejected"]

    return {
        "optimal_range": {"min": min(accepted), "max": max(accepted)} if accepted else None,
        "sweet_spot": round_half_up(sum(accepted) / len(accepted)) if accepted else None,
        "rejection_threshold": max(rejected) if rejected else None,
        "accuracy": len(accepted) / len(events_list) if events_list else 0.0,
    }


def fit_content_model(events: Iterable[ContentEvent]) -> Dict:
    by_type: Dict[str, Dict[str, float]] = {}
    for event in events:
        if event.type not in by_type:
            by_type[event.type] = {"total": 0, "conversions": 0}
        by_type[event.type]["total"] += 1
        by_type[event.type]["conversions"] += event.conversions or 0

    rankings = sorted(
        (
            {
                "type": content_type,
                "avg_conversions": stats["conversions"] / stats["total"],
                "total": stats["total"],
            }
            for content_type, stats in by_type.items()
        ),
        key=lambda item: item["avg_conversions"],
        reverse=True,
    )

    return {"best_types": rankings[:3], "worst_types": rankings[-2:]}


def fit_lead_scoring_model(events: Iterable[ConversionEvent]) -> Dict:
    events_list = list(events)
    sales = [event.touchpoints or 0 for event in events_list if event.outcome == "sale"]
    no_sales = [event.touchpoints or 0 for event in events_list if event.outcome != "sale"]

    avg_sale = sum(sales) / len(sales) if sales else None
    avg_no_sale = sum(no_sales) / len(no_sales) if no_sales else None

    return {
        "optimal_touchpoints": round_half_up(avg_sale) if avg_sale is not None else None,
        "stop_touchpoints": round_half_up(avg_no_sale * 1.5) if avg_no_sale is not None else None,
    }


def _first_max(counts: Dict[int, int], default: int) -> int:
    best_key = default
    best_count = 0
    for key, count in counts.items():
        if count > best_count:
            best_count = count
            best_key = key
    return best_key


def _as_number(value) -> Optional[float]:
    # Caller-supplied numbers may arrive as strings; anything unusable counts as absent.
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if isnan(number) else number


def _older_than(value, now: datetime, age: timedelta) -> bool:
    timestamp = parse_timestamp(value)
    if timestamp is None:
        return True
    return _as_aware(now) - _as_aware(timestamp) > age


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _share(items: List, predicate) -> float:
    if not items:
        return 0.0
    return sum(1 for item in items if predicate(item)) / len(items)
