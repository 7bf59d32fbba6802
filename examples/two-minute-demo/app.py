"""Two-minute MarketLearn demo: FastAPI backend over an in-memory store."""

from datetime import datetime, timedelta, timezone
from random import Random
from typing import Optional

from fastapi import FastAPI

from marketlearn.adapters import InMemoryCollectionStore
from marketlearn.config import configure_logging
from marketlearn.service import MarketLearnService

RNG = Random(42)

configure_logging("INFO")
app = FastAPI(title="MarketLearn Two-Minute Demo", version="0.1.0")
SERVICE = MarketLearnService(InMemoryCollectionStore(), rng=Random(7))


def _seed_demo_data(service: MarketLearnService) -> None:
    now = datetime.now(timezone.utc)
    openers = ["Quick", "Idea", "Question", "Saw", "Helping"]

    for idx in range(180):
        opener = openers[idx % len(openers)]
        converted = opener == "Idea" and idx % 2 == 0
        service.tracking.track_email(
            email_id=f"email-{idx}",
            lead_id=f"lead-{idx % 60}",
            subject=f"{opener} about your website",
            sent_at=now - timedelta(hours=idx * 7),
            opened=RNG.random() < 0.45,
            clicked=RNG.random() < 0.15,
            converted=converted,
        )

    for idx in range(70):
        outcome = "sale" if idx % 4 == 0 else RNG.choice(["no_response", "not_interested"])
        service.tracking.track_conversion(
            lead_id=f"lead-{idx}",
            touchpoints=RNG.randint(1, 7),
            outcome=outcome,
            revenue=99 if outcome == "sale" else 0,
        )

    for _ in range(40):
        price = RNG.choice([49, 79, 99, 149, 199])
        outcome = "accepted" if price <= 99 and RNG.random() < 0.7 else "rejected"
        service.tracking.track_pricing(price, outcome)

    for idx in range(30):
        content_type = RNG.choice(["blog-post", "case-study", "social", "newsletter"])
        service.tracking.track_content(
            content_id=f"content-{idx}",
            content_type=content_type,
            views=RNG.randint(50, 800),
            engagement=round(RNG.uniform(0.01, 0.2), 3),
            conversions=RNG.randint(0, 6),
        )

    service.tracking.wait_for_background()


_seed_demo_data(SERVICE)


@app.get("/health")
def health() -> dict:
    return {"status": "ok", "demo": "marketlearn-two-minute"}


@app.get("/api/insights")
def insights() -> dict:
    return SERVICE.learning.get_insights()


@app.get("/api/predictions")
def predictions(touchpoints: Optional[int] = None) -> dict:
    lead = {"touchpoints": touchpoints} if touchpoints is not None else {}
    return {
        "conversion": SERVICE.predictive.predict_conversion(lead),
        "clv": SERVICE.predictive.predict_clv(lead),
        "send_time": SERVICE.predictive.predict_best_send_time(),
        "subject": SERVICE.learning.get_optimized_subject("general"),
        "price": SERVICE.learning.get_optimal_price("auditiqs"),
    }


@app.post("/api/train")
def train() -> dict:
    result = SERVICE.training.run_if_due()
    return result or {"status": "skipped", "models": SERVICE.training.load_models()}


@app.get("/api/models")
def models() -> dict:
    return SERVICE.training.load_models()
