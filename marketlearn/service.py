"""Application facade wiring storage, engines and providers together."""

import random
from datetime import datetime, timedelta
from typing import Callable, Optional

from loguru import logger
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from .adapters import InMemoryCollectionStore, JsonFileStore, SQLAlchemyCollectionStore
from .config import Settings, get_settings
from .learning import LearningEngine
from .metric_store import MetricStore
from .models import utcnow
from .ports import CollectionStore
from .predictive import PredictiveEngine
from .providers import ChatCompletionsClient, ChatLeadScorer, ChatSubjectGenerator, ProviderChain
from .tracking import TrackingService
from .training import ABTestLedger, TrainingPipeline


class MarketLearnService:
    """Facade that owns one instance of every component, independent of web frameworks."""

    def __init__(
        self,
        backend: CollectionStore,
        text_generator: Optional[ProviderChain] = None,
        lead_scorer: Optional[ProviderChain] = None,
        training_interval: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = utcnow,
        rng: Optional[random.Random] = None,
    ):
        self.store = MetricStore(backend)
        self.text_generator = text_generator or ProviderChain(name="text generator")
        self.lead_scorer = lead_scorer or ProviderChain(name="lead scorer")
        self.learning = LearningEngine(self.store, self.text_generator, rng=rng)
        self.tracking = TrackingService(self.store, self.learning, clock=clock)
        self.predictive = PredictiveEngine(self.store, self.lead_scorer, clock=clock)
        self.training = TrainingPipeline(self.store, interval=training_interval, clock=clock)
        self.ab_tests = ABTestLedger(self.store, clock=clock)

    def close(self) -> None:
        self.tracking.close()


def build_backend(settings: Settings) -> CollectionStore:
    if settings.store_backend == "memory":
        return InMemoryCollectionStore()
    if settings.store_backend == "sqlalchemy":
        engine = create_engine(settings.database_url)
        store = SQLAlchemyCollectionStore(sessionmaker(bind=engine))
        store.ensure_schema()
        return store
    return JsonFileStore(settings.data_dir)


def build_service(settings: Optional[Settings] = None) -> MarketLearnService:
    """Build the process-wide service from settings."""
    settings = settings or get_settings()

    client = ChatCompletionsClient(
        api_key=settings.llm_api_key,
        base_url=settings.llm_base_url,
        model=settings.llm_model,
        timeout=settings.collaborator_timeout_seconds,
    )
    timeout = settings.collaborator_timeout_seconds
    service = MarketLearnService(
        build_backend(settings),
        text_generator=ProviderChain([ChatSubjectGenerator(client)], timeout=timeout, name="text generator"),
        lead_scorer=ProviderChain([ChatLeadScorer(client)], timeout=timeout, name="lead scorer"),
        training_interval=timedelta(hours=settings.training_interval_hours),
    )
    logger.info(f"MarketLearn ready with {settings.store_backend} store")
    return service
