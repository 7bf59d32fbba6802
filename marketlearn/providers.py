"""External collaborator providers and the fallback chain that selects among them."""

import json
import re
import threading
from typing import Any, Dict, Generic, List, Mapping, Optional, Sequence, TypeVar

import requests
from loguru import logger
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .errors import CollaboratorUnavailable
from .models import LeadScore

P = TypeVar("P")

_UNSELECTED = object()


class ProviderChain(Generic[P]):
    """Ranked list of providers behind one interface.

    The first provider reporting itself available is selected on first use and
    cached. Every call runs on its own daemon thread under a timeout; no provider,
    a failing provider and a slow provider all surface as CollaboratorUnavailable.
    A call that hangs past the timeout is abandoned, not stopped, and cannot
    delay later calls.
    """

    def __init__(self, providers: Sequence[P] = (), timeout: float = 20.0, name: str = "provider"):
        self.providers = list(providers)
        self.timeout = timeout
        self.name = name
        self._selected: Any = _UNSELECTED
        self._lock = threading.Lock()

    @property
    def selected(self) -> Optional[P]:
        with self._lock:
            if self._selected is _UNSELECTED:
                self._selected = self._probe()
            return self._selected

    def is_available(self) -> bool:
        return self.selected is not None

    def invoke(self, method: str, *args, **kwargs):
        provider = self.selected
        if provider is None:
            raise CollaboratorUnavailable(f"no {self.name} configured")

        outcome: Dict[str, Any] = {}

        def call():
            try:
                outcome["value"] = getattr(provider, method)(*args, **kwargs)
            except Exception as exc:
                outcome["error"] = exc

        worker = threading.Thread(target=call, name=f"{self.name} call", daemon=True)
        worker.start()
        worker.join(self.timeout)

        if worker.is_alive():
            logger.warning(f"{self.name} still running after {self.timeout}s, abandoning the call")
            raise CollaboratorUnavailable(f"{self.name} timed out after {self.timeout}s")
        if "error" in outcome:
            exc = outcome["error"]
            raise CollaboratorUnavailable(f"{self.name} failed: {exc}") from exc
        return outcome.get("value")

    def _probe(self) -> Optional[P]:
        for provider in self.providers:
            try:
                available = provider.is_available()
            except Exception as exc:
                logger.warning(f"{self.name} {type(provider).__name__} probe failed: {exc}")
                continue
            if available:
                logger.info(f"Selected {self.name}: {type(provider).__name__}")
                return provider
        logger.info(f"No {self.name} available, using built-in fallbacks")
        return None


class ChatCompletionsClient:
    """Minimal client for an OpenAI-compatible ``/chat/completions`` endpoint."""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4",
        timeout: float = 20.0,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    @retry(
        retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=2),
        reraise=True,
    )
    def complete(self, prompt: str, temperature: float = 0.7, json_object: bool = False) -> str:
        body: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
        }
        if json_object:
            body["response_format"] = {"type": "json_object"}

        response = self.session.post(
            f"{self.base_url}/chat/completions",
            json=body,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()["choices"][0]["message"]["content"]


class ChatSubjectGenerator:
    """TextGenerator that asks a chat model for subject lines in the style of past winners."""

    def __init__(self, client: ChatCompletionsClient, count: int = 3):
        self.client = client
        self.count = count

    def is_available(self) -> bool:
        return self.client.configured

    def generate_subjects(
        self,
        examples: Sequence[str],
        business_type: str,
        lead_data: Optional[Mapping[str, Any]] = None,
    ) -> List[str]:
        prompt = (
            f"Based on these successful email subjects: {', '.join(examples)}\n\n"
            f"Generate {self.count} new subject lines for a {business_type} outreach.\n"
            "Make them similar in style but original.\n"
            "Return as JSON array of strings."
        )
        content = self.client.complete(prompt, temperature=0.8)
        return _parse_subject_list(content)


class ChatLeadScorer:
    """LeadScorer backed by a chat model returning ``{score, confidence}`` JSON."""

    def __init__(self, client: ChatCompletionsClient):
        self.client = client

    def is_available(self) -> bool:
        return self.client.configured

    def score_lead(self, lead_data: Mapping[str, Any]) -> LeadScore:
        prompt = (
            "Analyze this lead and predict conversion probability:\n\n"
            f"{json.dumps(dict(lead_data), default=str)}\n\n"
            "Consider company size and industry, email domain quality and online presence.\n"
            'Return JSON: {"score": 0-100, "confidence": "low"|"medium"|"high"}'
        )
        payload = json.loads(self.client.complete(prompt, temperature=0.3, json_object=True))
        score = float(payload["score"])
        if not 0 <= score <= 100:
            raise ValueError(f"lead score out of range: {score}")
        return LeadScore(score=score, confidence=str(payload.get("confidence", "low")))


def _parse_subject_list(content: str) -> List[str]:
    # Models sometimes wrap the array in prose or code fences.
    match = re.search(r"\[.*\]", content, re.DOTALL)
    if match is None:
        raise ValueError("no JSON array in response")
    values = json.loads(match.group(0))
    return [str(value).strip() for value in values if str(value).strip()]
