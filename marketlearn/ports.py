"""Port definitions for storage backends and external collaborators."""

from typing import Any, Mapping, Optional, Protocol, Sequence

from .models import LeadScore


class CollectionStore(Protocol):
    """Key-value store of whole collections that adapters implement for any backend."""

    def load(self, name: str) -> Optional[Any]:
        """Return the stored JSON-compatible value, or None if nothing is stored.

        Raises StoreReadError when stored data exists but cannot be decoded.
        """

    def save(self, name: str, value: Any) -> None:
        """Replace the stored value as one unit.

        Readers must observe either the previous value or the new one.
        Raises StoreWriteError on failure.
        """


class TextGenerator(Protocol):
    """Proposes subject lines from examples of subjects that converted."""

    def is_available(self) -> bool:
        """Return True when the provider is configured and can be called."""

    def generate_subjects(
        self,
        examples: Sequence[str],
        business_type: str,
        lead_data: Optional[Mapping[str, Any]] = None,
    ) -> Sequence[str]:
        """Return candidate subject lines."""


class LeadScorer(Protocol):
    """Scores a lead on a 0-100 scale."""

    def is_available(self) -> bool:
        """Return True when the provider is configured and can be called."""

    def score_lead(self, lead_data: Mapping[str, Any]) -> LeadScore:
        """Return the lead score and a confidence label."""
