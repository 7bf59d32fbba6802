"""Bounded, ordered metric collections persisted through a CollectionStore."""

from dataclasses import asdict, fields
from datetime import datetime
from typing import Any, Dict, List, Optional

from loguru import logger

from .errors import PersistenceError, StoreError
from .models import EVENT_TYPES, RETENTION_LIMITS, MetricEvent, parse_timestamp
from .ports import CollectionStore


class MetricStore:
    """Typed access to the per-category event collections and named documents.

    Loads never fail: unreadable collections come back empty. Writes read the
    current value strictly, so an unreadable collection is never overwritten;
    that and any failed save raise PersistenceError so callers can report them.
    """

    def __init__(self, backend: CollectionStore):
        self.backend = backend

    def load(self, category: str) -> List[MetricEvent]:
        event_type = _event_type(category)
        raw = self._load_raw(category)
        if not isinstance(raw, list):
            if raw is not None:
                logger.warning(f"Ignoring non-list payload for {category}")
            return []

        events: List[MetricEvent] = []
        for item in raw:
            event = _decode_event(event_type, item)
            if event is None:
                logger.debug(f"Skipping malformed {category} record: {item!r}")
                continue
            events.append(event)
        return events

    def append(self, category: str, event: MetricEvent) -> int:
        """Append one record, evict the oldest beyond the cap, persist. Returns the new size."""
        event_type = _event_type(category)
        if not isinstance(event, event_type):
            raise TypeError(f"{category} expects {event_type.__name__}, got {type(event).__name__}")

        raw = self._load_for_update(category)
        if raw is not None and not isinstance(raw, list):
            logger.warning(f"Replacing non-list payload for {category}")
        records = list(raw) if isinstance(raw, list) else []
        records.append(_encode_event(event))

        limit = RETENTION_LIMITS[category]
        if len(records) > limit:
            del records[: len(records) - limit]

        self._save_raw(category, records)
        return len(records)

    def count(self, category: str) -> int:
        return len(self.load(category))

    def load_document(self, name: str, for_update: bool = False) -> Dict[str, Any]:
        """Return a named document, or {} when absent.

        With ``for_update`` an unreadable document raises PersistenceError instead
        of reading as empty, so a read-modify-write cannot wipe it.
        """
        raw = self._load_for_update(name) if for_update else self._load_raw(name)
        if raw is None:
            return {}
        if not isinstance(raw, dict):
            logger.warning(f"Ignoring non-mapping payload for {name}")
            return {}
        return raw

    def save_document(self, name: str, document: Dict[str, Any]) -> None:
        self._save_raw(name, document)

    def _load_raw(self, name: str) -> Optional[Any]:
        try:
            return self.backend.load(name)
        except StoreError as exc:
            logger.warning(f"Could not load {name}, treating it as empty: {exc}")
            return None

    def _load_for_update(self, name: str) -> Optional[Any]:
        try:
            return self.backend.load(name)
        except StoreError as exc:
            logger.error(f"Refusing to rewrite {name}, current value unreadable: {exc}")
            raise PersistenceError(f"cannot read {name} before writing it") from exc

    def _save_raw(self, name: str, value: Any) -> None:
        try:
            self.backend.save(name, value)
        except StoreError as exc:
            logger.error(f"Failed to persist {name}: {exc}")
            raise PersistenceError(f"failed to persist {name}") from exc
        logger.debug(f"Persisted {name}")


def _event_type(category: str):
    try:
        return EVENT_TYPES[category]
    except KeyError:
        raise ValueError(f"unknown metric category: {category!r}") from None


def _encode_event(event: MetricEvent) -> Dict[str, Any]:
    record = asdict(event)
    for key, value in record.items():
        if isinstance(value, datetime):
            record[key] = value.isoformat()
    return record


def _decode_event(event_type, item) -> Optional[MetricEvent]:
    if not isinstance(item, dict):
        return None
    values = {}
    for field in fields(event_type):
        if field.name not in item:
            return None
        value = item[field.name]
        if field.name in ("recorded_at", "sent_at"):
            parsed = parse_timestamp(value)
            if parsed is None and field.name == "recorded_at":
                return None
            value = parsed
        values[field.name] = value
    return event_type(**values)
