"""In-process collection store, used by the demo app and tests."""

import copy
import threading
from typing import Any, Dict, Optional


class InMemoryCollectionStore:
    """Dict-backed store; values are deep-copied so callers never share state."""

    def __init__(self):
        self._data: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def load(self, name: str) -> Optional[Any]:
        with self._lock:
            if name not in self._data:
                return None
            return copy.deepcopy(self._data[name])

    def save(self, name: str, value: Any) -> None:
        snapshot = copy.deepcopy(value)
        with self._lock:
            self._data[name] = snapshot
