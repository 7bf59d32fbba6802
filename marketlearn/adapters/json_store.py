"""Flat-file collection store: one JSON document per collection name."""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Optional, Union

from loguru import logger

from ..errors import StoreReadError, StoreWriteError


class JsonFileStore:
    """Stores each collection as ``<data_dir>/<name>.json``.

    Writes go to a temporary file in the same directory which then replaces the
    target with ``os.replace``, so a crash mid-write leaves the old file intact.
    """

    def __init__(self, data_dir: Union[str, Path]):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, name: str) -> Path:
        return self.data_dir / f"{name}.json"

    def load(self, name: str) -> Optional[Any]:
        path = self.path_for(name)
        if not path.exists():
            return None
        try:
            with path.open("r", encoding="utf-8") as handle:
                return json.load(handle)
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise StoreReadError(f"cannot read {path}: {exc}") from exc

    def save(self, name: str, value: Any) -> None:
        path = self.path_for(name)
        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=f".{name}.", suffix=".tmp", dir=self.data_dir)
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(value, handle, indent=2)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
            tmp_name = None
        except (OSError, TypeError, ValueError) as exc:
            raise StoreWriteError(f"cannot write {path}: {exc}") from exc
        finally:
            if tmp_name is not None:
                _discard(tmp_name)
        logger.debug(f"Saved {name} to {path}")


def _discard(tmp_name: str) -> None:
    try:
        os.unlink(tmp_name)
    except OSError as exc:
        logger.warning(f"Could not remove temporary file {tmp_name}: {exc}")
