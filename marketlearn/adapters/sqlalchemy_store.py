"""SQLAlchemy collection store adapter for MarketLearn."""

import json
from typing import Any, Callable, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import StoreReadError, StoreWriteError


class SQLAlchemyCollectionStore:
    """Keeps each collection as one JSON payload row in a relational table.

    A save replaces the row inside a single transaction, so readers see either
    the previous payload or the new one.
    """

    def __init__(self, session_factory: Callable[[], Session], table: str = "marketlearn_collections"):
        self.session_factory = session_factory
        self.table = table

    def ensure_schema(self) -> None:
        with self.session_factory() as db:
            db.execute(
                text(
                    f"""
                    CREATE TABLE IF NOT EXISTS {self.table} (
                        name VARCHAR(128) PRIMARY KEY,
                        payload TEXT NOT NULL,
                        updated_at VARCHAR(40)
                    )
                    """
                )
            )
            db.commit()

    def load(self, name: str) -> Optional[Any]:
        try:
            with self.session_factory() as db:
                row = db.execute(
                    text(f"SELECT payload FROM {self.table} WHERE name = :name"),
                    {"name": name},
                ).fetchone()
        except SQLAlchemyError as exc:
            raise StoreReadError(f"cannot read {name!r}: {exc}") from exc

        if row is None:
            return None
        try:
            return json.loads(row.payload)
        except (TypeError, json.JSONDecodeError) as exc:
            raise StoreReadError(f"corrupt payload for {name!r}: {exc}") from exc

    def save(self, name: str, value: Any) -> None:
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as exc:
            raise StoreWriteError(f"cannot encode {name!r}: {exc}") from exc

        try:
            with self.session_factory() as db:
                with db.begin():
                    db.execute(
                        text(f"DELETE FROM {self.table} WHERE name = :name"),
                        {"name": name},
                    )
                    db.execute(
                        text(
                            f"""
                            INSERT INTO {self.table} (name, payload, updated_at)
                            VALUES (:name, :payload, CURRENT_TIMESTAMP)
                            """
                        ),
                        {"name": name, "payload": payload},
                    )
        except SQLAlchemyError as exc:
            raise StoreWriteError(f"cannot write {name!r}: {exc}") from exc
