import json
import os

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker

from marketlearn.adapters import InMemoryCollectionStore, JsonFileStore, SQLAlchemyCollectionStore
from marketlearn.errors import StoreReadError, StoreWriteError


def test_json_store_round_trip_and_missing(tmp_path):
    store = JsonFileStore(tmp_path / "data")

    assert store.load("pricing") is None
    store.save("pricing", [{"price": 99, "outcome": "accepted"}])

    assert store.load("pricing") == [{"price": 99, "outcome": "accepted"}]
    assert (tmp_path / "data" / "pricing.json").exists()


def test_json_store_corrupt_file_raises_read_error(tmp_path):
    store = JsonFileStore(tmp_path)
    (tmp_path / "pricing.json").write_text("[{broken", encoding="utf-8")

    with pytest.raises(StoreReadError):
        store.load("pricing")


def test_json_store_failed_swap_keeps_previous_file(tmp_path, monkeypatch):
    store = JsonFileStore(tmp_path)
    store.save("conversions", [{"lead_id": "a"}])

    def failing_replace(src, dst):
        raise OSError("power cut")

    monkeypatch.setattr(os, "replace", failing_replace)

    with pytest.raises(StoreWriteError):
        store.save("conversions", [{"lead_id": "a"}, {"lead_id": "b"}])

    assert json.loads((tmp_path / "conversions.json").read_text(encoding="utf-8")) == [{"lead_id": "a"}]
    assert sorted(path.name for path in tmp_path.iterdir()) == ["conversions.json"]


def test_json_store_unserializable_value_raises_write_error(tmp_path):
    store = JsonFileStore(tmp_path)

    with pytest.raises(StoreWriteError):
        store.save("pricing", [object()])
    assert store.load("pricing") is None


def _sqlalchemy_store(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'marketlearn.db'}")
    store = SQLAlchemyCollectionStore(sessionmaker(bind=engine))
    store.ensure_schema()
    return store


def test_sqlalchemy_store_save_overwrites_whole_collection(tmp_path):
    store = _sqlalchemy_store(tmp_path)

    assert store.load("content_performance") is None
    store.save("content_performance", [{"content_id": "c1"}])
    store.save("content_performance", [{"content_id": "c1"}, {"content_id": "c2"}])

    assert store.load("content_performance") == [{"content_id": "c1"}, {"content_id": "c2"}]


def test_sqlalchemy_store_corrupt_payload_raises_read_error(tmp_path):
    store = _sqlalchemy_store(tmp_path)
    with store.session_factory() as db:
        db.execute(
            text("INSERT INTO marketlearn_collections (name, payload) VALUES (:name, :payload)"),
            {"name": "pricing", "payload": "{not json"},
        )
        db.commit()

    with pytest.raises(StoreReadError):
        store.load("pricing")


def test_sqlalchemy_store_missing_table_raises_write_error(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    store = SQLAlchemyCollectionStore(sessionmaker(bind=engine))

    with pytest.raises(StoreWriteError):
        store.save("pricing", [])
    with pytest.raises(StoreReadError):
        store.load("pricing")


def test_memory_store_returns_copies():
    store = InMemoryCollectionStore()
    value = [{"price": 10}]
    store.save("pricing", value)
    value.append({"price": 20})

    loaded = store.load("pricing")
    loaded.append({"price": 30})

    assert store.load("pricing") == [{"price": 10}]
