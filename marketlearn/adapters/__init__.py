"""Storage adapters implementing the CollectionStore port."""

from .json_store import JsonFileStore
from .memory_store import InMemoryCollectionStore
from .sqlalchemy_store import SQLAlchemyCollectionStore

__all__ = ["InMemoryCollectionStore", "JsonFileStore", "SQLAlchemyCollectionStore"]
